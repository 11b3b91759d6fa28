# tests/test_flow.py
import math

import numpy as np
import pytest

from permeabilityanalysis.analysis.boundary import BoundaryPores
from permeabilityanalysis.analysis.flow import (
    permeability_from_flow,
    throat_flow_rates,
    tortuosity_correction,
    total_flow,
)
from permeabilityanalysis.model.network import Pore, PoreNetwork, Throat
from permeabilityanalysis.model.options import FlowAxis


def _star():
    # two inlet pores (0, 1), one interior pore (2), one outlet pore (3)
    pores = [
        Pore(0, [0, 0, 0], 1.0),
        Pore(1, [10, 0, 0], 1.0),
        Pore(2, [5, 0, 5], 1.0),
        Pore(3, [5, 0, 10], 1.0),
    ]
    throats = [Throat(0, 0, 2, 0.5), Throat(1, 1, 2, 0.5), Throat(2, 0, 1, 0.5), Throat(3, 2, 3, 0.5)]
    return PoreNetwork(pores, throats)


def _boundary():
    return BoundaryPores(axis=FlowAxis.Z, inlets=frozenset({0, 1}), outlets=frozenset({3}), length=1e-5, area=1e-10)


def test_total_flow_counts_inlet_crossing_throats_only():
    network = _star()
    g = np.array([2.0, 3.0, 100.0, 5.0])
    pressures = np.array([1.0, 1.0, 0.4, 0.0])
    # throat 2 joins two inlets and carries no net flow; throat 3 is interior
    assert total_flow(network, g, pressures, _boundary()) == pytest.approx(2.0 * 0.6 + 3.0 * 0.6)


def test_total_flow_orientation_does_not_matter():
    pores = [Pore(0, [0, 0, 0], 1.0), Pore(1, [0, 0, 10], 1.0)]
    network = PoreNetwork(pores, [Throat(0, 1, 0, 0.5)])
    boundary = BoundaryPores(axis=FlowAxis.Z, inlets=frozenset({0}), outlets=frozenset({1}), length=1e-5, area=1e-12)
    assert total_flow(network, np.array([4.0]), np.array([1.0, 0.0]), boundary) == pytest.approx(4.0)


def test_throat_flow_rates_are_absolute():
    rates = throat_flow_rates(_star(), np.array([2.0, 3.0, 100.0, 5.0]), np.array([1.0, 1.0, 0.4, 0.0]))
    assert rates == {0: pytest.approx(1.2), 1: pytest.approx(1.8), 2: 0.0, 3: pytest.approx(2.0)}


def test_permeability_from_flow_in_millidarcy():
    # k = Q mu L / (A dP) = 1e-18 * 1e-3 * 1e-5 / (1e-12 * 1) = 1e-14 m²
    assert permeability_from_flow(1e-18, 1e-3, 1e-5, 1e-12, 1.0) == pytest.approx(1e-14 * 1.01325e15)


@pytest.mark.parametrize("flow, area, drop", [
    (-1e-18, 1e-12, 1.0),
    (math.nan, 1e-12, 1.0),
    (math.inf, 1e-12, 1.0),
    (1e-18, 0.0, 1.0),
    (1e-18, 1e-12, 0.0),
])
def test_degenerate_permeability_clamps_to_zero(flow, area, drop):
    assert permeability_from_flow(flow, 1e-3, 1e-5, area, drop) == 0.0


def test_tortuosity_correction():
    assert tortuosity_correction(100.0, 1.0) == 100.0
    assert tortuosity_correction(100.0, 2.0) == pytest.approx(25.0)
    assert tortuosity_correction(100.0, 0.5) == 100.0


def test_correction_decreases_strictly_with_tortuosity():
    values = [tortuosity_correction(50.0, tau) for tau in np.linspace(1.0, 10.0, 19)]
    assert all(a > b for a, b in zip(values, values[1:]))
