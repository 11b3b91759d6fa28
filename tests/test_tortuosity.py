# tests/test_tortuosity.py
import logging
import math

import pytest

from permeabilityanalysis.analysis import tortuosity
from permeabilityanalysis.analysis.tortuosity import build_distance_graph, geometric_tortuosity
from permeabilityanalysis.model.network import Pore, PoreNetwork, Throat
from permeabilityanalysis.model.options import FlowAxis


def _mean_lateral_steps(n):
    return sum(abs(a - b) for a in range(n) for b in range(n)) / n ** 2


def test_distance_graph_is_in_meters(make_chain):
    graph = build_distance_graph(make_chain(3, voxel_size=2.0))
    assert graph.shape == (3, 3)
    assert graph.nnz == 2
    assert graph[0, 1] == pytest.approx(20e-6)
    assert graph[1, 2] == pytest.approx(20e-6)


def test_parallel_throats_keep_the_shortest_length():
    pores = [Pore(0, [0, 0, 0], 1.0), Pore(1, [0, 0, 10], 1.0)]
    throats = [Throat(0, 0, 1, 0.5), Throat(1, 1, 0, 0.2)]
    graph = build_distance_graph(PoreNetwork(pores, throats))
    assert graph.nnz == 1
    assert graph[0, 1] == pytest.approx(10e-6)


def test_graph_is_indexed_by_pore_position():
    pores = [Pore(7, [0, 0, 0], 1.0), Pore(3, [0, 0, 4], 1.0)]
    graph = build_distance_graph(PoreNetwork(pores, [Throat(0, 3, 7, 0.5)]))
    assert graph.shape == (2, 2)
    assert graph[0, 1] == pytest.approx(4e-6)


def test_shorter_route_is_preferred():
    # inlet 0 and outlet 2, joined through a near pore (3) and a far pore (1)
    pores = [
        Pore(0, [0, 0, 0], 1.0),
        Pore(1, [20, 0, 5], 1.0),
        Pore(2, [0, 0, 10], 1.0),
        Pore(3, [3, 0, 5], 1.0),
    ]
    throats = [Throat(0, 0, 1, 0.5), Throat(1, 1, 2, 0.5), Throat(2, 0, 3, 0.5), Throat(3, 3, 2, 0.5)]
    tau = geometric_tortuosity(PoreNetwork(pores, throats), FlowAxis.Z)
    assert tau == pytest.approx(2 * math.sqrt(34.0) / 10.0)


def test_coincident_pores_stay_connected(caplog):
    pores = [Pore(0, [0, 0, 0], 1.0), Pore(1, [0, 0, 5], 1.0), Pore(2, [0, 0, 5], 1.0), Pore(3, [0, 0, 10], 1.0)]
    throats = [Throat(0, 0, 1, 0.5), Throat(1, 1, 2, 0.5), Throat(2, 2, 3, 0.5)]
    with caplog.at_level(logging.WARNING, logger="permeabilityanalysis"):
        assert geometric_tortuosity(PoreNetwork(pores, throats), FlowAxis.Z) == pytest.approx(1.0)
    assert "No inlet-outlet path" not in caplog.text


def test_straight_chain_has_unit_tortuosity(make_chain):
    assert geometric_tortuosity(make_chain(5), FlowAxis.Z) == pytest.approx(1.0)


def test_lattice_paths_are_longer_than_the_sample(lattice):
    tau = geometric_tortuosity(lattice, FlowAxis.Z)
    # mean over 9x9 pairs of 30 um + 10 um per lateral step, divided by 30 um
    assert tau == pytest.approx((30.0 + 10.0 * 2 * _mean_lateral_steps(3)) / 30.0)
    assert 1.0 < tau <= 10.0


def test_large_lattice_in_small_blocks(make_lattice, monkeypatch):
    network = make_lattice(nx=6, ny=6, nz=8)
    expected = (70.0 + 10.0 * 2 * _mean_lateral_steps(6)) / 70.0
    assert geometric_tortuosity(network, FlowAxis.Z) == pytest.approx(expected)

    # a few inlets per Dijkstra batch gives the same mean
    monkeypatch.setattr(tortuosity, "DIJKSTRA_CHUNK_ENTRIES", 5 * network.number_of_pores)
    assert geometric_tortuosity(network, FlowAxis.Z) == pytest.approx(expected)


def test_zigzag_path():
    pores = [
        Pore(0, [0, 0, 0], 1.0),
        Pore(1, [10, 0, 5], 1.0),
        Pore(2, [0, 0, 10], 1.0),
    ]
    throats = [Throat(0, 0, 1, 0.5), Throat(1, 1, 2, 0.5)]
    tau = geometric_tortuosity(PoreNetwork(pores, throats), FlowAxis.Z)
    assert tau == pytest.approx(2 * math.sqrt(125.0) / 10.0)


def test_tortuosity_is_clamped_to_ten():
    # detour of about 1000 voxels around a sample 10 voxels long
    pores = [Pore(0, [0, 0, 0], 1.0), Pore(1, [500, 0, 5], 1.0), Pore(2, [0, 0, 10], 1.0)]
    throats = [Throat(0, 0, 1, 0.5), Throat(1, 1, 2, 0.5)]
    network = PoreNetwork(pores, throats)
    assert geometric_tortuosity(network, FlowAxis.Z) == 10.0


def test_disconnected_network_falls_back_to_one(caplog):
    pores = [Pore(0, [0, 0, 0], 1.0), Pore(1, [0, 0, 5], 1.0), Pore(2, [0, 0, 20], 1.0)]
    network = PoreNetwork(pores, [Throat(0, 0, 1, 0.5)])
    with caplog.at_level(logging.WARNING, logger="permeabilityanalysis"):
        assert geometric_tortuosity(network, FlowAxis.Z) == 1.0
    assert "No inlet-outlet path" in caplog.text


def test_empty_network_is_neutral():
    assert geometric_tortuosity(PoreNetwork([], []), FlowAxis.X) == 1.0
