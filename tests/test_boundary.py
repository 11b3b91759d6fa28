# tests/test_boundary.py
import pytest

from permeabilityanalysis.analysis.boundary import classify_boundary
from permeabilityanalysis.model.network import Pore, PoreNetwork, Throat
from permeabilityanalysis.model.options import FlowAxis


def test_chain_ends_are_inlet_and_outlet(make_chain):
    boundary = classify_boundary(make_chain(4), FlowAxis.Z)
    assert boundary.inlets == {0}
    assert boundary.outlets == {3}
    assert boundary.length == pytest.approx(30e-6)
    # a single column still occupies one voxel in each transverse direction
    assert boundary.area == pytest.approx(1e-12)
    assert boundary.has_flow_path


def test_lattice_faces(lattice):
    boundary = classify_boundary(lattice, FlowAxis.Z)
    assert len(boundary.inlets) == 9
    assert len(boundary.outlets) == 9
    assert boundary.length == pytest.approx(30e-6)
    assert boundary.area == pytest.approx(20e-6 * 20e-6)

    along_x = classify_boundary(lattice, FlowAxis.X)
    assert len(along_x.inlets) == 12
    assert along_x.length == pytest.approx(20e-6)
    assert along_x.area == pytest.approx(20e-6 * 30e-6)


def test_tolerance_band_is_one_voxel():
    pores = [
        Pore(0, [0, 0, 0.0], 1.0),
        Pore(1, [0, 0, 1.0], 1.0),
        Pore(2, [0, 0, 1.5], 1.0),
        Pore(3, [0, 0, 10.0], 1.0),
    ]
    network = PoreNetwork(pores, [Throat(0, 0, 3, 0.5)])
    boundary = classify_boundary(network, FlowAxis.Z)
    assert boundary.inlets == {0, 1}
    assert boundary.outlets == {3}


def test_flat_sample_has_overlapping_boundaries():
    pores = [Pore(0, [0, 0, 0], 1.0), Pore(1, [10, 0, 0.5], 1.0)]
    network = PoreNetwork(pores, [Throat(0, 0, 1, 0.5)])
    boundary = classify_boundary(network, FlowAxis.Z)
    assert boundary.overlapping
    assert not boundary.has_flow_path


def test_empty_network_has_no_boundary():
    boundary = classify_boundary(PoreNetwork([], []), FlowAxis.Y)
    assert boundary.is_empty
    assert boundary.length == 0.0
    assert not boundary.has_flow_path
