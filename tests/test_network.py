# tests/test_network.py
import logging
import math

import numpy as np
import pytest

from permeabilityanalysis.exceptions import NetworkError, PermeabilityError
from permeabilityanalysis.model.network import Pore, PoreNetwork, Throat


def _pores(n=2):
    return [Pore(index=i, position=[0.0, 0.0, 10.0 * i], radius=1.0) for i in range(n)]


def test_network_exposes_geometry(single_tube):
    assert single_tube.number_of_pores == 2
    assert single_tube.number_of_throats == 1
    assert single_tube.positions.shape == (2, 3)
    assert single_tube.voxel_size_m == pytest.approx(1e-6)
    assert single_tube.max_pore_id == 1
    assert single_tube.max_pore_radius == pytest.approx(0.5)
    assert single_tube.pore(1).z == pytest.approx(10.0)
    assert not single_tube.is_empty


def test_positions_are_read_only(single_tube):
    with pytest.raises(ValueError):
        single_tube.positions[0, 0] = 5.0
    with pytest.raises(ValueError):
        single_tube.pore(0).position[0] = 5.0


@pytest.mark.parametrize("pores, throats", [
    # duplicate pore id
    ([Pore(0, [0, 0, 0], 1.0), Pore(0, [0, 0, 1], 1.0)], []),
    # negative pore id
    ([Pore(-1, [0, 0, 0], 1.0)], []),
    # dangling throat
    (_pores(2), [Throat(0, 0, 7, 0.5)]),
    # duplicate throat id
    (_pores(3), [Throat(0, 0, 1, 0.5), Throat(0, 1, 2, 0.5)]),
    # negative radii
    ([Pore(0, [0, 0, 0], -1.0)], []),
    (_pores(2), [Throat(0, 0, 1, -0.1)]),
    # non-finite position / radius
    ([Pore(0, [0, math.nan, 0], 1.0)], []),
    (_pores(2), [Throat(0, 0, 1, math.inf)]),
])
def test_contract_violations_raise(pores, throats):
    with pytest.raises(NetworkError):
        PoreNetwork(pores, throats)


@pytest.mark.parametrize("voxel_size", [0.0, -1.0, math.nan, math.inf])
def test_invalid_voxel_size_raises(voxel_size):
    with pytest.raises(NetworkError):
        PoreNetwork(_pores(2), [], voxel_size=voxel_size)


def test_network_error_is_a_value_error():
    assert issubclass(NetworkError, ValueError)
    assert issubclass(NetworkError, PermeabilityError)


def test_pore_position_needs_three_coordinates():
    with pytest.raises(NetworkError):
        Pore(0, [1.0, 2.0], 1.0)


def test_suspicious_voxel_size_is_accepted_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="permeabilityanalysis"):
        network = PoreNetwork(_pores(2), [Throat(0, 0, 1, 0.5)], voxel_size=5000.0)
    assert network.voxel_size == 5000.0
    assert "Suspicious voxel size" in caplog.text


def test_empty_network():
    network = PoreNetwork([], [])
    assert network.is_empty
    assert network.max_pore_id == -1
    assert network.positions.shape == (0, 3)


def test_unknown_pore_lookup_raises_key_error(single_tube):
    with pytest.raises(KeyError):
        single_tube.pore(42)
    assert not single_tube.has_pore(42)


def test_dict_round_trip_keeps_fingerprint(lattice):
    restored = PoreNetwork.from_dict(lattice.to_dict())
    assert restored.fingerprint() == lattice.fingerprint()
    assert restored.number_of_throats == lattice.number_of_throats
    np.testing.assert_allclose(restored.positions, lattice.positions)


def test_fingerprint_tracks_content(make_chain):
    assert make_chain(3).fingerprint() == make_chain(3).fingerprint()
    assert make_chain(3).fingerprint() != make_chain(3, throat_radius=0.4).fingerprint()
    assert make_chain(3).fingerprint() != make_chain(3, voxel_size=2.0).fingerprint()


def test_from_dict_rejects_malformed_entries():
    data = {"voxel_size": 1.0, "pores": [{"id": 0, "position": [0, 0, 0]}], "throats": []}
    with pytest.raises(NetworkError):
        PoreNetwork.from_dict(data)
