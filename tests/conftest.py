# tests/conftest.py
import itertools

import pytest

from permeabilityanalysis.model.network import Pore, PoreNetwork, Throat


def build_chain(n_pores=2, spacing=10.0, pore_radius=0.5, throat_radius=0.5, voxel_size=1.0, axis=2):
    """Straight chain of pores along one axis, starting at the origin."""
    pores = []
    for i in range(n_pores):
        position = [0.0, 0.0, 0.0]
        position[axis] = i * spacing
        pores.append(Pore(index=i, position=position, radius=pore_radius))
    throats = [Throat(index=i, pore1_id=i, pore2_id=i + 1, radius=throat_radius) for i in range(n_pores - 1)]
    return PoreNetwork(pores, throats, voxel_size=voxel_size, name="chain")


def build_lattice(nx=3, ny=3, nz=4, spacing=10.0, pore_radius=2.0, throat_radius=1.0, voxel_size=1.0):
    """Cubic lattice with throats between nearest neighbours."""
    def pid(i, j, k):
        return i + nx * (j + ny * k)

    pores = [
        Pore(index=pid(i, j, k), position=[i * spacing, j * spacing, k * spacing], radius=pore_radius)
        for k, j, i in itertools.product(range(nz), range(ny), range(nx))
    ]
    throats = []
    for k, j, i in itertools.product(range(nz), range(ny), range(nx)):
        for di, dj, dk in ((1, 0, 0), (0, 1, 0), (0, 0, 1)):
            a, b, c = i + di, j + dj, k + dk
            if a < nx and b < ny and c < nz:
                throats.append(Throat(index=len(throats), pore1_id=pid(i, j, k), pore2_id=pid(a, b, c),
                                      radius=throat_radius))
    return PoreNetwork(pores, throats, voxel_size=voxel_size, name="lattice")


@pytest.fixture
def make_chain():
    return build_chain


@pytest.fixture
def make_lattice():
    return build_lattice


@pytest.fixture
def single_tube():
    """Two pores 10 voxels apart along Z joined by one throat (r = 0.5 voxel, 1 um voxels)."""
    return build_chain(n_pores=2)


@pytest.fixture
def lattice():
    return build_lattice()
