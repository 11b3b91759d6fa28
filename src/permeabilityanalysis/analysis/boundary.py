"""
Boundary Classification
=======================
Finds the inlet/outlet pore sets and the macroscopic size of the sample for a
flow axis.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np

from permeabilityanalysis.config import BOUNDARY_TOLERANCE_VOXELS, MIN_EXTENT_VOXELS
from permeabilityanalysis.model.network import PoreNetwork
from permeabilityanalysis.model.options import FlowAxis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundaryPores:
    """
    Attributes:
        inlets: Ids of pores within one voxel of the lower bound.
        outlets: Ids of pores within one voxel of the upper bound.
        length: Extent of the sample along the flow axis (m).
        area: Cross-section perpendicular to the flow axis (m²).
    """
    axis: FlowAxis
    inlets: frozenset[int]
    outlets: frozenset[int]
    length: float
    area: float

    @property
    def is_empty(self) -> bool:
        return not self.inlets or not self.outlets

    @property
    def overlapping(self) -> bool:
        """A pore is both inlet and outlet (sample thinner than the tolerance band)."""
        return not self.inlets.isdisjoint(self.outlets)

    @property
    def has_flow_path(self) -> bool:
        return not self.is_empty and not self.overlapping and self.length > 0.0 and self.area > 0.0


def classify_boundary(
    network: PoreNetwork,
    axis: FlowAxis,
    tolerance: float = BOUNDARY_TOLERANCE_VOXELS,
) -> BoundaryPores:
    """
    Classify the inlet and outlet pores of a network.

    The bounding box of the pore centers defines the sample. The flow length
    is its extent along `axis`; the cross-section is the product of the two
    other extents, each taken as at least one voxel.

    A pore within one voxel of both bounds is an inlet and an outlet at once.
    This can happen in any sample at most two voxels thick along
    `axis`, not only for a single pore. Such a boundary has no flow path
    (`has_flow_path` is False) and the solver reports zero permeability for
    the axis with a warning instead of choosing one of the two pressures.

    Args:
        network: The pore network.
        axis: Flow direction.
        tolerance: Width of the inlet/outlet bands in voxels.

    Returns:
        The boundary pore sets and the sample length/area in SI units.
    """
    if network.number_of_pores == 0:
        return BoundaryPores(axis=axis, inlets=frozenset(), outlets=frozenset(), length=0.0, area=0.0)

    positions = network.positions
    lower = positions.min(axis=0)
    upper = positions.max(axis=0)
    extent = upper - lower
    voxel_m = network.voxel_size_m

    a = axis.index
    coordinate = positions[:, a]
    ids = np.array([pore.id for pore in network.pores], dtype=np.int64)
    inlets = frozenset(int(i) for i in ids[coordinate <= lower[a] + tolerance])
    outlets = frozenset(int(i) for i in ids[coordinate >= upper[a] - tolerance])

    length = float(extent[a]) * voxel_m
    t1, t2 = axis.transverse
    area = max(float(extent[t1]), MIN_EXTENT_VOXELS) * max(float(extent[t2]), MIN_EXTENT_VOXELS) * voxel_m * voxel_m

    logger.debug(f"Boundary detection: axis={axis.name}, L={length * 1e6:.1f} um, A={area * 1e12:.3f} um²")
    logger.debug(f"Boundary detection: {len(inlets)} inlet pores, {len(outlets)} outlet pores")

    return BoundaryPores(axis=axis, inlets=inlets, outlets=outlets, length=length, area=area)
