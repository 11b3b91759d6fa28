"""
System Assembler
================
Builds the pressure equation of the network: for every interior pore the sum
of the throat flows is zero (mass conservation), every boundary pore is held
at a fixed pressure (Dirichlet row).

    sum_j g_ij (p_i - p_j) = 0      interior pore i
    p_i = P_in / P_out              inlet / outlet pore i

Unknowns are indexed by pore id, so the system has ``max_pore_id + 1`` rows.
Rows that nothing writes to (isolated pores and unused ids) get an identity
row with zero pressure and are held fixed as well.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Optional

import numpy as np
import scipy as sp
from scipy.sparse.csgraph import connected_components

from permeabilityanalysis.analysis.boundary import BoundaryPores
from permeabilityanalysis.analysis.conductance import ConductanceModel, throat_conductances
from permeabilityanalysis.analysis.sparse import SparseMatrix
from permeabilityanalysis.model.network import PoreNetwork

if TYPE_CHECKING:
    import numpy.typing as npt

    from permeabilityanalysis.analysis.stress import StressedGeometry

logger = logging.getLogger(__name__)


@dataclass
class LinearSystem:
    """
    Attributes:
        matrix: Conductance matrix with Dirichlet rows (float32 entries).
        rhs: Right-hand side (Pa), indexed by pore id.
        fixed: True for rows whose value is prescribed.
        conductance_scale: Factor all conductances were divided by.
        isolated: Ids of non-boundary pores without any conducting throat.
    """
    matrix: SparseMatrix
    rhs: npt.NDArray[np.float64]
    fixed: npt.NDArray[np.bool_]
    conductance_scale: float = 1.0
    isolated: frozenset[int] = field(default_factory=frozenset)

    @property
    def size(self) -> int:
        return self.matrix.size

    @property
    def free(self) -> npt.NDArray[np.bool_]:
        return ~self.fixed


def reference_conductance(conductances: npt.NDArray[np.float64]) -> float:
    """
    Largest throat conductance, used to bring the Laplacian block to order one.

    Returns 1.0 when no throat conducts.
    """
    positive = conductances[conductances > 0.0]
    if positive.size == 0:
        return 1.0
    return float(positive.max())


def _count_floating_pores(network: PoreNetwork, conductances: npt.NDArray[np.float64],
                          boundary: BoundaryPores) -> int:
    """Number of pores in conducting clusters that touch no boundary pore."""
    size = network.max_pore_id + 1
    rows = []
    cols = []
    for k, throat in enumerate(network.throats):
        if conductances[k] > 0.0:
            rows.append(throat.pore1_id)
            cols.append(throat.pore2_id)

    graph = sp.sparse.coo_matrix(
        (np.ones(len(rows), dtype=np.int8), (np.asarray(rows, dtype=np.int64), np.asarray(cols, dtype=np.int64))),
        shape=(size, size),
    ).tocsr()
    _, labels = connected_components(graph, directed=False)

    anchored = {labels[pid] for pid in boundary.inlets | boundary.outlets}
    touched = set(rows) | set(cols)
    return sum(1 for pid in touched if labels[pid] not in anchored)


def assemble_system(
    network: PoreNetwork,
    model: ConductanceModel,
    boundary: BoundaryPores,
    viscosity_pa_s: float,
    inlet_pressure: float,
    outlet_pressure: float,
    scale: float = 1.0,
    geometry: Optional[StressedGeometry] = None,
    conductances: Optional[npt.NDArray[np.float64]] = None,
) -> LinearSystem:
    """
    Assemble the pressure system of the network.

    Args:
        network: The pore network.
        model: Conductance model of the engine.
        boundary: Inlet/outlet pores.
        viscosity_pa_s: Dynamic viscosity (Pa·s).
        inlet_pressure: Pressure held at the inlet pores (Pa).
        outlet_pressure: Pressure held at the outlet pores (Pa).
        scale: Every conductance is divided by this factor. Scaling the
            interior rows does not change the pressure solution.
        geometry: Optional stress-modified radii.
        conductances: Precomputed throat conductances (m³/(Pa·s)), in throat
            order. Computed from `model` when omitted.

    Returns:
        The assembled `LinearSystem`.
    """
    if scale <= 0.0:
        raise ValueError(f"Conductance scale must be positive, got {scale}.")
    if conductances is None:
        conductances = throat_conductances(network, model, viscosity_pa_s, geometry)

    size = network.max_pore_id + 1
    matrix = SparseMatrix(size)
    rhs = np.zeros(size, dtype=np.float64)
    fixed = np.zeros(size, dtype=bool)

    # 1) Laplacian of the conducting throats
    touched: set[int] = set()
    for k, throat in enumerate(network.throats):
        g = conductances[k]
        if g <= 0.0:
            continue
        g /= scale
        p1, p2 = throat.pore1_id, throat.pore2_id
        matrix.add(p1, p1, g)
        matrix.add(p2, p2, g)
        matrix.add(p1, p2, -g)
        matrix.add(p2, p1, -g)
        touched.update((p1, p2))

    # 2) Dirichlet rows
    for pore_id, pressure in (
        *((pid, inlet_pressure) for pid in sorted(boundary.inlets)),
        *((pid, outlet_pressure) for pid in sorted(boundary.outlets)),
    ):
        matrix.clear_row(pore_id)
        matrix.set(pore_id, pore_id, 1.0)
        rhs[pore_id] = pressure
        fixed[pore_id] = True

    # 3) Rows nothing wrote to
    boundary_ids = boundary.inlets | boundary.outlets
    isolated = frozenset(
        pore.id for pore in network.pores
        if pore.id not in touched and pore.id not in boundary_ids
    )
    if isolated:
        logger.warning(f"{len(isolated)} pores have no conducting throat and are excluded from the flow field.")

    for row in range(size):
        if matrix.is_row_empty(row):
            matrix.set(row, row, 1.0)
            fixed[row] = True

    floating = _count_floating_pores(network, conductances, boundary)
    if floating:
        logger.info(f"{floating} pores belong to clusters connected to neither inlet nor outlet.")

    logger.debug(f"Assembled system: {size} unknowns, {int(fixed.sum())} fixed, {matrix.nnz} non-zeros")

    return LinearSystem(
        matrix=matrix,
        rhs=rhs,
        fixed=fixed,
        conductance_scale=scale,
        isolated=isolated,
    )
