"""
Conjugate Gradient (CPU)
========================
Solves the assembled pressure system. The matrix is only symmetric on its
free (interior) rows, so the search direction is projected onto the free
unknowns after every update:

1. The first step moves x along p = b, which sets every Dirichlet unknown to
   its prescribed value and zeroes its residual.
2. From then on p[fixed] = 0, so the fixed unknowns never move and the
   iteration is plain CG on the symmetric positive definite interior block.

Vectors and dot products are double precision; the matrix is stored in
single precision.
"""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Optional

import numpy as np

from permeabilityanalysis.model.options import SolverSettings
from permeabilityanalysis.model.results import ConvergenceInfo
from permeabilityanalysis.solvers.kernels import axpy, csr_matvec, update_direction

if TYPE_CHECKING:
    import numpy.typing as npt

    from permeabilityanalysis.analysis.assembler import LinearSystem

logger = logging.getLogger(__name__)


def conjugate_gradient(
    system: LinearSystem,
    settings: Optional[SolverSettings] = None,
) -> tuple[npt.NDArray[np.float64], ConvergenceInfo]:
    """
    Solve A·x = b with the projected Conjugate Gradient method.

    Never raises on numerical trouble: a breakdown or an exhausted iteration
    cap is logged and the current iterate is returned.

    Args:
        system: Assembled linear system.
        settings: Tolerance, iteration cap and breakdown threshold.

    Returns:
        The solution (pressures indexed by pore id) and convergence info.
    """
    settings = settings or SolverSettings()
    n = system.size
    x = np.zeros(n, dtype=np.float64)
    if n == 0:
        return x, ConvergenceInfo(converged=True, backend="cpu")

    csr = system.matrix.to_csr()
    free = np.ascontiguousarray(system.free)

    r = np.array(system.rhs, dtype=np.float64)
    p = r.copy()
    ap = np.zeros(n, dtype=np.float64)

    rr = float(r @ r)
    residual = math.sqrt(rr)
    if residual < settings.tolerance:
        return x, ConvergenceInfo(iterations=0, residual_norm=residual, converged=True, backend="cpu")

    for iteration in range(1, settings.max_iterations + 1):
        csr_matvec(csr.indptr, csr.indices, csr.data, p, ap)

        curvature = float(p @ ap)
        direction_norm = float(p @ p)
        if direction_norm <= 0.0 or abs(curvature) < settings.breakdown_tolerance * direction_norm:
            logger.warning(f"CG breakdown at iteration {iteration} (p·Ap = {curvature:.3e}); "
                           f"returning current iterate, residual {residual:.3e}.")
            return x, ConvergenceInfo(
                iterations=iteration - 1, residual_norm=residual, converged=False, breakdown=True, backend="cpu"
            )

        alpha = rr / curvature
        axpy(x, p, alpha)
        axpy(r, ap, -alpha)

        rr_new = float(r @ r)
        residual = math.sqrt(rr_new)

        if settings.log_interval and iteration % settings.log_interval == 0:
            logger.debug(f"CG iteration {iteration}: residual {residual:.3e}")

        if residual < settings.tolerance:
            logger.debug(f"CG converged in {iteration} iterations (residual {residual:.3e})")
            return x, ConvergenceInfo(iterations=iteration, residual_norm=residual, converged=True, backend="cpu")

        beta = rr_new / rr
        update_direction(p, r, beta, free)
        rr = rr_new

    logger.warning(f"CG did not converge within {settings.max_iterations} iterations "
                   f"(residual {residual:.3e}); using best-effort solution.")
    return x, ConvergenceInfo(
        iterations=settings.max_iterations, residual_norm=residual, converged=False, backend="cpu"
    )
