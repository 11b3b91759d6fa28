from __future__ import annotations

import numpy as np
import numpy.typing as npt
import numba as nb

# ---- JIT’d CSR kernels used by SparseMatrix and the CPU Conjugate Gradient ----

@nb.njit(parallel=True, cache=True)
def csr_matvec(
    indptr: npt.NDArray[np.int64],
    indices: npt.NDArray[np.int64],
    data: npt.NDArray[np.float32],
    x: npt.NDArray[np.float64],
    out: npt.NDArray[np.float64],
) -> None:
    """
    y = A·x for a CSR matrix, rows distributed over the numba thread pool.

    Every row is reduced by exactly one thread into its own slot of `out`,
    so the result does not depend on the thread count.
    """
    n_rows = indptr.shape[0] - 1
    for i in nb.prange(n_rows):
        acc = 0.0
        for jj in range(indptr[i], indptr[i + 1]):
            acc += data[jj] * x[indices[jj]]
        out[i] = acc


@nb.njit(cache=True)
def axpy(y: npt.NDArray[np.float64], x: npt.NDArray[np.float64], alpha: float) -> None:
    """y += alpha·x (in place)."""
    for i in range(y.shape[0]):
        y[i] += alpha * x[i]


@nb.njit(cache=True)
def update_direction(
    p: npt.NDArray[np.float64],
    r: npt.NDArray[np.float64],
    beta: float,
    free: npt.NDArray[np.bool_],
) -> None:
    """p = r + beta·p on free rows, 0 on fixed (Dirichlet) rows."""
    for i in range(p.shape[0]):
        if free[i]:
            p[i] = r[i] + beta * p[i]
        else:
            p[i] = 0.0
