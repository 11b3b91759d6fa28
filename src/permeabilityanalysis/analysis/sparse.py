from __future__ import annotations

from typing import TYPE_CHECKING, Dict, NamedTuple

import numpy as np
import scipy as sp

from permeabilityanalysis.solvers.kernels import csr_matvec

if TYPE_CHECKING:
    import numpy.typing as npt


class CSRArrays(NamedTuple):
    """Compressed sparse row storage (columns sorted within each row)."""
    indptr: npt.NDArray[np.int64]
    indices: npt.NDArray[np.int64]
    data: npt.NDArray[np.float32]


class SparseMatrix:
    """
    Square sparse matrix stored as one ``{column: value}`` mapping per row.

    Values are single precision. `add` accumulates (several throats touching
    the same pore pair sum up), `set` overwrites a single entry and
    `clear_row` drops a whole row, which is how Dirichlet rows are written.
    """

    def __init__(self, size: int) -> None:
        """
        Initialize an all-zero matrix.

        Args:
            size: Number of rows (and columns).
        """
        if size < 0:
            raise ValueError(f"Matrix size must be >= 0, got {size}.")
        self.size = size
        self._rows: list[Dict[int, np.float32]] = [{} for _ in range(size)]
        self._csr: CSRArrays | None = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(size={self.size}, nnz={self.nnz})"

    @property
    def nnz(self) -> int:
        """Number of stored entries."""
        return sum(len(row) for row in self._rows)

    def add(self, row: int, col: int, value: float) -> None:
        current = self._rows[row].get(col, np.float32(0.0))
        self._rows[row][col] = np.float32(current + np.float32(value))
        self._csr = None

    def set(self, row: int, col: int, value: float) -> None:
        self._rows[row][col] = np.float32(value)
        self._csr = None

    def clear_row(self, row: int) -> None:
        self._rows[row].clear()
        self._csr = None

    def get(self, row: int, col: int) -> float:
        return float(self._rows[row].get(col, 0.0))

    def get_row(self, row: int) -> Dict[int, float]:
        """Copy of the row as ``{column: value}``."""
        return {col: float(val) for col, val in self._rows[row].items()}

    def is_row_empty(self, row: int) -> bool:
        return not self._rows[row]

    def is_symmetric(self, rtol: float = 1e-6) -> bool:
        """Check A[i, j] == A[j, i] for every stored entry (relative tolerance)."""
        for i, row in enumerate(self._rows):
            for j, value in row.items():
                other = self._rows[j].get(i, np.float32(0.0))
                if abs(float(value) - float(other)) > rtol * max(abs(float(value)), abs(float(other))):
                    return False
        return True

    def to_scipy(self) -> sp.sparse.csr_matrix:
        """Convert to a scipy CSR matrix (float32, sorted indices)."""
        rows: list[int] = []
        cols: list[int] = []
        vals: list[float] = []
        for i, row in enumerate(self._rows):
            for j, value in row.items():
                rows.append(i)
                cols.append(j)
                vals.append(value)

        matrix = sp.sparse.coo_matrix(
            (np.asarray(vals, dtype=np.float32), (np.asarray(rows, dtype=np.int64), np.asarray(cols, dtype=np.int64))),
            shape=(self.size, self.size),
            dtype=np.float32,
        ).tocsr()
        matrix.sort_indices()
        return matrix

    def to_csr(self) -> CSRArrays:
        """CSR arrays of the matrix, cached until the next modification."""
        if self._csr is None:
            matrix = self.to_scipy()
            self._csr = CSRArrays(
                indptr=np.ascontiguousarray(matrix.indptr, dtype=np.int64),
                indices=np.ascontiguousarray(matrix.indices, dtype=np.int64),
                data=np.ascontiguousarray(matrix.data, dtype=np.float32),
            )
        return self._csr

    def multiply(self, vector: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """
        Matrix-vector product A·x.

        Rows are computed in parallel; each row is accumulated in double
        precision.
        """
        x = np.ascontiguousarray(vector, dtype=np.float64)
        if x.shape != (self.size,):
            raise ValueError(f"Vector of shape {x.shape} does not match matrix size {self.size}.")
        out = np.zeros(self.size, dtype=np.float64)
        if self.size == 0:
            return out
        csr = self.to_csr()
        csr_matvec(csr.indptr, csr.indices, csr.data, x, out)
        return out
