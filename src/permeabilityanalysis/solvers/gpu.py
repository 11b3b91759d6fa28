"""
GPU Conjugate Gradient (CuPy)
=============================
CUDA kernels compiled once per `DeviceContext` through CuPy's `RawModule`:

- ``spmv_csr``: one thread per CSR row, accumulated in double precision.
- ``vector_ops``: element-wise update selected by an op code
  (1 = axpy ``y += a·x``, 2 = scale ``y *= a``, 3 = mask ``y[fixed] = 0``).
- ``dot_product``: per-block shared-memory tree reduction; the partial
  sums are copied back and summed on the host.

Every launch runs on the null stream and is followed by a synchronize.

The context is created explicitly and handed to the solver, and the device
arrays of one solve live in a `DeviceBuffers` block that frees them on exit.
CuPy is an optional dependency (``pip install permeabilityanalysis[gpu]``).
"""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Dict, Optional

import numpy as np

from permeabilityanalysis.config import GPU_BLOCK_SIZE
from permeabilityanalysis.exceptions import DeviceError
from permeabilityanalysis.model.options import SolverSettings
from permeabilityanalysis.model.results import ConvergenceInfo

if TYPE_CHECKING:
    import numpy.typing as npt

    from permeabilityanalysis.analysis.assembler import LinearSystem

logger = logging.getLogger(__name__)

OP_AXPY = 1
OP_SCALE = 2
OP_MASK = 3

CG_KERNEL_SOURCE = r"""
extern "C" __global__
void spmv_csr(
    const long long* indptr,
    const long long* indices,
    const float* data,
    const double* x,
    double* y,
    const int n_rows)
{
    int row = blockIdx.x * blockDim.x + threadIdx.x;
    if (row >= n_rows) return;

    double acc = 0.0;
    for (long long jj = indptr[row]; jj < indptr[row + 1]; ++jj) {
        acc += (double)data[jj] * x[indices[jj]];
    }
    y[row] = acc;
}

extern "C" __global__
void vector_ops(
    double* y,
    const double* x,
    const unsigned char* fixed,
    const double alpha,
    const int op,
    const int n)
{
    int i = blockIdx.x * blockDim.x + threadIdx.x;
    if (i >= n) return;

    if (op == 1) {
        y[i] += alpha * x[i];
    } else if (op == 2) {
        y[i] *= alpha;
    } else if (op == 3) {
        if (fixed[i]) y[i] = 0.0;
    }
}

extern "C" __global__
void dot_product(
    const double* a,
    const double* b,
    double* partial,
    const int n)
{
    extern __shared__ double cache[];
    int tid = threadIdx.x;
    int i = blockIdx.x * blockDim.x + threadIdx.x;

    cache[tid] = (i < n) ? a[i] * b[i] : 0.0;
    __syncthreads();

    for (int s = blockDim.x / 2; s > 0; s >>= 1) {
        if (tid < s) cache[tid] += cache[tid + s];
        __syncthreads();
    }
    if (tid == 0) partial[blockIdx.x] = cache[0];
}
"""


class DeviceBuffers:
    """
    Scoped set of device arrays.

    Used as a context manager; every array is dropped and the device memory
    pool is released when the block exits, whether normally or through an
    exception.
    """

    def __init__(self, device: Any) -> None:
        self._device = device
        self._arrays: Dict[str, Any] = {}
        self.released = False

    def __enter__(self) -> DeviceBuffers:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False

    def __getitem__(self, name: str) -> Any:
        return self._arrays[name]

    def __len__(self) -> int:
        return len(self._arrays)

    def upload(self, name: str, host: npt.ArrayLike, dtype: npt.DTypeLike = np.float64) -> Any:
        """Copy a host array to the device."""
        array = self._device.asarray(host, dtype)
        self._arrays[name] = array
        return array

    def allocate(self, name: str, size: int, dtype: npt.DTypeLike = np.float64) -> Any:
        """Allocate a zero-filled device array."""
        array = self._device.zeros(size, dtype)
        self._arrays[name] = array
        return array

    def release(self) -> None:
        if self.released:
            return
        self._arrays.clear()
        self._device.free_memory()
        self.released = True


class DeviceContext:
    """
    CUDA device, compiled CG kernels and launch configuration.

    Raises:
        DeviceError: CuPy is missing, no device is available or the kernels
            fail to compile.
    """

    def __init__(self, device_id: int = 0, block_size: int = GPU_BLOCK_SIZE) -> None:
        if block_size <= 0 or block_size & (block_size - 1):
            raise ValueError(f"Block size must be a power of two, got {block_size}.")
        try:
            import cupy as cp
        except ImportError as e:
            raise DeviceError("CuPy is not installed; install the 'gpu' extra to solve on the GPU.") from e

        self._cp = cp
        self.block_size = block_size
        try:
            self._device = cp.cuda.Device(device_id)
            self._device.use()
            module = cp.RawModule(code=CG_KERNEL_SOURCE)
            self._spmv = module.get_function("spmv_csr")
            self._vector_ops = module.get_function("vector_ops")
            self._dot = module.get_function("dot_product")
            self.name = cp.cuda.runtime.getDeviceProperties(device_id)["name"].decode()
        except Exception as e:
            raise DeviceError(f"Could not initialize GPU device {device_id}: {e}") from e

        self._closed = False
        logger.info(f"GPU device ready: {self.name} (block size {block_size})")

    def __enter__(self) -> DeviceContext:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', block_size={self.block_size})"

    def close(self) -> None:
        if not self._closed:
            self.free_memory()
            self._closed = True

    def buffers(self) -> DeviceBuffers:
        return DeviceBuffers(self)

    # ---- memory ----

    def asarray(self, host: npt.ArrayLike, dtype: npt.DTypeLike = np.float64) -> Any:
        return self._cp.asarray(np.ascontiguousarray(host, dtype=dtype))

    def zeros(self, size: int, dtype: npt.DTypeLike = np.float64) -> Any:
        return self._cp.zeros(size, dtype=dtype)

    def to_host(self, array: Any) -> npt.NDArray[Any]:
        return self._cp.asnumpy(array)

    def free_memory(self) -> None:
        self._cp.get_default_memory_pool().free_all_blocks()

    # ---- kernels ----

    def _grid(self, n: int) -> tuple[int]:
        return ((n + self.block_size - 1) // self.block_size,)

    def _synchronize(self) -> None:
        self._cp.cuda.Stream.null.synchronize()

    def spmv(self, indptr: Any, indices: Any, data: Any, x: Any, out: Any) -> None:
        n = out.shape[0]
        self._spmv(self._grid(n), (self.block_size,), (indptr, indices, data, x, out, np.int32(n)))
        self._synchronize()

    def _vector_op(self, y: Any, x: Any, fixed: Any, alpha: float, op: int) -> None:
        n = y.shape[0]
        self._vector_ops(
            self._grid(n), (self.block_size,),
            (y, x, fixed, np.float64(alpha), np.int32(op), np.int32(n)),
        )
        self._synchronize()

    def axpy(self, y: Any, x: Any, alpha: float) -> None:
        """y += alpha·x"""
        self._vector_op(y, x, y, alpha, OP_AXPY)

    def scale(self, y: Any, alpha: float) -> None:
        """y *= alpha"""
        self._vector_op(y, y, y, alpha, OP_SCALE)

    def mask(self, y: Any, fixed: Any) -> None:
        """y[fixed] = 0 (`fixed` is a uint8 array)."""
        self._vector_op(y, y, fixed, 0.0, OP_MASK)

    def dot(self, a: Any, b: Any) -> float:
        n = a.shape[0]
        grid = self._grid(n)
        partial = self._cp.zeros(grid[0], dtype=np.float64)
        self._dot(grid, (self.block_size,), (a, b, partial, np.int32(n)), shared_mem=self.block_size * 8)
        self._synchronize()
        return float(self._cp.asnumpy(partial).sum())


def gpu_conjugate_gradient(
    system: LinearSystem,
    settings: Optional[SolverSettings] = None,
    device: Optional[DeviceContext] = None,
) -> tuple[npt.NDArray[np.float64], ConvergenceInfo]:
    """
    Projected Conjugate Gradient on the device.

    Runs the same iteration as the CPU solver. Numerical trouble (breakdown,
    iteration cap) is logged and reported in the `ConvergenceInfo`; device
    failures raise and are handled by the caller.

    Raises:
        DeviceError: No device was given or the device produced non-finite values.
    """
    if device is None:
        raise DeviceError("No GPU device context was provided.")
    settings = settings or SolverSettings()

    n = system.size
    if n == 0:
        return np.zeros(0, dtype=np.float64), ConvergenceInfo(converged=True, backend="gpu")

    csr = system.matrix.to_csr()
    with device.buffers() as buffers:
        indptr = buffers.upload("indptr", csr.indptr, np.int64)
        indices = buffers.upload("indices", csr.indices, np.int64)
        data = buffers.upload("data", csr.data, np.float32)
        fixed = buffers.upload("fixed", system.fixed, np.uint8)

        x = buffers.allocate("x", n)
        r = buffers.upload("r", system.rhs, np.float64)
        p = buffers.upload("p", system.rhs, np.float64)
        ap = buffers.allocate("ap", n)

        rr = device.dot(r, r)
        residual = math.sqrt(rr)
        info: Optional[ConvergenceInfo] = None
        if residual < settings.tolerance:
            info = ConvergenceInfo(iterations=0, residual_norm=residual, converged=True, backend="gpu")

        iteration = 0
        while info is None and iteration < settings.max_iterations:
            iteration += 1
            device.spmv(indptr, indices, data, p, ap)

            curvature = device.dot(p, ap)
            direction_norm = device.dot(p, p)
            if not math.isfinite(curvature) or not math.isfinite(direction_norm):
                raise DeviceError(f"Non-finite values on the device at iteration {iteration}.")
            if direction_norm <= 0.0 or abs(curvature) < settings.breakdown_tolerance * direction_norm:
                logger.warning(f"GPU CG breakdown at iteration {iteration} (p·Ap = {curvature:.3e}); "
                               f"returning current iterate, residual {residual:.3e}.")
                info = ConvergenceInfo(
                    iterations=iteration - 1, residual_norm=residual, converged=False, breakdown=True, backend="gpu"
                )
                break

            alpha = rr / curvature
            device.axpy(x, p, alpha)
            device.axpy(r, ap, -alpha)

            rr_new = device.dot(r, r)
            residual = math.sqrt(rr_new)

            if settings.log_interval and iteration % settings.log_interval == 0:
                logger.debug(f"GPU CG iteration {iteration}: residual {residual:.3e}")

            if residual < settings.tolerance:
                logger.debug(f"GPU CG converged in {iteration} iterations (residual {residual:.3e})")
                info = ConvergenceInfo(iterations=iteration, residual_norm=residual, converged=True, backend="gpu")
                break

            # p = r + beta·p, restricted to the free unknowns
            device.scale(p, rr_new / rr)
            device.axpy(p, r, 1.0)
            device.mask(p, fixed)
            rr = rr_new

        if info is None:
            logger.warning(f"GPU CG did not converge within {settings.max_iterations} iterations "
                           f"(residual {residual:.3e}); using best-effort solution.")
            info = ConvergenceInfo(
                iterations=settings.max_iterations, residual_norm=residual, converged=False, backend="gpu"
            )

        pressures = np.asarray(device.to_host(x), dtype=np.float64)

    if not np.all(np.isfinite(pressures)):
        raise DeviceError("GPU solve produced non-finite pressures.")
    return pressures, info
