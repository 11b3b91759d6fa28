# tests/test_gpu.py
import logging
import sys

import numpy as np
import pytest

from permeabilityanalysis.analysis.assembler import assemble_system, reference_conductance
from permeabilityanalysis.analysis.boundary import classify_boundary
from permeabilityanalysis.analysis.conductance import DarcyConductance, throat_conductances
from permeabilityanalysis.exceptions import DeviceError
from permeabilityanalysis.model.options import Engine, FlowAxis, PermeabilityOptions, SolverSettings
from permeabilityanalysis.solvers.cg import conjugate_gradient
from permeabilityanalysis.solvers.gpu import DeviceBuffers, DeviceContext, gpu_conjugate_gradient
from permeabilityanalysis.solvers.solver import calculate_permeability, solve_pressures

MU = 1e-3


class NumpyDevice:
    """Host-memory stand-in for `DeviceContext` running the same kernel sequence."""

    def __init__(self, block_size=4):
        self.block_size = block_size
        self.released = 0
        self.launches = 0

    def buffers(self):
        return DeviceBuffers(self)

    def asarray(self, host, dtype=np.float64):
        return np.array(host, dtype=dtype)

    def zeros(self, size, dtype=np.float64):
        return np.zeros(size, dtype=dtype)

    def to_host(self, array):
        return np.array(array)

    def free_memory(self):
        self.released += 1

    def spmv(self, indptr, indices, data, x, out):
        self.launches += 1
        for row in range(out.shape[0]):
            cols = slice(indptr[row], indptr[row + 1])
            out[row] = np.dot(data[cols].astype(np.float64), x[indices[cols]])

    def axpy(self, y, x, alpha):
        self.launches += 1
        y += alpha * x

    def scale(self, y, alpha):
        self.launches += 1
        y *= alpha

    def mask(self, y, fixed):
        self.launches += 1
        y[fixed.astype(bool)] = 0.0

    def dot(self, a, b):
        # per-block partial sums, added up on the host
        self.launches += 1
        products = a * b
        partial = [products[i:i + self.block_size].sum() for i in range(0, products.size, self.block_size)]
        return float(np.sum(partial))


class BrokenDevice(NumpyDevice):
    def spmv(self, indptr, indices, data, x, out):
        raise RuntimeError("simulated kernel launch failure")


def _system(network):
    model = DarcyConductance()
    g = throat_conductances(network, model, MU)
    boundary = classify_boundary(network, FlowAxis.Z)
    return assemble_system(network, model, boundary, MU, 1.0, 0.0, scale=reference_conductance(g))


def test_device_sequence_matches_cpu(lattice):
    system = _system(lattice)
    device = NumpyDevice()
    x_gpu, info_gpu = gpu_conjugate_gradient(system, SolverSettings(), device)
    x_cpu, _ = conjugate_gradient(system, SolverSettings())

    assert info_gpu.backend == "gpu"
    assert info_gpu.converged
    assert device.launches > 0
    np.testing.assert_allclose(x_gpu, x_cpu, rtol=1e-5, atol=1e-6)


def test_buffers_are_released_after_solve(make_chain):
    device = NumpyDevice()
    gpu_conjugate_gradient(_system(make_chain(5)), SolverSettings(), device)
    assert device.released == 1


def test_buffers_are_released_when_a_kernel_fails(make_chain):
    device = BrokenDevice()
    with pytest.raises(RuntimeError):
        gpu_conjugate_gradient(_system(make_chain(5)), SolverSettings(), device)
    assert device.released == 1


def test_device_buffers_scope():
    device = NumpyDevice()
    with device.buffers() as buffers:
        buffers.upload("x", [1.0, 2.0])
        buffers.allocate("y", 3)
        assert len(buffers) == 2
        assert buffers["y"].shape == (3,)
    assert buffers.released
    assert len(buffers) == 0
    buffers.release()
    assert device.released == 1


def test_missing_device_raises(make_chain):
    with pytest.raises(DeviceError):
        gpu_conjugate_gradient(_system(make_chain(3)), SolverSettings(), None)


def test_kernel_failure_falls_back_to_cpu(make_chain, caplog):
    system = _system(make_chain(5))
    with caplog.at_level(logging.WARNING, logger="permeabilityanalysis"):
        x, info = solve_pressures(system, SolverSettings(), device=BrokenDevice(), use_gpu=True)
    assert info.backend == "cpu"
    assert info.converged
    np.testing.assert_allclose(x, [1.0, 0.75, 0.5, 0.25, 0.0], atol=1e-6)
    assert "falling back to CPU" in caplog.text


def test_missing_cupy_raises_device_error(monkeypatch):
    monkeypatch.setitem(sys.modules, "cupy", None)
    with pytest.raises(DeviceError):
        DeviceContext()


def test_missing_cupy_falls_back_for_whole_calculation(lattice, monkeypatch, caplog):
    monkeypatch.setitem(sys.modules, "cupy", None)
    with caplog.at_level(logging.WARNING, logger="permeabilityanalysis"):
        results = calculate_permeability(lattice, PermeabilityOptions(use_gpu=True))
    assert results.engines[Engine.DARCY].convergence.backend == "cpu"
    assert results.darcy_uncorrected > 0.0
    assert "GPU unavailable" in caplog.text


def test_injected_device_gives_cpu_results(lattice):
    options = PermeabilityOptions(darcy=True, entrance=True, three_resistor=True)
    cpu = calculate_permeability(lattice, options)
    gpu = calculate_permeability(
        lattice, PermeabilityOptions(darcy=True, entrance=True, three_resistor=True, use_gpu=True),
        device=NumpyDevice(),
    )
    for engine in Engine:
        assert gpu.engines[engine].convergence.backend == "gpu"
        assert gpu.uncorrected(engine) == pytest.approx(cpu.uncorrected(engine), rel=1e-5)
        assert gpu.corrected(engine) == pytest.approx(cpu.corrected(engine), rel=1e-5)


def test_block_size_must_be_power_of_two():
    with pytest.raises(ValueError):
        DeviceContext(block_size=100)


def test_real_cuda_device_matches_cpu(lattice):
    pytest.importorskip("cupy")
    try:
        device = DeviceContext()
    except DeviceError as e:
        pytest.skip(f"No usable CUDA device: {e}")

    system = _system(lattice)
    with device:
        x_gpu, info = gpu_conjugate_gradient(system, SolverSettings(), device)
    x_cpu, _ = conjugate_gradient(system, SolverSettings())
    assert info.backend == "gpu"
    np.testing.assert_allclose(x_gpu, x_cpu, rtol=1e-6, atol=1e-9)
