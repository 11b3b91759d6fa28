from __future__ import annotations

from collections import OrderedDict
import copy
import logging
import time
from typing import TYPE_CHECKING, Optional

import numpy as np

from permeabilityanalysis.analysis.assembler import assemble_system, reference_conductance
from permeabilityanalysis.analysis.boundary import BoundaryPores, classify_boundary
from permeabilityanalysis.analysis.conductance import conductance_model, throat_conductances
from permeabilityanalysis.analysis.flow import (
    permeability_from_flow,
    throat_flow_rates,
    tortuosity_correction,
    total_flow,
)
from permeabilityanalysis.analysis.stress import StressedGeometry, apply_confining_pressure
from permeabilityanalysis.analysis.tortuosity import geometric_tortuosity
from permeabilityanalysis.config import SUSPICIOUS_HIGH_MILLIDARCY, SUSPICIOUS_LOW_MILLIDARCY
from permeabilityanalysis.model.network import PoreNetwork
from permeabilityanalysis.model.options import Engine, PermeabilityOptions, SolverSettings
from permeabilityanalysis.model.results import EngineResult, FlowData, PermeabilityResults
from permeabilityanalysis.solvers.cg import conjugate_gradient
from permeabilityanalysis.solvers.gpu import DeviceContext, gpu_conjugate_gradient
from permeabilityanalysis.utils import centipoise_to_pascal_seconds, to_single

if TYPE_CHECKING:
    import numpy.typing as npt

    from permeabilityanalysis.analysis.assembler import LinearSystem
    from permeabilityanalysis.model.results import ConvergenceInfo

logger = logging.getLogger(__name__)


def solve_pressures(
    system: LinearSystem,
    settings: Optional[SolverSettings] = None,
    device: Optional[DeviceContext] = None,
    use_gpu: bool = False,
) -> tuple[npt.NDArray[np.float64], ConvergenceInfo]:
    """
    Solve the pressure system on the requested backend.

    With `use_gpu`, the given device is used (or a temporary one is opened).
    Any GPU failure is logged and the CPU solver takes over.
    """
    settings = settings or SolverSettings()
    if use_gpu:
        try:
            if device is None:
                with DeviceContext() as temporary:
                    return gpu_conjugate_gradient(system, settings, temporary)
            return gpu_conjugate_gradient(system, settings, device)
        except Exception as e:
            logger.warning(f"GPU solve failed, falling back to CPU: {e}")
    return conjugate_gradient(system, settings)


def _report_missing_flow_path(engine: Engine, boundary: BoundaryPores) -> None:
    if boundary.is_empty:
        logger.warning(f"[{engine.label}] No inlet or outlet pores found along {boundary.axis.name}; "
                       f"permeability is 0.")
    elif boundary.overlapping:
        logger.warning(f"[{engine.label}] Inlet and outlet pores overlap (sample thinner than the boundary "
                       f"band along {boundary.axis.name}); permeability is 0.")
    else:
        logger.warning(f"[{engine.label}] Sample has zero length or cross-section along {boundary.axis.name}; "
                       f"permeability is 0.")


def _run_engine(
    network: PoreNetwork,
    engine: Engine,
    options: PermeabilityOptions,
    settings: SolverSettings,
    boundary: BoundaryPores,
    tortuosity: float,
    geometry: Optional[StressedGeometry],
    device: Optional[DeviceContext],
    use_gpu: bool,
) -> EngineResult:
    start = time.perf_counter()
    label = engine.label
    result = EngineResult(
        engine=engine,
        model_length=boundary.length,
        cross_section=boundary.area,
        inlet_count=len(boundary.inlets),
        outlet_count=len(boundary.outlets),
    )

    logger.info(f"[{label}] Found {result.inlet_count} inlet and {result.outlet_count} outlet pores")
    logger.info(f"[{label}] Model length: {boundary.length * 1e6:.2f} um, "
                f"cross-section: {boundary.area * 1e12:.2f} um²")

    if not boundary.has_flow_path:
        _report_missing_flow_path(engine, boundary)
        result.elapsed = time.perf_counter() - start
        return result

    viscosity = centipoise_to_pascal_seconds(options.viscosity_cp)
    model = conductance_model(engine)
    conductances = throat_conductances(network, model, viscosity, geometry)
    if not np.any(conductances > 0.0):
        logger.warning(f"[{label}] No throat conducts; permeability is 0.")
        result.elapsed = time.perf_counter() - start
        return result

    system = assemble_system(
        network,
        model,
        boundary,
        viscosity,
        options.inlet_pressure,
        options.outlet_pressure,
        scale=reference_conductance(conductances),
        geometry=geometry,
        conductances=conductances,
    )
    pressures, convergence = solve_pressures(system, settings, device=device, use_gpu=use_gpu)

    flow_rate = total_flow(network, conductances, pressures, boundary)
    uncorrected = permeability_from_flow(
        flow_rate, viscosity, boundary.length, boundary.area, options.pressure_drop
    )
    corrected = tortuosity_correction(uncorrected, tortuosity)

    result.uncorrected = to_single(uncorrected)
    result.corrected = to_single(corrected)
    result.total_flow_rate = flow_rate
    result.convergence = convergence
    result.flow = FlowData(
        pore_pressures={pore.id: float(pressures[pore.id]) for pore in network.pores},
        throat_flow_rates=throat_flow_rates(network, conductances, pressures),
    )
    result.elapsed = time.perf_counter() - start

    logger.info(f"[{label}] Total flow rate: {flow_rate:.3e} m³/s")
    logger.info(f"[{label}] Permeability: {result.uncorrected:.3f} mD (uncorrected), "
                f"{result.corrected:.3f} mD (tortuosity-corrected)")
    logger.info(f"[{label}] Finished in {result.elapsed * 1000:.0f} ms "
                f"({convergence.iterations} CG iterations on {convergence.backend})")
    return result


def _check_results(results: PermeabilityResults) -> None:
    """Warn about permeabilities outside the physically plausible range."""
    for engine, result in results.engines.items():
        k = result.uncorrected
        if k > SUSPICIOUS_HIGH_MILLIDARCY:
            logger.warning(f"[{engine.label}] Unreasonably high permeability: {k:.3e} mD. "
                           f"Check the voxel size and the pore radii.")
        elif 0.0 < k < SUSPICIOUS_LOW_MILLIDARCY:
            logger.warning(f"[{engine.label}] Unreasonably low permeability: {k:.3e} mD. "
                           f"Check the network connectivity.")


def calculate_permeability(
    network: PoreNetwork,
    options: Optional[PermeabilityOptions] = None,
    settings: Optional[SolverSettings] = None,
    device: Optional[DeviceContext] = None,
) -> PermeabilityResults:
    """
    Absolute permeability of a pore network.

    Pure function of its inputs: the network is not modified and nothing is
    cached between calls. Numerically degenerate input gives zeros and log
    messages, never an exception.

    Args:
        network: The pore network.
        options: What to compute (axis, fluid, engines, backend).
        settings: Linear solver configuration.
        device: GPU device context to reuse; opened for this call when
            `options.use_gpu` is set and none is given.

    Returns:
        A new `PermeabilityResults`.
    """
    options = options or PermeabilityOptions()
    settings = settings or SolverSettings()

    results = PermeabilityResults(
        viscosity_cp=options.viscosity_cp,
        pressure_drop=options.pressure_drop,
        voxel_size=network.voxel_size,
        axis=options.axis,
        pore_count=network.number_of_pores,
        throat_count=network.number_of_throats,
    )

    logger.info(f"Permeability calculation for '{network.name}': {network.number_of_pores} pores, "
                f"{network.number_of_throats} throats, voxel size {network.voxel_size} um, "
                f"axis {options.axis.name}, viscosity {options.viscosity_cp} cP")

    if network.is_empty:
        logger.warning("Network has no pores or no throats; all permeabilities are 0.")
        return results

    engines = options.selected_engines()
    if not engines:
        logger.warning("No engine selected; nothing to compute.")
        return results

    boundary = classify_boundary(network, options.axis)

    if options.correct_for_tortuosity:
        results.tortuosity = geometric_tortuosity(network, options.axis, boundary)
        logger.info(f"Geometric tortuosity: {results.tortuosity:.3f}")

    geometry: Optional[StressedGeometry] = None
    if options.confining.active:
        geometry = apply_confining_pressure(network, options.confining)
        results.confining_pressure = options.confining.pressure_mpa
        results.pore_reduction = geometry.pore_reduction * 100.0
        results.throat_reduction = geometry.throat_reduction * 100.0
        results.closed_throats = geometry.closed_throats
        if geometry.all_closed:
            logger.error(f"All throats are closed at {options.confining.pressure_mpa} MPa confining pressure; "
                         f"permeability is 0.")
            return results

    use_gpu = options.use_gpu
    owned_device: Optional[DeviceContext] = None
    if use_gpu and device is None:
        try:
            owned_device = DeviceContext()
            device = owned_device
        except Exception as e:
            logger.warning(f"GPU unavailable, using the CPU solver: {e}")
            use_gpu = False

    try:
        for engine in engines:
            results.set_engine(_run_engine(
                network, engine, options, settings, boundary, results.tortuosity, geometry, device, use_gpu
            ))
    finally:
        if owned_device is not None:
            owned_device.close()

    _check_results(results)
    logger.info("Permeability calculation complete.")
    return results


class ResultCache:
    """
    Caller-side memo of permeability results.

    Keyed by ``(network.fingerprint(), options, settings)``; a changed network
    has a new fingerprint, so stale entries are never returned. Stored and
    returned results are copies.
    """

    def __init__(self, maxsize: int = 32) -> None:
        if maxsize < 1:
            raise ValueError(f"Cache size must be >= 1, got {maxsize}.")
        self.maxsize = maxsize
        self._entries: OrderedDict[tuple, PermeabilityResults] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def key(network: PoreNetwork, options: PermeabilityOptions, settings: SolverSettings) -> tuple:
        return network.fingerprint(), options, settings

    def get(
        self,
        network: PoreNetwork,
        options: PermeabilityOptions,
        settings: Optional[SolverSettings] = None,
    ) -> Optional[PermeabilityResults]:
        key = self.key(network, options, settings or SolverSettings())
        if key not in self._entries:
            return None
        self._entries.move_to_end(key)
        return copy.deepcopy(self._entries[key])

    def put(
        self,
        network: PoreNetwork,
        options: PermeabilityOptions,
        settings: Optional[SolverSettings],
        results: PermeabilityResults,
    ) -> None:
        key = self.key(network, options, settings or SolverSettings())
        self._entries[key] = copy.deepcopy(results)
        self._entries.move_to_end(key)
        while len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def get_or_compute(
        self,
        network: PoreNetwork,
        options: Optional[PermeabilityOptions] = None,
        settings: Optional[SolverSettings] = None,
        device: Optional[DeviceContext] = None,
    ) -> PermeabilityResults:
        options = options or PermeabilityOptions()
        settings = settings or SolverSettings()
        cached = self.get(network, options, settings)
        if cached is not None:
            logger.debug(f"Using cached permeability for '{network.name}'")
            return cached
        results = calculate_permeability(network, options, settings, device)
        self.put(network, options, settings, results)
        return results


class PermeabilitySolver:
    """
    Class wrapper around `calculate_permeability`.
    """

    def __init__(
        self,
        settings: Optional[SolverSettings] = None,
        device: Optional[DeviceContext] = None,
        cache: Optional[ResultCache] = None,
    ) -> None:
        """
        Initialize the solver.

        Args:
            settings: Linear solver configuration shared by every solve.
            device: GPU device context reused by every GPU solve.
            cache: Optional result cache.
        """
        self.settings = settings or SolverSettings()
        self.device = device
        self.cache = cache

    def solve(self, network: PoreNetwork, options: Optional[PermeabilityOptions] = None) -> PermeabilityResults:
        options = options or PermeabilityOptions()
        if self.cache is not None:
            return self.cache.get_or_compute(network, options, self.settings, self.device)
        return calculate_permeability(network, options, self.settings, self.device)
