"""
Solver Options
==============
Value types describing WHAT to compute (PermeabilityOptions) and HOW the
linear solver behaves (SolverSettings). All of them are frozen dataclasses,
so they can be used as cache keys.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import StrEnum
from typing import Any, Dict
import math

from permeabilityanalysis.config import (
    DEFAULT_BREAKDOWN_TOLERANCE,
    DEFAULT_LOG_INTERVAL,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TOLERANCE,
)


class FlowAxis(StrEnum):
    X = "x"
    Y = "y"
    Z = "z"

    @property
    def index(self) -> int:
        """Column of the axis in a position array."""
        return "xyz".index(self.value)

    @property
    def transverse(self) -> tuple[int, int]:
        """Columns of the two axes spanning the cross-section."""
        return tuple(i for i in range(3) if i != self.index)  # type: ignore[return-value]


class Engine(StrEnum):
    """Physical conductance model used to build the flow network."""
    DARCY = "darcy"
    ENTRANCE = "entrance"
    THREE_RESISTOR = "three-resistor"

    @property
    def label(self) -> str:
        return ENGINE_LABELS[self]


ENGINE_LABELS: Dict[Engine, str] = {
    Engine.DARCY: "Darcy",
    Engine.ENTRANCE: "Entrance-corrected",
    Engine.THREE_RESISTOR: "Three-resistor",
}


@dataclass(frozen=True)
class ConfiningPressureOptions:
    """
    Stress-dependent narrowing of pores and throats.

    Compressibilities are in 1/MPa (typical sandstone values by default);
    throats are more compressible than pore bodies.
    """
    enabled: bool = False
    pressure_mpa: float = 0.0
    pore_compressibility: float = 0.015
    throat_compressibility: float = 0.025

    def __post_init__(self) -> None:
        if self.pressure_mpa < 0.0:
            raise ValueError(f"Confining pressure must be >= 0 MPa, got {self.pressure_mpa}.")
        if self.pore_compressibility < 0.0 or self.throat_compressibility < 0.0:
            raise ValueError("Compressibilities must be >= 0.")

    @property
    def active(self) -> bool:
        return self.enabled and self.pressure_mpa > 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> ConfiningPressureOptions:
        return ConfiningPressureOptions(**data)


@dataclass(frozen=True)
class PermeabilityOptions:
    """
    Input of a permeability calculation.

    Attributes:
        axis: Macroscopic flow direction.
        viscosity_cp: Dynamic viscosity of the fluid in centipoise (1.0 ~ water).
        darcy, entrance, three_resistor: Which conductance engines to run.
        use_gpu: Solve on the GPU (falls back to CPU on any failure).
        correct_for_tortuosity: Compute the geometric tortuosity and divide
            the permeability by its square.
        inlet_pressure, outlet_pressure: Dirichlet pressures in Pa.
        confining: Confining pressure settings.
    """
    axis: FlowAxis = FlowAxis.Z
    viscosity_cp: float = 1.0
    darcy: bool = True
    entrance: bool = False
    three_resistor: bool = False
    use_gpu: bool = False
    correct_for_tortuosity: bool = True
    inlet_pressure: float = 1.0
    outlet_pressure: float = 0.0
    confining: ConfiningPressureOptions = field(default_factory=ConfiningPressureOptions)

    def __post_init__(self) -> None:
        # Accept plain strings ("x", "Z") for the axis
        if not isinstance(self.axis, FlowAxis):
            object.__setattr__(self, "axis", FlowAxis(str(self.axis).lower()))
        if not math.isfinite(self.viscosity_cp) or self.viscosity_cp <= 0.0:
            raise ValueError(f"Viscosity must be positive, got {self.viscosity_cp} cP.")
        if not self.inlet_pressure > self.outlet_pressure:
            raise ValueError(
                f"Inlet pressure ({self.inlet_pressure} Pa) must exceed outlet pressure ({self.outlet_pressure} Pa)."
            )

    @property
    def pressure_drop(self) -> float:
        return self.inlet_pressure - self.outlet_pressure

    def selected_engines(self) -> tuple[Engine, ...]:
        """Enabled engines in the fixed order Darcy, entrance, three-resistor."""
        flags = {
            Engine.DARCY: self.darcy,
            Engine.ENTRANCE: self.entrance,
            Engine.THREE_RESISTOR: self.three_resistor,
        }
        return tuple(engine for engine in Engine if flags[engine])

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["axis"] = self.axis.value
        return d

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> PermeabilityOptions:
        data = dict(data)
        confining = data.pop("confining", None)
        return PermeabilityOptions(
            confining=ConfiningPressureOptions.from_dict(confining) if confining else ConfiningPressureOptions(),
            **data,
        )


@dataclass(frozen=True)
class SolverSettings:
    """
    Conjugate Gradient configuration.

    `max_iterations` is the caller's handle on latency: the solver has no
    timeout or cancellation of its own.
    """
    tolerance: float = DEFAULT_TOLERANCE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    breakdown_tolerance: float = DEFAULT_BREAKDOWN_TOLERANCE
    log_interval: int = DEFAULT_LOG_INTERVAL

    def __post_init__(self) -> None:
        if self.tolerance <= 0.0:
            raise ValueError(f"Tolerance must be positive, got {self.tolerance}.")
        if self.max_iterations < 1:
            raise ValueError(f"Iteration cap must be >= 1, got {self.max_iterations}.")
        if self.breakdown_tolerance < 0.0:
            raise ValueError(f"Breakdown tolerance must be >= 0, got {self.breakdown_tolerance}.")
