"""
Result Data Model
=================
Everything the solver produces is returned by value in these containers.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from permeabilityanalysis.model.options import Engine, FlowAxis


@dataclass(frozen=True)
class ConvergenceInfo:
    """Outcome of one linear solve."""
    iterations: int = 0
    residual_norm: float = 0.0
    converged: bool = False
    breakdown: bool = False
    backend: str = "cpu"


@dataclass
class FlowData:
    """Pore pressures (Pa) by pore id and absolute throat flow rates (m³/s) by throat id."""
    pore_pressures: Dict[int, float] = field(default_factory=dict)
    throat_flow_rates: Dict[int, float] = field(default_factory=dict)


@dataclass
class EngineResult:
    """Detailed outcome of one conductance engine."""
    engine: Engine
    uncorrected: float = 0.0  # mD
    corrected: float = 0.0  # mD
    total_flow_rate: float = 0.0  # m³/s
    model_length: float = 0.0  # m
    cross_section: float = 0.0  # m²
    inlet_count: int = 0
    outlet_count: int = 0
    elapsed: float = 0.0  # s
    convergence: Optional[ConvergenceInfo] = None
    flow: FlowData = field(default_factory=FlowData)


@dataclass
class PermeabilityResults:
    """
    Output of a permeability calculation.

    The six scalar fields (uncorrected / tortuosity-corrected for each engine)
    are in millidarcy and rounded to single precision. Engines that were not
    selected (or found no flow path) stay at zero.
    """
    darcy_uncorrected: float = 0.0
    darcy_corrected: float = 0.0
    entrance_uncorrected: float = 0.0
    entrance_corrected: float = 0.0
    three_resistor_uncorrected: float = 0.0
    three_resistor_corrected: float = 0.0
    tortuosity: float = 1.0

    viscosity_cp: float = 0.0
    pressure_drop: float = 0.0  # Pa
    voxel_size: float = 0.0  # um
    axis: Optional[FlowAxis] = None
    pore_count: int = 0
    throat_count: int = 0

    confining_pressure: float = 0.0  # MPa
    pore_reduction: float = 0.0  # %
    throat_reduction: float = 0.0  # %
    closed_throats: int = 0

    engines: Dict[Engine, EngineResult] = field(default_factory=dict)

    def uncorrected(self, engine: Engine) -> float:
        return getattr(self, f"{_FIELD_PREFIX[engine]}_uncorrected")

    def corrected(self, engine: Engine) -> float:
        return getattr(self, f"{_FIELD_PREFIX[engine]}_corrected")

    def set_engine(self, result: EngineResult) -> None:
        """Store an engine outcome and mirror it into the scalar fields."""
        self.engines[result.engine] = result
        prefix = _FIELD_PREFIX[result.engine]
        setattr(self, f"{prefix}_uncorrected", result.uncorrected)
        setattr(self, f"{prefix}_corrected", result.corrected)

    def values(self) -> Dict[str, float]:
        """The six permeability fields plus the tortuosity."""
        return {
            "darcy_uncorrected": self.darcy_uncorrected,
            "darcy_corrected": self.darcy_corrected,
            "entrance_uncorrected": self.entrance_uncorrected,
            "entrance_corrected": self.entrance_corrected,
            "three_resistor_uncorrected": self.three_resistor_uncorrected,
            "three_resistor_corrected": self.three_resistor_corrected,
            "tortuosity": self.tortuosity,
        }

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = self.values()
        d.update({
            "viscosity_cp": self.viscosity_cp,
            "pressure_drop": self.pressure_drop,
            "voxel_size": self.voxel_size,
            "axis": self.axis.value if self.axis else None,
            "pore_count": self.pore_count,
            "throat_count": self.throat_count,
            "confining_pressure": self.confining_pressure,
            "pore_reduction": self.pore_reduction,
            "throat_reduction": self.throat_reduction,
            "closed_throats": self.closed_throats,
        })
        return d


_FIELD_PREFIX: Dict[Engine, str] = {
    Engine.DARCY: "darcy",
    Engine.ENTRANCE: "entrance",
    Engine.THREE_RESISTOR: "three_resistor",
}
