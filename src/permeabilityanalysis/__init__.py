"""
Absolute permeability of pore-network models.

Typical use:

    from permeabilityanalysis import PoreNetwork, PermeabilityOptions, calculate_permeability

    network = PoreNetwork.from_dict(data)
    results = calculate_permeability(network, PermeabilityOptions(axis="z"))
"""
from permeabilityanalysis.exceptions import DeviceError, NetworkError, PermeabilityError
from permeabilityanalysis.model.network import Pore, PoreNetwork, Throat
from permeabilityanalysis.model.options import (
    ConfiningPressureOptions,
    Engine,
    FlowAxis,
    PermeabilityOptions,
    SolverSettings,
)
from permeabilityanalysis.model.results import EngineResult, FlowData, PermeabilityResults
from permeabilityanalysis.solvers.solver import PermeabilitySolver, ResultCache, calculate_permeability

__all__ = [
    "ConfiningPressureOptions",
    "DeviceError",
    "Engine",
    "EngineResult",
    "FlowAxis",
    "FlowData",
    "NetworkError",
    "PermeabilityError",
    "PermeabilityOptions",
    "PermeabilityResults",
    "PermeabilitySolver",
    "Pore",
    "PoreNetwork",
    "ResultCache",
    "SolverSettings",
    "Throat",
    "calculate_permeability",
]
