"""
Hydraulic Conductance Models
============================
One conductance model per `Engine`. All of them start from Hagen-Poiseuille,

    g = π r⁴ / (8 μ L)        [m³/(Pa·s)]

and each one adds resistance on top of the previous one, so for the same
throat: Darcy >= entrance-corrected >= three-resistor.

The three-resistor model is a network analogy (pore body, throat, pore body
in series). It does not solve a lattice-Boltzmann problem and is not
assumed to be more accurate than the other two.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
import math
from typing import TYPE_CHECKING, Dict, Optional

import numpy as np

from permeabilityanalysis.config import (
    ENTRANCE_LENGTH_COEFFICIENT,
    FLUID_DENSITY,
    REFERENCE_VELOCITY,
)
from permeabilityanalysis.model.network import PoreNetwork
from permeabilityanalysis.model.options import Engine
from permeabilityanalysis.utils import distance

if TYPE_CHECKING:
    import numpy.typing as npt

    from permeabilityanalysis.analysis.stress import StressedGeometry


def hagen_poiseuille(radius: float, length: float, viscosity: float) -> float:
    """
    Conductance of a cylindrical tube.

    Args:
        radius: Tube radius (m).
        length: Tube length (m).
        viscosity: Dynamic viscosity (Pa·s).

    Returns:
        Conductance in m³/(Pa·s); zero for a degenerate tube.
    """
    if radius <= 0.0 or length <= 0.0:
        return 0.0
    return math.pi * radius ** 4 / (8.0 * viscosity * length)


class ConductanceModel(ABC):
    """
    Abstract base class for throat conductance models.

    All lengths and radii are in meters, the viscosity in Pa·s.
    """
    engine: Engine

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(engine={self.engine.name})"

    @abstractmethod
    def conductance(
        self,
        length: float,
        pore1_radius: float,
        pore2_radius: float,
        throat_radius: float,
        viscosity: float,
    ) -> float:
        """Conductance of one throat between two pores whose centers are `length` apart."""
        pass


class DarcyConductance(ConductanceModel):
    """Plain Hagen-Poiseuille over the pore-center distance."""
    engine = Engine.DARCY

    def conductance(self, length, pore1_radius, pore2_radius, throat_radius, viscosity) -> float:
        return hagen_poiseuille(throat_radius, length, viscosity)


class EntranceConductance(ConductanceModel):
    """
    Hagen-Poiseuille with an entrance length and a constriction factor.

    L_eff = (L + 0.06·r_t·Re) · (1 + 0.5·(r_t / min(r_p1, r_p2))²)

    with the Reynolds proxy Re = 2·r_t·ρ·v / μ (water, 1 m/s).
    """
    engine = Engine.ENTRANCE

    @staticmethod
    def effective_length(length: float, pore1_radius: float, pore2_radius: float,
                         throat_radius: float, viscosity: float) -> float:
        reynolds = 2.0 * throat_radius * FLUID_DENSITY * REFERENCE_VELOCITY / viscosity
        effective = length + ENTRANCE_LENGTH_COEFFICIENT * throat_radius * reynolds

        smallest_pore = min(pore1_radius, pore2_radius)
        if smallest_pore > 0.0:
            effective *= 1.0 + 0.5 * (throat_radius / smallest_pore) ** 2
        return effective

    def conductance(self, length, pore1_radius, pore2_radius, throat_radius, viscosity) -> float:
        if length <= 0.0 or throat_radius <= 0.0:
            return 0.0
        effective = self.effective_length(length, pore1_radius, pore2_radius, throat_radius, viscosity)
        return hagen_poiseuille(throat_radius, effective, viscosity)


class ThreeResistorConductance(ConductanceModel):
    """
    Pore body, throat and pore body as resistors in series:

        1/g = J1/g_p1 + 1/g_t + J2/g_p2

    Each pore body is a tube of the pore radius over half the body (the pore
    radius), weighted by the junction loss J = 1 + 0.5·(1 - r_t/r_p)². The
    throat resistor is the entrance-corrected throat. Pores without a body
    (zero radius) add no resistor.
    """
    engine = Engine.THREE_RESISTOR

    def __init__(self) -> None:
        self._throat = EntranceConductance()

    def conductance(self, length, pore1_radius, pore2_radius, throat_radius, viscosity) -> float:
        g_throat = self._throat.conductance(length, pore1_radius, pore2_radius, throat_radius, viscosity)
        if g_throat <= 0.0:
            return 0.0

        resistance = 1.0 / g_throat
        for pore_radius in (pore1_radius, pore2_radius):
            if pore_radius <= 0.0:
                continue
            g_pore = hagen_poiseuille(pore_radius, pore_radius, viscosity)
            junction = 1.0 + 0.5 * (1.0 - throat_radius / pore_radius) ** 2
            resistance += junction / g_pore

        return 1.0 / resistance


_MODELS: Dict[Engine, ConductanceModel] = {
    Engine.DARCY: DarcyConductance(),
    Engine.ENTRANCE: EntranceConductance(),
    Engine.THREE_RESISTOR: ThreeResistorConductance(),
}


def conductance_model(engine: Engine) -> ConductanceModel:
    """Return the conductance model implementing `engine`."""
    return _MODELS[Engine(engine)]


def throat_conductances(
    network: PoreNetwork,
    model: ConductanceModel,
    viscosity: float,
    geometry: Optional[StressedGeometry] = None,
) -> npt.NDArray[np.float64]:
    """
    Conductance of every throat, in throat order.

    Args:
        network: The pore network (voxel units).
        model: Conductance model.
        viscosity: Dynamic viscosity (Pa·s).
        geometry: Optional stress-modified radii replacing the network radii.

    Returns:
        Array of conductances in m³/(Pa·s).
    """
    voxel_m = network.voxel_size_m
    positions = network.positions
    conductances = np.zeros(network.number_of_throats, dtype=np.float64)

    for k, throat in enumerate(network.throats):
        i1 = network.pore_position(throat.pore1_id)
        i2 = network.pore_position(throat.pore2_id)

        if geometry is not None:
            if not geometry.throat_open[k]:
                continue
            r_p1 = geometry.pore_radii[i1]
            r_p2 = geometry.pore_radii[i2]
            r_t = geometry.throat_radii[k]
        else:
            r_p1 = network.pores[i1].radius
            r_p2 = network.pores[i2].radius
            r_t = throat.radius

        length = distance(positions[i1], positions[i2]) * voxel_m
        conductances[k] = model.conductance(
            length, float(r_p1) * voxel_m, float(r_p2) * voxel_m, float(r_t) * voxel_m, viscosity
        )

    return conductances
