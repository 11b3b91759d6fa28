"""
Flow & Permeability Evaluator
=============================
Turns a solved pressure field into the total inlet flow and Darcy's law
permeability,

    k = Q μ L / (A ΔP)        [m²]

reported in millidarcy.
"""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Dict

import numpy as np

from permeabilityanalysis.analysis.boundary import BoundaryPores
from permeabilityanalysis.model.network import PoreNetwork
from permeabilityanalysis.utils import square_meters_to_millidarcy

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


def total_flow(
    network: PoreNetwork,
    conductances: npt.NDArray[np.float64],
    pressures: npt.NDArray[np.float64],
    boundary: BoundaryPores,
) -> float:
    """
    Volumetric flow rate through the inlet face (m³/s).

    Sums g·(p_inlet - p_other) over every throat with exactly one end in the
    inlet set. Throats between two inlet pores carry no net flow.
    """
    flow = 0.0
    inlets = boundary.inlets
    for k, throat in enumerate(network.throats):
        g = conductances[k]
        if g <= 0.0:
            continue
        in1 = throat.pore1_id in inlets
        in2 = throat.pore2_id in inlets
        if in1 == in2:
            continue
        if in1:
            flow += g * (pressures[throat.pore1_id] - pressures[throat.pore2_id])
        else:
            flow += g * (pressures[throat.pore2_id] - pressures[throat.pore1_id])
    return float(flow)


def throat_flow_rates(
    network: PoreNetwork,
    conductances: npt.NDArray[np.float64],
    pressures: npt.NDArray[np.float64],
) -> Dict[int, float]:
    """Absolute flow rate |g·(p1 - p2)| of every throat, by throat id."""
    return {
        throat.id: abs(float(conductances[k] * (pressures[throat.pore1_id] - pressures[throat.pore2_id])))
        for k, throat in enumerate(network.throats)
    }


def permeability_from_flow(
    flow_rate: float,
    viscosity_pa_s: float,
    length: float,
    area: float,
    pressure_drop: float,
) -> float:
    """
    Darcy permeability in millidarcy.

    Degenerate inputs (zero area or pressure drop) and non-finite or negative
    results give 0.
    """
    if area <= 0.0 or pressure_drop <= 0.0:
        return 0.0
    k_m2 = flow_rate * viscosity_pa_s * length / (area * pressure_drop)
    k_md = square_meters_to_millidarcy(k_m2)
    if not math.isfinite(k_md) or k_md < 0.0:
        logger.warning(f"Permeability evaluated to {k_md} mD; reporting 0.")
        return 0.0
    return k_md


def tortuosity_correction(permeability: float, tortuosity: float) -> float:
    """k / τ². A tortuosity below 1 is treated as 1."""
    tau = max(1.0, tortuosity)
    return permeability / (tau * tau)
