from __future__ import annotations

import numpy as np

from permeabilityanalysis.config import (
    CENTIPOISE,
    SQUARE_METER_TO_MILLIDARCY,
)


def centipoise_to_pascal_seconds(viscosity: float) -> float:
    """Convert a dynamic viscosity from cP to Pa·s."""
    return viscosity * CENTIPOISE

def square_meters_to_millidarcy(permeability: float) -> float:
    """Convert a permeability from m² to mD."""
    return permeability * SQUARE_METER_TO_MILLIDARCY

def to_single(value: float) -> float:
    """Round a value to single precision (results are reported as float32)."""
    return float(np.float32(value))

def distance(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance between two points."""
    return float(np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)))
