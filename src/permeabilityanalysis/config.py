"""
Configuration & Constants
=========================
This module serves as the central registry for physical constants and solver
defaults.

Why is this file needed?
------------------------
1. Abstraction: It prevents magic numbers (unit factors, clamping bounds,
   tolerances) from being scattered throughout the code.
2. Consistency: The assembler, the flow evaluator and both linear solver
   backends read the same values, so the CPU and GPU paths cannot drift apart.

Exports:
    MICROMETER (float): Meters per micrometer (voxel sizes are given in um).
    CENTIPOISE (float): Pa·s per centipoise.
    SQUARE_METER_TO_MILLIDARCY (float): mD per m².
    DEFAULT_TOLERANCE, DEFAULT_MAX_ITERATIONS, DEFAULT_BREAKDOWN_TOLERANCE:
        Conjugate Gradient defaults.
"""

# Unit conversions
MICROMETER: float = 1e-6
CENTIPOISE: float = 1e-3

# 1 Darcy = 9.869233e-13 m² => 1 m² = 1.01325e15 mD
SQUARE_METER_TO_MILLIDARCY: float = 1.01325e15
MILLIDARCY_PER_DARCY: float = 1000.0

# Boundary detection (in voxels)
BOUNDARY_TOLERANCE_VOXELS: float = 1.0
MIN_EXTENT_VOXELS: float = 1.0

# Tortuosity clamp
TORTUOSITY_MIN: float = 1.0
TORTUOSITY_MAX: float = 10.0

# Distance-matrix entries computed per Dijkstra batch (inlets x pores)
DIJKSTRA_CHUNK_ENTRIES: int = 2 ** 24

# Reynolds proxy used by the entrance-corrected conductance
FLUID_DENSITY: float = 1000.0  # kg/m³ (water)
REFERENCE_VELOCITY: float = 1.0  # m/s
ENTRANCE_LENGTH_COEFFICIENT: float = 0.06

# Conjugate Gradient defaults
DEFAULT_TOLERANCE: float = 1e-6
DEFAULT_MAX_ITERATIONS: int = 5000
DEFAULT_BREAKDOWN_TOLERANCE: float = 1e-10
DEFAULT_LOG_INTERVAL: int = 50

# GPU launch geometry
GPU_BLOCK_SIZE: int = 256

# Sanity thresholds for reported permeabilities (mD)
SUSPICIOUS_HIGH_MILLIDARCY: float = 100_000.0
SUSPICIOUS_LOW_MILLIDARCY: float = 0.001

# Voxel sizes above this (um) are accepted but reported as suspicious
SUSPICIOUS_VOXEL_SIZE: float = 1000.0

# Confining pressure model
MIN_RADIUS_FACTOR: float = 0.01
THROAT_CLOSURE_THRESHOLD: float = 0.05
PORE_SIZE_SENSITIVITY: float = 0.5
THROAT_SIZE_SENSITIVITY: float = 1.0
