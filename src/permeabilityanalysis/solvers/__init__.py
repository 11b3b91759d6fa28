"""
Linear solvers (CPU numba, GPU CuPy) and the permeability entry point.
"""
