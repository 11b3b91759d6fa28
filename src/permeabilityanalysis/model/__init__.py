"""
The MODEL layer contains pure data structures: the pore network, the options
of a calculation and its results, plus their persistence.
It has NO knowledge of the numerics (assembly, linear solvers).
"""
