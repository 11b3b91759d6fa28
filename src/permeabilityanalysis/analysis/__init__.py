"""
The ANALYSIS layer turns a pore network into a linear system and evaluates
the solved pressure field: boundary detection, tortuosity, conductance
models, confining-pressure geometry, assembly and Darcy's law.
"""
