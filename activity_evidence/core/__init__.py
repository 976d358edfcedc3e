"""
Core evidence stages.

Every function here is pure over its inputs: no I/O, no shared mutable
state, configuration passed explicitly.
"""
