"""
Contracts Module

Immutable data types exchanged between pipeline stages.

DESIGN PRINCIPLES:
==================
1. All contract types are immutable (frozen dataclasses)
2. Degenerate outcomes are explicit (ErrorCode / Error), not exceptions
3. All timestamps are timezone-aware UTC
4. Derived identifiers are content hashes (deterministic)
"""
