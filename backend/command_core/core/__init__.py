"""Core Layer - pure domain types and rules, no IO, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Boundary contracts (repository, audit sink, alert hook) declared here as Protocols
"""
