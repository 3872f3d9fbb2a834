"""Services Layer - command bus, middleware pipeline, event bus, recovery, and commands.

Invariants:
    - Command registry is an explicit dict (no auto-discovery)
    - Nothing in services/ is a module-level singleton; callers build instances
"""
