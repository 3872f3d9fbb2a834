"""Infrastructure Layer - adapters behind the core Protocols plus logging and DB sessions.
"""
