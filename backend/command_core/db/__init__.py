"""Database Declarations - SQLAlchemy Base shared by models and migrations.

Design Decisions:
    - Sessions come from infrastructure.database.DatabaseSessionManager
"""
