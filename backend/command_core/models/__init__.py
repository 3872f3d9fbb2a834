"""ORM Models - SQLAlchemy declarative models for persisted entities.

Invariants:
    - All models inherit from Base (db/base.py)

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata is complete before create_all / autogenerate
"""

from command_core.models.user import User  # noqa: F401
from command_core.models.audit_record import AuditRecordRow  # noqa: F401
