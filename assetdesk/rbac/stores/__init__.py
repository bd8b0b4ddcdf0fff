"""
RBAC storage implementations.
"""

from .memory import MemoryRBACStore
from .sqlalchemy import SQLAlchemyRBACStore

__all__ = ["MemoryRBACStore", "SQLAlchemyRBACStore"]
