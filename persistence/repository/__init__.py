"""
Repository pattern: generic data access over SQLModel, decoupled from callers by Result objects.
"""

from .base import IRepository
from .bulk import BulkConfig
from .execution_strategy import ExecutionStrategy, RetryPolicy
from .repository import Repository
from .unit_of_work import UnitOfWork

__all__ = ["BulkConfig", "ExecutionStrategy", "IRepository", "Repository", "RetryPolicy", "UnitOfWork"]
