"""
Rule storage backends.

The engine only depends on the ``RuleStore`` interface; the in-memory
store backs tests and local runs, the PostgreSQL store backs deployments.
"""

from .base import RuleStore
from .memory import InMemoryRuleStore
from .postgres import PostgresRuleStore

__all__ = ["RuleStore", "InMemoryRuleStore", "PostgresRuleStore"]
