"""Host engine adapters.

The Strawberry adapter is imported lazily by the watcher so that this package
stays importable when Strawberry is not installed.
"""

from __future__ import annotations

from .base import BaseGraphQLAdapter, ExecutionCoordinator, OperationContext, is_package_available
from .hook_adapter import GraphQLHooks, HookAdapter

__all__ = [
    "BaseGraphQLAdapter",
    "ExecutionCoordinator",
    "GraphQLHooks",
    "HookAdapter",
    "OperationContext",
    "is_package_available",
]
