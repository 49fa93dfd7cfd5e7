"""Scope binding and guaranteed teardown."""

from credbind.scope.binder import BoundScope, ScopeBinder

__all__ = ["BoundScope", "ScopeBinder"]
