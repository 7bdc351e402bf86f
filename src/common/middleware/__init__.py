"""Common middleware for Clubhouse."""

from .observability import StructlogContextMiddleware

__all__ = ["StructlogContextMiddleware"]
