"""In-memory view of the user's entries."""

from .store import OptimisticViewStore

__all__ = ["OptimisticViewStore"]
