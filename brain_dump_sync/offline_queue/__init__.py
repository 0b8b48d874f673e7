"""Durable queue of writes awaiting confirmation."""

from .store import DurableQueueStore

__all__ = ["DurableQueueStore"]
