"""
Reconciliation of the optimistic view.

Every producer publishes typed messages onto one ReconcileChannel; the
Reconciler behind it is the only component that mutates the view.
"""

from .channel import ReconcileChannel
from .messages import (
    DiscardReason,
    PendingCreated,
    RealtimeReceived,
    ReconcileMessage,
    SnapshotLoaded,
    WriteConfirmed,
    WriteDiscarded,
    WriteQueued,
    WritesSynced,
)
from .reconciler import Reconciler

__all__ = [
    "ReconcileChannel",
    "Reconciler",
    "ReconcileMessage",
    "DiscardReason",
    "PendingCreated",
    "WriteConfirmed",
    "WriteQueued",
    "WriteDiscarded",
    "WritesSynced",
    "RealtimeReceived",
    "SnapshotLoaded",
]
