"""
Remote collaborators: the save function, entry listing and realtime feed.
"""

from .base import EntrySource, RealtimeTransport, RemoteWriter
from .http import HttpEntrySource, HttpRemoteWriter, is_transient_status
from .realtime import PhoenixRealtimeTransport, build_join_message, change_from_message

__all__ = [
    "RemoteWriter",
    "EntrySource",
    "RealtimeTransport",
    "HttpRemoteWriter",
    "HttpEntrySource",
    "PhoenixRealtimeTransport",
    "build_join_message",
    "change_from_message",
    "is_transient_status",
]
