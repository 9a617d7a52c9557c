"""
Live presence layer.
Tracks connected viewers and fans out presence, chat and tracking events.
"""

from tracker.live.broadcaster import Broadcaster, Connection, QueueConnection
from tracker.live.registry import ConnectionRegistry
from tracker.live.presence import PresenceHub

__all__ = ["Broadcaster", "Connection", "QueueConnection", "ConnectionRegistry", "PresenceHub"]
