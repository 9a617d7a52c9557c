"""
Registry of viewers who have joined the live map.
"""

import asyncio
from typing import Optional
from loguru import logger

from tracker.models import LiveUser


class ConnectionRegistry:
    """
    Maps connection id -> LiveUser.

    A record is created on join, updated in place only by events from the
    same connection, and removed on disconnect. Callers get copies, never
    the stored records.
    """

    AVATAR_URL = "https://i.pravatar.cc/40?u={connection_id}"

    def __init__(self):
        self._users: dict[str, LiveUser] = {}
        self._lock = asyncio.Lock()

    async def join(self, connection_id: str, username: str) -> LiveUser:
        user = LiveUser(
            id=connection_id,
            username=username,
            avatar=self.AVATAR_URL.format(connection_id=connection_id),
        )
        async with self._lock:
            self._users[connection_id] = user
        logger.debug(f"Registered {username} ({connection_id})")
        return user.model_copy()

    async def update_location(
        self,
        connection_id: str,
        latitude: float,
        longitude: float,
    ) -> Optional[LiveUser]:
        """Update a joined user's position. Returns None if not joined."""
        async with self._lock:
            user = self._users.get(connection_id)
            if user is None:
                return None
            user.latitude = latitude
            user.longitude = longitude
            return user.model_copy()

    async def remove(self, connection_id: str) -> Optional[LiveUser]:
        async with self._lock:
            return self._users.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[LiveUser]:
        user = self._users.get(connection_id)
        return user.model_copy() if user else None

    def snapshot(self) -> list[LiveUser]:
        """All joined users, in join order."""
        return [user.model_copy() for user in self._users.values()]

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._users

    def __len__(self) -> int:
        return len(self._users)
