"""
Token storage and retrieval for the signed-in session.

Wraps the key-value store for exactly two keys: the bearer token and the
user's profile. Storage failures never reach the caller; reads fall back
to None and writes and removals are best effort.
"""

import logging
from typing import Iterable, Optional

from pydantic import ValidationError

from pocket_calendar.auth.identity import UserProfile
from pocket_calendar.storage.key_value import KeyValueStore

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_INFO_KEY = "userInfo"
SESSION_KEYS = frozenset({TOKEN_KEY, USER_INFO_KEY})


class TokenStore:
    """Persists the session's access token and user profile."""

    def __init__(self, store: KeyValueStore):
        """
        Initialize the token store.

        Args:
            store: Underlying key-value store
        """
        self._store = store

    async def get(self, key: str) -> Optional[str]:
        """
        Read a session value.

        Returns:
            The stored value, or None if absent or the store failed
        """
        try:
            return await self._store.get(key)
        except Exception as e:
            logger.warning(f"Failed to read {key!r} from storage: {e}")
            return None

    async def set(self, key: str, value: str) -> None:
        """
        Overwrite a session value.

        Raises:
            ValueError: If ``key`` is not a session key
        """
        if key not in SESSION_KEYS:
            raise ValueError(f"Unsupported session key: {key!r}")
        try:
            await self._store.set(key, value)
        except Exception as e:
            logger.warning(f"Failed to write {key!r} to storage: {e}")

    async def remove(self, keys: Iterable[str]) -> None:
        """Remove session values, tolerating failures."""
        keys = list(keys)
        try:
            await self._store.multi_remove(keys)
            return
        except Exception as e:
            logger.warning(f"Bulk removal of {keys} failed, removing one by one: {e}")

        for key in keys:
            try:
                await self._store.multi_remove([key])
            except Exception as e:
                logger.warning(f"Failed to remove {key!r} from storage: {e}")

    async def clear(self) -> None:
        """Remove the token and the user profile."""
        await self.remove([TOKEN_KEY, USER_INFO_KEY])

    async def get_token(self) -> Optional[str]:
        return await self.get(TOKEN_KEY)

    async def set_token(self, token: str) -> None:
        await self.set(TOKEN_KEY, token)

    async def get_user_profile(self) -> Optional[UserProfile]:
        raw = await self.get(USER_INFO_KEY)
        if not raw:
            return None
        try:
            return UserProfile.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed user profile: {e}")
            return None

    async def set_user_profile(self, profile: UserProfile) -> None:
        await self.set(USER_INFO_KEY, profile.model_dump_json())
