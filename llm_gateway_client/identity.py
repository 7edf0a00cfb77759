"""Bearer token and profile storage across two scopes.

A session lives in exactly one scope: durable (remembered across restarts)
or ephemeral (this process only). Reads check durable first.
"""

import logging

from pydantic import ValidationError

from llm_gateway_client.models import UserProfile
from llm_gateway_client.storage import KeyValueStorage

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"


class IdentityStore:
    """Holds the current bearer token and cached user profile.

    Args:
        durable: Scope used when the user asks to be remembered.
        ephemeral: Scope used otherwise.
    """

    def __init__(self, durable: KeyValueStorage, ephemeral: KeyValueStorage) -> None:
        self._durable = durable
        self._ephemeral = ephemeral

    def get_token(self) -> str | None:
        return self._durable.get(TOKEN_KEY) or self._ephemeral.get(TOKEN_KEY)

    @property
    def remembered(self) -> bool:
        """Whether the active session lives in the durable scope."""
        return self._durable.get(TOKEN_KEY) is not None

    def set_session(self, token: str, profile: UserProfile, remember: bool) -> None:
        """Store a new session, replacing whatever either scope held.

        Args:
            token: Bearer token returned by login or signup.
            profile: The authenticated user's profile.
            remember: Write to durable storage when True, ephemeral otherwise.
        """
        target, other = (
            (self._durable, self._ephemeral) if remember else (self._ephemeral, self._durable)
        )
        other.remove(TOKEN_KEY)
        other.remove(USER_KEY)
        target.set(TOKEN_KEY, token)
        target.set(USER_KEY, profile.model_dump_json(by_alias=True))
        logger.info(f"Stored session for {profile.email} (remember={remember})")

    def clear_session(self) -> None:
        """Remove token and profile from both scopes."""
        for scope in (self._durable, self._ephemeral):
            scope.remove(TOKEN_KEY)
            scope.remove(USER_KEY)

    def get_stored_profile(self) -> UserProfile | None:
        raw = self._durable.get(USER_KEY) or self._ephemeral.get(USER_KEY)
        if raw is None:
            return None
        try:
            return UserProfile.model_validate_json(raw)
        except ValidationError:
            logger.debug("Discarding unparseable stored profile")
            return None

    def update_stored_profile(self, profile: UserProfile) -> None:
        """Write a refreshed profile into the scope that holds the token."""
        if not self.remembered and self._ephemeral.get(TOKEN_KEY) is not None:
            scope = self._ephemeral
        else:
            scope = self._durable
        scope.set(USER_KEY, profile.model_dump_json(by_alias=True))

    def clear_stored_profile(self) -> None:
        """Drop the profile copy from both scopes, keeping the token."""
        self._durable.remove(USER_KEY)
        self._ephemeral.remove(USER_KEY)
