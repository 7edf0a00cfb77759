"""Session-scoped identity state with single-flight profile fetching.

SessionContext is created once per client and passed to whoever needs the
current user. It replaces module-level globals so that logout can reset
everything through one call.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from llm_gateway_client.identity import IdentityStore
from llm_gateway_client.models import UserProfile

logger = logging.getLogger(__name__)


class SessionContext:
    """Resolves the current user's profile, sharing one in-flight fetch.

    Resolution order for ``get_identity``:
        1. the in-memory profile;
        2. the stored profile, which also warms memory;
        3. the fetch already in flight, if any;
        4. a new fetch, whose result lands in memory and storage.

    Args:
        identity: Token and profile storage.
        fetch_profile: Coroutine function fetching the profile from the service.
    """

    def __init__(
        self,
        identity: IdentityStore,
        fetch_profile: Callable[[], Awaitable[UserProfile]],
    ) -> None:
        self._identity = identity
        self._fetch_profile = fetch_profile
        self._profile: UserProfile | None = None
        self._in_flight: asyncio.Task[UserProfile] | None = None
        self._generation = 0

    @property
    def identity(self) -> IdentityStore:
        return self._identity

    @property
    def profile(self) -> UserProfile | None:
        """The in-memory profile, without touching storage or network."""
        return self._profile

    async def get_identity(self) -> UserProfile:
        """Return the current user's profile.

        Raises:
            Unauthorized: If the fetch hits an expired session.
            RequestRejected: If the service rejects the profile request.
        """
        if self._profile is not None:
            return self._profile

        stored = self._identity.get_stored_profile()
        if stored is not None:
            self._profile = stored
            return stored

        if self._in_flight is None:
            logger.debug("Fetching user profile")
            self._in_flight = asyncio.create_task(self._fetch_and_store(self._generation))

        # Shield so one waiter being cancelled does not cancel the others
        return await asyncio.shield(self._in_flight)

    async def _fetch_and_store(self, generation: int) -> UserProfile:
        try:
            profile = await self._fetch_profile()
        finally:
            if self._generation == generation:
                self._in_flight = None

        # A reset or invalidation during the fetch makes its result stale
        if self._generation == generation:
            self._profile = profile
            self._identity.update_stored_profile(profile)
        return profile

    def remember(self, profile: UserProfile) -> None:
        """Cache a profile obtained elsewhere, e.g. from a login response."""
        self._profile = profile

    def invalidate_identity(self) -> None:
        """Forget the cached profile so the next lookup hits the network.

        The token is kept. A fetch already in flight no longer updates the
        cache when it settles.
        """
        self._generation += 1
        self._profile = None
        self._in_flight = None
        self._identity.clear_stored_profile()

    def reset(self) -> None:
        """End the session: clear credentials, profile and in-flight fetch."""
        self._generation += 1
        self._profile = None
        self._in_flight = None
        self._identity.clear_session()
