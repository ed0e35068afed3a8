"""Known-user discovery and the active-user pointer."""

from __future__ import annotations

import locale
import logging

from .progress import ProgressStore

logger = logging.getLogger(__name__)

GUEST_USER = "guest"


class UserRegistry:
    """Derives users from stored progress keys and tracks the active user."""

    def __init__(self, store: ProgressStore) -> None:
        self.store = store

    def list_users(self) -> list[str]:
        """Return `guest` followed by every other known user in locale order.

        The active user is always included, even when it has no stored record.
        """
        names = set(self.store.enumerate_users())
        names.add(self.get_active_user())
        names.discard(GUEST_USER)
        return [GUEST_USER, *sorted(names, key=locale.strxfrm)]

    def get_active_user(self) -> str:
        """Return the persisted active user, defaulting to guest."""
        pointer = self.store.get_pointer()
        if pointer is None or not pointer.strip():
            return GUEST_USER
        return pointer

    def set_active_user(self, user_id: str) -> None:
        """Select and persist the active user."""
        name = user_id.strip()
        if not name:
            raise ValueError("User name is required.")
        self.store.set_pointer(name)
        logger.info("Active user set to %r", name)
