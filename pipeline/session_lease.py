from __future__ import annotations

import threading
from typing import Optional

from lib.errors import SessionBusyError


class SessionLeaseRegistry:
    """
    One active generation per session id.

    acquire() is idempotent for the current holder. Anyone else gets
    SessionBusyError until the holder releases.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holders: dict[str, str] = {}

    def acquire(self, session_id: str, owner: str) -> None:
        with self._lock:
            holder = self._holders.get(session_id)
            if holder is not None and holder != owner:
                raise SessionBusyError(session_id)
            self._holders[session_id] = owner

    def release(self, session_id: str, owner: str) -> bool:
        """Release if `owner` holds the lease. Returns whether anything was released."""
        with self._lock:
            if self._holders.get(session_id) != owner:
                return False
            del self._holders[session_id]
            return True

    def holder(self, session_id: str) -> Optional[str]:
        with self._lock:
            return self._holders.get(session_id)

    def is_held(self, session_id: str) -> bool:
        return self.holder(session_id) is not None


# Process-wide registry used when an orchestrator is not given its own.
DEFAULT_REGISTRY = SessionLeaseRegistry()
