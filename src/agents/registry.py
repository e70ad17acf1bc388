"""Process-wide lookup from a transport identifier to a live orchestrator.

Note: This is a single-process store. For multi-worker deployments, route a
call's webhooks to the same worker (sticky sessions).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from agents.errors import StaleRegistryError
from agents.orchestrator import ConversationOrchestrator
from agents.schemas import AssistantConfig, TransportKind

LOGGER = logging.getLogger(__name__)


@dataclass
class RegistryEntry:
    key: str
    orchestrator: ConversationOrchestrator
    assistant: AssistantConfig
    transport: TransportKind
    session_id: str
    call_id: str | None = None
    greeting_audio: bytes | None = None
    last_seen: float = field(default_factory=time.monotonic)


class SessionRegistry:
    """Synchronized get/put/remove with idle TTL expiry.

    Removing an entry ends its orchestrator, whichever path triggered the
    removal (end phrase, terminal call status, disconnect, expiry).
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._entries: dict[str, RegistryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def put(self, entry: RegistryEntry) -> None:
        entry.last_seen = self._clock()
        async with self._lock:
            previous = self._entries.get(entry.key)
            self._entries[entry.key] = entry
        if previous is not None and previous.orchestrator is not entry.orchestrator:
            LOGGER.warning("Replacing registry entry %s", entry.key)
            await previous.orchestrator.end()

    async def get(self, key: str) -> RegistryEntry | None:
        now = self._clock()
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now - entry.last_seen > self._ttl:
                del self._entries[key]
                expired = entry
            else:
                entry.last_seen = now
                return entry
        LOGGER.info("Registry entry %s expired", key)
        await expired.orchestrator.end()
        return None

    async def require(self, key: str) -> RegistryEntry:
        entry = await self.get(key)
        if entry is None:
            raise StaleRegistryError(f"No active session for {key}")
        return entry

    async def remove(
        self, key: str, *, owner: ConversationOrchestrator | None = None
    ) -> RegistryEntry | None:
        """Drop the entry and end its orchestrator.

        With `owner`, the entry is only removed while it still belongs to that
        orchestrator, so a superseded connection cannot evict its replacement.
        """

        async with self._lock:
            entry = self._entries.get(key)
            if entry is None or (owner is not None and entry.orchestrator is not owner):
                entry = None
            else:
                del self._entries[key]
        if entry is not None:
            await entry.orchestrator.end()
            LOGGER.info("Registry entry %s removed", key)
        return entry

    async def sweep(self) -> int:
        now = self._clock()
        async with self._lock:
            expired = [
                self._entries.pop(key)
                for key, entry in list(self._entries.items())
                if now - entry.last_seen > self._ttl
            ]
        for entry in expired:
            await entry.orchestrator.end()
        if expired:
            LOGGER.info("Swept %d expired registry entries", len(expired))
        return len(expired)

    async def close_all(self) -> None:
        async with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            await entry.orchestrator.end()

    async def run_sweeper(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.sweep()
            except Exception:
                LOGGER.exception("Registry sweep failed")
