from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderInit:
    provider_id: str
    handle: Any = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None


class ProviderRegistry:
    """Initialization results of optional providers, built once at startup.

    Each provider id maps to either a usable handle or the reason its
    initialization failed; lookups after startup never import or construct.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ProviderInit] = {}

    def register(self, provider_id: str, factory: Callable[[], Any]) -> ProviderInit:
        try:
            result = ProviderInit(provider_id=provider_id, handle=factory())
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "Provider initialization failed",
                extra={"provider_id": provider_id},
                exc_info=exc,
            )
            result = ProviderInit(
                provider_id=provider_id,
                reason=f"{exc.__class__.__name__}: {exc}",
            )
        self._entries[provider_id] = result
        return result

    def get(self, provider_id: str) -> ProviderInit | None:
        return self._entries.get(provider_id)

    def handle(self, provider_id: str) -> Any:
        entry = self._entries.get(provider_id)
        if entry is None or not entry.ok:
            return None
        return entry.handle

    def resolve(self, *provider_ids: str) -> ProviderInit | None:
        for provider_id in provider_ids:
            entry = self._entries.get(provider_id)
            if entry is not None and entry.ok:
                return entry
        return None

    def report(self) -> dict[str, dict[str, Any]]:
        return {
            provider_id: {"ok": entry.ok, "reason": entry.reason}
            for provider_id, entry in sorted(self._entries.items())
        }
