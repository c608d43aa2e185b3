from __future__ import annotations

from typing import Any, Protocol


class DeliverySink(Protocol):
    """Duplex client channel as seen by the engine (outbound half)."""

    async def send(self, event_type: str, data: dict[str, Any]) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...
