from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity supplied by the identity provider."""

    user_id: str
    display_name: str | None = None
    avatar_url: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.user_id
