"""Value records persisted by :class:`wxstore.storage.store.StorageManager`."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

__all__ = [
    "DEFAULT_PROVIDER",
    "REFRESH_MARGIN_MS",
    "AppConfig",
    "Credential",
    "TransientAsset",
    "PermanentAsset",
    "Draft",
    "PublishRecord",
    "ProviderConfig",
]

DEFAULT_PROVIDER = "wechat"
# Refresh the access credential one minute before it actually expires.
REFRESH_MARGIN_MS = 60_000


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class AppConfig:
    """Official account configuration (single row)."""

    app_id: str
    app_secret: str | None
    token: str | None = None
    encoding_key: str | None = None
    created_at: int | None = None
    updated_at: int | None = None


@dataclass
class Credential:
    """Rotating API access credential; at most one is stored."""

    secret: str | None
    ttl_seconds: int
    expires_at_ms: int
    created_at: int | None = None

    @classmethod
    def issue(cls, secret: str, ttl_seconds: int, *, now_ms: int | None = None) -> Credential:
        """Build a credential that expires ``ttl_seconds`` from ``now_ms``."""

        issued = _now_ms() if now_ms is None else now_ms
        return cls(
            secret=secret,
            ttl_seconds=int(ttl_seconds),
            expires_at_ms=issued + int(ttl_seconds) * 1000,
            created_at=issued,
        )

    def is_valid(self, *, now_ms: int | None = None, margin_ms: int = REFRESH_MARGIN_MS) -> bool:
        if not self.secret:
            return False
        current = _now_ms() if now_ms is None else now_ms
        return self.expires_at_ms > current + margin_ms


@dataclass
class TransientAsset:
    asset_id: str
    kind: str
    created_at: int
    url: str | None = None


@dataclass
class PermanentAsset:
    asset_id: str
    kind: str
    created_at: int
    name: str | None = None
    updated_at: int | None = None
    url: str | None = None


@dataclass
class Draft:
    draft_id: str
    content: str
    updated_at: int


@dataclass
class PublishRecord:
    publish_id: str
    external_msg_id: str
    published_at: int
    status: int
    article_index: int | None = None
    article_url: str | None = None
    content: str | None = None


@dataclass
class ProviderConfig:
    """Upload configuration for one image-host provider."""

    provider_type: str
    config: dict[str, Any] = field(default_factory=dict)
    created_at: int | None = None
    updated_at: int | None = None
