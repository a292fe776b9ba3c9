from __future__ import annotations

import hashlib
import hmac
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable
from urllib.parse import urlencode

from clipforge.config import StorageSettings

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class UploadResult:
    stored_path: str
    signed_url: str
    size_bytes: int


class LocalStorageUploader:
    """Uploader that copies artifacts under a storage root and hands out signed URLs."""

    def __init__(self, settings: StorageSettings | None = None, clock: Callable[[], float] = time.time) -> None:
        self.settings = settings or StorageSettings()
        self.root = Path(self.settings.root).expanduser().resolve()
        self._clock = clock

    def upload(self, local_path: str | Path, destination_key: str) -> UploadResult:
        source = Path(local_path)
        if not source.exists():
            raise FileNotFoundError(f"Upload source not found: {source}")

        key = _normalize_key(destination_key)
        target = self.root / key
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)

        size_bytes = target.stat().st_size
        logger.info("Stored %s as %s (%d bytes)", source.name, key, size_bytes)
        return UploadResult(stored_path=key, signed_url=self.signed_url(key), size_bytes=size_bytes)

    def signed_url(self, key: str, expires_in: int | None = None) -> str:
        expiry = int(self._clock()) + (expires_in or self.settings.signed_url_expiry_seconds)
        signature = self._sign(key, expiry)
        query = urlencode({"expires": expiry, "signature": signature})
        return f"{self.settings.base_url.rstrip('/')}/{key}?{query}"

    def verify(self, key: str, expiry: int, signature: str) -> bool:
        if expiry < int(self._clock()):
            return False
        return hmac.compare_digest(self._sign(key, expiry), signature)

    def _sign(self, key: str, expiry: int) -> str:
        message = f"{key}:{expiry}".encode("utf-8")
        return hmac.new(self.settings.signing_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _normalize_key(destination_key: str) -> str:
    parts = [part for part in destination_key.replace("\\", "/").split("/") if part not in ("", ".", "..")]
    if not parts:
        raise ValueError(f"Invalid storage key: {destination_key!r}")
    return "/".join(parts)
