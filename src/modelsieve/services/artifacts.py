"""Blob storage for run payloads too large to keep inline."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import urlparse
from urllib.request import url2pathname


class ArtifactStore(Protocol):
    def write(self, key: str, payload: Any) -> str:
        """Persist payload as JSON; return a URI for later reads."""
        raise NotImplementedError

    def read(self, uri: str) -> Any:
        raise NotImplementedError

    def delete(self, uri: str) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class LocalArtifactStore:
    """Stores JSON artifacts as files under ``root``; URIs are file:// paths."""

    root: Path

    def write(self, key: str, payload: Any) -> str:
        path = (self.root / key).with_suffix(".json")
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload), encoding="utf-8")
        tmp.replace(path)
        return path.resolve().as_uri()

    @staticmethod
    def _path(uri: str) -> Path:
        parsed = urlparse(uri)
        if parsed.scheme != "file":
            raise ValueError(f"Unsupported artifact URI: {uri}")
        # as_uri() percent-encodes spaces and non-ASCII characters
        return Path(url2pathname(parsed.path))

    def read(self, uri: str) -> Any:
        return json.loads(self._path(uri).read_text(encoding="utf-8"))

    def delete(self, uri: str) -> None:
        self._path(uri).unlink(missing_ok=True)
