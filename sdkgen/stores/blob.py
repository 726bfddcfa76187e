"""Hierarchical blob storage used for generation artifacts and state."""

from __future__ import annotations

import mimetypes
import threading
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Protocol, Tuple

TEXT_PLAIN = "text/plain"
APPLICATION_JSON = "application/json"
APPLICATION_OCTET_STREAM = "application/octet-stream"


class BlobStore(Protocol):
    """Minimal capability interface over ``container/prefix/blob`` storage."""

    container: str

    def container_exists(self) -> bool:
        ...

    def create_container(self) -> None:
        ...

    def exists(self, name: str) -> bool:
        ...

    def list_children(self, prefix: str) -> List[str]:
        ...

    def read_text(self, name: str) -> Optional[str]:
        ...

    def write_text(self, name: str, text: str, *, content_type: str = TEXT_PLAIN) -> None:
        ...

    def write_bytes(
        self, name: str, data: bytes, *, content_type: str = APPLICATION_OCTET_STREAM
    ) -> None:
        ...


def join_blob(*parts: str) -> str:
    """Join blob name segments with ``/``, ignoring empty segments."""
    cleaned = [part.strip("/") for part in parts if part and part.strip("/")]
    return "/".join(cleaned)


class FileSystemBlobStore:
    """Stores blobs as files under ``<root>/<container>/``."""

    def __init__(self, root: Path, container: str = "sdkgen") -> None:
        self.root = Path(root)
        self.container = container

    @property
    def container_path(self) -> Path:
        return self.root / self.container

    def container_exists(self) -> bool:
        return self.container_path.is_dir()

    def create_container(self) -> None:
        self.container_path.mkdir(parents=True, exist_ok=True)

    def exists(self, name: str) -> bool:
        return self._path(name).exists()

    def list_children(self, prefix: str) -> List[str]:
        folder = self._path(prefix) if prefix else self.container_path
        if not folder.is_dir():
            return []
        return sorted(child.name for child in folder.iterdir())

    def read_text(self, name: str) -> Optional[str]:
        path = self._path(name)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def write_text(self, name: str, text: str, *, content_type: str = TEXT_PLAIN) -> None:
        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    def write_bytes(
        self, name: str, data: bytes, *, content_type: str = APPLICATION_OCTET_STREAM
    ) -> None:
        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def content_type(self, name: str) -> str:
        guessed, _ = mimetypes.guess_type(name)
        return guessed or APPLICATION_OCTET_STREAM

    def _path(self, name: str) -> Path:
        relative = PurePosixPath(name)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid blob name: {name}")
        return self.container_path.joinpath(*relative.parts)


class InMemoryBlobStore:
    """Dictionary-backed blob store for tests and dry runs."""

    def __init__(self, container: str = "sdkgen") -> None:
        self.container = container
        self.blobs: Dict[str, Tuple[bytes, str]] = {}
        self._created = False
        self._lock = threading.Lock()

    def container_exists(self) -> bool:
        return self._created

    def create_container(self) -> None:
        self._created = True

    def exists(self, name: str) -> bool:
        name = name.strip("/")
        with self._lock:
            if name in self.blobs:
                return True
            return any(key.startswith(f"{name}/") for key in self.blobs)

    def list_children(self, prefix: str) -> List[str]:
        prefix = prefix.strip("/")
        lead = f"{prefix}/" if prefix else ""
        children: set[str] = set()
        with self._lock:
            for key in self.blobs:
                if key.startswith(lead):
                    children.add(key[len(lead):].split("/", 1)[0])
        return sorted(children)

    def read_text(self, name: str) -> Optional[str]:
        with self._lock:
            entry = self.blobs.get(name.strip("/"))
        if entry is None:
            return None
        return entry[0].decode("utf-8")

    def write_text(self, name: str, text: str, *, content_type: str = TEXT_PLAIN) -> None:
        self.write_bytes(name, text.encode("utf-8"), content_type=content_type)

    def write_bytes(
        self, name: str, data: bytes, *, content_type: str = APPLICATION_OCTET_STREAM
    ) -> None:
        with self._lock:
            self.blobs[name.strip("/")] = (data, content_type)
            self._created = True

    def content_type(self, name: str) -> str:
        with self._lock:
            entry = self.blobs.get(name.strip("/"))
        return entry[1] if entry else APPLICATION_OCTET_STREAM


__all__ = [
    "APPLICATION_JSON",
    "APPLICATION_OCTET_STREAM",
    "BlobStore",
    "FileSystemBlobStore",
    "InMemoryBlobStore",
    "TEXT_PLAIN",
    "join_blob",
]
