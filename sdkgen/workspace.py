"""Workspace and blob prefix allocation for generation iterations.

Local layout::

    <workspace_root>/<source owner>/<source name>/<number>/<iteration>/<slot>/

Blob layout::

    <source owner>/<source name>/<number>/<iteration>/generationData.json
    <source owner>/<source name>/<number>/<iteration>/logs.txt
    <source owner>/<source name>/<number>/<iteration>/<repository>/logs.txt
    <source owner>/<source name>/<number>/<iteration>/<repository>/<artifact>
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable, Optional, Set

from .errors import AllocationError
from .stores.blob import BlobStore, join_blob

MAX_SLOTS = 10_000
LOGS_BLOB_NAME = "logs.txt"


def smallest_unused(names: Iterable[str], *, limit: int = MAX_SLOTS) -> int:
    """Return the smallest positive integer not present in ``names``."""
    taken: Set[int] = set()
    for name in names:
        if name.isdigit():
            taken.add(int(name))
    for candidate in range(1, limit + 1):
        if candidate not in taken:
            return candidate
    raise AllocationError(f"No free slot found within {limit} candidates")


def allocate_iteration(blobs: BlobStore, repository: str, number: int) -> int:
    """Pick the next generation iteration for a pull request.

    The scan does not reserve anything; the iteration becomes visible once
    its state document is written.
    """
    return smallest_unused(blobs.list_children(join_blob(repository, str(number))))


def iteration_prefix(repository: str, number: int, iteration: int) -> str:
    return join_blob(repository, str(number), str(iteration))


def logs_blob(prefix: str, repository: Optional[str] = None) -> str:
    if repository:
        return join_blob(prefix, repository, LOGS_BLOB_NAME)
    return join_blob(prefix, LOGS_BLOB_NAME)


def artifact_blob(prefix: str, repository: str, file_name: str) -> str:
    return join_blob(prefix, repository, file_name)


class Workspace:
    """Local folders backing one generation iteration."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def iteration_root(self, repository: str, number: int, iteration: int) -> Path:
        return self.root.joinpath(*repository.split("/"), str(number), str(iteration))

    def create_iteration_root(self, repository: str, number: int, iteration: int) -> Path:
        folder = self.iteration_root(repository, number, iteration)
        folder.mkdir(parents=True, exist_ok=True)
        return folder

    def remove(self, folder: Path) -> None:
        if folder.exists():
            shutil.rmtree(folder, ignore_errors=True)


def get_repository_folder_path(iteration_root: Path, clone_dir: Optional[str] = None) -> Path:
    """Return the clone destination for one repository.

    A configured ``clone_dir`` names a folder inside ``iteration_root``;
    otherwise the slot is the smallest integer folder name not already
    present under ``iteration_root``.
    """
    if clone_dir:
        return _contained_folder(iteration_root, clone_dir)
    existing = [child.name for child in iteration_root.iterdir()] if iteration_root.is_dir() else []
    return iteration_root / str(smallest_unused(existing))


def _contained_folder(iteration_root: Path, clone_dir: str) -> Path:
    if Path(clone_dir).is_absolute():
        raise AllocationError(f"clone_dir {clone_dir!r} must be a relative path")
    folder = iteration_root / clone_dir
    root = iteration_root.resolve()
    resolved = folder.resolve()
    if resolved == root or root not in resolved.parents:
        raise AllocationError(f"clone_dir {clone_dir!r} escapes the iteration folder")
    return folder


def reserve_repository_folder(iteration_root: Path, clone_dir: Optional[str] = None) -> Path:
    """Allocate and create a clone slot so later scans skip it."""
    folder = get_repository_folder_path(iteration_root, clone_dir)
    folder.mkdir(parents=True, exist_ok=True)
    return folder


__all__ = [
    "LOGS_BLOB_NAME",
    "MAX_SLOTS",
    "Workspace",
    "allocate_iteration",
    "artifact_blob",
    "get_repository_folder_path",
    "iteration_prefix",
    "logs_blob",
    "reserve_repository_folder",
    "smallest_unused",
]
