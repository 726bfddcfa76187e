"""Pull request diff inspection utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from ..errors import DiffParseError

DIFF_GIT_PREFIX = "diff --git"

# Recovers the "before" path from a ``diff --git a/<path> b/<path>`` header.
_DIFF_GIT_LINE = re.compile(r"diff --git a/(.*) b/.*")

SPECIFICATION_PREFIX = "specification/"

# Checked in order; the first segment found in a path wins.
_TREE_SEGMENTS: Sequence[str] = ("/resource-manager/", "/data-plane/")

CONFIGURATION_DOCUMENT = "readme.md"


@dataclass(frozen=True)
class ChangedFileSet:
    """Ordered, de-duplicated relative paths touched by a pull request."""

    paths: Sequence[str]

    @classmethod
    def from_paths(cls, paths: Iterable[str]) -> "ChangedFileSet":
        return cls(paths=tuple(_unique(paths)))

    @property
    def specification_paths(self) -> List[str]:
        return [path for path in self.paths if path.startswith(SPECIFICATION_PREFIX)]

    def configuration_documents(self) -> List[str]:
        """Return one readme path per distinct API tree, first-seen order."""
        documents: List[str] = []
        for path in self.specification_paths:
            document = configuration_document_for(path)
            if document is not None and document not in documents:
                documents.append(document)
        return documents


def configuration_document_for(path: str) -> str | None:
    for segment in _TREE_SEGMENTS:
        index = path.find(segment)
        if index != -1:
            return path[: index + len(segment)] + CONFIGURATION_DOCUMENT
    return None


def diff_git_lines(lines: Iterable[str]) -> List[str]:
    return [line for line in lines if line.startswith(DIFF_GIT_PREFIX)]


def changed_path_from_line(line: str) -> str:
    match = _DIFF_GIT_LINE.match(line)
    if match is None:
        raise DiffParseError(f"Unexpected diff header line: {line!r}")
    return match.group(1)


def parse_diff(text: str) -> ChangedFileSet:
    """Extract the changed file set from unified diff text."""
    lines = split_lines(text)
    return ChangedFileSet.from_paths(
        changed_path_from_line(line) for line in diff_git_lines(lines)
    )


def split_lines(text: str) -> List[str]:
    return re.split(r"\r?\n", text)


def _unique(items: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        ordered.append(item)
    return ordered


__all__ = [
    "CONFIGURATION_DOCUMENT",
    "ChangedFileSet",
    "DIFF_GIT_PREFIX",
    "changed_path_from_line",
    "configuration_document_for",
    "diff_git_lines",
    "parse_diff",
    "split_lines",
]
