"""Working-tree change detection for generated SDK clones."""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Sequence

from ..errors import ProcessExecutionError
from ..languages import LanguageRule
from ..process import ProcessRunner

_STATUS_LINE = re.compile(r"^(modified|new file|added|renamed):\s+(?P<path>.+)$")


class ChangeDetector:
    """Finds files and package folders touched by a generation run."""

    def __init__(self, runner: ProcessRunner) -> None:
        self._runner = runner

    def detect_changed_files(self, clone: Path) -> List[str]:
        # Stage everything so untracked output shows up as "new file:".
        self._run(["git", "add", "-A"], clone)
        output = self._run(["git", "status"], clone)
        return parse_status(output)

    def detect_changed_package_folders(
        self,
        clone: Path,
        paths: Sequence[str],
        rule: Optional[LanguageRule],
    ) -> List[Path]:
        if rule is None or not rule.package_marker:
            return []
        root = clone
        folders: List[Path] = []
        for relative in paths:
            folder = _nearest_package_folder(root, root / relative, rule.package_marker)
            if folder is not None and folder not in folders:
                folders.append(folder)
        return folders

    def _run(self, args: List[str], cwd: Path) -> str:
        result = self._runner.run(args, cwd=cwd)
        if not result.ok:
            raise ProcessExecutionError(
                f"{' '.join(args)} exited with code {result.exit_code}", result
            )
        return result.stdout


def parse_status(output: str) -> List[str]:
    """Parse ``git status`` long-format output into relative paths."""
    paths: List[str] = []
    for line in output.splitlines():
        match = _STATUS_LINE.match(line.strip())
        if match is None:
            continue
        path = match.group("path").strip()
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        if path not in paths:
            paths.append(path)
    return paths


def _nearest_package_folder(root: Path, path: Path, marker: str) -> Optional[Path]:
    current = path.parent
    while True:
        if (current / marker).is_file():
            return current
        if current == root or root not in current.parents:
            return None
        current = current.parent


__all__ = ["ChangeDetector", "parse_status"]
