"""Human-readable status summaries for pull request comments."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from jinja2 import Environment, FileSystemLoader

from .models import GenerationState, GenerationStatus

_TEMPLATE_NAME = "status_comment.j2"

_ICONS = {
    GenerationStatus.PENDING: "⏳",
    GenerationStatus.IN_PROGRESS: "🔄",
    GenerationStatus.SUCCEEDED: "✅",
    GenerationStatus.FAILED: "❌",
}


@dataclass
class StatusRow:
    name: str
    status: str
    icon: str
    details: str


class StatusReporter:
    """Renders a :class:`GenerationState` as a markdown status comment."""

    def __init__(self, templates_dir: Path | None = None) -> None:
        self._env = _create_env(templates_dir)

    def render(self, state: GenerationState) -> str:
        rows = [self._row(name, state) for name in state.repositories]
        counts = _count(state)
        template = self._env.get_template(_TEMPLATE_NAME)
        return template.render(
            state=state,
            rows=rows,
            counts=counts,
            completed=state.status == "completed",
        ).strip() + "\n"

    @staticmethod
    def _row(name: str, state: GenerationState) -> StatusRow:
        result = state.repositories[name]
        if result.status == GenerationStatus.FAILED and result.reason:
            details = _single_line(result.reason)
        elif result.artifacts:
            details = ", ".join(f"`{artifact.rsplit('/', 1)[-1]}`" for artifact in result.artifacts)
        else:
            details = ""
        return StatusRow(
            name=name,
            status=result.status.value,
            icon=_ICONS[result.status],
            details=details,
        )


def _count(state: GenerationState) -> Dict[str, int]:
    counts = {"pending": 0, "in_progress": 0, "succeeded": 0, "failed": 0}
    keys = {
        GenerationStatus.PENDING: "pending",
        GenerationStatus.IN_PROGRESS: "in_progress",
        GenerationStatus.SUCCEEDED: "succeeded",
        GenerationStatus.FAILED: "failed",
    }
    for result in state.repositories.values():
        counts[keys[result.status]] += 1
    return counts


def _single_line(text: str) -> str:
    cleaned = " ".join(text.split()).replace("|", "\\|")
    return cleaned[:200] + ("…" if len(cleaned) > 200 else "")


def _create_env(templates_dir: Path | None) -> Environment:
    directories: List[str] = []
    if templates_dir:
        directories.append(str(templates_dir))
    directories.append(str(Path(__file__).with_name("templates")))
    loader = FileSystemLoader(directories)
    return Environment(loader=loader, autoescape=False, trim_blocks=True, lstrip_blocks=True)


__all__ = ["StatusReporter", "StatusRow"]
