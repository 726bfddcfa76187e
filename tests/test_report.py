"""Tests for status comment rendering."""

from __future__ import annotations

from pathlib import Path

from sdkgen.models import GenerationResult, GenerationState, GenerationStatus
from sdkgen.report import StatusReporter


def _state(**overrides) -> GenerationState:
    state = GenerationState(
        repository="Azure/azure-rest-api-specs",
        number=5025,
        iteration=2,
        html_url="https://github.com/Azure/azure-rest-api-specs/pull/5025",
    )
    for key, value in overrides.items():
        setattr(state, key, value)
    return state


def test_render_lists_each_repository_with_status() -> None:
    state = _state(
        status="completed",
        logs_blob="Azure/azure-rest-api-specs/5025/2/logs.txt",
        repositories={
            "Azure/azure-sdk-for-python": GenerationResult(
                status=GenerationStatus.SUCCEEDED,
                artifacts=["Azure/azure-rest-api-specs/5025/2/Azure/azure-sdk-for-python/azure-mgmt-sql-1.0.tar.gz"],
            ),
            "Azure/azure-sdk-for-go": GenerationResult(
                status=GenerationStatus.FAILED,
                reason="generate command exited with code 1\nsee logs",
            ),
        },
    )

    body = StatusReporter().render(state)

    assert body.startswith("<!-- sdkgen:status -->\n### SDK generation completed")
    assert "(iteration 2)" in body
    assert "| `Azure/azure-sdk-for-python` | ✅ succeeded | `azure-mgmt-sql-1.0.tar.gz` |" in body
    assert "| `Azure/azure-sdk-for-go` | ❌ failed | generate command exited with code 1 see logs |" in body
    assert "Succeeded: 1 · Failed: 1 · Pending: 0" in body
    assert "Logs: `Azure/azure-rest-api-specs/5025/2/logs.txt`" in body


def test_render_in_progress_without_repositories() -> None:
    body = StatusReporter().render(_state())

    assert "### SDK generation in progress" in body
    assert "No SDK repositories were requested by this change." in body
    assert "Logs:" not in body


def test_pending_count_includes_running_repositories() -> None:
    state = _state(
        repositories={
            "Azure/a": GenerationResult(status=GenerationStatus.PENDING),
            "Azure/b": GenerationResult(status=GenerationStatus.IN_PROGRESS),
        }
    )

    assert "Pending: 2" in StatusReporter().render(state)


def test_custom_templates_take_precedence(tmp_path: Path) -> None:
    (tmp_path / "status_comment.j2").write_text(
        "{{ state.repository }}#{{ state.number }} {{ counts.failed }}\n", encoding="utf-8"
    )

    body = StatusReporter(templates_dir=tmp_path).render(_state())

    assert body == "Azure/azure-rest-api-specs#5025 0\n"
