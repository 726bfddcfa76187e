"""End-to-end orchestration tests over in-memory doubles."""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Optional

import pytest

from sdkgen.config import Settings
from sdkgen.hosting import HttpResponse
from sdkgen.models import ChangeEvent, GenerationStatus
from sdkgen.orchestrator import Orchestrator, results_by_status
from sdkgen.process import ProcessResult
from sdkgen.resolver import REPOSITORY_CONFIG_PATH
from sdkgen.stores.blob import InMemoryBlobStore
from tests._fixtures.doubles import (
    DIFF_URL,
    SOURCE_REPOSITORY,
    SQL_README,
    FakeSourceHost,
    RecordingHttpClient,
    ScriptedRunner,
    clone_creates,
    fails_when,
    swagger_to_sdk_readme,
)

_PYTHON = "Azure/azure-sdk-for-python"
_GO = "Azure/azure-sdk-for-go"
_NET = "Azure/azure-sdk-for-net"
_JS = "Azure/azure-sdk-for-js"


def _host(*repositories: str, reachable: tuple = (_PYTHON, _GO)) -> FakeSourceHost:
    host = FakeSourceHost(
        files={(SOURCE_REPOSITORY, SQL_README): swagger_to_sdk_readme(*repositories)},
        repositories=set(reachable),
    )
    for name in reachable:
        host.files[(name, REPOSITORY_CONFIG_PATH)] = json.dumps({"meta": {"autorest_options": {"sdk": True}}})
    return host


def _orchestrator(
    settings: Settings,
    http: RecordingHttpClient,
    host: FakeSourceHost,
    blobs: InMemoryBlobStore,
    runner: ScriptedRunner,
) -> Orchestrator:
    return Orchestrator(settings, http=http, host=host, blobs=blobs, runner=runner)


def test_failing_repository_does_not_affect_its_sibling(
    settings: Settings, http: RecordingHttpClient, blobs: InMemoryBlobStore, event: ChangeEvent
) -> None:
    host = _host("azure-sdk-for-python", "azure-sdk-for-go")
    runner = (
        ScriptedRunner()
        .on(fails_when(lambda text, cwd: text.startswith("autorest") and cwd.name == "2"))
        .on(clone_creates({"README.md": "sdk"}))
    )
    orchestrator = _orchestrator(settings, http, host, blobs, runner)

    state = orchestrator.handle_change(event)

    assert state.status == "completed"
    assert state.iteration == 1
    assert state.repositories[_PYTHON].status == GenerationStatus.SUCCEEDED
    assert state.repositories[_GO].status == GenerationStatus.FAILED
    assert state.repositories[_GO].reason == "generate command exited with code 1"
    assert "Deleted clone folder" in state.repositories[_GO].logs
    assert results_by_status(state) == {
        "pending": [],
        "inProgress": [],
        "succeeded": [_PYTHON],
        "failed": [_GO],
    }
    iteration_root = settings.workspace_root / "Azure" / "azure-rest-api-specs" / "5025" / "1"
    assert not iteration_root.exists()


def test_state_logs_and_comment_are_published(
    settings: Settings, http: RecordingHttpClient, blobs: InMemoryBlobStore, event: ChangeEvent
) -> None:
    host = _host("azure-sdk-for-python", "azure-sdk-for-go")
    orchestrator = _orchestrator(settings, http, host, blobs, ScriptedRunner().on(clone_creates({})))

    state = orchestrator.handle_change(event)

    prefix = "Azure/azure-rest-api-specs/5025/1"
    assert state.logs_blob == f"{prefix}/logs.txt"
    assert orchestrator.load_state(SOURCE_REPOSITORY, 5025, 1) == state

    logs = blobs.read_text(f"{prefix}/logs.txt") or ""
    assert logs.startswith(
        'Received pull request change webhook request from GitHub for "'
        'https://github.com/Azure/azure-rest-api-specs/pull/5025".\n'
    )
    python_section = logs.index(f"===== {_PYTHON} (succeeded) =====")
    go_section = logs.index(f"===== {_GO} (succeeded) =====")
    assert logs.index("Found 1 readme.md files to generate:") < python_section < go_section
    assert blobs.read_text(f"{prefix}/{_PYTHON}/logs.txt") == state.repositories[_PYTHON].logs

    assert state.comment_id == 1
    final_comment = host.comments[1]
    assert "### SDK generation completed" in final_comment
    assert f"| `{_GO}` | ✅ succeeded |" in final_comment
    assert host.comment_updates


def test_iterations_increase_per_pull_request(
    settings: Settings, http: RecordingHttpClient, blobs: InMemoryBlobStore, event: ChangeEvent
) -> None:
    host = _host("azure-sdk-for-go")
    orchestrator = _orchestrator(settings, http, host, blobs, ScriptedRunner())

    first = orchestrator.handle_change(event)
    second = orchestrator.handle_change(event)

    assert (first.iteration, second.iteration) == (1, 2)


def test_unusable_diff_stops_before_allocating_anything(
    settings: Settings, blobs: InMemoryBlobStore, event: ChangeEvent
) -> None:
    http = RecordingHttpClient({DIFF_URL: HttpResponse(status_code=404)})
    host = _host("azure-sdk-for-go")
    runner = ScriptedRunner()
    orchestrator = _orchestrator(settings, http, host, blobs, runner)

    state = orchestrator.handle_change(event)

    assert state.iteration is None
    assert state.repositories == {}
    assert blobs.blobs == {}
    assert runner.calls == []
    assert host.comments == {}
    assert orchestrator.last_log is not None
    assert orchestrator.last_log.lines[-1] == "ERROR: diff_url response status code is 404."


def test_unresolvable_repositories_are_reported_as_failed(
    settings: Settings, http: RecordingHttpClient, blobs: InMemoryBlobStore, event: ChangeEvent
) -> None:
    host = _host("azure-sdk-for-go", "azure-sdk-for-missing")
    runner = ScriptedRunner()
    orchestrator = _orchestrator(settings, http, host, blobs, runner)

    state = orchestrator.handle_change(event)

    missing = state.repositories["Azure/azure-sdk-for-missing"]
    assert missing.status == GenerationStatus.FAILED
    assert missing.reason == "Repository Azure/azure-sdk-for-missing is not reachable."
    assert state.repositories[_GO].status == GenerationStatus.SUCCEEDED
    assert all("azure-sdk-for-missing" not in command for command in runner.commands())


def test_comment_failures_do_not_stop_generation(
    settings: Settings, http: RecordingHttpClient, blobs: InMemoryBlobStore, event: ChangeEvent
) -> None:
    host = _host("azure-sdk-for-go")
    host.fail_comments = True
    orchestrator = _orchestrator(settings, http, host, blobs, ScriptedRunner())

    state = orchestrator.handle_change(event)

    assert state.comment_id is None
    assert state.repositories[_GO].status == GenerationStatus.SUCCEEDED
    assert orchestrator.last_log is not None
    assert "ERROR: Failed to post status comment: comments are disabled" in orchestrator.last_log.lines


def test_keep_clones_preserves_the_iteration_folder(
    settings: Settings, http: RecordingHttpClient, blobs: InMemoryBlobStore, event: ChangeEvent
) -> None:
    settings.keep_clones = True
    host = _host("azure-sdk-for-go")
    orchestrator = _orchestrator(settings, http, host, blobs, ScriptedRunner().on(clone_creates({"go.mod": "x"})))

    orchestrator.handle_change(event)

    clone = settings.workspace_root / "Azure" / "azure-rest-api-specs" / "5025" / "1" / "1"
    assert (clone / "go.mod").is_file()


def test_no_requested_repositories_completes_empty(
    settings: Settings, http: RecordingHttpClient, blobs: InMemoryBlobStore, event: ChangeEvent
) -> None:
    host = FakeSourceHost()
    orchestrator = _orchestrator(settings, http, host, blobs, ScriptedRunner())

    state = orchestrator.handle_change(event)

    assert state.iteration == 1
    assert state.repositories == {}
    assert "No SDK repositories were requested by this change." in orchestrator.summary(state)


def test_empty_diff_runs_no_workflows(settings: Settings, blobs: InMemoryBlobStore, event: ChangeEvent) -> None:
    http = RecordingHttpClient({DIFF_URL: HttpResponse(status_code=200, body="")})
    runner = ScriptedRunner()
    orchestrator = _orchestrator(settings, http, _host("azure-sdk-for-go"), blobs, runner)

    state = orchestrator.handle_change(event)

    assert state.repositories == {}
    assert runner.calls == []
    assert orchestrator.last_log is not None
    assert orchestrator.last_log.lines[-1] == "ERROR: diff_url response body is empty."


class _GenerationCounter:
    """Counts generator commands running at the same time."""

    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self.started = 0
        self._lock = threading.Lock()

    def __call__(self, text: str, cwd: Path) -> Optional[ProcessResult]:
        if not text.startswith("autorest"):
            return None
        with self._lock:
            self.active += 1
            self.started += 1
            self.peak = max(self.peak, self.active)
        time.sleep(0.05)
        with self._lock:
            self.active -= 1
        return ProcessResult(exit_code=0)


@pytest.mark.parametrize("max_workers", [1, 2])
def test_workflows_never_exceed_the_worker_limit(
    settings: Settings,
    http: RecordingHttpClient,
    blobs: InMemoryBlobStore,
    event: ChangeEvent,
    max_workers: int,
) -> None:
    settings.max_workers = max_workers
    repositories = [_PYTHON, _GO, _NET, _JS]
    host = _host(*repositories, reachable=tuple(repositories))
    generator = _GenerationCounter()
    runner = ScriptedRunner().on(generator).on(clone_creates({}))
    orchestrator = _orchestrator(settings, http, host, blobs, runner)

    state = orchestrator.handle_change(event)

    assert generator.started == len(repositories)
    assert 1 <= generator.peak <= max_workers
    assert all(
        state.repositories[name].status == GenerationStatus.SUCCEEDED for name in repositories
    )
