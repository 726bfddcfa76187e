"""Pipeline orchestration for pull request change events."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import Settings, default_settings
from .errors import DiffParseError, TransportError
from .git.changes import ChangeDetector
from .hosting import GitHubClient, HttpClient, SourceHost, UrllibHttpClient
from .languages import LanguageRule
from .logging import RunLog, get_logger
from .models import (
    ChangeEvent,
    GenerationResult,
    GenerationState,
    GenerationStatus,
    RepositoryTarget,
)
from .process import ProcessRunner, SubprocessRunner
from .report import StatusReporter
from .resolver import ConfigurationResolver
from .stores.blob import TEXT_PLAIN, BlobStore, FileSystemBlobStore
from .stores.state import GenerationStateStore
from .workflow import RepositoryWorkflow
from .workspace import (
    Workspace,
    allocate_iteration,
    iteration_prefix,
    logs_blob,
    reserve_repository_folder,
)


class Orchestrator:
    """Turns one change event into independent per-repository workflows."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        http: HttpClient | None = None,
        host: SourceHost | None = None,
        blobs: BlobStore | None = None,
        runner: ProcessRunner | None = None,
        languages: Optional[Sequence[LanguageRule]] = None,
        reporter: StatusReporter | None = None,
    ) -> None:
        self.settings = settings or default_settings(Path.cwd())
        self.http = http or UrllibHttpClient()
        self.host = host or GitHubClient(
            self.http,
            api_url=self.settings.github.api_url,
            raw_url=self.settings.github.raw_url,
            web_url=self.settings.github.web_url,
            token=self.settings.github.token,
        )
        self.blobs = blobs or FileSystemBlobStore(
            self.settings.blob_root, self.settings.blob_container
        )
        self.runner = runner or SubprocessRunner(timeout=self.settings.command_timeout)
        self.languages = list(languages if languages is not None else self.settings.languages)
        self.reporter = reporter or StatusReporter()
        self.resolver = ConfigurationResolver(
            self.http, self.host, default_owner=self.settings.default_owner
        )
        self.workspace = Workspace(self.settings.workspace_root)
        self.states = GenerationStateStore(self.blobs)
        self.logger = get_logger("orchestrator")
        self.last_log: Optional[RunLog] = None
        self._lock = threading.RLock()

    def handle_change(self, event: ChangeEvent) -> GenerationState:
        """Run generation for every repository the change requests.

        The returned state is always ``completed``; inspect
        ``state.repositories`` for per-repository outcomes.
        """
        log = RunLog(self.logger)
        self.last_log = log
        state = GenerationState(
            repository=event.repository, number=event.number, html_url=event.html_url
        )
        log.info(
            f'Received pull request change webhook request from GitHub for "{event.html_url}".'
        )

        try:
            changed = self.resolver.fetch_changed_files(event, log)
        except DiffParseError as exc:
            log.error(str(exc))
            changed = None
        if changed is None:
            state.status = "completed"
            return state

        if not self.blobs.container_exists():
            self.blobs.create_container()
        state.iteration = allocate_iteration(self.blobs, event.repository, event.number)
        prefix = iteration_prefix(event.repository, event.number, state.iteration)
        iteration_root = self.workspace.create_iteration_root(
            event.repository, event.number, state.iteration
        )
        log.info(f"Starting generation iteration {state.iteration} in {iteration_root}.")
        self._persist(state)
        self._post_status_comment(state, log)

        targets: List[RepositoryTarget] = []
        try:
            targets = self.resolver.resolve(
                event,
                changed.configuration_documents(),
                log,
                lambda clone_dir: reserve_repository_folder(iteration_root, clone_dir),
            )
            self._register_targets(state, targets)

            runnable = [target for target in targets if target.resolved]
            if not runnable:
                log.info("No SDK repositories to generate.")
            else:
                log.info(
                    f"Generating {len(runnable)} repositories with up to "
                    f"{self.settings.max_workers} workers."
                )
                self._run_workflows(state, runnable, prefix, log)
        finally:
            if not self.settings.keep_clones:
                self.workspace.remove(iteration_root)
            self._finalize(state, targets, prefix, log)
        return state

    # ------------------------------------------------------------------
    # Fan-out

    def _run_workflows(
        self,
        state: GenerationState,
        targets: Sequence[RepositoryTarget],
        prefix: str,
        log: RunLog,
    ) -> None:
        with ThreadPoolExecutor(
            max_workers=self.settings.max_workers, thread_name_prefix="sdkgen-workflow"
        ) as pool:
            futures = {
                pool.submit(self._run_workflow, state, target, prefix): target
                for target in targets
            }
            for future in as_completed(futures):
                target = futures[future]
                self._complete(state, target.name, future.result(), log)

    def _run_workflow(
        self, state: GenerationState, target: RepositoryTarget, prefix: str
    ) -> GenerationResult:
        with self._lock:
            state.repositories[target.name].transition(GenerationStatus.IN_PROGRESS)
            self._persist(state)
        workflow = RepositoryWorkflow(
            target,
            prefix=prefix,
            runner=self.runner,
            blobs=self.blobs,
            languages=self.languages,
            detector=ChangeDetector(self.runner),
            generator=self.settings.generator,
            keep_clones=self.settings.keep_clones,
            archive_unpackaged=self.settings.archive_unpackaged,
        )
        try:
            return workflow.run()
        except Exception as exc:  # pragma: no cover - workflow converts its own errors
            self.logger.exception("Workflow for %s crashed", target.name)
            return GenerationResult(
                status=GenerationStatus.FAILED,
                logs=workflow.log.text(),
                reason=f"Unexpected error: {exc}",
            )

    def _complete(
        self, state: GenerationState, name: str, result: GenerationResult, log: RunLog
    ) -> None:
        with self._lock:
            current = state.repositories[name]
            current.transition(result.status)
            current.logs = result.logs
            current.artifacts = list(result.artifacts)
            current.reason = result.reason
            self._persist(state)
        log.info(f"Generation for {name} finished with status {result.status.value}.")
        self._refresh_status_comment(state, log)

    # ------------------------------------------------------------------
    # State and reporting

    def _register_targets(self, state: GenerationState, targets: Sequence[RepositoryTarget]) -> None:
        with self._lock:
            for target in targets:
                result = GenerationResult()
                if target.failure:
                    result.transition(GenerationStatus.FAILED)
                    result.reason = target.failure
                    result.logs = f"{RunLog.ERROR_PREFIX}{target.failure}\n"
                state.repositories[target.name] = result
            self._persist(state)

    def _finalize(
        self,
        state: GenerationState,
        targets: Sequence[RepositoryTarget],
        prefix: str,
        log: RunLog,
    ) -> None:
        succeeded = len(results_by_status(state)[GenerationStatus.SUCCEEDED.value])
        log.info(
            f"Generation iteration {state.iteration} completed: "
            f"{succeeded} of {len(state.repositories)} repositories succeeded."
        )
        name = logs_blob(prefix)
        self.blobs.write_text(name, self._aggregate_logs(state, targets, log), content_type=TEXT_PLAIN)
        with self._lock:
            state.logs_blob = name
            state.status = "completed"
            self._persist(state)
        self._refresh_status_comment(state, log)

    @staticmethod
    def _aggregate_logs(
        state: GenerationState, targets: Sequence[RepositoryTarget], log: RunLog
    ) -> str:
        sections: List[str] = [log.text()]
        for target in targets:
            result = state.repositories.get(target.name)
            if result is None:
                continue
            sections.append(f"\n===== {target.name} ({result.status.value}) =====\n")
            sections.append(result.logs)
        return "".join(sections)

    def _persist(self, state: GenerationState) -> None:
        with self._lock:
            self.states.save(state)

    def _post_status_comment(self, state: GenerationState, log: RunLog) -> None:
        if not self.settings.post_status_comment:
            return
        try:
            state.comment_id = self.host.post_comment(
                state.repository, state.number, self.reporter.render(state)
            )
        except TransportError as exc:
            log.error(f"Failed to post status comment: {exc}")
            return
        self._persist(state)

    def _refresh_status_comment(self, state: GenerationState, log: RunLog) -> None:
        if state.comment_id is None:
            return
        with self._lock:
            body = self.reporter.render(state)
        try:
            self.host.update_comment(state.repository, state.comment_id, body)
        except TransportError as exc:
            log.error(f"Failed to update status comment: {exc}")

    def load_state(self, repository: str, number: int, iteration: int) -> Optional[GenerationState]:
        """Read a previously persisted generation state."""
        return self.states.load(repository, number, iteration)

    def summary(self, state: GenerationState) -> str:
        return self.reporter.render(state)


def results_by_status(state: GenerationState) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {status.value: [] for status in GenerationStatus}
    for name, result in state.repositories.items():
        grouped[result.status.value].append(name)
    return grouped


__all__ = ["Orchestrator", "results_by_status"]
