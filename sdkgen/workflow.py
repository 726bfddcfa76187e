"""Per-repository generation workflow.

One :class:`RepositoryWorkflow` drives a single SDK repository through::

    cloning -> configuring -> generating -> post_processing
            -> packaging -> uploading -> cleaning_up -> succeeded | failed

Any failure, expected or not, jumps straight to uploading the log and
cleaning up; the error never leaves :meth:`RepositoryWorkflow.run`.
"""

from __future__ import annotations

import mimetypes
import shutil
import tempfile
from enum import Enum
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from .errors import ProcessExecutionError, SdkGenError
from .git.changes import ChangeDetector
from .languages import DEFAULT_LANGUAGES, LanguageRule, resolve_language
from .logging import RunLog, get_logger
from .models import GenerationResult, GenerationStatus, InvocationSpec, RepositoryTarget
from .process import Command, ProcessRunner, command_text
from .stores.blob import APPLICATION_OCTET_STREAM, TEXT_PLAIN, BlobStore
from .workspace import artifact_blob, logs_blob


class WorkflowStage(str, Enum):
    CLONING = "cloning"
    CONFIGURING = "configuring"
    GENERATING = "generating"
    POST_PROCESSING = "post_processing"
    PACKAGING = "packaging"
    UPLOADING = "uploading"
    CLEANING_UP = "cleaning_up"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RepositoryWorkflow:
    """Runs the generation stages for one resolved repository target."""

    def __init__(
        self,
        target: RepositoryTarget,
        *,
        prefix: str,
        runner: ProcessRunner,
        blobs: BlobStore,
        languages: Sequence[LanguageRule] = DEFAULT_LANGUAGES,
        detector: ChangeDetector | None = None,
        generator: str = "autorest",
        keep_clones: bool = False,
        archive_unpackaged: bool = True,
    ) -> None:
        if target.spec is None:
            raise ValueError(f"Repository {target.name} has no invocation to run")
        self.target = target
        self.spec: InvocationSpec = target.spec
        self.prefix = prefix
        self.runner = runner
        self.blobs = blobs
        self.languages = list(languages)
        self.detector = detector or ChangeDetector(runner)
        self.generator = generator
        self.keep_clones = keep_clones
        self.archive_unpackaged = archive_unpackaged
        self.log = RunLog(get_logger("workflow"))
        self.stage = WorkflowStage.CLONING
        self.history: List[WorkflowStage] = []
        self.language: Optional[LanguageRule] = None
        self._archives: List[Path] = []

    @property
    def clone_root(self) -> Path:
        return self.spec.clone_root

    def run(self) -> GenerationResult:
        """Execute every stage and return the terminal result."""
        self.log.info(f"Starting generation for {self.target.name} in {self.clone_root}.")
        artifacts: List[Path] = []
        uploaded: List[str] = []
        failure: Optional[str] = None
        try:
            try:
                self._enter(WorkflowStage.CLONING)
                self._clone()
                self._enter(WorkflowStage.CONFIGURING)
                self._configure()
                self._enter(WorkflowStage.GENERATING)
                self._generate()
                self._enter(WorkflowStage.POST_PROCESSING)
                changed_files, package_folders = self._post_process()
                self._enter(WorkflowStage.PACKAGING)
                artifacts = self._package(changed_files, package_folders)
            except Exception as exc:
                failure = _failure_reason(exc)
                self.log.error(f"{self.stage.value} failed for {self.target.name}: {failure}")

            try:
                self._enter(WorkflowStage.UPLOADING)
                uploaded = self._upload(artifacts)
            except Exception as exc:
                failure = failure or _failure_reason(exc)
                self.log.error(f"uploading failed for {self.target.name}: {_failure_reason(exc)}")
        finally:
            self._enter(WorkflowStage.CLEANING_UP)
            self._cleanup()

        terminal = WorkflowStage.FAILED if failure else WorkflowStage.SUCCEEDED
        self._enter(terminal)
        self.log.info(f"Generation for {self.target.name} {terminal.value}.")
        self._write_logs()
        return GenerationResult(
            status=GenerationStatus.FAILED if failure else GenerationStatus.SUCCEEDED,
            logs=self.log.text(),
            artifacts=uploaded,
            reason=failure,
        )

    # ------------------------------------------------------------------
    # Stages

    def _clone(self) -> None:
        self.clone_root.parent.mkdir(parents=True, exist_ok=True)
        self._execute(
            "clone",
            ["git", "clone", "--depth", "1", self.spec.clone_url, str(self.clone_root)],
            cwd=self.clone_root.parent,
        )

    def _configure(self) -> None:
        self.language = resolve_language(self.target.name, self.languages)
        if self.language is None:
            self.log.info(f"No language rule matches {self.target.name}; treating it as non-packaged.")
            return
        self.log.info(f"Repository {self.target.name} uses language rule {self.language.name}.")
        for command in self.language.install_commands:
            self._execute("install", command, cwd=self.clone_root, env=self.spec.envs)

    def _generate(self) -> None:
        self._delete_configured_paths()
        with tempfile.TemporaryDirectory(dir=self.clone_root.parent) as holding:
            kept = self._snapshot_kept_paths(Path(holding))
            self._execute(
                "generate",
                self.spec.command_line(self.generator),
                cwd=self.clone_root,
                env=self.spec.envs,
            )
            self._restore_kept_paths(Path(holding), kept)
        if self.spec.generated_relative_base_directory:
            self._relocate_generated_output(self.spec.generated_relative_base_directory)

    def _post_process(self) -> tuple[List[str], List[Path]]:
        for script in self.spec.after_scripts:
            self._execute("after_script", script, cwd=self.clone_root, env=self.spec.envs)

        changed = self.detector.detect_changed_files(self.clone_root)
        if not changed:
            self.log.info("No changes detected in the generated repository.")
            return [], []
        self.log.info(f"Detected {len(changed)} changed files:")
        for path in changed:
            self.log.info(path)
        folders = self.detector.detect_changed_package_folders(
            self.clone_root, changed, self.language
        )
        for folder in folders:
            self.log.info(f"Changed package: {_relative(folder, self.clone_root)}")
        return changed, folders

    def _package(self, changed_files: Sequence[str], package_folders: Sequence[Path]) -> List[Path]:
        rule = self.language
        if rule is not None and rule.packaged:
            if not package_folders:
                self.log.info("No changed packages to build.")
                return []
            artifacts: List[Path] = []
            for folder in package_folders:
                self._execute("package", rule.build_command or "", cwd=folder, env=self.spec.envs)
                built = sorted(folder.glob(self._artifact_glob(rule)))
                if not built:
                    raise SdkGenError(
                        f"Package build in {_relative(folder, self.clone_root)} produced no artifacts"
                    )
                artifacts.extend(path for path in built if path not in artifacts)
            return artifacts

        if not changed_files:
            return []
        if not self.archive_unpackaged:
            self.log.info("Repository is not packaged and archiving is disabled.")
            return []
        archive_base = self.clone_root.parent / f"{self.clone_root.name}-{self._short_name}"
        archive = Path(shutil.make_archive(str(archive_base), "zip", root_dir=self.clone_root))
        self._archives.append(archive)
        self.log.info(f"Archived the generated repository into {archive.name}.")
        return [archive]

    def _upload(self, artifacts: Sequence[Path]) -> List[str]:
        uploaded: List[str] = []
        for artifact in artifacts:
            name = artifact_blob(self.prefix, self.target.name, artifact.name)
            content_type, _ = mimetypes.guess_type(artifact.name)
            self.blobs.write_bytes(
                name,
                artifact.read_bytes(),
                content_type=content_type or APPLICATION_OCTET_STREAM,
            )
            self.log.info(f"Uploaded {artifact.name} to {name}.")
            uploaded.append(name)
        self._write_logs()
        return uploaded

    def _cleanup(self) -> None:
        if self.keep_clones:
            self.log.info(f"Keeping clone folder {self.clone_root}.")
            return
        shutil.rmtree(self.clone_root, ignore_errors=True)
        for archive in self._archives:
            archive.unlink(missing_ok=True)
        self.log.info(f"Deleted clone folder {self.clone_root}.")

    # ------------------------------------------------------------------
    # Helpers

    @property
    def _short_name(self) -> str:
        return self.target.name.rsplit("/", 1)[-1]

    def _enter(self, stage: WorkflowStage) -> None:
        self.stage = stage
        self.history.append(stage)

    def _write_logs(self) -> None:
        self.blobs.write_text(
            logs_blob(self.prefix, self.target.name), self.log.text(), content_type=TEXT_PLAIN
        )

    def _execute(
        self,
        label: str,
        command: Command,
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> str:
        text = command_text(command)
        self.log.info(f"Running {label}: {text}")
        result = self.runner.run(command, cwd=cwd, env=env or None)
        for line in result.stdout.splitlines():
            self.log.info(line)
        if result.ok:
            for line in result.stderr.splitlines():
                self.log.info(line)
        else:
            for line in result.stderr.splitlines():
                self.log.error(line)
            raise ProcessExecutionError(
                f"{label} command exited with code {result.exit_code}", result
            )
        return result.stdout

    def _artifact_glob(self, rule: LanguageRule) -> str:
        pattern = rule.artifact_glob or "*"
        if self.spec.build_dir:
            return f"{self.spec.build_dir.rstrip('/')}/{Path(pattern).name}"
        return pattern

    def _delete_configured_paths(self) -> None:
        for pattern in self.spec.delete_patterns:
            for path in sorted(self.clone_root.glob(pattern), reverse=True):
                if self._is_kept(path):
                    continue
                self.log.info(f"Deleting {_relative(path, self.clone_root)} before generation.")
                if path.is_dir():
                    shutil.rmtree(path)
                elif path.exists():
                    path.unlink()

    def _is_kept(self, path: Path) -> bool:
        return any(path in self.clone_root.glob(pattern) for pattern in self.spec.keep_patterns)

    def _snapshot_kept_paths(self, holding: Path) -> List[str]:
        kept: List[str] = []
        for pattern in self.spec.keep_patterns:
            for path in self.clone_root.glob(pattern):
                relative = _relative(path, self.clone_root)
                destination = holding / relative
                destination.parent.mkdir(parents=True, exist_ok=True)
                if path.is_dir():
                    shutil.copytree(path, destination, dirs_exist_ok=True)
                else:
                    shutil.copy2(path, destination)
                kept.append(relative)
        return kept

    def _restore_kept_paths(self, holding: Path, kept: Sequence[str]) -> None:
        for relative in kept:
            source = holding / relative
            destination = self.clone_root / relative
            destination.parent.mkdir(parents=True, exist_ok=True)
            if source.is_dir():
                shutil.copytree(source, destination, dirs_exist_ok=True)
            else:
                shutil.copy2(source, destination)
        if kept:
            self.log.info(f"Restored {len(kept)} kept paths after generation.")

    def _relocate_generated_output(self, pattern: str) -> None:
        matches = sorted(path for path in self.clone_root.glob(pattern) if path.is_dir())
        if not matches:
            raise SdkGenError(f"Generated output matching {pattern} was not found")
        source = matches[0]
        destination = self.clone_root / (self.spec.output_dir or "")
        if source == destination:
            return
        destination.mkdir(parents=True, exist_ok=True)
        for child in list(source.iterdir()):
            target = destination / child.name
            if target.is_dir():
                shutil.rmtree(target)
            elif target.exists():
                target.unlink()
            shutil.move(str(child), str(target))
        if source not in destination.parents and not any(source.iterdir()):
            source.rmdir()
        self.log.info(
            f"Moved generated output from {_relative(source, self.clone_root)} "
            f"to {_relative(destination, self.clone_root) or '.'}."
        )


def _failure_reason(exc: Exception) -> str:
    if isinstance(exc, (SdkGenError, OSError)):
        return str(exc)
    return f"Unexpected error: {type(exc).__name__}: {exc}"


def _relative(path: Path, root: Path) -> str:
    try:
        relative = path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
    return "" if relative == "." else relative


__all__ = ["RepositoryWorkflow", "WorkflowStage"]
