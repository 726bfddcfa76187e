"""Resolution of SDK repository targets from a pull request change.

The resolver reads the pull request diff, finds the API configuration
documents (``readme.md``) affected by it, reads the ``swagger-to-sdk``
blocks they contain, and turns every requested repository into a
:class:`~sdkgen.models.RepositoryTarget` with a fully resolved
:class:`~sdkgen.models.InvocationSpec`.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import yaml

from .errors import AllocationError, ConfigParseError, EmptyContentError, TransportError
from .git.diff import DIFF_GIT_PREFIX, ChangedFileSet, diff_git_lines, parse_diff, split_lines
from .hosting import HttpClient, SourceHost
from .logging import RunLog
from .models import ChangeEvent, InvocationSpec, OptionValue, RepositoryTarget

CONFIG_BLOCK_KEY = "swagger-to-sdk"
REPOSITORY_CONFIG_PATH = "swagger_to_sdk_config.json"
OUTPUT_FOLDER_OPTION = "output-folder"
SDK_RELATIVE_MARKER = "sdkrel:"
DEFAULT_OWNER = "Azure"

_FENCED_BLOCK = re.compile(
    r"^```(?P<info>[^\n`]*)\n(?P<body>.*?)^```", flags=re.MULTILINE | re.DOTALL
)

SlotAllocator = Callable[[Optional[str]], Path]


@dataclass(frozen=True)
class RepositoryRequest:
    """One ``{repo, after_scripts}`` entry from a configuration block."""

    name: str
    config_document: str
    after_scripts: Optional[List[str]] = None


class ConfigurationResolver:
    """Turns a change event into the ordered list of repository targets."""

    def __init__(
        self,
        http: HttpClient,
        host: SourceHost,
        *,
        default_owner: str = DEFAULT_OWNER,
    ) -> None:
        self.http = http
        self.host = host
        self.default_owner = default_owner

    # ------------------------------------------------------------------
    # Diff handling

    def fetch_changed_files(self, event: ChangeEvent, log: RunLog) -> Optional[ChangedFileSet]:
        """Fetch and parse the pull request diff.

        Returns ``None`` when the diff cannot be used; the reason has been
        logged. Raises :class:`DiffParseError` for malformed headers.
        """
        log.info(f"Getting diff_url ({event.diff_url}) contents...")
        try:
            body = self._fetch_diff(event.diff_url, log)
        except TransportError as exc:
            log.error(str(exc))
            return None

        lines = split_lines(body)
        log.info(f"diff_url response body contains {len(lines)} lines.")
        header_lines = diff_git_lines(lines)
        log.info(f'diff_url response body contains {len(header_lines)} "{DIFF_GIT_PREFIX}" lines.')
        changed = parse_diff(body)
        log.info(f"diff_url response body contains {len(changed.paths)} changed files:")
        for path in changed.paths:
            log.info(path)
        specification_paths = changed.specification_paths
        log.info(
            f"diff_url response body contains {len(specification_paths)} changed files in the specification folder:"
        )
        for path in specification_paths:
            log.info(path)
        documents = changed.configuration_documents()
        log.info(f"Found {len(documents)} readme.md files to generate:")
        for document in documents:
            log.info(document)
        return changed

    def _fetch_diff(self, url: str, log: RunLog) -> str:
        try:
            response = self.http.send("GET", url)
        except TransportError as exc:
            raise TransportError(f"diff_url request failed: {exc}") from exc

        status_message = f"diff_url response status code is {response.status_code}."
        if response.status_code != 200:
            raise TransportError(status_message, status_code=response.status_code)
        log.info(status_message)
        if not response.body:
            raise EmptyContentError("diff_url response body is empty.", status_code=200)
        return response.body

    # ------------------------------------------------------------------
    # Target resolution

    def resolve(
        self,
        event: ChangeEvent,
        documents: Sequence[str],
        log: RunLog,
        allocate_slot: SlotAllocator,
    ) -> List[RepositoryTarget]:
        """Resolve every repository requested by ``documents``.

        ``allocate_slot`` receives the configured ``clone_dir`` (or ``None``)
        and returns the reserved clone folder for that repository.
        """
        requests: List[RepositoryRequest] = []
        seen: set[str] = set()
        for document in documents:
            for request in self._requests_for_document(event, document, log):
                if request.name in seen:
                    log.info(f"Repository {request.name} already requested; skipping duplicate.")
                    continue
                seen.add(request.name)
                requests.append(request)

        targets: List[RepositoryTarget] = []
        for request in requests:
            targets.append(self._resolve_request(event, request, log, allocate_slot))
        return targets

    def _requests_for_document(
        self, event: ChangeEvent, document: str, log: RunLog
    ) -> List[RepositoryRequest]:
        log.info(f"Getting {document} at {event.merge_sha}...")
        try:
            content = self.host.get_file_content(event.repository, document, event.merge_sha)
        except TransportError as exc:
            log.error(f"Failed to get {document}: {exc}")
            return []
        if not content:
            log.error(f"{document} is missing or empty.")
            return []
        try:
            requests = parse_repository_requests(content, document, self.default_owner)
        except ConfigParseError as exc:
            log.error(f"Failed to parse {document}: {exc}")
            return []
        log.info(f"{document} requests {len(requests)} repositories:")
        for request in requests:
            log.info(request.name)
        return requests

    def _resolve_request(
        self,
        event: ChangeEvent,
        request: RepositoryRequest,
        log: RunLog,
        allocate_slot: SlotAllocator,
    ) -> RepositoryTarget:
        target = RepositoryTarget(name=request.name, config_document=request.config_document)
        try:
            if not self.host.repository_exists(request.name):
                return self._fail(target, f"Repository {request.name} is not reachable.", log)
            raw = self.host.get_file_content(request.name, REPOSITORY_CONFIG_PATH)
        except TransportError as exc:
            return self._fail(target, f"Failed to query {request.name}: {exc}", log)

        try:
            config = parse_repository_config(raw)
        except ConfigParseError as exc:
            return self._fail(target, f"{request.name}/{REPOSITORY_CONFIG_PATH}: {exc}", log)

        advanced = _as_dict(config["meta"].get("advanced_options"))
        clone_dir = _as_str(advanced.get("clone_dir"))
        try:
            clone_root = allocate_slot(clone_dir)
        except (AllocationError, OSError) as exc:
            return self._fail(target, f"Could not allocate a clone folder: {exc}", log)

        target.spec = build_invocation(
            config,
            document=request.config_document,
            input_document=self.host.raw_file_url(
                event.repository, request.config_document, event.merge_sha
            ),
            clone_url=self.host.clone_url(request.name),
            clone_root=clone_root,
            after_scripts=request.after_scripts,
        )
        log.info(f"Resolved {request.name} into {clone_root}.")
        return target

    @staticmethod
    def _fail(target: RepositoryTarget, reason: str, log: RunLog) -> RepositoryTarget:
        log.error(reason)
        target.failure = reason
        return target


# ----------------------------------------------------------------------
# Parsing helpers


def canonical_repository_name(name: str, default_owner: str = DEFAULT_OWNER) -> str:
    name = name.strip().strip("/")
    if "/" in name:
        return name
    return f"{default_owner}/{name}"


def configuration_blocks(markdown: str) -> List[str]:
    """Return the bodies of fenced blocks tagged for SDK generation."""
    return [
        match.group("body")
        for match in _FENCED_BLOCK.finditer(markdown)
        if CONFIG_BLOCK_KEY in match.group("info")
    ]


def parse_repository_requests(
    markdown: str, document: str, default_owner: str = DEFAULT_OWNER
) -> List[RepositoryRequest]:
    requests: List[RepositoryRequest] = []
    for body in configuration_blocks(markdown):
        try:
            data = yaml.safe_load(body)
        except yaml.YAMLError as exc:
            raise ConfigParseError(f"invalid YAML in {CONFIG_BLOCK_KEY} block: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigParseError(f"{CONFIG_BLOCK_KEY} block must contain a mapping")
        entries = data.get(CONFIG_BLOCK_KEY) or []
        if not isinstance(entries, list):
            raise ConfigParseError(f"{CONFIG_BLOCK_KEY} must be a list")
        for entry in entries:
            if not isinstance(entry, dict) or not _as_str(entry.get("repo")):
                raise ConfigParseError(f"{CONFIG_BLOCK_KEY} entries need a repo name")
            after_scripts = entry.get("after_scripts")
            requests.append(
                RepositoryRequest(
                    name=canonical_repository_name(str(entry["repo"]), default_owner),
                    config_document=document,
                    after_scripts=_as_str_list(after_scripts) if after_scripts is not None else None,
                )
            )
    return requests


def parse_repository_config(text: Optional[str]) -> Dict[str, Any]:
    if text is None:
        raise ConfigParseError("configuration file is missing")
    if not text.strip():
        raise ConfigParseError("configuration file is empty")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigParseError(f"configuration file is not valid JSON: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("meta"), dict):
        raise ConfigParseError("configuration file has no meta section")
    return data


def build_invocation(
    config: Mapping[str, Any],
    *,
    document: str,
    input_document: str,
    clone_url: str,
    clone_root: Path,
    after_scripts: Optional[List[str]] = None,
) -> InvocationSpec:
    """Merge global and per-project settings into one invocation.

    Later sources win per key; the output folder is injected last.
    """
    meta = _as_dict(config.get("meta"))
    advanced = _as_dict(meta.get("advanced_options"))

    options: Dict[str, OptionValue] = {}
    options.update(_as_options(meta.get("autorest_options")))
    for project in _as_dict(config.get("projects")).values():
        project = _as_dict(project)
        if _as_str(project.get("markdown")) == document:
            options.update(_as_options(project.get("autorest_options")))
    options = resolve_relative_options(options, clone_root)
    options.pop(OUTPUT_FOLDER_OPTION, None)
    options[OUTPUT_FOLDER_OPTION] = str(clone_root)

    scripts = after_scripts if after_scripts is not None else _as_str_list(meta.get("after_scripts"))
    return InvocationSpec(
        input_document=input_document,
        clone_url=clone_url,
        clone_root=clone_root,
        clone_dir=_as_str(advanced.get("clone_dir")),
        options=options,
        keep_patterns=_as_str_list(advanced.get("wrapper_filesOrDirs")),
        delete_patterns=_as_str_list(advanced.get("delete_filesOrDirs")),
        generated_relative_base_directory=_as_str(advanced.get("generated_relative_base_directory")),
        output_dir=_as_str(advanced.get("output_dir")),
        build_dir=_as_str(advanced.get("build_dir")),
        after_scripts=list(scripts),
        envs={str(key): str(value) for key, value in _as_dict(meta.get("envs")).items()},
    )


def resolve_relative_options(
    options: Mapping[str, OptionValue], clone_root: Path
) -> Dict[str, OptionValue]:
    """Replace ``sdkrel:`` values with paths under the clone root."""
    resolved: Dict[str, OptionValue] = {}
    for key, value in options.items():
        if isinstance(value, str) and value.startswith(SDK_RELATIVE_MARKER):
            relative = value[len(SDK_RELATIVE_MARKER):].lstrip("/")
            value = str(clone_root / relative) if relative else str(clone_root)
        resolved[key] = value
    return resolved


def _as_options(value: Any) -> Dict[str, OptionValue]:
    options: Dict[str, OptionValue] = {}
    for key, item in _as_dict(value).items():
        if isinstance(item, (bool, int, float, str)):
            options[str(key)] = item
        elif item is None:
            options[str(key)] = True
    return options


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_BLOCK_KEY",
    "ConfigurationResolver",
    "OUTPUT_FOLDER_OPTION",
    "REPOSITORY_CONFIG_PATH",
    "RepositoryRequest",
    "build_invocation",
    "canonical_repository_name",
    "configuration_blocks",
    "parse_repository_config",
    "parse_repository_requests",
    "resolve_relative_options",
]
