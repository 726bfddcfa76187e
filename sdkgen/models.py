"""Core data models shared across sdkgen components."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

OptionValue = Union[bool, int, float, str]


@dataclass(frozen=True)
class ChangeEvent:
    """Normalized pull request change notification."""

    repository: str
    number: int
    head_sha: str
    base_sha: str
    diff_url: str
    merge_sha: str
    html_url: str = ""

    @classmethod
    def from_webhook(cls, payload: Mapping[str, Any]) -> "ChangeEvent":
        """Build an event from a GitHub ``pull_request`` webhook body."""
        pull_request = payload.get("pull_request")
        if not isinstance(pull_request, Mapping):
            raise ValueError("webhook payload has no pull_request object")

        base = _as_mapping(pull_request.get("base"))
        head = _as_mapping(pull_request.get("head"))
        repository = _as_mapping(payload.get("repository")).get("full_name")
        if not repository:
            repository = _as_mapping(base.get("repo")).get("full_name")
        if not repository:
            raise ValueError("webhook payload does not name the source repository")

        number = pull_request.get("number", payload.get("number"))
        if number is None:
            raise ValueError("webhook payload has no pull request number")

        head_sha = str(head.get("sha") or "")
        merge_sha = pull_request.get("merge_commit_sha") or head_sha
        return cls(
            repository=str(repository),
            number=int(number),
            head_sha=head_sha,
            base_sha=str(base.get("sha") or ""),
            diff_url=str(pull_request.get("diff_url") or ""),
            merge_sha=str(merge_sha),
            html_url=str(pull_request.get("html_url") or ""),
        )


@dataclass
class InvocationSpec:
    """Fully resolved arguments for one repository's generation call."""

    input_document: str
    clone_url: str
    clone_root: Path
    clone_dir: Optional[str] = None
    options: Dict[str, OptionValue] = field(default_factory=dict)
    keep_patterns: List[str] = field(default_factory=list)
    delete_patterns: List[str] = field(default_factory=list)
    generated_relative_base_directory: Optional[str] = None
    output_dir: Optional[str] = None
    build_dir: Optional[str] = None
    after_scripts: List[str] = field(default_factory=list)
    envs: Dict[str, str] = field(default_factory=dict)

    def command_line(self, generator: str) -> List[str]:
        """Render the generator invocation as an argument list."""
        args = [generator, self.input_document]
        for key, value in self.options.items():
            if value is True:
                args.append(f"--{key}")
            elif value is False:
                continue
            else:
                args.append(f"--{key}={value}")
        return args


@dataclass
class RepositoryTarget:
    """An SDK repository requested by a configuration document."""

    name: str
    config_document: str
    spec: Optional[InvocationSpec] = None
    failure: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.spec is not None and self.failure is None


class GenerationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "inProgress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (GenerationStatus.SUCCEEDED, GenerationStatus.FAILED)


@dataclass
class GenerationResult:
    """Outcome of one repository's workflow."""

    status: GenerationStatus = GenerationStatus.PENDING
    logs: str = ""
    artifacts: List[str] = field(default_factory=list)
    reason: Optional[str] = None

    def transition(self, status: GenerationStatus) -> None:
        if self.status.terminal and status != self.status:
            raise ValueError(
                f"cannot move from terminal status {self.status.value} to {status.value}"
            )
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "GenerationResult":
        return cls(
            status=GenerationStatus(payload.get("status", GenerationStatus.PENDING.value)),
            logs=str(payload.get("logs") or ""),
            artifacts=[str(item) for item in payload.get("artifacts") or []],
            reason=payload.get("reason"),
        )


@dataclass
class GenerationState:
    """Persisted aggregate document for one generation iteration."""

    repository: str
    number: int
    iteration: Optional[int] = None
    html_url: str = ""
    comment_id: Optional[int] = None
    logs_blob: Optional[str] = None
    status: str = "running"
    repositories: Dict[str, GenerationResult] = field(default_factory=dict)

    @property
    def prefix(self) -> Optional[str]:
        if self.iteration is None:
            return None
        return f"{self.repository}/{self.number}/{self.iteration}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repository": self.repository,
            "number": self.number,
            "iteration": self.iteration,
            "html_url": self.html_url,
            "comment_id": self.comment_id,
            "logs_blob": self.logs_blob,
            "status": self.status,
            "repositories": {
                name: result.to_dict() for name, result in self.repositories.items()
            },
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "GenerationState":
        repositories = _as_mapping(payload.get("repositories"))
        return cls(
            repository=str(payload["repository"]),
            number=int(payload["number"]),
            iteration=payload.get("iteration"),
            html_url=str(payload.get("html_url") or ""),
            comment_id=payload.get("comment_id"),
            logs_blob=payload.get("logs_blob"),
            status=str(payload.get("status") or "running"),
            repositories={
                str(name): GenerationResult.from_dict(_as_mapping(raw))
                for name, raw in repositories.items()
            },
        )


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}
