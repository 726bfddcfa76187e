"""HTTP fetch and source-hosting adapters."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .errors import TransportError


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    body: Optional[str] = None


class HttpClient(Protocol):
    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: str | None = None,
    ) -> HttpResponse:
        ...


class UrllibHttpClient:
    """HTTP client over :mod:`urllib`. Performs no retries."""

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: str | None = None,
    ) -> HttpResponse:
        data = body.encode("utf-8") if body is not None else None
        request = Request(url, data=data, headers=dict(headers or {}), method=method)
        try:
            with urlopen(request, timeout=self.timeout) as response:  # type: ignore[arg-type]
                raw = response.read()
                status = response.status
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore") if hasattr(exc, "read") else ""
            return HttpResponse(status_code=exc.code, body=detail or None)
        except URLError as exc:
            raise TransportError(f"{method} {url} failed: {exc.reason}") from exc
        return HttpResponse(status_code=status, body=raw.decode("utf-8", errors="replace"))


class SourceHost(Protocol):
    """Capabilities the pipeline needs from the source-hosting service."""

    def get_pull_request(self, repository: str, number: int) -> Dict[str, Any]:
        ...

    def repository_exists(self, repository: str) -> bool:
        ...

    def get_file_content(
        self, repository: str, path: str, ref: str | None = None
    ) -> Optional[str]:
        ...

    def raw_file_url(self, repository: str, path: str, ref: str | None = None) -> str:
        ...

    def clone_url(self, repository: str) -> str:
        ...

    def post_comment(self, repository: str, number: int, body: str) -> int:
        ...

    def update_comment(self, repository: str, comment_id: int, body: str) -> None:
        ...


class GitHubClient:
    """The handful of GitHub REST calls used by the pipeline."""

    def __init__(
        self,
        http: HttpClient,
        *,
        api_url: str = "https://api.github.com",
        raw_url: str = "https://raw.githubusercontent.com",
        web_url: str = "https://github.com",
        token: str | None = None,
    ) -> None:
        self.http = http
        self.api_url = api_url.rstrip("/")
        self.raw_url = raw_url.rstrip("/")
        self.web_url = web_url.rstrip("/")
        self.token = token

    def get_pull_request(self, repository: str, number: int) -> Dict[str, Any]:
        response = self._api("GET", f"/repos/{repository}/pulls/{number}")
        return self._json(response, expected=200)

    def repository_exists(self, repository: str) -> bool:
        response = self._api("GET", f"/repos/{repository}")
        return response.status_code == 200

    def get_file_content(
        self, repository: str, path: str, ref: str | None = None
    ) -> Optional[str]:
        response = self.http.send("GET", self.raw_file_url(repository, path, ref))
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise TransportError(
                f"Fetching {path} from {repository} returned status {response.status_code}",
                status_code=response.status_code,
            )
        return response.body or ""

    def raw_file_url(self, repository: str, path: str, ref: str | None = None) -> str:
        return f"{self.raw_url}/{repository}/{ref or 'HEAD'}/{quote(path)}"

    def clone_url(self, repository: str) -> str:
        return f"{self.web_url}/{repository}.git"

    def post_comment(self, repository: str, number: int, body: str) -> int:
        response = self._api(
            "POST",
            f"/repos/{repository}/issues/{number}/comments",
            payload={"body": body},
        )
        data = self._json(response, expected=201)
        comment_id = data.get("id")
        if not isinstance(comment_id, int):
            raise TransportError("Comment creation response did not include an id")
        return comment_id

    def update_comment(self, repository: str, comment_id: int, body: str) -> None:
        response = self._api(
            "PATCH",
            f"/repos/{repository}/issues/comments/{comment_id}",
            payload={"body": body},
        )
        if response.status_code != 200:
            raise TransportError(
                f"Updating comment {comment_id} returned status {response.status_code}",
                status_code=response.status_code,
            )

    # ------------------------------------------------------------------
    # Helpers

    def _api(
        self, method: str, path: str, *, payload: Mapping[str, Any] | None = None
    ) -> HttpResponse:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        body = None
        if payload is not None:
            headers["Content-Type"] = "application/json"
            body = json.dumps(payload)
        return self.http.send(method, f"{self.api_url}{path}", headers=headers, body=body)

    @staticmethod
    def _json(response: HttpResponse, *, expected: int) -> Dict[str, Any]:
        if response.status_code != expected:
            raise TransportError(
                f"GitHub returned status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            data = json.loads(response.body or "")
        except json.JSONDecodeError as exc:
            raise TransportError("GitHub returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise TransportError("GitHub returned an unexpected payload")
        return data


__all__ = [
    "GitHubClient",
    "HttpClient",
    "HttpResponse",
    "SourceHost",
    "UrllibHttpClient",
]
