"""FastAPI application receiving GitHub pull request webhooks."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import load_settings
from ..logging import get_logger
from ..models import ChangeEvent
from ..orchestrator import Orchestrator

TRIGGER_ACTIONS = frozenset({"opened", "reopened", "synchronize"})

logger = get_logger("service")


class RepositoryRef(BaseModel):
    full_name: str


class CommitRef(BaseModel):
    sha: str = ""
    ref: Optional[str] = None
    repo: Optional[RepositoryRef] = None


class PullRequestPayload(BaseModel):
    number: int
    diff_url: str
    html_url: str = ""
    merge_commit_sha: Optional[str] = None
    head: CommitRef = CommitRef()
    base: CommitRef = CommitRef()


class PullRequestWebhook(BaseModel):
    action: str
    number: Optional[int] = None
    pull_request: PullRequestPayload
    repository: Optional[RepositoryRef] = None


class WebhookResponse(BaseModel):
    status: str
    repository: Optional[str] = None
    number: Optional[int] = None


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    return Orchestrator(load_settings(Path.cwd()))


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing the webhook receiver."""

    app = FastAPI(title="SDK Generation Service", version="1.0.0")

    async def get_orchestrator() -> Orchestrator:
        # Fresh orchestrator per request keeps run logs independent.
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/webhooks/github", response_model=WebhookResponse, status_code=202)
    async def github_webhook(
        payload: PullRequestWebhook,
        background_tasks: BackgroundTasks,
        x_github_event: str = Header(default="pull_request"),
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> WebhookResponse:
        if x_github_event != "pull_request" or payload.action not in TRIGGER_ACTIONS:
            logger.info("Ignoring %s event with action %s", x_github_event, payload.action)
            return WebhookResponse(status="skipped")

        event = ChangeEvent.from_webhook(payload.model_dump())
        logger.info("Scheduling generation for %s#%d", event.repository, event.number)
        background_tasks.add_task(orchestrator.handle_change, event)
        return WebhookResponse(status="accepted", repository=event.repository, number=event.number)

    @app.get("/generations/{owner}/{name}/{number}/{iteration}")
    async def generation_state(
        owner: str,
        name: str,
        number: int,
        iteration: int,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> Dict[str, Any]:
        state = orchestrator.load_state(f"{owner}/{name}", number, iteration)
        if state is None:
            raise FileNotFoundError(f"No generation {iteration} for {owner}/{name}#{number}")
        return state.to_dict()

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(
        _: Any, exc: FileNotFoundError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(
        _: Any, exc: ValueError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "0.0.0.0", port: int = 8000
) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app()
    uvicorn.run(app, host=host, port=port)
