"""Persistence of ``generationData.json`` state documents."""

from __future__ import annotations

import json
from typing import Optional

from ..models import GenerationState
from .blob import APPLICATION_JSON, BlobStore, join_blob

STATE_BLOB_NAME = "generationData.json"
_STATE_VERSION = 1


def state_blob_name(repository: str, number: int, iteration: int) -> str:
    return join_blob(repository, str(number), str(iteration), STATE_BLOB_NAME)


class GenerationStateStore:
    """Reads and writes generation state documents in the blob store.

    Only the orchestrator writes these documents; writes are last-writer-wins.
    """

    def __init__(self, blobs: BlobStore) -> None:
        self._blobs = blobs

    def save(self, state: GenerationState) -> str:
        if state.iteration is None:
            raise ValueError("cannot persist a generation state without an iteration")
        name = state_blob_name(state.repository, state.number, state.iteration)
        payload = {"version": _STATE_VERSION, **state.to_dict()}
        self._blobs.write_text(
            name,
            json.dumps(payload, indent=2, sort_keys=True),
            content_type=APPLICATION_JSON,
        )
        return name

    def load(self, repository: str, number: int, iteration: int) -> Optional[GenerationState]:
        raw = self._blobs.read_text(state_blob_name(repository, number, iteration))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict) or data.get("version") != _STATE_VERSION:
            return None
        try:
            return GenerationState.from_dict(data)
        except (KeyError, TypeError, ValueError):
            return None


__all__ = ["GenerationStateStore", "STATE_BLOB_NAME", "state_blob_name"]
