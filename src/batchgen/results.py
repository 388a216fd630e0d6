from __future__ import annotations

from dataclasses import replace
import logging
from pathlib import Path
import re
from typing import Protocol

from batchgen.schemas import GenerationResponse
from batchgen.state import ArtifactReference, WorkflowState


LOGGER = logging.getLogger(__name__)

ARTIFACT_EXTENSION = ".docx"
BUNDLE_FILENAME = "generated-documents.zip"
DEFAULT_ARTIFACT_STEM = "artifact"
DOWNLOAD_NAME_PREFIX = "generated-document"


class ArtifactSink(Protocol):
    def save(self, filename: str, payload: bytes) -> str: ...


class DirectoryArtifactSink:
    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def save(self, filename: str, payload: bytes) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / filename
        target.write_bytes(payload)
        LOGGER.info("Saved artifact", extra={"target": str(target), "bytes": len(payload)})
        return str(target)


class InMemoryArtifactSink:
    def __init__(self) -> None:
        self.saved: dict[str, bytes] = {}

    def save(self, filename: str, payload: bytes) -> str:
        self.saved[filename] = payload
        return filename


def _safe_stem(name: str | None) -> str:
    stem = (name or "").strip()
    stem = re.sub(r"[\\/:*?\"<>|\x00-\x1f]+", "-", stem)
    stem = stem.strip(" .-")
    return stem or DEFAULT_ARTIFACT_STEM


def artifact_filename(suggested_name: str | None, extension: str = ARTIFACT_EXTENSION) -> str:
    return f"{_safe_stem(suggested_name)}{extension}"


def suggested_download_name(index: int) -> str:
    return f"{DOWNLOAD_NAME_PREFIX}-{index + 1}"


def derive_display_name(label: str, index: int, recipient_name: str) -> str:
    name = recipient_name.strip()
    if name:
        return f"{label} {index + 1} for {name}"
    return f"{label} {index + 1}"


def to_artifact_references(
    response: GenerationResponse,
    *,
    label: str,
) -> tuple[ArtifactReference, ...]:
    return tuple(
        ArtifactReference(
            id=item.id,
            display_name=derive_display_name(label, index, item.name),
            recipient_name=item.name,
        )
        for index, item in enumerate(response.generated)
    )


def apply_artifacts(
    state: WorkflowState,
    artifacts: tuple[ArtifactReference, ...],
) -> WorkflowState:
    return replace(state, artifacts=artifacts)


def artifact_ids(state: WorkflowState) -> tuple[str, ...]:
    return tuple(artifact.id for artifact in state.artifacts)
