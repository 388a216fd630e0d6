from __future__ import annotations

from dataclasses import dataclass, replace
import mimetypes
from pathlib import Path

from batchgen.errors import (
    AttachmentTooLarge,
    AttachmentTypeNotAllowed,
    DocumentTooLarge,
    InvalidDocumentType,
    InvalidInputError,
)
from batchgen.settings import DEFAULT_ATTACHMENT_MAX_BYTES, DEFAULT_PRIMARY_DOCUMENT_MAX_BYTES
from batchgen.state import Attachment, PreviewState, SourceDocument, WorkflowState


PRIMARY_DOCUMENT_MEDIA_TYPE = "application/pdf"
ATTACHMENT_MEDIA_TYPES: tuple[str, ...] = (
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "image/png",
    "image/jpeg",
)


@dataclass(frozen=True)
class IntakeLimits:
    primary_document_max_bytes: int = DEFAULT_PRIMARY_DOCUMENT_MAX_BYTES
    attachment_max_bytes: int = DEFAULT_ATTACHMENT_MAX_BYTES
    attachment_media_types: tuple[str, ...] = ATTACHMENT_MEDIA_TYPES


@dataclass(frozen=True)
class AttachmentIntake:
    state: WorkflowState
    accepted: tuple[Attachment, ...]
    rejected: tuple[InvalidInputError, ...]


def _format_megabytes(size_bytes: int) -> str:
    megabytes = size_bytes / 1024 / 1024
    if megabytes.is_integer():
        return f"{int(megabytes)}MB"
    return f"{megabytes:.2f}MB"


def _normalize_media_type(media_type: str) -> str:
    return media_type.split(";", 1)[0].strip().lower()


def _invalidate_preview(preview: PreviewState) -> PreviewState:
    # Bumping the token makes any in-flight analysis stale.
    return PreviewState(token=preview.token + 1)


def set_primary_document(
    state: WorkflowState,
    document: SourceDocument,
    limits: IntakeLimits | None = None,
) -> WorkflowState:
    limits = limits or IntakeLimits()
    if _normalize_media_type(document.media_type) != PRIMARY_DOCUMENT_MEDIA_TYPE:
        raise InvalidDocumentType(
            "Please upload a PDF file for the source document",
            filename=document.filename,
        )
    if document.size > limits.primary_document_max_bytes:
        raise DocumentTooLarge(
            f"{document.filename} exceeds "
            f"{_format_megabytes(limits.primary_document_max_bytes)}",
            filename=document.filename,
        )
    return replace(
        state,
        document=document,
        preview=_invalidate_preview(state.preview),
        error=None,
    )


def remove_primary_document(state: WorkflowState) -> WorkflowState:
    if state.document is None and not state.preview.items and not state.preview.loading:
        return state
    return replace(state, document=None, preview=_invalidate_preview(state.preview))


def validate_attachment(attachment: Attachment, limits: IntakeLimits | None = None) -> None:
    limits = limits or IntakeLimits()
    allowed = {_normalize_media_type(item) for item in limits.attachment_media_types}
    if _normalize_media_type(attachment.media_type) not in allowed:
        raise AttachmentTypeNotAllowed(
            f"{attachment.filename} is not a supported attachment type",
            filename=attachment.filename,
        )
    if attachment.size > limits.attachment_max_bytes:
        raise AttachmentTooLarge(
            f"{attachment.filename} exceeds {_format_megabytes(limits.attachment_max_bytes)}",
            filename=attachment.filename,
        )


def add_attachments(
    state: WorkflowState,
    files,
    limits: IntakeLimits | None = None,
) -> AttachmentIntake:
    accepted: list[Attachment] = []
    rejected: list[InvalidInputError] = []
    for attachment in files:
        try:
            validate_attachment(attachment, limits)
        except InvalidInputError as exc:
            rejected.append(exc)
            continue
        accepted.append(attachment)

    next_state = state
    if accepted:
        next_state = replace(state, attachments=state.attachments + tuple(accepted))
    return AttachmentIntake(
        state=next_state,
        accepted=tuple(accepted),
        rejected=tuple(rejected),
    )


def remove_attachment(state: WorkflowState, index: int) -> WorkflowState:
    if index < 0 or index >= len(state.attachments):
        return state
    attachments = state.attachments[:index] + state.attachments[index + 1 :]
    return replace(state, attachments=attachments)


def guess_media_type(path: Path) -> str:
    media_type, _ = mimetypes.guess_type(path.name)
    return media_type or "application/octet-stream"


def load_source_document(path: str | Path) -> SourceDocument:
    resolved = Path(path)
    return SourceDocument(
        filename=resolved.name,
        media_type=guess_media_type(resolved),
        payload=resolved.read_bytes(),
    )


def load_attachment(path: str | Path) -> Attachment:
    resolved = Path(path)
    return Attachment(
        filename=resolved.name,
        media_type=guess_media_type(resolved),
        payload=resolved.read_bytes(),
    )
