from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from batchgen.errors import ValidationError
from batchgen.preview import is_preview_ready, sanitized_overrides
from batchgen.recipients import has_selection, selected_recipient_ids
from batchgen.state import (
    Attachment,
    PromptFragments,
    SourceDocument,
    SubmissionStatus,
    WorkflowPhase,
    WorkflowState,
)


# Checked in this order; the first unmet precondition is reported.
PRECONDITIONS: tuple[tuple[str, str], ...] = (
    ("document", "Please upload a source document PDF"),
    ("preview", "Please analyze the source document before generating"),
    ("group", "Please select a recipient group"),
    ("selection", "Please select at least one recipient or choose Select All"),
)


@dataclass(frozen=True)
class GenerationRequest:
    document: SourceDocument
    attachments: tuple[Attachment, ...]
    group_id: str
    generate_all: bool
    recipient_ids: tuple[str, ...]
    overrides: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    prompts: PromptFragments = field(default_factory=PromptFragments)


def _unmet_precondition(state: WorkflowState) -> tuple[str, str] | None:
    checks = {
        "document": state.document is not None,
        "preview": is_preview_ready(state.preview),
        "group": state.recipients.group_id is not None,
        "selection": has_selection(state.recipients),
    }
    for name, message in PRECONDITIONS:
        if not checks[name]:
            return name, message
    return None


def check_preconditions(state: WorkflowState) -> None:
    unmet = _unmet_precondition(state)
    if unmet is not None:
        name, message = unmet
        raise ValidationError(message, precondition=name)


def preconditions_met(state: WorkflowState) -> bool:
    return _unmet_precondition(state) is None


def current_phase(state: WorkflowState) -> WorkflowPhase:
    if state.status is SubmissionStatus.SUBMITTING:
        return WorkflowPhase.SUBMITTING
    if preconditions_met(state):
        return WorkflowPhase.READY
    return WorkflowPhase.IDLE


def build_generation_request(state: WorkflowState) -> GenerationRequest:
    check_preconditions(state)
    recipients = state.recipients
    generate_all = recipients.selection.is_all
    return GenerationRequest(
        document=state.document,
        attachments=state.attachments,
        group_id=recipients.group_id,
        generate_all=generate_all,
        recipient_ids=() if generate_all else selected_recipient_ids(recipients),
        overrides=MappingProxyType(sanitized_overrides(state.preview)),
        prompts=state.prompts,
    )
