"""Workflow state for one batch generation run.

Every transition in the workflow takes a ``WorkflowState`` and returns a new
one; nothing here mutates in place. ``snapshot_state`` renders the state as
plain JSON-friendly data (file payloads are reduced to name, type and size).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping


class SelectionMode(str, Enum):
    ALL = "all"
    SUBSET = "subset"


class SubmissionStatus(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowPhase(str, Enum):
    IDLE = "idle"
    READY = "ready"
    SUBMITTING = "submitting"


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True)
class SourceDocument:
    filename: str
    media_type: str
    payload: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True)
class Attachment:
    filename: str
    media_type: str
    payload: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True)
class PreviewItem:
    number: str
    text: str
    marks: float
    suggested_count: int


@dataclass(frozen=True)
class PreviewState:
    items: tuple[PreviewItem, ...] = ()
    overrides: Mapping[str, int] = field(default_factory=dict)
    loading: bool = False
    error: str | None = None
    token: int = 0

    def item(self, number: str) -> PreviewItem | None:
        for item in self.items:
            if item.number == number:
                return item
        return None


@dataclass(frozen=True)
class RecipientGroup:
    id: str
    title: str
    member_count: int


@dataclass(frozen=True)
class Recipient:
    id: str
    display_order: str | None
    name: str
    external_id: str | None


@dataclass(frozen=True)
class SelectionState:
    mode: SelectionMode = SelectionMode.SUBSET
    recipient_ids: frozenset[str] = frozenset()

    @classmethod
    def all_of(cls) -> "SelectionState":
        return cls(mode=SelectionMode.ALL)

    @classmethod
    def subset_of(cls, recipient_ids=()) -> "SelectionState":
        return cls(mode=SelectionMode.SUBSET, recipient_ids=frozenset(recipient_ids))

    @property
    def is_all(self) -> bool:
        return self.mode is SelectionMode.ALL


@dataclass(frozen=True)
class RecipientState:
    groups: tuple[RecipientGroup, ...] = ()
    group_id: str | None = None
    members: tuple[Recipient, ...] = ()
    selection: SelectionState = field(default_factory=SelectionState)
    loading: bool = False
    token: int = 0

    @property
    def member_ids(self) -> tuple[str, ...]:
        return tuple(member.id for member in self.members)


@dataclass(frozen=True)
class PromptFragments:
    system_prompt: str = ""
    user_prompt: str = ""


@dataclass(frozen=True)
class ArtifactReference:
    id: str
    display_name: str
    recipient_name: str = ""


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    title: str
    description: str = ""


MAX_NOTIFICATIONS = 20


@dataclass(frozen=True)
class WorkflowState:
    document: SourceDocument | None = None
    attachments: tuple[Attachment, ...] = ()
    preview: PreviewState = field(default_factory=PreviewState)
    recipients: RecipientState = field(default_factory=RecipientState)
    prompts: PromptFragments = field(default_factory=PromptFragments)
    status: SubmissionStatus = SubmissionStatus.IDLE
    progress: float = 0.0
    artifacts: tuple[ArtifactReference, ...] = ()
    error: str | None = None
    notifications: tuple[Notification, ...] = ()


def push_notification(
    state: WorkflowState,
    level: NotificationLevel,
    title: str,
    description: str = "",
) -> WorkflowState:
    notifications = state.notifications + (Notification(level, title, description),)
    return replace(state, notifications=notifications[-MAX_NOTIFICATIONS:])


def _file_summary(item: SourceDocument | Attachment) -> dict[str, Any]:
    return {"filename": item.filename, "media_type": item.media_type, "size": item.size}


def snapshot_state(state: WorkflowState) -> dict[str, Any]:
    recipients = state.recipients
    return {
        "document": _file_summary(state.document) if state.document else None,
        "attachments": [_file_summary(item) for item in state.attachments],
        "preview": {
            "items": [
                {
                    "number": item.number,
                    "text": item.text,
                    "marks": item.marks,
                    "suggested_count": item.suggested_count,
                }
                for item in state.preview.items
            ],
            "overrides": dict(state.preview.overrides),
            "loading": state.preview.loading,
            "error": state.preview.error,
            "token": state.preview.token,
        },
        "recipients": {
            "groups": [
                {"id": group.id, "title": group.title, "member_count": group.member_count}
                for group in recipients.groups
            ],
            "group_id": recipients.group_id,
            "members": [
                {
                    "id": member.id,
                    "display_order": member.display_order,
                    "name": member.name,
                    "external_id": member.external_id,
                }
                for member in recipients.members
            ],
            "selection": {
                "mode": recipients.selection.mode.value,
                "recipient_ids": sorted(recipients.selection.recipient_ids),
            },
            "loading": recipients.loading,
            "token": recipients.token,
        },
        "prompts": {
            "system_prompt": state.prompts.system_prompt,
            "user_prompt": state.prompts.user_prompt,
        },
        "status": state.status.value,
        "progress": state.progress,
        "artifacts": [
            {
                "id": artifact.id,
                "display_name": artifact.display_name,
                "recipient_name": artifact.recipient_name,
            }
            for artifact in state.artifacts
        ],
        "error": state.error,
        "notifications": [
            {
                "level": notification.level.value,
                "title": notification.title,
                "description": notification.description,
            }
            for notification in state.notifications
        ],
    }
