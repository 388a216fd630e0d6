from __future__ import annotations

from dataclasses import replace
import logging

from batchgen.state import (
    Recipient,
    RecipientGroup,
    RecipientState,
    SelectionState,
    WorkflowState,
)


LOGGER = logging.getLogger(__name__)


def apply_groups(state: WorkflowState, groups: tuple[RecipientGroup, ...]) -> WorkflowState:
    return replace(state, recipients=replace(state.recipients, groups=groups))


def set_group(state: WorkflowState, group_id: str | None) -> tuple[WorkflowState, int]:
    """Switch the active group and return the token for its member load.

    The selection is reset immediately, before any members arrive. An empty
    ``group_id`` clears the group entirely and needs no load.
    """
    recipients = state.recipients
    token = recipients.token + 1
    normalized = (group_id or "").strip() or None
    if normalized is None:
        next_recipients = RecipientState(groups=recipients.groups, token=token)
    else:
        next_recipients = RecipientState(
            groups=recipients.groups,
            group_id=normalized,
            members=(),
            selection=SelectionState.subset_of(),
            loading=True,
            token=token,
        )
    return replace(state, recipients=next_recipients), token


def apply_group_members(
    state: WorkflowState,
    token: int,
    members: tuple[Recipient, ...],
) -> WorkflowState:
    recipients = state.recipients
    if recipients.token != token or recipients.group_id is None:
        LOGGER.info(
            "Discarding stale group member load",
            extra={"token": token, "current_token": recipients.token},
        )
        return state
    next_recipients = replace(
        recipients,
        members=members,
        selection=SelectionState.subset_of(),
        loading=False,
    )
    return replace(state, recipients=next_recipients)


def apply_group_members_failure(state: WorkflowState, token: int) -> WorkflowState:
    recipients = state.recipients
    if recipients.token != token:
        return state
    return replace(state, recipients=replace(recipients, loading=False))


def toggle_member(state: WorkflowState, recipient_id: str) -> WorkflowState:
    recipients = state.recipients
    if recipients.group_id is None:
        return state
    member_ids = recipients.member_ids
    recipient_id = str(recipient_id)
    if recipient_id not in member_ids:
        return state

    selection = recipients.selection
    if selection.is_all:
        selected = set(member_ids)
    else:
        selected = set(selection.recipient_ids)
    if recipient_id in selected:
        selected.discard(recipient_id)
    else:
        selected.add(recipient_id)
    next_selection = SelectionState.subset_of(selected)
    return replace(state, recipients=replace(recipients, selection=next_selection))


def is_all_selected(recipients: RecipientState) -> bool:
    if not recipients.members:
        return False
    if recipients.selection.is_all:
        return True
    return set(recipients.member_ids) <= recipients.selection.recipient_ids


def toggle_select_all(state: WorkflowState) -> WorkflowState:
    recipients = state.recipients
    if not recipients.members:
        return state
    if is_all_selected(recipients):
        next_selection = SelectionState.subset_of()
    else:
        next_selection = SelectionState.all_of()
    return replace(state, recipients=replace(recipients, selection=next_selection))


def selected_recipient_ids(recipients: RecipientState) -> tuple[str, ...]:
    """Selected ids in member display order."""
    if recipients.selection.is_all:
        return recipients.member_ids
    chosen = recipients.selection.recipient_ids
    return tuple(member_id for member_id in recipients.member_ids if member_id in chosen)


def has_selection(recipients: RecipientState) -> bool:
    if recipients.selection.is_all:
        return bool(recipients.members)
    return bool(recipients.selection.recipient_ids)
