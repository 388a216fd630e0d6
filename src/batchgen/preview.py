"""Structural preview of the primary document and its override map.

Analysis results are matched to the request that produced them by an integer
token held in ``PreviewState``. Selecting or removing the primary document, or
starting a new analysis, bumps the token; a result carrying an older token is
dropped instead of applied.

Overrides follow one rule everywhere: a value that does not parse as a
positive integer resolves to the item's suggested count.
"""

from __future__ import annotations

from dataclasses import replace
import logging
from typing import Any, Iterable, Mapping

from batchgen.errors import AnalysisFailedError
from batchgen.state import PreviewItem, PreviewState, WorkflowState


LOGGER = logging.getLogger(__name__)


def begin_analysis(state: WorkflowState) -> tuple[WorkflowState, int]:
    token = state.preview.token + 1
    preview = replace(state.preview, loading=True, error=None, token=token)
    return replace(state, preview=preview), token


def is_current(state: WorkflowState, token: int) -> bool:
    return state.document is not None and state.preview.token == token


def build_preview_items(raw_items: Iterable[Any]) -> tuple[PreviewItem, ...]:
    items: list[PreviewItem] = []
    seen: set[str] = set()
    for raw in raw_items:
        item = PreviewItem(
            number=raw.number,
            text=raw.text,
            marks=raw.marks,
            suggested_count=raw.suggested_count,
        )
        if item.number in seen:
            raise AnalysisFailedError(
                f"Analysis returned duplicate item number {item.number!r}"
            )
        seen.add(item.number)
        items.append(item)
    return tuple(items)


def apply_analysis_result(
    state: WorkflowState,
    token: int,
    items: tuple[PreviewItem, ...],
) -> WorkflowState:
    if not is_current(state, token):
        LOGGER.info(
            "Discarding stale analysis result",
            extra={"token": token, "current_token": state.preview.token},
        )
        return state
    preview = PreviewState(
        items=items,
        overrides={item.number: item.suggested_count for item in items},
        loading=False,
        error=None,
        token=token,
    )
    return replace(state, preview=preview)


def apply_analysis_failure(state: WorkflowState, token: int, message: str) -> WorkflowState:
    if not is_current(state, token):
        LOGGER.info(
            "Discarding stale analysis failure",
            extra={"token": token, "current_token": state.preview.token},
        )
        return state
    return replace(state, preview=PreviewState(error=message, token=token))


def parse_positive_int(raw_value: Any) -> int | None:
    if isinstance(raw_value, bool) or raw_value is None:
        return None
    if isinstance(raw_value, int):
        parsed = raw_value
    elif isinstance(raw_value, float):
        if not raw_value.is_integer():
            return None
        parsed = int(raw_value)
    else:
        try:
            parsed = int(str(raw_value).strip())
        except ValueError:
            return None
    return parsed if parsed >= 1 else None


def resolve_count(item: PreviewItem, raw_value: Any) -> int:
    parsed = parse_positive_int(raw_value)
    return item.suggested_count if parsed is None else parsed


def set_override(state: WorkflowState, item_number: str, raw_value: Any) -> WorkflowState:
    item = state.preview.item(str(item_number))
    if item is None:
        return state
    overrides = dict(state.preview.overrides)
    overrides[item.number] = resolve_count(item, raw_value)
    return replace(state, preview=replace(state.preview, overrides=overrides))


def sanitized_overrides(preview: PreviewState) -> dict[str, int]:
    return {
        item.number: resolve_count(item, preview.overrides.get(item.number))
        for item in preview.items
    }


def is_preview_ready(preview: PreviewState) -> bool:
    return bool(preview.items) and not preview.loading


def override_for(preview: PreviewState, item_number: str) -> int | None:
    item = preview.item(item_number)
    if item is None:
        return None
    overrides: Mapping[str, int] = preview.overrides
    return resolve_count(item, overrides.get(item.number))
