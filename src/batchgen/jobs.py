from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class BatchJob:
    document_path: Path
    group_id: str
    attachment_paths: tuple[Path, ...] = ()
    select_all: bool = False
    recipient_ids: tuple[str, ...] = ()
    overrides: dict[str, Any] = field(default_factory=dict)
    system_prompt: str | None = None
    user_prompt: str | None = None
    output_dir: Path | None = None
    bundle: bool = False


def _require_str(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if value is None or not str(value).strip():
        raise ValueError(f"Job file must define a non-empty '{key}'")
    return str(value).strip()


def _optional_str(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Job field '{key}' must be a string")
    return value


def _str_list(raw: dict[str, Any], key: str) -> tuple[str, ...]:
    value = raw.get(key)
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ValueError(f"Job field '{key}' must be a list")
    return tuple(str(item).strip() for item in value if str(item).strip())


def _resolve(base_dir: Path, value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def parse_batch_job(raw: Any, *, base_dir: Path) -> BatchJob:
    if not isinstance(raw, dict):
        raise ValueError("Job file must contain a mapping at the top level")

    select_all = raw.get("select_all", False)
    if not isinstance(select_all, bool):
        raise ValueError("Job field 'select_all' must be true or false")
    recipient_ids = _str_list(raw, "recipient_ids")
    if not select_all and not recipient_ids:
        raise ValueError("Job file must set 'select_all: true' or list 'recipient_ids'")

    overrides = raw.get("overrides") or {}
    if not isinstance(overrides, dict):
        raise ValueError("Job field 'overrides' must be a mapping")

    bundle = raw.get("bundle", False)
    if not isinstance(bundle, bool):
        raise ValueError("Job field 'bundle' must be true or false")

    output_dir = _optional_str(raw, "output_dir")
    return BatchJob(
        document_path=_resolve(base_dir, _require_str(raw, "document")),
        group_id=_require_str(raw, "group_id"),
        attachment_paths=tuple(
            _resolve(base_dir, item) for item in _str_list(raw, "attachments")
        ),
        select_all=select_all,
        recipient_ids=recipient_ids,
        overrides={str(key): value for key, value in overrides.items()},
        system_prompt=_optional_str(raw, "system_prompt"),
        user_prompt=_optional_str(raw, "user_prompt"),
        output_dir=_resolve(base_dir, output_dir) if output_dir else None,
        bundle=bundle,
    )


def load_batch_job(path: str | Path) -> BatchJob:
    job_path = Path(path)
    try:
        raw = yaml.safe_load(job_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Job file {job_path} is not valid YAML: {exc}") from exc
    return parse_batch_job(raw, base_dir=job_path.resolve().parent)
