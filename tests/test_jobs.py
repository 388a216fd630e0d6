from __future__ import annotations

from pathlib import Path

import pytest

from batchgen.jobs import load_batch_job, parse_batch_job


def test_load_batch_job_resolves_paths_relative_to_job_file(tmp_path: Path) -> None:
    job_path = tmp_path / "jobs" / "weekly.yaml"
    job_path.parent.mkdir()
    job_path.write_text(
        "\n".join(
            [
                "document: paper.pdf",
                "group_id: group-a",
                "attachments:",
                "  - guides/policy.txt",
                "recipient_ids: [a1, a3]",
                "overrides:",
                "  Q1: 4",
                "  2: '3'",
                "system_prompt: Be concise.",
                "output_dir: out",
                "bundle: true",
            ]
        ),
        encoding="utf-8",
    )

    job = load_batch_job(job_path)

    assert job.document_path == job_path.parent / "paper.pdf"
    assert job.attachment_paths == (job_path.parent / "guides" / "policy.txt",)
    assert job.group_id == "group-a"
    assert job.select_all is False
    assert job.recipient_ids == ("a1", "a3")
    assert job.overrides == {"Q1": 4, "2": "3"}
    assert job.system_prompt == "Be concise."
    assert job.user_prompt is None
    assert job.output_dir == job_path.parent / "out"
    assert job.bundle is True


def test_parse_batch_job_accepts_select_all_without_ids(tmp_path: Path) -> None:
    job = parse_batch_job(
        {"document": "/abs/paper.pdf", "group_id": 12, "select_all": True},
        base_dir=tmp_path,
    )

    assert job.document_path == Path("/abs/paper.pdf")
    assert job.group_id == "12"
    assert job.select_all is True
    assert job.recipient_ids == ()


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        (["not", "a", "mapping"], "mapping at the top level"),
        ({"group_id": "g", "select_all": True}, "non-empty 'document'"),
        ({"document": "p.pdf", "select_all": True}, "non-empty 'group_id'"),
        ({"document": "p.pdf", "group_id": "g"}, "select_all: true"),
        ({"document": "p.pdf", "group_id": "g", "select_all": "yes"}, "true or false"),
        (
            {"document": "p.pdf", "group_id": "g", "select_all": True, "overrides": [1]},
            "'overrides' must be a mapping",
        ),
        (
            {"document": "p.pdf", "group_id": "g", "recipient_ids": "a1"},
            "'recipient_ids' must be a list",
        ),
    ],
)
def test_parse_batch_job_rejects_invalid_definitions(raw, message: str, tmp_path: Path) -> None:
    with pytest.raises(ValueError, match=message):
        parse_batch_job(raw, base_dir=tmp_path)


def test_load_batch_job_reports_invalid_yaml(tmp_path: Path) -> None:
    job_path = tmp_path / "broken.yaml"
    job_path.write_text("document: [unclosed\n", encoding="utf-8")

    with pytest.raises(ValueError, match="is not valid YAML"):
        load_batch_job(job_path)
