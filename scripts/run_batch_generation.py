#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
import json
import logging
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run one batch generation job against the generation service"
    )
    parser.add_argument("--job", required=True, help="Path to the YAML job file.")
    parser.add_argument(
        "--api-url",
        default=None,
        help="Generation service base URL (defaults to BATCHGEN_API_URL).",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for downloaded artifacts (overrides the job file and BATCHGEN_DOWNLOAD_DIR).",
    )
    parser.add_argument(
        "--bundle",
        action="store_true",
        help="Download every artifact as one archive instead of one file each.",
    )
    parser.add_argument(
        "--report",
        default=None,
        help="Optional JSON path for the run report.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    return parser.parse_args(argv)


async def run_batch_job(job, *, settings, client=None) -> dict:
    from batchgen.controller import BatchGenerationController
    from batchgen.intake import load_attachment, load_source_document
    from batchgen.results import DirectoryArtifactSink
    from batchgen.state import snapshot_state

    output_dir = job.output_dir or Path(settings.download_dir)
    controller = BatchGenerationController.from_settings(
        settings,
        client=client,
        sink=DirectoryArtifactSink(output_dir),
    )
    report: dict = {"ok": False, "saved": [], "errors": []}
    try:
        await controller.load_groups()
        await controller.load_prompt_defaults()
        controller.set_prompts(system_prompt=job.system_prompt, user_prompt=job.user_prompt)

        intake = controller.select_primary_document(load_source_document(job.document_path))
        if not intake.ok:
            report["errors"].append(intake.error_message)
            return report
        await controller.wait_for_analysis()
        if controller.state.preview.error:
            report["errors"].append(controller.state.preview.error)
            return report

        if job.attachment_paths:
            attached = controller.add_attachments(
                load_attachment(path) for path in job.attachment_paths
            )
            report["errors"].extend(item.message for item in attached.rejected)

        if not await controller.select_group(job.group_id):
            report["errors"].append(f"Unable to load recipients for group {job.group_id}")
            return report
        if job.select_all:
            controller.toggle_select_all()
        else:
            for recipient_id in job.recipient_ids:
                controller.toggle_member(recipient_id)

        for item_number, raw_value in job.overrides.items():
            controller.set_override(item_number, raw_value)

        submitted = await controller.submit()
        report["artifacts"] = [artifact.display_name for artifact in submitted.artifacts]
        if not submitted.ok:
            report["errors"].append(submitted.error_message)
            return report

        if job.bundle:
            downloaded = await controller.download_all()
            outcomes = [downloaded] if downloaded is not None else []
        else:
            outcomes = [
                await controller.download_one(artifact.id)
                for artifact in controller.state.artifacts
            ]
        for outcome in outcomes:
            if outcome.ok:
                report["saved"].append(outcome.location)
            else:
                report["errors"].append(outcome.error_message)
        report["ok"] = all(outcome.ok for outcome in outcomes)
        return report
    finally:
        report["state"] = snapshot_state(controller.state)
        await controller.aclose()


def main(argv: list[str] | None = None) -> int:
    from batchgen.jobs import load_batch_job
    from batchgen.settings import load_settings

    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = load_settings()
        job = load_batch_job(args.job)
    except (OSError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    if args.api_url:
        settings = replace(settings, api_base_url=args.api_url)
    if args.output_dir:
        job = replace(job, output_dir=Path(args.output_dir))
    if args.bundle:
        job = replace(job, bundle=True)

    try:
        report = asyncio.run(run_batch_job(job, settings=settings))
    except OSError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    if args.report:
        report_path = Path(args.report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(json.dumps(report, indent=2), encoding="utf-8")

    print(
        "Batch generation finished "
        f"(ok={report['ok']}, artifacts={len(report.get('artifacts', []))}, "
        f"saved={len(report['saved'])}, errors={len(report['errors'])})"
    )
    for error in report["errors"]:
        print(f"  - {error}")
    return 0 if report["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
