"""Deterministic stand-in for the generation service.

Serves the same endpoints as the real service from in-memory data so the
controller can be exercised end to end without network access or model
calls. Mount it behind ``httpx.ASGITransport`` in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import io
import json
import uuid
import zipfile

from fastapi import APIRouter, FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse, Response

from batchgen.schemas import ArtifactDownloadRequest, BundleDownloadRequest


DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@dataclass
class ScaffoldGroup:
    id: str
    title: str
    members: list[dict[str, str]]


@dataclass
class ScaffoldStore:
    groups: dict[str, ScaffoldGroup] = field(default_factory=dict)
    preview_items: list[dict[str, object]] = field(default_factory=list)
    system_prompt: str = ""
    user_prompt: str = ""
    generation_error: str | None = None
    artifacts: dict[str, bytes] = field(default_factory=dict)
    generation_requests: list[dict[str, object]] = field(default_factory=list)


def _member(member_id: str, index: int, name: str) -> dict[str, str]:
    return {
        "id": member_id,
        "sequenceId": str(index),
        "learnerName": name,
        "learnerId": f"L-{member_id.upper()}",
    }


def _item(number: str, text: str, *, marks: int, suggested: int) -> dict[str, object]:
    return {"number": number, "text": text, "marks": marks, "suggestedBullets": suggested}


def default_store() -> ScaffoldStore:
    return ScaffoldStore(
        groups={
            "group-a": ScaffoldGroup(
                id="group-a",
                title="Morning cohort",
                members=[
                    _member(f"a{index}", index, name)
                    for index, name in enumerate(
                        ["Ada Obi", "Ben Rask", "Chen Wu", "Dara Kell", "Eli Moss"], start=1
                    )
                ],
            ),
            "group-b": ScaffoldGroup(
                id="group-b",
                title="Evening cohort",
                members=[
                    _member(f"b{index}", index, name)
                    for index, name in enumerate(["Fay Lund", "Gus Pell", "Hana Sato"], start=1)
                ],
            ),
        },
        preview_items=[
            _item("Q1", "Describe the workplace safety policy.", marks=4, suggested=2),
            _item("Q2", "Explain the incident reporting steps.", marks=6, suggested=3),
            _item("Q3", "Name the responsible officer.", marks=2, suggested=1),
        ],
        system_prompt="You write concise, accurate answer sheets.",
        user_prompt="Answer {questionNumber} in {targetBullets} bullets.",
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def build_scaffold_router(store: ScaffoldStore) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["scaffold"])

    @router.post("/attachment-generation/preview")
    async def preview(pdf: UploadFile = File(...)):
        if (pdf.content_type or "").lower() != "application/pdf":
            return _error(422, "Please upload a PDF question paper")
        payload = await pdf.read()
        if not payload:
            return _error(422, "Uploaded question paper is empty")
        return {"questions": list(store.preview_items)}

    @router.get("/candidate-lists")
    async def list_groups():
        return {
            "lists": [
                {"id": group.id, "title": group.title, "entriesCount": len(group.members)}
                for group in store.groups.values()
            ]
        }

    @router.get("/candidate-lists/{group_id}")
    async def group_members(group_id: str):
        group = store.groups.get(group_id)
        if group is None:
            return _error(404, "Candidate list not found")
        return {"candidates": list(group.members)}

    @router.get("/settings")
    async def prompt_settings():
        return {
            "settings": {
                "attachmentSystemPrompt": store.system_prompt,
                "attachmentUserPrompt": store.user_prompt,
            }
        }

    @router.post("/attachment-generation/generate")
    async def generate(
        questionPaper: UploadFile = File(...),
        attachments: list[UploadFile] | None = File(default=None),
        listId: str = Form(...),
        generateAll: str | None = Form(default=None),
        candidateIds: list[str] | None = Form(default=None),
        bulletOverrides: str = Form(default="{}"),
        attachmentSystemPrompt: str = Form(default=""),
        attachmentUserPrompt: str = Form(default=""),
    ):
        if store.generation_error:
            return _error(429, store.generation_error)
        group = store.groups.get(listId)
        if group is None:
            return _error(404, "Candidate list not found")
        try:
            overrides = json.loads(bulletOverrides)
        except ValueError:
            return _error(422, "bulletOverrides must be valid JSON")
        if not isinstance(overrides, dict):
            return _error(422, "bulletOverrides must be a JSON object")

        if (generateAll or "").lower() == "true":
            chosen = list(group.members)
        else:
            requested = set(candidateIds or [])
            chosen = [member for member in group.members if member["id"] in requested]
            if not chosen or len(chosen) != len(requested):
                return _error(422, "Select at least one valid candidate")

        paper_name = questionPaper.filename or "question-paper.pdf"
        attachment_names = [item.filename or "attachment" for item in attachments or []]
        store.generation_requests.append(
            {
                "list_id": listId,
                "generate_all": (generateAll or "").lower() == "true",
                "candidate_ids": [member["id"] for member in chosen],
                "overrides": overrides,
                "attachments": attachment_names,
                "system_prompt": attachmentSystemPrompt,
                "user_prompt": attachmentUserPrompt,
            }
        )

        generated = []
        for member in chosen:
            storage_id = uuid.uuid4().hex
            lines = [f"Answer sheet for {member['learnerName']} ({paper_name})"]
            lines.extend(f"{number}: {count} bullets" for number, count in overrides.items())
            store.artifacts[storage_id] = "\n".join(lines).encode("utf-8")
            generated.append({"id": storage_id, "name": member["learnerName"]})
        return {"generated": generated, "count": len(generated)}

    @router.post("/download-answer-sheet")
    async def download_artifact(body: ArtifactDownloadRequest):
        payload = store.artifacts.get(body.storage_id)
        if payload is None:
            return _error(404, "Answer sheet not found")
        return Response(content=payload, media_type=DOCX_MEDIA_TYPE)

    @router.post("/download-answer-sheets-zip")
    async def download_bundle(body: BundleDownloadRequest):
        missing = [item for item in body.storage_ids if item not in store.artifacts]
        if missing:
            return _error(404, "One or more answer sheets were not found")
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for index, storage_id in enumerate(body.storage_ids, start=1):
                archive.writestr(f"answer-sheet-{index}.docx", store.artifacts[storage_id])
        return Response(content=buffer.getvalue(), media_type="application/zip")

    return router


def create_scaffold_app(store: ScaffoldStore | None = None) -> FastAPI:
    store = store or default_store()
    app = FastAPI(title="Batch generation scaffold service")
    app.state.scaffold = store
    app.include_router(build_scaffold_router(store))
    return app
