from __future__ import annotations

import json
import logging

import httpx
import pytest

from batchgen.client import (
    NETWORK_ERROR_MESSAGE,
    GenerationServiceClient,
    build_backend_api_url,
    extract_error_message,
)
from batchgen.errors import NetworkError, RemoteServiceError
from batchgen.state import Attachment, PromptFragments, SourceDocument
from batchgen.submission import GenerationRequest


PAPER = SourceDocument(filename="paper.pdf", media_type="application/pdf", payload=b"%PDF-1.4")


def _client(handler, **kwargs) -> GenerationServiceClient:
    return GenerationServiceClient(
        api_base_url="https://generation.example.test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _request(**overrides) -> GenerationRequest:
    values = {
        "document": PAPER,
        "attachments": (
            Attachment(filename="guide.txt", media_type="text/plain", payload=b"guide"),
        ),
        "group_id": "group-a",
        "generate_all": False,
        "recipient_ids": ("a1", "a3"),
        "overrides": {"Q1": 2, "Q2": 5},
        "prompts": PromptFragments("Be concise.", "Answer {questionNumber}."),
    }
    values.update(overrides)
    return GenerationRequest(**values)


def test_build_backend_api_url_adds_api_prefix_once() -> None:
    assert (
        build_backend_api_url("https://svc.example.test/", "/settings")
        == "https://svc.example.test/api/settings"
    )
    assert (
        build_backend_api_url("https://svc.example.test/api", "settings")
        == "https://svc.example.test/api/settings"
    )


def test_extract_error_message_supports_common_envelopes() -> None:
    assert extract_error_message({"error": "Quota exceeded"}) == "Quota exceeded"
    assert extract_error_message({"error": {"message": "Bad list"}}) == "Bad list"
    assert extract_error_message({"message": "Try later"}) == "Try later"
    assert extract_error_message({"error": "  "}) is None
    assert extract_error_message(["not", "a", "dict"]) is None


@pytest.mark.asyncio
async def test_analyze_uploads_pdf_and_parses_items() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = request.content
        seen["authorization"] = request.headers.get("authorization")
        return httpx.Response(
            200,
            json={
                "questions": [
                    {"number": 1, "text": "Define.", "marks": 2, "suggestedBullets": 2},
                    {"number": "1b", "text": "Explain.", "marks": 4, "suggestedBullets": 3},
                ]
            },
        )

    async with _client(handler, bearer_token="secret-token") as client:
        items = await client.analyze(PAPER)

    assert seen["path"] == "/api/attachment-generation/preview"
    assert seen["authorization"] == "Bearer secret-token"
    assert b'name="pdf"; filename="paper.pdf"' in seen["body"]
    assert [(item.number, item.suggested_count) for item in items] == [("1", 2), ("1b", 3)]


@pytest.mark.asyncio
async def test_remote_error_message_is_passed_through_verbatim() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": "Quota exceeded"})

    async with _client(handler) as client:
        with pytest.raises(RemoteServiceError) as exc_info:
            await client.submit(_request())

    assert exc_info.value.message == "Quota exceeded"
    assert exc_info.value.status_code == 429
    assert exc_info.value.code == "REMOTE_FAILURE"


@pytest.mark.asyncio
async def test_remote_error_without_body_uses_status_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream down")

    async with _client(handler) as client:
        with pytest.raises(RemoteServiceError) as exc_info:
            await client.list_groups()

    assert exc_info.value.message == "The generation service is currently unavailable."


@pytest.mark.asyncio
async def test_transport_failure_becomes_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(NetworkError) as exc_info:
            await client.analyze(PAPER)

    assert exc_info.value.message == NETWORK_ERROR_MESSAGE
    assert exc_info.value.code == "NETWORK_FAILURE"


@pytest.mark.asyncio
async def test_malformed_preview_payload_is_a_remote_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"questions": [{"number": "Q1", "suggestedBullets": 0}]})

    async with _client(handler) as client:
        with pytest.raises(RemoteServiceError, match="Failed to analyze the source document"):
            await client.analyze(PAPER)


@pytest.mark.asyncio
async def test_non_json_success_body_is_a_remote_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    async with _client(handler) as client:
        with pytest.raises(RemoteServiceError, match="Failed to load recipient groups"):
            await client.list_groups()


@pytest.mark.asyncio
async def test_list_groups_and_members_map_wire_fields() -> None:
    paths: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.raw_path)
        if request.url.path == "/api/candidate-lists":
            return httpx.Response(
                200,
                json={"lists": [{"id": 12, "title": "Cohort 12", "entriesCount": 2}]},
            )
        return httpx.Response(
            200,
            json={
                "candidates": [
                    {"id": 7, "sequenceId": 1, "learnerName": "Ada Obi", "learnerId": "L-7"},
                    {"id": "8", "learnerName": "Ben Rask", "learnerId": ""},
                ]
            },
        )

    async with _client(handler) as client:
        groups = await client.list_groups()
        members = await client.list_group_members("cohort/12")

    assert groups[0].id == "12"
    assert groups[0].member_count == 2
    assert paths[1] == b"/api/candidate-lists/cohort%2F12"
    assert [(member.id, member.display_order, member.external_id) for member in members] == [
        ("7", "1", "L-7"),
        ("8", None, None),
    ]


@pytest.mark.asyncio
async def test_fetch_prompt_settings_returns_none_without_settings() -> None:
    responses = iter(
        [
            {"settings": {"attachmentSystemPrompt": "Be concise.", "attachmentUserPrompt": None}},
            {},
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=next(responses))

    async with _client(handler) as client:
        first = await client.fetch_prompt_settings()
        second = await client.fetch_prompt_settings()

    assert first == PromptFragments(system_prompt="Be concise.", user_prompt="")
    assert second is None


@pytest.mark.asyncio
async def test_submit_subset_sends_multipart_fields() -> None:
    seen: dict[str, bytes] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = request.content
        return httpx.Response(
            200,
            json={"generated": [{"id": "s-1", "name": "Ada"}, {"id": "s-2", "name": "Chen"}]},
        )

    async with _client(handler) as client:
        response = await client.submit(_request())

    body = seen["body"]
    assert b'name="questionPaper"; filename="paper.pdf"' in body
    assert b'name="attachments"; filename="guide.txt"' in body
    assert b'name="listId"\r\n\r\ngroup-a' in body
    assert body.count(b'name="candidateIds"') == 2
    assert b'name="generateAll"' not in body
    assert json.dumps({"Q1": 2, "Q2": 5}).encode("utf-8") in body
    assert b"Answer {questionNumber}." in body
    assert [item.id for item in response.generated] == ["s-1", "s-2"]
    assert response.count is None


@pytest.mark.asyncio
async def test_submit_all_sends_generate_all_flag_only() -> None:
    seen: dict[str, bytes] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = request.content
        return httpx.Response(200, json={"generated": [], "count": 0})

    async with _client(handler) as client:
        await client.submit(_request(generate_all=True, recipient_ids=(), attachments=()))

    assert b'name="generateAll"\r\n\r\ntrue' in seen["body"]
    assert b'name="candidateIds"' not in seen["body"]
    assert b'name="attachments"' not in seen["body"]


@pytest.mark.asyncio
async def test_artifact_downloads_post_storage_ids() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, content=b"PK\x03\x04")

    async with _client(handler) as client:
        single = await client.fetch_artifact("s-1")
        bundle = await client.fetch_artifact_bundle(("s-1", "s-2"))

    assert single == b"PK\x03\x04"
    assert bundle == b"PK\x03\x04"
    assert bodies == [{"storageId": "s-1"}, {"storageIds": ["s-1", "s-2"]}]


@pytest.mark.asyncio
async def test_transport_failure_is_logged_by_client_logger(caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    caplog.set_level(logging.WARNING, logger="batchgen.client")
    async with _client(handler) as client:
        with pytest.raises(NetworkError):
            await client.list_groups()

    records = [record for record in caplog.records if record.name == "batchgen.client"]
    assert records
    assert records[0].path == "/candidate-lists"
    assert records[0].exc_info is not None
