from __future__ import annotations

import json
import logging
from typing import Any, Mapping
from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError

from batchgen.errors import NetworkError, RemoteServiceError
from batchgen.preview import build_preview_items
from batchgen.schemas import (
    ArtifactDownloadRequest,
    BundleDownloadRequest,
    GenerationResponse,
    GroupMembersResponse,
    GroupsResponse,
    PreviewResponse,
    PromptSettingsResponse,
)
from batchgen.state import (
    PreviewItem,
    PromptFragments,
    Recipient,
    RecipientGroup,
    SourceDocument,
)
from batchgen.submission import GenerationRequest


LOGGER = logging.getLogger(__name__)

PREVIEW_PATH = "/attachment-generation/preview"
GROUPS_PATH = "/candidate-lists"
GROUP_MEMBERS_PATH = "/candidate-lists/{group_id}"
PROMPT_SETTINGS_PATH = "/settings"
GENERATE_PATH = "/attachment-generation/generate"
ARTIFACT_PATH = "/download-answer-sheet"
BUNDLE_PATH = "/download-answer-sheets-zip"

NETWORK_ERROR_MESSAGE = "Network error. Please try again."


def build_backend_api_url(base_url: str, path: str) -> str:
    normalized_base = base_url.strip().rstrip("/")
    normalized_path = path if path.startswith("/") else f"/{path}"
    if normalized_base.endswith("/api"):
        return f"{normalized_base}{normalized_path}"
    return f"{normalized_base}/api{normalized_path}"


def _default_error_message(status_code: int) -> str:
    if status_code == 401:
        return "Missing or invalid API bearer token."
    if status_code == 404:
        return "The requested resource was not found."
    if status_code == 413:
        return "The uploaded files are too large for the service."
    if status_code == 422:
        return "Request validation failed. Check your inputs and try again."
    if status_code == 429:
        return "Request rate exceeded allowed threshold. Please retry shortly."
    if status_code == 503:
        return "The generation service is currently unavailable."
    return "Unable to complete the request at this time."


def extract_error_message(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, str) and error.strip():
        return error
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message
    message = payload.get("message")
    if isinstance(message, str) and message.strip():
        return message
    return None


def _file_part(filename: str, payload: bytes, media_type: str) -> tuple[str, bytes, str]:
    return (filename, payload, media_type)


class GenerationServiceClient:
    """Async client for the analysis and generation service."""

    def __init__(
        self,
        *,
        api_base_url: str,
        bearer_token: str | None = None,
        timeout_seconds: float = 30.0,
        generation_timeout_seconds: float = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_base_url = api_base_url
        self.bearer_token = bearer_token
        self.timeout_seconds = timeout_seconds
        self.generation_timeout_seconds = generation_timeout_seconds
        headers = {"accept": "application/json"}
        if bearer_token:
            headers["authorization"] = f"Bearer {bearer_token}"
        self._http = httpx.AsyncClient(
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "GenerationServiceClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _url(self, path: str) -> str:
        return build_backend_api_url(self.api_base_url, path)

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = self._url(path)
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            LOGGER.warning(
                "Generation service transport request failed: %s",
                exc,
                exc_info=True,
                extra={"path": path},
            )
            raise NetworkError(NETWORK_ERROR_MESSAGE) from exc

        if not response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = extract_error_message(body) or _default_error_message(
                response.status_code
            )
            LOGGER.warning(
                "Generation service returned an error response",
                extra={"path": path, "status_code": response.status_code},
            )
            raise RemoteServiceError(message, status_code=response.status_code)
        return response

    @staticmethod
    def _json_body(response: httpx.Response, *, fallback_message: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteServiceError(
                fallback_message, status_code=response.status_code
            ) from exc

    @staticmethod
    def _parse(model, body: Any, *, fallback_message: str, status_code: int):
        try:
            return model.model_validate(body)
        except PydanticValidationError as exc:
            LOGGER.warning("Malformed generation service payload: %s", exc)
            raise RemoteServiceError(fallback_message, status_code=status_code) from exc

    async def _get_model(self, path: str, model, *, fallback_message: str):
        response = await self._send("GET", path)
        body = self._json_body(response, fallback_message=fallback_message)
        return self._parse(
            model,
            body,
            fallback_message=fallback_message,
            status_code=response.status_code,
        )

    async def analyze(self, document: SourceDocument) -> tuple[PreviewItem, ...]:
        fallback = "Failed to analyze the source document"
        response = await self._send(
            "POST",
            PREVIEW_PATH,
            files={
                "pdf": _file_part(document.filename, document.payload, document.media_type)
            },
        )
        body = self._json_body(response, fallback_message=fallback)
        parsed = self._parse(
            PreviewResponse,
            body,
            fallback_message=fallback,
            status_code=response.status_code,
        )
        return build_preview_items(parsed.questions)

    async def list_groups(self) -> tuple[RecipientGroup, ...]:
        parsed = await self._get_model(
            GROUPS_PATH,
            GroupsResponse,
            fallback_message="Failed to load recipient groups",
        )
        return tuple(
            RecipientGroup(id=item.id, title=item.title, member_count=item.member_count)
            for item in parsed.lists
        )

    async def list_group_members(self, group_id: str) -> tuple[Recipient, ...]:
        parsed = await self._get_model(
            GROUP_MEMBERS_PATH.format(group_id=quote(group_id, safe="")),
            GroupMembersResponse,
            fallback_message="Failed to load recipients",
        )
        return tuple(
            Recipient(
                id=item.id,
                display_order=item.display_order,
                name=item.name,
                external_id=item.external_id,
            )
            for item in parsed.candidates
        )

    async def fetch_prompt_settings(self) -> PromptFragments | None:
        parsed = await self._get_model(
            PROMPT_SETTINGS_PATH,
            PromptSettingsResponse,
            fallback_message="Failed to load prompt settings",
        )
        if parsed.settings is None:
            return None
        return PromptFragments(
            system_prompt=parsed.settings.system_prompt or "",
            user_prompt=parsed.settings.user_prompt or "",
        )

    async def submit(self, request: GenerationRequest) -> GenerationResponse:
        fallback = "Failed to generate documents"
        files: list[tuple[str, tuple[str, bytes, str]]] = [
            (
                "questionPaper",
                _file_part(
                    request.document.filename,
                    request.document.payload,
                    request.document.media_type,
                ),
            )
        ]
        for attachment in request.attachments:
            files.append(
                (
                    "attachments",
                    _file_part(attachment.filename, attachment.payload, attachment.media_type),
                )
            )

        data: dict[str, Any] = {
            "listId": request.group_id,
            "bulletOverrides": json.dumps(dict(request.overrides)),
            "attachmentSystemPrompt": request.prompts.system_prompt or "",
            "attachmentUserPrompt": request.prompts.user_prompt or "",
        }
        if request.generate_all:
            data["generateAll"] = "true"
        else:
            data["candidateIds"] = list(request.recipient_ids)

        response = await self._send(
            "POST",
            GENERATE_PATH,
            data=data,
            files=files,
            timeout=self.generation_timeout_seconds,
        )
        body = self._json_body(response, fallback_message=fallback)
        return self._parse(
            GenerationResponse,
            body,
            fallback_message=fallback,
            status_code=response.status_code,
        )

    async def _fetch_binary(self, path: str, payload: Mapping[str, Any]) -> bytes:
        response = await self._send("POST", path, json=payload)
        return response.content

    async def fetch_artifact(self, artifact_id: str) -> bytes:
        body = ArtifactDownloadRequest(storage_id=artifact_id)
        return await self._fetch_binary(ARTIFACT_PATH, body.model_dump(by_alias=True))

    async def fetch_artifact_bundle(self, artifact_ids) -> bytes:
        body = BundleDownloadRequest(storage_ids=list(artifact_ids))
        return await self._fetch_binary(BUNDLE_PATH, body.model_dump(by_alias=True))

