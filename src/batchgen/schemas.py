from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator


def _coerce_identifier(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        raise ValueError("identifier must be a string or integer")
    if isinstance(value, (int, str)):
        normalized = str(value).strip()
        if normalized:
            return normalized
    raise ValueError("identifier must be a non-empty string or integer")


Identifier = Annotated[str, BeforeValidator(_coerce_identifier)]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PreviewItemPayload(_WireModel):
    number: Identifier
    text: str = ""
    marks: float = 0
    suggested_count: int = Field(alias="suggestedBullets", ge=1)


class PreviewResponse(_WireModel):
    questions: list[PreviewItemPayload] = Field(default_factory=list)


class RecipientGroupPayload(_WireModel):
    id: Identifier
    title: str = ""
    member_count: int = Field(default=0, alias="entriesCount", ge=0)


class GroupsResponse(_WireModel):
    lists: list[RecipientGroupPayload] = Field(default_factory=list)


class RecipientPayload(_WireModel):
    id: Identifier
    display_order: str | None = Field(default=None, alias="sequenceId")
    name: str = Field(default="", alias="learnerName")
    external_id: str | None = Field(default=None, alias="learnerId")

    @field_validator("display_order", "external_id", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        if value is None:
            return None
        normalized = str(value).strip()
        return normalized or None


class GroupMembersResponse(_WireModel):
    candidates: list[RecipientPayload] = Field(default_factory=list)


class PromptSettingsPayload(_WireModel):
    system_prompt: str | None = Field(default=None, alias="attachmentSystemPrompt")
    user_prompt: str | None = Field(default=None, alias="attachmentUserPrompt")


class PromptSettingsResponse(_WireModel):
    settings: PromptSettingsPayload | None = None


class GeneratedArtifactPayload(_WireModel):
    id: Identifier
    name: str = ""


class GenerationResponse(_WireModel):
    generated: list[GeneratedArtifactPayload] = Field(default_factory=list)
    count: int | None = None


class ArtifactDownloadRequest(_WireModel):
    storage_id: str = Field(alias="storageId")


class BundleDownloadRequest(_WireModel):
    storage_ids: list[str] = Field(alias="storageIds", min_length=1)
