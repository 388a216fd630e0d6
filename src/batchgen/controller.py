"""Batch generation workflow controller.

The controller owns a single ``WorkflowState`` and moves it forward with the
pure transitions in ``intake``, ``preview``, ``recipients``, ``submission`` and
``results``. Network calls go through ``GenerationServiceClient``. Failures
never escape: they land in the error slot or the notification queue and the
caller gets an outcome object describing what happened.

All methods must be called from the event loop that owns the controller.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, replace
import logging
from typing import Iterable

from batchgen.client import GenerationServiceClient
from batchgen.errors import (
    AnalysisFailedError,
    AttachmentTooLarge,
    DownloadFailedError,
    InvalidInputError,
    NetworkError,
    SubmissionInProgressError,
    ValidationError,
    WorkflowError,
)
from batchgen.intake import (
    IntakeLimits,
    add_attachments,
    remove_attachment,
    remove_primary_document,
    set_primary_document,
)
from batchgen.preview import (
    apply_analysis_failure,
    apply_analysis_result,
    begin_analysis,
    is_current,
    set_override,
)
from batchgen.progress import ProgressEstimator
from batchgen.recipients import (
    apply_group_members,
    apply_group_members_failure,
    apply_groups,
    is_all_selected,
    set_group,
    toggle_member,
    toggle_select_all,
)
from batchgen.results import (
    ARTIFACT_EXTENSION,
    BUNDLE_FILENAME,
    ArtifactSink,
    DirectoryArtifactSink,
    apply_artifacts,
    artifact_filename,
    artifact_ids,
    suggested_download_name,
    to_artifact_references,
)
from batchgen.settings import Settings
from batchgen.state import (
    Attachment,
    ArtifactReference,
    NotificationLevel,
    PromptFragments,
    SourceDocument,
    SubmissionStatus,
    WorkflowPhase,
    WorkflowState,
    push_notification,
)
from batchgen.submission import build_generation_request, current_phase


LOGGER = logging.getLogger(__name__)

ANALYSIS_FAILED_MESSAGE = "Failed to analyze the source document"


@dataclass(frozen=True)
class IntakeOutcome:
    ok: bool
    accepted: tuple[str, ...] = ()
    rejected: tuple[InvalidInputError, ...] = ()
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class SubmissionOutcome:
    ok: bool
    artifacts: tuple[ArtifactReference, ...] = ()
    count: int = 0
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class DownloadOutcome:
    ok: bool
    location: str | None = None
    error_code: str | None = None
    error_message: str | None = None


def _locked_outcome(outcome_type):
    error = SubmissionInProgressError()
    return outcome_type(ok=False, error_code=error.code, error_message=error.message)


class BatchGenerationController:
    def __init__(
        self,
        client: GenerationServiceClient,
        *,
        sink: ArtifactSink,
        limits: IntakeLimits | None = None,
        estimator: ProgressEstimator | None = None,
        artifact_label: str = "Generated Document",
        artifact_extension: str = ARTIFACT_EXTENSION,
        bundle_filename: str = BUNDLE_FILENAME,
        owns_client: bool = False,
    ) -> None:
        self._client = client
        self._sink = sink
        self._limits = limits or IntakeLimits()
        self._estimator = estimator or ProgressEstimator()
        self._estimator.on_change = self._on_progress
        self._artifact_label = artifact_label
        self._artifact_extension = artifact_extension
        self._bundle_filename = bundle_filename
        self._owns_client = owns_client
        self._state = WorkflowState()
        self._analysis_task: asyncio.Task | None = None
        self._pending_analyses: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        client: GenerationServiceClient | None = None,
        sink: ArtifactSink | None = None,
    ) -> "BatchGenerationController":
        owns_client = client is None
        client = client or GenerationServiceClient(
            api_base_url=settings.api_base_url,
            bearer_token=settings.api_bearer_token,
            timeout_seconds=settings.request_timeout_seconds,
            generation_timeout_seconds=settings.generation_timeout_seconds,
        )
        return cls(
            client,
            sink=sink or DirectoryArtifactSink(settings.download_dir),
            limits=IntakeLimits(
                primary_document_max_bytes=settings.primary_document_max_bytes,
                attachment_max_bytes=settings.attachment_max_bytes,
            ),
            estimator=ProgressEstimator(
                tick_seconds=settings.progress_tick_seconds,
                max_increment=settings.progress_max_increment,
                display_seconds=settings.progress_display_seconds,
            ),
            artifact_label=settings.artifact_label,
            owns_client=owns_client,
        )

    # -- read side -------------------------------------------------------

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def phase(self) -> WorkflowPhase:
        return current_phase(self._state)

    @property
    def is_submitting(self) -> bool:
        return self._state.status is SubmissionStatus.SUBMITTING

    @property
    def can_submit(self) -> bool:
        return self.phase is WorkflowPhase.READY

    @property
    def select_all_indicator(self) -> bool:
        return is_all_selected(self._state.recipients)

    @property
    def visible_error(self) -> str | None:
        return self._state.error or self._state.preview.error

    @property
    def progress(self) -> ProgressEstimator:
        return self._estimator

    @property
    def analysis_task(self) -> asyncio.Task | None:
        return self._analysis_task

    def _on_progress(self, value: float) -> None:
        self._state = replace(self._state, progress=value)

    def _notify(self, level: NotificationLevel, title: str, description: str = "") -> None:
        self._state = push_notification(self._state, level, title, description)

    def _ignored_while_submitting(self, action: str) -> bool:
        if not self.is_submitting:
            return False
        LOGGER.info("Ignoring %s while a submission is in progress", action)
        return True

    # -- reference data --------------------------------------------------

    async def load_groups(self) -> bool:
        try:
            groups = await self._client.list_groups()
        except WorkflowError as exc:
            LOGGER.warning("Unable to load recipient groups: %s", exc.message)
            self._notify(NotificationLevel.ERROR, "Failed to load recipient groups", exc.message)
            return False
        self._state = apply_groups(self._state, groups)
        return True

    async def load_prompt_defaults(self) -> bool:
        try:
            defaults = await self._client.fetch_prompt_settings()
        except WorkflowError as exc:
            LOGGER.warning("Unable to load prompt defaults: %s", exc.message)
            return False
        if defaults is None:
            return False
        current = self._state.prompts
        # Only fill fragments the user has not already written.
        self._state = replace(
            self._state,
            prompts=PromptFragments(
                system_prompt=current.system_prompt or defaults.system_prompt,
                user_prompt=current.user_prompt or defaults.user_prompt,
            ),
        )
        return True

    # -- intake and preview ----------------------------------------------

    def select_primary_document(self, document: SourceDocument) -> IntakeOutcome:
        """Validate and store the document, then analyze it in the background."""
        if self._ignored_while_submitting("document selection"):
            return _locked_outcome(IntakeOutcome)
        try:
            self._state = set_primary_document(self._state, document, self._limits)
        except InvalidInputError as exc:
            self._notify(NotificationLevel.ERROR, "Invalid file", exc.message)
            return IntakeOutcome(
                ok=False,
                rejected=(exc,),
                error_code=exc.code,
                error_message=exc.message,
            )
        self._state, token = begin_analysis(self._state)
        task = asyncio.create_task(self._run_analysis(document, token))
        self._pending_analyses.add(task)
        task.add_done_callback(self._pending_analyses.discard)
        self._analysis_task = task
        return IntakeOutcome(ok=True, accepted=(document.filename,))

    async def wait_for_analysis(self) -> None:
        task = self._analysis_task
        if task is not None:
            await task

    async def analyze(self) -> bool:
        """Re-run analysis for the current document."""
        document = self._state.document
        if document is None:
            return False
        self._state, token = begin_analysis(self._state)
        return await self._run_analysis(document, token)

    async def _run_analysis(self, document: SourceDocument, token: int) -> bool:
        try:
            items = await self._client.analyze(document)
        except NetworkError:
            self._state = apply_analysis_failure(self._state, token, ANALYSIS_FAILED_MESSAGE)
            return False
        except WorkflowError as exc:
            failure = AnalysisFailedError(exc.message or ANALYSIS_FAILED_MESSAGE)
            LOGGER.warning("Document analysis failed: %s", failure.message)
            self._state = apply_analysis_failure(self._state, token, failure.message)
            return False
        except Exception:
            LOGGER.exception("Document analysis failed unexpectedly")
            self._state = apply_analysis_failure(self._state, token, ANALYSIS_FAILED_MESSAGE)
            return False
        self._state = apply_analysis_result(self._state, token, items)
        return is_current(self._state, token)

    def remove_primary_document(self) -> None:
        if self._ignored_while_submitting("document removal"):
            return
        self._state = remove_primary_document(self._state)

    def add_attachments(self, files: Iterable[Attachment]) -> IntakeOutcome:
        if self._ignored_while_submitting("attachment upload"):
            return _locked_outcome(IntakeOutcome)
        intake = add_attachments(self._state, files, self._limits)
        self._state = intake.state
        for rejection in intake.rejected:
            title = (
                "File too large"
                if isinstance(rejection, AttachmentTooLarge)
                else "Unsupported file type"
            )
            self._notify(NotificationLevel.ERROR, title, rejection.message)
        return IntakeOutcome(
            ok=not intake.rejected,
            accepted=tuple(item.filename for item in intake.accepted),
            rejected=intake.rejected,
            error_code=intake.rejected[0].code if intake.rejected else None,
            error_message=intake.rejected[0].message if intake.rejected else None,
        )

    def remove_attachment(self, index: int) -> None:
        if self._ignored_while_submitting("attachment removal"):
            return
        self._state = remove_attachment(self._state, index)

    def set_override(self, item_number: str, raw_value) -> None:
        if self._ignored_while_submitting("override edit"):
            return
        self._state = set_override(self._state, item_number, raw_value)

    def set_prompts(
        self,
        *,
        system_prompt: str | None = None,
        user_prompt: str | None = None,
    ) -> None:
        if self._ignored_while_submitting("prompt edit"):
            return
        current = self._state.prompts
        self._state = replace(
            self._state,
            prompts=PromptFragments(
                system_prompt=current.system_prompt if system_prompt is None else system_prompt,
                user_prompt=current.user_prompt if user_prompt is None else user_prompt,
            ),
        )

    # -- recipients ------------------------------------------------------

    async def select_group(self, group_id: str | None) -> bool:
        if self._ignored_while_submitting("group change"):
            return False
        self._state, token = set_group(self._state, group_id)
        active_group = self._state.recipients.group_id
        if active_group is None:
            return True
        try:
            members = await self._client.list_group_members(active_group)
        except WorkflowError as exc:
            LOGGER.warning(
                "Unable to load group members: %s",
                exc.message,
                extra={"group_id": active_group},
            )
            self._state = apply_group_members_failure(self._state, token)
            self._notify(NotificationLevel.ERROR, "Failed to load recipients", exc.message)
            return False
        self._state = apply_group_members(self._state, token, members)
        return self._state.recipients.token == token

    def toggle_member(self, recipient_id: str) -> None:
        if self._ignored_while_submitting("recipient toggle"):
            return
        self._state = toggle_member(self._state, recipient_id)

    def toggle_select_all(self) -> None:
        if self._ignored_while_submitting("select all"):
            return
        self._state = toggle_select_all(self._state)

    # -- submission ------------------------------------------------------

    async def submit(self) -> SubmissionOutcome:
        if self.is_submitting:
            return _locked_outcome(SubmissionOutcome)
        try:
            request = build_generation_request(self._state)
        except ValidationError as exc:
            self._state = replace(self._state, error=exc.message)
            return SubmissionOutcome(ok=False, error_code=exc.code, error_message=exc.message)

        self._state = replace(self._state, status=SubmissionStatus.SUBMITTING, error=None)
        LOGGER.info(
            "Submitting generation request",
            extra={
                "group_id": request.group_id,
                "generate_all": request.generate_all,
                "recipient_count": len(request.recipient_ids),
                "attachment_count": len(request.attachments),
            },
        )
        try:
            response = await self._estimator.track(self._client.submit(request))
        except WorkflowError as exc:
            LOGGER.warning("Generation request failed: %s", exc.message)
            self._state = replace(self._state, status=SubmissionStatus.FAILED, error=exc.message)
            return SubmissionOutcome(ok=False, error_code=exc.code, error_message=exc.message)
        except asyncio.CancelledError:
            self._state = replace(self._state, status=SubmissionStatus.FAILED)
            raise
        except Exception:
            failure = NetworkError()
            LOGGER.exception("Generation request failed unexpectedly")
            self._state = replace(
                self._state, status=SubmissionStatus.FAILED, error=failure.message
            )
            return SubmissionOutcome(
                ok=False, error_code=failure.code, error_message=failure.message
            )

        artifacts = to_artifact_references(response, label=self._artifact_label)
        count = response.count if response.count is not None else len(artifacts)
        self._state = apply_artifacts(
            replace(self._state, status=SubmissionStatus.COMPLETED),
            artifacts,
        )
        LOGGER.info("Generation request completed", extra={"artifact_count": len(artifacts)})
        self._notify(
            NotificationLevel.SUCCESS,
            "Documents generated successfully!",
            f"{count} document(s) ready for download",
        )
        return SubmissionOutcome(ok=True, artifacts=artifacts, count=count)

    # -- results ---------------------------------------------------------

    def _default_download_name(self, artifact_id: str) -> str | None:
        for index, artifact in enumerate(self._state.artifacts):
            if artifact.id == artifact_id:
                return suggested_download_name(index)
        return None

    def _download_failed(self, title: str, cause: Exception) -> DownloadOutcome:
        failure = DownloadFailedError()
        LOGGER.warning("%s: %s", title, cause)
        self._notify(NotificationLevel.ERROR, title, failure.message)
        return DownloadOutcome(
            ok=False,
            error_code=failure.code,
            error_message=failure.message,
        )

    async def download_one(
        self,
        artifact_id: str,
        suggested_name: str | None = None,
    ) -> DownloadOutcome:
        try:
            payload = await self._client.fetch_artifact(artifact_id)
        except WorkflowError as exc:
            return self._download_failed("Download failed", exc)
        name = suggested_name or self._default_download_name(artifact_id)
        filename = artifact_filename(name, self._artifact_extension)
        try:
            location = self._sink.save(filename, payload)
        except OSError as exc:
            return self._download_failed("Download failed", exc)
        self._notify(
            NotificationLevel.SUCCESS,
            "Download started!",
            "Your document is being downloaded",
        )
        return DownloadOutcome(ok=True, location=location)

    async def download_all(self) -> DownloadOutcome | None:
        ids = artifact_ids(self._state)
        if not ids:
            return None
        try:
            payload = await self._client.fetch_artifact_bundle(ids)
        except WorkflowError as exc:
            return self._download_failed("Bundle download failed", exc)
        try:
            location = self._sink.save(self._bundle_filename, payload)
        except OSError as exc:
            return self._download_failed("Bundle download failed", exc)
        self._notify(NotificationLevel.SUCCESS, "Download started", "Bundle is downloading")
        return DownloadOutcome(ok=True, location=location)

    async def aclose(self) -> None:
        await self._estimator.aclose()
        # Superseded analyses may still be in flight alongside the latest one.
        pending = list(self._pending_analyses)
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._pending_analyses.clear()
        self._analysis_task = None
        if self._owns_client:
            await self._client.aclose()
