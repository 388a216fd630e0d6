from __future__ import annotations

from dataclasses import dataclass


@dataclass
class WorkflowError(Exception):
    code: str
    message: str

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)


class InvalidInputError(WorkflowError):
    def __init__(self, message: str = "Invalid input", *, filename: str | None = None) -> None:
        super().__init__(code="INVALID_INPUT", message=message)
        self.filename = filename


class InvalidDocumentType(InvalidInputError):
    pass


class DocumentTooLarge(InvalidInputError):
    pass


class AttachmentTooLarge(InvalidInputError):
    pass


class AttachmentTypeNotAllowed(InvalidInputError):
    pass


class ValidationError(WorkflowError):
    def __init__(self, message: str, *, precondition: str) -> None:
        super().__init__(code="VALIDATION_ERROR", message=message)
        self.precondition = precondition


class RemoteServiceError(WorkflowError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(code="REMOTE_FAILURE", message=message)
        self.status_code = status_code


class NetworkError(WorkflowError):
    def __init__(self, message: str = "Network error. Please try again.") -> None:
        super().__init__(code="NETWORK_FAILURE", message=message)


class AnalysisFailedError(WorkflowError):
    def __init__(self, message: str = "Failed to analyze the source document") -> None:
        super().__init__(code="ANALYSIS_FAILED", message=message)


class DownloadFailedError(WorkflowError):
    def __init__(self, message: str = "There was an error downloading the file") -> None:
        super().__init__(code="DOWNLOAD_FAILED", message=message)


class SubmissionInProgressError(WorkflowError):
    def __init__(self, message: str = "A generation request is already in progress") -> None:
        super().__init__(code="SUBMISSION_IN_PROGRESS", message=message)
