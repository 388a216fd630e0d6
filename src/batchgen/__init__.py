from batchgen.client import GenerationServiceClient
from batchgen.controller import (
    BatchGenerationController,
    DownloadOutcome,
    IntakeOutcome,
    SubmissionOutcome,
)
from batchgen.progress import ProgressEstimator
from batchgen.settings import Settings, load_settings
from batchgen.state import WorkflowState, snapshot_state

__all__ = [
    "BatchGenerationController",
    "DownloadOutcome",
    "GenerationServiceClient",
    "IntakeOutcome",
    "ProgressEstimator",
    "Settings",
    "SubmissionOutcome",
    "WorkflowState",
    "load_settings",
    "snapshot_state",
]
