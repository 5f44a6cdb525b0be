"""avdmon modules - self-contained bricks used by the orchestrator

- Prerequisites Checker: Verify the Azure CLI is installed
- Progress Display: Per-resource progress while a run is in flight
"""

from .prerequisites import PrerequisiteChecker, PrerequisiteError, PrerequisiteResult
from .progress import ProgressDisplay, ProgressStage, ProgressUpdate

__all__ = [
    "PrerequisiteChecker",
    "PrerequisiteError",
    "PrerequisiteResult",
    "ProgressDisplay",
    "ProgressStage",
    "ProgressUpdate",
]
