"""
In-memory state of a single encryption run.

Nothing here is persisted; the ordered task list is handed from one
pipeline stage to the next.
"""

from .models import CleanupFailure, EncryptionTask, RunContext, RunReport, VolumeRecord

__all__ = [
    "CleanupFailure",
    "EncryptionTask",
    "RunContext",
    "RunReport",
    "VolumeRecord",
]
