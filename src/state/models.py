from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class VolumeRecord(BaseModel):
    """
    One EBS volume attached to the target instance, as read at the start of a run.

    Fields
    - device_path / delete_on_termination: taken from the volume's attachment to
      the instance. Either can be None when the provider reports no attachment;
      reattach steps that depend on them are then skipped.
    - iops / throughput: carried over to the encrypted clone when set.
    - tags: user tags of the volume (keys with the reserved `aws:` prefix are
      dropped since they cannot be written back).
    """

    model_config = ConfigDict(frozen=True)

    volume_id: str
    availability_zone: str
    volume_type: str
    device_path: Optional[str] = None
    delete_on_termination: Optional[bool] = None
    encrypted: bool = False
    size: Optional[int] = None
    iops: Optional[int] = None
    throughput: Optional[int] = None
    tags: Dict[str, str] = Field(default_factory=dict)


class EncryptionTask(BaseModel):
    """
    Per-volume unit of work, filled in as the run progresses.

    Lives only in memory: an interrupted run leaves its snapshots and new
    volumes behind without any record to resume from.
    """

    source: VolumeRecord
    snapshot_id: Optional[str] = None
    new_volume_id: Optional[str] = None
    swapped: bool = False
    snapshot_deleted: bool = False

    def is_ready(self) -> bool:
        """True once both the snapshot and the encrypted clone exist."""
        return bool(self.snapshot_id) and bool(self.new_volume_id)


class RunContext(BaseModel):
    region: str
    instance_id: str
    kms_key_id: str
    any_volume_needs_encryption: bool = False


class CleanupFailure(BaseModel):
    snapshot_id: str
    volume_id: str
    message: str


class RunReport(BaseModel):
    """Outcome of one run; also the Lambda response body."""

    ok: bool = True
    instance_id: str
    region: str
    dry_run: bool = False
    skipped: List[str] = Field(default_factory=list, description="Already encrypted volume ids")
    planned: List[str] = Field(default_factory=list, description="Volume ids classified for encryption")
    encrypted: List[Tuple[str, str]] = Field(
        default_factory=list,
        description="(source volume id, encrypted volume id) pairs in swap order",
    )
    cleanup_failures: List[CleanupFailure] = Field(default_factory=list)
