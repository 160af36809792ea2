from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List

from common.ec2 import Ec2Client
from common.polling import RetryPolicy, wait_until
from state.models import EncryptionTask, RunContext, VolumeRecord


logger = logging.getLogger(__name__)

# Provenance tag written on snapshots and encrypted clones
SOURCE_VOLUME_TAG = "SourceVolumeId"

# Volume types whose provisioned performance must be passed on create
IOPS_VOLUME_TYPES = frozenset({"io1", "io2", "gp3"})
THROUGHPUT_VOLUME_TYPES = frozenset({"gp3"})


def create_snapshot(ec2: Ec2Client, volume: VolumeRecord, ctx: RunContext) -> str:
    snapshot_id = ec2.create_snapshot(
        volume.volume_id,
        description=f"Pre-encryption snapshot of {volume.volume_id} ({ctx.instance_id})",
        tags={SOURCE_VOLUME_TAG: volume.volume_id},
    )
    logger.info("Snapshot %s started for volume %s", snapshot_id, volume.volume_id)
    return snapshot_id


def await_completion(
    ec2: Ec2Client,
    snapshot_id: str,
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    wait_until(
        lambda: ec2.snapshot_state(snapshot_id),
        ("completed",),
        failures=("error",),
        policy=policy,
        what=f"Snapshot {snapshot_id}",
        sleep=sleep,
    )


def create_encrypted_volume(ec2: Ec2Client, snapshot_id: str, volume: VolumeRecord, kms_key_id: str) -> str:
    """Clone `snapshot_id` into an encrypted volume shaped like `volume`."""
    tags: Dict[str, str] = dict(volume.tags)
    tags[SOURCE_VOLUME_TAG] = volume.volume_id
    new_volume_id = ec2.create_volume(
        snapshot_id=snapshot_id,
        availability_zone=volume.availability_zone,
        volume_type=volume.volume_type,
        kms_key_id=kms_key_id,
        tags=tags,
        iops=volume.iops if volume.volume_type in IOPS_VOLUME_TYPES else None,
        throughput=volume.throughput if volume.volume_type in THROUGHPUT_VOLUME_TYPES else None,
    )
    logger.info(
        "Encrypted volume %s created from %s in %s (%s)",
        new_volume_id,
        snapshot_id,
        volume.availability_zone,
        volume.volume_type,
    )
    return new_volume_id


def clone_volume(
    ec2: Ec2Client,
    task: EncryptionTask,
    ctx: RunContext,
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> EncryptionTask:
    """Snapshot the task's source volume and create its encrypted clone.

    The task is updated in place as each identifier becomes known, so a
    failure part-way still shows which resources were created.
    """
    src = task.source
    task.snapshot_id = create_snapshot(ec2, src, ctx)
    await_completion(ec2, task.snapshot_id, policy, sleep=sleep)
    new_volume_id = create_encrypted_volume(ec2, task.snapshot_id, src, ctx.kms_key_id)
    task.new_volume_id = new_volume_id
    wait_until(
        lambda: ec2.volume_state(new_volume_id),
        ("available",),
        failures=("error",),
        policy=policy,
        what=f"Volume {new_volume_id}",
        sleep=sleep,
    )
    return task


def clone_all(
    ec2: Ec2Client,
    tasks: List[EncryptionTask],
    ctx: RunContext,
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> List[EncryptionTask]:
    for task in tasks:
        clone_volume(ec2, task, ctx, policy, sleep=sleep)
    return tasks
