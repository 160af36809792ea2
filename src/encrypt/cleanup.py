from __future__ import annotations

import logging
from typing import Iterable, List

from common.ec2 import Ec2Client, ProviderError, ResourceNotFoundError
from state.models import CleanupFailure, EncryptionTask


logger = logging.getLogger(__name__)


def cleanup_snapshots(ec2: Ec2Client, tasks: Iterable[EncryptionTask]) -> List[CleanupFailure]:
    """
    Best-effort deletion of the intermediate snapshot of every swapped task.

    A snapshot that is already gone counts as deleted, so running this twice
    is harmless. Other failures are logged and returned; they never raise.
    """
    failures: List[CleanupFailure] = []
    for task in tasks:
        if not task.swapped or not task.snapshot_id:
            continue
        snapshot_id = task.snapshot_id
        try:
            if ec2.snapshot_exists(snapshot_id):
                ec2.delete_snapshot(snapshot_id)
                logger.info("Deleted snapshot %s", snapshot_id)
            else:
                logger.info("Snapshot %s already gone", snapshot_id)
        except ResourceNotFoundError:
            logger.info("Snapshot %s already gone", snapshot_id)
        except ProviderError as e:
            logger.warning("Could not delete snapshot %s: %s", snapshot_id, e)
            failures.append(
                CleanupFailure(snapshot_id=snapshot_id, volume_id=task.source.volume_id, message=str(e))
            )
            continue
        task.snapshot_deleted = True
    return failures
