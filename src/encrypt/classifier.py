from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, List, Tuple

from state.models import EncryptionTask, VolumeRecord


logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    SKIP = "skip"
    NEEDS_ENCRYPTION = "needs_encryption"


def classify(volume: VolumeRecord) -> Verdict:
    """Encrypted volumes are always skipped, whatever their type or attachment."""
    if volume.encrypted:
        return Verdict.SKIP
    return Verdict.NEEDS_ENCRYPTION


def plan_tasks(volumes: Iterable[VolumeRecord]) -> Tuple[List[VolumeRecord], List[EncryptionTask]]:
    """Split volumes into (skipped, tasks), both in enumeration order."""
    skipped: List[VolumeRecord] = []
    tasks: List[EncryptionTask] = []
    for vol in volumes:
        if classify(vol) is Verdict.SKIP:
            logger.info("Volume %s already encrypted; skipping", vol.volume_id)
            skipped.append(vol)
            continue
        if vol.device_path is None:
            logger.warning("Volume %s has no device path; it will be cloned but not reattached", vol.volume_id)
        tasks.append(EncryptionTask(source=vol))
    return skipped, tasks
