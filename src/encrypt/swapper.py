from __future__ import annotations

import logging
import time
from typing import Callable, List

from common.ec2 import Ec2Client
from common.polling import RetryPolicy, wait_until
from state.models import EncryptionTask, RunContext


logger = logging.getLogger(__name__)

# Tag written on each original volume, valued with its encrypted replacement
REPLACEMENT_TAG = "EncryptedReplacement"

_INSTANCE_GONE = ("shutting-down", "terminated")
_VOLUME_BROKEN = ("error", "deleting", "deleted")


class IncompleteTaskError(RuntimeError):
    """A task reached the swap stage without its snapshot or encrypted clone."""


def stop_instance(ec2: Ec2Client, ctx: RunContext, policy: RetryPolicy, *, sleep: Callable[[float], None] = time.sleep) -> None:
    logger.info("Stopping instance %s", ctx.instance_id)
    ec2.stop_instance(ctx.instance_id)
    wait_until(
        lambda: ec2.instance_state(ctx.instance_id),
        ("stopped",),
        failures=_INSTANCE_GONE,
        policy=policy,
        what=f"Instance {ctx.instance_id}",
        sleep=sleep,
    )


def start_instance(ec2: Ec2Client, ctx: RunContext, policy: RetryPolicy, *, sleep: Callable[[float], None] = time.sleep) -> None:
    logger.info("Starting instance %s", ctx.instance_id)
    ec2.start_instance(ctx.instance_id)
    wait_until(
        lambda: ec2.instance_state(ctx.instance_id),
        ("running",),
        failures=_INSTANCE_GONE,
        policy=policy,
        what=f"Instance {ctx.instance_id}",
        sleep=sleep,
    )


def _wait_volume(ec2: Ec2Client, volume_id: str, target: str, policy: RetryPolicy, sleep: Callable[[float], None]) -> None:
    wait_until(
        lambda: ec2.volume_state(volume_id),
        (target,),
        failures=_VOLUME_BROKEN,
        policy=policy,
        what=f"Volume {volume_id}",
        sleep=sleep,
    )


def swap_volume(
    ec2: Ec2Client,
    task: EncryptionTask,
    ctx: RunContext,
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Replace the task's source volume with its encrypted clone on a stopped instance."""
    src = task.source
    new_volume_id = task.new_volume_id
    if not new_volume_id:
        raise IncompleteTaskError(f"Task for {src.volume_id} has no encrypted volume")

    device = src.device_path
    if device:
        logger.info("Detaching %s from %s (%s)", src.volume_id, ctx.instance_id, device)
        ec2.detach_volume(src.volume_id, ctx.instance_id, device)
        _wait_volume(ec2, src.volume_id, "available", policy, sleep)

        logger.info("Attaching %s to %s at %s", new_volume_id, ctx.instance_id, device)
        ec2.attach_volume(new_volume_id, ctx.instance_id, device)
        _wait_volume(ec2, new_volume_id, "in-use", policy, sleep)

        if src.delete_on_termination is not None:
            logger.info("Setting DeleteOnTermination=%s on %s", src.delete_on_termination, device)
            ec2.set_delete_on_termination(ctx.instance_id, device, src.delete_on_termination)
    else:
        logger.warning("Volume %s has no device path; leaving %s unattached", src.volume_id, new_volume_id)

    ec2.create_tags(src.volume_id, {REPLACEMENT_TAG: new_volume_id})
    logger.info("Tagged %s with %s=%s", src.volume_id, REPLACEMENT_TAG, new_volume_id)
    task.swapped = True


def swap_all(
    ec2: Ec2Client,
    tasks: List[EncryptionTask],
    ctx: RunContext,
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Stop the instance once, swap every task in order, start it once.

    A failure part-way leaves the instance stopped with the earlier tasks
    swapped and the failing one possibly detached; nothing is rolled back.
    Does nothing when `tasks` is empty.
    """
    if not tasks:
        return
    incomplete = [t.source.volume_id for t in tasks if not t.is_ready()]
    if incomplete:
        raise IncompleteTaskError(f"Tasks not ready for swap: {', '.join(incomplete)}")

    stop_instance(ec2, ctx, policy, sleep=sleep)
    for task in tasks:
        try:
            swap_volume(ec2, task, ctx, policy, sleep=sleep)
        except Exception:
            done = [t.source.volume_id for t in tasks if t.swapped]
            logger.error(
                "Swap of %s failed; instance %s left stopped (already swapped: %s)",
                task.source.volume_id,
                ctx.instance_id,
                ", ".join(done) or "none",
            )
            raise
    start_instance(ec2, ctx, policy, sleep=sleep)
