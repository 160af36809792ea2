"""Entry points: the encryption pipeline, its CLI and a Lambda handler.

Usage:
    ebs-encrypt [KMS_KEY_ID] [INSTANCE_ID] [--region R] [--poll-interval S]
                [--max-wait S] [--dry-run] [-v]

Missing positional arguments are prompted for interactively.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Any, Callable, Dict, Optional

from common.ec2 import Ec2Client, ProviderError
from common.polling import RetryPolicy, WaitError
from common.settings import ConfigurationError, Settings
from state.models import RunContext, RunReport

from .classifier import plan_tasks
from .cleanup import cleanup_snapshots
from .cloner import clone_all
from .locator import list_attached_volumes, resolve_region
from .swapper import IncompleteTaskError, swap_all


logger = logging.getLogger(__name__)

FATAL_ERRORS = (ProviderError, WaitError, IncompleteTaskError, ConfigurationError)


def run_once(
    ctx: RunContext,
    *,
    ec2: Optional[Ec2Client] = None,
    policy: Optional[RetryPolicy] = None,
    dry_run: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> RunReport:
    """Encrypt every unencrypted EBS volume of `ctx.instance_id` in place.

    Fatal errors propagate; snapshot cleanup failures are only reported.
    """
    ec2 = ec2 or Ec2Client(region_name=ctx.region)
    policy = policy or RetryPolicy()
    report = RunReport(instance_id=ctx.instance_id, region=ctx.region, dry_run=dry_run)

    volumes = list_attached_volumes(ec2, ctx.instance_id)
    skipped, tasks = plan_tasks(volumes)
    ctx.any_volume_needs_encryption = bool(tasks)
    report.skipped = [v.volume_id for v in skipped]
    report.planned = [t.source.volume_id for t in tasks]

    if not ctx.any_volume_needs_encryption:
        logger.info("Instance %s has no unencrypted volumes; nothing to do", ctx.instance_id)
        return report
    if dry_run:
        logger.info("Dry run: would encrypt %s", ", ".join(report.planned))
        return report

    clone_all(ec2, tasks, ctx, policy, sleep=sleep)
    swap_all(ec2, tasks, ctx, policy, sleep=sleep)
    report.encrypted = [(t.source.volume_id, t.new_volume_id or "") for t in tasks]
    report.cleanup_failures = cleanup_snapshots(ec2, tasks)

    logger.info("Encrypted %d volume(s) on %s", len(report.encrypted), ctx.instance_id)
    return report


def _prompt(label: str, input_fn: Callable[[str], str] = input) -> str:
    try:
        value = input_fn(f"{label}: ").strip()
    except EOFError as ex:
        raise ConfigurationError(f"Missing required value: {label}") from ex
    if not value:
        raise ConfigurationError(f"Missing required value: {label}")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ebs-encrypt",
        description="Encrypt the unencrypted EBS volumes of an EC2 instance in place",
    )
    parser.add_argument("kms_key_id", nargs="?", help="KMS key id, ARN or alias/<name>")
    parser.add_argument("instance_id", nargs="?", help="Target EC2 instance id")
    parser.add_argument("--region", help="AWS region (defaults to the configured one)")
    parser.add_argument("--poll-interval", type=float, help="Seconds between state checks (default: 30)")
    parser.add_argument("--max-wait", type=float, help="Give up a single wait after this many seconds")
    parser.add_argument("--dry-run", action="store_true", help="Only report which volumes would be encrypted")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    for name in ("boto3", "botocore", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _print_report(report: RunReport) -> None:
    print(f"Instance:   {report.instance_id} ({report.region})")
    print(f"Skipped:    {', '.join(report.skipped) or '-'}")
    if report.dry_run:
        print(f"Would encrypt: {', '.join(report.planned) or '-'}")
        return
    for src, dst in report.encrypted:
        print(f"Encrypted:  {src} -> {dst}")
    for failure in report.cleanup_failures:
        print(f"Cleanup:    snapshot {failure.snapshot_id} left behind ({failure.message})")


def main(
    argv: Optional[list[str]] = None,
    *,
    input_fn: Callable[[str], str] = input,
    ec2: Optional[Ec2Client] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """CLI entry point; returns the process exit code."""
    args = _build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    try:
        settings = Settings.from_env().override(
            region=args.region,
            poll_interval=args.poll_interval,
            max_wait=args.max_wait,
            kms_key_id=args.kms_key_id,
            instance_id=args.instance_id,
        )
        kms_key_id = settings.kms_key_id or _prompt("KMS key id", input_fn)
        instance_id = settings.instance_id or _prompt("Instance id", input_fn)
        ctx = RunContext(region=resolve_region(settings.region), instance_id=instance_id, kms_key_id=kms_key_id)
        report = run_once(ctx, ec2=ec2, policy=settings.retry_policy(), dry_run=args.dry_run, sleep=sleep)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except FATAL_ERRORS as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1

    _print_report(report)
    return 0


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    event = event or {}
    settings = Settings.from_env().override(
        region=event.get("region"),
        kms_key_id=event.get("kms_key_id"),
        instance_id=event.get("instance_id"),
    )
    if not settings.kms_key_id or not settings.instance_id:
        raise ConfigurationError("Event must provide instance_id and kms_key_id")
    ctx = RunContext(
        region=resolve_region(settings.region),
        instance_id=settings.instance_id,
        kms_key_id=settings.kms_key_id,
    )
    report = run_once(ctx, policy=settings.retry_policy(), dry_run=bool(event.get("dry_run", False)))
    return report.model_dump()


if __name__ == "__main__":
    sys.exit(main())
