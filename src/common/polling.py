from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Collection, Optional


logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0


class WaitError(RuntimeError):
    """Base error for state waits that cannot reach their target."""


class WaitFailedError(WaitError):
    """The polled resource entered a state it will not recover from."""


class WaitTimeoutError(WaitError):
    """The optional deadline of a `RetryPolicy` elapsed first."""


@dataclass(frozen=True)
class RetryPolicy:
    """
    Cadence for every state wait in a run.

    - `interval`: seconds slept between probes.
    - `max_wait`: seconds after which waiting gives up; `None` waits forever.
    """

    interval: float = DEFAULT_POLL_INTERVAL
    max_wait: Optional[float] = None

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError("interval must be > 0")
        if self.max_wait is not None and self.max_wait <= 0:
            raise ValueError("max_wait must be > 0 when set")


def wait_until(
    probe: Callable[[], str],
    targets: Collection[str],
    *,
    policy: RetryPolicy,
    what: str,
    failures: Collection[str] = (),
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> str:
    """
    Call `probe` until it returns one of `targets`; return that state.

    Any other state is transient and only drives another probe after
    `policy.interval` seconds. Errors raised by `probe` propagate unchanged.

    Raises:
    - WaitFailedError when the state is one of `failures`.
    - WaitTimeoutError when `policy.max_wait` is set and has elapsed.
    """
    started = clock()
    while True:
        state = probe()
        if state in targets:
            logger.info("%s reached state %s", what, state)
            return state
        if state in failures:
            raise WaitFailedError(f"{what} entered state {state!r}")
        if policy.max_wait is not None and clock() - started >= policy.max_wait:
            raise WaitTimeoutError(
                f"{what} still in state {state!r} after {policy.max_wait:g}s"
            )
        logger.debug("%s is %s; next check in %gs", what, state, policy.interval)
        sleep(policy.interval)
