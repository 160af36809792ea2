from __future__ import annotations

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from .polling import DEFAULT_POLL_INTERVAL, RetryPolicy


ENV_POLL_INTERVAL = "EBS_ENCRYPT_POLL_INTERVAL"
ENV_MAX_WAIT = "EBS_ENCRYPT_MAX_WAIT"
ENV_REGION = "EBS_ENCRYPT_REGION"
ENV_KMS_KEY_ID = "EBS_ENCRYPT_KMS_KEY_ID"
ENV_INSTANCE_ID = "EBS_ENCRYPT_INSTANCE_ID"

# Standard AWS variables, consulted when no explicit region is configured
FALLBACK_ENV_REGIONS = ("AWS_REGION", "AWS_DEFAULT_REGION")


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


class Settings(BaseModel):
    """
    Run configuration.

    Fields
    - poll_interval: seconds between state probes for every wait (snapshot,
      volume and instance transitions).
    - max_wait: optional upper bound in seconds for a single wait; None keeps
      polling until the resource settles.
    - region, kms_key_id, instance_id: optional defaults; the CLI arguments
      or the Lambda event take precedence.
    """

    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    max_wait: Optional[float] = Field(default=None, gt=0)
    region: Optional[str] = None
    kms_key_id: Optional[str] = None
    instance_id: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        raw: Dict[str, Any] = {
            "poll_interval": _getenv(ENV_POLL_INTERVAL),
            "max_wait": _getenv(ENV_MAX_WAIT),
            "region": _getenv(ENV_REGION),
            "kms_key_id": _getenv(ENV_KMS_KEY_ID),
            "instance_id": _getenv(ENV_INSTANCE_ID),
        }
        if raw["region"] is None:
            for name in FALLBACK_ENV_REGIONS:
                raw["region"] = _getenv(name)
                if raw["region"]:
                    break
        return cls.build(**raw)

    @classmethod
    def build(cls, **values: Any) -> "Settings":
        """Validate `values`, dropping unset ones so field defaults apply."""
        try:
            return cls.model_validate({k: v for k, v in values.items() if v is not None})
        except ValidationError as ex:
            raise ConfigurationError(f"Invalid configuration: {ex}") from ex

    def override(self, **values: Any) -> "Settings":
        """Return a copy with every non-None value in `values` applied."""
        merged = self.model_dump()
        merged.update({k: v for k, v in values.items() if v is not None})
        return Settings.build(**merged)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(interval=self.poll_interval, max_wait=self.max_wait)
