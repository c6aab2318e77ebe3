"""Fault injection for exercising the calling HSM's timeout and retry logic.

Runs before any backend connection is attempted, so an injected failure
never touches real storage.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field

from s3hsm.errors import InjectedFailureError

logger = logging.getLogger(__name__)


class FaultInjection(BaseModel):
    """Pre-operation delay and failure injection.

    Attributes:
        sleep: Seconds to sleep before dispatching the operation.
        fail: Exit code to terminate with instead of running the operation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    sleep: float = Field(default=0.0, ge=0)
    fail: int | None = Field(default=None, ge=1, le=255)

    @property
    def active(self) -> bool:
        return self.sleep > 0 or self.fail is not None


def inject_faults(
    faults: FaultInjection,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> None:
    """Apply the configured delay, then the configured failure.

    Raises:
        InjectedFailureError: If ``faults.fail`` is set.
    """
    if faults.sleep > 0:
        logger.info("Injecting delay of %.3fs", faults.sleep)
        sleep_fn(faults.sleep)

    if faults.fail is not None:
        logger.info("Injecting failure with exit code %d", faults.fail)
        raise InjectedFailureError(faults.fail)
