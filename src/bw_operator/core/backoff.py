"""Retry policies for failed reconciliations."""

from dataclasses import dataclass
from typing import Protocol

from bw_operator.exceptions import ReconcileError
from bw_operator.models import Reconcilable


class RetryPolicy(Protocol):
    """Decides how long to wait before retrying a failed reconciliation."""

    def delay(self, resource: Reconcilable, error: ReconcileError) -> float:
        """Return the delay in seconds before the next attempt."""
        ...


@dataclass(frozen=True, slots=True)
class FixedDelay:
    """Retry every failure after the same delay.

    Attributes:
        seconds: Delay before the next attempt.

    """

    seconds: float = 5.0

    def delay(self, resource: Reconcilable, error: ReconcileError) -> float:  # noqa: ARG002
        """Return the fixed delay regardless of resource and error."""
        return self.seconds
