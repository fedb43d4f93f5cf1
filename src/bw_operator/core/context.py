"""Shared state handed to every reconciliation."""

from dataclasses import dataclass, field
from typing import Protocol

from kubernetes import client

from bw_operator.config import OperatorConfig
from bw_operator.core.backoff import FixedDelay, RetryPolicy
from bw_operator.models import BITWARDEN_SECRET, ResourceKind
from bw_operator.vault import BitwardenSession


class VaultSession(Protocol):
    """A resettable session to the secret vault."""

    def fetch_item(self, path: str) -> dict[str, str]:
        """Return the values of the item at the given path."""
        ...

    def reset(self) -> None:
        """Forget the session so the next fetch authenticates again."""
        ...


@dataclass(slots=True)
class Context:
    """Clients and settings used by reconciliations.

    Attributes:
        core_api: Client for core/v1 objects (secrets).
        custom_api: Client for custom resources (BitwardenSecrets).
        vault: Session to the secret vault.
        requeue_seconds: Delay between periodic reconciliations.
        retry_policy: Delay policy for failed reconciliations.
        kind: The reconciled custom resource kind.

    """

    core_api: client.CoreV1Api
    custom_api: client.CustomObjectsApi
    vault: VaultSession
    requeue_seconds: float = 10.0
    retry_policy: RetryPolicy = field(default_factory=FixedDelay)
    kind: ResourceKind = BITWARDEN_SECRET

    @classmethod
    def from_config(cls, config: OperatorConfig, api_client: client.ApiClient | None = None) -> "Context":
        """Build a context from the operator configuration.

        Args:
            config: The operator configuration.
            api_client: Kubernetes API client; the default client is used when None.

        Returns:
            A context with fresh API clients and an unopened vault session.

        """
        return cls(
            core_api=client.CoreV1Api(api_client),
            custom_api=client.CustomObjectsApi(api_client),
            vault=BitwardenSession(config),
            requeue_seconds=config.requeue_seconds,
            retry_policy=FixedDelay(config.error_requeue_seconds),
        )
