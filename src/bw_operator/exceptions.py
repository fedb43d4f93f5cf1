"""Custom exceptions for bw-operator.

This module defines the exception hierarchy used by the controller to tell
apart errors that are retried by the runtime from errors that are handled
locally during a reconciliation.
"""


class OperatorError(Exception):
    """Base exception for all bw-operator errors.

    All custom exceptions in this package inherit from this class,
    allowing callers to catch all bw-operator errors with a single
    except clause if desired.
    """

    pass


class ConfigError(OperatorError):
    """Raised when the operator configuration cannot be loaded.

    This can occur when:
    - The configuration file is not valid YAML
    - The configuration file is not a YAML mapping
    - The configuration contains unknown keys or invalid values
    """

    pass


class ClusterConnectionError(OperatorError):
    """Raised when connection to the Kubernetes cluster fails.

    This can occur when:
    - The kubeconfig is invalid or missing
    - The in-cluster service account is not available
    - The cluster is unreachable
    """

    pass


class CustomResourceNotFoundError(OperatorError):
    """Raised when the BitwardenSecret custom resource is not served by the cluster.

    This typically means:
    - The CustomResourceDefinition is not installed
    - The service account is not allowed to list BitwardenSecrets
    """

    pass


class VaultError(OperatorError):
    """Raised when the Bitwarden vault cannot serve a request.

    Vault errors never leave a reconciliation: the create path catches
    them, resets the session and requeues.
    """

    pass


class BinaryNotFoundError(VaultError):
    """Raised when the bw binary is not found."""

    pass


class ReconcileError(OperatorError):
    """Base class for errors returned to the runtime by a reconciliation.

    The runtime passes these to the error handler, which decides when the
    resource is reconciled again.
    """

    pass


class KubernetesError(ReconcileError):
    """Raised when the Kubernetes API rejects or fails a request."""

    def __init__(self, message: str, status: int | None = None) -> None:
        """Initialize with a message and the HTTP status reported by the API.

        Args:
            message: Description of the failed call.
            status: HTTP status code of the failed call, if any.

        """
        super().__init__(message)
        self.status = status


class UserInputError(ReconcileError):
    """Raised when a BitwardenSecret resource is malformed.

    Kept apart from KubernetesError so that a retry policy can choose
    to stop retrying input that will never become valid on its own.
    """

    pass
