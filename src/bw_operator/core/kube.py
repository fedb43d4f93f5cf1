"""Helpers shared by the Kubernetes API calls of the controller."""

from kubernetes.client.exceptions import ApiException

from bw_operator.exceptions import KubernetesError

MERGE_PATCH = "application/merge-patch+json"

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


def is_not_found(err: ApiException) -> bool:
    """Whether the API reported that the object does not exist."""
    return err.status == HTTP_NOT_FOUND


def api_error(operation: str, namespace: str, name: str, err: ApiException) -> KubernetesError:
    """Create a KubernetesError for a failed API call.

    Args:
        operation: What was attempted (e.g. 'delete secret').
        namespace: Namespace of the object.
        name: Name of the object.
        err: The exception raised by the Kubernetes client.

    Returns:
        A KubernetesError carrying the HTTP status of the failed call.

    """
    return KubernetesError(
        f"Failed to {operation} {namespace}/{name}: {err.status} {err.reason}",
        status=err.status,
    )
