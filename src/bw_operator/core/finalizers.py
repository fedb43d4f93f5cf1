"""Finalizer handling for BitwardenSecret resources.

While the finalizer is present the API server keeps a deleted
BitwardenSecret around, which gives the controller the chance to delete
the target secret first.
"""

from typing import Any

from icecream import ic
from kubernetes import client
from kubernetes.client.exceptions import ApiException

from bw_operator import console
from bw_operator.core.kube import MERGE_PATCH, api_error, is_not_found
from bw_operator.models import BITWARDEN_SECRET, FINALIZER, ResourceKind


def _patch(
    api: client.CustomObjectsApi,
    kind: ResourceKind,
    name: str,
    namespace: str,
    body: dict[str, Any],
) -> dict[str, Any]:
    return api.patch_namespaced_custom_object(
        kind.group,
        kind.version,
        namespace,
        kind.plural,
        name,
        body,
        _content_type=MERGE_PATCH,
    )


def get_resource(
    api: client.CustomObjectsApi,
    name: str,
    namespace: str,
    kind: ResourceKind = BITWARDEN_SECRET,
) -> dict[str, Any] | None:
    """Read a custom resource.

    Args:
        api: CustomObjectsApi client.
        name: Name of the resource.
        namespace: Namespace of the resource.
        kind: The resource kind.

    Returns:
        The resource as a dictionary, or None if it does not exist.

    Raises:
        KubernetesError: If the API call fails for any other reason.

    """
    try:
        return api.get_namespaced_custom_object(kind.group, kind.version, namespace, kind.plural, name)
    except ApiException as err:
        if is_not_found(err):
            return None
        raise api_error(f"read {kind.kind}", namespace, name, err) from err


def add_finalizer(
    api: client.CustomObjectsApi,
    name: str,
    namespace: str,
    kind: ResourceKind = BITWARDEN_SECRET,
) -> dict[str, Any]:
    """Set the finalizer list of a resource to the controller's finalizer.

    Patching a resource that already carries the finalizer leaves it
    unchanged. The resource is not looked up first; if it disappeared in
    the meantime the patch fails.

    Args:
        api: CustomObjectsApi client.
        name: Name of the resource.
        namespace: Namespace of the resource.
        kind: The resource kind.

    Returns:
        The patched resource.

    Raises:
        KubernetesError: If the patch fails.

    """
    body = {"metadata": {"finalizers": [FINALIZER]}}
    ic(body)
    try:
        patched = _patch(api, kind, name, namespace, body)
    except ApiException as err:
        raise api_error("add finalizer to", namespace, name, err) from err

    console.step(f"Finalizer added to {console.highlight(f'{namespace}/{name}')}")
    return patched


def remove_finalizer(
    api: client.CustomObjectsApi,
    name: str,
    namespace: str,
    kind: ResourceKind = BITWARDEN_SECRET,
) -> None:
    """Remove all finalizers from a resource.

    A resource that no longer exists needs no finalizer removal, so that
    case succeeds without a patch.

    Args:
        api: CustomObjectsApi client.
        name: Name of the resource.
        namespace: Namespace of the resource.
        kind: The resource kind.

    Raises:
        KubernetesError: If reading or patching the resource fails.

    """
    if get_resource(api, name, namespace, kind) is None:
        ic(f"{namespace}/{name} is already gone")
        return

    body: dict[str, Any] = {"metadata": {"finalizers": None}}
    try:
        _patch(api, kind, name, namespace, body)
    except ApiException as err:
        # Deleted between the read and the patch
        if is_not_found(err):
            return
        raise api_error("remove finalizer from", namespace, name, err) from err

    console.step(f"Finalizer removed from {console.highlight(f'{namespace}/{name}')}")
