"""Target secret synchronization.

This module builds the Kubernetes secret that mirrors a BitwardenSecret
and applies it to the cluster. Every secret carries a single owner
reference back to its BitwardenSecret, so the garbage collector removes
it together with its owner.
"""

from icecream import ic
from kubernetes import client
from kubernetes.client.exceptions import ApiException

from bw_operator import console
from bw_operator.core.kube import HTTP_CONFLICT, api_error, is_not_found
from bw_operator.exceptions import KubernetesError, UserInputError
from bw_operator.models import BITWARDEN_SECRET, BitwardenSecret, ResourceKind

APP_LABEL = "app"


def build_owner_reference(resource: BitwardenSecret, kind: ResourceKind = BITWARDEN_SECRET) -> client.V1OwnerReference:
    """Build the owner reference pointing at a BitwardenSecret.

    Args:
        resource: The owning resource.
        kind: The owning resource kind.

    Returns:
        An owner reference that blocks owner deletion until the dependent is gone.

    Raises:
        UserInputError: If the resource has no UID.

    """
    if not resource.uid:
        raise UserInputError(f"{kind.kind} without uid: {resource.key}")

    return client.V1OwnerReference(
        api_version=kind.api_version,
        kind=kind.kind,
        name=resource.name,
        uid=resource.uid,
        block_owner_deletion=True,
    )


def build_labels(resource: BitwardenSecret) -> dict[str, str]:
    """Labels for the target secret: the resource's labels plus 'app=<name>'."""
    return {**resource.labels, APP_LABEL: resource.name}


def build_secret(
    owner_ref: client.V1OwnerReference,
    name: str,
    namespace: str,
    secret_type: str,
    key_values: dict[str, str],
    labels: dict[str, str],
) -> client.V1Secret:
    """Build the target secret object.

    Args:
        owner_ref: The only owner reference of the secret.
        name: Name of the secret.
        namespace: Namespace of the secret.
        secret_type: Kubernetes secret type (e.g. 'Opaque').
        key_values: Payload, stored as stringData.
        labels: Labels of the secret.

    Returns:
        The secret object, ready to be submitted.

    """
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels=dict(labels),
            owner_references=[owner_ref],
        ),
        string_data=dict(key_values),
        type=secret_type,
    )


def _is_owned_by(secret: client.V1Secret, uid: str) -> bool:
    refs = secret.metadata.owner_references or []
    return any(ref.uid == uid for ref in refs)


def get_secret(api: client.CoreV1Api, name: str, namespace: str) -> client.V1Secret | None:
    """Read a secret.

    Returns:
        The secret, or None if it does not exist.

    Raises:
        KubernetesError: If the API call fails for any other reason.

    """
    try:
        return api.read_namespaced_secret(name, namespace)
    except ApiException as err:
        if is_not_found(err):
            return None
        raise api_error("read secret", namespace, name, err) from err


def create_secret(
    api: client.CoreV1Api,
    owner_ref: client.V1OwnerReference,
    name: str,
    namespace: str,
    secret_type: str,
    key_values: dict[str, str],
    labels: dict[str, str],
) -> client.V1Secret:
    """Create the target secret, or replace it if the same owner already made one.

    A secret with the same name that belongs to someone else is never
    touched; that conflict is reported as an error.

    Args:
        api: CoreV1Api client.
        owner_ref: The only owner reference of the secret.
        name: Name of the secret.
        namespace: Namespace of the secret.
        secret_type: Kubernetes secret type.
        key_values: Payload of the secret.
        labels: Labels of the secret.

    Returns:
        The secret as stored by the API server.

    Raises:
        KubernetesError: If the secret cannot be created or replaced, or
            an unrelated secret with the same name exists.

    """
    secret = build_secret(owner_ref, name, namespace, secret_type, key_values, labels)
    ic(name, namespace, secret_type, sorted(key_values))

    try:
        created = api.create_namespaced_secret(namespace, secret)
    except ApiException as err:
        if err.status != HTTP_CONFLICT:
            raise api_error("create secret", namespace, name, err) from err
    else:
        console.success(f"Secret {console.highlight(f'{namespace}/{name}')} created")
        return created

    existing = get_secret(api, name, namespace)
    if existing is None:
        raise KubernetesError(
            f"Secret {namespace}/{name} conflicted on create but could not be read back",
            status=HTTP_CONFLICT,
        )
    if not _is_owned_by(existing, owner_ref.uid):
        raise KubernetesError(
            f"Secret {namespace}/{name} already exists and is not owned by {owner_ref.kind} {owner_ref.name}",
            status=HTTP_CONFLICT,
        )

    secret.metadata.resource_version = existing.metadata.resource_version
    try:
        replaced = api.replace_namespaced_secret(name, namespace, secret)
    except ApiException as err:
        raise api_error("replace secret", namespace, name, err) from err

    console.success(f"Secret {console.highlight(f'{namespace}/{name}')} updated")
    return replaced


def delete_secret(api: client.CoreV1Api, name: str, namespace: str, owner_uid: str | None = None) -> None:
    """Delete a secret if it exists.

    The secret may already have been removed by the garbage collector,
    in which case there is nothing to do. A secret that exists is deleted
    even when another object owns it; that case is only logged.

    Args:
        api: CoreV1Api client.
        name: Name of the secret.
        namespace: Namespace of the secret.
        owner_uid: UID of the resource the secret is expected to belong to.

    Raises:
        KubernetesError: If reading or deleting the secret fails.

    """
    existing = get_secret(api, name, namespace)
    if existing is None:
        ic(f"secret {namespace}/{name} is already gone")
        return

    if owner_uid is not None and not _is_owned_by(existing, owner_uid):
        target = console.highlight(f"{namespace}/{name}")
        console.warning(f"Secret {target} is not owned by {owner_uid}, deleting it anyway")

    try:
        api.delete_namespaced_secret(name, namespace)
    except ApiException as err:
        if is_not_found(err):
            return
        raise api_error("delete secret", namespace, name, err) from err

    console.success(f"Secret {console.highlight(f'{namespace}/{name}')} deleted")
