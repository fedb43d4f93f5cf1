"""Reconciliation of BitwardenSecret resources.

Every observed change to a BitwardenSecret ends up in :func:`reconcile`,
which picks one of three actions:

* DELETE when deletion was requested: the target secret is deleted
  first and the finalizer removed last, so the resource only goes away
  once its secret is gone.
* CREATE when the resource carries no finalizer yet: the finalizer is
  added, the vault item fetched and the target secret applied.
* NOOP otherwise: nothing is called, the resource is just looked at
  again later.
"""

from icecream import ic

from bw_operator import console
from bw_operator.core.context import Context
from bw_operator.core.finalizers import add_finalizer, remove_finalizer
from bw_operator.core.secrets import build_labels, build_owner_reference, create_secret, delete_secret
from bw_operator.exceptions import ReconcileError, UserInputError, VaultError
from bw_operator.models import BitwardenSecret, Directive, Reconcilable, ResourceAction
from bw_operator.vault import split_item_path


def determine_action(resource: Reconcilable) -> ResourceAction:
    """Classify a resource snapshot.

    A deletion request wins over everything else. Without one, only a
    resource that has no finalizer yet is provisioned.

    Args:
        resource: The resource snapshot.

    Returns:
        The action to take.

    """
    if resource.deletion_timestamp is not None:
        return ResourceAction.DELETE
    if not resource.finalizers:
        return ResourceAction.CREATE
    return ResourceAction.NOOP


def _create(resource: BitwardenSecret, context: Context) -> Directive:
    if not resource.item:
        raise UserInputError(f"{context.kind.kind} {resource.key} has no spec.item")
    try:
        split_item_path(resource.item)
    except ValueError as err:
        raise UserInputError(f"{context.kind.kind} {resource.key}: {err}") from err

    owner_ref = build_owner_reference(resource, context.kind)

    add_finalizer(context.custom_api, resource.name, resource.namespace, context.kind)

    try:
        key_values = context.vault.fetch_item(resource.item)
    except VaultError as err:
        console.warning(f"Fetching {console.highlight(resource.item)} for {resource.key} failed: {err}")
        console.step("Resetting Bitwarden session")
        context.vault.reset()
        return Directive.requeue(context.requeue_seconds)

    create_secret(
        context.core_api,
        owner_ref,
        resource.name,
        resource.namespace,
        resource.secret_type,
        key_values,
        build_labels(resource),
    )
    return Directive.requeue(context.requeue_seconds)


def _delete(resource: BitwardenSecret, context: Context) -> Directive:
    delete_secret(context.core_api, resource.name, resource.namespace, resource.uid)
    remove_finalizer(context.custom_api, resource.name, resource.namespace, context.kind)
    return Directive.await_change()


def reconcile(resource: BitwardenSecret, context: Context) -> Directive:
    """Bring the target secret of a BitwardenSecret in line with the resource.

    Vault failures never leave this function: they reset the vault
    session and requeue. Kubernetes failures are raised for the runtime
    to hand to :func:`on_error`.

    Args:
        resource: The resource snapshot.
        context: Clients and settings.

    Returns:
        When to reconcile the resource again.

    Raises:
        KubernetesError: If a Kubernetes API call fails.
        UserInputError: If the resource is malformed.

    """
    if not resource.name:
        raise UserInputError(f"{context.kind.kind} without name in namespace {resource.namespace}")

    action = determine_action(resource)
    ic(resource.key, action)

    match action:
        case ResourceAction.CREATE:
            console.action(f"Provisioning secret for {console.highlight(resource.key)}")
            return _create(resource, context)
        case ResourceAction.DELETE:
            console.action(f"Cleaning up secret of {console.highlight(resource.key)}")
            return _delete(resource, context)
        case _:
            return Directive.requeue(context.requeue_seconds)


def on_error(resource: BitwardenSecret, error: ReconcileError, context: Context) -> Directive:
    """Log a failed reconciliation and schedule a retry.

    Args:
        resource: The resource snapshot whose reconciliation failed.
        error: The error raised by :func:`reconcile`.
        context: Clients and settings.

    Returns:
        A requeue directive using the context's retry policy.

    """
    if isinstance(error, UserInputError):
        console.error(f"Invalid {context.kind.kind} {console.highlight(resource.key)}: {error}")
    else:
        console.error(f"Reconciliation of {console.highlight(resource.key)} failed: {error}")
    ic(resource)
    return Directive.requeue(context.retry_policy.delay(resource, error))
