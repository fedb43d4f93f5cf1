"""Core controller subpackage.

This package contains the reconciliation state machine together with
the finalizer and target secret handling it dispatches to, and the
kopf operator that feeds it with watch events.
"""

from bw_operator.core.backoff import FixedDelay, RetryPolicy
from bw_operator.core.context import Context, VaultSession
from bw_operator.core.finalizers import add_finalizer, get_resource, remove_finalizer
from bw_operator.core.operator import Operator
from bw_operator.core.reconciler import determine_action, on_error, reconcile
from bw_operator.core.secrets import build_owner_reference, build_secret, create_secret, delete_secret

__all__ = [
    "Context",
    "FixedDelay",
    "Operator",
    "RetryPolicy",
    "VaultSession",
    # finalizers
    "add_finalizer",
    "get_resource",
    "remove_finalizer",
    # reconciler
    "determine_action",
    "on_error",
    "reconcile",
    # secrets
    "build_owner_reference",
    "build_secret",
    "create_secret",
    "delete_secret",
]
