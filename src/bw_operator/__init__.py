"""bw-operator: Kubernetes controller for Bitwarden-backed secrets.

This package keeps Kubernetes secrets in sync with items stored in a
Bitwarden vault, driven by BitwardenSecret custom resources.

Example usage:
    from bw_operator import BitwardenSecret, Context, reconcile

    resource = BitwardenSecret.from_dict(custom_object)
    directive = reconcile(resource, context)
"""

__version__ = "0.1.0"

from bw_operator.cli import cli
from bw_operator.cluster import Cluster
from bw_operator.core.context import Context
from bw_operator.core.operator import Operator
from bw_operator.core.reconciler import on_error, reconcile
from bw_operator.exceptions import (
    BinaryNotFoundError,
    ClusterConnectionError,
    ConfigError,
    CustomResourceNotFoundError,
    KubernetesError,
    OperatorError,
    ReconcileError,
    UserInputError,
    VaultError,
)
from bw_operator.models import BitwardenSecret, Directive, ResourceAction
from bw_operator.vault import BitwardenSession

__all__ = [
    # Version
    "__version__",
    # Main CLI
    "cli",
    # Classes
    "BitwardenSecret",
    "BitwardenSession",
    "Cluster",
    "Context",
    "Operator",
    "Directive",
    "ResourceAction",
    # Reconciliation
    "reconcile",
    "on_error",
    # Exceptions
    "OperatorError",
    "BinaryNotFoundError",
    "ClusterConnectionError",
    "ConfigError",
    "CustomResourceNotFoundError",
    "KubernetesError",
    "ReconcileError",
    "UserInputError",
    "VaultError",
]
