"""Kubernetes cluster connection utilities.

This module provides the Cluster class, which loads the cluster
credentials the controller runs with and checks that the
BitwardenSecret resource is served.
"""

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import MaxRetryError

from bw_operator import console
from bw_operator.exceptions import ClusterConnectionError, CustomResourceNotFoundError
from bw_operator.models import BITWARDEN_SECRET, ResourceKind


class Cluster:
    """Connection to the Kubernetes cluster the controller runs against.

    Attributes:
        context: The kubeconfig context in use, or 'in-cluster'.

    """

    def __init__(self, *, in_cluster: bool, context: str | None = None) -> None:
        """Load cluster credentials.

        Args:
            in_cluster: If True, use the pod's service account.
                        If False, use the local kubeconfig.
            context: Kubeconfig context to use; None uses the current context.
                     Ignored when in_cluster is True.

        """
        self.context: str = self._load_config(in_cluster=in_cluster, context=context)

    @staticmethod
    def _load_config(*, in_cluster: bool, context: str | None) -> str:
        """Load the Kubernetes client configuration.

        Returns:
            The name of the context in use.

        Raises:
            ClusterConnectionError: If no usable configuration is found.

        """
        if in_cluster:
            try:
                config.load_incluster_config()
            except ConfigException as e:
                raise ClusterConnectionError(f"In-cluster configuration not available: {e}") from e
            console.action(f"Working with {console.highlight('in-cluster')} service account")
            return "in-cluster"

        try:
            contexts, current_context = config.list_kube_config_contexts()
            if context is not None and context not in [c["name"] for c in contexts]:
                raise ClusterConnectionError(f"Context '{context}' not found in kubeconfig")
            name = context if context is not None else str(current_context["name"])
            config.load_kube_config(context=name)
        except ConfigException as e:
            raise ClusterConnectionError(f"Invalid or missing kubeconfig: {e}") from e

        console.action(f"Working with {console.highlight(name)} cluster")
        return name

    @staticmethod
    def ensure_custom_resource(kind: ResourceKind = BITWARDEN_SECRET) -> None:
        """Check that the cluster serves the custom resource.

        Args:
            kind: The custom resource kind to look for.

        Raises:
            ClusterConnectionError: If the cluster is unreachable or rejects the request.
            CustomResourceNotFoundError: If the resource is not served.

        """
        try:
            client.CustomObjectsApi().list_cluster_custom_object(kind.group, kind.version, kind.plural, limit=1)
        except MaxRetryError as e:
            raise ClusterConnectionError(f"Failed to connect to the Kubernetes cluster: {e.reason}") from e
        except ApiException as e:
            if e.status == 404:
                raise CustomResourceNotFoundError(
                    f"{kind.kind} ({kind.plural}.{kind.group}/{kind.version}) is not installed in the cluster"
                ) from e
            raise ClusterConnectionError(f"Failed to list {kind.plural}: {e.status} {e.reason}") from e

        console.success(f"Found {console.highlight(f'{kind.plural}.{kind.group}')} in the cluster")

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"Cluster(context={self.context!r})"
