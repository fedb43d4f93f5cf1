"""Data models for bw-operator.

This module provides type-safe data structures for the controller:
the BitwardenSecret custom resource, the action a reconciliation takes,
and the directive it hands back to the runtime.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple, Protocol

GROUP = "tomjo.net"
VERSION = "v1"
API_VERSION = f"{GROUP}/{VERSION}"
KIND = "BitwardenSecret"
PLURAL = "bitwardensecrets"

# Marker that keeps a BitwardenSecret around until its target secret is cleaned up
FINALIZER = "bitwardensecrets.tomjo.net/finalizer.secret"

DEFAULT_NAMESPACE = "default"
DEFAULT_SECRET_TYPE = "Opaque"


class ResourceKind(NamedTuple):
    """Coordinates of a custom resource kind for the CustomObjectsApi.

    Attributes:
        group: The API group (e.g. 'tomjo.net').
        version: The API version within the group.
        plural: The plural resource name used in URLs.
        kind: The resource kind.

    """

    group: str
    version: str
    plural: str
    kind: str

    @property
    def api_version(self) -> str:
        """The 'group/version' string used in owner references."""
        return f"{self.group}/{self.version}"


BITWARDEN_SECRET = ResourceKind(group=GROUP, version=VERSION, plural=PLURAL, kind=KIND)


class ResourceAction(str, Enum):
    """What a reconciliation does with a resource.

    Inherits from str so the value can be logged directly.
    """

    CREATE = "create"
    DELETE = "delete"
    NOOP = "noop"


@dataclass(frozen=True, slots=True)
class Directive:
    """Tells the runtime when to reconcile a resource again.

    Attributes:
        requeue_after: Seconds to wait before the next reconciliation,
            or None to wait for the next change event.

    """

    requeue_after: float | None = None

    @classmethod
    def requeue(cls, seconds: float) -> "Directive":
        """Reconcile again after the given number of seconds."""
        return cls(requeue_after=seconds)

    @classmethod
    def await_change(cls) -> "Directive":
        """Reconcile again only when the resource changes."""
        return cls(requeue_after=None)

    @property
    def is_requeue(self) -> bool:
        """Whether the runtime has to schedule another reconciliation."""
        return self.requeue_after is not None


class Reconcilable(Protocol):
    """The parts of a resource the reconciliation state machine reads."""

    name: str
    namespace: str
    deletion_timestamp: str | None
    finalizers: list[str]


@dataclass(frozen=True, slots=True)
class BitwardenSecret:
    """Snapshot of a BitwardenSecret custom resource.

    Attributes:
        name: The resource name, mirrored by the target secret.
        namespace: The resource namespace.
        item: Vault item path ('folder/item' or 'item').
        secret_type: Type of the target secret (e.g. 'Opaque').
        uid: The resource UID, or None if the API did not report one.
        deletion_timestamp: Set once deletion of the resource was requested.
        finalizers: Finalizer tokens currently on the resource.
        labels: Labels of the resource.

    """

    name: str
    namespace: str
    item: str | None = None
    secret_type: str = DEFAULT_SECRET_TYPE
    uid: str | None = None
    deletion_timestamp: str | None = None
    finalizers: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "BitwardenSecret":
        """Build a snapshot from an object returned by the CustomObjectsApi.

        Args:
            obj: The custom object as a dictionary.

        Returns:
            The parsed BitwardenSecret. A missing namespace falls back to
            'default'; a missing name is kept empty and rejected later.

        """
        metadata: dict[str, Any] = obj.get("metadata") or {}
        spec: dict[str, Any] = obj.get("spec") or {}
        return cls(
            name=metadata.get("name") or "",
            namespace=metadata.get("namespace") or DEFAULT_NAMESPACE,
            item=spec.get("item"),
            secret_type=spec.get("type") or DEFAULT_SECRET_TYPE,
            uid=metadata.get("uid"),
            deletion_timestamp=metadata.get("deletionTimestamp"),
            finalizers=list(metadata.get("finalizers") or []),
            labels=dict(metadata.get("labels") or {}),
        )

    @property
    def key(self) -> str:
        """The 'namespace/name' key identifying the resource."""
        return f"{self.namespace}/{self.name}"
