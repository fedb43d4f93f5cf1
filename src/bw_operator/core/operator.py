"""kopf handlers that drive reconciliations.

kopf watches BitwardenSecret resources, restarts the watch when it
expires and hands the events of one object to :meth:`Operator.handle_event`
one at a time. Each reconciliation runs in kopf's thread pool. A requeue
directive becomes a timer that reconciles the object again from a fresh
read. Only event handlers are registered, so kopf never puts its own
finalizer on a resource; the finalizer :func:`reconcile` manages stays
the only one.
"""

import asyncio
from collections.abc import Callable
from concurrent.futures import Executor
from typing import Any

import kopf
from icecream import ic
from kubernetes import client

from bw_operator import console
from bw_operator.core.context import Context
from bw_operator.core.finalizers import get_resource
from bw_operator.core.reconciler import on_error, reconcile
from bw_operator.exceptions import ReconcileError
from bw_operator.models import BitwardenSecret, Directive

Reconciler = Callable[[BitwardenSecret, Context], Directive]
ErrorHandler = Callable[[BitwardenSecret, ReconcileError, Context], Directive]


def login(**_: Any) -> kopf.ConnectionInfo:
    """Hand the credentials loaded by :class:`~bw_operator.cluster.Cluster` to kopf.

    Returns:
        Connection info built from the default kubernetes client configuration.

    """
    config = client.Configuration.get_default_copy()
    # 'Bearer <token>' for kubeconfig and in-cluster tokens
    scheme, _sep, token = (config.get_api_key_with_prefix("authorization") or "").partition(" ")
    return kopf.ConnectionInfo(
        server=config.host,
        ca_path=config.ssl_ca_cert,
        insecure=not config.verify_ssl,
        username=config.username or None,
        password=config.password or None,
        scheme=scheme or None,
        token=token or None,
        certificate_path=config.cert_file,
        private_key_path=config.key_file,
    )


class Operator:
    """kopf operator reconciling BitwardenSecret resources.

    Attributes:
        context: Clients and settings handed to every reconciliation.
        namespace: Namespace to watch, or None for all namespaces.
        workers: Number of reconciliations that may run at once.
        registry: kopf registry holding this operator's handlers.

    """

    def __init__(
        self,
        context: Context,
        *,
        namespace: str | None = None,
        workers: int = 4,
        reconciler: Reconciler = reconcile,
        error_handler: ErrorHandler = on_error,
    ) -> None:
        """Initialize the operator and register its kopf handlers.

        Args:
            context: Clients and settings for reconciliations.
            namespace: Namespace to watch; None watches all namespaces.
            workers: Number of reconciliations that may run at once.
            reconciler: Function reconciling one resource.
            error_handler: Function turning a reconciliation error into a directive.

        """
        self.context: Context = context
        self.namespace: str | None = namespace
        self.workers: int = workers
        self.registry: kopf.OperatorRegistry = kopf.OperatorRegistry()
        self._reconcile = reconciler
        self._on_error = error_handler
        self._executor: Executor | None = None

        # Event loop state, keyed by 'namespace/name'
        self._locks: dict[str, asyncio.Lock] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

        kind = context.kind
        kopf.on.startup(registry=self.registry)(self.configure)
        kopf.on.login(registry=self.registry)(login)
        kopf.on.event(kind.group, kind.version, kind.plural, registry=self.registry)(self.handle_event)
        kopf.on.cleanup(registry=self.registry)(self.cleanup)

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"Operator(namespace={self.namespace!r}, workers={self.workers}, timers={len(self._timers)})"

    # kopf handlers

    def configure(self, settings: kopf.OperatorSettings, **_: Any) -> None:
        """Apply the operator settings on startup."""
        settings.execution.max_workers = self.workers
        # Errors are logged here; posting them as events would need extra RBAC
        settings.posting.enabled = False
        self._executor = settings.execution.executor

    async def handle_event(self, event: dict[str, Any], **_: Any) -> None:
        """Reconcile a resource after a watch event.

        Args:
            event: Raw watch event with 'type' and 'object'.

        """
        resource = BitwardenSecret.from_dict(event["object"])
        ic(event["type"], resource.key)

        match event["type"]:
            case "DELETED":
                self.forget(resource.key)
            case _:
                # None is the type of objects listed when the watch starts
                await self.dispatch(resource)

    async def cleanup(self, **_: Any) -> None:
        """Cancel pending requeues on shutdown."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in list(self._tasks):
            task.cancel()
        console.info("Operator stopped")

    # Scheduling

    async def dispatch(self, resource: BitwardenSecret, *, refresh: bool = False) -> Directive | None:
        """Reconcile a resource and schedule its follow-up.

        Reconciliations of the same resource never overlap.

        Args:
            resource: The last snapshot seen of the resource.
            refresh: Read the resource from the API before reconciling.

        Returns:
            The directive that was applied, or None if the resource is gone.

        """
        key = resource.key
        self._cancel(key)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            loop = asyncio.get_running_loop()
            directive = await loop.run_in_executor(self._executor, self._process, resource, refresh)

        ic(key, directive)
        if directive is None:
            self.forget(key)
        elif directive.is_requeue:
            self.schedule(resource, directive.requeue_after)
        return directive

    def schedule(self, resource: BitwardenSecret, delay: float) -> None:
        """Reconcile a resource again after a delay.

        A later call for the same resource replaces the earlier timer.

        Args:
            resource: The snapshot to fall back on if the refresh fails.
            delay: Seconds to wait.

        """
        self._cancel(resource.key)
        loop = asyncio.get_running_loop()
        self._timers[resource.key] = loop.call_later(delay, self._fire, resource)

    def forget(self, key: str) -> None:
        """Drop all state for a resource that no longer exists."""
        self._cancel(key)
        self._locks.pop(key, None)

    def _cancel(self, key: str) -> None:
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _fire(self, resource: BitwardenSecret) -> None:
        self._timers.pop(resource.key, None)
        task = asyncio.ensure_future(self.dispatch(resource, refresh=True))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # Reconciliation

    def _process(self, resource: BitwardenSecret, refresh: bool) -> Directive | None:
        try:
            if refresh:
                obj = get_resource(self.context.custom_api, resource.name, resource.namespace, self.context.kind)
                if obj is None:
                    return None
                resource = BitwardenSecret.from_dict(obj)
            return self._reconcile(resource, self.context)
        except ReconcileError as err:
            return self._on_error(resource, err, self.context)
        except Exception as err:  # noqa: BLE001
            console.error(f"Unexpected error while reconciling {console.highlight(resource.key)}: {err!r}")
            return self._on_error(resource, ReconcileError(str(err)), self.context)

    def run(self) -> None:
        """Run kopf with this operator's handlers until it is stopped."""
        scope = self.namespace or "all namespaces"
        console.info(f"Watching {self.context.kind.plural} in {console.highlight(scope)}")
        kopf.run(
            registry=self.registry,
            standalone=True,
            clusterwide=self.namespace is None,
            namespaces=[self.namespace] if self.namespace else [],
        )
