"""Tests for core/operator.py module."""

import asyncio
import time
from unittest.mock import MagicMock, patch

import kopf
import pytest
from kubernetes import client

from bw_operator.core.operator import Operator, login
from bw_operator.exceptions import KubernetesError, ReconcileError
from bw_operator.models import Directive

KEY = "app/db-creds"


@pytest.fixture
def reconciler():
    """Mock reconciler requeueing after 10 seconds."""
    return MagicMock(return_value=Directive.requeue(10.0))


@pytest.fixture
def error_handler():
    """Mock error handler requeueing after 5 seconds."""
    return MagicMock(return_value=Directive.requeue(5.0))


@pytest.fixture
def operator(context, reconciler, error_handler):
    """Operator with mocked reconciliation functions."""
    return Operator(context, workers=3, reconciler=reconciler, error_handler=error_handler)


def _event(event_type, obj):
    return {"type": event_type, "object": obj}


class TestProcess:
    """Tests for running a single reconciliation."""

    def test_reconciles_snapshot(self, operator, fresh_resource, reconciler, custom_api):
        """Test that an event-driven run uses the snapshot it was given."""
        directive = operator._process(fresh_resource, False)

        assert directive == Directive.requeue(10.0)
        reconciler.assert_called_once_with(fresh_resource, operator.context)
        custom_api.get_namespaced_custom_object.assert_not_called()

    def test_reconcile_error_goes_to_handler(self, operator, fresh_resource, reconciler, error_handler):
        """Test that a reconciliation error is handed to the error handler."""
        error = KubernetesError("boom", status=500)
        reconciler.side_effect = error

        directive = operator._process(fresh_resource, False)

        assert directive == Directive.requeue(5.0)
        error_handler.assert_called_once_with(fresh_resource, error, operator.context)

    def test_unexpected_error_goes_to_handler(self, operator, fresh_resource, reconciler, error_handler):
        """Test that an unexpected exception is wrapped and retried."""
        reconciler.side_effect = RuntimeError("bug")

        operator._process(fresh_resource, False)

        error = error_handler.call_args[0][1]
        assert isinstance(error, ReconcileError)
        assert "bug" in str(error)

    def test_refresh_reads_resource(self, operator, fresh_resource, custom_api, resource_dict, reconciler):
        """Test that a timer-driven run works on the current resource."""
        resource_dict["metadata"]["labels"] = {"team": "platform"}
        custom_api.get_namespaced_custom_object.return_value = resource_dict

        operator._process(fresh_resource, True)

        custom_api.get_namespaced_custom_object.assert_called_once_with(
            "tomjo.net", "v1", "app", "bitwardensecrets", "db-creds"
        )
        assert reconciler.call_args[0][0].labels == {"team": "platform"}

    def test_refresh_of_deleted_resource(self, operator, fresh_resource, custom_api, reconciler, api_exception):
        """Test that a resource gone from the API is not reconciled."""
        custom_api.get_namespaced_custom_object.side_effect = api_exception(404, "Not Found")

        assert operator._process(fresh_resource, True) is None
        reconciler.assert_not_called()

    def test_refresh_failure_goes_to_handler(self, operator, fresh_resource, custom_api, error_handler, api_exception):
        """Test that a failed refresh is retried with the last snapshot."""
        custom_api.get_namespaced_custom_object.side_effect = api_exception(500, "Internal Server Error")

        directive = operator._process(fresh_resource, True)

        assert directive == Directive.requeue(5.0)
        assert error_handler.call_args[0][0] == fresh_resource
        assert isinstance(error_handler.call_args[0][1], KubernetesError)


class TestHandleEvent:
    """Tests for watch event handling."""

    def test_added_schedules_requeue(self, operator, resource_dict, reconciler):
        """Test that a requeue directive becomes a timer."""

        async def scenario():
            await operator.handle_event(_event("ADDED", resource_dict))
            scheduled = KEY in operator._timers
            await operator.cleanup()
            return scheduled

        assert asyncio.run(scenario())
        reconciler.assert_called_once()
        assert reconciler.call_args[0][0].key == KEY

    def test_initial_listing_is_reconciled(self, operator, resource_dict, reconciler):
        """Test that objects listed when the watch starts are reconciled."""

        async def scenario():
            await operator.handle_event(_event(None, resource_dict))
            await operator.cleanup()

        asyncio.run(scenario())

        reconciler.assert_called_once()

    def test_await_change_schedules_nothing(self, operator, resource_dict, reconciler):
        """Test that await-change leaves the resource to the next event."""
        reconciler.return_value = Directive.await_change()

        async def scenario():
            await operator.handle_event(_event("MODIFIED", resource_dict))
            return dict(operator._timers)

        assert asyncio.run(scenario()) == {}

    def test_deleted_forgets_resource(self, operator, resource_dict, reconciler):
        """Test that a DELETED event cancels the pending requeue without reconciling."""

        async def scenario():
            await operator.handle_event(_event("ADDED", resource_dict))
            handle = operator._timers[KEY]
            await operator.handle_event(_event("DELETED", resource_dict))
            return handle

        handle = asyncio.run(scenario())

        assert handle.cancelled()
        assert operator._timers == {}
        reconciler.assert_called_once()

    def test_event_supersedes_timer(self, operator, resource_dict):
        """Test that a new event replaces the pending requeue."""

        async def scenario():
            await operator.handle_event(_event("ADDED", resource_dict))
            first = operator._timers[KEY]
            await operator.handle_event(_event("MODIFIED", resource_dict))
            second = operator._timers[KEY]
            await operator.cleanup()
            return first, second

        first, second = asyncio.run(scenario())

        assert first.cancelled()
        assert first is not second

    def test_timer_reconciles_fresh_read(self, operator, resource_dict, reconciler, custom_api):
        """Test that an expired requeue reconciles the resource read from the API."""
        reconciler.side_effect = [Directive.requeue(0.01), Directive.await_change()]
        custom_api.get_namespaced_custom_object.return_value = resource_dict

        async def scenario():
            await operator.handle_event(_event("ADDED", resource_dict))
            await asyncio.sleep(0.2)

        asyncio.run(scenario())

        assert reconciler.call_count == 2
        custom_api.get_namespaced_custom_object.assert_called_once()
        assert operator._timers == {}

    def test_reconciliations_do_not_overlap(self, operator, resource_dict, reconciler):
        """Test that two events for one resource are reconciled one after the other."""
        running = []
        overlaps = []

        def slow(resource, _context):
            overlaps.append(bool(running))
            running.append(resource.key)
            try:
                time.sleep(0.05)
            finally:
                running.pop()
            return Directive.await_change()

        reconciler.side_effect = slow

        async def scenario():
            await asyncio.gather(
                operator.handle_event(_event("ADDED", resource_dict)),
                operator.handle_event(_event("MODIFIED", resource_dict)),
            )

        asyncio.run(scenario())

        assert overlaps == [False, False]


class TestKopfIntegration:
    """Tests for the kopf settings, login and startup."""

    def test_configure(self, operator):
        """Test that the worker count and event posting are applied."""
        settings = kopf.OperatorSettings()

        operator.configure(settings=settings)

        assert settings.execution.max_workers == 3
        assert settings.posting.enabled is False
        assert operator._executor is settings.execution.executor

    def test_login_uses_loaded_credentials(self):
        """Test that kopf connects with the kubernetes client configuration."""
        config = client.Configuration(host="https://k8s.example.com:6443", api_key={"authorization": "Bearer abc123"})
        config.ssl_ca_cert = "/var/run/ca.crt"

        with patch("bw_operator.core.operator.client.Configuration.get_default_copy", return_value=config):
            info = login()

        assert info.server == "https://k8s.example.com:6443"
        assert info.scheme == "Bearer"
        assert info.token == "abc123"
        assert info.ca_path == "/var/run/ca.crt"
        assert info.insecure is False

    def test_run_clusterwide(self, operator):
        """Test that kopf watches all namespaces by default."""
        with patch("bw_operator.core.operator.kopf.run") as mock_run:
            operator.run()

        mock_run.assert_called_once_with(registry=operator.registry, standalone=True, clusterwide=True, namespaces=[])

    def test_run_namespaced(self, context):
        """Test that a namespace limits what kopf watches."""
        operator = Operator(context, namespace="apps")

        with patch("bw_operator.core.operator.kopf.run") as mock_run:
            operator.run()

        mock_run.assert_called_once_with(
            registry=operator.registry, standalone=True, clusterwide=False, namespaces=["apps"]
        )
