"""Shared test fixtures for bw-operator tests."""

from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from bw_operator.core.backoff import FixedDelay
from bw_operator.core.context import Context
from bw_operator.models import FINALIZER, BitwardenSecret


def _api_exception(status: int, reason: str = "Error") -> ApiException:
    return ApiException(status=status, reason=reason)


@pytest.fixture
def api_exception():
    """Factory for ApiException errors with a given HTTP status."""
    return _api_exception


@pytest.fixture
def core_api():
    """Mock CoreV1Api; secrets do not exist unless a test says otherwise."""
    api = MagicMock()
    api.read_namespaced_secret.side_effect = _api_exception(404, "Not Found")
    return api


@pytest.fixture
def custom_api():
    """Mock CustomObjectsApi."""
    return MagicMock()


@pytest.fixture
def vault():
    """Mock vault session returning the db-creds item."""
    session = MagicMock()
    session.fetch_item.return_value = {"user": "u", "pass": "p"}
    return session


@pytest.fixture
def context(core_api, custom_api, vault):
    """Context wired to the mocked clients."""
    return Context(
        core_api=core_api,
        custom_api=custom_api,
        vault=vault,
        requeue_seconds=10.0,
        retry_policy=FixedDelay(5.0),
    )


@pytest.fixture
def resource_dict():
    """A fresh BitwardenSecret custom object as returned by the API."""
    return {
        "apiVersion": "tomjo.net/v1",
        "kind": "BitwardenSecret",
        "metadata": {
            "name": "db-creds",
            "namespace": "app",
            "uid": "3f1c9a52-7d0e-4b8e-9f3b-0c5e2a1d7b64",
            "resourceVersion": "1001",
            "labels": {"team": "payments"},
        },
        "spec": {"item": "homelab/db-creds", "type": "Opaque"},
    }


@pytest.fixture
def fresh_resource(resource_dict):
    """A BitwardenSecret without finalizers or deletion timestamp."""
    return BitwardenSecret.from_dict(resource_dict)


@pytest.fixture
def finalized_resource(resource_dict):
    """A BitwardenSecret that already carries the finalizer."""
    resource_dict["metadata"]["finalizers"] = [FINALIZER]
    return BitwardenSecret.from_dict(resource_dict)


@pytest.fixture
def deleted_resource(resource_dict):
    """A BitwardenSecret whose deletion was requested."""
    resource_dict["metadata"]["finalizers"] = [FINALIZER]
    resource_dict["metadata"]["deletionTimestamp"] = "2026-10-19T10:00:00Z"
    return BitwardenSecret.from_dict(resource_dict)
