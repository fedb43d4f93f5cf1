"""Tests for models.py module."""

from bw_operator.models import BITWARDEN_SECRET, FINALIZER, BitwardenSecret, Directive, ResourceAction


class TestBitwardenSecret:
    """Tests for parsing custom objects."""

    def test_from_dict(self, resource_dict):
        """Test that all fields are read from the custom object."""
        resource_dict["metadata"]["finalizers"] = [FINALIZER]
        resource_dict["metadata"]["deletionTimestamp"] = "2026-10-19T10:00:00Z"

        resource = BitwardenSecret.from_dict(resource_dict)

        assert resource.name == "db-creds"
        assert resource.namespace == "app"
        assert resource.item == "homelab/db-creds"
        assert resource.secret_type == "Opaque"
        assert resource.uid == "3f1c9a52-7d0e-4b8e-9f3b-0c5e2a1d7b64"
        assert resource.deletion_timestamp == "2026-10-19T10:00:00Z"
        assert resource.finalizers == [FINALIZER]
        assert resource.labels == {"team": "payments"}
        assert resource.key == "app/db-creds"

    def test_defaults(self):
        """Test the fallbacks for missing fields."""
        resource = BitwardenSecret.from_dict({"metadata": {"name": "db-creds"}})

        assert resource.namespace == "default"
        assert resource.secret_type == "Opaque"
        assert resource.item is None
        assert resource.uid is None
        assert resource.finalizers == []
        assert resource.labels == {}

    def test_null_finalizers(self):
        """Test that finalizers set to null read as empty."""
        resource = BitwardenSecret.from_dict({"metadata": {"name": "db-creds", "finalizers": None}})

        assert resource.finalizers == []


class TestDirective:
    """Tests for scheduling directives."""

    def test_requeue(self):
        """Test a requeue directive."""
        directive = Directive.requeue(10)

        assert directive.is_requeue
        assert directive.requeue_after == 10

    def test_await_change(self):
        """Test the await-change directive."""
        directive = Directive.await_change()

        assert not directive.is_requeue
        assert directive.requeue_after is None


class TestConstants:
    """Tests for resource coordinates."""

    def test_kind(self):
        """Test the BitwardenSecret coordinates."""
        assert BITWARDEN_SECRET.api_version == "tomjo.net/v1"
        assert BITWARDEN_SECRET.plural == "bitwardensecrets"
        assert BITWARDEN_SECRET.kind == "BitwardenSecret"

    def test_action_values(self):
        """Test that actions log as plain strings."""
        assert ResourceAction.CREATE == "create"
        assert ResourceAction.DELETE == "delete"
        assert ResourceAction.NOOP == "noop"
