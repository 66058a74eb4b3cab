"""Tests for role-based capability checks."""

from unittest.mock import Mock
from uuid import uuid4

import pytest

from clients.postgres_client import PostgresClient
from core.authorization import Capability, Role, RoleAuthorizer, ROLE_CAPABILITIES, require
from core.errors import AuthorizationError


def _authorizer(*roles):
    postgres = Mock(spec=PostgresClient)
    postgres.execute.return_value = [{"role": r} for r in roles]
    return RoleAuthorizer(postgres)


class TestRoleCapabilities:

    def test_ca_can_request_and_hold_but_not_approve(self):
        auth = _authorizer("CA")

        assert auth.authorize(uuid4(), Capability.CREATE_REQUESTS)
        assert auth.authorize(uuid4(), Capability.HOLD_CASE_NOTES)
        assert not auth.authorize(uuid4(), Capability.APPROVE_REQUESTS)

    def test_mr_staff_cannot_hold_case_notes(self):
        auth = _authorizer("MR_STAFF")

        assert auth.authorize(uuid4(), Capability.APPROVE_REQUESTS)
        assert not auth.authorize(uuid4(), Capability.HOLD_CASE_NOTES)

    def test_only_admin_corrects_timeline(self):
        assert Capability.CORRECT_TIMELINE in ROLE_CAPABILITIES[Role.ADMIN]
        assert not _authorizer("CA", "MR_STAFF").authorize(uuid4(), Capability.CORRECT_TIMELINE)

    def test_unknown_role_is_ignored(self, caplog):
        auth = _authorizer("JANITOR")

        assert auth.roles_for(uuid4()) == set()
        assert "Ignoring unknown role" in caplog.text

    def test_no_roles_means_no_capabilities(self):
        assert not _authorizer().authorize(uuid4(), Capability.CREATE_REQUESTS)


class TestRequire:

    def test_raises_with_capability(self):
        with pytest.raises(AuthorizationError) as exc:
            require(_authorizer("CA"), uuid4(), Capability.PROCESS_BATCHES)

        assert exc.value.capability == "process_batches"

    def test_passes_silently(self):
        require(_authorizer("ADMIN"), uuid4(), Capability.PROCESS_BATCHES)
