"""API test fixtures: the real app over Mock services."""

from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from api.middleware import ACTOR_HEADER
from core.authorization import RoleAuthorizer
from core.services.batch_service import BatchService
from core.services.handover_service import HandoverService
from core.services.notification_service import NotificationService
from core.services.request_service import RequestService
from core.timeline import TimelineLog

from tests.staff import CA_ID


@pytest.fixture
def services():
    return {
        "request": Mock(spec=RequestService),
        "handover": Mock(spec=HandoverService),
        "batch": Mock(spec=BatchService),
        "timeline": Mock(spec=TimelineLog),
        "notification": Mock(spec=NotificationService),
        "authorizer": Mock(spec=RoleAuthorizer),
    }


@pytest.fixture
def app(services):
    return create_app(services)


@pytest.fixture
def client(app):
    """Client acting as CA."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers[ACTOR_HEADER] = str(CA_ID)
    return c


@pytest.fixture
def anonymous_client(app):
    return TestClient(app, raise_server_exceptions=False)
