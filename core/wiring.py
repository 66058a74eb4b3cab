"""Builds the services dict shared by the HTTP app and the background jobs."""

import logging

from clients.postgres_client import PostgresClient
from core.authorization import RoleAuthorizer
from core.config import WorkflowConfig
from core.event_bus import EventBus
from core.handlers.notification_handlers import register_notification_handlers
from core.reference import ReferenceLookup
from core.services.batch_service import BatchService
from core.services.handover_service import HandoverService
from core.services.notification_service import NotificationService
from core.services.request_service import RequestService
from core.timeline import TimelineLog

logger = logging.getLogger(__name__)


def build_services(postgres: PostgresClient, config: WorkflowConfig | None = None) -> dict:
    """
    Construct every service over one connection pool and one event bus.

    Notification handlers are subscribed here so any caller that mutates
    workflow state also produces notifications.

    Args:
        postgres: Pooled database client
        config: Workflow settings, defaults to WorkflowConfig.from_env()

    Returns:
        Services keyed by name, as routers and jobs expect them
    """
    config = config or WorkflowConfig.from_env()
    event_bus = EventBus()
    timeline = TimelineLog(postgres)
    authorizer = RoleAuthorizer(postgres)
    reference = ReferenceLookup(postgres)

    requests = RequestService(postgres, timeline, authorizer, reference, event_bus, config)
    handovers = HandoverService(postgres, timeline, authorizer, reference, event_bus, config)
    batches = BatchService(postgres, authorizer, reference, requests, event_bus, config)
    notifications = NotificationService(postgres)

    register_notification_handlers(event_bus, notifications)

    return {
        "config": config,
        "event_bus": event_bus,
        "timeline": timeline,
        "authorizer": authorizer,
        "reference": reference,
        "request": requests,
        "handover": handovers,
        "batch": batches,
        "notification": notifications,
    }
