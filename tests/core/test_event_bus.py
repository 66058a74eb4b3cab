"""Tests for EventBus."""

import logging

import pytest

from core.event_bus import EventBus
from core.events import CaseNoteApproved, CaseNoteRejected, HandoverRequested
from core.models import CaseNoteStatus


@pytest.fixture
def _note(make_case_note):
    return make_case_note(status=CaseNoteStatus.APPROVED)


# =============================================================================
# SUBSCRIBE AND PUBLISH
# =============================================================================


class TestSubscribeAndPublish:

    def test_single_handler_receives_the_exact_event_object(self, _note):
        bus = EventBus()
        received = []
        bus.subscribe("CaseNoteApproved", received.append)

        event = CaseNoteApproved.create(case_note=_note)
        bus.publish(event)

        assert received == [event]
        assert received[0] is event

    def test_multiple_handlers_called_in_subscription_order(self, _note):
        bus = EventBus()
        calls = []
        bus.subscribe("CaseNoteApproved", lambda e: calls.append("first"))
        bus.subscribe("CaseNoteApproved", lambda e: calls.append("second"))

        bus.publish(CaseNoteApproved.create(case_note=_note))

        assert calls == ["first", "second"]

    def test_only_matching_subscribers_called(self, _note):
        bus = EventBus()
        approved, rejected = [], []
        bus.subscribe("CaseNoteApproved", approved.append)
        bus.subscribe("CaseNoteRejected", rejected.append)

        bus.publish(CaseNoteRejected.create(case_note=_note))

        assert approved == []
        assert len(rejected) == 1

    def test_no_subscribers_does_not_raise(self, _note):
        EventBus().publish(CaseNoteApproved.create(case_note=_note))

    def test_publish_all_preserves_order(self, _note, make_handover):
        bus = EventBus()
        seen = []
        bus.subscribe("CaseNoteApproved", lambda e: seen.append("approved"))
        bus.subscribe("HandoverRequested", lambda e: seen.append("handover"))

        bus.publish_all([
            HandoverRequested.create(handover=make_handover(), case_note=_note),
            CaseNoteApproved.create(case_note=_note),
        ])

        assert seen == ["handover", "approved"]


# =============================================================================
# HANDLER ERROR ISOLATION
# =============================================================================


class TestHandlerErrorIsolation:

    def test_handler_exception_does_not_propagate(self, _note):
        bus = EventBus()

        def boom(event):
            raise RuntimeError("notification store down")

        bus.subscribe("CaseNoteApproved", boom)
        bus.publish(CaseNoteApproved.create(case_note=_note))

    def test_handler_exception_is_logged_with_event_type_and_event_id(self, _note, caplog):
        bus = EventBus()

        def boom(event):
            raise RuntimeError("nope")

        bus.subscribe("CaseNoteApproved", boom)
        event = CaseNoteApproved.create(case_note=_note)

        with caplog.at_level(logging.ERROR, logger="core.event_bus"):
            bus.publish(event)

        assert "CaseNoteApproved" in caplog.text
        assert event.event_id in caplog.text

    def test_later_handlers_run_after_one_fails(self, _note):
        bus = EventBus()
        calls = []

        def boom(event):
            raise ValueError("first fails")

        bus.subscribe("CaseNoteApproved", boom)
        bus.subscribe("CaseNoteApproved", lambda e: calls.append(e))

        bus.publish(CaseNoteApproved.create(case_note=_note))

        assert len(calls) == 1
