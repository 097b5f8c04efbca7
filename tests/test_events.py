import asyncio

from fastapi.testclient import TestClient

from dashboard_app.config import settings
from dashboard_app.models import AnalyticsEvent, DailyStat, TrackingLink
from dashboard_app.queue.models import AnalyticsEventMessage
from dashboard_app.queue.strategies import InMemoryQueue
from dashboard_app.services.bot_detection import is_bot, sanitize_user_agent
from dashboard_app.services.event_service import EventService
from dashboard_app.services.request_metadata import normalize_country

BROWSER_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148"


class TestBotDetection:
    def test_known_bots(self):
        for agent in (
            "Googlebot/2.1 (+http://www.google.com/bot.html)",
            "facebookexternalhit/1.1",
            "Mozilla/5.0 (compatible; AhrefsBot/7.0)",
            "HeadlessChrome/120.0",
            "UptimeRobot/2.0",
        ):
            assert is_bot(agent), agent

    def test_missing_user_agent_is_a_bot(self):
        assert is_bot(None)
        assert is_bot("")

    def test_browsers_are_not_bots(self):
        assert not is_bot(BROWSER_UA)

    def test_sanitize_truncates(self):
        assert len(sanitize_user_agent("x" * 900)) == 500
        assert sanitize_user_agent("  ua  ") == "ua"


class TestRequestMetadata:
    def test_country_codes(self):
        assert normalize_country("us") == "US"
        assert normalize_country("XX1") is None
        assert normalize_country(None) is None


class TestIngestion:
    """POST /api/analytics and the worker that stores events"""

    def test_event_is_queued_then_stored(
        self, client: TestClient, queue, drain_events, db_session
    ):
        response = client.post(
            "/api/analytics",
            json={"eventType": "page_view", "modelSlug": "luna", "pagePath": "/model/luna"},
            headers={
                "user-agent": BROWSER_UA,
                "cf-ipcountry": "de",
                "x-vercel-ip-city": "S%C3%A3o%20Paulo",
                "referer": "https://www.reddit.com/r/pics",
            },
        )
        assert response.status_code == 202
        assert asyncio.run(queue.get_queue_length("analytics_events")) == 1

        assert drain_events() == 1
        event = db_session.query(AnalyticsEvent).one()
        assert event.event_type == "page_view"
        assert event.model_slug == "luna"
        assert event.country == "DE"
        assert event.city == "São Paulo"
        assert event.referrer == "https://www.reddit.com/r/pics"
        assert event.page_path == "/model/luna"

    def test_event_type_validation(self, client: TestClient):
        response = client.post("/api/analytics", json={"modelSlug": "luna"})
        assert response.status_code == 400
        assert response.json()["error"] == "eventType is required"

        response = client.post("/api/analytics", json={"eventType": "purchase"})
        assert response.status_code == 400

    def test_malformed_body_is_422(self, client: TestClient):
        response = client.post("/api/analytics", json={"eventType": ["x"]})
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["details"]

    def test_list_events_is_admin_only(self, client: TestClient, admin_headers, db_session):
        db_session.add(AnalyticsEvent(event_type="page_view", model_slug="luna"))
        db_session.commit()

        assert client.get("/api/analytics").status_code == 401
        data = client.get("/api/analytics", params={"limit": 0}, headers=admin_headers).json()["data"]
        assert len(data) == 1
        assert data[0]["model_slug"] == "luna"


class TestInMemoryQueue:
    """Pending messages, redelivery and the dead-letter list"""

    def test_unacked_messages_are_redelivered(self):
        queue = InMemoryQueue()
        asyncio.run(queue.publish("events", AnalyticsEventMessage(event_type="page_view")))

        first = asyncio.run(queue.consume("events", batch_size=10))
        again = asyncio.run(queue.consume("events", batch_size=10))
        assert [m.message_id for m in again] == [m.message_id for m in first]
        assert again[0].delivery_count == 2

        asyncio.run(queue.ack("events", [first[0].message_id]))
        assert asyncio.run(queue.consume("events", batch_size=10)) == []

    def test_delivery_limit_moves_message_to_dead_letters(self):
        queue = InMemoryQueue(max_deliveries=2)
        asyncio.run(queue.publish("events", AnalyticsEventMessage(event_type="page_view")))

        assert len(asyncio.run(queue.consume("events"))) == 1
        assert len(asyncio.run(queue.consume("events"))) == 1
        assert asyncio.run(queue.consume("events")) == []
        assert queue.pending_count("events") == 0
        assert len(queue.dead_letters("events")) == 1


class TestEventWorker:
    """Batch processing, acknowledgement and aggregate refresh"""

    def _message(self, **fields):
        fields.setdefault("model_slug", "luna")
        return AnalyticsEventMessage(event_type="link_click", **fields)

    def test_batch_bumps_click_counts(self, db_session, queue, worker, make_model, make_link):
        link = make_link(make_model("Luna"))
        for _ in range(3):
            asyncio.run(queue.publish(
                "analytics_events",
                self._message(tracking_link_id=link.id, increment_link_clicks=True),
            ))
        asyncio.run(queue.publish("analytics_events", self._message(tracking_link_id=link.id)))

        assert asyncio.run(worker.run_once()) == 4
        db_session.expire_all()
        assert db_session.get(TrackingLink, link.id).click_count == 3
        assert db_session.query(AnalyticsEvent).count() == 4
        assert queue.pending_count("analytics_events") == 0

    def test_failed_batch_is_not_acknowledged(self, db_session, queue, worker):
        asyncio.run(queue.publish("analytics_events", self._message()))

        def failing_factory():
            raise RuntimeError("database unavailable")

        session_factory = worker.db_session_factory
        worker.db_session_factory = failing_factory
        assert asyncio.run(worker.run_once()) == 0
        assert queue.pending_count("analytics_events") == 1
        assert db_session.query(AnalyticsEvent).count() == 0

        # The database comes back; the unacknowledged event is delivered again
        worker.db_session_factory = session_factory
        assert asyncio.run(worker.drain()) == 1
        assert queue.pending_count("analytics_events") == 0
        assert db_session.query(AnalyticsEvent).count() == 1

    def test_bad_event_does_not_block_the_batch(self, db_session, queue, worker, monkeypatch):
        persist_batch = EventService.persist_batch

        def reject_broken(db, messages):
            if any(message.model_slug == "broken" for message in messages):
                raise ValueError("bad row")
            return persist_batch(db, messages)

        monkeypatch.setattr(EventService, "persist_batch", staticmethod(reject_broken))
        asyncio.run(queue.publish("analytics_events", self._message()))
        asyncio.run(queue.publish("analytics_events", self._message(model_slug="broken")))
        asyncio.run(queue.publish("analytics_events", self._message()))

        assert asyncio.run(worker.run_once()) == 2
        assert db_session.query(AnalyticsEvent).count() == 2
        assert queue.pending_count("analytics_events") == 1

        # Redelivered until the delivery limit, then dead-lettered
        for _ in range(settings.queue_max_deliveries):
            asyncio.run(worker.run_once())
        assert queue.pending_count("analytics_events") == 0
        assert [message.model_slug for message in queue.dead_letters("analytics_events")] == ["broken"]

    def test_batch_size_is_respected(self, queue, worker):
        worker.batch_size = 2
        for _ in range(5):
            asyncio.run(queue.publish("analytics_events", self._message()))

        assert asyncio.run(worker.run_once()) == 2
        assert asyncio.run(worker.drain()) == 3

    def test_refresh_runs_when_due(self, db_session, queue, worker):
        asyncio.run(queue.publish("analytics_events", self._message()))
        asyncio.run(worker.drain())

        assert worker.refresh_if_due() is False  # interval disabled
        worker.refresh_interval = 1
        worker.last_refresh -= 5
        assert worker.refresh_if_due() is True
        assert db_session.query(DailyStat).one().clicks == 1


class TestHealth:
    def test_root(self, client: TestClient):
        data = client.get("/").json()
        assert data["message"] == "Welcome to Content Dashboard"
        assert data["docs"] == "/docs"

    def test_degraded_without_recent_events(self, client: TestClient):
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["cache"]["backend"] == "memory"

    def test_healthy_with_recent_events(self, client: TestClient, db_session):
        db_session.add(AnalyticsEvent(event_type="page_view"))
        db_session.commit()
        body = client.get("/api/health").json()
        assert body["status"] == "healthy"
        assert body["checks"]["analytics"]["events_last_24h"] == 1

    def test_unknown_route_uses_error_envelope(self, client: TestClient):
        response = client.get("/api/does-not-exist")
        assert response.status_code == 404
        assert response.json()["success"] is False
