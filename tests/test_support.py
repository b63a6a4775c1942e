from datetime import timedelta

from merchant_dashboard.config import Settings
from merchant_dashboard.models import format_timer
from merchant_dashboard.notifications import Notifier
from merchant_dashboard.session import SessionState


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("API_BASE_URL", "http://api.internal:9000")
    monkeypatch.setenv("OFFER_WINDOW_SECONDS", "45")
    monkeypatch.setenv("DELIVERY_WINDOW_MINUTES", "30")
    monkeypatch.setenv("REFRESH_INTERVAL_SECONDS", "0")

    settings = Settings(_env_file=None)

    assert settings.api_base_url == "http://api.internal:9000"
    assert settings.offer_window == timedelta(seconds=45)
    assert settings.delivery_window == timedelta(minutes=30)
    assert settings.refresh_interval_seconds == 0


def test_settings_defaults():
    settings = Settings(_env_file=None)

    assert settings.offer_window == timedelta(minutes=2)
    assert settings.delivery_window == timedelta(minutes=90)
    assert settings.tick_interval_seconds == 1.0


def test_session_lifecycle():
    session = SessionState(default_merchant_id="merchant123")
    assert not session.is_authenticated
    assert session.merchant_id == "merchant123"

    session.set("jwt-1", {"merchant_id": "M-42", "name": "Dosa Corner"})
    assert session.get() == "jwt-1"
    assert session.merchant_id == "M-42"

    session.clear()
    assert session.get() is None
    assert session.merchant is None
    assert session.merchant_id == "merchant123"


def test_empty_token_is_no_session():
    assert not SessionState(token="").is_authenticated


def test_notifier_keeps_newest_first_and_bounded(clock):
    notifier = Notifier(max_history=2, clock=clock)

    notifier.status_updated("ORD-1", "accepted")
    notifier.status_updated("ORD-2", "declined")
    notifier.order_expired("ORD-3")

    recent = notifier.recent()
    assert [n.order_id for n in recent] == ["ORD-3", "ORD-2"]
    assert recent[1].description == "Order declined."
    assert recent[0].created_at == clock()

    notifier.clear()
    assert notifier.recent() == []


def test_format_timer():
    assert format_timer(120) == "2:00"
    assert format_timer(65) == "1:05"
    assert format_timer(0) == "0:00"
