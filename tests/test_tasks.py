"""Background work: the retention sweep and reuse alerts."""
from datetime import timedelta

import pytest

import app.tasks.notification_tasks as notification_tasks
from app.services.refresh_token_store import RefreshTokenStore
from app.services.security_notifier import SecurityNotifier
from app.tasks.session_tasks import purge_expired_sessions
from app.utils.helpers import ClientInfo


def test_purge_sweeps_expired_sessions(make_engine, make_user, identity_for, database, clock):
    ctx = make_engine()
    identity = identity_for(make_user())
    stale = ctx.engine.issue_root(identity, ClientInfo())
    clock.advance(days=6)
    fresh = ctx.engine.issue_root(identity, ClientInfo())

    clock.advance(days=2)
    removed = purge_expired_sessions(RefreshTokenStore(database), now=clock.now)

    assert removed == 1
    assert ctx.store.find_by_jti(stale.record.jti) is None
    assert ctx.store.find_by_jti(fresh.record.jti) is not None


def test_notifier_enqueues_reuse_alert(monkeypatch):
    sent = []
    monkeypatch.setattr(notification_tasks.send_token_reuse_alert_task, "delay", lambda **kw: sent.append(kw))

    SecurityNotifier().token_reuse_detected(user_id=1, family_id="fam", ip_address="10.0.0.1", user_agent="ua")

    assert sent == [{"user_id": 1, "family_id": "fam", "ip_address": "10.0.0.1", "user_agent": "ua"}]


def test_notifier_swallows_broker_failures(monkeypatch):
    def broker_down(**kwargs):
        raise ConnectionError("redis unreachable")

    monkeypatch.setattr(notification_tasks.send_token_reuse_alert_task, "delay", broker_down)

    SecurityNotifier().token_reuse_detected(user_id=1, family_id="fam")


@pytest.fixture
def task_database(database, monkeypatch):
    monkeypatch.setattr(notification_tasks.Database, "from_settings", classmethod(lambda cls, s: database))
    return database


def test_reuse_alert_task_emails_the_owner(task_database, make_user, monkeypatch):
    user_id = make_user(email="ada@tokenward.io")
    emails = []
    monkeypatch.setattr(
        notification_tasks,
        "send_token_reuse_alert_email",
        lambda to_email, ip_address=None, user_agent=None: emails.append((to_email, ip_address)),
    )

    notification_tasks.send_token_reuse_alert_task(user_id=user_id, family_id="family-123", ip_address="203.0.113.9")

    assert emails == [("ada@tokenward.io", "203.0.113.9")]


def test_reuse_alert_task_ignores_unknown_user(task_database, monkeypatch):
    emails = []
    monkeypatch.setattr(notification_tasks, "send_token_reuse_alert_email", lambda *a, **k: emails.append(a))

    notification_tasks.send_token_reuse_alert_task(user_id=9999, family_id="family-123")

    assert emails == []


def test_purge_honours_configured_grace(make_engine, make_user, identity_for, database, clock, monkeypatch):
    from app.tasks import session_tasks

    ctx = make_engine()
    issued = ctx.engine.issue_root(identity_for(make_user()), ClientInfo())
    store = RefreshTokenStore(database)
    a_day_after_expiry = clock.now + timedelta(days=8)

    monkeypatch.setattr(session_tasks.settings, "REFRESH_EXPIRED_GRACE_HOURS", 48)
    assert purge_expired_sessions(store, now=a_day_after_expiry) == 0

    monkeypatch.setattr(session_tasks.settings, "REFRESH_EXPIRED_GRACE_HOURS", 0)
    assert purge_expired_sessions(store, now=a_day_after_expiry) == 1
    assert store.find_by_jti(issued.record.jti) is None


def test_reuse_alert_escapes_client_supplied_origin(task_database, make_user, monkeypatch):
    from app.services import email_service

    user_id = make_user(email="ada@tokenward.io")
    sent = []
    monkeypatch.setattr(
        email_service,
        "send_email",
        lambda to_email, subject, body, html=None: sent.append((body, html)) or True,
    )

    notification_tasks.send_token_reuse_alert_task(
        user_id=user_id,
        family_id="family-123",
        ip_address="203.0.113.9",
        user_agent='<a href="https://evil.example/reset">Reset your password</a>',
    )

    assert len(sent) == 1
    body, html = sent[0]
    assert "<a href" not in html
    assert "&lt;a href=&quot;https://evil.example/reset&quot;&gt;" in html
    assert "203.0.113.9" in html
    # the plain-text part is not markup
    assert "Reset your password" in body
    assert "—" not in body and "—" not in html
