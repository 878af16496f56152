"""
Tests for the grant_subscription command-line script.
"""
from conftest import TestSessionLocal
from fitpro.db.models.user import User
from fitpro.services.audit_log import ACTION_GRANT, ACTION_REVOKE
from scripts import grant_subscription


def test_run_grants_subscription(db, member, admin_user, audit_log):
    ok = grant_subscription.run(
        member.email,
        admin_user.email,
        subscription_id="comp_2024",
        session_factory=TestSessionLocal,
        audit_log=audit_log,
    )

    assert ok is True
    db.expire_all()
    user = db.query(User).filter(User.id == member.id).one()
    assert user.subscription_status == "active"
    assert user.subscription_id == "comp_2024"
    assert audit_log.read_entries()[0]["action"] == ACTION_GRANT


def test_run_revokes_subscription(db, member, admin_user, audit_log):
    grant_subscription.run(member.email, admin_user.email, session_factory=TestSessionLocal, audit_log=audit_log)

    ok = grant_subscription.run(
        member.email, admin_user.email, revoke=True, session_factory=TestSessionLocal, audit_log=audit_log
    )

    assert ok is True
    db.expire_all()
    user = db.query(User).filter(User.id == member.id).one()
    assert user.subscription_status == "inactive"
    assert user.subscription_id is None
    assert [e["action"] for e in audit_log.read_entries()] == [ACTION_GRANT, ACTION_REVOKE]


def test_run_requires_admin(db, member, audit_log):
    ok = grant_subscription.run(member.email, member.email, session_factory=TestSessionLocal, audit_log=audit_log)

    assert ok is False
    assert audit_log.read_entries() == []


def test_run_unknown_member(db, admin_user, audit_log):
    ok = grant_subscription.run(
        "nobody@example.com", admin_user.email, session_factory=TestSessionLocal, audit_log=audit_log
    )
    assert ok is False


def test_main_exit_codes(monkeypatch, db, settings, member, admin_user, capsys):
    monkeypatch.setattr(grant_subscription, "SessionLocal", TestSessionLocal)
    monkeypatch.setattr(grant_subscription, "get_settings", lambda: settings)

    assert grant_subscription.main([member.email, "--admin-email", admin_user.email]) == 0
    assert "[SUCCESS] Subscription granted" in capsys.readouterr().out

    assert grant_subscription.main(["nobody@example.com", "--admin-email", admin_user.email]) == 1
    assert "[ERROR]" in capsys.readouterr().out
