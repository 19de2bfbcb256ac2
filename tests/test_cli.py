from datetime import timedelta

from models import db
from models.account import Account
from models.session import Session
from security.session import create_session


def test_cleanup_sessions(app, runner, frozen_clock, make_account):
    account_id = make_account()
    with app.app_context():
        create_session(account_id)

    frozen_clock.advance(minutes=30)
    result = runner.invoke(args=["cleanup-sessions"])

    assert result.exit_code == 0
    assert "Deactivated 1 expired session(s)" in result.output
    with app.app_context():
        assert Session.query.filter_by(active=True).count() == 0


def test_unlock_account(app, runner, frozen_clock, make_account, audit_actions):
    account_id = make_account(
        email="locked@example.com",
        failed_login_count=2,
        lockout_until=frozen_clock.now + timedelta(minutes=15),
    )

    result = runner.invoke(args=["unlock-account", " Locked@Example.com"])

    assert result.exit_code == 0
    assert "locked@example.com unlocked" in result.output
    with app.app_context():
        account = db.session.get(Account, account_id)
        assert account.lockout_until is None
        assert account.failed_login_count == 0
    assert "Account Unlocked" in audit_actions(account_id)


def test_unlock_unknown_account(runner):
    result = runner.invoke(args=["unlock-account", "nobody@example.com"])

    assert result.exit_code == 0
    assert "Account not found" in result.output
