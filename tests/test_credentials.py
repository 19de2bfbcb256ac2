from datetime import timedelta

from models import db
from models.account import Account
from security.credentials import GateOutcome, lockout_remaining_minutes, register_failure, verify_credentials
from tests.conftest import STRONG_PASSWORD


def _account(account_id):
    return db.session.get(Account, account_id)


def test_correct_password_is_accepted_without_resetting_counter(ctx, make_account):
    account_id = make_account(failed_login_count=2)

    result = verify_credentials("member@example.com", STRONG_PASSWORD)

    assert result.outcome == GateOutcome.ACCEPTED
    assert result.account_id == account_id
    assert _account(account_id).failed_login_count == 2


def test_email_is_normalized(ctx, make_account):
    make_account()

    result = verify_credentials("  Member@Example.COM ", STRONG_PASSWORD)

    assert result.outcome == GateOutcome.ACCEPTED


def test_unknown_email_looks_like_wrong_password(ctx, make_account, audit_actions):
    make_account()

    unknown = verify_credentials("nobody@example.com", STRONG_PASSWORD)
    wrong = verify_credentials("member@example.com", "Wrong$Horse9Battery")

    assert unknown == wrong
    assert unknown.outcome == GateOutcome.REJECTED
    assert unknown.account_id is None
    assert "Failed Login - Unknown Email" in audit_actions()


def test_third_failure_locks_for_fifteen_minutes(ctx, frozen_clock, make_account, audit_actions):
    account_id = make_account()

    for _ in range(3):
        result = verify_credentials("member@example.com", "Wrong$Horse9Battery")
        assert result.outcome == GateOutcome.REJECTED

    account = _account(account_id)
    assert account.lockout_until == frozen_clock.now + timedelta(minutes=15)
    assert account.failed_login_count == 0
    assert audit_actions(account_id) == ["Failed Login", "Failed Login", "Account Locked"]

    locked = verify_credentials("member@example.com", "Wrong$Horse9Battery")
    assert locked.outcome == GateOutcome.LOCKED
    assert locked.remaining_minutes == 15


def test_correct_password_during_lockout_is_refused(ctx, frozen_clock, make_account):
    make_account(lockout_until=frozen_clock.now + timedelta(minutes=10))

    result = verify_credentials("member@example.com", STRONG_PASSWORD)

    assert result.outcome == GateOutcome.LOCKED
    assert result.remaining_minutes == 10


def test_lockout_lifts_once_the_window_passes(ctx, frozen_clock, make_account):
    make_account(lockout_until=frozen_clock.now + timedelta(minutes=15))

    frozen_clock.advance(minutes=15, seconds=1)

    assert verify_credentials("member@example.com", STRONG_PASSWORD).outcome == GateOutcome.ACCEPTED


def test_failures_during_lockout_do_not_extend_it(ctx, frozen_clock, make_account):
    until = frozen_clock.now + timedelta(minutes=3)
    account_id = make_account(lockout_until=until)

    assert register_failure(account_id) is False

    account = _account(account_id)
    assert account.lockout_until == until
    assert account.failed_login_count == 0


def test_remaining_minutes_rounds_up(ctx, frozen_clock, make_account):
    account_id = make_account(lockout_until=frozen_clock.now + timedelta(minutes=4, seconds=1))
    account = _account(account_id)

    assert lockout_remaining_minutes(account) == 5

    frozen_clock.advance(minutes=4, seconds=59)
    assert lockout_remaining_minutes(account) == 0
