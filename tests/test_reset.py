from datetime import timedelta

import pytest

from models import db
from models.account import Account
from security.credentials import GateOutcome, verify_credentials
from security.password import verify_password
from security.password_policy import PasswordOutcome, change_password
from security.reset import build_reset_link, redeem_reset, request_reset
from security.session import create_session, validate_session
from security.tokens import hash_token
from tests.conftest import OTHER_PASSWORD, STRONG_PASSWORD, THIRD_PASSWORD
from utils.errors import EmailDeliveryError

NEW_PASSWORD = "Brand!New2Secret"


def test_reset_link_points_at_trusted_origin(ctx):
    assert build_reset_link("abc") == "https://portal.example.com/reset-password?token=abc"


def test_request_for_known_email_sends_a_link(ctx, frozen_clock, make_account, outbox, audit_actions):
    account_id = make_account()

    assert request_reset(" Member@Example.com ") is None

    assert len(outbox) == 1
    message = outbox.messages[0]
    assert message["to"] == "member@example.com"
    assert "https://portal.example.com/reset-password?token=" in message["body"]

    token = outbox.last_reset_token()
    account = db.session.get(Account, account_id)
    assert account.reset_token_hash == hash_token(token)
    assert account.reset_token_expires_at == frozen_clock.now + timedelta(hours=1)
    assert "Reset Link Sent" in audit_actions(account_id)


def test_request_for_unknown_email_sends_nothing(ctx, make_account, outbox, audit_actions):
    make_account()

    assert request_reset("nobody@example.com") is None

    assert len(outbox) == 0
    assert "Reset Requested - Unknown Email" in audit_actions()


def test_delivery_failure_is_reported(ctx, make_account, outbox):
    make_account()
    outbox.fail = True

    with pytest.raises(EmailDeliveryError):
        request_reset("member@example.com")


def test_redeem_sets_password_and_consumes_token(ctx, make_account, outbox, audit_actions):
    account_id = make_account()
    request_reset("member@example.com")
    token = outbox.last_reset_token()

    result = redeem_reset(token, NEW_PASSWORD)

    assert result.outcome == PasswordOutcome.OK
    account = db.session.get(Account, account_id)
    assert verify_password(NEW_PASSWORD, account.password_hash)
    assert account.reset_token_hash is None
    assert account.reset_token_expires_at is None
    assert "Password Reset" in audit_actions(account_id)

    assert redeem_reset(token, "Yet!Another3Secret").outcome == PasswordOutcome.INVALID_OR_EXPIRED


def test_expired_token_is_refused(ctx, frozen_clock, make_account, outbox):
    make_account()
    request_reset("member@example.com")
    token = outbox.last_reset_token()

    frozen_clock.advance(hours=1)

    assert redeem_reset(token, NEW_PASSWORD).outcome == PasswordOutcome.INVALID_OR_EXPIRED


@pytest.mark.parametrize("token", ["", "not-a-real-token"])
def test_bogus_tokens_are_refused(ctx, make_account, token):
    make_account()

    assert redeem_reset(token, NEW_PASSWORD).outcome == PasswordOutcome.INVALID_OR_EXPIRED


def test_newer_request_replaces_older_token(ctx, make_account, outbox):
    make_account()
    request_reset("member@example.com")
    first = outbox.last_reset_token()
    request_reset("member@example.com")
    second = outbox.last_reset_token()

    assert redeem_reset(first, NEW_PASSWORD).outcome == PasswordOutcome.INVALID_OR_EXPIRED
    assert redeem_reset(second, NEW_PASSWORD).outcome == PasswordOutcome.OK


def test_weak_password_keeps_the_token_usable(ctx, make_account, outbox):
    make_account()
    request_reset("member@example.com")
    token = outbox.last_reset_token()

    weak = redeem_reset(token, "weak")

    assert weak.outcome == PasswordOutcome.TOO_WEAK
    assert weak.errors
    assert redeem_reset(token, NEW_PASSWORD).outcome == PasswordOutcome.OK


def test_reset_refuses_current_and_last_two_passwords(ctx, frozen_clock, make_account, outbox):
    account_id = make_account()
    assert change_password(account_id, STRONG_PASSWORD, OTHER_PASSWORD).outcome == PasswordOutcome.OK
    frozen_clock.advance(minutes=6)
    assert change_password(account_id, OTHER_PASSWORD, THIRD_PASSWORD).outcome == PasswordOutcome.OK

    request_reset("member@example.com")
    token = outbox.last_reset_token()

    assert redeem_reset(token, THIRD_PASSWORD).outcome == PasswordOutcome.SAME_AS_CURRENT
    assert redeem_reset(token, OTHER_PASSWORD).outcome == PasswordOutcome.REUSES_HISTORY
    assert redeem_reset(token, STRONG_PASSWORD).outcome == PasswordOutcome.REUSES_HISTORY
    assert redeem_reset(token, NEW_PASSWORD).outcome == PasswordOutcome.OK


def test_reset_signs_out_every_session(ctx, make_account, outbox):
    account_id = make_account()
    raw = create_session(account_id)
    request_reset("member@example.com")

    assert redeem_reset(outbox.last_reset_token(), NEW_PASSWORD).outcome == PasswordOutcome.OK

    assert not validate_session(account_id, raw)
    assert db.session.get(Account, account_id).current_session_hash is None


def test_reset_leaves_an_active_lockout_in_place(ctx, frozen_clock, make_account, outbox):
    until = frozen_clock.now + timedelta(minutes=10)
    account_id = make_account(lockout_until=until)
    request_reset("member@example.com")

    assert redeem_reset(outbox.last_reset_token(), NEW_PASSWORD).outcome == PasswordOutcome.OK

    assert db.session.get(Account, account_id).lockout_until == until


def test_new_password_works_for_the_next_login(ctx, make_account, outbox):
    make_account()
    request_reset("member@example.com")
    redeem_reset(outbox.last_reset_token(), NEW_PASSWORD)

    assert verify_credentials("member@example.com", STRONG_PASSWORD).outcome == GateOutcome.REJECTED
    assert verify_credentials("member@example.com", NEW_PASSWORD).outcome == GateOutcome.ACCEPTED
