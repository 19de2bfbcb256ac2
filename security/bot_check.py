from typing import NamedTuple

import requests
from flask import current_app

from utils.errors import BotCheckUnavailable


class BotCheckResult(NamedTuple):
    passed: bool
    score: float = 0.0


def verify_bot_token(token: str, client_ip=None) -> BotCheckResult:
    """
    Ask the verification service whether the submitted token came from a human.
    Returns a pass/fail with the service's confidence score. An unreachable or
    misbehaving service raises BotCheckUnavailable (retryable), never a pass.
    """
    if not current_app.config.get("BOT_CHECK_ENABLED", True):
        return BotCheckResult(True, 1.0)

    if not token:
        return BotCheckResult(False, 0.0)

    secret = current_app.config.get("BOT_CHECK_SECRET")
    if not secret:
        raise BotCheckUnavailable("Bot verification is not configured")

    data = {"secret": secret, "response": token}
    if client_ip:
        data["remoteip"] = client_ip

    try:
        resp = requests.post(
            current_app.config["BOT_CHECK_VERIFY_URL"],
            data=data,
            timeout=current_app.config.get("BOT_CHECK_TIMEOUT_SECONDS", 5),
        )
        resp.raise_for_status()
        payload = resp.json()
    except (requests.RequestException, ValueError) as exc:
        raise BotCheckUnavailable() from exc

    try:
        score = float(payload.get("score", 0.0))
    except (TypeError, ValueError):
        score = 0.0
    min_score = current_app.config.get("BOT_CHECK_MIN_SCORE", 0.5)
    passed = payload.get("success") is True and score >= min_score

    if not passed:
        current_app.logger.info("Bot check failed (score=%.2f, errors=%s)", score, payload.get("error-codes"))
    return BotCheckResult(passed, score)
