import smtplib
from email.message import EmailMessage
from urllib.parse import urlsplit

from flask import current_app

from utils.errors import EmailDeliveryError, SecurityAnomaly


def send_email(to_email: str, subject: str, body: str):
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)
    timeout = current_app.config.get("SMTP_TIMEOUT_SECONDS", 10)

    if not host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(host, port, timeout=timeout) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        return False, str(exc)


def _origin(parts):
    port = parts.port or {"http": 80, "https": 443}.get(parts.scheme)
    return parts.scheme, (parts.hostname or "").lower(), port


def validate_link(url: str) -> str:
    """
    Only links that point at the configured trusted origin may be mailed out.
    Raises SecurityAnomaly otherwise.
    """
    trusted = current_app.config.get("TRUSTED_ORIGIN")
    if not trusted:
        raise SecurityAnomaly("TRUSTED_ORIGIN is not configured")

    try:
        link = urlsplit(url)
        expected = urlsplit(trusted)
        link_origin, expected_origin = _origin(link), _origin(expected)
    except ValueError as exc:
        raise SecurityAnomaly("unparseable link") from exc

    if link.scheme not in ("https", "http") or link.username or link.password:
        raise SecurityAnomaly("link scheme or userinfo rejected")
    if link.scheme == "http" and expected.scheme != "http":
        raise SecurityAnomaly("plain http link for https origin")
    if link_origin != expected_origin:
        raise SecurityAnomaly(f"link origin {link.netloc!r} is not trusted")
    return url


def deliver_2fa_code(email: str, code: str):
    minutes = current_app.config.get("OTP_TTL_SECONDS", 300) // 60
    body = (
        "Security verification\n\n"
        f"Your verification code is: {code}\n"
        f"This code expires in {minutes} minutes.\n"
    )
    ok, error = send_email(email, "Your security code", body)
    if not ok:
        current_app.logger.error("2FA email delivery failed: %s", error)
        raise EmailDeliveryError("We encountered an error sending your verification email. Please try again.")


def deliver_reset_link(email: str, url: str):
    validate_link(url)
    minutes = current_app.config.get("RESET_TOKEN_TTL_SECONDS", 3600) // 60
    body = (
        "Password reset request\n\n"
        "Use the link below to reset your password:\n"
        f"{url}\n\n"
        f"This link will expire in {minutes} minutes. If you did not ask for a reset, ignore this email.\n"
    )
    ok, error = send_email(email, "Reset your password", body)
    if not ok:
        current_app.logger.error("Reset email delivery failed: %s", error)
        raise EmailDeliveryError()
