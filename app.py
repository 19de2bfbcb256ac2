import click
from flask import Flask, g, request
from flask_migrate import Migrate
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config
from models import atomic, db
from models.account import Account
from routes import auth_bp, health_bp
from security.challenge_store import init_challenge_store
from security.csrf import require_csrf
from security.session import cleanup_expired_sessions
from utils.audit import log_event
from utils.auth_context import load_current_member
from utils.errors import register_error_handlers
from utils.logging import configure_logging
from utils.validation import normalize_email

CSRF_EXEMPT_PATHS = {
    "/auth/login",
    "/auth/register",
    "/auth/verify-2fa",
    "/auth/forgot-password",
    "/auth/reset-password",
    "/health",
}


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app)
    register_error_handlers(app)

    # Only trust X-Forwarded-For for the configured number of proxy hops
    if app.config.get("PROXY_FIX_X_FOR", 0) > 0:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=app.config["PROXY_FIX_X_FOR"])

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Pending second-factor challenges (ephemeral, per process)
    init_challenge_store(app)

    @app.before_request
    def _load_member():
        if request.path == "/health":
            return None
        load_current_member()

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Exempt auth bootstrap endpoints
            if request.path in CSRF_EXEMPT_PATHS:
                return None

            # Only enforce CSRF if the member is already authenticated (cookie session)
            if getattr(g, "member", None) is not None:
                require_csrf()
        return None

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        resp.headers["Cache-Control"] = "no-store"
        return resp

    register_cli(app)

    app.logger.info("Member authentication service ready")
    return app


def register_cli(app):
    @app.cli.command("cleanup-sessions")
    def cleanup_sessions():
        """Deactivate every session whose idle timeout has passed."""
        count = cleanup_expired_sessions()
        click.echo(f"Deactivated {count} expired session(s)")

    @app.cli.command("unlock-account")
    @click.argument("email")
    def unlock_account(email):
        """Clear the lockout and failed-login counter of an account."""
        with atomic():
            account = Account.query.filter_by(email=normalize_email(email)).with_for_update().first()
            if account is None:
                click.echo("Account not found")
                return
            account.lockout_until = None
            account.failed_login_count = 0
            log_event("Account Unlocked", account.id, "Unlocked by operator", commit=False)
        click.echo(f"{account.email} unlocked")


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
