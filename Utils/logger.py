import os
import logging
from logging.handlers import TimedRotatingFileHandler, SMTPHandler

from Utils.config import get_env, get_bool


LOG_FORMAT = "%(asctime)s [%(levelname)s] in %(module)s: %(message)s"
ACCESS_FORMAT = "%(asctime)s - %(message)s"


def _rotating(path, level, formatter, backup_count):
    handler = TimedRotatingFileHandler(
        path, when="midnight", interval=1, backupCount=backup_count,
        encoding="utf-8", delay=True
    )
    handler.suffix = "%Y-%m-%d"
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def _console(formatter):
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.setLevel(logging.INFO)
    return handler


# ==================================================
# LOGGING SETUP
# ==================================================
def setup_logging(app):
    """Configure logging for the Flask app."""
    # Prevent duplicate log handlers when Flask auto-reloads
    if getattr(app, "_logging_configured", False):
        return app.logger
    app._logging_configured = True

    log_dir = app.config.get("LOG_DIR") or "logs"
    os.makedirs(log_dir, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    # -------------------------
    # APP LOGGER
    # -------------------------
    app_logger = app.logger
    app_logger.setLevel(logging.INFO)
    app_logger.addHandler(_rotating(os.path.join(log_dir, "app.log"), logging.INFO, formatter, 14))
    app_logger.addHandler(_rotating(os.path.join(log_dir, "error.log"), logging.ERROR, formatter, 30))
    app_logger.addHandler(_console(formatter))

    # -------------------------
    # ORDER LIFECYCLE LOGGER
    # -------------------------
    # Checkout, settlement, refunds and failed notifications all land here
    orders_logger = logging.getLogger("orders")
    orders_logger.setLevel(logging.INFO)
    orders_logger.handlers.clear()
    orders_logger.addHandler(_rotating(os.path.join(log_dir, "orders.log"), logging.INFO, formatter, 90))
    # Mirror to console for platform logs
    orders_logger.addHandler(_console(formatter))

    # -------------------------
    # ACCESS LOGGER
    # -------------------------
    access_logger = logging.getLogger("access")
    access_logger.setLevel(logging.INFO)
    access_logger.handlers.clear()
    access_logger.addHandler(_rotating(os.path.join(log_dir, "access.log"), logging.INFO,
                                       logging.Formatter(ACCESS_FORMAT), 7))
    access_logger.addHandler(_console(logging.Formatter(ACCESS_FORMAT)))

    # -------------------------
    # EMAIL ALERTS (OPT-IN)
    # -------------------------
    if get_bool("ENABLE_SMTP_ALERTS") and not app.debug:
        recipients = [addr.strip() for addr in get_env("SMTP_TO").split(",") if addr.strip()]
        if recipients:
            mail_handler = SMTPHandler(
                mailhost=(get_env("SMTP_HOST", "smtp.gmail.com"), int(get_env("SMTP_PORT", "587") or 587)),
                fromaddr=get_env("SMTP_FROM") or get_env("EMAIL_USER"),
                toaddrs=recipients,
                subject=get_env("SMTP_SUBJECT", "🚨 Storefront Critical Error"),
                credentials=(get_env("EMAIL_USER"), get_env("EMAIL_PASS")),
                secure=()
            )
            mail_handler.setLevel(logging.ERROR)
            mail_handler.setFormatter(formatter)
            app_logger.addHandler(mail_handler)
            orders_logger.addHandler(mail_handler)
        else:
            app_logger.warning("SMTP alerts enabled but SMTP_TO is empty; alerts disabled")

    register_access_log_hook(app, access_logger)

    app_logger.info("🚀 Logging initialized successfully.")
    return app_logger


# ==================================================
# ACCESS LOGGING
# ==================================================
def register_access_log_hook(app, access_logger):
    """Logs each incoming request (IP, method, URL) into access.log."""
    from flask import request

    @app.before_request
    def log_request_info():
        access_logger.info(f"{request.remote_addr} {request.method} {request.url}")
