import smtplib
import logging
import threading
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from mongoengine.errors import OperationError, ValidationError as DocumentValidationError
from pymongo.errors import PyMongoError

from Models.emailConfigModel import EmailConfig
from Utils.appError import NotConfiguredError, NotificationError
from Utils.config import get_env, get_bool

logger = logging.getLogger(__name__)


def env_email_settings() -> dict:
    return {
        'email_user': get_env("EMAIL_USER"),
        'email_pass': get_env("EMAIL_PASS"),
        'seller_email': get_env("SELLER_EMAIL"),
        'smtp_host': get_env("SMTP_HOST", "smtp.gmail.com"),
        'smtp_port': int(get_env("SMTP_PORT", "587") or 587),
        'use_tls': get_bool("SMTP_USE_TLS", True),
    }


def load_email_settings():
    """Returns (settings, cacheable).

    Stored config wins. With none stored, the environment values are seeded
    into the database. A database failure falls back to the environment but
    is not cached.
    """
    try:
        stored = EmailConfig.objects.first()
        if stored:
            return stored.to_settings(), True
        settings = env_email_settings()
        if settings['email_user'] and settings['email_pass'] and settings['seller_email']:
            try:
                EmailConfig(**settings).save()
            except DocumentValidationError as e:
                logger.warning(f"Environment email settings not stored: {e}")
        return settings, True
    except (OperationError, PyMongoError) as e:
        logger.error(f"EmailConfig lookup failed, using environment: {e}")
        return env_email_settings(), False


class EmailSettingsCache:
    """Process-wide email settings with explicit invalidation."""

    def __init__(self, loader=load_email_settings):
        self._loader = loader
        self._settings = None
        self._lock = threading.Lock()

    def get(self) -> dict:
        with self._lock:
            if self._settings is None:
                settings, cacheable = self._loader()
                if not cacheable:
                    return dict(settings)
                self._settings = settings
            return dict(self._settings)

    def invalidate(self):
        with self._lock:
            self._settings = None


email_settings = EmailSettingsCache()


class SmtpMailer:
    """Mail transport. ``send`` raises, it never retries."""

    def __init__(self, settings: EmailSettingsCache):
        self.settings = settings

    def send(self, to, subject, body, html=None):
        cfg = self.settings.get()
        sender = cfg.get('email_user')
        if not sender:
            raise NotConfiguredError("Email sender not configured")
        if not to:
            raise NotificationError("Missing recipient")

        msg = MIMEMultipart("alternative")
        msg["From"] = sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))
        if html:
            msg.attach(MIMEText(html, "html"))

        try:
            with smtplib.SMTP(cfg.get('smtp_host') or "localhost", int(cfg.get('smtp_port') or 25), timeout=15) as smtp:
                if cfg.get('use_tls'):
                    smtp.starttls()
                if cfg.get('email_pass'):
                    smtp.login(sender, cfg['email_pass'])
                smtp.sendmail(sender, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Email to {to} failed: {e}")
        logger.info(f"📤 Email sent to {to}: {subject}")


def get_mailer():
    return SmtpMailer(email_settings)
