# tasks/email_sender.py
"""
Welcome-email trigger for new newsletter subscribers

Runs on Celery. The sequence for one subscriber document is:
- skip documents without an email or already flagged ``welcomeSent``
- load the stored Gmail refresh token and trade it for an access token
- render and send the welcome email over SMTP with XOAUTH2
- flag the document so a second trigger does not send again

Every failure is logged and ends the run; there is no retry queue.
"""

import asyncio
import base64
import uuid
from dataclasses import dataclass, asdict
from email.message import EmailMessage
from email.utils import formataddr, formatdate
from typing import Any, Callable, Dict, Optional

import aiosmtplib
from celery import Celery
from celery.signals import task_prerun, task_postrun, task_failure
from celery.utils.log import get_task_logger
from jinja2.exceptions import TemplateError
from kombu import Queue

from core.gmail_oauth import GmailOAuthClient, OAuthError, build_oauth_client
from core.models import normalize_email
from core.template_engine import SecureTemplateEngine, get_template_engine
from services.content_store import SiteStore, SubscriberStore

logger = get_task_logger(__name__)

WELCOME_TEMPLATE = 'welcome.html'

celery_app = Celery('site_tasks')
celery_app.conf.update({
    'broker_url': 'redis://localhost:6379/2',
    'result_backend': 'redis://localhost:6379/2',

    'task_serializer': 'json',
    'result_serializer': 'json',
    'accept_content': ['json'],

    'timezone': 'UTC',
    'enable_utc': True,

    'task_acks_late': True,
    'task_reject_on_worker_lost': True,
    'worker_prefetch_multiplier': 1,

    'result_expires': 3600,

    'task_routes': {
        'tasks.email_sender.send_welcome_email': {'queue': 'email_sending'},
    },
    'task_default_queue': 'default',
    'task_queues': (
        Queue('email_sending', routing_key='email_sending'),
        Queue('default', routing_key='default'),
    ),

    'worker_hijack_root_logger': False,
    'worker_log_color': False,
})


class EmailSenderError(Exception):
    """Base exception for email sending operations"""
    pass


class SMTPConfigurationError(EmailSenderError):
    """SMTP configuration related errors"""
    pass


class TemplateRenderingError(EmailSenderError):
    """Template rendering related errors"""
    pass


@dataclass
class WelcomeResult:
    """Outcome of one trigger run"""
    status: str  # 'sent', 'skipped', 'failed'
    reason: Optional[str] = None
    email: Optional[str] = None


def xoauth2_string(user: str, access_token: str) -> str:
    """SASL XOAUTH2 initial response, base64 encoded"""
    raw = f"user={user}\x01auth=Bearer {access_token}\x01\x01"
    return base64.b64encode(raw.encode('utf-8')).decode('ascii')


async def _async_send_smtp(msg: EmailMessage, smtp_config: Dict[str, Any]) -> None:
    """
    Send one message over STARTTLS, authenticating with XOAUTH2
    """
    smtp = aiosmtplib.SMTP(
        hostname=smtp_config['host'],
        port=smtp_config['port'],
        timeout=smtp_config.get('timeout', 60),
        start_tls=True,
    )
    await smtp.connect()
    try:
        await smtp.ehlo()
        response = await smtp.execute_command(
            b'AUTH', b'XOAUTH2',
            xoauth2_string(smtp_config['user'], smtp_config['access_token']).encode('ascii'),
        )
        if response.code != 235:
            raise aiosmtplib.SMTPAuthenticationError(response.code, response.message)
        await smtp.send_message(msg)
    finally:
        try:
            await smtp.quit()
        except aiosmtplib.SMTPException as e:
            logger.debug(f"SMTP quit failed: {e}")


class WelcomeEmailSender:
    """
    Runs the welcome-email sequence for a subscriber document snapshot
    """

    def __init__(self,
                 subscribers: SubscriberStore,
                 site: SiteStore,
                 oauth_client: Optional[GmailOAuthClient],
                 sender: Optional[str],
                 site_name: str,
                 site_url: str,
                 smtp_host: str = 'smtp.gmail.com',
                 smtp_port: int = 587,
                 smtp_timeout: int = 60,
                 template_engine: Optional[SecureTemplateEngine] = None,
                 transport: Optional[Callable[[EmailMessage, Dict[str, Any]], None]] = None):
        self.subscribers = subscribers
        self.site = site
        self.oauth_client = oauth_client
        self.sender = sender
        self.site_name = site_name
        self.site_url = site_url
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_timeout = smtp_timeout
        self.template_engine = template_engine or get_template_engine()
        self.transport = transport or (lambda msg, cfg: asyncio.run(_async_send_smtp(msg, cfg)))

    def handle_created(self, snapshot) -> WelcomeResult:
        if snapshot is None or not snapshot.exists:
            logger.warning("Subscriber document not found, nothing to send")
            return WelcomeResult('skipped', 'missing_document')

        data = snapshot.to_dict() or {}
        email = normalize_email(data.get('email'))
        if not email:
            return WelcomeResult('skipped', 'no_email')

        if data.get('welcomeSent') is True:
            logger.info(f"Welcome email already sent to {email}")
            return WelcomeResult('skipped', 'already_sent', email)

        if not self.sender:
            logger.error("Missing GMAIL_SENDER param.")
            return WelcomeResult('failed', 'missing_sender', email)

        if self.oauth_client is None:
            logger.error("Missing GMAIL_CLIENT_ID / GMAIL_CLIENT_SECRET.")
            return WelcomeResult('failed', 'missing_oauth_client', email)

        try:
            refresh_token = self.site.get_refresh_token()
        except ValueError as e:
            logger.error(f"Stored refresh token unusable: {e}")
            refresh_token = None
        except Exception as e:
            logger.error(f"Failed to load refresh token: {e}", exc_info=True)
            return WelcomeResult('failed', 'token_load_failed', email)
        if not refresh_token:
            logger.error("No refresh token saved. Visit /oauthStart first.")
            return WelcomeResult('failed', 'no_refresh_token', email)

        try:
            access_token = self.oauth_client.get_access_token(refresh_token)
        except OAuthError as e:
            logger.error(f"Failed to get access token from refresh token: {e}")
            return WelcomeResult('failed', 'no_access_token', email)
        if not access_token:
            logger.error("Failed to get access token from refresh token.")
            return WelcomeResult('failed', 'no_access_token', email)

        try:
            message = self.build_message(email)
            self.transport(message, {
                'host': self.smtp_host,
                'port': self.smtp_port,
                'timeout': self.smtp_timeout,
                'user': self.sender,
                'access_token': access_token,
            })
            self.subscribers.mark_welcome_sent(snapshot.reference)
        except Exception as e:
            logger.error(f"Failed to send email to {email}: {e}", exc_info=True)
            return WelcomeResult('failed', 'send_failed', email)

        logger.info(f"Welcome email sent: {email}")
        return WelcomeResult('sent', None, email)

    def build_message(self, email: str) -> EmailMessage:
        subject = f"Welcome to {self.site_name} 🌿"
        try:
            rendered = self.template_engine.render_email(
                WELCOME_TEMPLATE,
                subject,
                {'email': email, 'site_url': self.site_url, 'site_name': self.site_name},
            )
        except TemplateError as e:
            raise TemplateRenderingError(str(e)) from e

        domain = self.sender.rsplit('@', 1)[-1]
        msg = EmailMessage()
        msg['Subject'] = rendered.subject
        msg['From'] = formataddr((self.site_name, self.sender))
        msg['To'] = email
        msg['Date'] = formatdate(localtime=True)
        msg['Message-ID'] = f"<{uuid.uuid4()}@{domain}>"
        msg.set_content(rendered.text)
        msg.add_alternative(rendered.html, subtype='html')
        return msg


def build_welcome_sender(app, db=None, transport=None) -> WelcomeEmailSender:
    """Sender wired from Flask config and the app's Firestore client"""
    db = db if db is not None else app.firestore
    config = app.config
    try:
        oauth_client = build_oauth_client(config)
    except OAuthError as e:
        logger.error(str(e))
        oauth_client = None

    return WelcomeEmailSender(
        subscribers=SubscriberStore(db),
        site=SiteStore(db, getattr(app, 'security_manager', None)),
        oauth_client=oauth_client,
        sender=config.get('GMAIL_SENDER'),
        site_name=config.get('SITE_NAME', 'BLOOM.INFIVE'),
        site_url=config.get('SITE_URL') or 'https://bloominfive.blog',
        smtp_host=config.get('SMTP_HOST', 'smtp.gmail.com'),
        smtp_port=config.get('SMTP_PORT', 587),
        smtp_timeout=config.get('SMTP_TIMEOUT', 60),
        transport=transport,
    )


@celery_app.task(bind=True, max_retries=0, name='tasks.email_sender.send_welcome_email')
def send_welcome_email(self, subscriber_id: str) -> Dict[str, Any]:
    """
    Subscriber-created trigger

    Args:
        subscriber_id: Document id under ``subscribers``
    """
    flask_app = getattr(celery_app, 'flask_app', None)
    if flask_app is None:
        raise EmailSenderError("Celery app is not bound to a Flask application")

    with flask_app.app_context():
        sender = build_welcome_sender(flask_app)
        snapshot = sender.subscribers.snapshot(subscriber_id)
        result = sender.handle_created(snapshot)
    return asdict(result)


@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, **kwargs):
    logger.info(f"Task {task.name} [{task_id}] starting")


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, state=None, **kwargs):
    logger.info(f"Task {task.name} [{task_id}] completed with state: {state}")


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, **kwargs):
    logger.error(f"Task {sender.name} [{task_id}] failed: {exception}")
