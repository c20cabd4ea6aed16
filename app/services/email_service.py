"""
Performance Hub
Email Service — transactional notifications.

Every message is recorded as an EmailLog row (queued → sent | failed). With
no ``MAIL_SERVER`` configured nothing leaves the process: the row is marked
sent and the message is only logged, which is what development and the test
suite rely on.

Templates are plain paragraphs with ``{placeholders}``; each message goes out
as multipart/alternative with a text part and an HTML part built from the
same paragraphs. Context values are HTML-escaped in the HTML part.

Notifications triggered by another operation go through ``notify()``, which
commits its own log row and never raises into the caller.
"""

import html
import logging
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage

from flask import current_app

from app.models import db
from app.models.email_log import EmailLog

logger = logging.getLogger(__name__)

BRAND = "Performance Hub"
SMTP_TIMEOUT = 30
ALERT_COLOR = "#dc2626"
DEFAULT_COLOR = "#1e293b"


# ═══════════════════════════════════════════════════════════════
# Templates
# ═══════════════════════════════════════════════════════════════
TEMPLATES = {
    "welcome": {
        "subject": "Welcome, {name}",
        "heading": "Welcome to Performance Hub",
        "paragraphs": [
            "Hello {name},",
            "Your account has been created with the login {email}.",
            "Sign in at {login_url}",
        ],
    },
    "password_reset": {
        "subject": "Password reset request",
        "heading": "Password reset",
        "paragraphs": [
            "Hello {name},",
            "Use the link below to choose a new password. It expires in {expires_minutes} minutes.",
            "{reset_url}",
            "If you did not request this, you can ignore this email.",
        ],
    },
    "password_changed": {
        "subject": "Your password was changed",
        "heading": "Password changed",
        "paragraphs": [
            "Hello {name},",
            "The password for your account was changed on {changed_at}. "
            "Contact an administrator if this was not you.",
        ],
    },
    "account_locked": {
        "subject": "Account temporarily locked",
        "heading": "Account locked",
        "color": ALERT_COLOR,
        "paragraphs": [
            "Hello {name},",
            "Your account was locked after {attempts} failed sign-in attempts. "
            "It unlocks automatically at {locked_until}.",
        ],
    },
    "project_status_update": {
        "subject": "{project_code}: status changed to {status}",
        "heading": "Project status update",
        "paragraphs": [
            "{project_code} · {project_name}",
            "{changed_by} moved the project to {status}.",
            "{description}",
        ],
    },
    "test": {
        "subject": "Test email",
        "heading": "Test email",
        "paragraphs": ["This is a test email sent at {sent_at}. Delivery is working."],
    },
}


class _Placeholders(dict):
    """format_map() mapping that leaves unknown placeholders untouched."""

    def __missing__(self, key):
        return "{" + key + "}"


def _fill(text: str, context: dict, escape: bool) -> str:
    values = {k: html.escape(str(v)) if escape else str(v) for k, v in context.items()}
    return text.format_map(_Placeholders(values))


def render(template_name: str, context: dict) -> tuple[str, str, str] | None:
    """Return ``(subject, text_body, html_body)`` or None for an unknown template."""
    template = TEMPLATES.get(template_name)
    if template is None:
        return None
    subject = f"[{BRAND}] " + _fill(template["subject"], context, escape=False)
    paragraphs = [_fill(p, context, escape=False) for p in template["paragraphs"]]
    text_body = "\n\n".join(p for p in paragraphs if p.strip())

    html_paragraphs = "".join(
        f'<p style="color:#475569;line-height:1.6">{_fill(p, context, escape=True)}</p>'
        for p in template["paragraphs"]
        if _fill(p, context, escape=False).strip()
    )
    html_body = (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">'
        f'<div style="background:{template.get("color", DEFAULT_COLOR)};color:#fff;padding:16px 24px">'
        f'<h2 style="margin:0;font-size:18px">{html.escape(template["heading"])}</h2></div>'
        f'<div style="background:#f8fafc;padding:24px;border:1px solid #e2e8f0">{html_paragraphs}</div>'
        f'<p style="color:#94a3b8;font-size:12px;text-align:center">{BRAND} | automated notification</p>'
        "</div>"
    )
    return subject, text_body, html_body


# ═══════════════════════════════════════════════════════════════
# Delivery
# ═══════════════════════════════════════════════════════════════
def smtp_configured() -> bool:
    return bool(current_app.config.get("MAIL_SERVER"))


def _deliver(to_email: str, to_name: str | None, subject: str, text_body: str, html_body: str):
    cfg = current_app.config
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = cfg.get("MAIL_DEFAULT_SENDER") or f"noreply@{cfg['MAIL_SERVER']}"
    msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")

    with smtplib.SMTP(cfg["MAIL_SERVER"], cfg.get("MAIL_PORT", 587), timeout=SMTP_TIMEOUT) as smtp:
        if cfg.get("MAIL_USE_TLS", True):
            smtp.starttls()
        if cfg.get("MAIL_USERNAME") and cfg.get("MAIL_PASSWORD"):
            smtp.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"])
        smtp.send_message(msg)


def send_email(*, to_email: str, template_name: str, context: dict,
               to_name: str | None = None) -> EmailLog | None:
    """Render, record and (when SMTP is configured) deliver one message.

    The EmailLog row is added to the session; the caller commits.
    """
    rendered = render(template_name, context)
    if rendered is None:
        logger.warning("Unknown email template '%s'", template_name)
        return None
    subject, text_body, html_body = rendered

    log = EmailLog(recipient_email=to_email, recipient_name=to_name, subject=subject,
                   template_name=template_name, status="queued")
    db.session.add(log)
    db.session.flush()

    if not smtp_configured():
        log.status = "sent"
        log.sent_at = datetime.now(timezone.utc)
        logger.info("Email '%s' to %s recorded (SMTP not configured)", template_name, to_email)
        return log

    try:
        _deliver(to_email, to_name, subject, text_body, html_body)
    except (smtplib.SMTPException, OSError) as exc:
        log.status = "failed"
        log.error_message = str(exc)[:1000]
        logger.error("Email '%s' to %s failed: %s", template_name, to_email, exc)
    else:
        log.status = "sent"
        log.sent_at = datetime.now(timezone.utc)
        logger.info("Email '%s' sent to %s", template_name, to_email)
    return log


def notify(*, to_email: str, template_name: str, context: dict,
           to_name: str | None = None) -> EmailLog | None:
    """Best-effort send after the triggering change is committed."""
    try:
        log = send_email(to_email=to_email, to_name=to_name,
                         template_name=template_name, context=context)
        db.session.commit()
        return log
    except Exception:
        db.session.rollback()
        logger.exception("Email '%s' to %s could not be recorded", template_name, to_email)
        return None


# ═══════════════════════════════════════════════════════════════
# Notifications
# ═══════════════════════════════════════════════════════════════
def _stamp(moment: datetime | None = None) -> str:
    return (moment or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M UTC")


def _frontend_url(path: str) -> str:
    return (current_app.config.get("FRONTEND_URL") or "").rstrip("/") + path


def send_welcome(user) -> EmailLog | None:
    return notify(
        to_email=user.email, to_name=user.display_name, template_name="welcome",
        context={"name": user.display_name, "email": user.email, "login_url": _frontend_url("/login")},
    )


def send_password_reset(user, token: str, expires_minutes: int) -> EmailLog | None:
    return notify(
        to_email=user.email, to_name=user.display_name, template_name="password_reset",
        context={
            "name": user.display_name,
            "reset_url": _frontend_url(f"/reset-password?token={token}"),
            "expires_minutes": expires_minutes,
        },
    )


def send_password_changed(user) -> EmailLog | None:
    return notify(
        to_email=user.email, to_name=user.display_name, template_name="password_changed",
        context={"name": user.display_name, "changed_at": _stamp()},
    )


def send_account_locked(user, attempts: int) -> EmailLog | None:
    return notify(
        to_email=user.email, to_name=user.display_name, template_name="account_locked",
        context={
            "name": user.display_name,
            "attempts": attempts,
            "locked_until": _stamp(user.locked_until) if user.locked_until else "",
        },
    )


def send_project_status_update(project, status_entry, actor) -> EmailLog | None:
    owner = project.owner
    if owner is None:
        return None
    return notify(
        to_email=owner.email, to_name=owner.display_name, template_name="project_status_update",
        context={
            "project_code": project.code,
            "project_name": project.name,
            "status": status_entry.status,
            "description": status_entry.description or "",
            "changed_by": actor.display_name if actor else "System",
        },
    )


def send_test(to_email: str) -> EmailLog | None:
    """Explicit test send; unlike notify() a database failure propagates."""
    log = send_email(to_email=to_email, template_name="test", context={"sent_at": _stamp()})
    db.session.commit()
    return log


def list_email_logs(recipient: str | None = None, limit: int = 50) -> list[EmailLog]:
    q = EmailLog.query
    if recipient:
        q = q.filter(EmailLog.recipient_email == recipient)
    return q.order_by(EmailLog.created_at.desc(), EmailLog.id.desc()).limit(limit).all()
