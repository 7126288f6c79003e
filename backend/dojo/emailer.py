# dojo/emailer.py

import logging
import os
import smtplib
import socket
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmtpSettings:
    host: str
    port: int
    username: str
    password: str
    from_name: str
    from_email: str

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_email}>"


def email_enabled() -> bool:
    return (os.getenv("EMAIL_ENABLED", "false") or "false").strip().lower() in ("1", "true", "yes", "on")


def smtp_settings() -> Optional[SmtpSettings]:
    """SMTP_* settings from the environment, or None when any required one is missing."""
    username = (os.getenv("SMTP_USERNAME") or "").strip()
    settings = dict(
        host=(os.getenv("SMTP_HOST") or "").strip(),
        username=username,
        password=(os.getenv("SMTP_PASSWORD") or "").strip(),
        from_email=(os.getenv("SMTP_FROM_EMAIL") or username).strip(),
    )
    missing = [k for k, v in settings.items() if not v]
    if missing:
        log.warning("Email skipped: missing SMTP settings %s", ", ".join(missing))
        return None

    try:
        port = int((os.getenv("SMTP_PORT") or "587").strip())
    except ValueError:
        port = 587

    from_name = (os.getenv("SMTP_FROM_NAME") or os.getenv("GYM_NAME") or "The Fort Jiu-Jitsu").strip()
    return SmtpSettings(port=port, from_name=from_name, **settings)


def build_message(sender: str, to_email: str, subject: str, body: str, reply_to: Optional[str] = None) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to_email
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.set_content(body)
    return msg


def send_email_if_configured(to_email: str, subject: str, body: str, reply_to: Optional[str] = None) -> bool:
    """
    Plain-text mail over STARTTLS.

    Never raises: returns False when email is disabled, SMTP is not
    configured, or the send fails.
    """
    if not email_enabled():
        return False

    cfg = smtp_settings()
    if cfg is None:
        return False

    msg = build_message(cfg.sender, to_email, subject, body, reply_to)
    try:
        with smtplib.SMTP(cfg.host, cfg.port, timeout=15) as server:
            server.ehlo()
            server.starttls()
            server.login(cfg.username, cfg.password)
            server.send_message(msg)
    except socket.gaierror as e:
        log.error("Email to %s failed: cannot resolve SMTP_HOST %r: %s", to_email, cfg.host, e)
        return False
    except (smtplib.SMTPException, OSError) as e:
        log.error("Email to %s failed: %s", to_email, e)
        return False

    log.info("Email sent to %s: %s", to_email, subject)
    return True
