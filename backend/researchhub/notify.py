import logging
import smtplib
from email.message import EmailMessage

from . import config

logger = logging.getLogger(__name__)

EMAIL_OUTBOX: list[tuple[str, str, str]] = []


def send_email(to_email: str, subject: str, message: str):
    if config.TESTING:
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    if not config.SMTP_SERVER:
        logger.info("SMTP_SERVER not configured; skipping email %r to %s", subject, to_email)
        return
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = config.EMAIL_FROM
    msg["To"] = to_email
    msg.set_content(message)
    with smtplib.SMTP(config.SMTP_SERVER) as s:
        s.send_message(msg)


def send_verification_email(to_email: str, token: str):
    link = f"{config.FRONTEND_URL}/verify-email/{token}"
    send_email(
        to_email,
        "Verify your Research Hub account",
        "Welcome to Research Hub!\n\n"
        "Confirm your email address within 24 hours by opening the link below:\n"
        f"{link}",
    )


def send_password_reset_email(to_email: str, token: str):
    link = f"{config.FRONTEND_URL}/reset-password/{token}"
    send_email(
        to_email,
        "Reset your Research Hub password",
        "We received a request to reset your password.\n\n"
        "The link below is valid for one hour:\n"
        f"{link}",
    )
