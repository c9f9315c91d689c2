import html as html_lib
import smtplib
import logging
from email.message import EmailMessage
from app.core.config import settings

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, body: str, html: str | None = None) -> bool:
    smtp_host = settings.SMTP_HOST
    smtp_port = settings.SMTP_PORT
    smtp_user = settings.SMTP_USER
    smtp_pass = settings.SMTP_PASSWORD

    if not smtp_host or not smtp_user or not smtp_pass:
        raise RuntimeError("SMTP not configured (SMTP_HOST / SMTP_USER / SMTP_PASSWORD)")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = f"{settings.SENDER_NAME} <{smtp_user}>"
    msg["To"] = to_email
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(smtp_host, smtp_port, timeout=10) as server:
            server.ehlo()
            if smtp_port == 587:
                server.starttls()
                server.ehlo()
            server.login(smtp_user, smtp_pass)
            server.send_message(msg)
        return True
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send email")
        raise


def send_token_reuse_alert_email(
    to_email: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> bool:
    """Tell the account owner that one of their sessions was signed out after a token replay."""
    subject = f"Security alert: a {settings.APP_NAME} session was signed out"
    origin = ", ".join(part for part in (ip_address, user_agent) if part) or "an unknown device"
    body = (
        "Hi,\n\n"
        "We noticed an already-used sign-in token being presented again, which can mean "
        "it was copied from one of your devices. To protect your account we signed out "
        "that session everywhere.\n\n"
        f"The request came from: {origin}\n\n"
        "If this wasn't you, sign in again and consider changing your password.\n\n"
        f"- {settings.SENDER_NAME}"
    )
    html = (
        "<p>Hi,</p>"
        "<p>We noticed an already-used sign-in token being presented again, which can mean "
        "it was copied from one of your devices. To protect your account we signed out "
        "that session everywhere.</p>"
        f"<p>The request came from: <strong>{html_lib.escape(origin)}</strong></p>"
        "<p>If this wasn't you, sign in again and consider changing your password.</p>"
        f"<br/><p>- {html_lib.escape(settings.SENDER_NAME)}</p>"
    )

    return send_email(to_email, subject, body, html)
