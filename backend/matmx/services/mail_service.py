# Overview: Outbound email (quote summaries) over SMTP.

from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app

from ..errors import InternalError
from ..money import to_money_str


def build_quote_summary(quote, items) -> str:
    """Plain-text body: id, rep, total and one line per item."""
    rep_name = quote.rep.name if quote.rep else f"user {quote.rep_id}"
    lines = [
        f"Quote #{quote.id}",
        f"Rep: {rep_name}",
        f"Total: {to_money_str(quote.total)} {quote.currency}",
    ]
    if quote.valid_until:
        lines.append(f"Valid until: {quote.valid_until.isoformat()}")
    if quote.customer_note:
        lines.extend(["", quote.customer_note])
    lines.extend(["", "Items:"])
    for item in items:
        product_name = item.product.name if item.product else f"Product {item.product_id}"
        lines.append(
            f"- {product_name}: {item.quantity} x {to_money_str(item.unit_price)}"
            f" = {to_money_str(item.total_price)}"
        )
    return "\n".join(lines) + "\n"


def _build_message(*, subject: str, body: str, recipient: str) -> MIMEMultipart:
    config = current_app.config
    msg = MIMEMultipart('alternative')
    msg['Subject'] = subject
    msg['From'] = config["MAIL_DEFAULT_SENDER"]
    msg['To'] = recipient
    msg.attach(MIMEText(body, 'plain'))
    return msg


def send_email(*, subject: str, body: str, recipient: str) -> None:
    """
    Send one plain-text email. Raises InternalError if SMTP fails.

    With MAIL_SUPPRESS_SEND the message is built and logged but not sent.
    """
    config = current_app.config
    msg = _build_message(subject=subject, body=body, recipient=recipient)

    if config.get("MAIL_SUPPRESS_SEND"):
        current_app.logger.info("Email suppressed (MAIL_SUPPRESS_SEND): %r to %s", subject, recipient)
        return

    try:
        with smtplib.SMTP(config["MAIL_SERVER"], config["MAIL_PORT"], timeout=30) as server:
            if config.get("MAIL_USE_TLS"):
                server.starttls()
            if config.get("MAIL_USERNAME"):
                server.login(config["MAIL_USERNAME"], config.get("MAIL_PASSWORD") or "")
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        current_app.logger.error("Failed to send email %r to %s: %s", subject, recipient, exc)
        raise InternalError("Failed to send email") from exc

    current_app.logger.info("Email %r sent to %s", subject, recipient)


def send_quote_email(*, quote, items, recipient: str) -> None:
    send_email(
        subject=f"Quote #{quote.id}",
        body=build_quote_summary(quote, items),
        recipient=recipient,
    )
