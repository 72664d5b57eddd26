"""
Outbound email: render, compose and send the two messages for an accepted form.

Runs after the HTTP response has been written. Nothing here can change what
the client saw; failures are logged and never retried.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from typing import List, Sequence, Tuple

from jinja2 import TemplateError
from markupsafe import Markup

from ..config import AuthConfig, Config, SmtpConfig
from ..pipeline.fields import create_form_data_map, find_field
from ..schemas import EmailTemplateData, SubmittedField
from .templates import render_template

logger = logging.getLogger(__name__)

CUSTOMER = "customer"
SYSTEM = "system"

# Submitted fields that address the customer email.
CUSTOMER_NAME_FIELD = "name"
CUSTOMER_EMAIL_FIELD = "email"


class EmailDispatchError(Exception):
    """Composing or sending one of the two messages failed."""

    def __init__(self, kind: str, message: str):
        super().__init__(f"Error sending {kind} email: {message}")
        self.kind = kind


# ============================================================================
# Template data
# ============================================================================

def build_template_data(fields: Sequence[SubmittedField], remote_ip: str,
                        x_forwarded_for: str, user_agent: str) -> EmailTemplateData:
    form_data = create_form_data_map(fields)
    name = find_field(CUSTOMER_NAME_FIELD, fields)
    email = find_field(CUSTOMER_EMAIL_FIELD, fields)
    return EmailTemplateData(
        form_data=form_data,
        customer_name=name.value if name else "",
        customer_email=email.value if email else "",
        user_agent=user_agent,
        remote_ip=remote_ip,
        x_forwarded_for=x_forwarded_for,
    )


# ============================================================================
# Composition
# ============================================================================

def _plain(value: str) -> str:
    """Undo the sanitizer's HTML escaping for use in a mail header."""
    return Markup(value).unescape()


def compose_message(*, sender: Tuple[str, str], recipient: Tuple[str, str], reply_to: str,
                    subject: str, text_body: str, html_body: str, domain: str) -> EmailMessage:
    """Build a multipart/alternative message with a text and an HTML part."""
    msg = EmailMessage()
    msg["Date"] = formatdate(localtime=True)
    msg["From"] = formataddr(sender)
    msg["To"] = formataddr(recipient)
    if reply_to:
        msg["Reply-To"] = reply_to
    msg["Subject"] = subject
    msg["Message-ID"] = make_msgid(domain=domain or None)
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")
    return msg


def customer_recipient(data: EmailTemplateData) -> Tuple[str, str]:
    return _plain(data.customer_name), _plain(data.customer_email)


def new_customer_email(config: Config, data: EmailTemplateData) -> EmailMessage:
    templates = config.templates
    addresses = config.addresses
    return compose_message(
        sender=(addresses.customer_from_name, addresses.customer_from),
        recipient=customer_recipient(data),
        reply_to=addresses.customer_reply_to,
        subject=config.subjects.customer,
        text_body=render_template(templates.customer_text_path, data, html=False),
        html_body=render_template(templates.customer_html_path, data, html=True),
        domain=config.server.domain,
    )


def new_system_email(config: Config, data: EmailTemplateData) -> EmailMessage:
    templates = config.templates
    addresses = config.addresses
    return compose_message(
        sender=(addresses.system_from_name, addresses.system_from),
        recipient=(addresses.system_to_name, addresses.system_to),
        reply_to=addresses.system_reply_to,
        subject=config.subjects.system,
        text_body=render_template(templates.system_text_path, data, html=False),
        html_body=render_template(templates.system_html_path, data, html=True),
        domain=config.server.domain,
    )


# ============================================================================
# Transport
# ============================================================================

def send_message(smtp: SmtpConfig, auth: AuthConfig, msg: EmailMessage,
                 from_addr: str, to_addrs: List[str]) -> None:
    """
    Send one message. With credentials the connection uses implicit TLS and
    logs in; without them it is plain SMTP with no auth.
    """
    if auth.enabled:
        context = ssl.create_default_context()
        with smtplib.SMTP_SSL(smtp.host, smtp.port, timeout=smtp.timeout, context=context) as client:
            client.login(auth.username, auth.password)
            client.send_message(msg, from_addr=from_addr, to_addrs=to_addrs)
    else:
        with smtplib.SMTP(smtp.host, smtp.port, timeout=smtp.timeout) as client:
            client.send_message(msg, from_addr=from_addr, to_addrs=to_addrs)


def send_form_emails(config: Config, data: EmailTemplateData) -> None:
    """
    Render both messages, then send the customer one followed by the system
    one. The system message is not attempted if the customer one fails.
    """
    try:
        customer_email = new_customer_email(config, data)
    except (TemplateError, OSError, ValueError) as e:
        raise EmailDispatchError(CUSTOMER, f"could not compose message: {e}") from e
    try:
        system_email = new_system_email(config, data)
    except (TemplateError, OSError, ValueError) as e:
        raise EmailDispatchError(SYSTEM, f"could not compose message: {e}") from e

    addresses = config.addresses
    customer_to = customer_recipient(data)[1]
    try:
        send_message(config.smtp, config.auth, customer_email, addresses.customer_from, [customer_to])
    except (smtplib.SMTPException, OSError) as e:
        raise EmailDispatchError(CUSTOMER, str(e)) from e

    try:
        send_message(config.smtp, config.auth, system_email, addresses.system_from, [addresses.system_to])
    except (smtplib.SMTPException, OSError) as e:
        logger.error("System email From: %r To: %r", addresses.system_from, addresses.system_to)
        raise EmailDispatchError(SYSTEM, str(e)) from e


def dispatch_form_emails(config: Config, data: EmailTemplateData) -> bool:
    """
    Background-task entry point. Returns True once both messages are sent;
    a failure is logged as a server-side fault and reported as False.
    """
    try:
        send_form_emails(config, data)
    except EmailDispatchError:
        logger.exception("Failed to send form emails")
        return False
    logger.info("Sent customer and system emails (remote ip %s)", data.remote_ip or "-")
    return True
