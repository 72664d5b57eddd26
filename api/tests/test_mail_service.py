import smtplib
from pathlib import Path

import pytest

import formgateway.mail_service.service as mail_service
from formgateway.config import parse_config
from formgateway.mail_service.service import (
    CUSTOMER,
    SYSTEM,
    EmailDispatchError,
    build_template_data,
    customer_recipient,
    dispatch_form_emails,
    new_customer_email,
    new_system_email,
    send_form_emails,
)
from formgateway.mail_service.templates import render_template
from formgateway.schemas import EmailTemplateData, SubmittedField

REPO_TEMPLATES = Path(__file__).resolve().parents[2] / "templates"


class FakeSMTP:
    """Records what a transport would have done instead of connecting."""

    instances = []
    fail_for = None

    def __init__(self, host, port, timeout=None, context=None):
        self.host = host
        self.port = port
        self.context = context
        self.logins = []
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def login(self, username, password):
        self.logins.append((username, password))

    def send_message(self, msg, from_addr=None, to_addrs=None):
        if FakeSMTP.fail_for in to_addrs:
            raise smtplib.SMTPRecipientsRefused({FakeSMTP.fail_for: (550, b"no such user")})
        self.sent.append((msg, from_addr, to_addrs))


class FakeSMTPSSL(FakeSMTP):
    pass


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_for = None
    monkeypatch.setattr(mail_service.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(mail_service.smtplib, "SMTP_SSL", FakeSMTPSSL)
    return FakeSMTP


@pytest.fixture
def data():
    fields = [
        SubmittedField(name="name", value="Joe Blogs"),
        SubmittedField(name="email", value="joe@example.com"),
        SubmittedField(name="subject", value="Hello"),
        SubmittedField(name="feedback", value="Tom & Jerry"),
    ]
    return build_template_data(fields, remote_ip="192.0.2.1", x_forwarded_for="", user_agent="<b>agent</b>")


def test_build_template_data(data):
    assert data.form_data["Feedback"] == "Tom &amp; Jerry"
    assert data.remote_ip == "192.0.2.1"
    assert data.user_agent == "<b>agent</b>"


def test_customer_recipient_is_the_first_matching_field():
    fields = [
        SubmittedField(name="name", value="Joe Blogs"),
        SubmittedField(name="email", value="joe@example.com"),
        SubmittedField(name="EMAIL", value="someone-else@example.org"),
    ]
    data = build_template_data(fields, remote_ip="", x_forwarded_for="", user_agent="")

    # Templates still see the later value under the collapsed key.
    assert data.form_data["Email"] == "someone-else@example.org"
    assert customer_recipient(data) == ("Joe Blogs", "joe@example.com")


def test_customer_recipient_is_unescaped():
    fields = [SubmittedField(name="name", value="Tom & Jerry"), SubmittedField(name="email", value="tj@example.com")]
    data = build_template_data(fields, remote_ip="", x_forwarded_for="", user_agent="")
    assert data.customer_name == "Tom &amp; Jerry"
    assert customer_recipient(data) == ("Tom & Jerry", "tj@example.com")


def test_render_text_and_html(template_dir, data):
    text = render_template(str(template_dir / "customer-email-text.template"), data, html=False)
    assert text == "Dear Joe Blogs,\nYou wrote: Tom & Jerry\n"

    html = render_template(str(template_dir / "customer-email-html.template"), data, html=True)
    assert html == "<p>Dear Joe Blogs</p><p>Tom &amp; Jerry</p>\n"

    html = render_template(str(template_dir / "system-email-html.template"), data, html=True)
    assert html == "<p>Hello</p><p>&lt;b&gt;agent&lt;/b&gt;</p>\n"


def test_templates_render_from_configured_paths(config_data, data, template_dir):
    (template_dir / "customer").mkdir()
    (template_dir / "customer" / "plain.txt").write_text("Hi {{ form_data.Name }}\n", encoding="utf-8")
    config_data["Templates"]["CustomerText"] = "customer/plain.txt"
    config = parse_config(config_data, environ={})

    assert config.templates.customer_text_path == str(template_dir / "customer" / "plain.txt")
    msg = new_customer_email(config, data)
    assert msg.get_body(preferencelist=("plain",)).get_content() == "Hi Joe Blogs\n"


def test_customer_email(config, data):
    msg = new_customer_email(config, data)

    assert msg["From"] == "Localhost Contact Us <do-not-reply@localhost>"
    assert msg["To"] == "Joe Blogs <joe@example.com>"
    assert msg["Reply-To"] == "do-not-reply@localhost"
    assert msg["Subject"] == "Thank you for contacting localhost!"
    assert msg["Message-ID"].endswith("@localhost>")
    assert msg["Date"]

    assert msg.get_content_type() == "multipart/alternative"
    parts = list(msg.iter_parts())
    assert [p.get_content_type() for p in parts] == ["text/plain", "text/html"]
    assert "You wrote: Tom & Jerry" in parts[0].get_content()
    assert "Tom &amp; Jerry" in parts[1].get_content()


def test_system_email(config, data):
    msg = new_system_email(config, data)

    assert msg["To"] == "Localhost Contact Us Form <to@localhost>"
    assert msg["Subject"] == "Localhost Contact Us Form Message:"
    text = msg.get_body(preferencelist=("plain",)).get_content()
    assert "From Joe Blogs <joe@example.com> at 192.0.2.1" in text


def test_send_without_auth_uses_plain_smtp(config, data, fake_smtp):
    send_form_emails(config, data)

    assert len(fake_smtp.instances) == 2
    customer, system = fake_smtp.instances
    assert type(customer) is FakeSMTP
    assert (customer.host, customer.port) == ("smtp.localhost", 25)
    assert customer.logins == []
    assert customer.sent[0][1:] == ("do-not-reply@localhost", ["joe@example.com"])
    assert system.sent[0][1:] == ("do-not-reply@localhost", ["to@localhost"])


def test_send_with_auth_uses_tls_and_logs_in(config_data, data, fake_smtp):
    config_data["Auth"] = {"Username": "user@localhost", "Password": "secret"}
    config = parse_config(config_data, environ={})

    send_form_emails(config, data)

    assert all(type(s) is FakeSMTPSSL for s in fake_smtp.instances)
    assert fake_smtp.instances[0].context is not None
    assert fake_smtp.instances[0].logins == [("user@localhost", "secret")]


def test_customer_failure_stops_system_send(config, data, fake_smtp):
    fake_smtp.fail_for = "joe@example.com"

    with pytest.raises(EmailDispatchError) as excinfo:
        send_form_emails(config, data)

    assert excinfo.value.kind == CUSTOMER
    assert isinstance(excinfo.value.__cause__, smtplib.SMTPException)
    assert len(fake_smtp.instances) == 1


def test_system_failure(config, data, fake_smtp):
    fake_smtp.fail_for = "to@localhost"

    with pytest.raises(EmailDispatchError) as excinfo:
        send_form_emails(config, data)

    assert excinfo.value.kind == SYSTEM
    assert len(fake_smtp.instances[0].sent) == 1


def test_missing_template_is_a_dispatch_error(config_data, data, fake_smtp, tmp_path):
    config_data["Templates"]["Dir"] = str(tmp_path / "nowhere")
    config = parse_config(config_data, environ={})

    with pytest.raises(EmailDispatchError) as excinfo:
        send_form_emails(config, data)
    assert excinfo.value.kind == CUSTOMER
    assert fake_smtp.instances == []


def test_dispatch_logs_and_reports_outcome(config, data, fake_smtp, caplog):
    assert dispatch_form_emails(config, data) is True

    fake_smtp.fail_for = "joe@example.com"
    assert dispatch_form_emails(config, data) is False
    assert "Failed to send form emails" in caplog.text
    assert "Error sending customer email" in caplog.text


def test_shipped_templates_render(config_data, data):
    config_data["Templates"]["Dir"] = str(REPO_TEMPLATES)
    config = parse_config(config_data, environ={})
    data = EmailTemplateData(
        form_data=dict(data.form_data),
        customer_name=data.customer_name,
        customer_email=data.customer_email,
        user_agent="Mozilla/5.0",
        remote_ip="192.0.2.1",
        x_forwarded_for="198.51.100.2",
    )

    customer = new_customer_email(config, data)
    system = new_system_email(config, data)

    assert "Joe Blogs" in customer.get_body(preferencelist=("plain",)).get_content()
    system_html = system.get_body(preferencelist=("html",)).get_content()
    assert "198.51.100.2" in system_html
    assert "Tom &amp; Jerry" in system_html
