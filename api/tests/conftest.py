import sys
from pathlib import Path

import pytest


# Ensure the `api/` directory is on sys.path so tests can import `formgateway.*`
CURRENT_FILE = Path(__file__).resolve()
API_DIR = CURRENT_FILE.parents[1]  # .../api
if str(API_DIR) not in sys.path:
    sys.path.insert(0, str(API_DIR))


from formgateway.config import parse_config


TEMPLATES = {
    "customer-email-text.template": "Dear {{ form_data.Name }},\nYou wrote: {{ form_data.Feedback }}\n",
    "customer-email-html.template": "<p>Dear {{ form_data.Name }}</p><p>{{ form_data.Feedback }}</p>\n",
    "system-email-text.template": "From {{ form_data.Name }} <{{ form_data.Email }}> at {{ remote_ip }}\n",
    "system-email-html.template": "<p>{{ form_data.Subject }}</p><p>{{ user_agent }}</p>\n",
}


@pytest.fixture
def template_dir(tmp_path):
    directory = tmp_path / "templates"
    directory.mkdir()
    for name, source in TEMPLATES.items():
        (directory / name).write_text(source, encoding="utf-8")
    return directory


@pytest.fixture
def config_data(template_dir):
    return {
        "Server": {"Host": "localhost", "Port": 9301, "Path": "/", "Domain": "localhost"},
        "Smtp": {"Host": "smtp.localhost", "Port": 25},
        "Addresses": {
            "CustomerFrom": "do-not-reply@localhost",
            "CustomerFromName": "Localhost Contact Us",
            "CustomerReplyTo": "do-not-reply@localhost",
            "SystemTo": "to@localhost",
            "SystemToName": "Localhost Contact Us Form",
            "SystemFrom": "do-not-reply@localhost",
            "SystemFromName": "Localhost Contact Us Form",
            "SystemReplyTo": "do-not-reply@localhost.com",
        },
        "Subjects": {
            "Customer": "Thank you for contacting localhost!",
            "System": "Localhost Contact Us Form Message:",
        },
        "Templates": {"Dir": str(template_dir)},
        "Fields": {
            "field1": {"Name": "name", "Type": "textRestricted"},
            "field2": {"Name": "email", "Type": "email"},
            "field3": {"Name": "subject", "Type": "textRestricted"},
            "field4": {"Name": "feedback", "Type": "textUnrestricted"},
        },
    }


@pytest.fixture
def config(config_data):
    return parse_config(config_data, environ={})
