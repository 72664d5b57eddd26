"""
Jinja2 rendering for the outbound email bodies.

Form values arrive HTML-escaped by the sanitizer. HTML templates receive them
as ``Markup`` so they are not escaped a second time, while request metadata
(which is not sanitized) is still autoescaped. Text templates receive the
unescaped text so the plain-text part reads naturally.
"""

import os
from functools import lru_cache
from typing import Any, Dict

from jinja2 import Environment, FileSystemLoader
from markupsafe import Markup

from ..schemas import EmailTemplateData


@lru_cache(maxsize=16)
def get_environment(directory: str, html: bool) -> Environment:
    """One cached environment per (template directory, output kind)."""
    return Environment(
        loader=FileSystemLoader(directory),
        autoescape=html,
        keep_trailing_newline=True,
    )


def template_context(data: EmailTemplateData, html: bool) -> Dict[str, Any]:
    if html:
        form_data = {k: Markup(v) for k, v in data.form_data.items()}
    else:
        form_data = {k: Markup(v).unescape() for k, v in data.form_data.items()}
    return {
        "form_data": form_data,
        "user_agent": data.user_agent,
        "remote_ip": data.remote_ip,
        "x_forwarded_for": data.x_forwarded_for,
    }


def render_template(path: str, data: EmailTemplateData, html: bool) -> str:
    """Render the template file at ``path``."""
    directory, name = os.path.split(path)
    template = get_environment(directory or os.curdir, html).get_template(name)
    return template.render(template_context(data, html))
