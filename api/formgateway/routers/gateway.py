import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..mail_service.service import build_template_data, dispatch_form_emails
from ..pipeline.fields import scrub_fields
from ..schemas import SubmittedField, SubmittedFields

logger = logging.getLogger(__name__)


class FormResponseJSON(JSONResponse):
    media_type = "application/json; charset=utf-8"


def parse_fields(body: bytes) -> List[SubmittedField]:
    """Decode the posted JSON array; anything malformed counts as no fields."""
    try:
        return SubmittedFields.validate_json(body)
    except ValidationError as e:
        logger.warning("Could not decode form JSON: %s", e.errors(include_url=False)[0]["msg"])
        return []


def build_router(path: str) -> APIRouter:
    router = APIRouter()

    @router.post(path, response_class=FormResponseJSON)
    async def submit_form(request: Request, background_tasks: BackgroundTasks) -> FormResponseJSON:
        """
        Validate a contact form and report the verdict.

        The web form posts a JSON array of name/value pairs:

        ```json
        [
          {"name": "name", "value": "Me"},
          {"name": "email", "value": "me@example.com"},
          {"name": "subject", "value": "The subject"},
          {"name": "feedback", "value": "The feedback"}
        ]
        ```

        The response is always HTTP 200; the browser inspects `Valid`:
        `{"Valid": false, "BadFields": ["email"]}` or
        `{"Valid": true, "BadFields": null}`. When the form is valid, the
        customer and system emails are sent after the response has gone out.
        """
        config = request.app.state.config_store.get()
        fields = parse_fields(await request.body())

        verdict = scrub_fields(config.policies, fields)
        body = verdict.to_body()
        logger.info("Form verdict: valid=%s bad_fields=%s", verdict.valid, verdict.bad_fields)

        if verdict.valid:
            data = build_template_data(
                fields,
                remote_ip=request.client.host if request.client else "",
                x_forwarded_for=request.headers.get("x-forwarded-for", ""),
                user_agent=request.headers.get("user-agent", ""),
            )
            background_tasks.add_task(dispatch_form_emails, config, data)

        return FormResponseJSON(body)

    return router
