"""
Field-level orchestration: match configured fields to submitted ones,
sanitize, then judge each value by its declared type.

Only configured fields are validated. Extra submitted fields are ignored
here but still reach the email templates (see ``create_form_data_map``).
"""

import logging
from email.utils import parseaddr
from typing import Dict, Iterable, Optional, Sequence

import email_validator
from email_validator import EmailNotValidError

from ..config import FieldPolicy
from ..schemas import FieldType, FormResponse, SubmittedField
from .charclass import accept_restricted_text, accept_unrestricted_text

logger = logging.getLogger(__name__)

# Reserved names such as localhost and .test are still valid address syntax.
email_validator.SPECIAL_USE_DOMAIN_NAMES[:] = []


# ============================================================================
# Matching
# ============================================================================

def find_field(name: str, fields: Sequence[SubmittedField]) -> Optional[SubmittedField]:
    """Case-insensitive exact name lookup; the first match wins."""
    wanted = name.casefold()
    for field in fields:
        if field.name.casefold() == wanted:
            return field
    return None


# ============================================================================
# Type validators
# ============================================================================

def validate_as_email(s: str) -> bool:
    """
    Address syntax check. Accepts a bare address or the ``Display Name <addr>``
    form; the domain is not required to be publicly deliverable.
    """
    _, addr = parseaddr(s)
    try:
        email_validator.validate_email(
            addr,
            check_deliverability=False,
            globally_deliverable=False,
            allow_quoted_local=True,
        )
    except EmailNotValidError as e:
        logger.info("Could not parse email address %r: %s", s, e)
        return False
    return True


def validate_as_restricted_text(s: str) -> bool:
    return accept_restricted_text(s)


def validate_as_unrestricted_text(s: str) -> bool:
    return accept_unrestricted_text(s)


_VALIDATORS = {
    FieldType.EMAIL: validate_as_email,
    FieldType.TEXT_RESTRICTED: validate_as_restricted_text,
    FieldType.TEXT_UNRESTRICTED: validate_as_unrestricted_text,
}


# ============================================================================
# Per-field and per-form validation
# ============================================================================

def validate_field(policy: FieldPolicy, match: Optional[SubmittedField], response: FormResponse) -> None:
    """
    Sanitize ``match`` in place and record ``policy.name`` as bad if it fails.

    A missing field is bad. A policy with an unknown type is skipped entirely.
    """
    field_type = FieldType.parse(policy.type)
    if field_type is None:
        logger.debug("Skipping field %r with unknown type %r", policy.name, policy.type)
        return

    if match is None:
        logger.debug("Could not find a field named %r in the submitted form", policy.name)
        response.set_bad_field(policy.name)
        return

    match.sanitize()
    if not _VALIDATORS[field_type](match.value):
        response.set_bad_field(policy.name)


def scrub_fields(policies: Iterable[FieldPolicy], fields: Sequence[SubmittedField]) -> FormResponse:
    """Validate every configured field and return the finalized verdict."""
    response = FormResponse()
    for policy in policies:
        validate_field(policy, find_field(policy.name, fields), response)
    response.set_validity()
    return response


# ============================================================================
# Template data
# ============================================================================

def template_key(name: str) -> str:
    """Title-case a field name so templates can use ``form_data.Name``."""
    return name.title()


def create_form_data_map(fields: Sequence[SubmittedField]) -> Dict[str, str]:
    """
    Build the template form-data map from every submitted field, configured
    or not. Fields that validation did not touch are sanitized here. Names
    that title-case to the same key collapse, and the last one submitted wins.
    """
    form_data: Dict[str, str] = {}
    for field in fields:
        form_data[template_key(field.name)] = field.sanitize()
    return form_data
