from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, TypeAdapter

from .pipeline.sanitize import sanitize


class FieldType(str, Enum):
    """Validation policies a configured field can declare (matched case-insensitively)."""

    EMAIL = "email"
    TEXT_RESTRICTED = "textrestricted"
    TEXT_UNRESTRICTED = "textunrestricted"

    @classmethod
    def parse(cls, value: str) -> Optional["FieldType"]:
        """Return the matching policy, or None for an unknown type name."""
        try:
            return cls(value.lower())
        except ValueError:
            return None


class SubmittedField(BaseModel):
    """
    One ``{"name": ..., "value": ...}`` entry from the posted JSON array.
    ``value`` is rewritten in place by the sanitizer before it is judged.
    """

    name: str = ""
    value: str = ""

    _sanitized: bool = PrivateAttr(default=False)

    @property
    def sanitized(self) -> bool:
        return self._sanitized

    def sanitize(self) -> str:
        """Run ``value`` through the sanitizer once; later calls are no-ops."""
        if not self._sanitized:
            self.value = sanitize(self.value)
            self._sanitized = True
        return self.value


SubmittedFields = TypeAdapter(List[SubmittedField])


class FormResponse(BaseModel):
    """
    Verdict returned to the browser. The client inspects ``Valid`` rather
    than the HTTP status, which is always 200.
    """

    model_config = ConfigDict(populate_by_name=True)

    valid: bool = Field(default=False, alias="Valid")
    bad_fields: List[str] = Field(default_factory=list, alias="BadFields")

    def set_bad_field(self, name: str) -> None:
        if name not in self.bad_fields:
            self.bad_fields.append(name)

    def set_validity(self) -> None:
        self.valid = not self.bad_fields

    def to_body(self) -> Dict[str, object]:
        """Finalize validity and return the wire shape; no bad fields encode as null."""
        self.set_validity()
        return {"Valid": self.valid, "BadFields": list(self.bad_fields) or None}


class EmailTemplateData(BaseModel):
    """
    Everything the email templates can see. Request metadata is passed
    through unsanitized; it only appears in operator-facing mail.
    ``customer_name`` and ``customer_email`` come from the same submitted
    fields validation matched, not from ``form_data``, where a later field
    with a colliding name can win.
    """

    form_data: Dict[str, str] = Field(default_factory=dict)
    customer_name: str = ""
    customer_email: str = ""
    user_agent: str = ""
    remote_ip: str = ""
    x_forwarded_for: str = ""
