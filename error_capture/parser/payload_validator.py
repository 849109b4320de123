"""
Payload Validator
=================
Decodes untrusted JSON from the browser reporter into an
ErrorDiagnosticPayload, or explains why it cannot.

Required fields (everything else is optional and defaulted):
    errorId                — string
    timestamp              — string
    error.message          — string
    error.name             — string
    error.sanitizedStack   — array (may be empty)

Client-only fields (see CLIENT_ONLY_FIELDS) are discarded before decoding.

Contract:
    - Never raises for bad input; failures come back as a list of
      human-readable messages on the result.
"""
import copy
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from error_capture.core.constants import CLIENT_ONLY_FIELDS
from error_capture.models.error_payload import ErrorDiagnosticPayload


@dataclass
class PayloadDecodeResult:
    """Outcome of decoding one payload: either ``payload`` or ``errors`` is populated."""
    payload: Optional[ErrorDiagnosticPayload] = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.payload is not None


def _strip_client_fields(raw: dict) -> dict:
    cleaned = copy.deepcopy(raw)
    error_section = cleaned.get("error")
    if isinstance(error_section, dict):
        for name in CLIENT_ONLY_FIELDS:
            error_section.pop(name, None)
    return cleaned


def _describe(exc: ValidationError) -> list[str]:
    messages: list[str] = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
        messages.append(f"{location}: {item.get('msg', 'invalid value')}")
    return messages


def decode_error_payload(raw: Any) -> PayloadDecodeResult:
    """
    Decode a parsed JSON value into an ErrorDiagnosticPayload.

    Parameters
    ----------
    raw : Any
        The value produced by ``json.loads`` on the request body.

    Returns
    -------
    PayloadDecodeResult
        ``payload`` on success, otherwise ``errors`` listing every problem.
    """
    if not isinstance(raw, dict):
        return PayloadDecodeResult(errors=["<root>: payload must be a JSON object"])

    try:
        payload = ErrorDiagnosticPayload.model_validate(_strip_client_fields(raw))
    except ValidationError as exc:
        return PayloadDecodeResult(errors=_describe(exc))

    return PayloadDecodeResult(payload=payload)


def is_valid_error_payload(raw: Any) -> bool:
    """Shorthand for callers that only need a yes/no answer."""
    return decode_error_payload(raw).ok
