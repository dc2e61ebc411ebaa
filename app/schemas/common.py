from pydantic import BaseModel, ValidationError
from typing import Any, Optional

from app.core.exceptions import InvalidInput


class ApiResponse(BaseModel):
    """Envelope shared by every mind-map endpoint"""
    success: bool
    message: str
    data: Optional[Any] = None


def parse_payload(schema, payload):
    """Validate a raw payload, reporting the first problem as InvalidInput"""
    try:
        return schema.model_validate(payload or {})
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error.get("loc", ())) or "body"
        raise InvalidInput(f"{field}: {error.get('msg', 'invalid value')}")
