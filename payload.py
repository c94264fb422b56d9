from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Type, TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile

from errors import BadRequest

FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")

ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_model(schema: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """Coerce `data` into `schema`, reporting failures as a 400."""
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise BadRequest("Invalid " + ", ".join(problems), errors=problems)


@dataclass
class Payload:
    """A request body flattened to plain fields plus uploaded files.

    Admin forms post multipart (text fields next to image/resume files);
    scripts and tests post JSON. Handlers only ever see this shape.
    """

    fields: Dict[str, Any] = field(default_factory=dict)
    files: Dict[str, UploadFile] = field(default_factory=dict)

    def text(self, name: str) -> Optional[str]:
        value = self.fields.get(name)
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def file(self, name: str) -> Optional[UploadFile]:
        return self.files.get(name)


async def read_payload(request: Request) -> Payload:
    content_type = request.headers.get("content-type", "").lower()
    payload = Payload()

    if content_type.startswith(FORM_TYPES):
        form = await request.form()
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if value.filename:
                    payload.files[key] = value
            elif key in payload.fields:
                existing = payload.fields[key]
                payload.fields[key] = (existing if isinstance(existing, list) else [existing]) + [value]
            else:
                payload.fields[key] = value
        return payload

    body = await request.body()
    if not body:
        return payload
    try:
        data = await request.json()
    except ValueError:
        raise BadRequest("Request body must be valid JSON")
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    payload.fields = data
    return payload
