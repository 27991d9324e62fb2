"""
Typed request-body decoding.

Each endpoint declares the pydantic model it accepts; anything that does not
parse as that model becomes a MalformedRequestError (400). Bodies are read as
JSON regardless of Content-Type so ``navigator.sendBeacon`` text payloads
decode the same way as fetch() calls.
"""
from typing import Type, TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from src.api.exceptions import MalformedRequestError

ModelT = TypeVar("ModelT", bound=BaseModel)


def describe_errors(errors) -> str:
    """One line per pydantic error: ``field: message``."""
    messages = []
    for item in errors:
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        messages.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(messages) or "Malformed request body."


async def decode_body(request: Request, model: Type[ModelT], allow_empty: bool = False) -> ModelT:
    raw = await request.body()
    if not raw.strip():
        if allow_empty:
            return model()
        raise MalformedRequestError(detail="Request body is empty.")
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        raise MalformedRequestError(detail=describe_errors(e.errors())) from e


def json_body(model: Type[ModelT], allow_empty: bool = False):
    """FastAPI dependency that decodes the body as ``model``."""

    async def dependency(request: Request) -> ModelT:
        return await decode_body(request, model, allow_empty=allow_empty)

    return dependency
