"""Response envelope shared by all endpoints."""

from typing import Any

from pydantic import BaseModel


class ApiResponse(BaseModel):
    """Every response is tagged with success and a human-readable message."""

    success: bool
    message: str
    data: Any = None


def envelope(message: str, data: BaseModel | None = None, success: bool = True) -> ApiResponse:
    """Wrap a result model in the response envelope."""
    return ApiResponse(
        success=success,
        message=message,
        data=data.model_dump(mode="json") if data is not None else None,
    )
