"""Base Pydantic schemas with CamelCase conversion."""

import json
import math
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from humps import camelize


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    return camelize(string)


def decode_json_text(value: Any, default: Any) -> Any:
    """Decode a JSON text column; pass through already-decoded values."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return default
    return value


class CamelModel(BaseModel):
    """
    Base model that converts snake_case fields to camelCase in JSON responses.

    Usage:
        class MyResponse(CamelModel):
            job_posting_id: int        # JSON: jobPostingId
            candidate_name: str        # JSON: candidateName
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


T = TypeVar("T")


class PaginationMeta(CamelModel):
    """Pagination metadata."""

    page: int
    per_page: int
    total: int
    total_pages: int

    @classmethod
    def for_page(cls, page: int, per_page: int, total: int) -> "PaginationMeta":
        return cls(
            page=page,
            per_page=per_page,
            total=total,
            total_pages=math.ceil(total / per_page) if total else 0,
        )


class PaginatedResponse(CamelModel, Generic[T]):
    """
    Generic paginated response wrapper.

    Usage:
        PaginatedResponse[ApplicationListItem](
            data=[...],
            meta=PaginationMeta.for_page(page=1, per_page=20, total=100)
        )
    """

    data: list[T]
    meta: PaginationMeta


class ErrorDetail(CamelModel):
    """Error detail for API error responses."""

    code: str
    message: str
    details: dict[str, Any] = {}


class ErrorResponse(CamelModel):
    """Standard error response format."""

    error: ErrorDetail
