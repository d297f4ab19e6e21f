"""Page envelope shared by list endpoints; serialized with camelCase keys."""

from __future__ import annotations

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

MAX_PAGE_SIZE = 100


def _to_camel(name: str) -> str:
    parts = name.split("_")
    return parts[0] + "".join(p.capitalize() for p in parts[1:])


def clamp_page(page: int, page_size: int) -> tuple[int, int]:
    """Coerce out-of-range query values instead of rejecting them."""
    return max(1, page), max(1, min(MAX_PAGE_SIZE, page_size))


class PaginationMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    page: int = Field(ge=1)
    page_size: int = Field(ge=1, le=MAX_PAGE_SIZE)
    total_items: int = Field(ge=0)
    total_pages: int = Field(ge=0)

    @classmethod
    def for_page(cls, page: int, page_size: int, total_items: int) -> PaginationMeta:
        total_pages = math.ceil(total_items / page_size) if total_items > 0 else 0
        return cls(
            page=page, page_size=page_size, total_items=total_items, total_pages=total_pages
        )


class PaginatedResponse(BaseModel, Generic[T]):
    data: list[T]
    pagination: PaginationMeta
