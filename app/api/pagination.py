"""``page``/``limit`` query parameters and the list response envelope.

    { "data": [...], "pagination": { "total", "page", "pages", "limit" } }
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Annotated, Generic, TypeVar

from fastapi import Depends, Query
from pydantic import BaseModel

T = TypeVar("T")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


@dataclass(frozen=True, slots=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_LIMIT)] = DEFAULT_LIMIT,
) -> PageParams:
    return PageParams(page=page, limit=limit)


PageDep = Annotated[PageParams, Depends(page_params)]


class Pagination(BaseModel):
    total: int
    page: int
    pages: int
    limit: int


class Page(BaseModel, Generic[T]):
    data: list[T]
    pagination: Pagination


def build_page(items: list[T], total: int, params: PageParams) -> Page[T]:
    return Page[T](
        data=items,
        pagination=Pagination(
            total=total,
            page=params.page,
            pages=math.ceil(total / params.limit),
            limit=params.limit,
        ),
    )
