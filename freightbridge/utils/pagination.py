"""
Offset pagination shared by the listing endpoints
"""
from typing import Generic, Optional, Type, TypeVar
from pydantic import BaseModel, Field
from fastapi import Query

T = TypeVar('T')


class PaginationParams:
    """
    skip/limit query parameters, injected with Depends()

    Usage:
        @router.get("/quotes")
        def list_quotes(pagination: PaginationParams = Depends()):
            items, total = paginate_query(query, pagination.skip, pagination.limit)
    """
    def __init__(
        self,
        skip: int = Query(0, ge=0, description="Rows to skip"),
        limit: int = Query(50, ge=1, le=200, description="Page size (max 200)")
    ):
        self.skip = skip
        self.limit = limit


class Page(BaseModel, Generic[T]):
    """
    Paginated response wrapper

    Returns:
        {
            "items": [...],
            "total": 100,
            "skip": 0,
            "limit": 50,
            "has_more": true
        }
    """
    items: list[T]
    total: int = Field(description="Rows matching the filter")
    skip: int = Field(description="Offset of this page")
    limit: int = Field(description="Page size requested")
    has_more: bool = Field(description="True when rows remain past this page")


def paginate_query(query, skip: int = 0, limit: int = 50):
    """
    Count the query, then fetch one window of it

    Returns:
        (rows, total)
    """
    total = query.count()
    items = query.offset(skip).limit(limit).all()
    return items, total


def create_paginated_response(
    items: list,
    total: int,
    skip: int,
    limit: int,
    schema: Optional[Type[BaseModel]] = None,
) -> dict:
    """
    Build the paginated response dictionary, serializing ORM rows through
    ``schema`` when one is given.
    """
    if schema is not None:
        items = [schema.model_validate(item) for item in items]
    return {
        "items": items,
        "total": total,
        "skip": skip,
        "limit": limit,
        "has_more": skip + len(items) < total
    }
