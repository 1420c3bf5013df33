from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Type

from fastapi import Query
from pydantic import BaseModel

from erp_api.core.settings import get_app_settings
from erp_api.schemas.common import ListResponse, PaginationMeta


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# PUBLIC_INTERFACE
def page_params(
    page: int = Query(1, ge=1, description="Page number (1-based)"),
    limit: Optional[int] = Query(None, ge=1, description="Page size; values above the maximum are clamped"),
) -> PageParams:
    """Resolve paging query parameters, applying the default and maximum page size."""
    settings = get_app_settings()
    size = settings.DEFAULT_PAGE_SIZE if limit is None else min(limit, settings.MAX_PAGE_SIZE)
    return PageParams(page=page, limit=size)


def paginated(items: Iterable[Any], total: int, params: PageParams, schema: Type[BaseModel]) -> ListResponse:
    """Wrap one page of ORM rows in the list envelope."""
    data: List[Any] = [schema.model_validate(x) for x in items]
    return ListResponse[schema](data=data, pagination=PaginationMeta.build(total, params.page, params.limit))
