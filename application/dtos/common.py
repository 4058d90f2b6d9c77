"""
通用 DTO
"""
from pydantic import BaseModel, Field

from core.config import settings


class PaginationParams(BaseModel):
    """分页参数（页码/每页大小），自动派生 skip/limit"""
    page: int = Field(1, ge=1, description="页码，从1开始")
    size: int = Field(
        default=settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="每页大小",
    )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size
