from typing import List, Sequence, TypeVar
from pydantic import BaseModel, ConfigDict, Field, field_validator
from scimcore.config import settings

T = TypeVar("T")


class PaginationParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_index: int = Field(1, alias="startIndex")
    count: int = Field(settings.default_page_size)

    @field_validator("start_index", mode="before")
    def clamp_start_index(cls, v) -> int:
        # RFC 7644 Section 3.4.2.4: values less than 1 are interpreted as 1
        return max(int(v), 1)

    @field_validator("count", mode="before")
    def clamp_count(cls, v) -> int:
        # Negative counts are interpreted as 0
        return max(int(v), 0)

    @property
    def offset(self) -> int:
        return self.start_index - 1  # SCIM uses 1-based indexing

    @property
    def limit(self) -> int:
        return min(self.count, settings.max_page_size)

    def slice(self, items: Sequence[T]) -> List[T]:
        return list(items[self.offset:self.offset + self.limit])
