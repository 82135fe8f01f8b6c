from pydantic import BaseModel, Field, ConfigDict, computed_field
from typing import Generic, Optional, TypeVar

DataType = TypeVar("DataType")


class APIResponse(BaseModel, Generic[DataType]):
    """Standard API response wrapper"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    message: str = Field(..., description="Response message")
    data: Optional[DataType] = Field(default=None, description="Response data")
    success: bool = Field(default=True, description="Success status")

    @classmethod
    def ok(cls, message: str = "Success", data: Optional[DataType] = None) -> "APIResponse[DataType]":
        return cls(message=message, data=data, success=True)

    @classmethod
    def error(cls, message: str = "Error", data: Optional[DataType] = None) -> "APIResponse[DataType]":
        return cls(message=message, data=data, success=False)


class Page(BaseModel, Generic[DataType]):
    """A page of results with its position."""

    items: list[DataType] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 50

    @computed_field
    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size
