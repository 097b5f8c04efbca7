from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """
    Envelope used by every JSON route.

    Routes return plain dicts such as ``{"success": True, "data": orm_obj}``;
    FastAPI validates them against ``ApiResponse[Schema]`` and reads ORM
    attributes through ``from_attributes``.
    """
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class ReorderItem(BaseModel):
    id: str
    sort_order: int


class ReorderRequest(BaseModel):
    items: List[ReorderItem] = Field(default_factory=list)


class ReorderResult(BaseModel):
    updated: int


class DeleteResult(BaseModel):
    id: str
    deleted: bool = True

    model_config = ConfigDict(from_attributes=True)
