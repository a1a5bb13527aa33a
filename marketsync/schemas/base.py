"""
Base schemas with common functionality.
"""
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar('T', bound='BaseSchema')


class BaseSchema(BaseModel):
    """Base schema with common functionality for all schemas"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True
    )

    @classmethod
    def from_orm_model(cls: Type[T], orm_model: Any) -> T:
        """Create a schema instance from an ORM model"""
        return cls.model_validate(orm_model)


class ApiResponse(BaseModel):
    """Envelope returned by every inbound API endpoint"""
    success: bool = True
    message: Optional[str] = None
    errors: Optional[Dict[str, List[str]]] = None
    data: Any = Field(default_factory=list)


def success_response(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    return ApiResponse(success=True, message=message, data=data if data is not None else []).model_dump()


def error_response(message: str, errors: Optional[Dict[str, List[str]]] = None) -> Dict[str, Any]:
    return ApiResponse(success=False, message=message, errors=errors, data=[]).model_dump()
