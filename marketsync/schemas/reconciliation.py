from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class AdditionalInfo(BaseModel):
    """A rejected batch record: its position, field errors and the payload as sent"""
    index: int
    field_errors: Dict[str, List[str]] = Field(default_factory=dict)
    original_payload: Any = None


class ReconciliationResult(BaseModel):
    """
    Batch outcome returned verbatim to API integrators.

    Serialize with `model_dump(by_alias=True)` to get the `additionalInfo` key.
    """
    model_config = ConfigDict(populate_by_name=True)

    all: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    additional_info: List[AdditionalInfo] = Field(default_factory=list, alias="additionalInfo")
