# shopfloor/schemas.py
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field

from shopfloor.models.user import ROLE_USER

# Numeric cells may arrive as numbers or as the text typed into a grid cell
NumericInput = Optional[Union[float, str]]


class PartUpdate(BaseModel):
    """Partial update of one part; only the keys sent are applied"""
    part_mark: Optional[str] = None
    assembly_mark: Optional[str] = None
    material: Optional[str] = None
    thickness: Optional[str] = None
    quantity: NumericInput = None
    length: NumericInput = None
    width: NumericInput = None
    height: NumericInput = None
    weight: NumericInput = None
    notes: Optional[str] = None


class DeleteRequest(BaseModel):
    # Checked by the endpoint so malformed ids produce a 400 with details
    ids: Optional[List[Any]] = None


class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=200)
    password: str = Field(..., min_length=1, max_length=200)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: str = Field(default=ROLE_USER)
    is_active: bool = Field(default=True)


class UserUpdate(BaseModel):
    email: Optional[str] = Field(default=None, max_length=200)
    password: Optional[str] = Field(default=None, max_length=200)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    role: Optional[str] = None
    is_active: Optional[bool] = None
