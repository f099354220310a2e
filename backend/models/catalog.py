"""
XY CRM - Catalogue: sources de leads, produits, catégories clients
"""

from typing import Optional, Union
from pydantic import BaseModel, field_validator


class SourceCreate(BaseModel):
    source: str

    @field_validator("source")
    @classmethod
    def validate_source(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("source is required")
        return v


class SourceUpdate(BaseModel):
    source: Optional[str] = None


class ProductCreate(BaseModel):
    """name, price, description obligatoires (400 si absents)"""
    name: Optional[str] = None
    price: Optional[Union[float, int, str]] = None
    description: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[Union[float, int, str]] = None
    description: Optional[str] = None


class CategoryCreate(BaseModel):
    name: str
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
