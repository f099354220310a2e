"""
XY CRM - Modèles AMS (visites de maintenance planifiées)
"""

from typing import Optional, Union
from pydantic import BaseModel


class AmsCreate(BaseModel):
    """Tous les champs sont obligatoires sauf status (400 si absents)"""
    customer_id: Optional[str] = None
    product_id: Optional[str] = None
    visit_date: Optional[str] = None
    employee_id: Optional[str] = None
    ams_cost: Optional[Union[float, int, str]] = None
    no_of_visits_per_year: Optional[Union[int, str]] = None
    status: Optional[str] = None


class AmsStatusUpdate(BaseModel):
    status: str


class AmsEdit(BaseModel):
    visit_date: Optional[str] = None
    status: Optional[str] = None
    ams_cost: Optional[Union[float, int, str]] = None
