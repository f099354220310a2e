"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  XY CRM - Modèles Client, Deal & Paiement                                    ║
║                                                                              ║
║  - email client unique par société                                          ║
║  - deal_id lisible: PREFIXE client + JJMM + séquence                         ║
║  - balance_amount = approbation - avance - paiements                         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional, Union
from pydantic import BaseModel

Amount = Union[float, int, str]


class CustomerCreate(BaseModel):
    """customer_name, email, address, state_district_pin, mobile_number obligatoires"""
    customer_name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    state_district_pin: Optional[str] = None
    mobile_number: Optional[str] = None
    category_id: Optional[str] = None
    gst_number: Optional[str] = None
    cin_number: Optional[str] = None
    business_legal_name: Optional[str] = None
    authorized_person_name: Optional[str] = None
    whatsapp_number: Optional[str] = None
    lead_id: Optional[str] = None


class CustomerUpdate(CustomerCreate):
    pass


class DealCreate(BaseModel):
    customer_id: str
    requirement: Optional[str] = None
    deal_value: Optional[Amount] = None
    deal_approval_value: Optional[Amount] = None
    advance_payment: Optional[Amount] = None
    balance_amount: Optional[Amount] = None


class DealUpdate(BaseModel):
    id: str
    requirement: Optional[str] = None
    deal_value: Optional[Amount] = None
    deal_approval_value: Optional[Amount] = None
    advance_payment: Optional[Amount] = None


class DealDelete(BaseModel):
    id: str


class PaymentCreate(BaseModel):
    deal_id: str
    amount: Amount
    payment_date: str
    payment_type: str
    remarks: Optional[str] = None
    created_by_id: Optional[str] = None


class PaymentUpdate(BaseModel):
    id: str
    amount: Optional[Amount] = None
    payment_date: Optional[str] = None
    payment_type: Optional[str] = None
    remarks: Optional[str] = None


class PaymentDelete(BaseModel):
    id: str
