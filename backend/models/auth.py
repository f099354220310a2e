"""
XY CRM - Modèles Auth, Société & Comptes
Deux types de comptes: admin et employee, rattachés à une société.
"""

from typing import Optional
from pydantic import BaseModel, field_validator

from config import is_valid_email_format, normalize_email
from services.permissions import VALID_ACCESS_LEVELS, VALID_COMPANY_ACCESS


VALID_ROLES = ["admin", "employee"]


def _check_email(v):
    if v is None:
        return v
    v = normalize_email(v)
    if not is_valid_email_format(v):
        raise ValueError(f"Invalid email format: {v}")
    return v


def _check_access_level(v):
    if v is None:
        return v
    v = v.upper()
    if v not in VALID_ACCESS_LEVELS:
        raise ValueError(f"Invalid access level: {v}. Valid: {VALID_ACCESS_LEVELS}")
    return v


class LoginRequest(BaseModel):
    email: str
    password: str


class AdminCreate(BaseModel):
    admin_email: str
    admin_password: str
    name: str
    company_id: str
    access_level: str = "ALL_ACCESS"
    profile_img: Optional[str] = None

    @field_validator("admin_email")
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)

    @field_validator("access_level")
    @classmethod
    def validate_access_level(cls, v):
        return _check_access_level(v)


class EmployeeCreate(BaseModel):
    employee_email: str
    employee_password: str
    name: str
    company_id: str
    access_level: str = "LEADS"
    profile_img: Optional[str] = None

    @field_validator("employee_email")
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)

    @field_validator("access_level")
    @classmethod
    def validate_access_level(cls, v):
        return _check_access_level(v)


class CompanyCreate(BaseModel):
    company_name: str
    company_domain: str
    logo_url: Optional[str] = None
    gstin: str
    cin: str
    license_count: int = 1
    register_address: str
    mobile: str
    email: str
    company_access: str = "FULL"

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)

    @field_validator("company_domain")
    @classmethod
    def validate_domain(cls, v):
        v = v.strip().lower()
        if not v:
            raise ValueError("company_domain is required")
        return v

    @field_validator("license_count")
    @classmethod
    def validate_license_count(cls, v):
        if v < 1:
            raise ValueError("license_count must be at least 1")
        return v

    @field_validator("company_access")
    @classmethod
    def validate_company_access(cls, v):
        v = v.upper()
        if v not in VALID_COMPANY_ACCESS:
            raise ValueError(f"Invalid company access: {v}. Valid: {VALID_COMPANY_ACCESS}")
        return v


class ForgotPasswordRequest(BaseModel):
    email: str


class VerifyOtpRequest(BaseModel):
    email: str
    otp: str


class ChangePasswordRequest(BaseModel):
    email: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v):
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class UpdatePasswordRequest(BaseModel):
    """Changement de son propre mot de passe (connecté)"""
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v):
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class AdminPasswordReset(BaseModel):
    """Un admin redéfinit le mot de passe d'un compte de sa société"""
    employee_id: str
    role: str = "employee"
    new_password: str

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in VALID_ROLES:
            raise ValueError(f"Invalid role: {v}. Valid: {VALID_ROLES}")
        return v

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v):
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class CompanyEmployeeCreate(BaseModel):
    """Ajout d'un employé depuis la page société (mot de passe par défaut)"""
    name: str
    email: str
    access_level: str = "LEADS"
    profile_img: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)

    @field_validator("access_level")
    @classmethod
    def validate_access_level(cls, v):
        return _check_access_level(v)


class EmployeeUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    access_level: Optional[str] = None
    profile_img: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)

    @field_validator("access_level")
    @classmethod
    def validate_access_level(cls, v):
        return _check_access_level(v)
