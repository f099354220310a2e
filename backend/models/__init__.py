"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  XY CRM - Models Package                                                     ║
║                                                                              ║
║  Exports tous les modèles pour import facile                                 ║
║  from models import LeadCreate, CustomerCreate, AmsCreate, etc.              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Auth, société & comptes
from .auth import (
    VALID_ROLES,
    LoginRequest,
    AdminCreate,
    EmployeeCreate,
    CompanyCreate,
    ForgotPasswordRequest,
    VerifyOtpRequest,
    ChangePasswordRequest,
    UpdatePasswordRequest,
    AdminPasswordReset,
    CompanyEmployeeCreate,
    EmployeeUpdate,
)

# Lead & follow-up
from .lead import (
    LeadStatus,
    LeadPriority,
    VALID_LEAD_STATUSES,
    VALID_PRIORITIES,
    LeadCreate,
    LeadUpdate,
    FollowUpCreate,
    FollowUpUpdate,
)

# Catalogue
from .catalog import (
    SourceCreate,
    SourceUpdate,
    ProductCreate,
    ProductUpdate,
    CategoryCreate,
    CategoryUpdate,
)

# Client, deal & paiement
from .customer import (
    CustomerCreate,
    CustomerUpdate,
    DealCreate,
    DealUpdate,
    DealDelete,
    PaymentCreate,
    PaymentUpdate,
    PaymentDelete,
)

# AMS
from .ams import (
    AmsCreate,
    AmsStatusUpdate,
    AmsEdit,
)

__all__ = [
    # Auth
    "VALID_ROLES",
    "LoginRequest",
    "AdminCreate",
    "EmployeeCreate",
    "CompanyCreate",
    "ForgotPasswordRequest",
    "VerifyOtpRequest",
    "ChangePasswordRequest",
    "UpdatePasswordRequest",
    "AdminPasswordReset",
    "CompanyEmployeeCreate",
    "EmployeeUpdate",
    # Lead
    "LeadStatus",
    "LeadPriority",
    "VALID_LEAD_STATUSES",
    "VALID_PRIORITIES",
    "LeadCreate",
    "LeadUpdate",
    "FollowUpCreate",
    "FollowUpUpdate",
    # Catalogue
    "SourceCreate",
    "SourceUpdate",
    "ProductCreate",
    "ProductUpdate",
    "CategoryCreate",
    "CategoryUpdate",
    # Client / deal
    "CustomerCreate",
    "CustomerUpdate",
    "DealCreate",
    "DealUpdate",
    "DealDelete",
    "PaymentCreate",
    "PaymentUpdate",
    "PaymentDelete",
    # AMS
    "AmsCreate",
    "AmsStatusUpdate",
    "AmsEdit",
]
