"""
XY CRM - Permission System
Permission keys derived from the account access_level, filtered by the
modules the company has subscribed to (company_access).
Every /{company_id}/ route also checks the tenant.
"""

import logging
from typing import Dict, List, Optional
from fastapi import Depends, HTTPException

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# ALL PERMISSION KEYS
# ════════════════════════════════════════════════════════════════════════

ALL_PERMISSION_KEYS = [
    "dashboard.view",
    "leads.view",
    "leads.manage",
    "followups.manage",
    "customers.manage",
    "deals.manage",
    "ams.manage",
    "catalog.manage",
    "employees.manage",
    "reports.view",
]

VALID_ACCESS_LEVELS = ["ALL_ACCESS", "LEADS", "FOLLOW_UPS", "CUSTOMER", "DEALS", "AMS", "ADMIN"]
VALID_COMPANY_ACCESS = ["LEADS", "CUSTOMER", "AMS", "FULL"]

# Module de l'abonnement société requis par chaque clé (None = toujours couvert)
PERMISSION_MODULES: Dict[str, Optional[str]] = {
    "dashboard.view": None,
    "leads.view": "LEADS",
    "leads.manage": "LEADS",
    "followups.manage": "LEADS",
    "reports.view": "LEADS",
    "customers.manage": "CUSTOMER",
    "deals.manage": "CUSTOMER",
    "ams.manage": "AMS",
    "catalog.manage": None,
    "employees.manage": None,
}

# ════════════════════════════════════════════════════════════════════════
# ACCESS LEVEL PRESETS
# ════════════════════════════════════════════════════════════════════════

ACCESS_LEVEL_PRESETS: Dict[str, List[str]] = {
    "ADMIN": list(ALL_PERMISSION_KEYS),
    "ALL_ACCESS": [k for k in ALL_PERMISSION_KEYS if k != "employees.manage"],
    "LEADS": ["dashboard.view", "leads.view", "leads.manage", "followups.manage", "reports.view"],
    "FOLLOW_UPS": ["dashboard.view", "leads.view", "followups.manage"],
    "CUSTOMER": ["dashboard.view", "leads.view", "customers.manage"],
    "DEALS": ["dashboard.view", "customers.manage", "deals.manage"],
    "AMS": ["dashboard.view", "ams.manage"],
}


def company_covers(company_access, key: str) -> bool:
    """La société a-t-elle souscrit au module de cette clé ?"""
    module = PERMISSION_MODULES.get(key)
    if module is None:
        return True
    if isinstance(company_access, str):
        company_access = [company_access]
    modules = set(company_access or [])
    return "FULL" in modules or module in modules


def compute_permissions(role: str, access_level: Optional[str],
                        company_access=None) -> Dict[str, bool]:
    """
    Map complet clé -> bool pour un compte.
    Admin: toutes les clés. Employé: preset de son access_level.
    Dans les deux cas, filtré par le company_access de la société.
    """
    if role == "admin":
        granted = set(ALL_PERMISSION_KEYS)
    else:
        granted = set(ACCESS_LEVEL_PRESETS.get(access_level or "LEADS", []))
    return {
        key: key in granted and company_covers(company_access, key)
        for key in ALL_PERMISSION_KEYS
    }


# ════════════════════════════════════════════════════════════════════════
# PERMISSION CHECK HELPERS
# ════════════════════════════════════════════════════════════════════════

def user_has_permission(user: dict, key: str) -> bool:
    """Check if user has a specific permission."""
    perms = user.get("permissions")
    if perms is None:
        perms = compute_permissions(
            user.get("role"), user.get("access_level"), user.get("company_access")
        )
    return perms.get(key, False) is True


def ensure_same_company(user: dict, company_id: str):
    """403 si le compte n'appartient pas à la société ciblée"""
    if user.get("company_id") != company_id:
        logger.warning(
            f"[PERMISSION_DENIED] user={user.get('email')} "
            f"company={company_id} own_company={user.get('company_id')}"
        )
        raise HTTPException(status_code=403, detail="Access to this company is not allowed")


def _deny(user: dict, permission_key: str):
    logger.warning(
        f"[PERMISSION_DENIED] user={user.get('email')} "
        f"key={permission_key} role={user.get('role')}"
    )
    raise HTTPException(status_code=403, detail=f"Permission required: {permission_key}")


# ════════════════════════════════════════════════════════════════════════
# FASTAPI DEPENDENCIES
# ════════════════════════════════════════════════════════════════════════

def require_permission(permission_key: str):
    """
    FastAPI dependency factory.
    Usage: user: dict = Depends(require_permission("followups.manage"))
    """
    from routes.auth import get_current_user

    async def _check(user: dict = Depends(get_current_user)):
        if not user_has_permission(user, permission_key):
            _deny(user, permission_key)
        return user

    return _check


def require_company_permission(permission_key: str):
    """
    Variante pour les routes /{company_id}/...: vérifie le tenant puis la clé.
    Le paramètre de chemin company_id est injecté par FastAPI.
    """
    from routes.auth import get_current_user

    async def _check(company_id: str, user: dict = Depends(get_current_user)):
        ensure_same_company(user, company_id)
        if not user_has_permission(user, permission_key):
            _deny(user, permission_key)
        return user

    return _check

