"""
XY CRM - Routes Auth
Login (verrouillage après 3 échecs) / Logout / Session / Comptes /
Réinitialisation du mot de passe par OTP.
"""

import logging
import uuid
from datetime import timedelta
from typing import Optional, Tuple

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from config import (
    SESSION_TTL_HOURS,
    db,
    generate_token,
    hash_password,
    normalize_email,
    now_iso,
    to_iso,
    utcnow,
    verify_password,
)
from email_service import email_service
from models.auth import (
    AdminCreate,
    AdminPasswordReset,
    ChangePasswordRequest,
    CompanyCreate,
    EmployeeCreate,
    ForgotPasswordRequest,
    LoginRequest,
    UpdatePasswordRequest,
    VerifyOtpRequest,
)
from services.activity_logger import get_activity_logs, log_activity
from services.auth_flow import (
    build_otp_record,
    check_otp,
    is_account_active,
    password_reset_update,
    soft_delete_update,
    failed_attempt_outcome,
    successful_login_update,
)
from services.permissions import compute_permissions, ensure_same_company

logger = logging.getLogger("auth")

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)

ACCOUNT_COLLECTIONS = {"admin": "admins", "employee": "employees"}


# ==================== HELPERS ====================

def accounts_of(role: str):
    return db[ACCOUNT_COLLECTIONS[role]]


def public_account(account: dict) -> dict:
    """Document compte sans le hash ni _id"""
    return {k: v for k, v in account.items() if k not in ("password", "_id")}


async def find_account_by_email(email: str) -> Tuple[Optional[dict], Optional[str]]:
    """Cherche d'abord dans les admins, puis dans les employés"""
    email = normalize_email(email)
    for role in ("admin", "employee"):
        account = await accounts_of(role).find_one(
            {"email": email, "is_deleted": {"$ne": True}}, {"_id": 0}
        )
        if account:
            return account, role
    return None, None


async def email_taken(email: str) -> bool:
    account, _ = await find_account_by_email(email)
    return account is not None


async def build_user_payload(account: dict, role: str) -> dict:
    company = await db.companies.find_one({"id": account.get("company_id")}, {"_id": 0}) or {}
    company_access = company.get("company_access", "FULL")
    return {
        "id": account["id"],
        "email": account["email"],
        "role": role,
        "name": account.get("name", ""),
        "company_id": account.get("company_id"),
        "company_name": company.get("name", ""),
        "profile_img": account.get("profile_img"),
        "access_level": account.get("access_level"),
        "company_access": company_access,
        "permissions": compute_permissions(role, account.get("access_level"), company_access),
    }


async def resolve_session_user(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[dict]:
    """Utilisateur de la session, None si pas de token valide"""
    if not credentials:
        return None

    session = await db.sessions.find_one({
        "token": credentials.credentials,
        "expires_at": {"$gt": now_iso()}
    })
    if not session:
        return None

    role = session.get("role", "employee")
    account = await accounts_of(role).find_one({"id": session["user_id"]}, {"_id": 0, "password": 0})
    if not account:
        return None

    if not is_account_active(account):
        raise HTTPException(status_code=403, detail="Account is deactivated")

    return await build_user_payload(account, role)


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Récupère l'utilisateur connecté depuis le token."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = await resolve_session_user(credentials)
    if not user:
        raise HTTPException(status_code=401, detail="Session expired")
    return user


async def require_admin(user: dict = Depends(get_current_user)):
    """Admin access."""
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def check_license_limit(company: dict):
    """403 si employés (non supprimés) + admins atteignent license_count"""
    company_id = company["id"]
    employees = await db.employees.count_documents({"company_id": company_id, "is_deleted": {"$ne": True}})
    admins = await db.admins.count_documents({"company_id": company_id})
    if employees + admins >= int(company.get("license_count") or 0):
        logger.warning(
            f"[LICENSE] company={company_id} limit={company.get('license_count')} "
            f"used={employees + admins}"
        )
        raise HTTPException(status_code=403, detail="License limit reached")


async def write_account(operation, detail: str = "An account with this email already exists"):
    """Exécute une écriture de compte; l'index unique sur email donne un 400"""
    try:
        return await operation
    except DuplicateKeyError:
        logger.warning("[ACCOUNT] Duplicate email rejected by unique index")
        raise HTTPException(status_code=400, detail=detail)


async def soft_delete_employee(company_id: str, employee_id: str) -> bool:
    """Désactive l'employé, libère son email et ferme ses sessions"""
    employee = await db.employees.find_one(
        {"id": employee_id, "company_id": company_id, "is_deleted": {"$ne": True}}, {"_id": 0, "id": 1, "email": 1}
    )
    if not employee:
        return False
    update = soft_delete_update(employee)
    update["updated_at"] = now_iso()
    await db.employees.update_one({"id": employee_id}, {"$set": update})
    await db.sessions.delete_many({"user_id": employee_id})
    return True


def new_account(email: str, password: str, name: str, company_id: str,
                access_level: str, profile_img: Optional[str] = None) -> dict:
    return {
        "id": str(uuid.uuid4()),
        "email": email,
        "password": hash_password(password),
        "name": name,
        "company_id": company_id,
        "access_level": access_level,
        "profile_img": profile_img,
        "is_active": True,
        "failed_login_attempts": 0,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }


# ==================== LOGIN / LOGOUT ====================

@router.post("/login")
async def login(data: LoginRequest, request: Request):
    """
    Connexion admin ou employé.
    Compte inactif refusé avant la vérification du mot de passe.
    """
    account, role = await find_account_by_email(data.email)
    if not account:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not is_account_active(account):
        raise HTTPException(
            status_code=403,
            detail="Account is deactivated. Reset your password to reactivate it."
        )

    collection = accounts_of(role)

    if not verify_password(data.password, account.get("password")):
        counter = await collection.find_one_and_update(
            {"id": account["id"]},
            {"$inc": {"failed_login_attempts": 1}},
            projection={"_id": 0, "failed_login_attempts": 1},
            return_document=ReturnDocument.AFTER,
        )
        attempt = failed_attempt_outcome((counter or {}).get("failed_login_attempts"))

        if attempt["locked"]:
            await collection.update_one({"id": account["id"]}, {"$set": {"is_active": False}})
            logger.warning(f"[LOCKOUT] {role} {account['email']} deactivated after failed attempts")
            await log_activity(
                user={**account, "role": role},
                action="lockout",
                entity_type=role,
                entity_id=account["id"],
                entity_name=account["email"],
                company_id=account.get("company_id"),
            )
            raise HTTPException(
                status_code=403,
                detail="Account locked after too many failed attempts. Reset your password to unlock it."
            )

        raise HTTPException(
            status_code=401,
            detail=f"Invalid credentials. {attempt['remaining']} attempt(s) remaining."
        )

    await collection.update_one({"id": account["id"]}, {"$set": successful_login_update()})

    token = generate_token()
    expires_at = to_iso(utcnow() + timedelta(hours=SESSION_TTL_HOURS))

    await db.sessions.insert_one({
        "token": token,
        "user_id": account["id"],
        "role": role,
        "company_id": account.get("company_id"),
        "created_at": now_iso(),
        "expires_at": expires_at
    })

    await log_activity(
        user={**account, "role": role},
        action="login",
        entity_type=role,
        entity_id=account["id"],
        ip_address=request.client.host if request.client else None
    )

    return {
        "auth": True,
        "token": token,
        "expires_at": expires_at,
        "user": await build_user_payload(account, role),
    }


@router.post("/logout")
async def logout(
    user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security)
):
    if credentials:
        await db.sessions.delete_one({"token": credentials.credentials})
    await log_activity(user=user, action="logout", entity_type=user["role"], entity_id=user["id"])
    return {"success": True}


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Retourne user + permissions."""
    return user


# ==================== INSCRIPTION SOCIÉTÉ & COMPTES ====================

@router.post("/company", status_code=201)
async def create_company(data: CompanyCreate):
    """Inscription d'une société (domaine unique)"""
    if await db.companies.find_one({"domain": data.company_domain}):
        raise HTTPException(status_code=400, detail="Company with this domain already exists")

    company = {
        "id": str(uuid.uuid4()),
        "name": data.company_name,
        "domain": data.company_domain,
        "logo_url": data.logo_url,
        "gstin": data.gstin,
        "cin": data.cin,
        "license_count": data.license_count,
        "register_address": data.register_address,
        "mobile": data.mobile,
        "email": data.email,
        "company_access": data.company_access,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.companies.insert_one(company)
    company.pop("_id", None)

    logger.info(f"[COMPANY] Created {company['name']} ({company['domain']})")
    return {"success": True, "message": "Company created successfully", "data": company}


@router.post("/admin", status_code=201)
async def create_admin(data: AdminCreate, credentials: HTTPAuthorizationCredentials = Depends(security)):
    """
    Création d'un admin.
    Le premier admin d'une société est libre (inscription),
    les suivants exigent un admin connecté de la même société.
    """
    company = await db.companies.find_one({"id": data.company_id}, {"_id": 0})
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")

    has_admin = await db.admins.count_documents({"company_id": data.company_id}) > 0
    creator = None
    if has_admin:
        creator = await resolve_session_user(credentials)
        if not creator or creator.get("role") != "admin":
            raise HTTPException(status_code=403, detail="Admin access required")
        ensure_same_company(creator, data.company_id)
        await check_license_limit(company)

    if await email_taken(data.admin_email):
        raise HTTPException(status_code=400, detail="Admin with this email already exists")

    admin = new_account(
        data.admin_email, data.admin_password, data.name, data.company_id,
        data.access_level, data.profile_img
    )
    await write_account(db.admins.insert_one(admin), "Admin with this email already exists")

    await log_activity(
        user=creator or {**admin, "role": "admin"},
        action="create",
        entity_type="admin",
        entity_id=admin["id"],
        entity_name=admin["email"],
    )
    return {"success": True, "message": "Admin created successfully", "data": public_account(admin)}


@router.post("/employee", status_code=201)
async def create_employee(data: EmployeeCreate, user: dict = Depends(require_admin)):
    """Création d'un employé avec mot de passe choisi"""
    ensure_same_company(user, data.company_id)

    company = await db.companies.find_one({"id": data.company_id}, {"_id": 0})
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    await check_license_limit(company)

    if await email_taken(data.employee_email):
        raise HTTPException(status_code=400, detail="Employee with this email already exists")

    employee = new_account(
        data.employee_email, data.employee_password, data.name, data.company_id,
        data.access_level, data.profile_img
    )
    await write_account(db.employees.insert_one(employee), "Employee with this email already exists")

    await log_activity(
        user=user,
        action="create",
        entity_type="employee",
        entity_id=employee["id"],
        entity_name=employee["email"],
    )
    return {"success": True, "message": "Employee created successfully", "data": public_account(employee)}


@router.get("/check-email")
async def check_email(email: Optional[str] = None):
    """Un admin existe-t-il déjà avec cet email ?"""
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")
    exists = await db.admins.find_one({"email": normalize_email(email)}) is not None
    return {"exists": exists}


# ==================== MOT DE PASSE OUBLIÉ (OTP) ====================

@router.post("/forgot-password")
async def forgot_password(data: ForgotPasswordRequest, background_tasks: BackgroundTasks):
    """Génère un OTP à 6 chiffres valable 5 minutes et l'envoie par email"""
    account, role = await find_account_by_email(data.email)
    if not account:
        raise HTTPException(status_code=404, detail="User not found")

    record = build_otp_record(account["email"], account["id"], role)
    await db.otps.update_one({"email": account["email"]}, {"$set": record}, upsert=True)

    background_tasks.add_task(email_service.send_otp, account["email"], record["otp_code"])
    logger.info(f"[OTP] Issued for {role} {account['email']}")

    return {"success": True, "message": "OTP sent to your email"}


@router.post("/verify-otp")
async def verify_otp(data: VerifyOtpRequest):
    email = normalize_email(data.email)
    record = await db.otps.find_one({"email": email}, {"_id": 0})

    error = check_otp(record, data.otp)
    if error == "not_found":
        raise HTTPException(status_code=404, detail="OTP not found")
    if error == "mismatch":
        raise HTTPException(status_code=400, detail="Invalid OTP")
    if error == "expired":
        raise HTTPException(status_code=400, detail="OTP has expired")

    await db.otps.update_one({"email": email}, {"$set": {"verified": True, "verified_at": now_iso()}})
    return {"success": True, "message": "OTP verified successfully"}


@router.post("/change-password")
async def change_password(data: ChangePasswordRequest):
    """Nouveau mot de passe après OTP vérifié: réactive le compte"""
    email = normalize_email(data.email)
    record = await db.otps.find_one({"email": email, "verified": True}, {"_id": 0})
    if not record:
        raise HTTPException(status_code=400, detail="OTP not verified")

    account, role = await find_account_by_email(email)
    if not account:
        raise HTTPException(status_code=404, detail="User not found")

    await accounts_of(role).update_one(
        {"id": account["id"]},
        {"$set": password_reset_update(hash_password(data.new_password))}
    )
    await db.otps.delete_one({"email": email})
    await db.sessions.delete_many({"user_id": account["id"]})

    await log_activity(
        user={**account, "role": role},
        action="password_reset",
        entity_type=role,
        entity_id=account["id"],
        entity_name=account["email"],
        company_id=account.get("company_id"),
    )
    return {"success": True, "message": "Password updated successfully"}


# ==================== MOT DE PASSE (CONNECTÉ) ====================

@router.post("/update-password")
async def update_password(data: UpdatePasswordRequest, user: dict = Depends(get_current_user)):
    """Changement de son propre mot de passe"""
    collection = accounts_of(user["role"])
    account = await collection.find_one({"id": user["id"]}, {"_id": 0})
    if not account or not verify_password(data.current_password, account.get("password")):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    await collection.update_one(
        {"id": user["id"]},
        {"$set": {"password": hash_password(data.new_password), "password_changed_at": now_iso()}}
    )
    await log_activity(user=user, action="password_change", entity_type=user["role"], entity_id=user["id"])
    return {"success": True, "message": "Password updated successfully"}


@router.patch("/password-update")
async def admin_password_update(data: AdminPasswordReset, user: dict = Depends(require_admin)):
    """Un admin redéfinit le mot de passe d'un compte de sa société"""
    collection = accounts_of(data.role)
    target = await collection.find_one(
        {"id": data.employee_id, "company_id": user["company_id"]}, {"_id": 0}
    )
    if not target:
        raise HTTPException(status_code=404, detail="User not found")

    await collection.update_one(
        {"id": target["id"]},
        {"$set": password_reset_update(hash_password(data.new_password))}
    )
    await log_activity(
        user=user,
        action="password_reset",
        entity_type=data.role,
        entity_id=target["id"],
        entity_name=target["email"],
    )
    return {"success": True, "message": "Password updated successfully"}


# ==================== ACTIVITY LOG ====================

@router.get("/activity-logs")
async def list_activity_logs(
    user_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    action: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    page: Optional[int] = 1,
    limit: Optional[int] = None,
    user: dict = Depends(require_admin)
):
    """Journal d'activité de la société"""
    return await get_activity_logs(
        user["company_id"],
        page=page,
        limit=limit,
        user_id=user_id,
        entity_type=entity_type,
        action=action,
        start_date=start_date,
        end_date=end_date,
    )
