"""
XY CRM - Verrouillage de compte & OTP

Machine d'état par compte (admin ou employé):
  - chaque échec de login incrémente failed_login_attempts
  - à MAX_FAILED_LOGIN_ATTEMPTS le compte passe is_active=False
  - un compte inactif est refusé AVANT la vérification du mot de passe
  - un login réussi remet le compteur à 0
  - un reset de mot de passe (OTP vérifié) réactive et remet à 0

Les fonctions ici sont pures: elles calculent les changements à appliquer,
les routes se chargent de les écrire en base.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from config import (
    MAX_FAILED_LOGIN_ATTEMPTS,
    OTP_TTL_MINUTES,
    generate_otp,
    parse_datetime,
    to_iso,
    utcnow,
)


# ==================== LOCKOUT ====================

def is_account_active(account: dict) -> bool:
    return account.get("is_active", True) is not False


def failed_attempt_outcome(attempts: int) -> Dict[str, Any]:
    """
    Effet d'un mot de passe incorrect.
    attempts = compteur renvoyé par le $inc atomique en base.

    Returns: {
        "locked": True si le compte doit être désactivé,
        "remaining": tentatives restantes avant verrouillage
    }
    """
    attempts = int(attempts or 0)
    return {
        "locked": attempts >= MAX_FAILED_LOGIN_ATTEMPTS,
        "remaining": max(MAX_FAILED_LOGIN_ATTEMPTS - attempts, 0),
    }


def successful_login_update() -> Dict[str, Any]:
    return {"failed_login_attempts": 0, "last_login_at": to_iso(utcnow())}


def password_reset_update(password_hash: str) -> Dict[str, Any]:
    """Champs à écrire lors d'un reset: nouveau hash + réactivation"""
    return {
        "password": password_hash,
        "is_active": True,
        "failed_login_attempts": 0,
        "password_changed_at": to_iso(utcnow()),
    }


def soft_delete_update(account: dict) -> Dict[str, Any]:
    """
    Désactivation définitive d'un compte.
    L'email est libéré (index unique) et conservé dans deleted_email.
    """
    return {
        "is_active": False,
        "is_deleted": True,
        "email": f"deleted+{account['id']}",
        "deleted_email": account.get("email"),
        "deleted_at": to_iso(utcnow()),
    }


# ==================== OTP ====================

def build_otp_record(email: str, account_id: str, role: str,
                     now: Optional[datetime] = None) -> Dict[str, Any]:
    """Nouveau code OTP (upsert par email, verified remis à False)"""
    now = now or utcnow()
    return {
        "email": email,
        "otp_code": generate_otp(),
        "account_id": account_id,
        "role": role,
        "verified": False,
        "expires_at": to_iso(now + timedelta(minutes=OTP_TTL_MINUTES)),
        "created_at": to_iso(now),
    }


def is_otp_expired(otp_record: dict, now: Optional[datetime] = None) -> bool:
    expires_at = parse_datetime(otp_record.get("expires_at"))
    if expires_at is None:
        return True
    return (now or utcnow()) > expires_at


def check_otp(otp_record: Optional[dict], code: str,
              now: Optional[datetime] = None) -> Optional[str]:
    """
    Vérifie un code OTP saisi.
    Ordre: existence, égalité (codes trimés), expiration.
    Returns: None si valide, sinon le motif d'erreur
    ("not_found" | "mismatch" | "expired").
    """
    if not otp_record:
        return "not_found"
    stored = str(otp_record.get("otp_code", "")).strip()
    if stored != (code or "").strip():
        return "mismatch"
    if is_otp_expired(otp_record, now):
        return "expired"
    return None
