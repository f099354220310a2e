"""
Configuration et utilitaires partagés
"""

import os
import re
import base64
import hashlib
import hmac
import logging
import random
import secrets
from datetime import datetime, timezone, timedelta
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

logger = logging.getLogger("config")

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'xy_crm')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

logger.info(f"[CONFIG] Using database: {DB_NAME}")

# Application
APP_URL = os.environ.get('APP_URL', 'https://crm.idzone.app')
CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
SESSION_TTL_HOURS = int(os.environ.get('SESSION_TTL_HOURS', '1'))
DEFAULT_EMPLOYEE_PASSWORD = os.environ.get('DEFAULT_EMPLOYEE_PASSWORD', 'welcome@123')
SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'false').lower() == 'true'
SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE', 'Asia/Kolkata')

# Règles métier
MAX_FAILED_LOGIN_ATTEMPTS = 3
OTP_TTL_MINUTES = 5
DEFAULT_FOLLOWUP_DAYS = 3
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 200

PBKDF2_ALGORITHM = "sha256"
PBKDF2_ITERATIONS = 120_000


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """Hash PBKDF2 salé: pbkdf2$algo$iterations$salt$hash"""
    salt = os.urandom(16)
    derived = hashlib.pbkdf2_hmac(
        PBKDF2_ALGORITHM, password.encode("utf-8"), salt, PBKDF2_ITERATIONS
    )
    encoded_salt = base64.b64encode(salt).decode("ascii")
    encoded_hash = base64.b64encode(derived).decode("ascii")
    return f"pbkdf2${PBKDF2_ALGORITHM}${PBKDF2_ITERATIONS}${encoded_salt}${encoded_hash}"


def verify_password(password: str, stored_hash: Optional[str]) -> bool:
    """Vérifie un mot de passe contre un hash PBKDF2"""
    if not password or not stored_hash or not stored_hash.startswith("pbkdf2$"):
        return False
    try:
        _, algorithm, iteration_str, salt_b64, hash_b64 = stored_hash.split("$")
        iterations = int(iteration_str)
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(hash_b64)
    except (ValueError, TypeError):
        return False
    derived = hashlib.pbkdf2_hmac(algorithm, password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(derived, expected)


def generate_token() -> str:
    """Génère un token de session sécurisé"""
    return secrets.token_urlsafe(32)


def generate_otp() -> str:
    """Code OTP à 6 chiffres (100000-999999)"""
    return str(random.SystemRandom().randint(100000, 999999))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Sérialise une date en ISO UTC (format stocké en base)"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return to_iso(utcnow())


def parse_datetime(value) -> Optional[datetime]:
    """
    Parse une date envoyée par le client.
    Accepte: datetime, "YYYY-MM-DD", ISO complet (avec ou sans Z).
    Retourne None si la valeur est vide ou invalide.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def day_bounds(value) -> Optional[tuple]:
    """(début, fin) de la journée UTC contenant value, en ISO"""
    dt = parse_datetime(value)
    if dt is None:
        return None
    start = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    return to_iso(start), to_iso(end)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def is_valid_email_format(email: str) -> bool:
    """Vérifie le format email basique"""
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email.strip()))
