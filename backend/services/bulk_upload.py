"""
XY CRM - Import de leads en masse

Chaque ligne du classeur est normalisée indépendamment:
  - name et phone obligatoires (sinon erreur de ligne)
  - "NA" ou vide -> None
  - priorité invalide -> medium, statut invalide -> NEW
  - source / employé résolus par nom dans la société (inconnu -> None)
  - nextFollowupDate absente -> maintenant
Une ligne en erreur n'interrompt jamais l'import.
"""

import re
import uuid
from datetime import datetime
from typing import Dict, Optional, Tuple

from config import parse_datetime, to_iso, utcnow
from models.lead import VALID_LEAD_STATUSES, VALID_PRIORITIES

DEFAULT_STATUS = "NEW"
DEFAULT_PRIORITY = "medium"

# en-tête normalisé (minuscules, sans espaces ni _) -> champ du lead
HEADER_FIELDS = {
    "name": "name",
    "email": "email",
    "phone": "phone",
    "designation": "designation",
    "companyname": "company_name",
    "place": "place",
    "sourcename": "source_name",
    "employeename": "employee_name",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "nextfollowupdate": "next_followup_date",
}


def canonical_header(header: str) -> str:
    return re.sub(r"[\s_\-]", "", str(header or "")).lower()


def clean_value(value):
    """None pour les cellules vides ou "NA", texte trimé sinon"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    if not text or text.upper() == "NA":
        return None
    return text


def map_row(record: Dict) -> Dict:
    """Renomme les colonnes du classeur vers les champs du lead"""
    mapped = {}
    for header, value in record.items():
        field = HEADER_FIELDS.get(canonical_header(header))
        if field:
            mapped[field] = clean_value(value)
    return mapped


def normalize_priority(value: Optional[str]) -> str:
    value = (value or "").lower()
    return value if value in VALID_PRIORITIES else DEFAULT_PRIORITY


def normalize_status(value: Optional[str]) -> str:
    value = (value or "").upper()
    return value if value in VALID_LEAD_STATUSES else DEFAULT_STATUS


def build_lead_from_row(record: Dict, company_id: str,
                        source_ids: Dict[str, str], employee_ids: Dict[str, str],
                        now: Optional[datetime] = None) -> Tuple[Optional[dict], Optional[str]]:
    """
    Construit le document lead d'une ligne.

    source_ids / employee_ids: nom en minuscules -> id, restreints à la société.
    Returns: (lead, None) ou (None, message d'erreur)
    """
    row = map_row(record)
    if not row.get("name") or not row.get("phone"):
        return None, "Missing required fields: name or phone."

    now = now or utcnow()
    next_followup = row.get("next_followup_date")
    if next_followup is None:
        next_followup_dt = now
    else:
        next_followup_dt = parse_datetime(next_followup)
        if next_followup_dt is None:
            return None, f"Invalid nextFollowupDate: {next_followup}"

    source_name = (row.get("source_name") or "").lower()
    employee_name = (row.get("employee_name") or "").lower()
    email = row.get("email")

    lead = {
        "id": str(uuid.uuid4()),
        "company_id": company_id,
        "name": row["name"],
        "email": email.lower() if email else None,
        "phone": str(row["phone"]),
        "designation": row.get("designation"),
        "company_name": row.get("company_name"),
        "place": row.get("place"),
        "source_id": source_ids.get(source_name) if source_name else None,
        "employee_id": employee_ids.get(employee_name) if employee_name else None,
        "product_ids": [],
        "description": row.get("description"),
        "status": normalize_status(row.get("status")),
        "priority": normalize_priority(row.get("priority")),
        "next_followup_date": to_iso(next_followup_dt),
        "created_at": to_iso(now),
        "updated_at": to_iso(now),
    }
    return lead, None
