"""
XY CRM - Journal d'activité par société

Chaque écriture métier (lead, follow-up, deal, paiement, AMS, compte...)
laisse une entrée dans db.activity_logs, rattachée à une société.
Le journal n'est lisible que par les admins de cette société.
"""

import logging
import uuid
from typing import Optional

from config import db, now_iso
from services.lead_filters import open_range_filter
from services.query_helpers import get_pagination, paginated

logger = logging.getLogger("activity")

SYSTEM_ACTOR = {"id": "system", "email": "system", "name": "Système", "role": "system"}


def build_log_entry(
    company_id: Optional[str],
    actor: dict,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    entity_name: Optional[str] = None,
    details: Optional[dict] = None,
    ip_address: Optional[str] = None,
) -> dict:
    """
    Entrée de journal.
    actor = compte à l'origine de l'action (admin, employé ou SYSTEM_ACTOR)
    """
    actor = actor or SYSTEM_ACTOR
    return {
        "id": str(uuid.uuid4()),
        "company_id": company_id,
        "user_id": actor.get("id", SYSTEM_ACTOR["id"]),
        "user_email": actor.get("email", SYSTEM_ACTOR["email"]),
        "user_name": actor.get("name", SYSTEM_ACTOR["name"]),
        "role": actor.get("role", SYSTEM_ACTOR["role"]),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "entity_name": entity_name,
        "details": details or {},
        "ip_address": ip_address,
        "created_at": now_iso(),
    }


async def log_activity(
    user: dict,
    action: str,
    entity_type: str,
    entity_id: str = None,
    entity_name: str = None,
    details: dict = None,
    ip_address: str = None,
    company_id: str = None,
):
    """
    Enregistre une action dans le journal.
    company_id: société du journal; par défaut celle du compte qui agit.

    Actions: create, update, delete, login, logout, lockout, password_reset, password_change, upload
    Entity types: company, admin, employee, lead, followup, customer, deal, payment, ams,
                  source, product, category
    """
    entry = build_log_entry(
        company_id or (user or {}).get("company_id"),
        user,
        action,
        entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        details=details,
        ip_address=ip_address,
    )
    if not entry["company_id"]:
        logger.warning(f"[ACTIVITY] {action} {entity_type} {entity_id} logged without company")

    await db.activity_logs.insert_one(entry)
    entry.pop("_id", None)
    return entry


def activity_log_query(
    company_id: str,
    user_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    action: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> dict:
    query = {"company_id": company_id}
    if user_id:
        query["user_id"] = user_id
    if entity_type:
        query["entity_type"] = entity_type
    if action:
        query["action"] = action
    window = open_range_filter(start_date, end_date)
    if window:
        query["created_at"] = window
    return query


async def get_activity_logs(company_id: str, page=1, limit=None, **filters):
    """Journal d'une société, le plus récent d'abord (enveloppe paginée)"""
    skip, limit = get_pagination(page, limit)
    query = activity_log_query(company_id, **filters)

    logs = await db.activity_logs.find(query, {"_id": 0}) \
        .sort("created_at", -1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)
    total = await db.activity_logs.count_documents(query)

    return paginated(logs, total, skip // limit + 1, limit)
