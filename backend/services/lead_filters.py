"""
Filtres Mongo des listes de leads, follow-ups et visites AMS
(partagés entre les listes et les exports xlsx)
"""

from datetime import timedelta
from typing import List, Optional

from config import day_bounds, parse_datetime, to_iso
from models.lead import VALID_LEAD_STATUSES

TODAY_LOOKBACK_DAYS = 30


def parse_status_list(value: Optional[str]) -> List[str]:
    """'new, in_progress,foo' -> ['NEW', 'IN_PROGRESS'] (valeurs inconnues ignorées)"""
    if not value:
        return []
    statuses = []
    for part in value.split(","):
        status = part.strip().upper()
        if status in VALID_LEAD_STATUSES and status not in statuses:
            statuses.append(status)
    return statuses


def date_range_filter(start_date: Optional[str], end_date: Optional[str]) -> Optional[dict]:
    """Journées entières: [début de start_date, fin de end_date]"""
    start = day_bounds(start_date)
    end = day_bounds(end_date)
    if not start or not end:
        return None
    return {"$gte": start[0], "$lte": end[1]}


def open_range_filter(start_date: Optional[str], end_date: Optional[str]) -> Optional[dict]:
    """Bornes indépendantes: $gte début de start_date, $lte fin de end_date"""
    window = {}
    start = day_bounds(start_date)
    if start:
        window["$gte"] = start[0]
    end = day_bounds(end_date)
    if end:
        window["$lte"] = end[1]
    return window or None


def today_window_filter(today: Optional[str], lookback_days: int = TODAY_LOOKBACK_DAYS) -> Optional[dict]:
    """[today - 30 jours 00:00, today 23:59:59] : retards compris"""
    bounds = day_bounds(today)
    if not bounds:
        return None
    start = parse_datetime(bounds[0]) - timedelta(days=lookback_days)
    return {"$gte": to_iso(start), "$lte": bounds[1]}


def upcoming_window_filter(today: Optional[str], days: int = 30) -> Optional[dict]:
    """[today 00:00, today + 30 jours 23:59:59] : visites à venir"""
    bounds = day_bounds(today)
    if not bounds:
        return None
    end = parse_datetime(bounds[1]) + timedelta(days=days)
    return {"$gte": bounds[0], "$lte": to_iso(end)}


def build_lead_query(company_id: str,
                     employee_id: Optional[str] = None,
                     status: Optional[str] = None,
                     priority: Optional[str] = None,
                     product_id: Optional[str] = None,
                     source_id: Optional[str] = None,
                     start_date: Optional[str] = None,
                     end_date: Optional[str] = None,
                     today: Optional[str] = None) -> dict:
    """Filtre leads, toujours restreint à la société. today prime sur start/end."""
    query = {"company_id": company_id}

    if employee_id:
        query["employee_id"] = employee_id

    statuses = parse_status_list(status)
    if len(statuses) == 1:
        query["status"] = statuses[0]
    elif statuses:
        query["status"] = {"$in": statuses}

    if priority:
        query["priority"] = priority.lower()
    if product_id:
        query["product_ids"] = product_id
    if source_id:
        query["source_id"] = source_id

    window = today_window_filter(today) if today else date_range_filter(start_date, end_date)
    if window:
        query["next_followup_date"] = window

    return query
