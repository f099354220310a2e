"""
Helpers de requêtes: pagination, tri, recherche texte
"""

import math
import re
from typing import Iterable, Optional, Tuple

from config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def get_pagination(page, limit, zero_based: bool = False) -> Tuple[int, int]:
    """
    Retourne (skip, limit).
    page 1-based par défaut (page < 1 ramenée à 1), 0-based pour les listes de deals.
    """
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 0 if zero_based else 1
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = DEFAULT_PAGE_SIZE
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    if zero_based:
        page = max(page, 0)
        return page * limit, limit
    page = max(page, 1)
    return (page - 1) * limit, limit


def total_pages(total: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return math.ceil(total / limit)


def sort_direction(order: Optional[str], default: str = "desc") -> int:
    """'asc' -> 1, tout le reste -> -1 (ou le défaut)"""
    value = (order or default).lower()
    return 1 if value == "asc" else -1


def resolve_sort_field(field: Optional[str], allowed: Iterable[str], default: str) -> str:
    """Un champ de tri inconnu retombe sur le champ par défaut"""
    if field and field in allowed:
        return field
    return default


def contains(text: str) -> dict:
    """Filtre Mongo 'contient', insensible à la casse"""
    return {"$regex": re.escape(text), "$options": "i"}


def paginated(data: list, total: int, page: int, limit: int) -> dict:
    return {
        "success": True,
        "data": data,
        "total": total,
        "page": page,
        "total_pages": total_pages(total, limit),
    }
