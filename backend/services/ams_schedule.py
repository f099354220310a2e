"""
XY CRM - Planification des visites AMS

Un contrat AMS de N visites par an est éclaté en N enregistrements,
espacés de 12 // N mois à partir de la date de première visite:
    visite i (1..N) = visit_date + i * intervalle
"""

import calendar
from datetime import datetime
from typing import List

VALID_AMS_STATUSES = ["SCHEDULED", "COMPLETED", "CANCELLED"]


def add_months(dt: datetime, months: int) -> datetime:
    """Ajoute des mois; le jour est ramené à la fin du mois si besoin (31/01 + 1 -> 28/02)"""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def visit_interval_months(visits_per_year: int) -> int:
    if visits_per_year <= 0:
        raise ValueError("no_of_visits_per_year doit être positif")
    return max(12 // visits_per_year, 1)


def schedule_visits(first_visit: datetime, visits_per_year: int) -> List[datetime]:
    interval = visit_interval_months(visits_per_year)
    return [add_months(first_visit, i * interval) for i in range(1, visits_per_year + 1)]
