"""
XY CRM - Agrégations leaderboard & rapport de suivi

Fonctions pures: elles reçoivent des documents déjà filtrés par company_id
et retournent les lignes agrégées par employé.
Les dates sont des chaînes ISO UTC, comparables lexicographiquement.
"""

from collections import Counter, defaultdict
from typing import Dict, List, Optional, Tuple


def _in_window(value: Optional[str], start: Optional[str], end: Optional[str]) -> bool:
    if not value:
        return False
    if start and value < start:
        return False
    if end and value > end:
        return False
    return True


# ==================== BEST PERFORMERS ====================

def rank_best_performers(employees: List[dict], leads: List[dict],
                         start: Optional[str] = None, end: Optional[str] = None) -> List[dict]:
    """
    Classement par nombre de leads passés CUSTOMER.

    - un employé est retenu s'il a au moins un lead dont next_followup_date
      tombe dans [start, end]
    - les compteurs portent sur TOUS ses leads
    - les employés sans IN_PROGRESS / CUSTOMER / REJECTED sont exclus
    - tri par customer décroissant, rang 1..n
    """
    leads_by_employee: Dict[str, List[dict]] = defaultdict(list)
    for lead in leads:
        if lead.get("employee_id"):
            leads_by_employee[lead["employee_id"]].append(lead)

    performers = []
    for employee in employees:
        own = leads_by_employee.get(employee["id"], [])
        if not any(_in_window(l.get("next_followup_date"), start, end) for l in own):
            continue
        statuses = Counter(l.get("status") for l in own)
        row = {
            "employee_id": employee["id"],
            "name": employee.get("name", ""),
            "total_leads": len(own),
            "in_progress": statuses.get("IN_PROGRESS", 0),
            "customer": statuses.get("CUSTOMER", 0),
            "rejected": statuses.get("REJECTED", 0),
        }
        if row["in_progress"] or row["customer"] or row["rejected"]:
            performers.append(row)

    performers.sort(key=lambda r: r["customer"], reverse=True)
    return [{"rank": i + 1, **row} for i, row in enumerate(performers)]


def rank_followup_leaders(employees: List[dict], leads: List[dict], followups: List[dict],
                          start: Optional[str] = None, end: Optional[str] = None) -> List[dict]:
    """Classement par nombre de follow-ups créés dans la fenêtre"""
    owner_by_lead = {l["id"]: l.get("employee_id") for l in leads}
    counts: Counter = Counter()
    for followup in followups:
        if not _in_window(followup.get("created_at"), start, end):
            continue
        owner = owner_by_lead.get(followup.get("lead_id"))
        if owner:
            counts[owner] += 1

    leaders = [
        {"employee_id": e["id"], "name": e.get("name", ""), "followups": counts[e["id"]]}
        for e in employees
        if counts.get(e["id"])
    ]
    leaders.sort(key=lambda r: r["followups"], reverse=True)
    return [{"rank": i + 1, **row} for i, row in enumerate(leaders)]


# ==================== FOLLOW-UP REPORT ====================

def followup_report_rows(employees: List[dict], leads: List[dict], followups: List[dict],
                         start: str, end: str, today: Tuple[str, str]) -> List[dict]:
    """
    Une ligne par employé:
      total_followups: follow-ups de ses leads créés dans [start, end]
      contacted_today: leads ayant reçu un follow-up aujourd'hui
      pending_today:   leads dus aujourd'hui sans follow-up aujourd'hui
    """
    today_start, today_end = today
    owner_by_lead = {l["id"]: l.get("employee_id") for l in leads}

    total: Counter = Counter()
    contacted_leads: Dict[str, set] = defaultdict(set)
    for followup in followups:
        lead_id = followup.get("lead_id")
        owner = owner_by_lead.get(lead_id)
        if not owner:
            continue
        created_at = followup.get("created_at")
        if _in_window(created_at, start, end):
            total[owner] += 1
        if _in_window(created_at, today_start, today_end):
            contacted_leads[owner].add(lead_id)

    pending: Counter = Counter()
    for lead in leads:
        owner = lead.get("employee_id")
        if not owner or not _in_window(lead.get("next_followup_date"), today_start, today_end):
            continue
        if lead["id"] not in contacted_leads[owner]:
            pending[owner] += 1

    return [
        {
            "employee_name": e.get("name", ""),
            "total_followups": total[e["id"]],
            "contacted_today": len(contacted_leads[e["id"]]),
            "pending_today": pending[e["id"]],
        }
        for e in employees
    ]


def count_due_today(leads: List[dict], followups: List[dict],
                    today: Tuple[str, str]) -> Dict[str, int]:
    """Compteurs de la carte dashboard: leads dus aujourd'hui et ceux encore en attente"""
    today_start, today_end = today
    contacted = {
        f.get("lead_id") for f in followups
        if _in_window(f.get("created_at"), today_start, today_end)
    }
    due = [l for l in leads if _in_window(l.get("next_followup_date"), today_start, today_end)]
    return {
        "due_today": len(due),
        "pending_today": sum(1 for l in due if l["id"] not in contacted),
    }


# ==================== STATUS CARDS ====================

def trend_metric(current: float, previous: float = 0) -> Dict[str, object]:
    """{value, diff, trend}: trend 'up' si la valeur n'a pas baissé"""
    diff = current - previous
    if isinstance(diff, float):
        diff = round(diff, 2)
    return {"value": current, "diff": diff, "trend": "up" if diff >= 0 else "down"}
