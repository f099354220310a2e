"""
XY CRM - Routes Dashboard
Camembert des statuts, cartes de synthèse et leaderboard.

Les cartes comparent la situation actuelle à celle du début de journée:
diff = ce qui a été créé aujourd'hui.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from config import day_bounds, db, now_iso
from services.lead_filters import open_range_filter
from services.leaderboard import count_due_today, rank_best_performers, rank_followup_leaders, trend_metric
from services.permissions import require_company_permission

logger = logging.getLogger("dashboard")

router = APIRouter(prefix="/{company_id}", tags=["Dashboard"])

LEAD_STATUS_CARDS = {
    "new_leads": "NEW",
    "contacted_leads": "IN_PROGRESS",
    "customer_leads": "CUSTOMER",
    "rejected_leads": "REJECTED",
}


@router.get("/pie-chart")
async def pie_chart(
    company_id: str,
    user: dict = Depends(require_company_permission("dashboard.view"))
):
    """[NEW, IN_PROGRESS, CUSTOMER]"""
    data = []
    for status in ("NEW", "IN_PROGRESS", "CUSTOMER"):
        data.append(await db.leads.count_documents({"company_id": company_id, "status": status}))
    return {"success": True, "data": data}


@router.get("/status-card")
async def status_card(
    company_id: str,
    employee_id: Optional[str] = None,
    user: dict = Depends(require_company_permission("dashboard.view"))
):
    today = day_bounds(now_iso())
    cutoff = today[0]

    lead_query = {"company_id": company_id}
    if employee_id:
        lead_query["employee_id"] = employee_id

    leads = await db.leads.find(
        lead_query, {"_id": 0, "id": 1, "status": 1, "next_followup_date": 1, "created_at": 1}
    ).to_list(100000)

    customer_query = {"company_id": company_id}
    if employee_id:
        customer_query["lead_id"] = {"$in": [l["id"] for l in leads]}
    customers = await db.customers.find(customer_query, {"_id": 0, "id": 1, "created_at": 1}).to_list(100000)

    deal_query = {"company_id": company_id}
    if employee_id:
        deal_query["customer_id"] = {"$in": [c["id"] for c in customers]}
    deals = await db.deals.find(
        deal_query,
        {"_id": 0, "deal_approval_value": 1, "advance_payment": 1, "balance_amount": 1, "created_at": 1}
    ).to_list(100000)

    followups = await db.followups.find(
        {"company_id": company_id, "created_at": {"$gte": today[0], "$lte": today[1]}},
        {"_id": 0, "lead_id": 1, "created_at": 1}
    ).to_list(100000)

    def old(docs):
        return [d for d in docs if (d.get("created_at") or "") < cutoff]

    def total(docs, field):
        return round(sum(float(d.get(field) or 0) for d in docs), 2)

    data = {}
    for card, status in LEAD_STATUS_CARDS.items():
        current = [l for l in leads if l.get("status") == status]
        data[card] = trend_metric(len(current), len(old(current)))
    data["total_leads"] = trend_metric(len(leads), len(old(leads)))
    data["total_customers"] = trend_metric(len(customers), len(old(customers)))
    data["total_deals"] = trend_metric(len(deals), len(old(deals)))

    due = count_due_today(leads, followups, today)
    data["total_followup_today"] = trend_metric(due["due_today"])
    data["pending_followup_today"] = trend_metric(due["pending_today"])

    data["total_deal_value"] = trend_metric(total(deals, "deal_approval_value"), total(old(deals), "deal_approval_value"))
    data["total_advance_received"] = trend_metric(total(deals, "advance_payment"), total(old(deals), "advance_payment"))
    data["total_outstanding"] = trend_metric(total(deals, "balance_amount"), total(old(deals), "balance_amount"))

    return {"success": True, "data": data}


@router.get("/leaderboard")
async def leaderboard(
    company_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user: dict = Depends(require_company_permission("dashboard.view"))
):
    """
    best_performers: employés ayant un follow-up prévu dans la fenêtre
    followup_leaders: employés ayant créé des follow-ups dans la fenêtre
    start_date et end_date sont des bornes indépendantes, chacune optionnelle.
    """
    window = open_range_filter(start_date, end_date) or {}
    start, end = window.get("$gte"), window.get("$lte")

    employees = await db.employees.find(
        {"company_id": company_id, "is_deleted": {"$ne": True}}, {"_id": 0, "id": 1, "name": 1}
    ).to_list(10000)
    leads = await db.leads.find(
        {"company_id": company_id}, {"_id": 0, "id": 1, "employee_id": 1, "status": 1, "next_followup_date": 1}
    ).to_list(100000)

    followup_query = {"company_id": company_id}
    if window:
        followup_query["created_at"] = window
    followups = await db.followups.find(followup_query, {"_id": 0, "lead_id": 1, "created_at": 1}).to_list(100000)

    return {
        "success": True,
        "best_performers": rank_best_performers(employees, leads, start, end),
        "followup_leaders": rank_followup_leaders(employees, leads, followups, start, end),
    }
