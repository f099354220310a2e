"""
XY CRM - Routes Rapports xlsx

/generate-report?type=lead|followup  : export des leads ou des follow-ups filtrés
/follow-up-report                    : synthèse des follow-ups par employé
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from config import day_bounds, db, now_iso
from services.lead_filters import build_lead_query, date_range_filter
from services.leaderboard import followup_report_rows
from services.permissions import require_company_permission
from services.query_helpers import resolve_sort_field, sort_direction
from services.spreadsheet import XLSX_MEDIA_TYPE, attachment_headers, build_workbook

logger = logging.getLogger("reports")

router = APIRouter(prefix="/{company_id}", tags=["Reports"])

REPORT_TYPES = ["lead", "followup"]
LEAD_REPORT_HEADERS = [
    "ID", "Name", "Email", "Phone", "Company Name", "Status", "Priority",
    "Next Follow-up Date", "Created At", "Employee",
]
FOLLOWUP_REPORT_HEADERS = [
    "ID", "Lead ID", "Lead Name", "Last Requirement", "Status",
    "Next Follow-up Date", "Created At", "Employee",
]
SUMMARY_HEADERS = ["Employee Name", "Total Follow-Up", "Contacted Today", "Pending Today"]
REPORT_SORT_FIELDS = ["created_at", "next_followup_date", "status", "priority", "name"]


def xlsx_response(content: bytes, filename: str) -> Response:
    return Response(content=content, media_type=XLSX_MEDIA_TYPE, headers=attachment_headers(filename))


async def employee_names(company_id: str) -> dict:
    return {
        e["id"]: e.get("name", "")
        async for e in db.employees.find({"company_id": company_id}, {"_id": 0, "id": 1, "name": 1})
    }


@router.get("/generate-report")
async def generate_report(
    company_id: str,
    type: Optional[str] = None,
    employee_id: Optional[str] = None,
    product_id: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    today: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    user: dict = Depends(require_company_permission("reports.view"))
):
    """Fenêtre sur next_followup_date: ?today= (journée) sinon start_date/end_date"""
    if type not in REPORT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid report type. Use 'lead' or 'followup'.")

    window = date_range_filter(today, today) if today else date_range_filter(start_date, end_date)
    field = resolve_sort_field(sort_by, REPORT_SORT_FIELDS, "created_at")
    direction = sort_direction(sort_order)
    names = await employee_names(company_id)

    if type == "lead":
        query = build_lead_query(company_id, employee_id=employee_id, status=status, product_id=product_id)
        if window:
            query["next_followup_date"] = window
        leads = await db.leads.find(query, {"_id": 0}).sort(field, direction).to_list(100000)

        rows = [
            [
                l["id"], l.get("name"), l.get("email"), l.get("phone"), l.get("company_name"),
                l.get("status"), l.get("priority"), l.get("next_followup_date"), l.get("created_at"),
                names.get(l.get("employee_id"), ""),
            ]
            for l in leads
        ]
        content = build_workbook("Leads Report", LEAD_REPORT_HEADERS, rows)
        filename = "leads_report.xlsx"
    else:
        lead_query = {"company_id": company_id}
        if employee_id:
            lead_query["employee_id"] = employee_id
        leads = {
            l["id"]: l async for l in db.leads.find(lead_query, {"_id": 0, "id": 1, "name": 1, "employee_id": 1})
        }

        query = {"company_id": company_id, "lead_id": {"$in": list(leads)}}
        if window:
            query["next_followup_date"] = window
        followups = await db.followups.find(query, {"_id": 0}).sort(field, direction).to_list(100000)

        rows = []
        for f in followups:
            lead = leads.get(f.get("lead_id"), {})
            rows.append([
                f["id"], f.get("lead_id"), lead.get("name"), f.get("last_requirement"), f.get("status"),
                f.get("next_followup_date"), f.get("created_at"), names.get(lead.get("employee_id"), ""),
            ])
        content = build_workbook("Follow-ups Report", FOLLOWUP_REPORT_HEADERS, rows)
        filename = "followups_report.xlsx"

    logger.info(f"[REPORT] {type} company={company_id} rows={len(rows)}")
    return xlsx_response(content, filename)


@router.get("/follow-up-report")
async def follow_up_report(
    company_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    employee_id: Optional[str] = None,
    user: dict = Depends(require_company_permission("reports.view"))
):
    """Une ligne par employé: total sur la période, contactés et en attente aujourd'hui"""
    window = date_range_filter(start_date, end_date)
    if not window:
        raise HTTPException(status_code=400, detail="start_date and end_date are required")

    employee_query = {"company_id": company_id, "is_deleted": {"$ne": True}}
    if employee_id:
        employee_query["id"] = employee_id
    employees = await db.employees.find(employee_query, {"_id": 0, "id": 1, "name": 1}).sort("name", 1).to_list(10000)

    leads = await db.leads.find(
        {"company_id": company_id, "employee_id": {"$in": [e["id"] for e in employees]}},
        {"_id": 0, "id": 1, "employee_id": 1, "next_followup_date": 1}
    ).to_list(100000)
    followups = await db.followups.find(
        {"company_id": company_id, "lead_id": {"$in": [l["id"] for l in leads]}},
        {"_id": 0, "lead_id": 1, "created_at": 1}
    ).to_list(100000)

    report = followup_report_rows(
        employees, leads, followups, window["$gte"], window["$lte"], today=day_bounds(now_iso())
    )
    rows = [
        [r["employee_name"], r["total_followups"], r["contacted_today"], r["pending_today"]]
        for r in report
    ]

    logger.info(f"[REPORT] follow-up summary company={company_id} employees={len(rows)}")
    return xlsx_response(build_workbook("Follow-Up Report", SUMMARY_HEADERS, rows), "follow_up_report.xlsx")
