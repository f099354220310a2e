"""
XY CRM - Routes Deals & Paiements

deal_id lisible: 4 lettres du client + JJMM + séquence (ex: ACME1810001).
Une avance > 0 crée un paiement "Advance" rattaché au deal.
Après chaque opération sur les paiements, le solde est recalculé:
    balance_amount = approbation - avance - autres paiements
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from config import db, now_iso, parse_datetime, to_iso, utcnow
from models.customer import DealCreate, DealDelete, DealUpdate, PaymentCreate, PaymentDelete, PaymentUpdate
from services.activity_logger import log_activity
from services.deal_codes import (
    ADVANCE_PAYMENT_TYPE,
    build_deal_code,
    deal_code_prefix,
    initial_balance,
    parse_amounts,
    recompute_balance,
    to_amount,
)
from services.permissions import require_company_permission
from services.query_helpers import contains, get_pagination, resolve_sort_field, sort_direction, total_pages

logger = logging.getLogger("deals")

router = APIRouter(prefix="/{company_id}", tags=["Deals"])

DEAL_SORT_FIELDS = [
    "deal_id",
    "created_at",
    "requirement",
    "deal_value",
    "deal_approval_value",
    "advance_payment",
    "balance_amount",
]


# ==================== HELPERS ====================

def checked_amounts(values: dict) -> dict:
    """Montants du deal; 400 si l'un d'eux n'est pas numérique"""
    amounts, invalid = parse_amounts(values)
    if invalid:
        raise HTTPException(status_code=400, detail=f"Invalid amount for: {', '.join(invalid)}")
    return amounts


async def get_company_deal(company_id: str, deal_id: str) -> dict:
    deal = await db.deals.find_one({"id": deal_id}, {"_id": 0})
    if not deal:
        raise HTTPException(status_code=404, detail="Deal not found")
    if deal.get("company_id") != company_id:
        raise HTTPException(status_code=403, detail="Deal does not belong to this company")
    return deal


async def refresh_deal_balance(deal: dict) -> float:
    payments = await db.payments.find({"deal_id": deal["id"]}, {"_id": 0}).to_list(10000)
    balance = recompute_balance(deal.get("deal_approval_value"), deal.get("advance_payment"), payments)
    await db.deals.update_one({"id": deal["id"]}, {"$set": {"balance_amount": balance, "updated_at": now_iso()}})
    return balance


async def embed_customers(deals: list) -> list:
    customer_ids = {d.get("customer_id") for d in deals}
    customers = {
        c["id"]: c async for c in db.customers.find({"id": {"$in": list(customer_ids)}}, {"_id": 0})
    }
    for deal in deals:
        deal["customer"] = customers.get(deal.get("customer_id"))
    return deals


async def list_deals_page(query: dict, page: int, rows_per_page: int,
                          order_by: Optional[str], order: Optional[str]) -> dict:
    """Page 0-based triée; {deals, total_records}"""
    skip, limit = get_pagination(page, rows_per_page, zero_based=True)
    field = resolve_sort_field(order_by, DEAL_SORT_FIELDS, "deal_id")

    deals = await db.deals.find(query, {"_id": 0}) \
        .sort(field, sort_direction(order, default="asc")) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)
    total = await db.deals.count_documents(query)
    return {"deals": await embed_customers(deals), "total_records": total}


def _payment_date(value: Optional[str]) -> str:
    parsed = parse_datetime(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Invalid payment_date: {value}")
    return to_iso(parsed)


# ==================== DEALS ====================

@router.get("/deals")
async def list_deals(
    company_id: str,
    page: int = 0,
    rows_per_page: int = 10,
    search: Optional[str] = None,
    order_by: Optional[str] = None,
    order: Optional[str] = None,
    user: dict = Depends(require_company_permission("deals.manage"))
):
    query = {"company_id": company_id}
    if search:
        pattern = contains(search)
        customer_ids = [
            c["id"] async for c in db.customers.find({"company_id": company_id, "customer_name": pattern}, {"id": 1})
        ]
        query["$or"] = [
            {"deal_id": pattern},
            {"requirement": pattern},
            {"customer_id": {"$in": customer_ids}},
        ]
    return await list_deals_page(query, page, rows_per_page, order_by, order)


@router.post("/deals", status_code=201)
async def create_deal(
    company_id: str,
    data: DealCreate,
    user: dict = Depends(require_company_permission("deals.manage"))
):
    customer = await db.customers.find_one({"id": data.customer_id, "company_id": company_id}, {"_id": 0})
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    today = utcnow()
    prefix = deal_code_prefix(customer["customer_name"], today)
    existing_count = await db.deals.count_documents({
        "customer_id": customer["id"],
        "deal_id": {"$regex": f"^{prefix}"}
    })

    amounts = checked_amounts({
        "deal_value": data.deal_value,
        "deal_approval_value": data.deal_approval_value,
        "advance_payment": data.advance_payment,
        "balance_amount": data.balance_amount,
    })
    advance = amounts.get("advance_payment", 0.0)
    deal = {
        "id": str(uuid.uuid4()),
        "company_id": company_id,
        "customer_id": customer["id"],
        "deal_id": build_deal_code(customer["customer_name"], today, existing_count),
        "requirement": data.requirement,
        "deal_value": amounts.get("deal_value", 0.0),
        "deal_approval_value": amounts.get("deal_approval_value", 0.0),
        "advance_payment": advance,
        "balance_amount": initial_balance(
            amounts.get("deal_approval_value"), advance, amounts.get("balance_amount")
        ),
        "created_by": user["id"],
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.deals.insert_one(deal)
    deal.pop("_id", None)

    if advance > 0:
        await db.payments.insert_one({
            "id": str(uuid.uuid4()),
            "company_id": company_id,
            "deal_id": deal["id"],
            "amount": advance,
            "payment_date": now_iso(),
            "payment_type": ADVANCE_PAYMENT_TYPE,
            "is_deal_advance": True,
            "created_by_id": user["id"],
            "created_at": now_iso(),
        })

    logger.info(f"[DEAL] Created {deal['deal_id']} customer={customer['id']} advance={advance}")
    await log_activity(user=user, action="create", entity_type="deal", entity_id=deal["id"], entity_name=deal["deal_id"])
    return deal


@router.put("/deals")
async def update_deal(
    company_id: str,
    data: DealUpdate,
    user: dict = Depends(require_company_permission("deals.manage"))
):
    """Mise à jour partielle; le paiement d'avance suit advance_payment"""
    deal = await get_company_deal(company_id, data.id)

    update_data = {}
    if data.requirement is not None:
        update_data["requirement"] = data.requirement
    update_data.update(checked_amounts({
        field: getattr(data, field)
        for field in ("deal_value", "deal_approval_value", "advance_payment")
    }))
    update_data["updated_at"] = now_iso()
    await db.deals.update_one({"id": deal["id"]}, {"$set": update_data})
    deal.update(update_data)

    if "advance_payment" in update_data:
        advance = update_data["advance_payment"]
        existing = await db.payments.find_one({"deal_id": deal["id"], "is_deal_advance": True})
        if existing and advance > 0:
            await db.payments.update_one({"id": existing["id"]}, {"$set": {"amount": advance}})
        elif existing:
            await db.payments.delete_one({"id": existing["id"]})
        elif advance > 0:
            await db.payments.insert_one({
                "id": str(uuid.uuid4()),
                "company_id": company_id,
                "deal_id": deal["id"],
                "amount": advance,
                "payment_date": now_iso(),
                "payment_type": ADVANCE_PAYMENT_TYPE,
                "is_deal_advance": True,
                "created_by_id": user["id"],
                "created_at": now_iso(),
            })

    await refresh_deal_balance(deal)
    await log_activity(user=user, action="update", entity_type="deal", entity_id=deal["id"], entity_name=deal["deal_id"])
    return await db.deals.find_one({"id": deal["id"]}, {"_id": 0})


@router.delete("/deals")
async def delete_deal(
    company_id: str,
    data: DealDelete = Body(...),
    user: dict = Depends(require_company_permission("deals.manage"))
):
    deal = await get_company_deal(company_id, data.id)
    payments = await db.payments.delete_many({"deal_id": deal["id"]})
    await db.deals.delete_one({"id": deal["id"]})

    await log_activity(
        user=user,
        action="delete",
        entity_type="deal",
        entity_id=deal["id"],
        entity_name=deal["deal_id"],
        details={"payments_deleted": payments.deleted_count}
    )
    return {"message": "Deal deleted successfully"}


# ==================== PAIEMENTS ====================

@router.get("/deals/payments")
async def list_payments(
    company_id: str,
    deal_id: Optional[str] = None,
    user: dict = Depends(require_company_permission("deals.manage"))
):
    """Paiements d'un deal, les plus récents d'abord, avec leur auteur"""
    if not deal_id:
        raise HTTPException(status_code=400, detail="deal_id is required")
    await get_company_deal(company_id, deal_id)

    payments = await db.payments.find({"deal_id": deal_id}, {"_id": 0}).sort("payment_date", -1).to_list(10000)

    creator_ids = {p.get("created_by_id") for p in payments if p.get("created_by_id")}
    creators = {}
    for collection in (db.admins, db.employees):
        async for account in collection.find({"id": {"$in": list(creator_ids)}}, {"_id": 0, "id": 1, "name": 1, "email": 1}):
            creators[account["id"]] = account
    for payment in payments:
        payment["created_by"] = creators.get(payment.get("created_by_id"))

    return payments


@router.post("/deals/payments", status_code=201)
async def create_payment(
    company_id: str,
    data: PaymentCreate,
    user: dict = Depends(require_company_permission("deals.manage"))
):
    deal = await get_company_deal(company_id, data.deal_id)
    amount = to_amount(data.amount, default=None)
    if amount is None or amount <= 0:
        raise HTTPException(status_code=400, detail="Amount must be a positive number")

    payment = {
        "id": str(uuid.uuid4()),
        "company_id": company_id,
        "deal_id": deal["id"],
        "amount": amount,
        "payment_date": _payment_date(data.payment_date),
        "payment_type": data.payment_type,
        "remarks": data.remarks,
        "is_deal_advance": False,
        "created_by_id": data.created_by_id or user["id"],
        "created_at": now_iso(),
    }
    await db.payments.insert_one(payment)
    payment.pop("_id", None)

    balance = await refresh_deal_balance(deal)
    await log_activity(
        user=user,
        action="create",
        entity_type="payment",
        entity_id=payment["id"],
        entity_name=deal["deal_id"],
        details={"amount": amount, "balance_amount": balance}
    )
    return {**payment, "balance_amount": balance}


@router.put("/deals/payments")
async def update_payment(
    company_id: str,
    data: PaymentUpdate,
    user: dict = Depends(require_company_permission("deals.manage"))
):
    payment = await db.payments.find_one({"id": data.id}, {"_id": 0})
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    deal = await get_company_deal(company_id, payment["deal_id"])

    update_data = {}
    if data.amount not in (None, ""):
        amount = to_amount(data.amount, default=None)
        if amount is None or amount <= 0:
            raise HTTPException(status_code=400, detail="Amount must be a positive number")
        update_data["amount"] = amount
    if data.payment_date:
        update_data["payment_date"] = _payment_date(data.payment_date)
    if data.payment_type is not None:
        update_data["payment_type"] = data.payment_type
    if data.remarks is not None:
        update_data["remarks"] = data.remarks
    update_data["updated_at"] = now_iso()

    await db.payments.update_one({"id": payment["id"]}, {"$set": update_data})

    if payment.get("is_deal_advance") and "amount" in update_data:
        deal["advance_payment"] = update_data["amount"]
        await db.deals.update_one({"id": deal["id"]}, {"$set": {"advance_payment": update_data["amount"]}})

    balance = await refresh_deal_balance(deal)
    await log_activity(user=user, action="update", entity_type="payment", entity_id=payment["id"], entity_name=deal["deal_id"])

    updated = await db.payments.find_one({"id": payment["id"]}, {"_id": 0})
    return {**updated, "balance_amount": balance}


@router.delete("/deals/payments")
async def delete_payment(
    company_id: str,
    data: PaymentDelete = Body(...),
    user: dict = Depends(require_company_permission("deals.manage"))
):
    """Supprime le paiement; son montant revient dans le solde"""
    payment = await db.payments.find_one({"id": data.id}, {"_id": 0})
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    deal = await get_company_deal(company_id, payment["deal_id"])

    await db.payments.delete_one({"id": payment["id"]})
    if payment.get("is_deal_advance"):
        deal["advance_payment"] = 0.0
        await db.deals.update_one({"id": deal["id"]}, {"$set": {"advance_payment": 0.0}})

    balance = await refresh_deal_balance(deal)
    await log_activity(
        user=user,
        action="delete",
        entity_type="payment",
        entity_id=payment["id"],
        entity_name=deal["deal_id"],
        details={"amount": payment.get("amount")}
    )
    return {"message": "Payment deleted successfully", "balance_amount": balance}


# ==================== CLIENTS AVEC DEALS ====================

@router.get("/dealcustomer")
async def list_deal_customers(
    company_id: str,
    page: int = 0,
    rows_per_page: int = 10,
    search: Optional[str] = None,
    user: dict = Depends(require_company_permission("deals.manage"))
):
    """Clients ayant au moins un deal, avec le total des deals et des soldes"""
    totals = {}
    pipeline = [
        {"$match": {"company_id": company_id}},
        {"$group": {
            "_id": "$customer_id",
            "total_deal_value": {"$sum": "$deal_value"},
            "total_balance_amount": {"$sum": "$balance_amount"},
            "deal_count": {"$sum": 1},
        }},
    ]
    async for row in db.deals.aggregate(pipeline):
        totals[row["_id"]] = row

    query = {"company_id": company_id, "id": {"$in": list(totals)}}
    if search:
        pattern = contains(search)
        query["$or"] = [{"customer_name": pattern}, {"email": pattern}, {"mobile_number": pattern}]

    skip, limit = get_pagination(page, rows_per_page, zero_based=True)
    customers = await db.customers.find(query, {"_id": 0}) \
        .sort("customer_name", 1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)
    total = await db.customers.count_documents(query)

    for customer in customers:
        row = totals.get(customer["id"], {})
        customer["total_deal_value"] = round(row.get("total_deal_value", 0) or 0, 2)
        customer["total_balance_amount"] = round(row.get("total_balance_amount", 0) or 0, 2)
        customer["deal_count"] = row.get("deal_count", 0)

    return {"customers": customers, "total_records": total, "total_pages": total_pages(total, limit)}


@router.get("/dealcustomer/deals")
async def list_customer_deals(
    company_id: str,
    customer_id: Optional[str] = None,
    page: int = 0,
    rows_per_page: int = 10,
    order_by: Optional[str] = None,
    order: Optional[str] = None,
    user: dict = Depends(require_company_permission("deals.manage"))
):
    if not customer_id:
        raise HTTPException(status_code=400, detail="customer_id is required")
    if not await db.customers.find_one({"id": customer_id, "company_id": company_id}):
        raise HTTPException(status_code=404, detail="Customer not found")

    query = {"company_id": company_id, "customer_id": customer_id}
    return await list_deals_page(query, page, rows_per_page, order_by, order)
