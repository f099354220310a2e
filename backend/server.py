"""
XY CRM - API Backend
Leads, follow-ups, clients, deals, visites AMS - multi-société

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
import logging

from config import CORS_ORIGINS, SCHEDULER_ENABLED, client, db

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("xy_crm")

# Créer l'app
app = FastAPI(
    title="XY CRM",
    description="CRM multi-société: leads, clients, deals et AMS",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== IMPORT DES ROUTES ====================

from routes import (
    auth, companies, leads, followups, sources, products, categories,
    employees, customers, deals, ams, dashboard, reports
)
from scheduler_service import task_scheduler

# Routes avec préfixe /api (auth et /company en premier: chemins fixes avant /{company_id})
app.include_router(auth.router, prefix="/api")
app.include_router(companies.router, prefix="/api")
app.include_router(followups.router, prefix="/api")
app.include_router(leads.router, prefix="/api")
app.include_router(sources.router, prefix="/api")
app.include_router(products.router, prefix="/api")
app.include_router(categories.router, prefix="/api")
app.include_router(employees.router, prefix="/api")
app.include_router(customers.router, prefix="/api")
app.include_router(deals.router, prefix="/api")
app.include_router(ams.router, prefix="/api")
app.include_router(dashboard.router, prefix="/api")
app.include_router(reports.router, prefix="/api")

# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    return {
        "name": "XY CRM API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP ====================

TENANT_COLLECTIONS = [
    "admins", "employees", "leads", "followups", "sources", "products",
    "categories", "customers", "deals", "payments", "ams", "activity_logs",
]


@app.on_event("startup")
async def startup():
    logger.info("🚀 XY CRM démarré")

    # Comptes & sessions
    await db.admins.create_index("email", unique=True)
    await db.employees.create_index("email", unique=True)
    await db.companies.create_index("domain", unique=True)
    await db.otps.create_index("email", unique=True)
    await db.sessions.create_index("token")
    await db.sessions.create_index("expires_at")

    # Données par société
    for name in TENANT_COLLECTIONS:
        await db[name].create_index("company_id")
    await db.followups.create_index("lead_id")
    await db.payments.create_index("deal_id")
    await db.leads.create_index("next_followup_date")
    await db.ams.create_index("visit_date")

    logger.info("✅ Index MongoDB créés")

    if SCHEDULER_ENABLED:
        task_scheduler.start()


@app.on_event("shutdown")
async def shutdown_db_client():
    if SCHEDULER_ENABLED:
        task_scheduler.stop()
    client.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
