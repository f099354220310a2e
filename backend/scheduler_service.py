"""
Scheduler pour les tâches automatiques XY CRM
- Digest quotidien des follow-ups et visites AMS à 9h
- Purge horaire des sessions et codes OTP expirés
"""

import logging
import asyncio
from collections import defaultdict
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from config import db, SCHEDULER_TIMEZONE, day_bounds, now_iso, utcnow

logger = logging.getLogger("scheduler")


class TaskScheduler:
    """Gestionnaire de tâches planifiées"""

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone=SCHEDULER_TIMEZONE)

    def start(self):
        """Démarre le scheduler avec toutes les tâches"""
        # Digest quotidien à 9h
        self.scheduler.add_job(
            self.send_daily_digest,
            CronTrigger(hour=9, minute=0),
            id="daily_followup_digest",
            name="Digest follow-ups du jour",
            replace_existing=True
        )

        # Purge toutes les heures
        self.scheduler.add_job(
            self.cleanup_expired,
            CronTrigger(minute=0),
            id="cleanup_expired",
            name="Purge sessions & OTP expirés",
            replace_existing=True
        )

        self.scheduler.start()
        logger.info("Scheduler démarré avec succès")

    def stop(self):
        """Arrête le scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler arrêté")

    # ==================== TÂCHES PLANIFIÉES ====================

    async def send_daily_digest(self):
        """Envoie à chaque employé actif ses follow-ups et visites AMS du jour"""
        from email_service import email_service

        try:
            start, end = day_bounds(utcnow())
            window = {"$gte": start, "$lte": end}

            leads = await db.leads.find(
                {"next_followup_date": window, "employee_id": {"$ne": None}},
                {"_id": 0, "id": 1, "name": 1, "phone": 1, "status": 1, "employee_id": 1}
            ).to_list(5000)
            visits = await db.ams.find(
                {"visit_date": window, "status": "SCHEDULED"},
                {"_id": 0}
            ).to_list(5000)

            leads_by_employee = defaultdict(list)
            for lead in leads:
                leads_by_employee[lead["employee_id"]].append(lead)

            customer_ids = list({v.get("customer_id") for v in visits})
            product_ids = list({v.get("product_id") for v in visits})
            customers = {
                c["id"]: c.get("customer_name", "")
                async for c in db.customers.find({"id": {"$in": customer_ids}}, {"_id": 0, "id": 1, "customer_name": 1})
            }
            products = {
                p["id"]: p.get("name", "")
                async for p in db.products.find({"id": {"$in": product_ids}}, {"_id": 0, "id": 1, "name": 1})
            }
            visits_by_employee = defaultdict(list)
            for visit in visits:
                visit["customer_name"] = customers.get(visit.get("customer_id"), "")
                visit["product_name"] = products.get(visit.get("product_id"), "")
                visits_by_employee[visit.get("employee_id")].append(visit)

            employee_ids = set(leads_by_employee) | set(visits_by_employee)
            employees = await db.employees.find(
                {"id": {"$in": list(employee_ids)}, "is_active": True},
                {"_id": 0, "id": 1, "name": 1, "email": 1}
            ).to_list(5000)

            sent = 0
            for employee in employees:
                ok = await asyncio.to_thread(
                    email_service.send_daily_digest,
                    employee["email"],
                    employee.get("name", ""),
                    leads_by_employee.get(employee["id"], []),
                    visits_by_employee.get(employee["id"], []),
                )
                if ok:
                    sent += 1

            logger.info(f"[DIGEST] {sent}/{len(employees)} digests envoyés")

        except Exception as e:
            logger.error(f"[DIGEST] Erreur: {str(e)}")

    async def cleanup_expired(self):
        """Supprime les sessions expirées et les OTP expirés non vérifiés"""
        try:
            now = now_iso()
            sessions = await db.sessions.delete_many({"expires_at": {"$lt": now}})
            otps = await db.otps.delete_many({"expires_at": {"$lt": now}, "verified": False})
            logger.info(
                f"[CLEANUP] sessions={sessions.deleted_count} otps={otps.deleted_count}"
            )
        except Exception as e:
            logger.error(f"[CLEANUP] Erreur: {str(e)}")


# Instance globale
task_scheduler = TaskScheduler()
