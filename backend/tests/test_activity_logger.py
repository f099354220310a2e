"""
XY CRM - Activity journal
Tests: entry shape, company scoping, journal query filters.
Run: cd backend && pytest tests/test_activity_logger.py -v
"""

from services.activity_logger import SYSTEM_ACTOR, activity_log_query, build_log_entry

ADMIN = {"id": "adm-1", "email": "admin@acme.test", "name": "Admin", "role": "admin", "company_id": "c1"}


class TestLogEntry:

    def test_entry_carries_actor_and_company(self):
        entry = build_log_entry("c1", ADMIN, "create", "lead", entity_id="l1", entity_name="Globex")
        assert entry["company_id"] == "c1"
        assert entry["user_id"] == "adm-1"
        assert entry["role"] == "admin"
        assert entry["entity_name"] == "Globex"
        assert entry["details"] == {}

    def test_explicit_company_wins_over_actor(self):
        entry = build_log_entry("c2", ADMIN, "lockout", "admin")
        assert entry["company_id"] == "c2"

    def test_missing_actor_is_system(self):
        entry = build_log_entry("c1", None, "cleanup", "session")
        assert entry["user_id"] == SYSTEM_ACTOR["id"]
        assert entry["role"] == "system"


class TestJournalQuery:

    def test_scoped_to_company(self):
        assert activity_log_query("c1") == {"company_id": "c1"}

    def test_filters(self):
        query = activity_log_query("c1", user_id="adm-1", entity_type="deal", action="delete")
        assert query == {"company_id": "c1", "user_id": "adm-1", "entity_type": "deal", "action": "delete"}

    def test_start_date_only(self):
        query = activity_log_query("c1", start_date="2026-10-01")
        assert query["created_at"] == {"$gte": "2026-10-01T00:00:00+00:00"}

    def test_invalid_dates_ignored(self):
        assert "created_at" not in activity_log_query("c1", start_date="nope", end_date="")
