"""
XY CRM - Permissions & tenant isolation
Tests: access level presets, company_access filtering, tenant check.
Run: cd backend && pytest tests/test_permissions.py -v
"""

import pytest
from fastapi import HTTPException

from services.permissions import (
    ACCESS_LEVEL_PRESETS,
    ALL_PERMISSION_KEYS,
    company_covers,
    compute_permissions,
    ensure_same_company,
    user_has_permission,
)


class TestCompanyAccess:

    def test_full_covers_everything(self):
        assert all(company_covers("FULL", key) for key in ALL_PERMISSION_KEYS)

    def test_module_restriction(self):
        assert company_covers("LEADS", "leads.manage") is True
        assert company_covers("LEADS", "customers.manage") is False
        assert company_covers("AMS", "ams.manage") is True
        assert company_covers("AMS", "reports.view") is False

    def test_keys_without_module_always_covered(self):
        assert company_covers("AMS", "dashboard.view") is True
        assert company_covers("LEADS", "catalog.manage") is True


class TestComputePermissions:

    def test_admin_gets_every_key(self):
        perms = compute_permissions("admin", "ALL_ACCESS", "FULL")
        assert all(perms[key] for key in ALL_PERMISSION_KEYS)

    def test_admin_limited_by_company_access(self):
        perms = compute_permissions("admin", "ADMIN", "AMS")
        assert perms["ams.manage"] is True
        assert perms["leads.view"] is False
        assert perms["deals.manage"] is False
        assert perms["employees.manage"] is True

    def test_all_access_employee_cannot_manage_employees(self):
        perms = compute_permissions("employee", "ALL_ACCESS", "FULL")
        assert perms["employees.manage"] is False
        assert perms["deals.manage"] is True

    def test_follow_ups_preset(self):
        perms = compute_permissions("employee", "FOLLOW_UPS", "FULL")
        granted = sorted(k for k, v in perms.items() if v)
        assert granted == sorted(ACCESS_LEVEL_PRESETS["FOLLOW_UPS"])
        assert perms["leads.manage"] is False

    def test_unknown_level_grants_nothing(self):
        perms = compute_permissions("employee", "JANITOR", "FULL")
        assert not any(perms.values())

    def test_every_key_present(self):
        assert set(compute_permissions("employee", "AMS", "FULL")) == set(ALL_PERMISSION_KEYS)


class TestUserChecks:

    def test_precomputed_permissions_win(self):
        user = {"role": "admin", "permissions": {"leads.view": False}}
        assert user_has_permission(user, "leads.view") is False

    def test_computed_on_the_fly(self):
        user = {"role": "employee", "access_level": "DEALS", "company_access": "CUSTOMER"}
        assert user_has_permission(user, "deals.manage") is True
        assert user_has_permission(user, "leads.view") is False

    def test_same_company_passes(self):
        ensure_same_company({"company_id": "c1", "email": "a@b.co"}, "c1")

    def test_other_company_forbidden(self):
        with pytest.raises(HTTPException) as exc:
            ensure_same_company({"company_id": "c1", "email": "a@b.co"}, "c2")
        assert exc.value.status_code == 403
