from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from common.permissions import get_user_role, user_can_operate_branch, user_has_capability
from core.models import AuditLog, Branch


class BranchListTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.store = Branch.objects.create(code="st1", name="Downtown Store")
        self.warehouse = Branch.objects.create(code="WH1", name="Main Warehouse", is_warehouse=True)
        self.closed = Branch.objects.create(code="OLD", name="Closed Store", is_active=False)

        self.clerk = self.user_model.objects.create_user(
            username="branch-clerk",
            password="pass1234",
            branch=self.store,
            role="clerk",
        )
        self.admin = self.user_model.objects.create_user(
            username="branch-admin",
            password="pass1234",
            role="admin",
        )

    def test_branch_code_is_normalized_on_save(self):
        self.assertEqual(self.store.code, "ST1")

    def test_list_returns_active_branches_warehouse_first(self):
        self.client.force_authenticate(user=self.clerk)

        response = self.client.get("/api/v1/branches/")

        self.assertEqual(response.status_code, 200)
        codes = [item["code"] for item in response.json()]
        self.assertEqual(codes, ["WH1", "ST1"])
        self.assertNotIn("timezone", response.json()[0])

    def test_clerk_cannot_include_inactive_branches(self):
        self.client.force_authenticate(user=self.clerk)

        response = self.client.get("/api/v1/branches/?include_inactive=1")

        self.assertNotIn("OLD", [item["code"] for item in response.json()])

    def test_admin_can_include_inactive_branches(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/branches/?include_inactive=1")

        self.assertIn("OLD", [item["code"] for item in response.json()])

    def test_unauthenticated_request_gets_error_envelope(self):
        response = self.client.get("/api/v1/branches/")

        self.assertEqual(response.status_code, 401)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["code"], "not_authenticated")
        self.assertEqual(payload["status"], 401)


class BranchManagementTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.branch = Branch.objects.create(code="HQ", name="Head Office")
        self.clerk = self.user_model.objects.create_user(
            username="manage-clerk",
            password="pass1234",
            branch=self.branch,
            role="clerk",
        )
        self.admin = self.user_model.objects.create_user(
            username="manage-admin",
            password="pass1234",
            role="admin",
        )

    def test_clerk_cannot_create_branch_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.clerk)
        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.post("/api/v1/branches/", {"code": "NEW", "name": "New Store"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_admin_creates_branch_with_audit_log(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/branches/",
            {"code": "nb", "name": "North Branch", "city": "Cairo"},
            format="json",
            HTTP_X_REQUEST_ID="req-branch-1",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["code"], "NB")
        self.assertTrue(
            AuditLog.objects.filter(action="branch.create", entity="core.branch", request_id="req-branch-1").exists()
        )

    def test_duplicate_code_is_rejected_case_insensitively(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post("/api/v1/branches/", {"code": "hq", "name": "Another"}, format="json")

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("code", payload["errors"])

    def test_identity_fields_are_immutable(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/branches/{self.branch.id}/", {"name": "Renamed"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.branch.refresh_from_db()
        self.assertEqual(self.branch.name, "Head Office")

    def test_admin_can_deactivate_branch(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/branches/{self.branch.id}/", {"is_active": False}, format="json")

        self.assertEqual(response.status_code, 200)
        self.branch.refresh_from_db()
        self.assertFalse(self.branch.is_active)
        log = AuditLog.objects.get(action="branch.update")
        self.assertTrue(log.before_snapshot["is_active"])
        self.assertFalse(log.after_snapshot["is_active"])

    def test_branches_cannot_be_deleted(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/branches/{self.branch.id}/")

        self.assertEqual(response.status_code, 405)
        self.assertTrue(Branch.objects.filter(id=self.branch.id).exists())


class RoleCapabilityTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.branch_a = Branch.objects.create(code="RA", name="Role A")
        self.branch_b = Branch.objects.create(code="RB", name="Role B")

    def _user(self, username, role, branch=None, **extra):
        return self.user_model.objects.create_user(username=username, password="pass1234", role=role, branch=branch, **extra)

    def test_clerk_capabilities(self):
        clerk = self._user("cap-clerk", "clerk", self.branch_a)

        self.assertTrue(user_has_capability(clerk, "stock.receive"))
        self.assertTrue(user_has_capability(clerk, "stock.transfer.complete"))
        self.assertFalse(user_has_capability(clerk, "stock.transfer"))
        self.assertFalse(user_has_capability(clerk, "stock.adjust"))
        self.assertFalse(user_has_capability(clerk, "unknown.capability"))

    def test_supervisor_can_transfer_but_not_manage_branches(self):
        supervisor = self._user("cap-supervisor", "supervisor", self.branch_a)

        self.assertTrue(user_has_capability(supervisor, "stock.transfer"))
        self.assertTrue(user_has_capability(supervisor, "stock.transfer.cancel"))
        self.assertFalse(user_has_capability(supervisor, "branch.manage"))

    def test_branch_scope_for_operators(self):
        supervisor = self._user("scope-supervisor", "supervisor", self.branch_a)
        admin = self._user("scope-admin", "admin")
        unassigned = self._user("scope-none", "clerk")

        self.assertTrue(user_can_operate_branch(supervisor, self.branch_a.id))
        self.assertFalse(user_can_operate_branch(supervisor, self.branch_b.id))
        self.assertTrue(user_can_operate_branch(admin, self.branch_b.id))
        self.assertFalse(user_can_operate_branch(unassigned, self.branch_a.id))

    def test_superuser_is_treated_as_admin(self):
        root = self.user_model.objects.create_superuser(username="root", password="pass1234", email="root@example.com")

        self.assertEqual(get_user_role(root), "admin")
        self.assertTrue(user_can_operate_branch(root, self.branch_b.id))


class AuditLogTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.branch = Branch.objects.create(code="AL", name="Audit")
        self.admin = self.user_model.objects.create_user(username="audit-admin", password="pass1234", role="admin")
        self.clerk = self.user_model.objects.create_user(
            username="audit-clerk",
            password="pass1234",
            branch=self.branch,
            role="clerk",
        )

    def test_audit_logs_are_paginated_and_filterable(self):
        AuditLog.objects.create(action="stock.in", entity="inventory.inventorytransaction", branch=self.branch, actor=self.admin)
        AuditLog.objects.create(action="branch.create", entity="core.branch", branch=self.branch, actor=self.admin)
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/?entity=core.branch")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        self.assertEqual(payload["count"], 1)
        self.assertEqual(payload["results"][0]["action"], "branch.create")

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)
        log = AuditLog.objects.create(action="test.action", entity="test", branch=self.branch, actor=self.admin)

        patch_res = self.client.patch(f"/api/v1/admin/audit-logs/{log.id}/", {"action": "changed"}, format="json")
        delete_res = self.client.delete(f"/api/v1/admin/audit-logs/{log.id}/")

        self.assertEqual(patch_res.status_code, 405)
        self.assertEqual(delete_res.status_code, 405)

    def test_clerk_cannot_read_audit_logs(self):
        self.client.force_authenticate(user=self.clerk)

        response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 403)

    def test_export_writes_csv(self):
        AuditLog.objects.create(action="stock.out", entity="inventory.inventorytransaction", branch=self.branch, actor=self.admin)
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/export/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/csv")
        body = response.content.decode()
        self.assertIn("stock.out", body)
        self.assertIn("AL", body)


class TokenTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.branch = Branch.objects.create(code="TK", name="Token Branch")
        self.user = get_user_model().objects.create_user(
            username="token-user",
            email="Token@Example.com",
            password="pass1234",
            branch=self.branch,
            role="supervisor",
        )

    def test_email_is_normalized(self):
        self.assertEqual(self.user.email, "token@example.com")

    def test_token_can_be_obtained_with_email(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "TOKEN@example.com", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.json())

    def test_bad_credentials_are_rejected(self):
        response = self.client.post("/api/v1/token/", {"username": "token-user", "password": "nope"}, format="json")

        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.json()["success"])


class HealthTests(TestCase):
    def test_health_endpoints(self):
        client = APIClient()

        self.assertEqual(client.get("/healthz/").json()["status"], "ok")
        self.assertEqual(client.get("/readyz/").json()["status"], "ready")
