import os
import unittest

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_SESSION_SECRET", "unit-test-secret")

from crm_endpoints import handle_contacts, handle_projects  # noqa: E402
from shared.db import Contact  # noqa: E402
from tests.helpers import (  # noqa: E402
    json_body,
    make_provider,
    make_request,
    make_settings,
    seed_company,
    seed_user,
    token_for,
)


class CrmTenantIsolationTests(unittest.TestCase):
    def setUp(self):
        self.provider = make_provider()
        self.settings = make_settings()
        self.company_a = seed_company(self.provider, "Tenant A")
        self.company_b = seed_company(self.provider, "Tenant B")
        self.user_a = seed_user(self.provider, self.company_a, "a@tenant-a.io")
        self.user_b = seed_user(self.provider, self.company_b, "b@tenant-b.io")
        self.token_a = token_for(self.user_a, self.company_a)
        self.token_b = token_for(self.user_b, self.company_b)

    def tearDown(self):
        self.provider.dispose()

    def _contacts(self, method, token, **kwargs):
        return handle_contacts(
            make_request(method, "contacts", token=token, **kwargs),
            provider=self.provider,
            settings=self.settings,
        )

    def _create_contact(self, token, **body):
        payload = {"name": "Grace Hopper", "email": "grace@navy.mil"}
        payload.update(body)
        resp = self._contacts("POST", token, body=payload)
        self.assertEqual(resp.status_code, 201)
        return json_body(resp)

    def _row_count(self):
        with self.provider.session() as db:
            return db.query(Contact).count()

    def test_create_ignores_client_supplied_company(self):
        created = self._create_contact(self.token_a, companyId=self.company_b, company_id=self.company_b)
        self.assertEqual(created["companyId"], self.company_a)
        self.assertEqual(created["createdBy"], self.user_a)
        with self.provider.session() as db:
            self.assertEqual(db.get(Contact, created["id"]).company_id, self.company_a)

    def test_other_tenant_never_sees_record(self):
        created = self._create_contact(self.token_a)

        listed_b = json_body(self._contacts("GET", self.token_b))
        self.assertEqual(listed_b, {"contacts": []})
        listed_a = json_body(self._contacts("GET", self.token_a))
        self.assertEqual([item["id"] for item in listed_a["contacts"]], [created["id"]])

        single = self._contacts("GET", self.token_b, route_params={"id": str(created["id"])})
        self.assertEqual(single.status_code, 404)

    def test_cross_tenant_update_and_delete_are_not_found(self):
        created = self._create_contact(self.token_a)
        route_params = {"id": str(created["id"])}

        updated = self._contacts("PUT", self.token_b, route_params=route_params, body={"name": "Mallory"})
        self.assertEqual(updated.status_code, 404)
        deleted = self._contacts("DELETE", self.token_b, route_params=route_params)
        self.assertEqual(deleted.status_code, 404)

        with self.provider.session() as db:
            self.assertEqual(db.get(Contact, created["id"]).name, "Grace Hopper")

    def test_second_delete_is_not_found(self):
        created = self._create_contact(self.token_a)
        route_params = {"id": str(created["id"])}
        first = self._contacts("DELETE", self.token_a, route_params=route_params)
        self.assertEqual(first.status_code, 204)
        self.assertEqual(first.get_body(), b"")
        second = self._contacts("DELETE", self.token_a, route_params=route_params)
        self.assertEqual(second.status_code, 404)
        self.assertEqual(json_body(second), {"error": "Contact not found"})

    def test_unauthenticated_request_leaves_store_untouched(self):
        before = self._row_count()
        for headers in ({}, {"Authorization": "Token abc"}, {"Authorization": "Bearer not.valid"}):
            with self.subTest(headers=headers):
                resp = handle_contacts(
                    make_request("POST", "contacts", headers=headers, body={"name": "X", "email": "x@y.io"}),
                    provider=self.provider,
                    settings=self.settings,
                )
                self.assertEqual(resp.status_code, 401)
                self.assertIn("error", json_body(resp))
        self.assertEqual(self._row_count(), before)

    def test_token_signed_with_other_secret_is_rejected(self):
        forged = token_for(self.user_a, self.company_b, secret="someone-elses-secret")
        resp = self._contacts("GET", forged)
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(json_body(resp), {"error": "Invalid token"})

    def test_projects_are_partitioned_too(self):
        resp = handle_projects(
            make_request("POST", "projects", token=self.token_a, body={"name": "Apollo"}),
            provider=self.provider,
            settings=self.settings,
        )
        self.assertEqual(resp.status_code, 201)
        listed = handle_projects(make_request("GET", "projects", token=self.token_b), provider=self.provider, settings=self.settings)
        self.assertEqual(json_body(listed), {"projects": []})


if __name__ == "__main__":
    unittest.main()
