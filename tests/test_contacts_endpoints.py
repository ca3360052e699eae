import os
import unittest
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_SESSION_SECRET", "unit-test-secret")

from crm_endpoints import handle_contacts, handle_forms, handle_network  # noqa: E402
from tests.helpers import (  # noqa: E402
    json_body,
    make_provider,
    make_request,
    make_settings,
    seed_company,
    seed_user,
    token_for,
)


class BrokenProvider:
    @contextmanager
    def session(self):
        raise RuntimeError("database is on fire")
        yield  # pragma: no cover

    transaction = session


class ContactsEndpointTests(unittest.TestCase):
    def setUp(self):
        self.provider = make_provider()
        self.settings = make_settings()
        self.company_id = seed_company(self.provider, "Acme")
        self.user_id = seed_user(self.provider, self.company_id, "owner@acme.io", role="admin")
        self.token = token_for(self.user_id, self.company_id, "admin")

    def tearDown(self):
        self.provider.dispose()

    def _call(self, method, handler=handle_contacts, provider=None, **kwargs):
        kwargs.setdefault("token", self.token)
        return handler(
            make_request(method, "contacts", **kwargs),
            provider=provider or self.provider,
            settings=self.settings,
        )

    def _create(self, name, email, phone=None):
        body = {"name": name, "email": email}
        if phone:
            body["phone"] = phone
        resp = self._call("POST", body=body)
        self.assertEqual(resp.status_code, 201, resp.get_body())
        return json_body(resp)

    def test_create_and_fetch(self):
        created = self._create("Ada Lovelace", "ADA@example.com", "555-0100")
        self.assertEqual(created["email"], "ada@example.com")
        self.assertEqual(created["companyId"], self.company_id)

        fetched = self._call("GET", route_params={"id": str(created["id"])})
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(json_body(fetched)["name"], "Ada Lovelace")

    def test_id_may_come_from_query(self):
        created = self._create("Ada Lovelace", "ada@example.com")
        fetched = self._call("GET", params={"id": str(created["id"])})
        self.assertEqual(json_body(fetched)["id"], created["id"])

    def test_list_search_and_paging(self):
        self._create("Ada Lovelace", "ada@example.com")
        self._create("Alan Turing", "alan@example.com", "555-0199")
        self._create("Barbara Liskov", "barbara@example.com")

        found = json_body(self._call("GET", params={"search": "0199"}))["contacts"]
        self.assertEqual([item["name"] for item in found], ["Alan Turing"])

        page = json_body(self._call("GET", params={"limit": "2", "offset": "1"}))["contacts"]
        self.assertEqual([item["name"] for item in page], ["Alan Turing", "Barbara Liskov"])

    def test_invalid_paging_is_rejected(self):
        self.assertEqual(self._call("GET", params={"limit": "0"}).status_code, 400)
        self.assertEqual(self._call("GET", params={"offset": "abc"}).status_code, 400)

    def test_partial_update(self):
        created = self._create("Ada Lovelace", "ada@example.com")
        resp = self._call("PATCH", route_params={"id": str(created["id"])}, body={"phone": "555-0111"})
        self.assertEqual(resp.status_code, 200)
        body = json_body(resp)
        self.assertEqual(body["phone"], "555-0111")
        self.assertEqual(body["name"], "Ada Lovelace")

    def test_update_with_id_in_body(self):
        created = self._create("Ada Lovelace", "ada@example.com")
        resp = self._call("PUT", body={"id": created["id"], "name": "Countess Lovelace"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(json_body(resp)["name"], "Countess Lovelace")

    def test_update_without_fields(self):
        created = self._create("Ada Lovelace", "ada@example.com")
        resp = self._call("PUT", route_params={"id": str(created["id"])}, body={"companyId": 42})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(json_body(resp), {"error": "No fields to update"})

    def test_update_missing_record(self):
        resp = self._call("PUT", route_params={"id": "999"}, body={"name": "Ghost"})
        self.assertEqual(resp.status_code, 404)

    def test_non_integer_id(self):
        resp = self._call("GET", route_params={"id": "abc"})
        self.assertEqual(resp.status_code, 400)

    def test_ids_beyond_bigint_are_rejected(self):
        for route_params in ({"id": "9" * 30}, {"id": str(2**63)}):
            with self.subTest(route_params=route_params):
                resp = self._call("GET", route_params=route_params)
                self.assertEqual(resp.status_code, 400)
                self.assertEqual(json_body(resp), {"error": "id must be a positive integer"})
        resp = self._call("DELETE", route_params={"id": str(10**30)})
        self.assertEqual(json_body(resp), {"error": "id must be a positive integer"})
        resp = self._call("PUT", body={"id": 10**30, "name": "Overflow"})
        self.assertEqual(json_body(resp), {"error": "id must be a positive integer"})

    def test_paging_beyond_bigint_is_rejected(self):
        resp = self._call("GET", params={"offset": "9" * 30})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(json_body(resp), {"error": "offset is out of range"})

    def test_invalid_json_body(self):
        resp = self._call("POST", raw_body=b"{not json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(json_body(resp), {"error": "Invalid JSON body"})

    def test_json_array_body(self):
        resp = self._call("POST", raw_body=b"[1, 2]")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(json_body(resp), {"error": "Invalid JSON body"})

    def test_validation_errors_are_joined(self):
        resp = self._call("POST", body={"email": "not-an-email"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(
            json_body(resp)["error"],
            "name is required; email must be a valid email address",
        )

    def test_method_not_supported(self):
        resp = handle_forms(
            make_request("PUT", "forms", token=self.token, body={"name": "x"}),
            provider=self.provider,
            settings=self.settings,
        )
        self.assertEqual(resp.status_code, 405)
        self.assertEqual(json_body(resp), {"error": "Method Not Allowed"})

    def test_preflight_skips_auth(self):
        resp = self._call("OPTIONS", token=None, headers={"Origin": "https://app.example.com"})
        self.assertEqual(resp.status_code, 204)
        self.assertEqual(resp.headers.get("Access-Control-Allow-Origin"), "*")
        self.assertIn("DELETE", resp.headers.get("Access-Control-Allow-Methods"))

    def test_expired_token(self):
        stale = token_for(
            self.user_id,
            self.company_id,
            "admin",
            now=datetime.now(timezone.utc) - timedelta(hours=3),
        )
        resp = self._call("GET", token=stale)
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(json_body(resp), {"error": "Token expired"})

    def test_unexpected_failure_is_generic_500(self):
        with self.assertLogs("shared.http", level="ERROR"):
            resp = self._call("GET", provider=BrokenProvider())
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(json_body(resp), {"error": "Internal server error"})

    def test_network_phone_bounds(self):
        resp = handle_network(
            make_request("POST", "network", token=self.token, body={"name": "Bob", "email": "bob@x.io", "phone": "123"}),
            provider=self.provider,
            settings=self.settings,
        )
        self.assertEqual(resp.status_code, 400)
        self.assertIn("phone must be at least 7 characters", json_body(resp)["error"])

    def test_form_data_must_be_object(self):
        resp = handle_forms(
            make_request("POST", "forms", token=self.token, body={"name": "Intake", "data": ["a"]}),
            provider=self.provider,
            settings=self.settings,
        )
        self.assertEqual(resp.status_code, 400)
        ok = handle_forms(
            make_request("POST", "forms", token=self.token, body={"name": "Intake", "data": {"q1": "yes"}}),
            provider=self.provider,
            settings=self.settings,
        )
        self.assertEqual(ok.status_code, 201)
        self.assertEqual(json_body(ok)["data"], {"q1": "yes"})


if __name__ == "__main__":
    unittest.main()
