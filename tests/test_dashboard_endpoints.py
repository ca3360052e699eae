import os
import unittest
from datetime import datetime

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_SESSION_SECRET", "unit-test-secret")

from dashboard_endpoints import handle_dashboard, monthly_revenue  # noqa: E402
from health_endpoints import handle_health  # noqa: E402
from shared.db import Contact, Customer, Invoice, Task  # noqa: E402
from tests.helpers import (  # noqa: E402
    json_body,
    make_provider,
    make_request,
    make_settings,
    seed_company,
    seed_user,
    token_for,
)


class DashboardEndpointTests(unittest.TestCase):
    def setUp(self):
        self.provider = make_provider()
        self.settings = make_settings()
        self.company_id = seed_company(self.provider, "Metrics Inc")
        self.other_company = seed_company(self.provider, "Noise Co")
        self.token = token_for(seed_user(self.provider, self.company_id, "ceo@metrics.io"), self.company_id)

        with self.provider.transaction() as db:
            for company_id in (self.company_id, self.other_company):
                db.add(Customer(company_id=company_id, name="Globex"))
                db.add(Contact(company_id=company_id, name="Hank", email="hank@globex.io"))
                db.add(Task(company_id=company_id, title="Follow up", status="todo"))
            db.add(Contact(company_id=self.company_id, name="Marge", email="marge@globex.io"))
            invoices = [
                (self.company_id, datetime(2026, 1, 15), 100.0, "paid"),
                (self.company_id, datetime(2026, 1, 28), 50.25, "paid"),
                (self.company_id, datetime(2026, 3, 1), 999.0, "sent"),
                (self.company_id, datetime(2026, 12, 31, 23, 0), 10.0, "paid"),
                (self.company_id, datetime(2025, 12, 31), 70.0, "paid"),
                (self.other_company, datetime(2026, 1, 10), 5000.0, "paid"),
            ]
            for company_id, due_date, amount, status in invoices:
                db.add(Invoice(company_id=company_id, customer_id="c-1", amount=amount, due_date=due_date, status=status))

    def tearDown(self):
        self.provider.dispose()

    def test_monthly_revenue_counts_paid_invoices_only(self):
        with self.provider.session() as db:
            revenue = monthly_revenue(db, self.company_id, 2026)
        self.assertEqual(len(revenue), 12)
        self.assertEqual(revenue[0], 150.25)
        self.assertEqual(revenue[2], 0.0)
        self.assertEqual(revenue[11], 10.0)

    def test_dashboard_payload(self):
        resp = handle_dashboard(
            make_request("GET", "dashboard", token=self.token, params={"year": "2026"}),
            provider=self.provider,
            settings=self.settings,
        )
        self.assertEqual(resp.status_code, 200)
        body = json_body(resp)
        self.assertEqual(body["year"], 2026)
        self.assertEqual(body["totalCompanies"], 1)
        self.assertEqual(body["totalContacts"], 2)
        self.assertEqual(body["totalTasks"], 1)
        self.assertEqual(sum(body["monthlyRevenue"]), 160.25)

    def test_dashboard_rejects_bad_year(self):
        resp = handle_dashboard(
            make_request("GET", "dashboard", token=self.token, params={"year": "last"}),
            provider=self.provider,
            settings=self.settings,
        )
        self.assertEqual(resp.status_code, 400)

    def test_dashboard_requires_token(self):
        resp = handle_dashboard(make_request("GET", "dashboard"), provider=self.provider, settings=self.settings)
        self.assertEqual(resp.status_code, 401)


class HealthEndpointTests(unittest.TestCase):
    def test_health_needs_no_token(self):
        resp = handle_health(make_request("GET", "health"), settings=make_settings())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(json_body(resp), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
