# backend/tests/routers/test_admin_api.py
"""
Integration tests for the administrator endpoints.

- PUT /admin/holdings/{id}/price
- POST /admin/revaluation/run
- GET /admin/revaluation/runs
"""

from decimal import Decimal

import pytest

from app.models import Holding, Portfolio
from app.services.revaluation.service import _run_lock
from tests.conftest import auth_headers, create_holding


def money(value) -> Decimal:
    return Decimal(str(value))


class TestAdminAccess:

    @pytest.mark.parametrize("method,path", [
        ("put", "/admin/holdings/1/price"),
        ("post", "/admin/revaluation/run"),
        ("get", "/admin/revaluation/runs"),
    ])
    def test_clients_are_forbidden(self, client, sample_user, method, path):
        kwargs = {"json": {"price": "10"}} if method == "put" else {}

        response = getattr(client, method)(path, headers=auth_headers(sample_user), **kwargs)

        assert response.status_code == 403
        assert response.json()["error"] == "ForbiddenError"

    def test_anonymous_is_unauthorized(self, client):
        assert client.post("/admin/revaluation/run").status_code == 401


class TestUpdateHoldingPrice:

    def test_sets_price_and_recomputes_totals(self, client, db, admin_user, sample_portfolio):
        holding = create_holding(db, sample_portfolio, quantity=Decimal("10"), purchase_price=Decimal("50"))

        response = client.put(
            f"/admin/holdings/{holding.id}/price",
            json={"price": "65"},
            headers=auth_headers(admin_user),
        )

        assert response.status_code == 200
        data = response.json()
        assert money(data["current_price"]) == Decimal("65")
        assert money(data["total_value"]) == Decimal("650")
        assert money(data["gain_percentage"]) == Decimal("30")

        db.expire_all()
        assert db.get(Portfolio, sample_portfolio.id).total_value == Decimal("650")

    @pytest.mark.parametrize("price", ["0", "-1", "abc"])
    def test_invalid_price_is_422(self, client, db, admin_user, sample_portfolio, price):
        holding = create_holding(db, sample_portfolio)

        response = client.put(
            f"/admin/holdings/{holding.id}/price",
            json={"price": price},
            headers=auth_headers(admin_user),
        )

        assert response.status_code == 422

    def test_unknown_holding_is_404(self, client, admin_user):
        response = client.put(
            "/admin/holdings/31337/price",
            json={"price": "10"},
            headers=auth_headers(admin_user),
        )

        assert response.status_code == 404


class TestRevaluationEndpoints:

    def test_manual_run(self, client, db, admin_user, sample_portfolio, price_source):
        holding = create_holding(db, sample_portfolio, quantity=Decimal("10"), purchase_price=Decimal("50"))
        price_source.set_price("AAPL", Decimal("55"))

        response = client.post("/admin/revaluation/run", headers=auth_headers(admin_user))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "COMPLETED"
        assert data["trigger"] == "manual"
        assert data["success"] is True
        assert data["market_prices_updated"] == 1
        assert data["portfolios_updated"] == 1
        assert data["errors"] == []
        assert data["correlation_id"].startswith("revaluation-")

        db.expire_all()
        assert db.get(Holding, holding.id).total_value == Decimal("550")

    def test_run_while_running_is_skipped(self, client, admin_user):
        _run_lock.acquire()
        try:
            response = client.post("/admin/revaluation/run", headers=auth_headers(admin_user))
        finally:
            _run_lock.release()

        assert response.status_code == 200
        assert response.json()["status"] == "SKIPPED"

    def test_list_runs(self, client, admin_user):
        headers = auth_headers(admin_user)
        first = client.post("/admin/revaluation/run", headers=headers).json()
        second = client.post("/admin/revaluation/run", headers=headers).json()

        response = client.get("/admin/revaluation/runs", headers=headers)

        assert response.status_code == 200
        assert [run["run_id"] for run in response.json()] == [second["run_id"], first["run_id"]]

        limited = client.get("/admin/revaluation/runs", params={"limit": 1}, headers=headers)
        assert len(limited.json()) == 1

    def test_limit_out_of_range_is_422(self, client, admin_user):
        response = client.get(
            "/admin/revaluation/runs",
            params={"limit": 0},
            headers=auth_headers(admin_user),
        )

        assert response.status_code == 422
