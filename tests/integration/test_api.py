"""
Integration tests for the REST API.

Tests:
- Bankroll, ledger and bet endpoints end to end
- Error mapping (422 / 404 / 409 with stable codes)
- Analytics, risk and sizing endpoints
- API key authentication
"""

from decimal import Decimal

import pytest

from betledger.core.config import settings


def create_bankroll(client, **fields):
    payload = {"starting_balance": "1000", "unit_mode": "fixed", "unit_value": "10"}
    payload.update(fields)
    response = client.post("/api/bankrolls", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def place_and_settle(client, bankroll_id, stake, status, payout=None):
    bet = client.post(
        "/api/bets",
        json={"bankroll_id": bankroll_id, "stake": stake, "potential_payout": str(Decimal(stake) * 3)}
    ).json()
    body = {"status": status}
    if payout is not None:
        body["actual_payout"] = payout
    response = client.put(f"/api/bets/{bet['id']}/settle", json=body)
    assert response.status_code == 200, response.text
    return response.json()


# ============================================================================
# Info Endpoints
# ============================================================================

@pytest.mark.integration
class TestInfo:
    def test_health(self, api_client):
        response = api_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Process-Time" in response.headers

    def test_root(self, api_client):
        assert api_client.get("/").json()["docs"] == "/docs"


# ============================================================================
# Bankrolls & Ledger
# ============================================================================

@pytest.mark.integration
class TestBankrollEndpoints:
    """Test bankroll and ledger endpoints."""

    def test_create_and_get(self, api_client):
        created = create_bankroll(api_client, name="Main")

        response = api_client.get(f"/api/bankrolls/{created['id']}")

        assert response.status_code == 200
        assert response.json()["name"] == "Main"
        assert response.json()["is_active"] is True
        assert Decimal(response.json()["max_bet_pct"]) == Decimal("0.05")

    def test_create_invalid_payload(self, api_client):
        response = api_client.post(
            "/api/bankrolls",
            json={"starting_balance": "1000", "unit_mode": "fixed", "unit_value": "0"}
        )

        assert response.status_code == 422

    def test_list_and_active(self, api_client):
        first = create_bankroll(api_client)
        second = create_bankroll(api_client)

        api_client.post(f"/api/bankrolls/{second['id']}/activate")

        assert len(api_client.get("/api/bankrolls").json()) == 2
        assert api_client.get("/api/bankrolls/active").json()["id"] == second["id"]
        assert api_client.get(f"/api/bankrolls/{first['id']}").json()["is_active"] is False

    def test_owner_scoping(self, api_client):
        created = create_bankroll(api_client)

        response = api_client.get(f"/api/bankrolls/{created['id']}", params={"owner_id": "someone_else"})

        assert response.status_code == 404
        assert response.json()["code"] == 2001

    def test_update_immutable_conflicts(self, api_client):
        created = create_bankroll(api_client)

        response = api_client.patch(
            f"/api/bankrolls/{created['id']}", json={"starting_balance": "5000"}
        )

        assert response.status_code == 409
        assert response.json()["code"] == 3001

    def test_update_mutable(self, api_client):
        created = create_bankroll(api_client)

        response = api_client.patch(
            f"/api/bankrolls/{created['id']}", json={"unit_value": "20", "daily_loss_limit_pct": "0.1"}
        )

        assert response.status_code == 200
        assert Decimal(response.json()["unit_value"]) == Decimal("20")

    def test_transactions_and_balance(self, api_client):
        created = create_bankroll(api_client)
        url = f"/api/bankrolls/{created['id']}"

        api_client.post(f"{url}/transactions", json={"type": "deposit", "amount": "250"})
        api_client.post(f"{url}/transactions", json={"type": "adjustment", "amount": "-50"})

        balance = api_client.get(f"{url}/balance").json()
        assert Decimal(balance["current_balance"]) == Decimal("1200")
        assert Decimal(balance["unit_size"]) == Decimal("10")
        assert Decimal(balance["totals"]["total_deposits"]) == Decimal("250")
        assert [t["type"] for t in api_client.get(f"{url}/transactions").json()] == [
            "deposit", "adjustment"
        ]

    def test_profit_entry_rejected(self, api_client):
        created = create_bankroll(api_client)

        response = api_client.post(
            f"/api/bankrolls/{created['id']}/transactions", json={"type": "profit", "amount": "10"}
        )

        assert response.status_code == 422
        assert response.json()["code"] == 1001

    def test_history_and_drawdown(self, api_client):
        created = create_bankroll(api_client)
        url = f"/api/bankrolls/{created['id']}"
        api_client.post(f"{url}/transactions", json={"type": "withdrawal", "amount": "200"})

        history = api_client.get(f"{url}/history").json()
        drawdown = api_client.get(f"{url}/drawdown").json()

        assert [Decimal(p["balance"]) for p in history] == [Decimal("800")]
        assert Decimal(drawdown["max_drawdown"]) == Decimal("200")
        assert Decimal(drawdown["max_drawdown_percent"]) == Decimal("20")

    def test_transfer(self, api_client):
        source = create_bankroll(api_client)
        target = create_bankroll(api_client, starting_balance="0")

        response = api_client.post("/api/bankrolls/transfers", json={
            "from_bankroll_id": source["id"], "to_bankroll_id": target["id"], "amount": "100"
        })

        assert response.status_code == 201
        assert response.json()["transfer_in"]["type"] == "transfer_in"
        balance = api_client.get(f"/api/bankrolls/{target['id']}/balance").json()
        assert Decimal(balance["current_balance"]) == Decimal("100")

    def test_delete(self, api_client):
        created = create_bankroll(api_client)

        assert api_client.delete(f"/api/bankrolls/{created['id']}").status_code == 204
        assert api_client.get(f"/api/bankrolls/{created['id']}").status_code == 404

    def test_delete_with_settled_bets_conflicts(self, api_client):
        created = create_bankroll(api_client)
        place_and_settle(api_client, created["id"], "10", "lost")

        assert api_client.delete(f"/api/bankrolls/{created['id']}").status_code == 409


# ============================================================================
# Bets
# ============================================================================

@pytest.mark.integration
class TestBetEndpoints:
    """Test bet placement and settlement."""

    def test_place_on_active_bankroll_and_settle(self, api_client):
        created = create_bankroll(api_client)

        bet = api_client.post("/api/bets", json={"stake": "50", "potential_payout": "125"})
        assert bet.status_code == 201
        assert bet.json()["bankroll_id"] == created["id"]
        assert Decimal(bet.json()["stake_units"]) == Decimal("5")

        settled = api_client.put(
            f"/api/bets/{bet.json()['id']}/settle", json={"status": "won", "actual_payout": "125"}
        )

        assert settled.status_code == 200
        assert settled.json()["bet"]["status"] == "won"
        assert Decimal(settled.json()["transaction"]["amount"]) == Decimal("75")
        balance = api_client.get(f"/api/bankrolls/{created['id']}/balance").json()
        assert Decimal(balance["current_balance"]) == Decimal("1075")

    def test_no_active_bankroll(self, api_client):
        response = api_client.post("/api/bets", json={"stake": "50", "potential_payout": "125"})

        assert response.status_code == 404

    def test_flip_outcome_conflicts(self, api_client):
        created = create_bankroll(api_client)
        result = place_and_settle(api_client, created["id"], "50", "won", "125")

        response = api_client.put(
            f"/api/bets/{result['bet']['id']}/settle", json={"status": "lost"}
        )

        assert response.status_code == 409
        assert response.json()["code"] == 3001

    def test_repeat_settlement_single_entry(self, api_client):
        created = create_bankroll(api_client)
        result = place_and_settle(api_client, created["id"], "50", "lost")

        api_client.put(f"/api/bets/{result['bet']['id']}/settle", json={"status": "lost"})

        txs = api_client.get(f"/api/bankrolls/{created['id']}/transactions").json()
        assert len(txs) == 1

    def test_won_without_payout(self, api_client):
        created = create_bankroll(api_client)
        bet = api_client.post(
            "/api/bets", json={"bankroll_id": created["id"], "stake": "50", "potential_payout": "125"}
        ).json()

        response = api_client.put(f"/api/bets/{bet['id']}/settle", json={"status": "won"})

        assert response.status_code == 422

    def test_list_and_get(self, api_client):
        created = create_bankroll(api_client)
        place_and_settle(api_client, created["id"], "10", "lost")
        api_client.post("/api/bets", json={"stake": "20", "potential_payout": "40"})

        everything = api_client.get("/api/bets", params={"bankroll_id": created["id"]}).json()
        pending = api_client.get(
            "/api/bets", params={"bankroll_id": created["id"], "status": "pending"}
        ).json()

        assert len(everything) == 2
        assert len(pending) == 1
        assert api_client.get(f"/api/bets/{pending[0]['id']}").json()["stake"] == pending[0]["stake"]

    def test_unknown_bet(self, api_client):
        assert api_client.get("/api/bets/missing").status_code == 404


# ============================================================================
# Analytics, Risk & Sizing
# ============================================================================

@pytest.mark.integration
class TestAnalyticsEndpoints:
    """Test read-side calculations."""

    def test_analytics_report(self, api_client):
        created = create_bankroll(api_client)
        place_and_settle(api_client, created["id"], "50", "won", "125")

        report = api_client.get(f"/api/bankrolls/{created['id']}/analytics").json()

        assert Decimal(report["current_balance"]) == Decimal("1075")
        assert report["analytics"]["total_bets"] == 1
        assert Decimal(report["analytics"]["win_rate"]) == Decimal("100")
        assert Decimal(report["analytics"]["net_profit"]) == Decimal("75")
        assert len(report["advanced"]["profit_by_day_of_week"]) == 7
        assert report["recent_activity"][0]["type"] == "profit"

    def test_analytics_by_sport_and_zone(self, api_client):
        created = create_bankroll(api_client)
        bet = api_client.post("/api/bets", json={
            "stake": "10", "potential_payout": "20", "sport": "NBA"
        }).json()
        api_client.put(f"/api/bets/{bet['id']}/settle", json={"status": "lost"})

        report = api_client.get(
            f"/api/bankrolls/{created['id']}/analytics",
            params={"category": "sport", "tz": "Australia/Sydney"}
        ).json()

        assert report["analytics"]["profit_by_type"][0]["key"] == "NBA"

    def test_unknown_zone(self, api_client):
        created = create_bankroll(api_client)

        response = api_client.get(
            f"/api/bankrolls/{created['id']}/loss-limits", params={"tz": "Mars/Olympus"}
        )

        assert response.status_code == 422

    def test_loss_limits(self, api_client):
        created = create_bankroll(api_client, daily_loss_limit_pct="0.10")
        url = f"/api/bankrolls/{created['id']}"
        for _ in range(2):
            api_client.post(f"{url}/transactions", json={"type": "withdrawal", "amount": "60"})

        limits = api_client.get(f"{url}/loss-limits").json()

        assert Decimal(limits["daily"]["current_loss"]) == Decimal("120")
        assert limits["daily"]["limit_exceeded"] is True
        assert Decimal(limits["daily"]["remaining_amount"]) == 0
        assert limits["weekly"]["limit_exceeded"] is False

    def test_max_bet_and_validate(self, api_client):
        created = create_bankroll(api_client)
        url = f"/api/bankrolls/{created['id']}"

        max_bet = api_client.get(f"{url}/max-bet").json()
        ok = api_client.post(f"{url}/validate-bet", json={"stake": "40"}).json()
        too_big = api_client.post(f"{url}/validate-bet", json={"stake": "60"}).json()

        assert Decimal(max_bet["max_amount"]) == Decimal("50")
        assert Decimal(max_bet["max_units"]) == Decimal("5")
        assert ok == {"valid": True, "reasons": []}
        assert too_big["valid"] is False

    def test_kelly(self, api_client):
        created = create_bankroll(api_client)
        url = f"/api/bankrolls/{created['id']}/kelly"

        by_decimal = api_client.post(url, json={"win_probability": "0.55", "decimal_odds": "2.0"}).json()
        by_american = api_client.post(url, json={"win_probability": "0.55", "odds": "+100"}).json()

        assert Decimal(by_decimal["edge_percent"]) == Decimal("10")
        assert Decimal(by_decimal["suggested_bet_size"]) == Decimal("100")
        assert Decimal(by_decimal["fractional_kelly_bet_size"]) == Decimal("25")
        assert Decimal(by_american["fractional_kelly_bet_size"]) == Decimal("25")

    def test_kelly_invalid_probability(self, api_client):
        created = create_bankroll(api_client)

        response = api_client.post(
            f"/api/bankrolls/{created['id']}/kelly", json={"win_probability": "1.2", "decimal_odds": "2"}
        )

        assert response.status_code == 422

    def test_kelly_requires_odds(self, api_client):
        created = create_bankroll(api_client)

        response = api_client.post(
            f"/api/bankrolls/{created['id']}/kelly", json={"win_probability": "0.55"}
        )

        assert response.status_code == 422

    def test_units(self, api_client):
        created = create_bankroll(api_client)
        url = f"/api/bankrolls/{created['id']}/units"

        to_units = api_client.post(url, json={"stake": "40"}).json()
        to_stake = api_client.post(url, json={"units": "3"}).json()

        assert Decimal(to_units["units"]) == Decimal("4")
        assert Decimal(to_stake["stake"]) == Decimal("30")
        assert api_client.post(url, json={"stake": "1", "units": "1"}).status_code == 422

    def test_units_undefined(self, api_client):
        created = create_bankroll(api_client, starting_balance="0", unit_mode="percent", unit_value="0.01")

        result = api_client.post(f"/api/bankrolls/{created['id']}/units", json={"stake": "10"}).json()

        assert result["units"] is None
        assert result["undefined_reason"]


# ============================================================================
# Goals
# ============================================================================

@pytest.mark.integration
class TestGoalEndpoints:
    def test_goal_lifecycle(self, api_client):
        created = create_bankroll(api_client)
        url = f"/api/bankrolls/{created['id']}/goals"

        goal = api_client.post(url, json={"target_amount": "1050"})
        assert goal.status_code == 201
        place_and_settle(api_client, created["id"], "50", "won", "125")

        evaluations = api_client.post(f"{url}/evaluate").json()

        assert evaluations[0]["status"] == "met"
        assert api_client.get(url).json()[0]["status"] == "met"
        edit = api_client.patch(f"{url}/{goal.json()['id']}", json={"target_amount": "2000"})
        assert edit.status_code == 409

    def test_goal_requires_target(self, api_client):
        created = create_bankroll(api_client)

        response = api_client.post(f"/api/bankrolls/{created['id']}/goals", json={})

        assert response.status_code == 422

    def test_goal_under_other_bankroll_not_found(self, api_client):
        first = create_bankroll(api_client)
        second = create_bankroll(api_client)
        goal = api_client.post(
            f"/api/bankrolls/{first['id']}/goals", json={"target_profit": "100"}
        ).json()

        response = api_client.delete(f"/api/bankrolls/{second['id']}/goals/{goal['id']}")

        assert response.status_code == 404
        assert api_client.delete(
            f"/api/bankrolls/{first['id']}/goals/{goal['id']}"
        ).status_code == 204


# ============================================================================
# Authentication
# ============================================================================

@pytest.mark.integration
class TestApiKey:
    """Test X-API-Key authentication."""

    @pytest.fixture(autouse=True)
    def api_key(self, monkeypatch):
        monkeypatch.setattr(settings, "BETLEDGER_API_KEY", "test-secret")

    def test_missing_key(self, api_client):
        response = api_client.get("/api/bankrolls")

        assert response.status_code == 401

    def test_wrong_key(self, api_client):
        response = api_client.get("/api/bankrolls", headers={"X-API-Key": "nope"})

        assert response.status_code == 403

    def test_valid_key(self, api_client):
        response = api_client.get("/api/bankrolls", headers={"X-API-Key": "test-secret"})

        assert response.status_code == 200

    def test_health_is_public(self, api_client):
        assert api_client.get("/health").status_code == 200
