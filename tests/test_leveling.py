"""
Tests for the leveling engine: per-level decaying EXP rates for recharges,
single-pass reading gains, and the /api/add-exp endpoint.
"""
import pytest

from app.services.leveling import (
    apply_reading,
    apply_recharge,
    compute_progress,
    rate_modifier,
    roll_over,
)


class TestRates:
    """The EXP rate halves with each level."""

    def test_level_one_has_full_rate(self):
        assert rate_modifier(1) == 1.0

    def test_rate_halves_per_level(self):
        assert rate_modifier(2) == 0.5
        assert rate_modifier(4) == 0.125

    def test_roll_over_converts_full_levels(self):
        assert roll_over(1, 250.0) == (3, 50.0)

    def test_roll_over_leaves_partial_exp(self):
        assert roll_over(5, 99.5) == (5, 99.5)


class TestRecharge:
    """Recharged coins are spent on EXP one level at a time."""

    def test_exact_boundary_rolls_to_next_level(self):
        """500 coins at 0.2 EXP/coin is exactly one level."""
        level, exp = apply_recharge(1, 0.0, 500)
        assert level == 2
        assert exp == pytest.approx(0.0)

    def test_leftover_coins_priced_at_next_level(self):
        level, exp = apply_recharge(1, 0.0, 750)
        assert level == 2
        assert exp == pytest.approx(25.0)

    def test_partial_progress_without_level_up(self):
        level, exp = apply_recharge(1, 50.0, 100)
        assert level == 1
        assert exp == pytest.approx(70.0)

    def test_partial_exp_counts_towards_first_level(self):
        """Only the missing 50 EXP (250 coins) is needed at level 1."""
        level, exp = apply_recharge(1, 50.0, 250)
        assert level == 2
        assert exp == pytest.approx(0.0, abs=1e-9)

    def test_huge_recharge_stops_when_rate_is_negligible(self):
        """Past level 28 a coin is worth <= 1e-9 EXP and the rest is dropped."""
        level, exp = apply_recharge(1, 0.0, 1e12)
        assert level == 29
        assert exp == 0.0

    def test_zero_coins_changes_nothing(self):
        assert apply_recharge(3, 42.0, 0) == (3, 42.0)


class TestReading:
    """Reading gains are priced at the starting level, in one pass."""

    def test_single_level_up_keeps_remainder(self):
        level, exp = apply_reading(3, 90.0, 1000)
        assert level == 4
        assert exp == pytest.approx(2.5)

    def test_multiple_level_ups_in_one_call(self):
        level, exp = apply_reading(1, 0.0, 5000)
        assert level == 3
        assert exp == pytest.approx(50.0)

    def test_exact_boundary(self):
        level, exp = apply_reading(1, 0.0, 2000)
        assert level == 2
        assert exp == pytest.approx(0.0)

    def test_huge_gain_resolves_in_one_step(self):
        """A gain worth billions of levels is converted without stepping level by level."""
        level, exp = apply_reading(1, 0.0, 1e13)
        assert level == 5_000_000_001
        assert exp == pytest.approx(0.0, abs=1e-3)

    def test_negative_exp_is_never_rolled_down(self):
        assert roll_over(4, -5.0) == (4, -5.0)


class TestComputeProgress:

    @pytest.mark.parametrize("level,exp,amount,source", [
        (1, 0.0, 0, "recharge"),
        (1, 99.99, 0.1, "recharge"),
        (2, 30.0, 12345.6, "recharge"),
        (7, 99.0, 1e9, "recharge"),
        (1, 0.0, 3, "reading"),
        (3, 90.0, 1000, "reading"),
        (10, 50.0, 1e7, "reading"),
    ])
    def test_level_never_drops_and_exp_stays_in_range(self, level, exp, amount, source):
        new_level, new_exp = compute_progress(level, exp, amount, source)
        assert new_level >= level
        assert 0 <= new_exp < 100

    def test_corrupt_negative_exp_is_clamped(self):
        assert compute_progress(1, -5.0, 0, "reading") == (1, 0.0)


class TestAddExpEndpoint:

    def test_recharge_levels_up_and_credits_coins(self, client, make_user, db):
        user = make_user(coin_balance=10)

        response = client.post("/api/add-exp", json={"amount": 500, "source": "recharge", "coinIncrease": 500})

        assert response.status_code == 200
        body = response.json()
        assert body == {"level": 2, "exp": 0.0, "coinBalance": 510, "levelUpOccurred": True}

        db.refresh(user)
        assert user.level == 2
        assert user.exp == 0.0
        assert user.coin_balance == 510

    def test_recharge_amount_is_not_deducted_from_balance(self, client, make_user):
        make_user(coin_balance=1000)

        body = client.post("/api/add-exp", json={"amount": 100, "source": "recharge"}).json()

        assert body["coinBalance"] == 1000
        assert body["levelUpOccurred"] is False
        assert body["exp"] == pytest.approx(20.0)

    def test_reading_gain(self, client, make_user):
        make_user(level=3, exp=90.0)

        body = client.post("/api/add-exp", json={"amount": 1000, "source": "reading"}).json()

        assert body["level"] == 4
        assert body["exp"] == pytest.approx(2.5)
        assert body["levelUpOccurred"] is True

    def test_negative_amount_rejected(self, client, make_user, db):
        user = make_user(exp=10.0)

        response = client.post("/api/add-exp", json={"amount": -5, "source": "reading"})

        assert response.status_code == 400
        db.refresh(user)
        assert user.exp == 10.0

    def test_negative_coin_increase_rejected(self, client, make_user):
        make_user()
        response = client.post("/api/add-exp", json={"amount": 5, "source": "reading", "coinIncrease": -1})
        assert response.status_code == 400

    def test_unknown_source_rejected(self, client, make_user):
        make_user()
        response = client.post("/api/add-exp", json={"amount": 5, "source": "gambling"})
        assert response.status_code == 400


    @pytest.mark.parametrize("raw_amount", ["Infinity", "-Infinity", "NaN"])
    def test_non_finite_amount_rejected(self, client, make_user, db, raw_amount):
        user = make_user(level=3, exp=10.0)

        response = client.post(
            "/api/add-exp",
            content=f'{{"amount": {raw_amount}, "source": "reading"}}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        db.refresh(user)
        assert user.level == 3
        assert user.exp == 10.0

    def test_very_large_reading_gain(self, client, make_user):
        make_user()

        body = client.post("/api/add-exp", json={"amount": 1e9, "source": "reading"}).json()

        assert body["level"] == 500_001
        assert 0 <= body["exp"] < 100
    def test_non_numeric_amount_rejected(self, client, make_user):
        make_user()
        response = client.post("/api/add-exp", json={"amount": "lots", "source": "reading"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid request data"

    def test_unknown_account_is_not_found(self, client):
        response = client.post("/api/add-exp", json={"amount": 5, "source": "reading"})
        assert response.status_code == 404

    def test_requires_login(self, client, login, make_user):
        make_user()
        login.logout()
        response = client.post("/api/add-exp", json={"amount": 5, "source": "reading"})
        assert response.status_code == 401
