"""
Tests for the daily login reward: the 7-day cycle, streak continuation,
streak reset and the once-per-calendar-day rule.
"""
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from app.services.rewards import (
    ALREADY_CLAIMED_MESSAGE,
    DAILY_REWARDS,
    STREAK_RESET_MESSAGE,
    next_streak,
    reward_for_day,
)


class TestStreakRules:
    """Pure streak arithmetic, with a fixed clock."""

    NOW = datetime(2025, 3, 10, 8, 30)

    def test_first_claim_starts_at_day_one(self):
        assert next_streak(None, 0, self.NOW) == (1, False)

    def test_claim_on_consecutive_day_extends_streak(self):
        yesterday = datetime(2025, 3, 9, 23, 59)
        assert next_streak(yesterday, 4, self.NOW) == (5, False)

    def test_time_of_day_is_ignored(self):
        """Late yesterday and early today are still one calendar day apart."""
        late_yesterday = datetime(2025, 3, 9, 23, 59, 59)
        early_today = datetime(2025, 3, 10, 0, 0, 1)
        assert next_streak(late_yesterday, 1, early_today) == (2, False)

    def test_gap_resets_streak(self):
        three_days_ago = datetime(2025, 3, 7, 12, 0)
        assert next_streak(three_days_ago, 6, self.NOW) == (1, True)

    def test_same_day_is_rejected(self):
        earlier_today = datetime(2025, 3, 10, 0, 5)
        with pytest.raises(HTTPException) as exc_info:
            next_streak(earlier_today, 2, self.NOW)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == ALREADY_CLAIMED_MESSAGE

    def test_last_login_in_the_future_is_rejected(self):
        tomorrow = datetime(2025, 3, 11, 9, 0)
        with pytest.raises(HTTPException):
            next_streak(tomorrow, 2, self.NOW)

    @pytest.mark.parametrize("day,amount", [
        (1, 30), (2, 50), (3, 60), (4, 70), (5, 100), (6, 120), (7, 200),
        (8, 30), (14, 200), (15, 30),
    ])
    def test_reward_cycle_wraps_every_seven_days(self, day, amount):
        assert reward_for_day(day)["amount"] == amount


class TestClaimRewardEndpoint:

    def test_first_ever_claim(self, client, make_user, db):
        user = make_user(coin_balance=5)

        response = client.post("/api/claim-reward")

        assert response.status_code == 200
        assert response.json() == {
            "newBalance": 35,
            "nextLoginDays": 1,
            "rewardAmount": 30,
            "notificationMessage": "Received 30 coins for login Day 1!",
        }
        db.refresh(user)
        assert user.coin_balance == 35
        assert user.consecutive_login_days == 1
        assert user.last_daily_login is not None

    def test_consecutive_day_continues_streak(self, client, make_user):
        make_user(
            coin_balance=100,
            consecutive_login_days=3,
            last_daily_login=datetime.now() - timedelta(days=1),
        )

        body = client.post("/api/claim-reward").json()

        assert body["nextLoginDays"] == 4
        assert body["rewardAmount"] == 70
        assert body["newBalance"] == 170
        assert body["notificationMessage"] == "Received 70 coins for login Day 4!"

    def test_day_after_a_full_week_starts_new_cycle(self, client, make_user):
        make_user(consecutive_login_days=7, last_daily_login=datetime.now() - timedelta(days=1))

        body = client.post("/api/claim-reward").json()

        assert body["nextLoginDays"] == 8
        assert body["rewardAmount"] == 30

    def test_missed_days_reset_streak(self, client, make_user):
        make_user(
            coin_balance=10,
            consecutive_login_days=5,
            last_daily_login=datetime.now() - timedelta(days=3),
        )

        body = client.post("/api/claim-reward").json()

        assert body["nextLoginDays"] == 1
        assert body["rewardAmount"] == 30
        assert body["newBalance"] == 40
        assert body["notificationMessage"] == STREAK_RESET_MESSAGE

    def test_second_claim_same_day_rejected(self, client, make_user, db):
        user = make_user(coin_balance=0)

        assert client.post("/api/claim-reward").status_code == 200
        response = client.post("/api/claim-reward")

        assert response.status_code == 400
        assert response.json()["detail"] == ALREADY_CLAIMED_MESSAGE
        db.refresh(user)
        assert user.coin_balance == 30
        assert user.consecutive_login_days == 1

    def test_requires_login(self, client, login):
        login.logout()
        assert client.post("/api/claim-reward").status_code == 401


class TestDailyRewardsTable:

    def test_lists_the_seven_day_cycle(self, client):
        response = client.get("/api/daily-rewards")

        assert response.status_code == 200
        body = response.json()
        assert body == DAILY_REWARDS
        assert [r["amount"] for r in body] == [30, 50, 60, 70, 100, 120, 200]
        assert all(r["type"] == "Xu" for r in body)
