"""
Tests for the renewal risk scorer.
"""
from decimal import Decimal

import pytest

from renewdesk.lifecycle.risk import (
    COMPLEX_COVERAGE_FACTOR,
    STANDARD_RENEWAL_FACTOR,
    RiskThresholds,
    score_risk,
)
from renewdesk.models import PolicyType, RiskLevel

from tests.conftest import make_policy


LARGE_ACCOUNT = "Large account: Premium exceeds $100,000"
CRITICAL = "Critical: Less than 2 weeks until expiration"
URGENT = "Urgent: Less than 30 days until expiration"


class TestScoreRisk:
    """Point accumulation and level mapping."""

    def test_cyber_large_account_ten_days_is_high(self):
        result = score_risk(PolicyType.CYBER_LIABILITY, Decimal("120000"), 10)

        assert result.points == 75
        assert result.level == RiskLevel.HIGH
        assert result.factors == [CRITICAL, LARGE_ACCOUNT, COMPLEX_COVERAGE_FACTOR]

    def test_quiet_renewal_is_low_with_standard_factor(self):
        result = score_risk(PolicyType.GENERAL_LIABILITY, Decimal("10000"), 80)

        assert result.points == 0
        assert result.level == RiskLevel.LOW
        assert result.factors == [STANDARD_RENEWAL_FACTOR]

    @pytest.mark.parametrize("days", [-5, 0, 1, 14])
    def test_critical_band_always_at_least_medium(self, days):
        result = score_risk(PolicyType.GENERAL_LIABILITY, Decimal("1000"), days)

        assert result.points >= 40
        assert CRITICAL in result.factors
        assert result.level in (RiskLevel.MEDIUM, RiskLevel.HIGH)

    def test_urgent_band(self):
        result = score_risk(PolicyType.UMBRELLA, Decimal("1000"), 30)

        assert result.points == 25
        assert result.level == RiskLevel.MEDIUM
        assert result.factors == [URGENT]

    def test_approaching_band_adds_points_without_factor(self):
        result = score_risk(PolicyType.UMBRELLA, Decimal("1000"), 45)

        assert result.points == 10
        assert result.factors == [STANDARD_RENEWAL_FACTOR]

    @pytest.mark.parametrize(
        "premium, points",
        [("100000", 20), ("99999.99", 10), ("50000", 10), ("25000", 5), ("24999", 0)],
    )
    def test_premium_bands(self, premium, points):
        result = score_risk(PolicyType.COMMERCIAL_AUTO, Decimal(premium), 90)

        assert result.points == points

    @pytest.mark.parametrize("premium", ["100000", "250000", "1000000"])
    def test_large_account_factor_present(self, premium):
        result = score_risk(PolicyType.COMMERCIAL_AUTO, Decimal(premium), 90)

        assert LARGE_ACCOUNT in result.factors

    @pytest.mark.parametrize(
        "policy_type",
        [
            PolicyType.CYBER_LIABILITY,
            PolicyType.DIRECTORS_OFFICERS,
            PolicyType.PROFESSIONAL_LIABILITY,
        ],
    )
    def test_complex_types_add_points(self, policy_type):
        result = score_risk(policy_type, Decimal("1000"), 90)

        assert result.points == 15
        assert result.factors == [COMPLEX_COVERAGE_FACTOR]

    def test_boundary_points_go_to_higher_level(self):
        # 25 (urgent) + 10 (mid premium) + 15 (complex) = 50
        result = score_risk(PolicyType.CYBER_LIABILITY, Decimal("50000"), 20)

        assert result.points == 50
        assert result.level == RiskLevel.HIGH

    def test_custom_thresholds_change_bands_and_wording(self):
        thresholds = RiskThresholds(
            critical_days=7,
            critical_factor="Critical: One week or less until expiration",
            large_premium=Decimal("500000"),
        )

        result = score_risk(PolicyType.GENERAL_LIABILITY, Decimal("600000"), 7, thresholds)

        assert "Critical: One week or less until expiration" in result.factors
        assert "Large account: Premium exceeds $500,000" in result.factors
        assert result.points == 60


class TestEngineScoreRisk:
    """The engine scores a stored policy with its configured thresholds."""

    def test_uses_policy_type_and_premium(self, engine, client):
        policy = make_policy(client, policy_type=PolicyType.DIRECTORS_OFFICERS, premium="75000")

        result = engine.score_risk(policy, 12)

        assert result.points == 40 + 10 + 15
        assert result.level == RiskLevel.HIGH
