"""Renewal risk scorer — point-accumulation over time pressure, account size,
and coverage complexity.

Scoring bands (default :class:`RiskThresholds`):

- Time pressure:  ≤ 14 days → +40, ≤ 30 days → +25, ≤ 45 days → +10
- Premium size:   ≥ $100k → +20, ≥ $50k → +10, ≥ $25k → +5
- Complexity:     cyber / D&O / professional liability → +15

Total points map to a level: ≥ 50 high, ≥ 25 medium, otherwise low.  A
policy already past expiry (negative days) lands in the critical band.

The scorer is a pure function of its inputs so it can be exercised without
any store.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from pydantic import BaseModel, Field

from renewdesk.models import PolicyType, RiskLevel

logger = logging.getLogger("renewdesk.lifecycle.risk")

STANDARD_RENEWAL_FACTOR = "Standard renewal - no elevated risk factors"
COMPLEX_COVERAGE_FACTOR = "Complex coverage type requiring specialized markets"


class RiskThresholds(BaseModel):
    """Band edges and point values for :func:`score_risk`.

    Passed in by the caller; the engine holds no scoring constants of its own.
    """

    critical_days: int = 14
    critical_points: int = 40
    urgent_days: int = 30
    urgent_points: int = 25
    approaching_days: int = 45
    approaching_points: int = 10
    critical_factor: str = "Critical: Less than 2 weeks until expiration"
    urgent_factor: str = "Urgent: Less than 30 days until expiration"

    large_premium: Decimal = Decimal("100000")
    large_points: int = 20
    mid_premium: Decimal = Decimal("50000")
    mid_points: int = 10
    small_premium: Decimal = Decimal("25000")
    small_points: int = 5

    complex_types: frozenset[PolicyType] = frozenset(
        {
            PolicyType.CYBER_LIABILITY,
            PolicyType.DIRECTORS_OFFICERS,
            PolicyType.PROFESSIONAL_LIABILITY,
        }
    )
    complex_points: int = 15

    high_cutoff: int = 50
    medium_cutoff: int = 25


class RiskAssessment(BaseModel):
    """Outcome of :func:`score_risk`.

    Attributes:
        level: low / medium / high.
        points: Total accumulated points behind ``level``.
        factors: Human-readable reasons, never empty.
    """

    level: RiskLevel
    points: int
    factors: list[str] = Field(default_factory=list)


def score_risk(
    policy_type: PolicyType,
    premium: Decimal,
    days_until_expiry: int,
    thresholds: RiskThresholds | None = None,
) -> RiskAssessment:
    """Score how much broker attention a renewal needs.

    Args:
        policy_type: Line of coverage being renewed.
        premium: Current annual premium of the expiring policy.
        days_until_expiry: Whole days until expiration; may be negative.
        thresholds: Band configuration; defaults to :class:`RiskThresholds`.

    Returns:
        A :class:`RiskAssessment` whose factors mirror the bands that fired.
    """
    t = thresholds or RiskThresholds()
    premium = Decimal(premium)
    points = 0
    factors: list[str] = []

    # Time pressure
    if days_until_expiry <= t.critical_days:
        points += t.critical_points
        factors.append(t.critical_factor)
    elif days_until_expiry <= t.urgent_days:
        points += t.urgent_points
        factors.append(t.urgent_factor)
    elif days_until_expiry <= t.approaching_days:
        points += t.approaching_points

    # Premium size
    if premium >= t.large_premium:
        points += t.large_points
        factors.append(f"Large account: Premium exceeds ${t.large_premium:,.0f}")
    elif premium >= t.mid_premium:
        points += t.mid_points
    elif premium >= t.small_premium:
        points += t.small_points

    # Coverage complexity
    if policy_type in t.complex_types:
        points += t.complex_points
        factors.append(COMPLEX_COVERAGE_FACTOR)

    if not factors:
        factors.append(STANDARD_RENEWAL_FACTOR)

    level = _level_for(points, t)
    logger.debug(
        "Scored risk type=%s premium=%s days=%d points=%d level=%s",
        policy_type.value,
        premium,
        days_until_expiry,
        points,
        level.value,
    )
    return RiskAssessment(level=level, points=points, factors=factors)


def _level_for(points: int, t: RiskThresholds) -> RiskLevel:
    """Map accumulated points to a level; ties go to the higher band."""
    if points >= t.high_cutoff:
        return RiskLevel.HIGH
    if points >= t.medium_cutoff:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW
