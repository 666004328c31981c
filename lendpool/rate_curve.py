"""
rate_curve.py - Two-Slope Utilization Rate Model

Prices borrowing and lending from pool utilization using a kinked
piecewise-linear curve, in integer ray arithmetic.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - RateCurveParams: Immutable curve parameters, validated at construction
   - ReserveSnapshot: Immutable reserve figures the curve is evaluated against
   - RiskPremiums: Flat surcharges for the risk-adjusted extension

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take all inputs explicitly as parameters
   - No LedgerView, no hidden state

3. ADAPTER FUNCTIONS (load_rate_curve / rate_curve_to_dict):
   - Convert between RateCurveParams and the dict stored in pool unit state

Key Formulas (all values ray, 1.0 = 10**27):
    utilization = total_debt / (available + total_debt)
    variable    = base + slope1 * u / optimal                       (u <= optimal)
                = base + slope1 + slope2 * (u - optimal) / (1 - optimal)  (u > optimal)
    stable      = variable + base_stable_offset
                  + excess_offset * (stable_ratio - optimal_stable) / (1 - optimal_stable)
    liquidity   = overall_borrow_rate * u * (1 - reserve_factor)

Below the optimal point the curve is nearly flat; above it the second slope
penalizes utilization sharply to pull it back toward the target.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Any, List, Tuple, Union

from .core import InvalidArgument, Misconfiguration
from .ray_math import RAY, PERCENTAGE_FACTOR, mul_div, to_ray


Fraction = Union[Decimal, str, int]


# Defaults for create_rate_curve (human fractions)
DEFAULT_OPTIMAL_USAGE_RATIO = Decimal("0.8")
DEFAULT_BASE_VARIABLE_RATE = Decimal("0")
DEFAULT_VARIABLE_SLOPE1 = Decimal("0.04")
DEFAULT_VARIABLE_SLOPE2 = Decimal("0.75")
DEFAULT_BASE_STABLE_RATE_OFFSET = Decimal("0.02")
DEFAULT_STABLE_RATE_EXCESS_OFFSET = Decimal("0.05")
DEFAULT_OPTIMAL_STABLE_TO_TOTAL_DEBT_RATIO = Decimal("0.2")

# Basis points retained by the protocol (10% by default)
DEFAULT_RESERVE_FACTOR = 1_000

_PARAM_FIELDS = (
    'optimal_usage_ratio', 'base_variable_rate', 'variable_slope1',
    'variable_slope2', 'base_stable_rate_offset', 'stable_rate_excess_offset',
    'optimal_stable_to_total_debt_ratio',
)


def _check_int(name: str, value: Any, error: type) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise error(f"{name} must be int, got {type(value).__name__}")
    if value < 0:
        raise error(f"{name} cannot be negative, got {value}")


# ============================================================================
# FROZEN DATACLASSES - Explicit Inputs for Pure Functions
# ============================================================================

@dataclass(frozen=True, slots=True)
class RateCurveParams:
    """
    Immutable rate curve parameters, all in ray.

    Every denominator the curve divides by is checked here, so a constructed
    instance can never divide by zero at evaluation time.

    Raises:
        Misconfiguration: On a negative parameter, optimal_usage_ratio outside
            (0, RAY), or optimal_stable_to_total_debt_ratio outside [0, RAY).
    """
    optimal_usage_ratio: int
    base_variable_rate: int
    variable_slope1: int
    variable_slope2: int
    base_stable_rate_offset: int
    stable_rate_excess_offset: int
    optimal_stable_to_total_debt_ratio: int

    def __post_init__(self):
        for name in _PARAM_FIELDS:
            _check_int(name, getattr(self, name), Misconfiguration)
        if not 0 < self.optimal_usage_ratio < RAY:
            raise Misconfiguration(
                f"optimal_usage_ratio must be in (0, RAY), got {self.optimal_usage_ratio}"
            )
        if not self.optimal_stable_to_total_debt_ratio < RAY:
            raise Misconfiguration(
                "optimal_stable_to_total_debt_ratio must be in [0, RAY), "
                f"got {self.optimal_stable_to_total_debt_ratio}"
            )

    @property
    def max_excess_usage_ratio(self) -> int:
        return RAY - self.optimal_usage_ratio

    @property
    def max_excess_stable_ratio(self) -> int:
        return RAY - self.optimal_stable_to_total_debt_ratio

    @property
    def base_stable_rate(self) -> int:
        return self.base_variable_rate + self.base_stable_rate_offset


@dataclass(frozen=True, slots=True)
class ReserveSnapshot:
    """
    Reserve figures the curve is evaluated against.

    reserve_balance is the free liquidity held by the pool; liquidity_added
    and liquidity_taken let callers price a hypothetical deposit or borrow
    before it happens. reserve_factor is in basis points.
    """
    reserve_balance: int
    total_stable_debt: int = 0
    total_variable_debt: int = 0
    average_stable_borrow_rate: int = 0
    liquidity_added: int = 0
    liquidity_taken: int = 0
    reserve_factor: int = 0

    def __post_init__(self):
        for name in (
            'reserve_balance', 'total_stable_debt', 'total_variable_debt',
            'average_stable_borrow_rate', 'liquidity_added', 'liquidity_taken',
            'reserve_factor',
        ):
            _check_int(name, getattr(self, name), InvalidArgument)
        if self.reserve_factor > PERCENTAGE_FACTOR:
            raise InvalidArgument(
                f"reserve_factor must be in [0, {PERCENTAGE_FACTOR}] bps, got {self.reserve_factor}"
            )

    @property
    def total_debt(self) -> int:
        return self.total_stable_debt + self.total_variable_debt

    @property
    def available_liquidity(self) -> int:
        """Liquidity after the hypothetical flows; may be negative (caller error)."""
        return self.reserve_balance + self.liquidity_added - self.liquidity_taken


@dataclass(frozen=True, slots=True)
class RiskPremiums:
    """Flat ray surcharges for loans without a coupon or collateral insurance."""
    coupon_premium: int = 0
    collateral_insurance_premium: int = 0

    def __post_init__(self):
        _check_int('coupon_premium', self.coupon_premium, Misconfiguration)
        _check_int('collateral_insurance_premium', self.collateral_insurance_premium, Misconfiguration)


@dataclass(frozen=True, slots=True)
class InterestRates:
    """Result of a curve evaluation. All values ray."""
    liquidity_rate: int
    stable_borrow_rate: int
    variable_borrow_rate: int
    utilization: int

    def as_tuple(self) -> Tuple[int, int, int]:
        """(liquidity, stable, variable), the order callers usually unpack."""
        return self.liquidity_rate, self.stable_borrow_rate, self.variable_borrow_rate


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def rate_curve_to_dict(params: RateCurveParams) -> Dict[str, int]:
    """Convert params to the dict stored under 'rate_curve' in pool state."""
    return {
        'optimal_usage_ratio': params.optimal_usage_ratio,
        'base_variable_rate': params.base_variable_rate,
        'variable_slope1': params.variable_slope1,
        'variable_slope2': params.variable_slope2,
        'base_stable_rate_offset': params.base_stable_rate_offset,
        'stable_rate_excess_offset': params.stable_rate_excess_offset,
        'optimal_stable_to_total_debt_ratio': params.optimal_stable_to_total_debt_ratio,
    }


def load_rate_curve(raw: Dict[str, Any]) -> RateCurveParams:
    """Inverse of rate_curve_to_dict(); re-validates on load."""
    try:
        return RateCurveParams(**{name: raw[name] for name in _PARAM_FIELDS})
    except KeyError as e:
        raise Misconfiguration(f"rate curve is missing parameter {e.args[0]!r}") from e


def create_rate_curve(
    optimal_usage_ratio: Fraction = DEFAULT_OPTIMAL_USAGE_RATIO,
    base_variable_rate: Fraction = DEFAULT_BASE_VARIABLE_RATE,
    variable_slope1: Fraction = DEFAULT_VARIABLE_SLOPE1,
    variable_slope2: Fraction = DEFAULT_VARIABLE_SLOPE2,
    base_stable_rate_offset: Fraction = DEFAULT_BASE_STABLE_RATE_OFFSET,
    stable_rate_excess_offset: Fraction = DEFAULT_STABLE_RATE_EXCESS_OFFSET,
    optimal_stable_to_total_debt_ratio: Fraction = DEFAULT_OPTIMAL_STABLE_TO_TOTAL_DEBT_RATIO,
) -> RateCurveParams:
    """
    Build RateCurveParams from human fractions.

    Args are Decimal or str fractions (Decimal("0.04") = 4%); they are
    converted exactly to ray.

    Example:
        params = create_rate_curve(
            optimal_usage_ratio=Decimal("0.8"),
            base_variable_rate=Decimal("0.01"),
            variable_slope1=Decimal("0.04"),
            variable_slope2=Decimal("1"),
        )
    """
    try:
        return RateCurveParams(
            optimal_usage_ratio=to_ray(optimal_usage_ratio),
            base_variable_rate=to_ray(base_variable_rate),
            variable_slope1=to_ray(variable_slope1),
            variable_slope2=to_ray(variable_slope2),
            base_stable_rate_offset=to_ray(base_stable_rate_offset),
            stable_rate_excess_offset=to_ray(stable_rate_excess_offset),
            optimal_stable_to_total_debt_ratio=to_ray(optimal_stable_to_total_debt_ratio),
        )
    except TypeError as e:
        raise Misconfiguration(str(e)) from e


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_utilization(total_debt: int, available_liquidity: int) -> int:
    """
    Utilization in ray: total_debt / (available_liquidity + total_debt).

    Zero when there is no debt.

    Raises:
        InvalidArgument: If either input is negative
    """
    if total_debt < 0 or available_liquidity < 0:
        raise InvalidArgument(
            f"debt and liquidity cannot be negative: {total_debt}, {available_liquidity}"
        )
    if total_debt == 0:
        return 0
    return mul_div(total_debt, RAY, available_liquidity + total_debt)


def calculate_variable_rate(params: RateCurveParams, utilization: int) -> int:
    """Variable borrow rate at a given ray utilization."""
    if utilization > params.optimal_usage_ratio:
        excess = mul_div(
            utilization - params.optimal_usage_ratio, RAY, params.max_excess_usage_ratio
        )
        return (
            params.base_variable_rate
            + params.variable_slope1
            + mul_div(params.variable_slope2, excess, RAY)
        )
    return params.base_variable_rate + mul_div(
        params.variable_slope1, utilization, params.optimal_usage_ratio
    )


def calculate_overall_borrow_rate(
    total_stable_debt: int,
    total_variable_debt: int,
    variable_rate: int,
    average_stable_borrow_rate: int,
) -> int:
    """Debt-weighted average of the variable and stable borrow rates."""
    total_debt = total_stable_debt + total_variable_debt
    if total_debt == 0:
        return 0
    weighted = total_variable_debt * variable_rate + total_stable_debt * average_stable_borrow_rate
    return weighted // total_debt


def calculate_interest_rates(params: RateCurveParams, snapshot: ReserveSnapshot) -> InterestRates:
    """
    Evaluate the curve against a reserve snapshot.

    Returns:
        InterestRates(liquidity_rate, stable_borrow_rate, variable_borrow_rate,
        utilization), all ray. With no debt the base rates are returned and the
        liquidity rate is zero.

    Raises:
        InvalidArgument: If liquidity_taken exceeds reserve_balance + liquidity_added

    Example:
        rates = calculate_interest_rates(params, ReserveSnapshot(
            reserve_balance=20, total_variable_debt=80,
        ))
    """
    total_debt = snapshot.total_debt
    if total_debt == 0:
        return InterestRates(
            liquidity_rate=0,
            stable_borrow_rate=params.base_stable_rate,
            variable_borrow_rate=params.base_variable_rate,
            utilization=0,
        )

    available = snapshot.available_liquidity
    if available < 0:
        raise InvalidArgument(
            f"liquidity_taken exceeds available reserve: "
            f"{snapshot.reserve_balance} + {snapshot.liquidity_added} - {snapshot.liquidity_taken}"
        )

    stable_ratio = mul_div(snapshot.total_stable_debt, RAY, total_debt)
    utilization = calculate_utilization(total_debt, available)

    variable_rate = calculate_variable_rate(params, utilization)

    stable_rate = variable_rate + params.base_stable_rate_offset
    if stable_ratio > params.optimal_stable_to_total_debt_ratio:
        excess_stable = mul_div(
            stable_ratio - params.optimal_stable_to_total_debt_ratio,
            RAY,
            params.max_excess_stable_ratio,
        )
        stable_rate += mul_div(params.stable_rate_excess_offset, excess_stable, RAY)

    overall = calculate_overall_borrow_rate(
        snapshot.total_stable_debt,
        snapshot.total_variable_debt,
        variable_rate,
        snapshot.average_stable_borrow_rate,
    )
    liquidity_rate = mul_div(
        mul_div(overall, utilization, RAY),
        PERCENTAGE_FACTOR - snapshot.reserve_factor,
        PERCENTAGE_FACTOR,
    )

    return InterestRates(
        liquidity_rate=liquidity_rate,
        stable_borrow_rate=stable_rate,
        variable_borrow_rate=variable_rate,
        utilization=utilization,
    )


def calculate_risk_adjusted_rates(
    rates: InterestRates,
    premiums: RiskPremiums,
    has_coupon: bool,
    has_collateral_insurance: bool,
) -> InterestRates:
    """
    Layer flat risk premiums on top of curve rates.

    The coupon premium applies when the loan has no coupon, the insurance
    premium when its collateral is uninsured. Both borrow rates move by the
    same surcharge; the liquidity rate is left as is.
    """
    surcharge = 0
    if not has_coupon:
        surcharge += premiums.coupon_premium
    if not has_collateral_insurance:
        surcharge += premiums.collateral_insurance_premium
    return InterestRates(
        liquidity_rate=rates.liquidity_rate,
        stable_borrow_rate=rates.stable_borrow_rate + surcharge,
        variable_borrow_rate=rates.variable_borrow_rate + surcharge,
        utilization=rates.utilization,
    )


def rate_curve_points(params: RateCurveParams, n_points: int = 11) -> List[Tuple[int, int]]:
    """
    Sample (utilization, variable_rate) pairs evenly over [0, RAY].

    The optimal point is always included so the kink shows up in plots.
    """
    if n_points < 2:
        raise InvalidArgument(f"n_points must be at least 2, got {n_points}")
    utilizations = {RAY * i // (n_points - 1) for i in range(n_points)}
    utilizations.add(params.optimal_usage_ratio)
    return [(u, calculate_variable_rate(params, u)) for u in sorted(utilizations)]
