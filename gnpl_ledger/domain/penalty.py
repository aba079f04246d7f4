"""Late-penalty accrual for overdue GNPL principal"""

from decimal import Decimal

from gnpl_ledger.domain.models import PenaltyConfiguration
from gnpl_ledger.utils.money import ZERO, to_money


def elapsed_periods(overdue_days: int, config: PenaltyConfiguration) -> int:
    """Number of complete penalty periods in `overdue_days`"""
    if not config.penalty_enabled or overdue_days <= 0:
        return 0
    return overdue_days // config.penalty_period_days


def accrue_penalty(outstanding_principal: Decimal, overdue_days: int, config: PenaltyConfiguration) -> Decimal:
    """
    Simple (non-compounding) late penalty.

    Each elapsed period charges `penalty_percent` of the outstanding principal
    passed in. Prior penalties are never part of the base, so the result only
    depends on the arguments.

    Example:
        1000.00 principal, 10 days overdue, 5% every 7 days
        periods = 10 // 7 = 1 -> 1000.00 * 0.05 * 1 = 50.00
    """
    periods = elapsed_periods(overdue_days, config)
    if periods == 0 or outstanding_principal <= 0:
        return ZERO

    return to_money(outstanding_principal * (config.penalty_percent / Decimal(100)) * periods)
