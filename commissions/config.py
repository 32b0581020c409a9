# commissions/config.py
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Dict, Any, Tuple
from flask import current_app, has_app_context


class CommissionConfigHelper:
    """
    Commission configuration helper with level-based rates
    Level 1: 20%, Level 2: 10%, Level 3: 5%
    One canonical activation fee schedule: ACTIVE_USER 100, AFFILIATOR 250
    """

    # Rates by upline level (index 0 = direct referrer)
    REFERRAL_RATES = (Decimal('0.20'), Decimal('0.10'), Decimal('0.05'))

    ACTIVATION_FEES = {
        "ACTIVE_USER": Decimal('100.00'),
        "AFFILIATOR": Decimal('250.00'),
    }

    QUANTUM = Decimal('0.01')

    # Roles whose holders may receive cascade commissions
    ELIGIBLE_ROLES = frozenset({"ACTIVE_USER", "AFFILIATOR"})

    @staticmethod
    def _setting(key, default):
        if has_app_context():
            return current_app.config.get(key, default)
        return default

    @staticmethod
    def referral_rates() -> Tuple[Decimal, ...]:
        rates = CommissionConfigHelper._setting(
            "REFERRAL_COMMISSION_RATES", CommissionConfigHelper.REFERRAL_RATES
        )
        return tuple(Decimal(str(rate)) for rate in rates)

    @staticmethod
    def max_level() -> int:
        return len(CommissionConfigHelper.referral_rates())

    @staticmethod
    def get_rate(level: int) -> Decimal:
        """Rate for a 1-based upline level; zero outside the configured tiers."""
        rates = CommissionConfigHelper.referral_rates()
        if not isinstance(level, int) or level < 1 or level > len(rates):
            return Decimal('0')
        return rates[level - 1]

    @staticmethod
    def activation_fee(role: str) -> Decimal:
        fees = CommissionConfigHelper._setting("ACTIVATION_FEES", CommissionConfigHelper.ACTIVATION_FEES)
        fee = fees.get(role)
        if fee is None:
            raise KeyError(f"No activation fee configured for role {role}")
        return CommissionConfigHelper.round_amount(Decimal(str(fee)))

    @staticmethod
    def round_amount(amount) -> Decimal:
        """Round to the currency minor unit, half-even."""
        quantum = Decimal(str(CommissionConfigHelper._setting("CURRENCY_QUANTUM", CommissionConfigHelper.QUANTUM)))
        return Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_EVEN)

    @staticmethod
    def is_eligible_role(role: str) -> bool:
        return role in CommissionConfigHelper.ELIGIBLE_ROLES

    @staticmethod
    def get_commission_structure() -> Dict[str, Any]:
        """Summary of rates and fees for display."""
        rates = CommissionConfigHelper.referral_rates()
        return {
            'levels': {
                level: {
                    'rate': float(rate),
                    'rate_display': f"{float(rate) * 100:g}%",
                }
                for level, rate in enumerate(rates, start=1)
            },
            'max_level': len(rates),
            'activation_fees': {
                role: float(CommissionConfigHelper.activation_fee(role))
                for role in CommissionConfigHelper.ACTIVATION_FEES
            },
        }
