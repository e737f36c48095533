"""
Currency table and conversion.

Rates are fallback values expressed in INR per unit of currency; callers
with live rates pass their own table.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Union

from ledgerbook.models.ledger import Currency


SUPPORTED_CURRENCIES: dict[Currency, dict[str, str]] = {
    Currency.INR: {"symbol": "₹", "name": "Indian Rupee"},
    Currency.USD: {"symbol": "$", "name": "US Dollar"},
    Currency.EUR: {"symbol": "€", "name": "Euro"},
    Currency.GBP: {"symbol": "£", "name": "British Pound"},
    Currency.JPY: {"symbol": "¥", "name": "Japanese Yen"},
    Currency.AUD: {"symbol": "A$", "name": "Australian Dollar"},
    Currency.CAD: {"symbol": "C$", "name": "Canadian Dollar"},
    Currency.CHF: {"symbol": "CHF", "name": "Swiss Franc"},
    Currency.CNY: {"symbol": "¥", "name": "Chinese Yuan"},
}

FALLBACK_EXCHANGE_RATES: dict[Currency, Decimal] = {
    Currency.INR: Decimal("1.0"),
    Currency.USD: Decimal("83.5"),
    Currency.EUR: Decimal("91.2"),
    Currency.GBP: Decimal("106.5"),
    Currency.JPY: Decimal("0.56"),
    Currency.AUD: Decimal("55.3"),
    Currency.CAD: Decimal("61.8"),
    Currency.CHF: Decimal("95.4"),
    Currency.CNY: Decimal("11.5"),
}

RateTable = Mapping[Currency, Decimal]


def _rate(currency: Union[Currency, str], rates: Optional[RateTable]) -> Decimal:
    rates = rates or FALLBACK_EXCHANGE_RATES
    return rates.get(Currency(currency), Decimal("1"))


def convert_to_inr(
    amount: Decimal,
    from_currency: Union[Currency, str],
    rates: Optional[RateTable] = None,
) -> Decimal:
    return amount * _rate(from_currency, rates)


def convert_from_inr(
    amount: Decimal,
    to_currency: Union[Currency, str],
    rates: Optional[RateTable] = None,
) -> Decimal:
    return amount / _rate(to_currency, rates)


def convert_currency(
    amount: Decimal,
    from_currency: Union[Currency, str],
    to_currency: Union[Currency, str],
    rates: Optional[RateTable] = None,
) -> Decimal:
    if Currency(from_currency) == Currency(to_currency):
        return amount
    return convert_from_inr(convert_to_inr(amount, from_currency, rates), to_currency, rates)


def format_amount(amount: Decimal, currency: Union[Currency, str]) -> str:
    """Format e.g. Decimal('-1234.5'), 'USD' as '-$1,234.50'."""
    symbol = SUPPORTED_CURRENCIES[Currency(currency)]["symbol"]
    quantized = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if quantized < 0 else ""
    return f"{sign}{symbol}{abs(quantized):,.2f}"
