"""Amounts are whole units of the club currency (VND has no minor unit)."""
import math

from shuttleclub.errors import ValidationError

MAX_AMOUNT = 1_000_000_000


def normalize_amount(raw_value, field_name='Amount'):
    """Parse a positive amount, rounding to the nearest whole unit."""
    if isinstance(raw_value, bool):
        raise ValidationError(f'{field_name} must be a number')
    try:
        value = float(raw_value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field_name} must be a number')
    if not math.isfinite(value):
        raise ValidationError(f'{field_name} must be a number')
    amount = int(round(value))
    if amount <= 0:
        raise ValidationError(f'{field_name} must be greater than zero')
    if amount > MAX_AMOUNT:
        raise ValidationError(f'{field_name} is too large')
    return amount


def to_charge(owed):
    """Whole-unit amount to charge for a computed share; never negative."""
    if owed <= 0:
        return 0
    return int(math.ceil(round(owed, 6)))


def whole_units(value):
    """Round a computed share to whole currency units for display; sign is kept."""
    return int(round(value or 0))
