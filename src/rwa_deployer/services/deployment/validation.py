"""Input checks that gate transaction submission."""

import re
from decimal import Decimal, Inexact, InvalidOperation, localcontext

from web3 import Web3

from rwa_deployer.core.exceptions import InvalidAddressError, PreconditionError

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")

UINT256_MAX = 2**256 - 1

# Enough significant digits for any uint256 plus a fractional part
AMOUNT_PRECISION = 100


def is_valid_address(value: object) -> bool:
    return isinstance(value, str) and bool(ADDRESS_PATTERN.fullmatch(value))


def require_address(value: object, field: str = "address") -> str:
    """Validate a full-length hex address and return it checksummed.

    Raises:
        InvalidAddressError: For anything else, including abbreviated display
            strings such as ``0x1234...abcd``
    """
    if is_valid_address(value):
        return Web3.to_checksum_address(value)

    if isinstance(value, str) and ("..." in value or "…" in value):
        raise InvalidAddressError(
            f"Invalid {field}: '{value}' is an abbreviated display address; "
            "use the full 42-character address"
        )
    raise InvalidAddressError(f"Invalid {field}: '{value}' is not a 0x-prefixed 40-hex-digit address")


def format_address(address: str) -> str:
    """Abbreviate an address for display (never for use in a transaction)."""
    if not address or len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def _parse_decimal(value: object, field: str) -> Decimal:
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise PreconditionError(f"Invalid {field}: '{value}' is not a number") from None
    if not amount.is_finite():
        raise PreconditionError(f"Invalid {field}: '{value}' is not a number")
    return amount


def _check_uint256(amount: int, field: str) -> int:
    if amount > UINT256_MAX:
        raise PreconditionError(f"Invalid {field}: exceeds the uint256 maximum")
    return amount


def parse_units(
    value: object, decimals: int, field: str = "amount", allow_zero: bool = False
) -> int:
    """Scale a decimal string to integer base units.

    Scaling is exact; an amount that cannot be represented without rounding
    is rejected rather than altered.

    Args:
        value: Amount in display units, e.g. "1.5"
        decimals: Number of decimals of the unit
        field: Field name used in error messages
        allow_zero: Accept zero (still rejects negatives)

    Raises:
        PreconditionError: Non-numeric, non-positive, finer than ``decimals``,
            or larger than a uint256
    """
    amount = _parse_decimal(value, field)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise PreconditionError(f"Invalid {field}: must be greater than 0")

    with localcontext() as ctx:
        ctx.prec = AMOUNT_PRECISION
        ctx.traps[Inexact] = True
        try:
            scaled = amount.scaleb(decimals)
        except Inexact:
            raise PreconditionError(
                f"Invalid {field}: '{value}' has too many digits"
            ) from None
        if scaled != scaled.to_integral_value():
            raise PreconditionError(
                f"Invalid {field}: more than {decimals} decimal places"
            )
    if scaled.adjusted() >= len(str(UINT256_MAX)):
        raise PreconditionError(f"Invalid {field}: exceeds the uint256 maximum")
    return _check_uint256(int(scaled), field)


def parse_base_units(value: object, field: str = "amount") -> int:
    """Validate an amount already expressed in base units."""
    if isinstance(value, bool):
        raise PreconditionError(f"Invalid {field}: '{value}' is not a number")
    if isinstance(value, int):
        amount = value
    else:
        try:
            amount = int(str(value).strip())
        except ValueError:
            # Non-integer notation such as "1e18" or "1.5"
            return parse_units(value, 0, field)
    if amount <= 0:
        raise PreconditionError(f"Invalid {field}: must be greater than 0")
    return _check_uint256(amount, field)
