"""Address validation for EVM-style account addresses."""
import re

from credit_oracle.core.exceptions import ValidationError

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(address) -> bool:
    return isinstance(address, str) and bool(ADDRESS_PATTERN.match(address.strip()))


def normalize_address(address) -> str:
    """
    Validate and canonicalize an address.

    Checksummed and lowercase spellings of the same address map to one key,
    so scores are always stored and looked up in lowercase.

    Raises:
        ValidationError: if the value is not `0x` followed by 40 hex characters.
    """
    if not is_valid_address(address):
        raise ValidationError(f"invalid address: {address!r}")
    return address.strip().lower()
