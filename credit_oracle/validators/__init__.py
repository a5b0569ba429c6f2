"""Package init for validators module."""

from credit_oracle.validators.address_validator import is_valid_address, normalize_address

__all__ = [
    'is_valid_address',
    'normalize_address',
]
