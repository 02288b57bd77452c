"""Service layer helpers"""

from .address import (
    is_valid_move_address,
    normalize_address,
    pad_address,
    short_address,
)

__all__ = [
    "is_valid_move_address",
    "normalize_address",
    "pad_address",
    "short_address",
]
