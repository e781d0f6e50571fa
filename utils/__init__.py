"""
Utility modules for the veterinary front-desk scheduling tools.
"""

from .phone_utils import normalize_phone_e164, mask_phone
from .formatting_utils import spoken_list, possessive

__all__ = [
    "normalize_phone_e164",
    "mask_phone",
    "spoken_list",
    "possessive",
]
