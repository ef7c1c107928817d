"""
External Services

This module contains the validator for FatturaPA documents received from outside.
"""

from .fatturapa_validator import FatturaPAValidator, fatturapa_validator

__all__ = [
    "FatturaPAValidator",
    "fatturapa_validator",
]
