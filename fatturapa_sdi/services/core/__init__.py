"""
Core Services

This module contains the checksum helpers for Italian fiscal and bank identifiers.
"""

from .tool import *

__all__ = [
    "calcola_cifra_controllo_piva",
    "valida_piva",
    "valida_codice_fiscale",
    "valida_iban",
]
