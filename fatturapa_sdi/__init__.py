"""
FatturaPA SdI - generazione e validazione della fattura elettronica (schema v1.2)
"""

from fatturapa_sdi.schemas.fatturapa_models import (
    GenerateResult, InvoiceDocument, ValidationIssue, ValidationResult
)
from fatturapa_sdi.services.external.fatturapa_validator import FatturaPAValidator, fatturapa_validator
from fatturapa_sdi.services.fatturapa_service import FatturaPAService, fatturapa_service

__version__ = "1.0.0"


def generate(document: InvoiceDocument, progressivo_invio: str, self_check: bool = False) -> GenerateResult:
    return fatturapa_service.generate(document, progressivo_invio, self_check=self_check)


def generate_file_name(issuer_tax_id: str, progressive_id: str) -> str:
    return fatturapa_service.generate_file_name(issuer_tax_id, progressive_id)


def validate(raw_document: str) -> ValidationResult:
    return fatturapa_validator.validate(raw_document)


def quick_validate(raw_document: str) -> bool:
    return fatturapa_validator.quick_validate(raw_document)


__all__ = [
    "FatturaPAService",
    "FatturaPAValidator",
    "GenerateResult",
    "InvoiceDocument",
    "ValidationIssue",
    "ValidationResult",
    "fatturapa_service",
    "fatturapa_validator",
    "generate",
    "generate_file_name",
    "quick_validate",
    "validate",
]
