"""
Router FastAPI per FatturaPA
"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from typing import List
from pydantic import BaseModel, Field

from fatturapa_sdi.core.exceptions import ErrorCode, ValidationException
from fatturapa_sdi.schemas.fatturapa_models import InvoiceDocument, ValidationIssue
from fatturapa_sdi.services.external.fatturapa_validator import FatturaPAValidator, fatturapa_validator
from fatturapa_sdi.services.fatturapa_service import FatturaPAService, fatturapa_service

router = APIRouter(prefix="/fatturapa", tags=["FatturaPA"])


def get_fatturapa_service() -> FatturaPAService:
    return fatturapa_service


def get_fatturapa_validator() -> FatturaPAValidator:
    return fatturapa_validator


class GenerateRequest(BaseModel):
    """Request per generazione XML FatturaPA"""
    document: InvoiceDocument
    progressivo_invio: str = Field(..., min_length=1, max_length=10)
    self_check: bool = False


class ValidationResponse(BaseModel):
    """Response per validazione"""
    valid: bool
    errors: List[ValidationIssue]


class FileNameResponse(BaseModel):
    file_name: str


@router.post("/generate")
async def generate_fattura(
    request: GenerateRequest,
    service: FatturaPAService = Depends(get_fatturapa_service)
):
    """
    Genera l'XML FatturaPA da un InvoiceDocument

    - **document**: documento fattura
    - **progressivo_invio**: progressivo di trasmissione

    **Response**: File XML scaricabile con nome formato `IT{P.IVA}_{PROGRESSIVO}.xml`.
    In caso di errori di pre-flight restituisce 400 con la lista errori.
    """
    result = service.generate(
        request.document, request.progressivo_invio, self_check=request.self_check
    ).raise_for_errors()

    return Response(
        content=result.document,
        media_type="application/xml",
        headers={
            "Content-Disposition": f"attachment; filename={result.file_name}",
            "Content-Type": "application/xml; charset=utf-8"
        }
    )


@router.post("/validate", response_model=ValidationResponse)
async def validate_fattura(
    request: Request,
    validator: FatturaPAValidator = Depends(get_fatturapa_validator)
):
    """
    Valida un XML FatturaPA (body della richiesta, testo UTF-8)
    """
    raw = await request.body()
    try:
        xml_content = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationException("Request body is not valid UTF-8 text", ErrorCode.INVALID_XML)

    result = validator.validate(xml_content)
    return ValidationResponse(valid=result.valid, errors=list(result.errors))


@router.get("/file-name", response_model=FileNameResponse)
async def get_file_name(
    issuer_tax_id: str = Query(..., min_length=1),
    progressive_id: str = Query(..., min_length=1),
    service: FatturaPAService = Depends(get_fatturapa_service)
):
    """
    Calcola il nome file FatturaPA

    - **issuer_tax_id**: P.IVA del cedente
    - **progressive_id**: progressivo di invio
    """
    return FileNameResponse(file_name=service.generate_file_name(issuer_tax_id, progressive_id))
