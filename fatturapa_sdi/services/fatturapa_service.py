"""
Servizio di generazione FatturaPA: pre-flight, serializzazione e nome file
"""

import logging
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Set, Tuple

from fatturapa_sdi.core.settings import FatturaPASettings, get_fatturapa_settings
from fatturapa_sdi.models.fatturapa_enums import CODICE_DESTINATARIO_PEC
from fatturapa_sdi.schemas.fatturapa_models import (
    Address, GenerateResult, InvoiceDocument, LegalEntity, Party
)
from fatturapa_sdi.services.core.tool import valida_codice_fiscale, valida_iban, valida_piva
from fatturapa_sdi.services.external.fatturapa_validator import FatturaPAValidator
from fatturapa_sdi.services.fatturapa_serializer import (
    FatturaPASerializer, clean_text, quantize_amount, resolve_recipient_code
)

logger = logging.getLogger(__name__)

_PROGRESSIVO_PATTERN = re.compile(r'^[A-Za-z0-9]{1,10}$')
_CODICE_DESTINATARIO_PATTERN = re.compile(r'^[A-Z0-9]{6,7}$')
_CAP_PATTERN = re.compile(r'^[0-9]{5}$')
_NUMERICO_PATTERN = re.compile(r'^[0-9]{1,28}$')
_ID_CODICE_ESTERO_PATTERN = re.compile(r'^[A-Za-z0-9]{1,28}$')
_PROVINCIA_PATTERN = re.compile(r'^[A-Z]{2}$')
_EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
_TWO_PLACES = Decimal('0.01')
_TOTAL_TOLERANCE = Decimal('0.02')


def _blank(value: Optional[str]) -> bool:
    return value is None or not clean_text(value).strip()


def _vat_key(vat_rate: Decimal, nature_code) -> Tuple[Decimal, Optional[str]]:
    return Decimal(vat_rate).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP), nature_code.value if nature_code else None


class FatturaPAService:
    """
    Generatore FatturaPA

    Esegue il pre-flight delle regole di business sull'InvoiceDocument e, se
    superato, produce l'XML e il nome file. Non restituisce mai output parziali:
    in caso di errori il risultato contiene solo la lista dei messaggi.
    """

    def __init__(
        self,
        serializer: Optional[FatturaPASerializer] = None,
        validator: Optional[FatturaPAValidator] = None,
        settings: Optional[FatturaPASettings] = None
    ):
        self.settings = settings or get_fatturapa_settings()
        self.serializer = serializer or FatturaPASerializer(self.settings)
        self.validator = validator or FatturaPAValidator()

    def generate(
        self,
        document: InvoiceDocument,
        progressivo_invio: str,
        self_check: bool = False
    ) -> GenerateResult:
        """
        Genera l'XML FatturaPA

        Args:
            document: documento fattura
            progressivo_invio: progressivo di trasmissione (1-10 caratteri alfanumerici)
            self_check: se True l'XML prodotto viene riverificato dal validatore

        Returns:
            GenerateResult con document e file_name, oppure con la lista errori
        """
        errors = self.preflight(document, progressivo_invio)
        if errors:
            logger.warning(
                f"FatturaPA pre-flight failed for document {document.document_number!r}: {len(errors)} error(s)"
            )
            return GenerateResult(success=False, errors=tuple(errors))

        try:
            xml_content = self.serializer.to_xml(document, progressivo_invio)
        except Exception as e:
            logger.error(f"Errore imprevisto durante la serializzazione FatturaPA: {e}", exc_info=True)
            return GenerateResult(success=False, errors=(f"Serialization failed: {e}",))

        if self_check:
            verdict = self.validator.validate(xml_content)
            if not verdict.valid:
                logger.error(f"Generated FatturaPA XML failed self-check: {len(verdict.errors)} error(s)")
                return GenerateResult(
                    success=False,
                    errors=tuple(f"{issue.path}: {issue.message}" for issue in verdict.errors)
                )

        file_name = self.generate_file_name(document.issuer.tax_id or "", progressivo_invio)
        logger.info(f"FatturaPA generata: {file_name} (documento {document.document_number})")
        return GenerateResult(success=True, document=xml_content, file_name=file_name)

    def generate_file_name(self, issuer_tax_id: str, progressive_id: str) -> str:
        """
        Genera il nome del file XML FatturaPA

        Args:
            issuer_tax_id: P.IVA del cedente (le sole cifre, zero-padded a 11)
            progressive_id: progressivo (alfanumerico, maiuscolo, 5 caratteri)

        Returns:
            Nome file formato: IT{P.IVA}_{PROGRESSIVO}.xml
        """
        digits = re.sub(r'[^0-9]', '', issuer_tax_id or '').zfill(11)
        progressivo = re.sub(r'[^A-Za-z0-9]', '', progressive_id or '').upper().zfill(5)[-5:]
        return f"IT{digits}_{progressivo}.xml"

    # ==================== PRE-FLIGHT ====================

    def preflight(self, document: InvoiceDocument, progressivo_invio: str) -> List[str]:
        """Controlli di business prima della serializzazione; restituisce tutti gli errori"""
        errors: List[str] = []

        if not progressivo_invio or not _PROGRESSIVO_PATTERN.match(progressivo_invio):
            errors.append("ProgressivoInvio must be 1-10 alphanumeric characters")

        self._check_issuer(document, errors)
        self._check_recipient(document, errors)

        if _blank(document.document_number):
            errors.append("Document number (Numero) is required")

        self._check_lines_and_summaries(document, errors)
        self._check_total(document, errors)
        self._check_optional_sections(document, errors)

        return errors

    def _check_issuer(self, document: InvoiceDocument, errors: List[str]) -> None:
        issuer = document.issuer

        if _blank(issuer.tax_id):
            errors.append("Issuer tax id (P.IVA) is required")
        elif not _NUMERICO_PATTERN.match(issuer.tax_id.strip()):
            errors.append("Issuer tax id (P.IVA) must be 1-28 digits")
        elif issuer.address.is_domestic:
            is_valid, error_message = valida_piva(issuer.tax_id.strip())
            if not is_valid:
                errors.append(f"Issuer tax id: {error_message}")

        if issuer.fiscal_regime is None:
            errors.append("Issuer fiscal regime (RegimeFiscale) is required")

        self._check_party_common(issuer, "Issuer", errors)

        if not _blank(issuer.email) and not _EMAIL_PATTERN.match(issuer.email.strip()):
            errors.append("Issuer e-mail is not a valid address")

    def _check_recipient(self, document: InvoiceDocument, errors: List[str]) -> None:
        recipient = document.recipient

        if _blank(recipient.tax_id) and _blank(recipient.fiscal_code):
            errors.append("Recipient must have a tax id (P.IVA) or a fiscal code (Codice Fiscale)")
        elif not _blank(recipient.tax_id):
            tax_id = recipient.tax_id.strip()
            if recipient.address.is_domestic:
                is_valid, error_message = valida_piva(tax_id)
                if not is_valid:
                    errors.append(f"Recipient tax id: {error_message}")
            elif not _ID_CODICE_ESTERO_PATTERN.match(tax_id):
                errors.append("Recipient foreign tax id must be 1-28 alphanumeric characters")

        self._check_party_common(recipient, "Recipient", errors)

        codice = resolve_recipient_code(recipient)
        if not _CODICE_DESTINATARIO_PATTERN.match(codice):
            errors.append("Recipient code (CodiceDestinatario) must be 6 or 7 uppercase alphanumeric characters")
        elif codice == CODICE_DESTINATARIO_PEC:
            if _blank(recipient.certified_email):
                errors.append("Certified e-mail (PEC) is required when recipient code is 0000000")
            elif not self._is_email(recipient.certified_email.strip()):
                errors.append("Certified e-mail (PEC) is not a valid address")

    def _check_party_common(self, party: Party, label: str, errors: List[str]) -> None:
        if not _blank(party.fiscal_code):
            is_valid, error_message = valida_codice_fiscale(party.fiscal_code.strip())
            if not is_valid:
                errors.append(f"{label} fiscal code: {error_message}")

        if isinstance(party.identity, LegalEntity):
            if _blank(party.identity.business_name):
                errors.append(f"{label} business name (Denominazione) is required")
        elif _blank(party.identity.first_name) or _blank(party.identity.last_name):
            errors.append(f"{label} first and last name (Nome, Cognome) are required")

        self._check_address(party.address, label, errors)

    def _check_address(self, address: Address, label: str, errors: List[str]) -> None:
        if _blank(address.street):
            errors.append(f"{label} address street (Indirizzo) is required")
        if _blank(address.postal_code):
            errors.append(f"{label} address postal code (CAP) is required")
        elif not _CAP_PATTERN.match(address.postal_code.strip()):
            errors.append(f"{label} address postal code (CAP) must be 5 digits")
        if _blank(address.municipality):
            errors.append(f"{label} address municipality (Comune) is required")
        if _blank(address.province):
            if address.is_domestic:
                errors.append(f"{label} address province (Provincia) is required for Italian addresses")
        elif not _PROVINCIA_PATTERN.match(address.province.strip()):
            errors.append(f"{label} address province (Provincia) must be 2 uppercase letters")

    def _check_lines_and_summaries(self, document: InvoiceDocument, errors: List[str]) -> None:
        if not document.line_items:
            errors.append("At least one line item is required")
        if not document.vat_summaries:
            errors.append("At least one VAT summary is required")

        # Le aliquote si confrontano come vengono scritte nell'XML (2 decimali)
        seen: Set[int] = set()
        for linea in document.line_items:
            if linea.line_number in seen:
                errors.append(f"Line number {linea.line_number} is a duplicate")
            seen.add(linea.line_number)
            if _blank(linea.description):
                errors.append(f"Line {linea.line_number}: description is required")
            aliquota, natura = _vat_key(linea.vat_rate, linea.nature_code)
            if aliquota == 0 and natura is None:
                errors.append(f"Line {linea.line_number}: nature code is required when VAT rate is 0")

        summary_keys = set()
        for riepilogo in document.vat_summaries:
            key = _vat_key(riepilogo.vat_rate, riepilogo.nature_code)
            if key[0] == 0 and key[1] is None:
                errors.append("VAT summary at rate 0: nature code is required")
            summary_keys.add(key)

        if document.vat_summaries:
            for linea in document.line_items:
                key = _vat_key(linea.vat_rate, linea.nature_code)
                if key not in summary_keys:
                    errors.append(
                        f"Line {linea.line_number}: no VAT summary for rate {key[0]}"
                        f"{' and nature ' + key[1] if key[1] else ''}"
                    )

    def _check_total(self, document: InvoiceDocument, errors: List[str]) -> None:
        # Importi confrontati come vengono scritti nell'XML (2 decimali)
        if document.total_amount is None or not document.vat_summaries:
            return
        calcolato = sum(
            (quantize_amount(r.taxable_amount) + quantize_amount(r.tax_amount) for r in document.vat_summaries),
            Decimal('0')
        )
        if document.rounding is not None:
            calcolato += quantize_amount(document.rounding)
        totale = quantize_amount(document.total_amount)
        if abs(totale - calcolato) > _TOTAL_TOLERANCE:
            errors.append(
                f"Document total (ImportoTotaleDocumento) {totale} does not match "
                f"the sum of VAT summaries {calcolato}"
            )

    def _check_optional_sections(self, document: InvoiceDocument, errors: List[str]) -> None:
        if document.stamp_duty and not document.stamp_duty.virtual_stamp:
            errors.append("Stamp duty (DatiBollo) is only supported as virtual stamp (BolloVirtuale SI)")

        for cassa in document.social_security_contributions:
            aliquota, natura = _vat_key(cassa.vat_rate, cassa.nature_code)
            if aliquota == 0 and natura is None:
                errors.append(
                    f"Social security contribution {cassa.fund_type.value}: nature code is required when VAT rate is 0"
                )

        if document.payment_data:
            for idx, dettaglio in enumerate(document.payment_data.details, start=1):
                if dettaglio.iban:
                    is_valid, error_message = valida_iban(dettaglio.iban)
                    if not is_valid:
                        errors.append(f"Payment detail {idx}: {error_message}")

        for idx, ordine in enumerate(document.purchase_orders, start=1):
            if _blank(ordine.document_id):
                errors.append(f"Purchase order {idx}: document id (IdDocumento) is required")

        for idx, ddt in enumerate(document.related_documents, start=1):
            if _blank(ddt.number):
                errors.append(f"Transport document {idx}: number (NumeroDDT) is required")

        for idx, allegato in enumerate(document.attachments, start=1):
            if _blank(allegato.name):
                errors.append(f"Attachment {idx}: name (NomeAttachment) is required")
            if _blank(allegato.content):
                errors.append(f"Attachment {idx}: content is empty")

    def _is_email(self, value: str) -> bool:
        return 7 <= len(value) <= 256 and bool(_EMAIL_PATTERN.match(value))


fatturapa_service = FatturaPAService()
