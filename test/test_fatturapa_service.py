"""
Test per FatturaPAService: pre-flight, generazione e nome file
"""

import logging
from decimal import Decimal

import pytest

from fatturapa_sdi.models.fatturapa_enums import Natura, RegimeFiscale, TipoCassa
from fatturapa_sdi.schemas.fatturapa_models import (
    Address, Attachment, LegalEntity, NaturalPerson, PaymentData, PaymentDetail,
    PurchaseOrderReference, SocialSecurityContribution, StampDuty
)
from fatturapa_sdi.services.fatturapa_service import FatturaPAService


class _ExplodingSerializer:
    def to_xml(self, document, progressivo_invio):
        raise RuntimeError("boom")


class _BrokenSerializer:
    def to_xml(self, document, progressivo_invio):
        return "<FatturaElettronica/>"


class TestFileName:
    """Test per la derivazione del nome file"""

    def setup_method(self):
        self.service = FatturaPAService()

    def test_standard_file_name(self):
        assert self.service.generate_file_name("12345678901", "00001") == "IT12345678901_00001.xml"

    def test_short_tax_id_zero_padded(self):
        assert self.service.generate_file_name("123", "00001") == "IT00000000123_00001.xml"

    def test_progressive_uppercased_and_padded(self):
        assert self.service.generate_file_name("12345678901", "ab1") == "IT12345678901_00AB1.xml"

    def test_progressive_truncated_to_five(self):
        assert self.service.generate_file_name("12345678901", "0000000012") == "IT12345678901_00012.xml"

    def test_is_deterministic(self):
        first = self.service.generate_file_name("01234567897", "A1")
        assert first == self.service.generate_file_name("01234567897", "A1")


class TestGenerate:
    """Test per FatturaPAService.generate"""

    def setup_method(self):
        self.service = FatturaPAService()

    def test_generate_success(self, document):
        result = self.service.generate(document, "00001")

        assert result.success is True
        assert result.errors == ()
        assert result.file_name == "IT01234567897_00001.xml"
        assert result.document.startswith('<?xml version="1.0" encoding="UTF-8"?>')

    def test_generate_with_self_check(self, document):
        result = self.service.generate(document, "00001", self_check=True)
        assert result.success is True

    def test_generate_logs_file_name(self, document, caplog):
        with caplog.at_level(logging.INFO, logger="fatturapa_sdi.services.fatturapa_service"):
            self.service.generate(document, "00001")
        assert "IT01234567897_00001.xml" in caplog.text

    def test_preflight_failure_returns_no_document(self, make_document):
        result = self.service.generate(make_document(document_number=""), "00001")

        assert result.success is False
        assert result.document is None
        assert result.file_name is None
        assert "Document number (Numero) is required" in result.errors

    def test_serialization_failure_is_reported(self, document):
        service = FatturaPAService(serializer=_ExplodingSerializer())
        result = service.generate(document, "00001")

        assert result.success is False
        assert result.errors == ("Serialization failed: boom",)

    def test_very_large_amounts_are_serialized(self, make_document, make_line):
        price = Decimal("12345678901234567890123456789.995")
        doc = make_document(line_items=(make_line(unit_price=price, total_price=price),))
        result = self.service.generate(doc, "00001", self_check=True)

        assert result.success is True, result.errors
        assert "<PrezzoUnitario>12345678901234567890123456790.00</PrezzoUnitario>" in result.document

    def test_self_check_failure_is_reported(self, document):
        service = FatturaPAService(serializer=_BrokenSerializer())

        assert service.generate(document, "00001").success is True
        result = service.generate(document, "00001", self_check=True)
        assert result.success is False
        assert any("XML declaration is missing" in error for error in result.errors)


class TestPreflight:
    """Test per i controlli di business prima della serializzazione"""

    def setup_method(self):
        self.service = FatturaPAService()

    def test_valid_document_has_no_errors(self, document):
        assert self.service.preflight(document, "00001") == []

    @pytest.mark.parametrize("progressivo", ["", "12345678901", "AB-01"])
    def test_invalid_progressivo(self, document, progressivo):
        errors = self.service.preflight(document, progressivo)
        assert "ProgressivoInvio must be 1-10 alphanumeric characters" in errors

    def test_errors_are_accumulated(self, make_document, make_issuer):
        doc = make_document(issuer=make_issuer(tax_id=None, fiscal_regime=None), document_number=" ")
        errors = self.service.preflight(doc, "00001")

        assert "Issuer tax id (P.IVA) is required" in errors
        assert "Issuer fiscal regime (RegimeFiscale) is required" in errors
        assert "Document number (Numero) is required" in errors

    def test_issuer_wrong_check_digit(self, make_document, make_issuer):
        errors = self.service.preflight(make_document(issuer=make_issuer(tax_id="12345678901")), "00001")
        assert any(error.startswith("Issuer tax id:") and "check digit" in error for error in errors)

    def test_issuer_tax_id_must_be_numeric(self, make_document, make_issuer):
        errors = self.service.preflight(make_document(issuer=make_issuer(tax_id="IT01234567897")), "00001")
        assert "Issuer tax id (P.IVA) must be 1-28 digits" in errors

    def test_issuer_invalid_email(self, make_document, make_issuer):
        errors = self.service.preflight(make_document(issuer=make_issuer(email="non-valida")), "00001")
        assert "Issuer e-mail is not a valid address" in errors

    def test_recipient_requires_tax_id_or_fiscal_code(self, make_document, make_recipient):
        doc = make_document(recipient=make_recipient(tax_id=None, fiscal_code=None))
        errors = self.service.preflight(doc, "00001")
        assert "Recipient must have a tax id (P.IVA) or a fiscal code (Codice Fiscale)" in errors

    def test_recipient_natural_person_with_fiscal_code(self, make_document, make_recipient):
        doc = make_document(recipient=make_recipient(
            identity=NaturalPerson(first_name="Mario", last_name="Rossi"),
            tax_id=None,
            fiscal_code="RSSMRA85T10A562S"
        ))
        assert self.service.preflight(doc, "00001") == []

    def test_recipient_invalid_fiscal_code(self, make_document, make_recipient):
        doc = make_document(recipient=make_recipient(fiscal_code="RSSMRA85T10A562T"))
        errors = self.service.preflight(doc, "00001")
        assert any(error.startswith("Recipient fiscal code:") for error in errors)

    def test_recipient_foreign_tax_id(self, make_document, make_recipient):
        estero = Address(street="Hauptstrasse 1", postal_code="10115", municipality="Berlin", country="DE")
        doc = make_document(recipient=make_recipient(tax_id="DE123456789", recipient_code=None, address=estero))
        assert self.service.preflight(doc, "00001") == []

        doc = make_document(recipient=make_recipient(tax_id="DE-123", recipient_code=None, address=estero))
        errors = self.service.preflight(doc, "00001")
        assert "Recipient foreign tax id must be 1-28 alphanumeric characters" in errors

    def test_pec_required_with_default_code(self, make_document, make_recipient):
        doc = make_document(recipient=make_recipient(recipient_code=None))
        errors = self.service.preflight(doc, "00001")
        assert "Certified e-mail (PEC) is required when recipient code is 0000000" in errors

        doc = make_document(recipient=make_recipient(recipient_code=None, certified_email="cliente@pec.it"))
        assert self.service.preflight(doc, "00001") == []

    def test_invalid_recipient_code(self, make_document, make_recipient):
        doc = make_document(recipient=make_recipient(recipient_code="abc12"))
        errors = self.service.preflight(doc, "00001")
        assert "Recipient code (CodiceDestinatario) must be 6 or 7 uppercase alphanumeric characters" in errors

    def test_blank_identity(self, make_document, make_recipient):
        doc = make_document(recipient=make_recipient(identity=LegalEntity(business_name="  ")))
        errors = self.service.preflight(doc, "00001")
        assert "Recipient business name (Denominazione) is required" in errors

    def test_address_checks(self, make_document, make_recipient):
        doc = make_document(recipient=make_recipient(address=Address(street="Via Milano", postal_code="2010")))
        errors = self.service.preflight(doc, "00001")

        assert "Recipient address postal code (CAP) must be 5 digits" in errors
        assert "Recipient address municipality (Comune) is required" in errors
        assert "Recipient address province (Provincia) is required for Italian addresses" in errors

    def test_missing_lines_and_summaries(self, make_document):
        errors = self.service.preflight(make_document(line_items=(), vat_summaries=()), "00001")

        assert "At least one line item is required" in errors
        assert "At least one VAT summary is required" in errors

    def test_duplicate_line_number(self, make_document, make_line):
        doc = make_document(line_items=(make_line(), make_line(description="Altro")))
        errors = self.service.preflight(doc, "00001")
        assert "Line number 1 is a duplicate" in errors

    def test_blank_description(self, make_document, make_line):
        doc = make_document(line_items=(make_line(description="\x00 "),))
        errors = self.service.preflight(doc, "00001")
        assert "Line 1: description is required" in errors

    def test_zero_rate_requires_nature(self, make_document, make_line, make_summary):
        doc = make_document(
            line_items=(make_line(vat_rate=Decimal("0")),),
            vat_summaries=(make_summary(vat_rate=Decimal("0"), tax_amount=Decimal("0")),)
        )
        errors = self.service.preflight(doc, "00001")

        assert "Line 1: nature code is required when VAT rate is 0" in errors
        assert "VAT summary at rate 0: nature code is required" in errors

    def test_rate_rounding_to_zero_requires_nature(self, make_document, make_line, make_summary):
        doc = make_document(
            line_items=(make_line(vat_rate=Decimal("0.004")),),
            vat_summaries=(make_summary(vat_rate=Decimal("0.004"), tax_amount=Decimal("0")),)
        )
        errors = self.service.preflight(doc, "00001")
        assert "Line 1: nature code is required when VAT rate is 0" in errors

    def test_line_without_matching_summary(self, make_document, make_line):
        doc = make_document(line_items=(make_line(), make_line(line_number=2, vat_rate=Decimal("10"))))
        errors = self.service.preflight(doc, "00001")
        assert "Line 2: no VAT summary for rate 10.00" in errors

    def test_line_nature_must_match_summary(self, make_document, make_line, make_summary):
        doc = make_document(
            line_items=(make_line(vat_rate=Decimal("0"), nature_code=Natura.N2_2),),
            vat_summaries=(make_summary(vat_rate=Decimal("0"), nature_code=Natura.N4, tax_amount=Decimal("0")),)
        )
        errors = self.service.preflight(doc, "00001")
        assert "Line 1: no VAT summary for rate 0.00 and nature N2.2" in errors

    def test_rates_compared_at_two_decimals(self, make_document, make_line, make_summary):
        doc = make_document(
            line_items=(make_line(vat_rate=Decimal("22.000")),),
            vat_summaries=(make_summary(vat_rate=Decimal("22")),)
        )
        assert self.service.preflight(doc, "00001") == []

    def test_total_must_match_summaries(self, make_document):
        errors = self.service.preflight(make_document(total_amount=Decimal("999")), "00001")
        assert "Document total (ImportoTotaleDocumento) 999.00 does not match the sum of VAT summaries 122.00" in errors

    @pytest.mark.parametrize("total,rounding", [
        (Decimal("122.02"), None),
        (Decimal("121.984"), None),
        (Decimal("121.50"), Decimal("-0.5")),
        (None, None),
    ])
    def test_total_within_tolerance(self, make_document, total, rounding):
        doc = make_document(total_amount=total, rounding=rounding)
        assert self.service.preflight(doc, "00001") == []

    def test_stamp_duty_must_be_virtual(self, make_document):
        doc = make_document(stamp_duty=StampDuty(virtual_stamp=False, amount=Decimal("2")))
        errors = self.service.preflight(doc, "00001")
        assert "Stamp duty (DatiBollo) is only supported as virtual stamp (BolloVirtuale SI)" in errors

    def test_social_security_zero_rate_requires_nature(self, make_document):
        doc = make_document(social_security_contributions=(SocialSecurityContribution(
            fund_type=TipoCassa.TC22, rate=Decimal("4"), contribution_amount=Decimal("4"), vat_rate=Decimal("0")
        ),))
        errors = self.service.preflight(doc, "00001")
        assert "Social security contribution TC22: nature code is required when VAT rate is 0" in errors

    def test_invalid_iban(self, make_document):
        doc = make_document(payment_data=PaymentData(
            payment_terms="TP02",
            details=(PaymentDetail(payment_method="MP05", amount=Decimal("122"), iban="IT61X0542811101000000123456"),)
        ))
        errors = self.service.preflight(doc, "00001")
        assert any(error.startswith("Payment detail 1:") for error in errors)

    def test_blank_references_and_attachments(self, make_document):
        doc = make_document(
            purchase_orders=(PurchaseOrderReference(document_id=" "),),
            attachments=(Attachment(name=" ", content=""),)
        )
        errors = self.service.preflight(doc, "00001")

        assert "Purchase order 1: document id (IdDocumento) is required" in errors
        assert "Attachment 1: name (NomeAttachment) is required" in errors
        assert "Attachment 1: content is empty" in errors

    def test_every_regime_is_accepted(self, make_document, make_issuer):
        for regime in RegimeFiscale:
            doc = make_document(issuer=make_issuer(fiscal_regime=regime))
            assert self.service.preflight(doc, "00001") == []
