"""
Test end-to-end: ogni documento generato con successo supera la validazione
"""

import xml.etree.ElementTree as ET
from datetime import date
from decimal import Decimal

import pytest

import fatturapa_sdi
from fatturapa_sdi.models.fatturapa_enums import (
    CondizioniPagamento, EsigibilitaIVA, ModalitaPagamento, Natura, RegimeFiscale,
    SocioUnico, TipoCassa, TipoDocumento, TipoRitenuta, TipoScontoMaggiorazione
)
from fatturapa_sdi.schemas.fatturapa_models import (
    Address, Attachment, DiscountSurcharge, IscrizioneREA, LegalEntity, NaturalPerson, PaymentData,
    PaymentDetail, PurchaseOrderReference, RelatedDocument, SocialSecurityContribution,
    StampDuty, WithholdingTax
)
from fatturapa_sdi.services.external.fatturapa_validator import FatturaPAValidator
from fatturapa_sdi.services.fatturapa_service import FatturaPAService


class TestRoundTrip:
    """Generazione seguita da validazione"""

    def setup_method(self):
        self.service = FatturaPAService()
        self.validator = FatturaPAValidator()

    def _generate_and_validate(self, document):
        result = self.service.generate(document, "00001")
        assert result.success is True, result.errors
        verdict = self.validator.validate(result.document)
        assert verdict.valid is True, verdict.errors
        return result

    def test_standard_private_invoice(self, document):
        result = self._generate_and_validate(document)
        assert result.file_name == "IT01234567897_00001.xml"

    def test_special_characters_survive(self, make_document, make_recipient, make_line):
        doc = make_document(
            recipient=make_recipient(identity=LegalEntity(business_name='"A" & <B>')),
            line_items=(make_line(description="Viti 5mm <acciaio> & dadi 'M5'"),)
        )
        result = self._generate_and_validate(doc)

        root = ET.fromstring(result.document.encode("utf-8"))
        denominazioni = [el.text for el in root.iter("Denominazione")]
        assert '"A" & <B>' in denominazioni
        assert next(root.iter("Descrizione")).text == "Viti 5mm <acciaio> & dadi 'M5'"

    def test_public_administration_invoice(self, make_document, make_recipient, make_line):
        doc = make_document(
            recipient=make_recipient(recipient_code="UFY9MH"),
            line_items=(make_line(administration_reference="CIG-1234"),),
            purchase_orders=(PurchaseOrderReference(
                document_id="DET-12", document_date=date(2024, 1, 5), cup_code="J11B20000100001", cig_code="Z1A2B3C4D5"
            ),)
        )
        result = self._generate_and_validate(doc)
        assert 'versione="FPA12"' in result.document

    def test_foreign_recipient(self, make_document, make_recipient):
        doc = make_document(recipient=make_recipient(
            tax_id="DE123456789",
            recipient_code=None,
            address=Address(street="Hauptstrasse 1", postal_code="10115", municipality="Berlin", country="DE")
        ))
        result = self._generate_and_validate(doc)
        assert "<CodiceDestinatario>XXXXXXX</CodiceDestinatario>" in result.document

    def test_pec_recipient_natural_person(self, make_document, make_recipient):
        doc = make_document(recipient=make_recipient(
            identity=NaturalPerson(first_name="Mario", last_name="Rossi"),
            tax_id=None,
            fiscal_code="RSSMRA85T10A562S",
            recipient_code=None,
            certified_email="mario.rossi@pec.it"
        ))
        self._generate_and_validate(doc)

    def test_all_optional_sections(self, make_document, make_issuer, make_line, make_summary):
        doc = make_document(
            document_type=TipoDocumento.TD06,
            issuer=make_issuer(
                fiscal_regime=RegimeFiscale.RF19,
                phone="0612345678",
                email="info@aziendatest.it",
                fiscal_code="01234567897",
                rea=IscrizioneREA(office="RM", number="123456", share_capital=Decimal("10000"),
                                  sole_shareholder=SocioUnico.SU)
            ),
            line_items=(
                make_line(withholding=True, unit_of_measure="PZ"),
                make_line(line_number=2, description="Servizio esente", vat_rate=Decimal("0"),
                          nature_code=Natura.N4, unit_price=Decimal("50"), total_price=Decimal("50")),
            ),
            vat_summaries=(
                make_summary(taxable_amount=Decimal("104"), tax_amount=Decimal("22.88"),
                             vat_liability_timing=EsigibilitaIVA.S),
                make_summary(vat_rate=Decimal("0"), nature_code=Natura.N4, taxable_amount=Decimal("50"),
                             tax_amount=Decimal("0"), legal_reference="Art. 10 DPR 633/72"),
            ),
            total_amount=Decimal("176.88"),
            rounding=Decimal("0"),
            causale=("Causale molto lunga " * 20,),
            withholding_tax=WithholdingTax(
                withholding_type=TipoRitenuta.RT01, amount=Decimal("20"), rate=Decimal("20"), payment_reason="A"
            ),
            stamp_duty=StampDuty(amount=Decimal("2")),
            social_security_contributions=(SocialSecurityContribution(
                fund_type=TipoCassa.TC04, rate=Decimal("4"), contribution_amount=Decimal("4"),
                taxable_base=Decimal("100"), vat_rate=Decimal("22"), withholding=True
            ),),
            related_documents=(RelatedDocument(number="DDT-7", document_date=date(2024, 1, 10), line_numbers=(1,)),),
            payment_data=PaymentData(
                payment_terms=CondizioniPagamento.TP01,
                details=(
                    PaymentDetail(payment_method=ModalitaPagamento.MP05, amount=Decimal("89.44"),
                                  due_date=date(2024, 2, 15), iban="IT60 X054 2811 1010 0000 0123 456"),
                    PaymentDetail(payment_method=ModalitaPagamento.MP05, amount=Decimal("89.44"),
                                  due_date=date(2024, 3, 15), iban="IT60X0542811101000000123456"),
                )
            ),
            attachments=(Attachment(name="dettaglio.txt", format="TXT", description="Dettaglio ore",
                                    content="RGV0dGFnbGlvIG9yZQ=="),)
        )
        result = self._generate_and_validate(doc)
        assert result.document.count("<Causale>") == 2

    def test_discounts_terms_and_agreements(self, make_document, make_line):
        doc = make_document(
            line_items=(make_line(
                unit_price=Decimal("125"),
                discounts=(DiscountSurcharge(discount_type=TipoScontoMaggiorazione.SC, percentage=Decimal("20")),)
            ),),
            purchase_orders=(PurchaseOrderReference(
                document_id="ORD-9", item_number="3", agreement_code="CONV-2024"
            ),),
            payment_data=PaymentData(
                payment_terms=CondizioniPagamento.TP02,
                details=(PaymentDetail(payment_method=ModalitaPagamento.MP05, amount=Decimal("122"),
                                       terms_reference_date=date(2024, 1, 15), terms_days=30),)
            )
        )
        result = self._generate_and_validate(doc)

        root = ET.fromstring(result.document.encode("utf-8"))
        assert root.find(".//ScontoMaggiorazione/Tipo").text == "SC"
        assert root.find(".//DatiOrdineAcquisto/NumItem").text == "3"
        assert root.find(".//DettaglioPagamento/GiorniTerminiPagamento").text == "30"

    def test_very_large_amounts(self, make_document, make_line, make_summary):
        doc = make_document(
            line_items=(make_line(unit_price=Decimal("1E+30"), total_price=Decimal("1E+30")),),
            vat_summaries=(make_summary(taxable_amount=Decimal("1E+30"), tax_amount=Decimal("0")),),
            total_amount=Decimal("1E+30")
        )
        result = self._generate_and_validate(doc)
        assert f"<ImponibileImporto>1{'0' * 30}.00</ImponibileImporto>" in result.document

    @pytest.mark.parametrize("rate,nature", [
        (Decimal("22"), None),
        (Decimal("10"), None),
        (Decimal("4"), None),
        (Decimal("5.5"), None),
        (Decimal("0"), Natura.N3_1),
        (Decimal("0"), Natura.N6_1),
    ])
    def test_rates_and_natures(self, make_document, make_line, make_summary, rate, nature):
        doc = make_document(
            line_items=(make_line(vat_rate=rate, nature_code=nature),),
            vat_summaries=(make_summary(vat_rate=rate, nature_code=nature),)
        )
        self._generate_and_validate(doc)

    def test_control_characters_in_input(self, make_document, make_line):
        doc = make_document(line_items=(make_line(description="Prodotto\x00\x1b \ud800Test\udfff"),))
        result = self._generate_and_validate(doc)
        assert "<Descrizione>Prodotto Test</Descrizione>" in result.document
        result.document.encode("utf-8")

    def test_lone_surrogate_only_description_is_blank(self, make_document, make_line):
        result = self.service.generate(make_document(line_items=(make_line(description="\ud800"),)), "00001")
        assert result.success is False
        assert "Line 1: description is required" in result.errors

    def test_total_mismatch_is_rejected_before_serialization(self, make_document):
        result = self.service.generate(make_document(total_amount=Decimal("999.00")), "00001")
        assert result.success is False
        assert result.document is None

    def test_self_check_mode(self, document):
        result = self.service.generate(document, "ABC12", self_check=True)
        assert result.success is True
        assert result.file_name == "IT01234567897_ABC12.xml"


class TestPackageApi:
    """Funzioni di comodo esposte dal package"""

    def test_generate_and_validate(self, document):
        result = fatturapa_sdi.generate(document, "00001")
        assert result.success is True
        assert fatturapa_sdi.validate(result.document).valid is True
        assert fatturapa_sdi.quick_validate(result.document) is True

    def test_generate_file_name(self):
        assert fatturapa_sdi.generate_file_name("123", "1") == "IT00000000123_00001.xml"
