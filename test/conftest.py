"""
Fixture condivise per i test FatturaPA
"""

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from fatturapa_sdi.main import app
from fatturapa_sdi.models.fatturapa_enums import EsigibilitaIVA, RegimeFiscale, TipoDocumento
from fatturapa_sdi.schemas.fatturapa_models import (
    Address, InvoiceDocument, Issuer, LegalEntity, LineItem, Recipient, VatSummary
)

# P.IVA con cifra di controllo corretta
ISSUER_PIVA = "01234567897"
RECIPIENT_PIVA = "12345678903"
VALID_IBAN = "IT60X0542811101000000123456"
VALID_CF = "RSSMRA85T10A562S"


def build_issuer(**overrides) -> Issuer:
    data = dict(
        identity=LegalEntity(business_name="Azienda Test SRL"),
        tax_id=ISSUER_PIVA,
        fiscal_regime=RegimeFiscale.RF01,
        address=Address(
            street="Via Roma",
            street_number="123",
            postal_code="00100",
            municipality="Roma",
            province="RM",
            country="IT"
        )
    )
    data.update(overrides)
    return Issuer(**data)


def build_recipient(**overrides) -> Recipient:
    data = dict(
        identity=LegalEntity(business_name="Cliente Test SRL"),
        tax_id=RECIPIENT_PIVA,
        recipient_code="ABC1234",
        address=Address(
            street="Via Milano 456",
            postal_code="20100",
            municipality="Milano",
            province="MI",
            country="IT"
        )
    )
    data.update(overrides)
    return Recipient(**data)


def build_line(**overrides) -> LineItem:
    data = dict(
        line_number=1,
        description="Prodotto Test",
        quantity=Decimal("1"),
        unit_price=Decimal("100"),
        total_price=Decimal("100"),
        vat_rate=Decimal("22")
    )
    data.update(overrides)
    return LineItem(**data)


def build_summary(**overrides) -> VatSummary:
    data = dict(
        vat_rate=Decimal("22"),
        taxable_amount=Decimal("100"),
        tax_amount=Decimal("22"),
        vat_liability_timing=EsigibilitaIVA.I
    )
    data.update(overrides)
    return VatSummary(**data)


def build_document(**overrides) -> InvoiceDocument:
    data = dict(
        document_type=TipoDocumento.TD01,
        currency="EUR",
        issue_date=date(2024, 1, 15),
        document_number="FAT-001",
        total_amount=Decimal("122.00"),
        issuer=build_issuer(),
        recipient=build_recipient(),
        line_items=(build_line(),),
        vat_summaries=(build_summary(),)
    )
    data.update(overrides)
    return InvoiceDocument(**data)


@pytest.fixture
def document() -> InvoiceDocument:
    """Documento privato (FPR12) completo e valido"""
    return build_document()


@pytest.fixture
def make_document():
    return build_document


@pytest.fixture
def make_issuer():
    return build_issuer


@pytest.fixture
def make_recipient():
    return build_recipient


@pytest.fixture
def make_line():
    return build_line


@pytest.fixture
def make_summary():
    return build_summary


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)
