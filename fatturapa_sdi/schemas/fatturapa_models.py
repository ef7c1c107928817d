"""
Modelli Pydantic per FatturaPA

I modelli sono immutabili (frozen) e le sequenze sono memorizzate come tuple:
un InvoiceDocument costruito non viene mai modificato da generatore o validatore.
A livello di costruzione si verificano solo enum chiusi, identità (union
discriminata) e range numerici; i campi obbligatori sono verificati dal
pre-flight del generatore.
"""

import base64
import binascii
from decimal import Decimal
from typing import Annotated, Literal, Optional, Tuple, Union
from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fatturapa_sdi.core.exceptions import ExceptionFactory
from fatturapa_sdi.core.settings import get_fatturapa_settings
from fatturapa_sdi.models.fatturapa_enums import (
    CAUSALI_PAGAMENTO, CondizioniPagamento, EsigibilitaIVA, ModalitaPagamento,
    Natura, RegimeFiscale, SocioUnico, StatoLiquidazione, TipoCassa,
    TipoDocumento, TipoRitenuta, TipoScontoMaggiorazione
)


class FatturaPABaseModel(BaseModel):
    """Base immutabile per tutti i value object FatturaPA"""
    model_config = ConfigDict(frozen=True)


class Address(FatturaPABaseModel):
    """Sede"""
    street: Optional[str] = None
    street_number: Optional[str] = None
    postal_code: Optional[str] = None
    municipality: Optional[str] = None
    province: Optional[str] = None
    country: str = Field(default="IT", pattern=r'^[A-Z]{2}$')

    @property
    def is_domestic(self) -> bool:
        return self.country == "IT"


class LegalEntity(FatturaPABaseModel):
    """Anagrafica - soggetto giuridico (Denominazione)"""
    kind: Literal["legal_entity"] = "legal_entity"
    business_name: str


class NaturalPerson(FatturaPABaseModel):
    """Anagrafica - persona fisica (Nome e Cognome)"""
    kind: Literal["natural_person"] = "natural_person"
    first_name: str
    last_name: str


Identity = Annotated[Union[LegalEntity, NaturalPerson], Field(discriminator="kind")]


class IscrizioneREA(FatturaPABaseModel):
    """IscrizioneREA del cedente"""
    office: str = Field(..., pattern=r'^[A-Z]{2}$')
    number: str
    share_capital: Optional[Decimal] = Field(None, ge=0)
    sole_shareholder: Optional[SocioUnico] = None
    liquidation_state: StatoLiquidazione = StatoLiquidazione.LN


class Party(FatturaPABaseModel):
    identity: Identity
    tax_id: Optional[str] = None
    fiscal_code: Optional[str] = None
    address: Address = Field(default_factory=Address)


class Issuer(Party):
    """CedentePrestatore"""
    fiscal_regime: Optional[RegimeFiscale] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    rea: Optional[IscrizioneREA] = None


class Recipient(Party):
    """CessionarioCommittente"""
    recipient_code: Optional[str] = None
    certified_email: Optional[str] = None


class DiscountSurcharge(FatturaPABaseModel):
    """ScontoMaggiorazione di linea"""
    discount_type: TipoScontoMaggiorazione
    percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    amount: Optional[Decimal] = Field(None, ge=0)


class LineItem(FatturaPABaseModel):
    """DettaglioLinee"""
    line_number: int = Field(..., ge=1)
    description: str = ""
    quantity: Optional[Decimal] = Field(None, ge=0)
    unit_of_measure: Optional[str] = None
    unit_price: Decimal = Field(..., ge=0)
    discounts: Tuple[DiscountSurcharge, ...] = ()
    total_price: Decimal = Field(..., ge=0)
    vat_rate: Decimal = Field(..., ge=0, le=100)
    nature_code: Optional[Natura] = None
    withholding: bool = False
    administration_reference: Optional[str] = None


class VatSummary(FatturaPABaseModel):
    """DatiRiepilogo"""
    vat_rate: Decimal = Field(..., ge=0, le=100)
    nature_code: Optional[Natura] = None
    taxable_amount: Decimal
    tax_amount: Decimal = Field(..., ge=0)
    vat_liability_timing: Optional[EsigibilitaIVA] = None
    legal_reference: Optional[str] = None


class PaymentDetail(FatturaPABaseModel):
    """DettaglioPagamento"""
    payment_method: ModalitaPagamento
    terms_reference_date: Optional[date] = None
    terms_days: Optional[int] = Field(None, ge=0, le=999)
    amount: Decimal = Field(..., ge=0)
    due_date: Optional[date] = None
    financial_institution: Optional[str] = None
    iban: Optional[str] = None


class PaymentData(FatturaPABaseModel):
    """DatiPagamento"""
    payment_terms: CondizioniPagamento
    details: Tuple[PaymentDetail, ...] = Field(..., min_length=1)


class StampDuty(FatturaPABaseModel):
    """DatiBollo (bollo virtuale)"""
    virtual_stamp: bool = True
    amount: Decimal = Field(..., ge=0)


class SocialSecurityContribution(FatturaPABaseModel):
    """DatiCassaPrevidenziale"""
    fund_type: TipoCassa
    rate: Decimal = Field(..., ge=0, le=100)
    contribution_amount: Decimal = Field(..., ge=0)
    taxable_base: Optional[Decimal] = Field(None, ge=0)
    vat_rate: Decimal = Field(..., ge=0, le=100)
    nature_code: Optional[Natura] = None
    withholding: bool = False


class WithholdingTax(FatturaPABaseModel):
    """DatiRitenuta"""
    withholding_type: TipoRitenuta
    amount: Decimal = Field(..., ge=0)
    rate: Decimal = Field(..., ge=0, le=100)
    payment_reason: str

    @field_validator('payment_reason')
    @classmethod
    def validate_payment_reason(cls, v):
        if v not in CAUSALI_PAGAMENTO:
            raise ValueError(f"CausalePagamento '{v}' non ammessa")
        return v


class RelatedDocument(FatturaPABaseModel):
    """DatiDDT"""
    number: str
    document_date: date
    line_numbers: Tuple[int, ...] = ()


class PurchaseOrderReference(FatturaPABaseModel):
    """DatiOrdineAcquisto"""
    document_id: str
    document_date: Optional[date] = None
    line_numbers: Tuple[int, ...] = ()
    item_number: Optional[str] = None
    agreement_code: Optional[str] = None
    cup_code: Optional[str] = None
    cig_code: Optional[str] = None


class Attachment(FatturaPABaseModel):
    """Allegati - contenuto già codificato in base64"""
    name: str
    format: Optional[str] = None
    description: Optional[str] = None
    content: str

    @field_validator('content')
    @classmethod
    def validate_base64(cls, v):
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("Attachment deve essere codificato in base64")
        return v


class InvoiceDocument(FatturaPABaseModel):
    """Documento fattura in ingresso al generatore"""
    document_type: TipoDocumento = TipoDocumento.TD01
    currency: str = Field(
        default_factory=lambda: get_fatturapa_settings().default_currency,
        pattern=r'^[A-Z]{3}$'
    )
    issue_date: date
    document_number: str = ""
    total_amount: Optional[Decimal] = None
    rounding: Optional[Decimal] = None
    causale: Tuple[str, ...] = ()
    issuer: Issuer
    recipient: Recipient
    line_items: Tuple[LineItem, ...] = ()
    vat_summaries: Tuple[VatSummary, ...] = ()
    payment_data: Optional[PaymentData] = None
    stamp_duty: Optional[StampDuty] = None
    social_security_contributions: Tuple[SocialSecurityContribution, ...] = ()
    withholding_tax: Optional[WithholdingTax] = None
    purchase_orders: Tuple[PurchaseOrderReference, ...] = ()
    related_documents: Tuple[RelatedDocument, ...] = ()
    attachments: Tuple[Attachment, ...] = ()


class GenerateResult(FatturaPABaseModel):
    """Esito della generazione: XML e nome file, oppure lista errori"""
    success: bool
    document: Optional[str] = None
    file_name: Optional[str] = None
    errors: Tuple[str, ...] = ()

    def raise_for_errors(self) -> "GenerateResult":
        if not self.success:
            raise ExceptionFactory.generation_failed(list(self.errors))
        return self


class ValidationIssue(FatturaPABaseModel):
    path: str
    message: str
    rule: Optional[str] = None
    value: Optional[str] = None


class ValidationResult(FatturaPABaseModel):
    """Esito della validazione: valid=True se nessun errore"""
    valid: bool
    errors: Tuple[ValidationIssue, ...] = ()

    def raise_for_errors(self) -> "ValidationResult":
        if not self.valid:
            raise ExceptionFactory.invalid_document([e.model_dump() for e in self.errors])
        return self
