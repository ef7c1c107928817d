"""
Serializer XML per FatturaPA con ordinamento deterministico e gestione opzionali

L'albero viene costruito con ElementTree e renderizzato da un renderer interno:
indentazione a due spazi, dichiarazione UTF-8 e escaping dei cinque caratteri
speciali XML (ElementTree non effettua l'escaping delle virgolette nel testo).
"""

import re
import xml.etree.ElementTree as ET
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Optional, List, Union
from datetime import date

from fatturapa_sdi.core.settings import FatturaPASettings, get_fatturapa_settings
from fatturapa_sdi.models.fatturapa_enums import (
    CODICE_DESTINATARIO_ESTERO, CODICE_DESTINATARIO_PEC, FormatoTrasmissione
)
from fatturapa_sdi.schemas.fatturapa_models import (
    Address, InvoiceDocument, Issuer, LegalEntity, Party, PaymentData, Recipient
)


XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

# Caratteri non ammessi in XML 1.0 (tab, LF e CR sono ammessi) e surrogati isolati
_ILLEGAL_XML_CHARS = re.compile('[\x00-\x08\x0B\x0C\x0E-\x1F\uD800-\uDFFF\uFFFE\uFFFF]')

_TWO_PLACES = Decimal('0.01')


def escape_xml(value: str) -> str:
    """Escaping dei cinque caratteri speciali XML"""
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def clean_text(value: str) -> str:
    """Rimuove i caratteri di controllo non rappresentabili in XML"""
    return _ILLEGAL_XML_CHARS.sub("", value)


def quantize_amount(value) -> Decimal:
    """Arrotonda a due decimali (ROUND_HALF_UP) senza limiti di precisione del contesto"""
    value = Decimal(value)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + 4)
        return value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def resolve_recipient_code(recipient: Recipient) -> str:
    """CodiceDestinatario effettivo: default 0000000 (Italia) o XXXXXXX (estero)"""
    if recipient.recipient_code and recipient.recipient_code.strip():
        return recipient.recipient_code.strip()
    if recipient.address.is_domestic:
        return CODICE_DESTINATARIO_PEC
    return CODICE_DESTINATARIO_ESTERO


def resolve_formato(codice_destinatario: str) -> FormatoTrasmissione:
    """Codice a 6 caratteri = Pubblica Amministrazione (FPA12), altrimenti privati"""
    if len(codice_destinatario) == 6:
        return FormatoTrasmissione.FPA12
    return FormatoTrasmissione.FPR12


class FatturaPASerializer:
    """Serializer XML per FatturaPA con ordinamento deterministico"""

    def __init__(self, settings: Optional[FatturaPASettings] = None):
        self.settings = settings or get_fatturapa_settings()
        self.indent = self.settings.xml_indent

    def to_xml(self, document: InvoiceDocument, progressivo_invio: str) -> str:
        """Converte InvoiceDocument in XML FatturaPA"""
        root = self.build_tree(document, progressivo_invio)
        lines = [XML_DECLARATION]
        self._render(root, 0, lines)
        return "\n".join(lines) + "\n"

    def build_tree(self, document: InvoiceDocument, progressivo_invio: str) -> ET.Element:
        """Costruisce l'albero FatturaElettronica (header + body)"""
        codice_destinatario = resolve_recipient_code(document.recipient)
        formato = resolve_formato(codice_destinatario)

        root = ET.Element("p:FatturaElettronica")
        root.set("xmlns:ds", self.settings.namespace_ds)
        root.set("xmlns:p", self.settings.namespace_p)
        root.set("xmlns:xsi", self.settings.namespace_xsi)
        root.set("versione", formato.value)

        header = ET.SubElement(root, "FatturaElettronicaHeader")
        self._serialize_dati_trasmissione(header, document, progressivo_invio, formato, codice_destinatario)
        self._serialize_cedente_prestatore(header, document.issuer)
        self._serialize_cessionario_committente(header, document.recipient)

        body = ET.SubElement(root, "FatturaElettronicaBody")
        self._serialize_dati_generali(body, document)
        self._serialize_dati_beni_servizi(body, document)
        if document.payment_data:
            self._serialize_dati_pagamento(body, document.payment_data)
        for allegato in document.attachments:
            elem = ET.SubElement(body, "Allegati")
            self._emit(elem, "NomeAttachment", allegato.name)
            self._emit(elem, "FormatoAttachment", allegato.format)
            self._emit(elem, "DescrizioneAttachment", allegato.description)
            self._emit(elem, "Attachment", allegato.content)

        return root

    # ==================== HEADER ====================

    def _serialize_dati_trasmissione(
        self,
        header: ET.Element,
        document: InvoiceDocument,
        progressivo_invio: str,
        formato: FormatoTrasmissione,
        codice_destinatario: str
    ) -> None:
        """Serializza DatiTrasmissione"""
        elem = ET.SubElement(header, "DatiTrasmissione")

        id_trasmittente = ET.SubElement(elem, "IdTrasmittente")
        self._emit(id_trasmittente, "IdPaese", self.settings.transmitter_country)
        self._emit(id_trasmittente, "IdCodice", document.issuer.tax_id)

        self._emit(elem, "ProgressivoInvio", progressivo_invio)
        self._emit(elem, "FormatoTrasmissione", formato.value)
        self._emit(elem, "CodiceDestinatario", codice_destinatario)

        # PECDestinatario solo con CodiceDestinatario 0000000
        if codice_destinatario == CODICE_DESTINATARIO_PEC:
            self._emit(elem, "PECDestinatario", document.recipient.certified_email)

    def _serialize_dati_anagrafici(self, parent: ET.Element, party: Party) -> ET.Element:
        dati_anagrafici = ET.SubElement(parent, "DatiAnagrafici")

        if party.tax_id and clean_text(party.tax_id).strip():
            id_fiscale = ET.SubElement(dati_anagrafici, "IdFiscaleIVA")
            self._emit(id_fiscale, "IdPaese", party.address.country)
            self._emit(id_fiscale, "IdCodice", party.tax_id)

        self._emit(dati_anagrafici, "CodiceFiscale", party.fiscal_code)

        anagrafica = ET.SubElement(dati_anagrafici, "Anagrafica")
        if isinstance(party.identity, LegalEntity):
            self._emit(anagrafica, "Denominazione", party.identity.business_name)
        else:
            self._emit(anagrafica, "Nome", party.identity.first_name)
            self._emit(anagrafica, "Cognome", party.identity.last_name)

        return dati_anagrafici

    def _serialize_sede(self, parent: ET.Element, address: Address) -> None:
        sede = ET.SubElement(parent, "Sede")
        self._emit(sede, "Indirizzo", address.street)
        self._emit(sede, "NumeroCivico", address.street_number)
        self._emit(sede, "CAP", address.postal_code)
        self._emit(sede, "Comune", address.municipality)
        self._emit(sede, "Provincia", address.province)
        self._emit(sede, "Nazione", address.country)

    def _serialize_cedente_prestatore(self, header: ET.Element, issuer: Issuer) -> None:
        """Serializza CedentePrestatore"""
        elem = ET.SubElement(header, "CedentePrestatore")

        dati_anagrafici = self._serialize_dati_anagrafici(elem, issuer)
        self._emit(dati_anagrafici, "RegimeFiscale", issuer.fiscal_regime.value if issuer.fiscal_regime else None)

        self._serialize_sede(elem, issuer.address)

        # IscrizioneREA (opzionale)
        if issuer.rea:
            rea = ET.SubElement(elem, "IscrizioneREA")
            self._emit(rea, "Ufficio", issuer.rea.office)
            self._emit(rea, "NumeroREA", issuer.rea.number)
            self._emit(rea, "CapitaleSociale", self._format_decimal(issuer.rea.share_capital))
            self._emit(rea, "SocioUnico", issuer.rea.sole_shareholder.value if issuer.rea.sole_shareholder else None)
            self._emit(rea, "StatoLiquidazione", issuer.rea.liquidation_state.value)

        # Contatti (opzionale)
        if any(value and clean_text(value).strip() for value in (issuer.phone, issuer.email)):
            contatti = ET.SubElement(elem, "Contatti")
            self._emit(contatti, "Telefono", issuer.phone)
            self._emit(contatti, "Email", issuer.email)

    def _serialize_cessionario_committente(self, header: ET.Element, recipient: Recipient) -> None:
        """Serializza CessionarioCommittente"""
        elem = ET.SubElement(header, "CessionarioCommittente")
        self._serialize_dati_anagrafici(elem, recipient)
        self._serialize_sede(elem, recipient.address)

    # ==================== BODY ====================

    def _serialize_dati_generali(self, body: ET.Element, document: InvoiceDocument) -> None:
        """Serializza DatiGenerali"""
        elem = ET.SubElement(body, "DatiGenerali")

        documento = ET.SubElement(elem, "DatiGeneraliDocumento")
        self._emit(documento, "TipoDocumento", document.document_type.value)
        self._emit(documento, "Divisa", document.currency)
        self._emit(documento, "Data", self._format_date(document.issue_date))
        self._emit(documento, "Numero", document.document_number)

        # DatiRitenuta (opzionale)
        if document.withholding_tax:
            ritenuta = document.withholding_tax
            dati_ritenuta = ET.SubElement(documento, "DatiRitenuta")
            self._emit(dati_ritenuta, "TipoRitenuta", ritenuta.withholding_type.value)
            self._emit(dati_ritenuta, "ImportoRitenuta", self._format_decimal(ritenuta.amount))
            self._emit(dati_ritenuta, "AliquotaRitenuta", self._format_decimal(ritenuta.rate))
            self._emit(dati_ritenuta, "CausalePagamento", ritenuta.payment_reason)

        # DatiBollo (opzionale)
        if document.stamp_duty:
            dati_bollo = ET.SubElement(documento, "DatiBollo")
            self._emit(dati_bollo, "BolloVirtuale", "SI" if document.stamp_duty.virtual_stamp else None)
            self._emit(dati_bollo, "ImportoBollo", self._format_decimal(document.stamp_duty.amount))

        # DatiCassaPrevidenziale (opzionale, ripetibile)
        for cassa in document.social_security_contributions:
            cassa_elem = ET.SubElement(documento, "DatiCassaPrevidenziale")
            self._emit(cassa_elem, "TipoCassa", cassa.fund_type.value)
            self._emit(cassa_elem, "AlCassa", self._format_decimal(cassa.rate))
            self._emit(cassa_elem, "ImportoContributoCassa", self._format_decimal(cassa.contribution_amount))
            self._emit(cassa_elem, "ImponibileCassa", self._format_decimal(cassa.taxable_base))
            self._emit(cassa_elem, "AliquotaIVA", self._format_decimal(cassa.vat_rate))
            self._emit(cassa_elem, "Ritenuta", "SI" if cassa.withholding else None)
            self._emit(cassa_elem, "Natura", cassa.nature_code.value if cassa.nature_code else None)

        self._emit(documento, "ImportoTotaleDocumento", self._format_decimal(document.total_amount))
        self._emit(documento, "Arrotondamento", self._format_decimal(document.rounding))

        # Causale: blocchi da 200 caratteri
        max_len = self.settings.causale_max_length
        for causale in document.causale:
            testo = clean_text(causale).strip()
            for start in range(0, len(testo), max_len):
                self._emit(documento, "Causale", testo[start:start + max_len])

        for ordine in document.purchase_orders:
            ordine_elem = ET.SubElement(elem, "DatiOrdineAcquisto")
            for numero_linea in ordine.line_numbers:
                self._emit(ordine_elem, "RiferimentoNumeroLinea", numero_linea)
            self._emit(ordine_elem, "IdDocumento", ordine.document_id)
            self._emit(ordine_elem, "Data", self._format_date(ordine.document_date))
            self._emit(ordine_elem, "NumItem", ordine.item_number)
            self._emit(ordine_elem, "CodiceCommessaConvenzione", ordine.agreement_code)
            self._emit(ordine_elem, "CodiceCUP", ordine.cup_code)
            self._emit(ordine_elem, "CodiceCIG", ordine.cig_code)

        for ddt in document.related_documents:
            ddt_elem = ET.SubElement(elem, "DatiDDT")
            self._emit(ddt_elem, "NumeroDDT", ddt.number)
            self._emit(ddt_elem, "DataDDT", self._format_date(ddt.document_date))
            for numero_linea in ddt.line_numbers:
                self._emit(ddt_elem, "RiferimentoNumeroLinea", numero_linea)

    def _serialize_dati_beni_servizi(self, body: ET.Element, document: InvoiceDocument) -> None:
        """Serializza DatiBeniServizi"""
        elem = ET.SubElement(body, "DatiBeniServizi")
        max_len = self.settings.description_max_length

        # DettaglioLinee
        for linea in document.line_items:
            dettaglio = ET.SubElement(elem, "DettaglioLinee")
            self._emit(dettaglio, "NumeroLinea", linea.line_number)
            self._emit(dettaglio, "Descrizione", clean_text(linea.description).strip()[:max_len])
            self._emit(dettaglio, "Quantita", self._format_decimal(linea.quantity))
            self._emit(dettaglio, "UnitaMisura", linea.unit_of_measure)
            self._emit(dettaglio, "PrezzoUnitario", self._format_decimal(linea.unit_price))
            for sconto in linea.discounts:
                sconto_elem = ET.SubElement(dettaglio, "ScontoMaggiorazione")
                self._emit(sconto_elem, "Tipo", sconto.discount_type.value)
                self._emit(sconto_elem, "Percentuale", self._format_decimal(sconto.percentage))
                self._emit(sconto_elem, "Importo", self._format_decimal(sconto.amount))
            self._emit(dettaglio, "PrezzoTotale", self._format_decimal(linea.total_price))
            self._emit(dettaglio, "AliquotaIVA", self._format_decimal(linea.vat_rate))
            self._emit(dettaglio, "Ritenuta", "SI" if linea.withholding else None)
            self._emit(dettaglio, "Natura", linea.nature_code.value if linea.nature_code else None)
            self._emit(dettaglio, "RiferimentoAmministrazione", linea.administration_reference)

        # DatiRiepilogo
        for riepilogo in document.vat_summaries:
            riepilogo_elem = ET.SubElement(elem, "DatiRiepilogo")
            self._emit(riepilogo_elem, "AliquotaIVA", self._format_decimal(riepilogo.vat_rate))
            self._emit(riepilogo_elem, "Natura", riepilogo.nature_code.value if riepilogo.nature_code else None)
            self._emit(riepilogo_elem, "ImponibileImporto", self._format_decimal(riepilogo.taxable_amount))
            self._emit(riepilogo_elem, "Imposta", self._format_decimal(riepilogo.tax_amount))
            self._emit(riepilogo_elem, "EsigibilitaIVA", riepilogo.vat_liability_timing.value if riepilogo.vat_liability_timing else None)
            self._emit(riepilogo_elem, "RiferimentoNormativo", riepilogo.legal_reference)

    def _serialize_dati_pagamento(self, body: ET.Element, pagamento: PaymentData) -> None:
        """Serializza DatiPagamento"""
        elem = ET.SubElement(body, "DatiPagamento")
        self._emit(elem, "CondizioniPagamento", pagamento.payment_terms.value)

        # DettaglioPagamento
        for dettaglio in pagamento.details:
            dettaglio_elem = ET.SubElement(elem, "DettaglioPagamento")
            self._emit(dettaglio_elem, "ModalitaPagamento", dettaglio.payment_method.value)
            self._emit(dettaglio_elem, "DataRiferimentoTerminiPagamento", self._format_date(dettaglio.terms_reference_date))
            self._emit(dettaglio_elem, "GiorniTerminiPagamento", dettaglio.terms_days)
            self._emit(dettaglio_elem, "DataScadenzaPagamento", self._format_date(dettaglio.due_date))
            self._emit(dettaglio_elem, "ImportoPagamento", self._format_decimal(dettaglio.amount))
            self._emit(dettaglio_elem, "IstitutoFinanziario", dettaglio.financial_institution)
            self._emit(dettaglio_elem, "IBAN", dettaglio.iban.replace(" ", "").upper() if dettaglio.iban else None)

    # ==================== RENDERING ====================

    def _render(self, elem: ET.Element, depth: int, lines: List[str]) -> None:
        indent = self.indent * depth
        attrs = "".join(f' {key}="{escape_xml(value)}"' for key, value in elem.attrib.items())
        if len(elem):
            lines.append(f"{indent}<{elem.tag}{attrs}>")
            for child in elem:
                self._render(child, depth + 1, lines)
            lines.append(f"{indent}</{elem.tag}>")
        else:
            lines.append(f"{indent}<{elem.tag}{attrs}>{escape_xml(elem.text or '')}</{elem.tag}>")

    def _emit(self, parent: ET.Element, tag: str, value: Union[str, int, Decimal, None]) -> None:
        """Emetti tag solo se valore non è None/vuoto"""
        if value is None:
            return
        value = clean_text(str(value)).strip()
        if value:
            elem = ET.SubElement(parent, tag)
            elem.text = value

    def _format_decimal(self, value: Optional[Decimal]) -> Optional[str]:
        """Formatta Decimal con esattamente due decimali (ROUND_HALF_UP)"""
        if value is None:
            return None
        return format(quantize_amount(value), "f")

    def _format_date(self, value: Optional[date]) -> Optional[str]:
        if value is None:
            return None
        return value.isoformat()
