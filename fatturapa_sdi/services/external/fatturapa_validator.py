import re
import base64
import binascii
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple
import logging
import xml.etree.ElementTree as ET

from fatturapa_sdi.models.fatturapa_enums import (
    CAUSALI_PAGAMENTO, CODICE_DESTINATARIO_PEC, VALID_CONDIZIONI_PAGAMENTO,
    VALID_ESIGIBILITA_IVA, VALID_FORMATO_TRASMISSIONE, VALID_MODALITA_PAGAMENTO,
    VALID_NATURA, VALID_REGIME_FISCALE, VALID_TIPO_CASSA, VALID_TIPO_DOCUMENTO,
    VALID_TIPO_RITENUTA, VALID_TIPO_SCONTO_MAGGIORAZIONE
)
from fatturapa_sdi.schemas.fatturapa_models import ValidationIssue, ValidationResult
from fatturapa_sdi.services.core.tool import valida_codice_fiscale, valida_iban, valida_piva


logger = logging.getLogger(__name__)

HEADER = "FatturaElettronicaHeader"
BODY = "FatturaElettronicaBody"

# Commenti, sezioni CDATA e processing instruction: il contenuto non è markup
_OPAQUE_PATTERN = re.compile(r'<!--.*?-->|<!\[CDATA\[.*?\]\]>|<\?.*?\?>', re.DOTALL)
_TAG_PATTERN = re.compile(r'<(/?)([A-Za-z_][\w.:-]*)[^>]*?(/?)>')
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F]')
_ENCODING_PATTERN = re.compile(r'^<\?xml[^>]*\bencoding\s*=\s*["\']([^"\']+)["\']')
_VERSIONE_PATTERN = re.compile(r'<(?:[\w.-]+:)?FatturaElettronica\b[^>]*?\bversione\s*=\s*["\']([^"\']*)["\']')
_PAESE_PATTERN = re.compile(r'^[A-Z]{2}$')
_CAP_PATTERN = re.compile(r'^[0-9]{5}$')
_DATE_PATTERN = re.compile(r'^[0-9]{4}-[0-9]{2}-[0-9]{2}$')
_NUMERICO_PATTERN = re.compile(r'^[0-9]+$')
_ID_CODICE_ESTERO_PATTERN = re.compile(r'^[A-Za-z0-9]{1,28}$')
_PROGRESSIVO_PATTERN = re.compile(r'^[A-Za-z0-9]{1,10}$')
_CODICE_DESTINATARIO_PATTERN = re.compile(r'^[A-Z0-9]{6,7}$')
_EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
_DIVISA_PATTERN = re.compile(r'^[A-Z]{3}$')

_TOLLERANZA_TOTALE = Decimal("0.02")


def _section_pattern(tag: str) -> "re.Pattern[str]":
    return re.compile(
        rf'<((?:[\w.-]+:)?){tag}\b[^>]*>.*?</\1{tag}\s*>',
        re.DOTALL
    )


_HEADER_SECTION = _section_pattern(HEADER)
_BODY_SECTION = _section_pattern(BODY)


class FatturaPAValidator:
    """
    Validatore per XML FatturaPA

    Valida un documento XML FatturaPA (anche di provenienza non fidata) a livelli:
    struttura, dati di trasmissione, cedente, cessionario, dati generali,
    dettaglio linee, riepiloghi IVA e pagamento. Gli errori vengono accumulati
    (mai solo il primo) e restituiti come ValidationResult; il validatore non
    solleva eccezioni per nessun input.

    Non conserva stato tra le chiamate: l'istanza è condivisibile tra thread.
    """

    def validate(self, raw_document: Any) -> ValidationResult:
        """
        Valida un documento FatturaPA

        Args:
            raw_document: testo XML del documento

        Returns:
            ValidationResult con valid=True se nessun livello ha prodotto errori
        """
        errors: List[ValidationIssue] = []

        if not isinstance(raw_document, str) or not raw_document.strip():
            self._add(errors, "FatturaElettronica", "Document is empty or not a text", "struttura")
            return self._result(errors)

        raw = raw_document.lstrip('\ufeff').strip()

        parseable = self._check_structure(raw, errors)
        if not parseable:
            return self._result(errors)

        root = self._parse(raw)
        if root is not None:
            self._check_root(root, errors)
            header = root.find(HEADER)
            bodies = root.findall(BODY)
            versione = root.get("versione")
        else:
            # Documento non ben formato: si validano le sezioni analizzabili singolarmente
            header, bodies = self._parse_sections(raw, errors)
            match = _VERSIONE_PATTERN.search(raw)
            versione = match.group(1) if match else None
            if versione not in VALID_FORMATO_TRASMISSIONE:
                self._add(errors, "FatturaElettronica/@versione",
                          f"versione must be one of {sorted(VALID_FORMATO_TRASMISSIONE)}",
                          "versione", versione)

        if header is not None:
            self._validate_header(header, versione, errors)

        for idx, body in enumerate(bodies, start=1):
            prefix = f"{BODY}[{idx}]" if len(bodies) > 1 else BODY
            self._validate_body(body, prefix, errors)

        return self._result(errors)

    def quick_validate(self, raw_document: Any) -> bool:
        """Restituisce solo l'esito della validazione"""
        return self.validate(raw_document).valid

    # ==================== STRUTTURA ====================

    def _check_structure(self, raw: str, errors: List[ValidationIssue]) -> bool:
        """
        Controlli strutturali sul testo grezzo.

        Returns:
            False se il documento non deve essere analizzato come albero (DOCTYPE)
        """
        if not raw.startswith("<?xml"):
            self._add(errors, "FatturaElettronica", "XML declaration is missing", "dichiarazione_xml")
        else:
            match = _ENCODING_PATTERN.match(raw)
            if match and match.group(1).upper().replace("_", "-") not in ("UTF-8", "UTF8"):
                self._add(errors, "FatturaElettronica", f"Encoding must be UTF-8 (found: {match.group(1)})",
                          "encoding", match.group(1))

        control = _CONTROL_CHARS.search(raw)
        if control:
            self._add(errors, "FatturaElettronica",
                      f"Document contains a forbidden control character at offset {control.start()}",
                      "caratteri_controllo", repr(control.group()))

        markup = _OPAQUE_PATTERN.sub(" ", raw)

        if "<!DOCTYPE" in markup.upper():
            # Nessun parsing: le entità del DTD non vengono mai espanse
            self._add(errors, "FatturaElettronica", "DOCTYPE declarations are not allowed", "doctype")
            return False

        self._check_tag_balance(markup, errors)

        for section in (HEADER, BODY):
            if not re.search(rf'<(?:[\w.-]+:)?{section}\b', markup):
                self._add(errors, section, f"{section} is missing", "sezione_obbligatoria")

        return True

    def _check_tag_balance(self, raw: str, errors: List[ValidationIssue]) -> None:
        stack: List[str] = []
        for match in _TAG_PATTERN.finditer(raw):
            closing, name, self_closing = match.group(1), match.group(2), match.group(3)
            if self_closing:
                continue
            if not closing:
                stack.append(name)
                continue
            if stack and stack[-1] == name:
                stack.pop()
            elif name in stack:
                while stack[-1] != name:
                    unclosed = stack.pop()
                    self._add(errors, unclosed, f"Element <{unclosed}> is not closed", "tag_bilanciati")
                stack.pop()
            else:
                self._add(errors, name, f"Closing tag </{name}> has no matching opening tag", "tag_bilanciati")
        for unclosed in reversed(stack):
            self._add(errors, unclosed, f"Element <{unclosed}> is not closed", "tag_bilanciati")

    def _parse(self, text: str) -> Optional[ET.Element]:
        try:
            element = ET.fromstring(text.encode("utf-8"))
        except (ET.ParseError, ValueError, LookupError) as e:
            logger.debug(f"XML parse error: {e}")
            return None
        for el in element.iter():
            if isinstance(el.tag, str):
                el.tag = el.tag.rsplit("}", 1)[-1]
        return element

    def _parse_sections(
        self,
        raw: str,
        errors: List[ValidationIssue]
    ) -> Tuple[Optional[ET.Element], List[ET.Element]]:
        self._add(errors, "FatturaElettronica", "Document is not well-formed XML", "xml_ben_formato")

        header = None
        match = _HEADER_SECTION.search(raw)
        if match:
            header = self._parse(match.group(0))
            if header is None:
                self._add(errors, HEADER, f"{HEADER} is not well-formed", "xml_ben_formato")

        bodies = []
        for idx, match in enumerate(_BODY_SECTION.finditer(raw), start=1):
            body = self._parse(match.group(0))
            if body is None:
                self._add(errors, f"{BODY}[{idx}]", f"{BODY} is not well-formed", "xml_ben_formato")
            else:
                bodies.append(body)

        return header, bodies

    def _check_root(self, root: ET.Element, errors: List[ValidationIssue]) -> None:
        if root.tag != "FatturaElettronica":
            self._add(errors, root.tag, "Root element must be FatturaElettronica", "root", root.tag)
            return
        versione = root.get("versione")
        if versione not in VALID_FORMATO_TRASMISSIONE:
            self._add(errors, "FatturaElettronica/@versione",
                      f"versione must be one of {sorted(VALID_FORMATO_TRASMISSIONE)}",
                      "versione", versione)

    # ==================== HEADER ====================

    def _validate_header(self, header: ET.Element, versione: Optional[str], errors: List[ValidationIssue]) -> None:
        self._validate_dati_trasmissione(header, versione, errors)
        self._validate_cedente_prestatore(header, errors)
        self._validate_cessionario_committente(header, errors)

    def _validate_dati_trasmissione(
        self,
        header: ET.Element,
        versione: Optional[str],
        errors: List[ValidationIssue]
    ) -> None:
        prefix = f"{HEADER}/DatiTrasmissione"
        dati = header.find("DatiTrasmissione")
        if dati is None:
            self._add(errors, prefix, "DatiTrasmissione is missing", "required")
            return

        id_trasmittente = dati.find("IdTrasmittente")
        if id_trasmittente is None:
            self._add(errors, f"{prefix}/IdTrasmittente", "IdTrasmittente is missing", "required")
        else:
            id_paese = self._text(id_trasmittente, "IdPaese")
            if not id_paese or not _PAESE_PATTERN.match(id_paese):
                self._add(errors, f"{prefix}/IdTrasmittente/IdPaese",
                          "IdPaese must be a 2-letter uppercase country code", "id_paese", id_paese)
            id_codice = self._text(id_trasmittente, "IdCodice")
            if not id_codice or not _NUMERICO_PATTERN.match(id_codice):
                self._add(errors, f"{prefix}/IdTrasmittente/IdCodice",
                          "IdCodice must be numeric", "id_codice", id_codice)

        progressivo = self._text(dati, "ProgressivoInvio")
        if not progressivo or not _PROGRESSIVO_PATTERN.match(progressivo):
            self._add(errors, f"{prefix}/ProgressivoInvio",
                      "ProgressivoInvio must be 1-10 alphanumeric characters", "progressivo_invio", progressivo)

        formato = self._text(dati, "FormatoTrasmissione")
        if formato not in VALID_FORMATO_TRASMISSIONE:
            self._add(errors, f"{prefix}/FormatoTrasmissione",
                      f"FormatoTrasmissione must be one of {sorted(VALID_FORMATO_TRASMISSIONE)}",
                      "formato_trasmissione", formato)
        elif versione in VALID_FORMATO_TRASMISSIONE and formato != versione:
            self._add(errors, f"{prefix}/FormatoTrasmissione",
                      f"FormatoTrasmissione {formato} does not match versione {versione}",
                      "formato_trasmissione", formato)

        profilo = versione if versione in VALID_FORMATO_TRASMISSIONE else formato
        codice = self._text(dati, "CodiceDestinatario")
        if not codice:
            self._add(errors, f"{prefix}/CodiceDestinatario", "CodiceDestinatario is missing", "required")
        else:
            self._check_codice_destinatario(codice, profilo, f"{prefix}/CodiceDestinatario", errors)

        pec = self._text(dati, "PECDestinatario")
        if codice == CODICE_DESTINATARIO_PEC and not pec:
            self._add(errors, f"{prefix}/PECDestinatario",
                      "PECDestinatario is required when CodiceDestinatario is 0000000", "pec_obbligatoria")
        if pec and not self._is_email(pec):
            self._add(errors, f"{prefix}/PECDestinatario",
                      "PECDestinatario is not a valid e-mail address", "email_pec", pec)

    def _check_codice_destinatario(
        self,
        codice: str,
        profilo: Optional[str],
        path: str,
        errors: List[ValidationIssue]
    ) -> None:
        """Controlla coerenza tra FormatoTrasmissione e CodiceDestinatario"""
        if not _CODICE_DESTINATARIO_PATTERN.match(codice):
            self._add(errors, path, "CodiceDestinatario must be 6 or 7 uppercase alphanumeric characters",
                      "codice_destinatario", codice)
            return
        if profilo == "FPA12" and len(codice) != 6:
            self._add(errors, path,
                      f"CodiceDestinatario must be 6 characters for FPA12 (received: {len(codice)})",
                      "formato_codice_destinatario", codice)
        elif profilo == "FPR12" and len(codice) != 7:
            self._add(errors, path,
                      f"CodiceDestinatario must be 7 characters for FPR12 (received: {len(codice)})",
                      "formato_codice_destinatario", codice)

    def _validate_cedente_prestatore(self, header: ET.Element, errors: List[ValidationIssue]) -> None:
        prefix = f"{HEADER}/CedentePrestatore"
        cedente = header.find("CedentePrestatore")
        if cedente is None:
            self._add(errors, prefix, "CedentePrestatore is missing", "required")
            return

        dati_anagrafici = cedente.find("DatiAnagrafici")
        if dati_anagrafici is None:
            self._add(errors, f"{prefix}/DatiAnagrafici", "DatiAnagrafici is missing", "required")
        else:
            id_fiscale = dati_anagrafici.find("IdFiscaleIVA")
            if id_fiscale is None:
                self._add(errors, f"{prefix}/DatiAnagrafici/IdFiscaleIVA", "IdFiscaleIVA is missing", "required")
            else:
                self._check_id_fiscale_iva(id_fiscale, f"{prefix}/DatiAnagrafici/IdFiscaleIVA", errors)
            self._check_codice_fiscale(dati_anagrafici, f"{prefix}/DatiAnagrafici", errors)
            self._check_anagrafica(dati_anagrafici, f"{prefix}/DatiAnagrafici", errors)

            regime = self._text(dati_anagrafici, "RegimeFiscale")
            if not regime:
                self._add(errors, f"{prefix}/DatiAnagrafici/RegimeFiscale", "RegimeFiscale is missing", "required")
            elif regime not in VALID_REGIME_FISCALE:
                self._add(errors, f"{prefix}/DatiAnagrafici/RegimeFiscale",
                          f"RegimeFiscale '{regime}' is not a registered code", "regime_fiscale", regime)

        self._check_sede(cedente, prefix, errors)

    def _validate_cessionario_committente(self, header: ET.Element, errors: List[ValidationIssue]) -> None:
        prefix = f"{HEADER}/CessionarioCommittente"
        cessionario = header.find("CessionarioCommittente")
        if cessionario is None:
            self._add(errors, prefix, "CessionarioCommittente is missing", "required")
            return

        dati_anagrafici = cessionario.find("DatiAnagrafici")
        if dati_anagrafici is None:
            self._add(errors, f"{prefix}/DatiAnagrafici", "DatiAnagrafici is missing", "required")
        else:
            id_fiscale = dati_anagrafici.find("IdFiscaleIVA")
            if id_fiscale is None and not self._text(dati_anagrafici, "CodiceFiscale"):
                self._add(errors, f"{prefix}/DatiAnagrafici",
                          "IdFiscaleIVA or CodiceFiscale must be present", "fiscale_coerenza")
            if id_fiscale is not None:
                self._check_id_fiscale_iva(id_fiscale, f"{prefix}/DatiAnagrafici/IdFiscaleIVA", errors)
            self._check_codice_fiscale(dati_anagrafici, f"{prefix}/DatiAnagrafici", errors)
            self._check_anagrafica(dati_anagrafici, f"{prefix}/DatiAnagrafici", errors)

        self._check_sede(cessionario, prefix, errors)

    def _check_id_fiscale_iva(self, id_fiscale: ET.Element, path: str, errors: List[ValidationIssue]) -> None:
        id_paese = self._text(id_fiscale, "IdPaese")
        id_codice = self._text(id_fiscale, "IdCodice")
        if not id_paese or not _PAESE_PATTERN.match(id_paese):
            self._add(errors, f"{path}/IdPaese", "IdPaese must be a 2-letter uppercase country code",
                      "id_paese", id_paese)
        if not id_codice:
            self._add(errors, f"{path}/IdCodice", "IdCodice is missing", "required")
        elif id_paese == "IT":
            is_valid, error_message = valida_piva(id_codice)
            if not is_valid:
                self._add(errors, f"{path}/IdCodice", error_message, "partita_iva", id_codice)
        elif not _ID_CODICE_ESTERO_PATTERN.match(id_codice):
            self._add(errors, f"{path}/IdCodice", "IdCodice must be 1-28 alphanumeric characters",
                      "partita_iva_estera", id_codice)

    def _check_codice_fiscale(self, dati_anagrafici: ET.Element, path: str, errors: List[ValidationIssue]) -> None:
        codice_fiscale = self._text(dati_anagrafici, "CodiceFiscale")
        if codice_fiscale is None:
            return
        is_valid, error_message = valida_codice_fiscale(codice_fiscale)
        if not is_valid:
            self._add(errors, f"{path}/CodiceFiscale", error_message, "codice_fiscale", codice_fiscale)

    def _check_anagrafica(self, dati_anagrafici: ET.Element, path: str, errors: List[ValidationIssue]) -> None:
        anagrafica = dati_anagrafici.find("Anagrafica")
        if anagrafica is None:
            self._add(errors, f"{path}/Anagrafica", "Anagrafica is missing", "required")
            return
        denominazione = self._text(anagrafica, "Denominazione")
        nome = self._text(anagrafica, "Nome")
        cognome = self._text(anagrafica, "Cognome")
        if denominazione and (nome or cognome):
            self._add(errors, f"{path}/Anagrafica",
                      "Denominazione and Nome/Cognome are mutually exclusive", "anagrafica")
        elif not denominazione and not (nome and cognome):
            self._add(errors, f"{path}/Anagrafica",
                      "Denominazione or both Nome and Cognome must be present", "anagrafica")

    def _check_sede(self, party: ET.Element, prefix: str, errors: List[ValidationIssue]) -> None:
        path = f"{prefix}/Sede"
        sede = party.find("Sede")
        if sede is None:
            self._add(errors, path, "Sede is missing", "required")
            return

        for field in ("Indirizzo", "Comune"):
            if not self._text(sede, field):
                self._add(errors, f"{path}/{field}", f"{field} is missing", "required")

        cap = self._text(sede, "CAP")
        if not cap:
            self._add(errors, f"{path}/CAP", "CAP is missing", "required")
        elif not _CAP_PATTERN.match(cap):
            self._add(errors, f"{path}/CAP", "CAP must be exactly 5 digits", "cap", cap)

        nazione = self._text(sede, "Nazione")
        if not nazione or not _PAESE_PATTERN.match(nazione):
            self._add(errors, f"{path}/Nazione", "Nazione must be a 2-letter uppercase country code",
                      "nazione", nazione)

        provincia = self._text(sede, "Provincia")
        if nazione == "IT" and not provincia:
            self._add(errors, f"{path}/Provincia", "Provincia is required when Nazione is IT", "provincia_italia")
        elif provincia and not _PAESE_PATTERN.match(provincia):
            self._add(errors, f"{path}/Provincia", "Provincia must be 2 uppercase letters", "provincia", provincia)

    # ==================== BODY ====================

    def _validate_body(self, body: ET.Element, prefix: str, errors: List[ValidationIssue]) -> None:
        self._validate_dati_generali(body, prefix, errors)

        beni_servizi = body.find("DatiBeniServizi")
        if beni_servizi is None:
            self._add(errors, f"{prefix}/DatiBeniServizi", "DatiBeniServizi is missing", "required")
        else:
            line_keys = self._validate_dettaglio_linee(beni_servizi, f"{prefix}/DatiBeniServizi", errors)
            self._validate_dati_riepilogo(beni_servizi, f"{prefix}/DatiBeniServizi", line_keys, errors)
            self._check_totale_documento(body, prefix, errors)

        for idx, pagamento in enumerate(body.findall("DatiPagamento"), start=1):
            self._validate_dati_pagamento(pagamento, f"{prefix}/DatiPagamento[{idx}]", errors)

        for idx, allegato in enumerate(body.findall("Allegati"), start=1):
            path = f"{prefix}/Allegati[{idx}]"
            if not self._text(allegato, "NomeAttachment"):
                self._add(errors, f"{path}/NomeAttachment", "NomeAttachment is missing", "required")
            content = self._text(allegato, "Attachment")
            if not content:
                self._add(errors, f"{path}/Attachment", "Attachment is missing", "required")
            elif not self._is_base64(content):
                self._add(errors, f"{path}/Attachment", "Attachment must be base64 encoded", "base64")

    def _validate_dati_generali(self, body: ET.Element, prefix: str, errors: List[ValidationIssue]) -> None:
        path = f"{prefix}/DatiGenerali/DatiGeneraliDocumento"
        documento = body.find("DatiGenerali/DatiGeneraliDocumento")
        if documento is None:
            self._add(errors, path, "DatiGeneraliDocumento is missing", "required")
            return

        tipo = self._text(documento, "TipoDocumento")
        if not tipo:
            self._add(errors, f"{path}/TipoDocumento", "TipoDocumento is missing", "required")
        elif tipo not in VALID_TIPO_DOCUMENTO:
            self._add(errors, f"{path}/TipoDocumento",
                      f"TipoDocumento '{tipo}' is not a registered code", "tipo_documento", tipo)

        divisa = self._text(documento, "Divisa")
        if not divisa or not _DIVISA_PATTERN.match(divisa):
            self._add(errors, f"{path}/Divisa", "Divisa must be a 3-letter currency code", "divisa", divisa)

        self._check_date(documento, "Data", path, errors, required=True)

        if not self._text(documento, "Numero"):
            self._add(errors, f"{path}/Numero", "Numero is missing or empty", "numero_documento")

        for idx, ritenuta in enumerate(documento.findall("DatiRitenuta"), start=1):
            ritenuta_path = f"{path}/DatiRitenuta[{idx}]"
            tipo_ritenuta = self._text(ritenuta, "TipoRitenuta")
            if tipo_ritenuta not in VALID_TIPO_RITENUTA:
                self._add(errors, f"{ritenuta_path}/TipoRitenuta",
                          f"TipoRitenuta '{tipo_ritenuta}' is not a registered code", "tipo_ritenuta", tipo_ritenuta)
            causale = self._text(ritenuta, "CausalePagamento")
            if causale not in CAUSALI_PAGAMENTO:
                self._add(errors, f"{ritenuta_path}/CausalePagamento",
                          f"CausalePagamento '{causale}' is not a registered code", "causale_pagamento", causale)
            self._check_amount(ritenuta, "ImportoRitenuta", ritenuta_path, errors, required=True)
            self._check_rate(ritenuta, "AliquotaRitenuta", ritenuta_path, errors)

        bollo = documento.find("DatiBollo")
        if bollo is not None:
            if self._text(bollo, "BolloVirtuale") != "SI":
                self._add(errors, f"{path}/DatiBollo/BolloVirtuale", "BolloVirtuale must be SI", "bollo_virtuale")
            self._check_amount(bollo, "ImportoBollo", f"{path}/DatiBollo", errors, required=False)

        for idx, cassa in enumerate(documento.findall("DatiCassaPrevidenziale"), start=1):
            cassa_path = f"{path}/DatiCassaPrevidenziale[{idx}]"
            tipo_cassa = self._text(cassa, "TipoCassa")
            if tipo_cassa not in VALID_TIPO_CASSA:
                self._add(errors, f"{cassa_path}/TipoCassa",
                          f"TipoCassa '{tipo_cassa}' is not a registered code", "tipo_cassa", tipo_cassa)
            self._check_rate(cassa, "AlCassa", cassa_path, errors)
            self._check_amount(cassa, "ImportoContributoCassa", cassa_path, errors, required=True)
            aliquota = self._check_rate(cassa, "AliquotaIVA", cassa_path, errors)
            self._check_natura(cassa, aliquota, cassa_path, errors)

    def _validate_dettaglio_linee(
        self,
        beni_servizi: ET.Element,
        prefix: str,
        errors: List[ValidationIssue]
    ) -> List[Tuple[int, str, Tuple[Decimal, Optional[str]]]]:
        """
        Valida DettaglioLinee.

        Returns:
            chiavi (indice, numero linea, (aliquota, natura)) per il controllo di copertura dei riepiloghi
        """
        linee = beni_servizi.findall("DettaglioLinee")
        if not linee:
            self._add(errors, f"{prefix}/DettaglioLinee", "At least one DettaglioLinee is required", "required")
            return []

        seen: Dict[int, int] = {}
        keys = []
        for idx, linea in enumerate(linee, start=1):
            path = f"{prefix}/DettaglioLinee[{idx}]"

            numero_raw = self._text(linea, "NumeroLinea")
            if not numero_raw or not _NUMERICO_PATTERN.match(numero_raw) or int(numero_raw) < 1:
                self._add(errors, f"{path}/NumeroLinea", "NumeroLinea must be a positive integer",
                          "numero_linea", numero_raw)
            else:
                numero = int(numero_raw)
                if numero in seen:
                    self._add(errors, f"{path}/NumeroLinea",
                              f"NumeroLinea {numero} is a duplicate line number (first used at DettaglioLinee[{seen[numero]}])",
                              "numero_linea_duplicato", numero_raw)
                else:
                    seen[numero] = idx

            descrizione = self._text(linea, "Descrizione")
            if not descrizione:
                self._add(errors, f"{path}/Descrizione", "Descrizione is missing or empty", "required")
            elif len(descrizione) > 1000:
                self._add(errors, f"{path}/Descrizione",
                          f"Descrizione exceeds 1000 characters (received: {len(descrizione)})", "max_length")

            if linea.find("Quantita") is not None:
                self._check_amount(linea, "Quantita", path, errors, required=False)
            self._check_amount(linea, "PrezzoUnitario", path, errors, required=True, allow_negative=True)
            for s_idx, sconto in enumerate(linea.findall("ScontoMaggiorazione"), start=1):
                sconto_path = f"{path}/ScontoMaggiorazione[{s_idx}]"
                tipo = self._text(sconto, "Tipo")
                if tipo not in VALID_TIPO_SCONTO_MAGGIORAZIONE:
                    self._add(errors, f"{sconto_path}/Tipo",
                              f"Tipo must be one of {sorted(VALID_TIPO_SCONTO_MAGGIORAZIONE)}",
                              "sconto_maggiorazione", tipo)
                self._check_amount(sconto, "Percentuale", sconto_path, errors, required=False)
                self._check_amount(sconto, "Importo", sconto_path, errors, required=False)
            self._check_amount(linea, "PrezzoTotale", path, errors, required=True, allow_negative=True)

            aliquota = self._check_rate(linea, "AliquotaIVA", path, errors)
            natura = self._check_natura(linea, aliquota, path, errors)
            if aliquota is not None:
                keys.append((idx, numero_raw, (aliquota, natura)))

        return keys

    def _validate_dati_riepilogo(
        self,
        beni_servizi: ET.Element,
        prefix: str,
        line_keys: List[Tuple[int, str, Tuple[Decimal, Optional[str]]]],
        errors: List[ValidationIssue]
    ) -> None:
        riepiloghi = beni_servizi.findall("DatiRiepilogo")
        if not riepiloghi:
            self._add(errors, f"{prefix}/DatiRiepilogo", "At least one DatiRiepilogo is required", "required")

        summary_keys = set()
        for idx, riepilogo in enumerate(riepiloghi, start=1):
            path = f"{prefix}/DatiRiepilogo[{idx}]"
            aliquota = self._check_rate(riepilogo, "AliquotaIVA", path, errors)
            natura = self._check_natura(riepilogo, aliquota, path, errors)
            if aliquota is not None:
                summary_keys.add((aliquota, natura))

            self._check_amount(riepilogo, "ImponibileImporto", path, errors, required=True, allow_negative=True)
            self._check_amount(riepilogo, "Imposta", path, errors, required=True, allow_negative=True)

            esigibilita = self._text(riepilogo, "EsigibilitaIVA")
            if esigibilita is not None and esigibilita not in VALID_ESIGIBILITA_IVA:
                self._add(errors, f"{path}/EsigibilitaIVA",
                          f"EsigibilitaIVA must be one of {sorted(VALID_ESIGIBILITA_IVA)}",
                          "esigibilita_iva", esigibilita)

        # Ogni coppia (aliquota, natura) delle linee deve avere un riepilogo
        for idx, numero, key in line_keys:
            if key in summary_keys:
                continue
            aliquota, natura = key
            self._add(
                errors,
                f"{prefix}/DettaglioLinee[{idx}]/AliquotaIVA",
                f"Line {numero} (AliquotaIVA {aliquota}, Natura {natura or '-'}) has no matching "
                f"VAT summary (DatiRiepilogo) with AliquotaIVA {aliquota} and Natura {natura or '-'}",
                "riepilogo_mancante",
                str(aliquota)
            )

    def _check_totale_documento(self, body: ET.Element, prefix: str, errors: List[ValidationIssue]) -> None:
        """
        ImportoTotaleDocumento deve corrispondere alla somma di ImponibileImporto
        e Imposta dei riepiloghi, più l'eventuale Arrotondamento (tolleranza 0.02).
        Importi non numerici sono già segnalati dai controlli di campo.
        """
        documento = body.find("DatiGenerali/DatiGeneraliDocumento")
        riepiloghi = body.findall("DatiBeniServizi/DatiRiepilogo")
        if documento is None or not riepiloghi:
            return
        totale = self._to_decimal(self._text(documento, "ImportoTotaleDocumento") or "")
        if totale is None:
            return

        calcolato = Decimal("0")
        for riepilogo in riepiloghi:
            for tag in ("ImponibileImporto", "Imposta"):
                value = self._to_decimal(self._text(riepilogo, tag) or "")
                if value is None:
                    return
                calcolato += value
        arrotondamento = self._to_decimal(self._text(documento, "Arrotondamento") or "")
        if arrotondamento is not None:
            calcolato += arrotondamento

        if abs(totale - calcolato) > _TOLLERANZA_TOTALE:
            self._add(
                errors,
                f"{prefix}/DatiGenerali/DatiGeneraliDocumento/ImportoTotaleDocumento",
                f"ImportoTotaleDocumento ({totale:.2f}) does not match the sum of DatiRiepilogo ({calcolato:.2f})",
                "totale_documento",
                str(totale)
            )

    def _validate_dati_pagamento(self, pagamento: ET.Element, path: str, errors: List[ValidationIssue]) -> None:
        condizioni = self._text(pagamento, "CondizioniPagamento")
        if condizioni not in VALID_CONDIZIONI_PAGAMENTO:
            self._add(errors, f"{path}/CondizioniPagamento",
                      f"CondizioniPagamento '{condizioni}' is not a registered code",
                      "condizioni_pagamento", condizioni)

        dettagli = pagamento.findall("DettaglioPagamento")
        if not dettagli:
            self._add(errors, f"{path}/DettaglioPagamento", "At least one DettaglioPagamento is required", "required")

        for idx, dettaglio in enumerate(dettagli, start=1):
            dettaglio_path = f"{path}/DettaglioPagamento[{idx}]"
            modalita = self._text(dettaglio, "ModalitaPagamento")
            if modalita not in VALID_MODALITA_PAGAMENTO:
                self._add(errors, f"{dettaglio_path}/ModalitaPagamento",
                          f"ModalitaPagamento '{modalita}' is not a registered code",
                          "modalita_pagamento", modalita)
            self._check_date(dettaglio, "DataRiferimentoTerminiPagamento", dettaglio_path, errors, required=False)
            giorni = self._text(dettaglio, "GiorniTerminiPagamento")
            if giorni is not None and (not _NUMERICO_PATTERN.match(giorni) or int(giorni) > 999):
                self._add(errors, f"{dettaglio_path}/GiorniTerminiPagamento",
                          "GiorniTerminiPagamento must be an integer between 0 and 999",
                          "giorni_termini_pagamento", giorni)
            self._check_amount(dettaglio, "ImportoPagamento", dettaglio_path, errors, required=True)
            self._check_date(dettaglio, "DataScadenzaPagamento", dettaglio_path, errors, required=False)

            iban = self._text(dettaglio, "IBAN")
            if iban is not None:
                is_valid, error_message = valida_iban(iban)
                if not is_valid:
                    self._add(errors, f"{dettaglio_path}/IBAN", error_message, "iban", iban)

    # ==================== CONTROLLI DI CAMPO ====================

    def _check_rate(
        self,
        parent: ET.Element,
        tag: str,
        path: str,
        errors: List[ValidationIssue]
    ) -> Optional[Decimal]:
        """Aliquota obbligatoria, numerica, tra 0 e 100. Restituisce il valore normalizzato a 2 decimali"""
        raw = self._text(parent, tag)
        if raw is None:
            self._add(errors, f"{path}/{tag}", f"{tag} is missing", "required")
            return None
        value = self._to_decimal(raw)
        if value is None:
            self._add(errors, f"{path}/{tag}", f"{tag} must be a decimal number", "decimal", raw)
            return None
        if value < 0 or value > 100:
            self._add(errors, f"{path}/{tag}", f"{tag} must be between 0 and 100", "aliquota_iva", raw)
            return None
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def _check_natura(
        self,
        parent: ET.Element,
        aliquota: Optional[Decimal],
        path: str,
        errors: List[ValidationIssue]
    ) -> Optional[str]:
        """Controlla che Natura sia presente e registrata se AliquotaIVA = 0"""
        natura = self._text(parent, "Natura")
        if natura is not None and natura not in VALID_NATURA:
            self._add(errors, f"{path}/Natura", f"Natura '{natura}' is not a registered nature code",
                      "natura_iva", natura)
        elif natura is None and aliquota is not None and aliquota == 0:
            self._add(errors, f"{path}/Natura", "Natura (nature code) is required when AliquotaIVA is 0",
                      "natura_zero_iva")
        return natura

    def _check_amount(
        self,
        parent: ET.Element,
        tag: str,
        path: str,
        errors: List[ValidationIssue],
        required: bool,
        allow_negative: bool = False
    ) -> None:
        raw = self._text(parent, tag)
        if raw is None:
            if required:
                self._add(errors, f"{path}/{tag}", f"{tag} is missing", "required")
            return
        value = self._to_decimal(raw)
        if value is None:
            self._add(errors, f"{path}/{tag}", f"{tag} must be a decimal number", "decimal", raw)
        elif value < 0 and not allow_negative:
            self._add(errors, f"{path}/{tag}", f"{tag} must not be negative", "min", raw)

    def _check_date(
        self,
        parent: ET.Element,
        tag: str,
        path: str,
        errors: List[ValidationIssue],
        required: bool
    ) -> None:
        raw = self._text(parent, tag)
        if raw is None:
            if required:
                self._add(errors, f"{path}/{tag}", f"{tag} is missing", "required")
            return
        try:
            if not _DATE_PATTERN.match(raw):
                raise ValueError(raw)
            datetime.strptime(raw, "%Y-%m-%d")
        except ValueError:
            self._add(errors, f"{path}/{tag}", f"{tag} must be an ISO date (YYYY-MM-DD)", "date_format", raw)

    # ==================== UTILITY ====================

    def _text(self, parent: ET.Element, path: str) -> Optional[str]:
        element = parent.find(path)
        if element is None or element.text is None:
            return None
        text = element.text.strip()
        return text or None

    def _to_decimal(self, raw: str) -> Optional[Decimal]:
        try:
            value = Decimal(raw)
        except InvalidOperation:
            return None
        if not value.is_finite():
            return None
        return value

    def _is_email(self, value: str) -> bool:
        return 7 <= len(value) <= 256 and bool(_EMAIL_PATTERN.match(value))

    def _is_base64(self, value: str) -> bool:
        try:
            base64.b64decode("".join(value.split()), validate=True)
        except (binascii.Error, ValueError):
            return False
        return True

    def _add(
        self,
        errors: List[ValidationIssue],
        path: str,
        message: str,
        rule: Optional[str] = None,
        value: Optional[str] = None
    ) -> None:
        errors.append(ValidationIssue(path=path, message=message, rule=rule, value=value))

    def _result(self, errors: List[ValidationIssue]) -> ValidationResult:
        if errors:
            logger.warning(f"FatturaPA validation failed with {len(errors)} error(s)")
        return ValidationResult(valid=not errors, errors=tuple(errors))


fatturapa_validator = FatturaPAValidator()
