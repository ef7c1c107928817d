"""
Enums per FatturaPA - Domini validi secondo specifiche tecniche v1.2.x

Le tabelle sono costanti di processo: gli enum sono usati dai modelli in
ingresso al generatore, i frozenset derivati dal validatore.
"""

from enum import Enum


class FormatoTrasmissione(str, Enum):
    """Formato Trasmissione"""
    FPA12 = "FPA12"  # Fattura verso PA
    FPR12 = "FPR12"  # Fattura verso privati


class TipoDocumento(str, Enum):
    """Tipo Documento - TDxx"""
    TD01 = "TD01"  # Fattura
    TD02 = "TD02"  # Acconto/Anticipo su fattura
    TD03 = "TD03"  # Acconto/Anticipo su parcella
    TD04 = "TD04"  # Nota di credito
    TD05 = "TD05"  # Nota di debito
    TD06 = "TD06"  # Parcella
    TD16 = "TD16"  # Integrazione fattura reverse charge interno
    TD17 = "TD17"  # Integrazione/autofattura per acquisto servizi dall'estero
    TD18 = "TD18"  # Integrazione per acquisto di beni intracomunitari
    TD19 = "TD19"  # Integrazione/autofattura per acquisto di beni ex art.17 c.2 DPR 633/72
    TD20 = "TD20"  # Autofattura per regolarizzazione e integrazione delle fatture
    TD21 = "TD21"  # Autofattura per splafonamento
    TD22 = "TD22"  # Estrazione beni da Deposito IVA
    TD23 = "TD23"  # Estrazione beni da Deposito IVA con versamento dell'IVA
    TD24 = "TD24"  # Fattura differita di cui all'art.21, comma 4, lett. a)
    TD25 = "TD25"  # Fattura differita di cui all'art.21, comma 4, terzo periodo lett. b)
    TD26 = "TD26"  # Cessione di beni ammortizzabili e per passaggi interni
    TD27 = "TD27"  # Fattura per autoconsumo o per cessioni gratuite senza rivalsa
    TD28 = "TD28"  # Acquisti da San Marino con IVA


class RegimeFiscale(str, Enum):
    """Regime Fiscale - RFxx (RF03 abrogato)"""
    RF01 = "RF01"  # Ordinario
    RF02 = "RF02"  # Contribuenti minimi
    RF04 = "RF04"  # Agricoltura e attività connesse e pesca
    RF05 = "RF05"  # Vendita sali e tabacchi
    RF06 = "RF06"  # Commercio fiammiferi
    RF07 = "RF07"  # Editoria
    RF08 = "RF08"  # Gestione servizi telefonia pubblica
    RF09 = "RF09"  # Rivendita documenti di trasporto pubblico e di sosta
    RF10 = "RF10"  # Intrattenimenti, giochi e altre attività
    RF11 = "RF11"  # Agenzie di viaggi e turismo
    RF12 = "RF12"  # Agriturismo
    RF13 = "RF13"  # Vendite a domicilio
    RF14 = "RF14"  # Rivendita beni usati, oggetti d'arte, d'antiquariato o da collezione
    RF15 = "RF15"  # Agenzie di vendite all'asta di oggetti d'arte, antiquariato o da collezione
    RF16 = "RF16"  # IVA per cassa P.A.
    RF17 = "RF17"  # IVA per cassa
    RF18 = "RF18"  # Altro
    RF19 = "RF19"  # Regime forfettario


class Natura(str, Enum):
    """Natura - Nxx"""
    N1 = "N1"      # Escluse ex art. 15
    N2_1 = "N2.1"  # Non soggette - artt. da 7 a 7-septies del DPR 633/72
    N2_2 = "N2.2"  # Non soggette - altri casi
    N3_1 = "N3.1"  # Non imponibili - esportazioni
    N3_2 = "N3.2"  # Non imponibili - cessioni intracomunitarie
    N3_3 = "N3.3"  # Non imponibili - cessioni verso San Marino
    N3_4 = "N3.4"  # Non imponibili - operazioni assimilate alle cessioni all'esportazione
    N3_5 = "N3.5"  # Non imponibili - a seguito di dichiarazioni d'intento
    N3_6 = "N3.6"  # Non imponibili - altre operazioni che non concorrono al plafond
    N4 = "N4"      # Esenti
    N5 = "N5"      # Regime del margine / IVA non esposta in fattura
    N6_1 = "N6.1"  # Inversione contabile - cessione di rottami e altri materiali di recupero
    N6_2 = "N6.2"  # Inversione contabile - cessione di oro e argento
    N6_3 = "N6.3"  # Inversione contabile - subappalto nel settore edile
    N6_4 = "N6.4"  # Inversione contabile - cessione di fabbricati
    N6_5 = "N6.5"  # Inversione contabile - cessione di telefoni cellulari
    N6_6 = "N6.6"  # Inversione contabile - cessione di prodotti elettronici
    N6_7 = "N6.7"  # Inversione contabile - prestazioni comparto edile e settori connessi
    N6_8 = "N6.8"  # Inversione contabile - operazioni settore energetico
    N6_9 = "N6.9"  # Inversione contabile - altri casi
    N7 = "N7"      # IVA assolta in altro stato UE


class EsigibilitaIVA(str, Enum):
    """Esigibilità IVA"""
    I = "I"  # Immediata
    D = "D"  # Differita
    S = "S"  # Scissione pagamenti


class CondizioniPagamento(str, Enum):
    """Condizioni Pagamento"""
    TP01 = "TP01"  # Pagamento a rate
    TP02 = "TP02"  # Pagamento completo
    TP03 = "TP03"  # Anticipo


class ModalitaPagamento(str, Enum):
    """Modalità Pagamento - MPxx"""
    MP01 = "MP01"  # Contanti
    MP02 = "MP02"  # Assegno
    MP03 = "MP03"  # Assegno circolare
    MP04 = "MP04"  # Contanti presso Tesoreria
    MP05 = "MP05"  # Bonifico
    MP06 = "MP06"  # Vaglia cambiario
    MP07 = "MP07"  # Bollettino bancario
    MP08 = "MP08"  # Carta di pagamento
    MP09 = "MP09"  # RID
    MP10 = "MP10"  # RID utenze
    MP11 = "MP11"  # RID veloce
    MP12 = "MP12"  # RIBA
    MP13 = "MP13"  # MAV
    MP14 = "MP14"  # Quietanza erario
    MP15 = "MP15"  # Giroconto su conti di contabilità speciale
    MP16 = "MP16"  # Domiciliazione bancaria
    MP17 = "MP17"  # Domiciliazione postale
    MP18 = "MP18"  # Bollettino di c/c postale
    MP19 = "MP19"  # SEPA Direct Debit
    MP20 = "MP20"  # SEPA Direct Debit CORE
    MP21 = "MP21"  # SEPA Direct Debit B2B
    MP22 = "MP22"  # Trattenuta su somme già riscosse
    MP23 = "MP23"  # PagoPA


class TipoRitenuta(str, Enum):
    """Tipo Ritenuta - RTxx"""
    RT01 = "RT01"  # Ritenuta persone fisiche
    RT02 = "RT02"  # Ritenuta persone giuridiche
    RT03 = "RT03"  # Contributo INPS
    RT04 = "RT04"  # Contributo ENASARCO
    RT05 = "RT05"  # Contributo ENPAM
    RT06 = "RT06"  # Altro contributo previdenziale


class TipoCassa(str, Enum):
    """Tipo Cassa - TCxx"""
    TC01 = "TC01"  # Cassa Nazionale Previdenza e Assistenza Avvocati e Procuratori legali
    TC02 = "TC02"  # Cassa Previdenza Dottori Commercialisti
    TC03 = "TC03"  # Cassa Previdenza e Assistenza Geometri
    TC04 = "TC04"  # Cassa Nazionale Previdenza e Assistenza Ingegneri e Architetti liberi professionisti
    TC05 = "TC05"  # Cassa Nazionale del Notariato
    TC06 = "TC06"  # Cassa Nazionale Previdenza e Assistenza Ragionieri e Periti Commerciali
    TC07 = "TC07"  # Ente Nazionale Assistenza Agenti e Rappresentanti di Commercio (ENASARCO)
    TC08 = "TC08"  # Ente Nazionale Previdenza e Assistenza Consulenti del Lavoro (ENPACL)
    TC09 = "TC09"  # Ente Nazionale Previdenza e Assistenza Medici (ENPAM)
    TC10 = "TC10"  # Ente Nazionale Previdenza e Assistenza Farmacisti (ENPAF)
    TC11 = "TC11"  # Ente Nazionale Previdenza e Assistenza Veterinari (ENPAV)
    TC12 = "TC12"  # Ente Nazionale Previdenza e Assistenza Impiegati dell'Agricoltura (ENPAIA)
    TC13 = "TC13"  # Fondo Previdenza Impiegati Imprese di Spedizione e Agenzie Marittime
    TC14 = "TC14"  # Istituto Nazionale Previdenza Giornalisti Italiani (INPGI)
    TC15 = "TC15"  # Opera Nazionale Assistenza Orfani Sanitari Italiani (ONAOSI)
    TC16 = "TC16"  # Cassa Autonoma Assistenza Integrativa Giornalisti Italiani (CASAGIT)
    TC17 = "TC17"  # Ente Previdenza Periti Industriali e Periti Industriali Laureati (EPPI)
    TC18 = "TC18"  # Ente Previdenza e Assistenza Pluricategoriale (EPAP)
    TC19 = "TC19"  # Ente Nazionale Previdenza e Assistenza Biologi (ENPAB)
    TC20 = "TC20"  # Ente Nazionale Previdenza e Assistenza Professione Infermieristica (ENPAPI)
    TC21 = "TC21"  # Ente Nazionale Previdenza e Assistenza Psicologi (ENPAP)
    TC22 = "TC22"  # INPS


class SocioUnico(str, Enum):
    """Socio Unico - IscrizioneREA"""
    SU = "SU"  # Socio unico
    SM = "SM"  # Più soci


class StatoLiquidazione(str, Enum):
    """Stato Liquidazione - IscrizioneREA"""
    LS = "LS"  # In liquidazione
    LN = "LN"  # Non in liquidazione


class TipoScontoMaggiorazione(str, Enum):
    """Tipo ScontoMaggiorazione - DettaglioLinee"""
    SC = "SC"  # Sconto
    MG = "MG"  # Maggiorazione


# Causali pagamento ammesse per DatiRitenuta (modello 770)
CAUSALI_PAGAMENTO = frozenset({
    "A", "B", "C", "D", "E", "G", "H", "I", "L", "L1", "M", "M1", "M2",
    "N", "O", "O1", "P", "Q", "R", "S", "T", "U", "V", "V1", "V2", "W",
    "X", "Y", "ZO",
})

# Valori sentinella di CodiceDestinatario
CODICE_DESTINATARIO_PEC = "0000000"
CODICE_DESTINATARIO_ESTERO = "XXXXXXX"

VALID_FORMATO_TRASMISSIONE = frozenset(f.value for f in FormatoTrasmissione)
VALID_TIPO_DOCUMENTO = frozenset(t.value for t in TipoDocumento)
VALID_REGIME_FISCALE = frozenset(r.value for r in RegimeFiscale)
VALID_NATURA = frozenset(n.value for n in Natura)
VALID_ESIGIBILITA_IVA = frozenset(e.value for e in EsigibilitaIVA)
VALID_CONDIZIONI_PAGAMENTO = frozenset(c.value for c in CondizioniPagamento)
VALID_MODALITA_PAGAMENTO = frozenset(m.value for m in ModalitaPagamento)
VALID_TIPO_RITENUTA = frozenset(t.value for t in TipoRitenuta)
VALID_TIPO_CASSA = frozenset(t.value for t in TipoCassa)
VALID_TIPO_SCONTO_MAGGIORAZIONE = frozenset(t.value for t in TipoScontoMaggiorazione)
