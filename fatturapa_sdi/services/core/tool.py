"""
Funzioni di controllo per identificativi fiscali e bancari (P.IVA, Codice Fiscale, IBAN)
"""

import re
from typing import Optional, Tuple


_CF_PERSONA_FISICA = re.compile(
    r'^[A-Z]{6}[0-9LMNPQRSTUV]{2}[ABCDEHLMPRST][0-9LMNPQRSTUV]{2}[A-Z][0-9LMNPQRSTUV]{3}[A-Z]$'
)
_DIECI_CIFRE = re.compile(r'^[0-9]{10}$')
_UNDICI_CIFRE = re.compile(r'^[0-9]{11}$')
_SOLO_CIFRE = re.compile(r'^[0-9]+$')
_IBAN_SHAPE = re.compile(r'^[A-Z]{2}[0-9]{2}[A-Z0-9]{1,30}$')

# Valori dei caratteri in posizione dispari (1-based) per il carattere di controllo del CF
_CF_DISPARI = {
    '0': 1, '1': 0, '2': 5, '3': 7, '4': 9, '5': 13, '6': 15, '7': 17, '8': 19, '9': 21,
    'A': 1, 'B': 0, 'C': 5, 'D': 7, 'E': 9, 'F': 13, 'G': 15, 'H': 17, 'I': 19, 'J': 21,
    'K': 2, 'L': 4, 'M': 18, 'N': 20, 'O': 11, 'P': 3, 'Q': 6, 'R': 8, 'S': 12, 'T': 14,
    'U': 16, 'V': 10, 'W': 22, 'X': 25, 'Y': 24, 'Z': 23,
}

# Lunghezze IBAN per paese (registro SWIFT), paesi SEPA più comuni
IBAN_LENGTHS = {
    'AD': 24, 'AT': 20, 'BE': 16, 'BG': 22, 'CH': 21, 'CY': 28, 'CZ': 24, 'DE': 22,
    'DK': 18, 'EE': 20, 'ES': 24, 'FI': 18, 'FR': 27, 'GB': 22, 'GI': 23, 'GR': 27,
    'HR': 21, 'HU': 28, 'IE': 22, 'IS': 26, 'IT': 27, 'LI': 21, 'LT': 20, 'LU': 20,
    'LV': 21, 'MC': 27, 'MT': 31, 'NL': 18, 'NO': 15, 'PL': 28, 'PT': 25, 'RO': 24,
    'SE': 24, 'SI': 19, 'SK': 24, 'SM': 27, 'VA': 22,
}


def calcola_cifra_controllo_piva(prime_dieci_cifre: str) -> int:
    """
    Calcola la cifra di controllo della Partita IVA italiana

    Le cifre in posizione dispari si sommano, quelle in posizione pari
    si raddoppiano (sottraendo 9 se il risultato supera 9).

    Args:
        prime_dieci_cifre: le prime 10 cifre della P.IVA

    Returns:
        La cifra di controllo (0-9)
    """
    if not _DIECI_CIFRE.match(prime_dieci_cifre):
        raise ValueError("Sono richieste esattamente 10 cifre")

    somma = 0
    for idx, char in enumerate(prime_dieci_cifre):
        cifra = int(char)
        if idx % 2 == 1:
            cifra *= 2
            if cifra > 9:
                cifra -= 9
        somma += cifra
    return (10 - somma % 10) % 10


def valida_piva(piva: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Valida una Partita IVA italiana (11 cifre, l'ultima è il check digit)

    Returns:
        (is_valid, error_message)
    """
    if not piva:
        return False, "P.IVA is empty"

    if not _UNDICI_CIFRE.match(piva):
        return False, f"P.IVA must be exactly 11 digits (received: '{piva}')"

    attesa = calcola_cifra_controllo_piva(piva[:10])
    if int(piva[10]) != attesa:
        return False, f"P.IVA '{piva}' fails the check digit (expected {attesa}, found {piva[10]})"

    return True, None


def valida_codice_fiscale(cf: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Valida un Codice Fiscale: 16 caratteri con carattere di controllo
    (persone fisiche, omocodie incluse) oppure 11 cifre (soggetti diversi
    dalle persone fisiche, stesso algoritmo della P.IVA).

    Returns:
        (is_valid, error_message)
    """
    if not cf:
        return False, "Codice Fiscale is empty"

    cf_clean = cf.strip().upper()

    if _SOLO_CIFRE.match(cf_clean):
        if len(cf_clean) != 11:
            return False, f"Numeric Codice Fiscale must be 11 digits (received: {len(cf_clean)})"
        return valida_piva(cf_clean)

    if not _CF_PERSONA_FISICA.match(cf_clean):
        return False, f"Codice Fiscale '{cf}' has an invalid format"

    somma = 0
    for idx, char in enumerate(cf_clean[:15]):
        if idx % 2 == 0:
            somma += _CF_DISPARI[char]
        else:
            somma += int(char) if char in '0123456789' else ord(char) - ord('A')

    atteso = chr(ord('A') + somma % 26)
    if cf_clean[15] != atteso:
        return False, f"Codice Fiscale '{cf}' fails the check character (expected {atteso})"

    return True, None


def valida_iban(iban: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Valida un IBAN: prefisso paese, 2 cifre di controllo, BBAN alfanumerico,
    lunghezza coerente con il paese e verifica mod 97.

    Returns:
        (is_valid, error_message)
    """
    if not iban:
        return False, "IBAN is empty"

    iban_clean = iban.replace(' ', '').upper()

    if not _IBAN_SHAPE.match(iban_clean):
        return False, f"IBAN '{iban}' has an invalid format"

    paese = iban_clean[:2]
    lunghezza_attesa = IBAN_LENGTHS.get(paese)
    if lunghezza_attesa is not None and len(iban_clean) != lunghezza_attesa:
        return False, (
            f"IBAN for country {paese} must be {lunghezza_attesa} characters "
            f"(received: {len(iban_clean)})"
        )
    if lunghezza_attesa is None and not 15 <= len(iban_clean) <= 34:
        return False, f"IBAN must be between 15 and 34 characters (received: {len(iban_clean)})"

    riordinato = iban_clean[4:] + iban_clean[:4]
    resto = 0
    for char in riordinato:
        valore = str(int(char, 36))
        for cifra in valore:
            resto = (resto * 10 + int(cifra)) % 97
    if resto != 1:
        return False, f"IBAN '{iban}' fails the mod-97 check"

    return True, None
