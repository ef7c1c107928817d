"""
Sistema di gestione errori centralizzato per generazione e validazione FatturaPA
"""
from abc import ABC
from typing import Optional, Dict, Any, List
from enum import Enum

class ErrorCode(Enum):
    """Codici errore standardizzati"""
    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_XML = "INVALID_XML"
    FATTURAPA_INVALID = "FATTURAPA_INVALID"
    
    # Business logic errors
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    FATTURAPA_GENERATION_FAILED = "FATTURAPA_GENERATION_FAILED"

class BaseApplicationException(Exception, ABC):
    """Base exception per l'applicazione"""
    
    def __init__(
        self, 
        message: str, 
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 400
    ):
        self.message = message
        self.error_code = error_code.value
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)
    
    def to_dict(self) -> Dict[str, Any]:
        """Converte l'eccezione in dizionario per la risposta API"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "status_code": self.status_code
        }

class DomainException(BaseApplicationException):
    """Eccezioni del dominio fiscale"""
    
    def __init__(
        self, 
        message: str, 
        error_code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details, 400)

class ValidationException(DomainException):
    """Errori di validazione (XML FatturaPA non conforme)"""
    
    def __init__(
        self, 
        message: str, 
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)

class BusinessRuleException(DomainException):
    """Violazione regole di business (pre-flight del generatore)"""
    
    def __init__(
        self, 
        message: str, 
        error_code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)

# Factory per creare eccezioni specifiche
class ExceptionFactory:
    """Factory per creare eccezioni specifiche"""
    
    @staticmethod
    def generation_failed(errors: List[str]) -> BusinessRuleException:
        return BusinessRuleException(
            f"FatturaPA generation failed with {len(errors)} error(s)",
            ErrorCode.FATTURAPA_GENERATION_FAILED,
            {"errors": list(errors)}
        )
    
    @staticmethod
    def invalid_document(issues: List[Dict[str, Any]]) -> ValidationException:
        return ValidationException(
            f"FatturaPA document is not valid: {len(issues)} error(s)",
            ErrorCode.FATTURAPA_INVALID,
            {"errors": list(issues)}
        )
