"""
FatturaPA configuration settings
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class FatturaPASettings(BaseSettings):
    """FatturaPA generation/validation settings (env prefix FATTURAPA_)"""
    
    # Trasmittente
    transmitter_country: str = Field(default="IT")
    default_currency: str = Field(default="EUR")
    
    # Limiti campi testuali
    description_max_length: int = Field(default=1000, ge=1, le=1000)
    causale_max_length: int = Field(default=200, ge=1, le=200)
    
    # Rendering XML
    xml_indent: str = Field(default="  ")
    namespace_p: str = Field(default="http://ivaservizi.agenziaentrate.gov.it/docs/xsd/fatture/v1.2")
    namespace_ds: str = Field(default="http://www.w3.org/2000/09/xmldsig#")
    namespace_xsi: str = Field(default="http://www.w3.org/2001/XMLSchema-instance")
    
    # Logging
    log_level: str = Field(default="INFO")
    
    class Config:
        env_prefix = "FATTURAPA_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra environment variables


@lru_cache()
def get_fatturapa_settings() -> FatturaPASettings:
    """Get cached FatturaPA settings instance"""
    return FatturaPASettings()
