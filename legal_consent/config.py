"""
Configuration management for the legal consent engine
Storage, locale fallback and logging settings
"""

from pydantic_settings import BaseSettings
from pydantic import Field

from .constants import LocaleDefaults


class LegalConsentConfig(BaseSettings):
    """Consent engine configuration settings"""

    # Storage settings
    database_url: str = Field(
        default="sqlite:///legal_consent.db",
        description="SQLAlchemy URL for documents and consent rows"
    )
    sql_echo: bool = Field(default=False, description="Echo SQL statements to the log")

    # Locale settings
    base_locale: str = Field(
        default=LocaleDefaults.BASE_LOCALE,
        description="Locale tried once when a document is missing for the requested locale"
    )
    default_locale: str = Field(
        default=LocaleDefaults.DEFAULT_LOCALE,
        description="Locale assumed when a caller omits one"
    )
    default_country_code: str = Field(
        default=LocaleDefaults.DEFAULT_COUNTRY_CODE,
        description="Country code recorded on batch consents when the caller gives none"
    )

    # Environment-specific overrides
    debug_mode: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    model_config = {"env_prefix": "LEGAL_CONSENT_", "case_sensitive": False}


# Global configuration instance
legal_config = LegalConsentConfig()


def get_legal_config() -> LegalConsentConfig:
    """Get the global configuration instance"""
    return legal_config


def update_legal_config(**kwargs) -> LegalConsentConfig:
    """Update configuration with new values"""
    global legal_config
    for key, value in kwargs.items():
        if hasattr(legal_config, key):
            setattr(legal_config, key, value)
    return legal_config
