"""
Constants for the legal consent engine

Service identification, locale defaults and i18n key prefixes shared by
the policy table and the HTTP surface.
"""

from typing import Final

# =============================================================================
# SERVICE IDENTIFICATION
# =============================================================================

SERVICE_NAME: Final[str] = "legal-consent-policy"
SERVICE_VERSION: Final[str] = "0.1.0"

# =============================================================================
# LOCALES
# =============================================================================

class LocaleDefaults:
    """Locale fallbacks used when configuration is silent"""
    BASE_LOCALE: Final[str] = "ko"
    DEFAULT_LOCALE: Final[str] = "ko"
    DEFAULT_COUNTRY_CODE: Final[str] = "KR"


# =============================================================================
# I18N KEYS
# =============================================================================

class LabelKeys:
    """Prefix for requirement label/description keys resolved by clients"""
    PREFIX: Final[str] = "consent."
    DESCRIPTION_SUFFIX: Final[str] = "Desc"


# =============================================================================
# STORAGE
# =============================================================================

class ColumnLimits:
    """Column sizes for the relational schema"""
    VERSION: Final[int] = 50
    LOCALE: Final[int] = 10
    TITLE: Final[int] = 255
    COUNTRY_CODE: Final[int] = 2
    IP_ADDRESS: Final[int] = 45
