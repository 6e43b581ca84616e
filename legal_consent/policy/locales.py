"""
Locale resolution for consent policies
Maps client locale tags to policy regions and audit country codes
"""

from types import MappingProxyType
from typing import Mapping, Optional

from ..constants import LocaleDefaults
from .models import Region

# Case-sensitive on purpose: tags arrive already normalised by the API layer
LOCALE_REGION_MAP: Mapping[str, Region] = MappingProxyType({
    "ko": Region.KR,
    "ko-KR": Region.KR,
    "ja": Region.JP,
    "ja-JP": Region.JP,
    "en": Region.US,
    "en-US": Region.US,
    "en-GB": Region.EU,
    "de": Region.EU,
    "de-DE": Region.EU,
    "fr": Region.EU,
    "fr-FR": Region.EU,
    "es": Region.EU,
    "es-ES": Region.EU,
    "it": Region.EU,
    "it-IT": Region.EU,
})

# Country assumed for a bare language tag on audit rows
LANGUAGE_COUNTRY_MAP: Mapping[str, str] = MappingProxyType({
    "ko": "KR",
    "ja": "JP",
    "en": "US",
    "de": "DE",
    "fr": "FR",
    "es": "ES",
    "it": "IT",
})


def resolve_region(locale: Optional[str]) -> Region:
    """Map a locale to its policy region, DEFAULT when unmapped"""
    if not locale:
        return Region.DEFAULT
    return LOCALE_REGION_MAP.get(locale, Region.DEFAULT)


def locale_to_country_code(locale: Optional[str]) -> str:
    """Derive the two-letter country recorded on a consent row.

    Uses the region subtag when the tag carries one ("de-DE" -> "DE"), the
    language's home country for known bare tags ("ja" -> "JP"), and otherwise
    the first two letters upper-cased. Tags that do not start with two
    letters get the default country. This is an audit hint, looser than
    :func:`resolve_region`.
    """
    if not locale:
        return LocaleDefaults.DEFAULT_COUNTRY_CODE

    parts = locale.replace("_", "-").split("-")
    if len(parts) > 1 and len(parts[1]) == 2 and parts[1].isascii() and parts[1].isalpha():
        return parts[1].upper()

    language = parts[0].lower()
    if language in LANGUAGE_COUNTRY_MAP:
        return LANGUAGE_COUNTRY_MAP[language]

    prefix = locale[:2]
    if len(prefix) == 2 and prefix.isascii() and prefix.isalpha():
        return prefix.upper()
    return LocaleDefaults.DEFAULT_COUNTRY_CODE
