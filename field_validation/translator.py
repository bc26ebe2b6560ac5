"""
Message translation.

Rules carry message keys (INVALID_EMAIL, INVALID_BETWEEN_NUM, ...). A
Translator turns a key into display text. Lookups never raise: a miss comes
back as a failed TranslationOutcome so the caller can fall back to the
field's alt text.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from .errors import TranslationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranslationOutcome:
    """Result of one translation lookup: either text or an error."""

    key: str
    text: Optional[str] = None
    error: Optional[TranslationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Translator(ABC):
    """Translates message keys to display text."""

    @abstractmethod
    def translate(self, key: str) -> TranslationOutcome:
        """
        Look up a message key.

        Args:
            key: Message key or raw message

        Returns:
            TranslationOutcome with text on success, error on a miss
        """


class CatalogTranslator(Translator):
    """
    Translator backed by locale message tables.

    Keys missing from the active locale are looked up in the fallback
    locale before being reported as a miss.

    Example:
        translator = CatalogTranslator.from_config(ConfigLoader(), locale="fr")
        outcome = translator.translate("INVALID_EMAIL")
        if outcome.ok:
            print(outcome.text)
    """

    def __init__(
        self,
        messages: Dict[str, str],
        fallback_messages: Optional[Dict[str, str]] = None,
        locale: str = "en",
    ):
        self.messages = messages
        self.fallback_messages = fallback_messages or {}
        self.locale = locale

    @classmethod
    def from_config(cls, config_loader, locale: Optional[str] = None) -> "CatalogTranslator":
        """
        Build a translator from the locale files a ConfigLoader points at.

        Args:
            config_loader: ConfigLoader instance
            locale: Locale name; defaults to the configured locale

        Raises:
            ConfigError: If a locale file cannot be loaded
        """
        options = config_loader.get_validation_options()
        locale = locale or options["locale"]
        fallback_locale = options.get("fallback_locale")

        messages = config_loader.get_locale_messages(locale)
        fallback_messages = None
        if fallback_locale and fallback_locale != locale:
            fallback_messages = config_loader.get_locale_messages(fallback_locale)

        logger.info(
            f"Loaded {len(messages)} messages for locale {locale}",
            extra={"locale": locale, "fallback_locale": fallback_locale},
        )
        return cls(messages, fallback_messages, locale=locale)

    def translate(self, key: str) -> TranslationOutcome:
        if key in self.messages:
            return TranslationOutcome(key=key, text=self.messages[key])
        if key in self.fallback_messages:
            return TranslationOutcome(key=key, text=self.fallback_messages[key])
        return TranslationOutcome(
            key=key,
            error=TranslationError(f"No translation for {key!r} in locale {self.locale}"),
        )
