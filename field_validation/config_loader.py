"""Two-tier configuration loading: local config + rule catalog and locale files."""

import os
import urllib.parse
from importlib.resources import files
from typing import Any, Dict, Optional

import jsonschema
import requests
import yaml

from .errors import ConfigError

LOCAL_CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "validation": {
            "type": "object",
            "properties": {
                "debounce_ms": {"type": "integer", "minimum": 0},
                "display_only_last_error": {"type": "boolean"},
                "bypass_reset_on_transition": {"type": "boolean"},
                "strict_date_formats": {"type": "boolean"},
                "locale": {"type": "string", "minLength": 1},
                "fallback_locale": {"type": ["string", "null"]},
            },
            "additionalProperties": False,
        },
        "rule_catalog_uri": {"type": "string", "minLength": 1},
        "locales_location": {"type": "string", "minLength": 1},
    },
    "required": ["rule_catalog_uri", "locales_location"],
}

_OPERATOR = {"enum": ["<", "<=", ">", ">=", "=", "==", "!=", "<>"]}

RULE_CATALOG_SCHEMA = {
    "type": "object",
    "properties": {
        "rules": {
            "type": "object",
            "minProperties": 1,
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "kind": {
                        "enum": ["regex", "conditionalDate", "conditionalNumber", "match"]
                    },
                    "pattern": {"type": "string"},
                    "message": {"type": "string", "minLength": 1},
                    "condition": {
                        "oneOf": [
                            _OPERATOR,
                            {"type": "array", "items": _OPERATOR, "minItems": 2, "maxItems": 2},
                        ]
                    },
                    "date_format": {"type": "string"},
                    "params": {
                        "oneOf": [
                            {"type": "integer", "minimum": 0, "maximum": 2},
                            {
                                "type": "array",
                                "items": {"type": "integer", "minimum": 0, "maximum": 2},
                                "minItems": 2,
                                "maxItems": 2,
                            },
                        ]
                    },
                    "param_type": {"enum": ["text", "integer", "number", "date"]},
                },
                "required": ["kind", "message"],
                "additionalProperties": False,
            },
        },
        "aliases": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
    },
    "required": ["rules"],
}

LOCALE_SCHEMA = {
    "type": "object",
    "additionalProperties": {"type": "string"},
}


class ConfigLoader:
    """Handles two-tier configuration: local config + catalog/locale documents."""

    # Timeout for remote documents, in seconds
    FETCH_TIMEOUT = 10

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to a local-config.yaml. Defaults to the file
                bundled in the field_validation package.

        Raises:
            ConfigError: If the local config is missing or fails schema validation
        """
        if config_path is None:
            config_path = str(files("field_validation").joinpath("local-config.yaml"))
        self.local_config_path = config_path

        # Remote documents already fetched in this process, keyed by URI
        self._remote_cache: Dict[str, Any] = {}

        try:
            self.local_config = self._load_yaml(self.local_config_path)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read local config {config_path}: {e}") from e
        self._check_schema(self.local_config, LOCAL_CONFIG_SCHEMA, config_path)

        self._rule_catalog = None

    def _load_yaml(self, path: str) -> Any:
        """Load YAML file from disk."""
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)

    def _check_schema(self, document: Any, schema: Dict[str, Any], source: str):
        try:
            jsonschema.validate(instance=document, schema=schema)
        except jsonschema.ValidationError as e:
            error_path = " -> ".join(str(p) for p in e.absolute_path) if e.absolute_path else "root"
            raise ConfigError(
                f"Invalid configuration in {source} at {error_path}: {e.message}"
            ) from e

    def _resolve_uri(self, uri: str) -> str:
        """Resolve a relative path against the local config's directory."""
        parsed = urllib.parse.urlparse(uri)
        if parsed.scheme:
            return uri
        config_dir = os.path.dirname(os.path.abspath(self.local_config_path))
        return os.path.join(config_dir, uri)

    def _load_config_from_uri(self, uri: str) -> Any:
        """
        Load a YAML document from URI.

        Supports:
        - Relative paths - rule-catalog.yaml, ../locales/en.yaml
        - file:// - Local filesystem (absolute paths)
        - https:// and http:// - Remote, cached for the life of this loader

        Args:
            uri: Document URI or relative path

        Returns:
            Parsed YAML document

        Raises:
            ConfigError: If the document cannot be read or fetched
        """
        parsed = urllib.parse.urlparse(uri)

        if not parsed.scheme:
            path = self._resolve_uri(uri)
        elif parsed.scheme == "file":
            path = urllib.parse.unquote(parsed.path)
        elif parsed.scheme in ("http", "https"):
            if uri not in self._remote_cache:
                try:
                    self._remote_cache[uri] = yaml.safe_load(self._fetch_uri(uri))
                except yaml.YAMLError as e:
                    raise ConfigError(f"Cannot parse {uri}: {e}") from e
            return self._remote_cache[uri]
        else:
            raise ConfigError(f"Unsupported URI scheme: {parsed.scheme} in {uri}")

        try:
            return self._load_yaml(path)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e

    def _fetch_uri(self, uri: str) -> str:
        """Fetch content from HTTP/HTTPS URI."""
        try:
            response = requests.get(uri, timeout=self.FETCH_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ConfigError(f"Failed to fetch config from {uri}: {e}") from e
        return response.text

    def get_local_config(self) -> Dict[str, Any]:
        """Get local configuration (tier 1)."""
        return self.local_config

    def get_validation_options(self) -> Dict[str, Any]:
        """Get session defaults, filled in where the config leaves them out."""
        options = {
            "debounce_ms": 1000,
            "display_only_last_error": False,
            "bypass_reset_on_transition": False,
            "strict_date_formats": False,
            "locale": "en",
            "fallback_locale": "en",
        }
        options.update(self.local_config.get("validation") or {})
        return options

    def get_rule_catalog(self) -> Dict[str, Any]:
        """Get the rule catalog document (tier 2), loading it on first use."""
        if self._rule_catalog is None:
            uri = self.local_config["rule_catalog_uri"]
            catalog = self._load_config_from_uri(uri)
            self._check_schema(catalog, RULE_CATALOG_SCHEMA, uri)
            self._rule_catalog = catalog
        return self._rule_catalog

    def get_locale_uri(self, locale: str) -> str:
        """Construct the URI of a locale file from locales_location + locale name."""
        location = self.local_config["locales_location"]
        separator = "/" if not location.endswith("/") else ""
        return f"{location}{separator}{locale}.yaml"

    def get_locale_messages(self, locale: str) -> Dict[str, str]:
        """
        Load the message table for a locale.

        Args:
            locale: Locale name, e.g. "en"

        Returns:
            Dict mapping message keys to templates

        Raises:
            ConfigError: If the locale file is missing or malformed
        """
        uri = self.get_locale_uri(locale)
        messages = self._load_config_from_uri(uri) or {}
        self._check_schema(messages, LOCALE_SCHEMA, uri)
        return messages

