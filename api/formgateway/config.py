"""
Gateway configuration.

Configuration is read from a TOML file into frozen pydantic models, so a
loaded ``Config`` is an immutable snapshot that concurrent requests can share
without coordination. Keys are matched case-insensitively and underscores are
ignored, so ``CustomerFrom``, ``customerfrom`` and ``customer_from`` are the
same key. Values can be overridden from the environment with
``FORMGATEWAY_<SECTION>_<KEY>``, e.g. ``FORMGATEWAY_AUTH_PASSWORD``.

Example::

    [Server]
    Host = "localhost"
    Port = 9301
    Path = "/"

    [Fields.field1]
    Name = "name"
    Type = "textRestricted"
"""

import logging
import os
import threading
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "FORMGATEWAY_CONFIG"
ENV_PREFIX = "FORMGATEWAY_"
DEFAULT_CONFIG_FILENAME = "config.toml"
DEFAULT_CONFIG_DIRS: Tuple[str, ...] = (".", "/etc/emailformgateway")


# ============================================================================
# Errors
# ============================================================================

class ConfigError(Exception):
    """Base class for configuration problems found at startup or reload."""


class ConfigFileNotFound(ConfigError):
    pass


class ConfigReadError(ConfigError):
    """The file exists but is not valid TOML."""


class ConfigMarshalError(ConfigError):
    """The TOML parsed but does not fit the configuration schema."""


# ============================================================================
# Models
# ============================================================================

def _key_alias(name: str) -> str:
    return name.replace("_", "")


def _normalize_key(key: str) -> str:
    return key.lower().replace("_", "").replace("-", "")


class _Section(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=_key_alias,
        extra="ignore",
    )


class ServerConfig(_Section):
    host: str = "localhost"
    port: int = 9301
    path: str = "/"
    domain: str = "localhost"
    allowed_origins: Tuple[str, ...] = ("*",)


class LogFileConfig(_Section):
    filename: str = ""
    path: str = ""
    level: str = "INFO"


class SmtpConfig(_Section):
    host: str = "localhost"
    port: int = 25
    timeout: float = 30.0


class AuthConfig(_Section):
    username: str = ""
    password: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.username and self.password)


class AddressConfig(_Section):
    customer_from: str = ""
    customer_from_name: str = ""
    customer_reply_to: str = ""
    system_to: str = ""
    system_to_name: str = ""
    system_from: str = ""
    system_from_name: str = ""
    system_reply_to: str = ""


class SubjectConfig(_Section):
    customer: str = ""
    system: str = ""


def build_template_filename(directory: str, filename: str) -> str:
    return os.path.join(directory, filename)


class TemplatesConfig(_Section):
    dir: str = ""
    customer_text: str = "customer-email-text.template"
    customer_html: str = "customer-email-html.template"
    system_text: str = "system-email-text.template"
    system_html: str = "system-email-html.template"

    @property
    def customer_text_path(self) -> str:
        return build_template_filename(self.dir, self.customer_text)

    @property
    def customer_html_path(self) -> str:
        return build_template_filename(self.dir, self.customer_html)

    @property
    def system_text_path(self) -> str:
        return build_template_filename(self.dir, self.system_text)

    @property
    def system_html_path(self) -> str:
        return build_template_filename(self.dir, self.system_html)


class FieldPolicy(_Section):
    name: str
    type: str


class Config(_Section):
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_file: LogFileConfig = Field(default_factory=LogFileConfig)
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    addresses: AddressConfig = Field(default_factory=AddressConfig)
    subjects: SubjectConfig = Field(default_factory=SubjectConfig)
    templates: TemplatesConfig = Field(default_factory=TemplatesConfig)
    fields: Dict[str, FieldPolicy] = Field(default_factory=dict)

    @property
    def policies(self) -> Tuple[FieldPolicy, ...]:
        """Field policies in the order they were declared."""
        return tuple(self.fields.values())


# Sections that accept FORMGATEWAY_<SECTION>_<KEY> overrides.
_ENV_SECTIONS = frozenset(
    _key_alias(name) for name in Config.model_fields if name != "fields"
)


# ============================================================================
# Loading
# ============================================================================

def _normalize_keys(data: Any) -> Any:
    if isinstance(data, dict):
        return {_normalize_key(k): _normalize_keys(v) for k, v in data.items()}
    return data


def _apply_env_overrides(data: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    for var, value in environ.items():
        if not var.upper().startswith(ENV_PREFIX):
            continue
        section, _, key = var[len(ENV_PREFIX):].partition("_")
        section, key = _normalize_key(section), _normalize_key(key)
        if section not in _ENV_SECTIONS or not key:
            continue
        data.setdefault(section, {})[key] = value
        logger.debug("Config %s.%s overridden from %s", section, key, var)
    return data


def resolve_config_path(filename: Optional[str] = None) -> Path:
    """
    Find the config file to read.

    An explicit name (or ``$FORMGATEWAY_CONFIG``) must exist, with or without
    its ``.toml`` suffix. Otherwise ``config.toml`` is searched for in the
    working directory and then in ``/etc/emailformgateway``.
    """
    filename = filename or os.getenv(CONFIG_ENV_VAR, "")
    if filename:
        path = Path(filename)
        if path.is_file():
            return path
        with_suffix = path.with_name(path.name + ".toml")
        if not path.suffix and with_suffix.is_file():
            return with_suffix
        raise ConfigFileNotFound(f"Could not find a config file called {filename!r}")

    for directory in DEFAULT_CONFIG_DIRS:
        candidate = Path(directory) / DEFAULT_CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    searched = ", ".join(DEFAULT_CONFIG_DIRS)
    raise ConfigFileNotFound(f"No {DEFAULT_CONFIG_FILENAME} found in: {searched}")


def parse_config(data: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None) -> Config:
    """Validate already-decoded TOML data (plus env overrides) into a Config."""
    normalized = _normalize_keys(dict(data))
    normalized = _apply_env_overrides(normalized, os.environ if environ is None else environ)
    try:
        return Config.model_validate(normalized)
    except ValidationError as e:
        raise ConfigMarshalError(f"Failed to marshal config: {e}") from e


def load_config(filename: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Config:
    path = resolve_config_path(filename)
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigReadError(f"Could not read in config {str(path)!r}: {e}") from e
    except OSError as e:
        raise ConfigReadError(f"Could not open config {str(path)!r}: {e}") from e

    config = parse_config(data, environ)
    logger.info("Loaded config %s (%d field policies)", path, len(config.fields))
    return config


class ConfigStore:
    """
    Holds the current configuration snapshot.

    Readers call ``get()`` once per request and keep the snapshot they got.
    ``reload()`` builds a new snapshot and swaps it in whole; if loading fails
    the previous snapshot stays in place and the error propagates.
    """

    def __init__(self, filename: Optional[str] = None, config: Optional[Config] = None):
        self._filename = filename
        self._lock = threading.Lock()
        self._config = config if config is not None else load_config(filename)

    @property
    def filename(self) -> Optional[str]:
        return self._filename

    def get(self) -> Config:
        return self._config

    def reload(self) -> Config:
        with self._lock:
            config = load_config(self._filename)
            self._config = config
        logger.info("Configuration reloaded")
        return config
