"""Configuration management -- one immutable Settings value per process.

Values are layered, lowest precedence first:

  dataclass defaults -> TOML config file -> environment -> CLI overrides

``load_settings`` assembles the layers once at startup; the resulting
``Settings`` is passed explicitly to every constructor that needs it.
"""

import os
import re
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from dotenv import load_dotenv

from pagebroker.browser.page import UrlSelectorRule
from pagebroker.security.url_policy import AccessPolicy
from pagebroker.utils.errors import ConfigurationError

DEFAULT_MAX_DOWNLOAD_BYTES = 16 * 1024 * 1024

DEFAULT_FETCH_DESC = "Fetch a webpage and return the content in Markdown format"
DEFAULT_IMAGE_DESC = "Download an image or binary file and return it as base64 data"
DEFAULT_SEARCH_DESC = "Perform a web search and return the results in Markdown format"
DEFAULT_SUMMARY_DESC = "Summarize a webpage and return the summary in Markdown format"

CONFIG_ENV_VAR = "PAGEBROKER_CONFIG"


@dataclass(frozen=True)
class Settings:
    """Centralised settings, assembled once and never mutated."""

    # --- Browser -----------------------------------------------------------
    webdriver_port: int = 9515
    webdriver_path: str = "/usr/bin/chromedriver"
    page_load_timeout: int = 30
    convert_absolute_links: bool = False

    # --- Conversion --------------------------------------------------------
    use_pandoc: bool = False

    # --- URL policy / selectors ---------------------------------------------
    allow: Tuple[str, ...] = ()
    deny: Tuple[str, ...] = ()
    selectors: Tuple[UrlSelectorRule, ...] = ()

    # --- Search ------------------------------------------------------------
    search_engine: str = "google_custom"
    google_cx: str = ""
    google_key: str = ""
    search_cache_path: str = ""
    search_cache_ttl: str = "24h"

    # --- Downloads ---------------------------------------------------------
    max_download_bytes: int = DEFAULT_MAX_DOWNLOAD_BYTES

    # --- Summaries ---------------------------------------------------------
    llm_base_url: str = ""
    llm_api_key: str = ""
    llm_model: str = ""
    llm_short: bool = False

    # --- MCP transport -----------------------------------------------------
    http_addr: str = "0.0.0.0"
    http_port: int = 8080
    master_key: str = ""
    fetch_desc: str = DEFAULT_FETCH_DESC
    image_desc: str = DEFAULT_IMAGE_DESC
    search_desc: str = DEFAULT_SEARCH_DESC
    summary_desc: str = DEFAULT_SUMMARY_DESC
    disable_fetch: bool = False
    disable_image: bool = False
    disable_search: bool = False
    disable_summary: bool = False

    # --- Logging -----------------------------------------------------------
    log_level: str = "INFO"
    log_file: str = ""

    @property
    def policy(self) -> AccessPolicy:
        return AccessPolicy(allow=self.allow, deny=self.deny)

    @property
    def search_cache_ttl_seconds(self) -> float:
        return parse_ttl(self.search_cache_ttl)


# (section, key) in the TOML file -> Settings field
_TOML_KEYS: Dict[Tuple[str, str], str] = {
    ("broker", "web_driver_port"): "webdriver_port",
    ("broker", "web_driver_path"): "webdriver_path",
    ("broker", "page_load_timeout"): "page_load_timeout",
    ("broker", "absolute_links"): "convert_absolute_links",
    ("broker", "use_pandoc"): "use_pandoc",
    ("broker", "search_engine"): "search_engine",
    ("broker", "verbose"): "log_level",
    ("broker", "log_level"): "log_level",
    ("broker", "log_file"): "log_file",
    ("broker", "fetch_tool_desc"): "fetch_desc",
    ("broker", "image_tool_desc"): "image_desc",
    ("broker", "search_tool_desc"): "search_desc",
    ("broker", "summary_tool_desc"): "summary_desc",
    ("broker", "disable_fetch"): "disable_fetch",
    ("broker", "disable_image"): "disable_image",
    ("broker", "disable_search"): "disable_search",
    ("broker", "disable_summary"): "disable_summary",
    ("broker", "max_download_bytes"): "max_download_bytes",
    ("broker", "allow"): "allow",
    ("broker", "deny"): "deny",
    ("broker", "selectors"): "selectors",
    ("http", "addr"): "http_addr",
    ("http", "port"): "http_port",
    ("http", "master_key"): "master_key",
    ("google_custom", "cx"): "google_cx",
    ("google_custom", "key"): "google_key",
    ("cache", "db_path"): "search_cache_path",
    ("cache", "expires"): "search_cache_ttl",
    ("summarize", "base_url"): "llm_base_url",
    ("summarize", "api_key"): "llm_api_key",
    ("summarize", "model"): "llm_model",
    ("summarize", "short"): "llm_short",
}

# Settings field -> environment variable
_ENV_VARS: Dict[str, str] = {
    "webdriver_port": "PAGEBROKER_WD_PORT",
    "webdriver_path": "PAGEBROKER_WD_PATH",
    "google_cx": "GOOGLE_CSE_CX",
    "google_key": "GOOGLE_CSE_KEY",
    "search_cache_path": "PAGEBROKER_SEARCH_CACHE",
    "search_cache_ttl": "PAGEBROKER_SEARCH_EXPIRES",
    "llm_base_url": "LLM_BASE_URL",
    "llm_api_key": "LLM_API_KEY",
    "llm_model": "LLM_MODEL",
    "master_key": "PAGEBROKER_MASTER_KEY",
    "log_level": "PAGEBROKER_LOG_LEVEL",
    "log_file": "PAGEBROKER_LOG_FILE",
}

_FIELD_TYPES = {f.name: type(f.default) for f in fields(Settings)}

_TTL_RE = re.compile(
    r"^(?P<value>\d+(?:\.\d+)?|\.\d+)\s*(?P<unit>"
    r"s|sec|secs|seconds?|m|min|mins|minutes?|h|hr|hrs|hours?|d|days?)$"
)
_TTL_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

# Compound durations such as 1h30m or 500ms
_DURATION_PART = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"^(?:{_DURATION_PART})+$")
_DURATION_PART_RE = re.compile(_DURATION_PART)
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1,
    "m": 60,
    "h": 3600,
}


def parse_ttl(text: str) -> float:
    """Convert a TTL such as ``12h``, ``30min``, ``120secs``, ``1.5days`` or ``1h30m`` to seconds."""
    normalized = (text or "").strip().lower()
    if not normalized:
        raise ConfigurationError("ttl cannot be empty")
    match = _TTL_RE.match(normalized)
    if match:
        unit = match.group("unit")
        return float(match.group("value")) * _TTL_UNITS[unit[0]]
    if _DURATION_RE.match(normalized):
        return sum(
            float(value) * _DURATION_UNITS[unit]
            for value, unit in _DURATION_PART_RE.findall(normalized)
        )
    raise ConfigurationError(f"unsupported ttl format: {text}")


def normalize_patterns(values: Iterable[str]) -> Tuple[str, ...]:
    """Trim patterns and drop blank ones."""
    return tuple(v.strip() for v in values if v and v.strip())


def _coerce(name: str, value: Any) -> Any:
    """Coerce a raw file/env/CLI value into the type of Settings.<name>."""
    if name in ("allow", "deny"):
        if isinstance(value, str):
            value = value.split(",")
        return normalize_patterns(value)
    if name == "selectors":
        rules = []
        for entry in value:
            if isinstance(entry, UrlSelectorRule):
                rules.append(entry)
            elif entry.get("url") and entry.get("selector"):
                rules.append(UrlSelectorRule(url=entry["url"], selector=entry["selector"]))
        return tuple(rules)

    kind = _FIELD_TYPES[name]
    if kind is bool:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if kind is int:
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"invalid integer for {name}: {value!r}") from e
    return str(value)


def read_config_file(path: str) -> Dict[str, Any]:
    """Parse a TOML config file into a Settings-field mapping."""
    try:
        with open(path, "rb") as fh:
            data = tomllib.load(fh)
    except OSError as e:
        raise ConfigurationError(f"error reading config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"error parsing config file {path}: {e}") from e

    values: Dict[str, Any] = {}
    for (section, key), name in _TOML_KEYS.items():
        table = data.get(section)
        if not isinstance(table, dict) or key not in table:
            continue
        raw = table[key]
        if key == "verbose":
            if raw:
                values[name] = "DEBUG"
            continue
        values[name] = _coerce(name, raw)
    return values


def read_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect Settings-field values from environment variables that are set."""
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for name, var in _ENV_VARS.items():
        raw = environ.get(var)
        if raw:
            values[name] = _coerce(name, raw)
    return values


def load_settings(
    config_path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Assemble the process-wide Settings from every configuration source.

    ``config_path`` falls back to ``$PAGEBROKER_CONFIG``.  A config file named
    either way must exist; ``overrides`` entries whose value is None are
    treated as "not given on the command line".
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    values: Dict[str, Any] = {}

    path = config_path or environ.get(CONFIG_ENV_VAR, "")
    if path:
        if not Path(path).is_file():
            raise ConfigurationError(f"config file not found: {path}")
        values.update(read_config_file(path))

    values.update(read_environment(environ))

    for name, value in (overrides or {}).items():
        if value is None:
            continue
        if name not in _FIELD_TYPES:
            raise ConfigurationError(f"unknown setting: {name}")
        values[name] = _coerce(name, value)

    return Settings(**values)
