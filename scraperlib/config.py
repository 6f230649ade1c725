import copy
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import soupsieve

from . import defaults as _defaults
from .errors import ConfigurationError


DEFAULT_FILENAME = "index.html"
DEFAULT_REQUEST_CONCURRENCY = 8

# camelCase option names accepted alongside the snake_case ones.
OPTION_ALIASES = {
    "defaultFilename": "default_filename",
    "maxDepth": "max_depth",
    "maxRecursiveDepth": "max_recursive_depth",
    "requestConcurrency": "request_concurrency",
    "urlFilter": "url_filter",
    "allowedDomains": "allowed_domains",
    "delaySeconds": "delay_seconds",
    "metricsInterval": "metrics_interval",
}

KNOWN_OPTIONS = {
    "urls",
    "directory",
    "default_filename",
    "sources",
    "subdirectories",
    "request",
    "recursive",
    "max_depth",
    "max_recursive_depth",
    "request_concurrency",
    "delay_seconds",
    "url_filter",
    "allowed_domains",
    "metrics_interval",
}


@dataclass(frozen=True)
class Seed:
    url: str
    filename: Optional[str] = None


@dataclass(frozen=True)
class SourceRule:
    selector: str
    attr: str


@dataclass(frozen=True)
class SubdirectoryRule:
    directory: str
    extensions: Tuple[str, ...]

    def matches(self, filename: str) -> bool:
        ext = os.path.splitext(filename)[1].lower()
        return bool(ext) and ext in self.extensions


# Appended to the sources of recursive crawls.
RECURSIVE_SOURCES: Tuple[SourceRule, ...] = (SourceRule("a", "href"),)


@dataclass(frozen=True)
class CrawlConfig:
    urls: Tuple[Seed, ...]
    default_filename: str = DEFAULT_FILENAME
    sources: Tuple[SourceRule, ...] = ()
    subdirectories: Optional[Tuple[SubdirectoryRule, ...]] = None
    request: Mapping[str, Any] = field(default_factory=dict)
    recursive: bool = False
    directory: Optional[str] = None
    absolute_directory_path: Optional[str] = None
    max_depth: Optional[int] = None
    max_recursive_depth: Optional[int] = None
    request_concurrency: int = DEFAULT_REQUEST_CONCURRENCY
    delay_seconds: float = 0.0
    allowed_domains: Tuple[str, ...] = ()
    url_filter: Optional[Callable[[str], bool]] = None
    metrics_interval: float = 0.0

    def is_link_rule(self, rule_index: int) -> bool:
        """True when the rule at ``rule_index`` was added for recursive link following."""
        if not self.recursive or not 0 <= rule_index < len(self.sources):
            return False
        return self.sources[rule_index] in RECURSIVE_SOURCES


def _as_int(value: Any, key: str, minimum: int) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"Invalid int for '{key}': {value!r}")
    if value < minimum:
        raise ConfigurationError(f"'{key}' must be >= {minimum}, got {value!r}")
    return value


def _as_float(value: Any, key: str) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid float for '{key}': {value!r}")
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid float for '{key}': {value!r}") from exc
    if result < 0:
        raise ConfigurationError(f"'{key}' must be >= 0, got {value!r}")
    return result


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigurationError(f"Invalid bool for '{key}': {value!r}")


def _as_filename(value: Any, key: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"'{key}' must be a non-empty string, got {value!r}")
    return value.strip()


def _canonical_keys(options: Mapping[str, Any]) -> Dict[str, Any]:
    canonical: Dict[str, Any] = {}
    for key, value in options.items():
        name = OPTION_ALIASES.get(key, key)
        if name not in KNOWN_OPTIONS:
            raise ConfigurationError(f"Unknown option: {key!r}")
        canonical[name] = value
    return canonical


def _coerce_seed(value: Any) -> Seed:
    if isinstance(value, Seed):
        url, filename = value.url, value.filename
    elif isinstance(value, str):
        url, filename = value, None
    elif isinstance(value, Mapping):
        url, filename = value.get("url"), value.get("filename")
    else:
        raise ConfigurationError(f"URL entries must be strings or mappings, got {type(value).__name__}")
    if not isinstance(url, str) or not url.strip():
        raise ConfigurationError(f"URL entry is missing a valid 'url': {value!r}")
    if filename is not None:
        filename = _as_filename(filename, "filename")
    return Seed(url=url.strip(), filename=filename)


def _coerce_urls(value: Any) -> Tuple[Seed, ...]:
    if value is None:
        raise ConfigurationError("'urls' is required")
    if isinstance(value, (str, Mapping, Seed)):
        entries: List[Any] = [value]
    elif isinstance(value, (list, tuple)):
        entries = list(value)
    else:
        raise ConfigurationError(f"'urls' must be a string, mapping or list, got {type(value).__name__}")
    if not entries:
        raise ConfigurationError("'urls' must contain at least one URL")
    return tuple(_coerce_seed(entry) for entry in entries)


def _coerce_source(value: Any) -> SourceRule:
    if isinstance(value, SourceRule):
        rule = value
    elif isinstance(value, Mapping):
        selector, attr = value.get("selector"), value.get("attr")
        if not isinstance(selector, str) or not selector.strip():
            raise ConfigurationError(f"Source rule missing valid 'selector': {value!r}")
        if not isinstance(attr, str) or not attr.strip():
            raise ConfigurationError(f"Source rule missing valid 'attr': {value!r}")
        rule = SourceRule(selector=selector.strip(), attr=attr.strip())
    else:
        raise ConfigurationError(f"Unsupported source rule: {value!r}")
    try:
        soupsieve.compile(rule.selector)
    except soupsieve.SelectorSyntaxError as exc:
        raise ConfigurationError(f"Invalid selector {rule.selector!r}: {exc}") from exc
    return rule


def _coerce_sources(value: Any) -> Tuple[SourceRule, ...]:
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"'sources' must be a list, got {type(value).__name__}")
    return tuple(_coerce_source(item) for item in value)


def _coerce_extension(value: Any) -> str:
    if not isinstance(value, str) or not value.strip(".").strip():
        raise ConfigurationError(f"Invalid extension: {value!r}")
    ext = value.strip().lower()
    return ext if ext.startswith(".") else "." + ext


def _coerce_subdirectory(value: Any) -> SubdirectoryRule:
    if isinstance(value, SubdirectoryRule):
        return value
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Unsupported subdirectory rule: {value!r}")
    directory = value.get("directory")
    if not isinstance(directory, str) or not directory.strip("/ "):
        raise ConfigurationError(f"Subdirectory rule missing valid 'directory': {value!r}")
    extensions = value.get("extensions")
    if not isinstance(extensions, (list, tuple)):
        raise ConfigurationError(f"Subdirectory rule 'extensions' must be a list: {value!r}")
    return SubdirectoryRule(
        directory=directory.strip("/ "),
        extensions=tuple(_coerce_extension(ext) for ext in extensions),
    )


def _coerce_subdirectories(value: Any) -> Optional[Tuple[SubdirectoryRule, ...]]:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"'subdirectories' must be a list or None, got {type(value).__name__}")
    return tuple(_coerce_subdirectory(item) for item in value)


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return copy.copy(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_request(request: Mapping[str, Any]) -> None:
    """Check the request keys the HTTP client interprets."""
    headers = request.get("headers")
    if headers is not None:
        if not isinstance(headers, Mapping):
            raise ConfigurationError(f"'request.headers' must be a mapping, got {type(headers).__name__}")
        for name, value in headers.items():
            if not isinstance(name, str) or not isinstance(value, str):
                raise ConfigurationError(f"Invalid header {name!r}: {value!r}")
    timeout = request.get("timeout")
    if isinstance(timeout, Mapping):
        parts = [timeout.get("connect"), timeout.get("read")]
        if set(timeout) - {"connect", "read"} or not all(p is None or (_is_number(p) and p > 0) for p in parts):
            raise ConfigurationError(f"Invalid 'request.timeout': {timeout!r}")
    elif timeout is not None and not (_is_number(timeout) and timeout > 0):
        raise ConfigurationError(f"Invalid 'request.timeout': {timeout!r}")
    retries = request.get("retries")
    if retries is not None and (isinstance(retries, bool) or not isinstance(retries, int) or retries < 0):
        raise ConfigurationError(f"Invalid 'request.retries': {retries!r}")
    redirect = request.get("redirect")
    if redirect is not None and not isinstance(redirect, bool):
        raise ConfigurationError(f"Invalid 'request.redirect': {redirect!r}")


def freeze_request(request: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(
        {key: freeze_request(value) if isinstance(value, Mapping) else value for key, value in request.items()}
    )


def merge_request(default_request: Any, request: Any) -> Dict[str, Any]:
    """Overlay ``request`` on ``default_request``.

    Top-level keys from ``request`` win. When both sides hold a mapping under
    the same key (``headers``), the two are merged key by key instead. The
    merged keys understood by the HTTP client are validated.
    """
    for name, value in (("default request", default_request), ("request", request)):
        if value is not None and not isinstance(value, Mapping):
            raise ConfigurationError(f"'{name}' must be a mapping, got {type(value).__name__}")
    merged: Dict[str, Any] = _plain(default_request or {})
    for key, value in (request or {}).items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = {**current, **_plain(value)}
        else:
            merged[key] = _plain(value)
    validate_request(merged)
    return merged


def _coerce_domains(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"'allowed_domains' must be a list, got {type(value).__name__}")
    domains = []
    for item in value:
        if not isinstance(item, str) or not item.strip(". "):
            raise ConfigurationError(f"Invalid domain: {item!r}")
        domains.append(item.strip().lower().lstrip("."))
    return tuple(domains)


def normalize_options(options: Mapping[str, Any], defaults: Optional[Mapping[str, Any]] = None) -> CrawlConfig:
    """Build a complete ``CrawlConfig`` from caller options and defaults.

    Caller values win over ``defaults`` (``scraperlib.defaults.DEFAULTS``
    when omitted). An explicit ``subdirectories=None`` disables subdirectory
    routing instead of falling back to the default rules. Any malformed
    option raises ``ConfigurationError``.
    """
    if not isinstance(options, Mapping):
        raise ConfigurationError(f"Options must be a mapping, got {type(options).__name__}")
    if defaults is None:
        defaults = _defaults.DEFAULTS
    opts = _canonical_keys(options)

    recursive = _as_bool(opts.get("recursive", False), "recursive")

    if opts.get("default_filename") is not None:
        default_filename = _as_filename(opts["default_filename"], "default_filename")
    else:
        default_filename = _as_filename(defaults.get("default_filename", DEFAULT_FILENAME), "default_filename")

    if opts.get("sources") is not None:
        sources = _coerce_sources(opts["sources"])
    else:
        sources = _coerce_sources(defaults.get("sources") or [])
    if recursive:
        sources += tuple(rule for rule in RECURSIVE_SOURCES if rule not in sources)

    if "subdirectories" in opts:
        subdirectories = _coerce_subdirectories(opts["subdirectories"])
    else:
        subdirectories = _coerce_subdirectories(defaults.get("subdirectories"))

    directory = opts.get("directory")
    absolute_directory_path = None
    if directory is not None:
        directory = _as_filename(directory, "directory")
        if os.path.isabs(directory):
            absolute_directory_path = directory
        else:
            absolute_directory_path = os.path.join(os.getcwd(), directory)

    url_filter = opts.get("url_filter")
    if url_filter is not None and not callable(url_filter):
        raise ConfigurationError(f"'url_filter' must be callable, got {url_filter!r}")

    concurrency = opts.get("request_concurrency")
    return CrawlConfig(
        urls=_coerce_urls(opts.get("urls")),
        default_filename=default_filename,
        sources=sources,
        subdirectories=subdirectories,
        request=freeze_request(merge_request(defaults.get("request"), opts.get("request"))),
        recursive=recursive,
        directory=directory,
        absolute_directory_path=absolute_directory_path,
        max_depth=_as_int(opts.get("max_depth"), "max_depth", 0),
        max_recursive_depth=_as_int(opts.get("max_recursive_depth"), "max_recursive_depth", 0),
        request_concurrency=DEFAULT_REQUEST_CONCURRENCY if concurrency is None else _as_int(concurrency, "request_concurrency", 1),
        delay_seconds=_as_float(opts.get("delay_seconds", 0.0), "delay_seconds"),
        allowed_domains=_coerce_domains(opts.get("allowed_domains")),
        url_filter=url_filter,
        metrics_interval=_as_float(opts.get("metrics_interval", 0.0), "metrics_interval"),
    )
