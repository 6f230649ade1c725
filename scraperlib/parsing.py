import re
from dataclasses import dataclass
from typing import List, Optional, Sequence
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup

from .config import SourceRule
from .errors import ExtractionError
from .types import FetchResponse


HTML_TYPES = frozenset({"text/html", "application/xhtml+xml"})
CSS_TYPES = frozenset({"text/css"})

CSS_URL_RE = re.compile(r"""url\(\s*(["']?)([^"')]+?)\1\s*\)""", re.IGNORECASE)
CSS_IMPORT_RE = re.compile(r"""@import\s+(["'])([^"']+)\1""", re.IGNORECASE)

# rule_index of references found in stylesheets rather than by a source rule
STYLESHEET_RULE = -1


class UrlTools:
    @staticmethod
    def visit_key(url: str) -> str:
        url, _ = urldefrag(url.strip())
        return url

    @staticmethod
    def normalize_link(base_url: str, href: str) -> Optional[str]:
        if not href:
            return None
        href = href.strip()
        if href.startswith(("mailto:", "javascript:", "tel:", "data:", "blob:", "#")):
            return None
        absolute = urljoin(base_url, href)
        absolute, _ = urldefrag(absolute)
        parsed = urlparse(absolute)
        if parsed.scheme not in ("http", "https"):
            return None
        return absolute

    @staticmethod
    def is_allowed_domain(url: str, allowed_domains: Sequence[str]) -> bool:
        if not allowed_domains:
            return True
        host = (urlparse(url).hostname or "").lower()
        return any(host == d or host.endswith("." + d) for d in allowed_domains)


@dataclass(frozen=True)
class Reference:
    raw: str
    rule_index: int


def parse_srcset(value: str) -> List[str]:
    urls = []
    for candidate in value.split(","):
        parts = candidate.split()
        if parts:
            urls.append(parts[0])
    return urls


def decode_body(url: str, response: FetchResponse) -> str:
    charset = response.charset
    if charset is None:
        return response.body.decode("utf-8", errors="replace")
    try:
        return response.body.decode(charset)
    except (LookupError, UnicodeDecodeError) as exc:
        raise ExtractionError(url, exc) from exc


class SourcePipeline:
    """Finds child references in fetched content.

    HTML is matched against the source rules in declaration order, each
    rule's matches in document order. Stylesheets yield their ``url()`` and
    ``@import`` targets. Holds no per-resource state.
    """

    def __init__(self, rules: Sequence[SourceRule]):
        self.rules = tuple(rules)

    @staticmethod
    def supports(mime_type: str) -> bool:
        return mime_type in HTML_TYPES or mime_type in CSS_TYPES

    def extract(self, url: str, response: FetchResponse) -> List[Reference]:
        mime_type = response.mime_type
        if not self.supports(mime_type):
            return []
        text = decode_body(url, response)
        if mime_type in CSS_TYPES:
            return self.extract_css(text)
        return self.extract_html(text)

    def extract_html(self, html: str) -> List[Reference]:
        soup = BeautifulSoup(html, "html.parser")
        references: List[Reference] = []
        for index, rule in enumerate(self.rules):
            for element in soup.select(rule.selector):
                value = element.get(rule.attr)
                if isinstance(value, list):
                    value = " ".join(value)
                if not value:
                    continue
                candidates = parse_srcset(value) if rule.attr.lower() == "srcset" else [value]
                references.extend(Reference(raw.strip(), index) for raw in candidates if raw.strip())
        return references

    @staticmethod
    def extract_css(text: str) -> List[Reference]:
        found = []
        for regex in (CSS_IMPORT_RE, CSS_URL_RE):
            for match in regex.finditer(text):
                found.append((match.start(), match.group(2).strip()))
        found.sort(key=lambda item: item[0])
        return [Reference(raw, STYLESHEET_RULE) for _, raw in found if raw]
