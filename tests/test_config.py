import os

import pytest

from scraperlib.config import (
    RECURSIVE_SOURCES,
    CrawlConfig,
    Seed,
    SourceRule,
    SubdirectoryRule,
    merge_request,
    normalize_options,
)
from scraperlib.engine import Crawler
from scraperlib.errors import ConfigurationError
from scraperlib.types import HttpClientProtocol


URLS = ["http://example.com"]


def test_default_filename_from_defaults(tmp_path):
    defaults = {"default_filename": "dummyFilename.txt"}
    cfg = normalize_options({"urls": URLS, "directory": str(tmp_path)}, defaults)
    assert cfg.default_filename == "dummyFilename.txt"


def test_default_filename_passed_wins(tmp_path):
    defaults = {"default_filename": "dummyFilename.txt"}
    cfg = normalize_options(
        {"urls": URLS, "directory": str(tmp_path), "defaultFilename": "myNewFileName.txt"}, defaults
    )
    assert cfg.default_filename == "myNewFileName.txt"


def test_sources_from_defaults():
    defaults = {"sources": [{"selector": "img", "attr": "src"}, {"selector": "script", "attr": "src"}]}
    cfg = normalize_options({"urls": URLS}, defaults)
    assert cfg.sources == (SourceRule("img", "src"), SourceRule("script", "src"))


def test_sources_passed_replace_defaults():
    defaults = {"sources": [{"selector": "script", "attr": "src"}]}
    cfg = normalize_options({"urls": URLS, "sources": [{"selector": "img", "attr": "src"}]}, defaults)
    assert cfg.sources == (SourceRule("img", "src"),)


def test_recursive_extends_sources():
    cfg = normalize_options(
        {"urls": {"url": "http://first-url.com"}, "sources": [{"selector": "img", "attr": "src"}], "recursive": True},
        {},
    )
    assert len(cfg.sources) == 2
    assert SourceRule("img", "src") in cfg.sources
    assert SourceRule("a", "href") in cfg.sources


def test_recursive_extends_default_sources():
    defaults = {"sources": [{"selector": "img", "attr": "src"}]}
    cfg = normalize_options({"urls": URLS, "recursive": True}, defaults)
    assert cfg.sources == (SourceRule("img", "src"),) + RECURSIVE_SOURCES


def test_recursive_does_not_duplicate_link_rule():
    sources = [{"selector": "a", "attr": "href"}, {"selector": "img", "attr": "src"}]
    cfg = normalize_options({"urls": URLS, "sources": sources, "recursive": True}, {})
    assert cfg.sources == (SourceRule("a", "href"), SourceRule("img", "src"))


def test_non_recursive_keeps_sources_exactly():
    sources = [{"selector": "a", "attr": "href"}]
    cfg = normalize_options({"urls": URLS, "sources": sources}, {})
    assert cfg.sources == (SourceRule("a", "href"),)
    assert not cfg.is_link_rule(0)


def test_subdirectories_from_defaults():
    defaults = {"subdirectories": [{"directory": "dir", "extensions": [".txt"]}]}
    cfg = normalize_options({"urls": URLS}, defaults)
    assert cfg.subdirectories == (SubdirectoryRule("dir", (".txt",)),)


def test_subdirectories_passed():
    defaults = {"subdirectories": [{"directory": "dir", "extensions": [".txt"]}]}
    cfg = normalize_options({"urls": URLS, "subdirectories": [{"directory": "js", "extensions": [".js"]}]}, defaults)
    assert cfg.subdirectories == (SubdirectoryRule("js", (".js",)),)


def test_subdirectories_explicit_none_is_preserved():
    defaults = {"subdirectories": [{"directory": "dir", "extensions": [".txt"]}]}
    cfg = normalize_options({"urls": URLS, "subdirectories": None}, defaults)
    assert cfg.subdirectories is None


def test_subdirectory_extensions_are_normalized():
    cfg = normalize_options({"urls": URLS, "subdirectories": [{"directory": "img/", "extensions": ["PNG", ".Jpg"]}]}, {})
    assert cfg.subdirectories == (SubdirectoryRule("img", (".png", ".jpg")),)


def test_request_from_defaults():
    cfg = normalize_options({"urls": URLS}, {"request": {"a": 1, "b": 2}})
    assert cfg.request == {"a": 1, "b": 2}


def test_request_merges_new_keys():
    ua = "Mozilla/5.0 (Linux; Android 4.2.1;"
    cfg = normalize_options({"urls": URLS, "request": {"headers": {"User-Agent": ua}}}, {"request": {"a": 1, "b": 2}})
    assert cfg.request == {"a": 1, "b": 2, "headers": {"User-Agent": ua}}


def test_request_overrides_existing_keys():
    cfg = normalize_options({"urls": URLS, "request": {"a": 555}}, {"request": {"a": 1, "b": 2}})
    assert cfg.request == {"a": 555, "b": 2}


def test_request_merges_nested_headers():
    defaults = {"request": {"timeout": 5, "headers": {"User-Agent": "default", "Accept": "*/*"}}}
    caller = {"headers": {"User-Agent": "mine", "X-Token": "t"}}
    cfg = normalize_options({"urls": URLS, "request": caller}, defaults)
    assert cfg.request == {"timeout": 5, "headers": {"User-Agent": "mine", "Accept": "*/*", "X-Token": "t"}}
    # neither input is mutated
    assert caller == {"headers": {"User-Agent": "mine", "X-Token": "t"}}
    assert defaults["request"]["headers"] == {"User-Agent": "default", "Accept": "*/*"}


def test_merge_request_rejects_non_mapping():
    with pytest.raises(ConfigurationError):
        merge_request({}, ["headers"])


def test_absolute_directory_path_from_relative():
    cfg = normalize_options({"urls": URLS, "directory": "my/relative/path"}, {})
    assert cfg.absolute_directory_path == os.path.join(os.getcwd(), "my/relative/path")


def test_absolute_directory_path_kept_when_absolute():
    cfg = normalize_options({"urls": URLS, "directory": "/my/absolute/path"}, {})
    assert cfg.absolute_directory_path == "/my/absolute/path"


def test_absolute_directory_path_unset_without_directory():
    cfg = normalize_options({"urls": URLS}, {})
    assert cfg.directory is None
    assert cfg.absolute_directory_path is None


def test_single_string_url_is_wrapped():
    cfg = normalize_options({"urls": "http://not-array-url.com"}, {})
    assert isinstance(cfg.urls, tuple) and len(cfg.urls) == 1
    assert cfg.urls[0].url == "http://not-array-url.com"
    assert cfg.urls[0].filename is None


def test_single_mapping_url_is_wrapped():
    cfg = normalize_options({"urls": {"url": "http://first-url.com", "filename": "first.html"}}, {})
    assert cfg.urls == (Seed("http://first-url.com", "first.html"),)


def test_url_list_is_not_mutated():
    urls = ["http://first-url.com", {"url": "http://second-url.com"}]
    cfg = normalize_options({"urls": urls}, {})
    assert urls == ["http://first-url.com", {"url": "http://second-url.com"}]
    assert [s.url for s in cfg.urls] == ["http://first-url.com", "http://second-url.com"]


def test_camel_case_aliases():
    cfg = normalize_options(
        {"urls": URLS, "maxDepth": 3, "maxRecursiveDepth": 1, "requestConcurrency": 2, "urlFilter": lambda u: True},
        {},
    )
    assert cfg.max_depth == 3
    assert cfg.max_recursive_depth == 1
    assert cfg.request_concurrency == 2
    assert cfg.url_filter("http://x.com")


def test_config_is_frozen():
    cfg = normalize_options({"urls": URLS}, {})
    assert isinstance(cfg, CrawlConfig)
    with pytest.raises(AttributeError):
        cfg.recursive = True


def test_builtin_defaults_are_used():
    cfg = normalize_options({"urls": URLS})
    assert cfg.default_filename == "index.html"
    assert SourceRule("img", "src") in cfg.sources
    assert "User-Agent" in cfg.request["headers"]
    assert any(rule.directory == "images" for rule in cfg.subdirectories)


@pytest.mark.parametrize(
    "options",
    [
        {},
        {"urls": []},
        {"urls": [123]},
        {"urls": [{"filename": "x.html"}]},
        {"urls": [{"url": "http://a.com", "filename": 5}]},
        {"urls": URLS, "sources": [{"selector": "img["}]},
        {"urls": URLS, "sources": [{"selector": "img[", "attr": "src"}]},
        {"urls": URLS, "sources": "img"},
        {"urls": URLS, "subdirectories": [{"directory": "js"}]},
        {"urls": URLS, "subdirectories": "js"},
        {"urls": URLS, "request": "GET"},
        {"urls": URLS, "recursive": "yes"},
        {"urls": URLS, "max_depth": -1},
        {"urls": URLS, "request_concurrency": 0},
        {"urls": URLS, "url_filter": "*.js"},
        {"urls": URLS, "directory": ""},
        {"urls": URLS, "no_such_option": 1},
    ],
)
def test_invalid_options_raise(options):
    with pytest.raises(ConfigurationError):
        normalize_options(options, {})


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        normalize_options({"urls": [None]}, {})


@pytest.mark.parametrize(
    "request_options",
    [
        {"timeout": "fast"},
        {"timeout": 0},
        {"timeout": -1.5},
        {"timeout": {"connect": 1, "bogus": 2}},
        {"timeout": {"read": "slow"}},
        {"retries": "x"},
        {"retries": -1},
        {"retries": True},
        {"redirect": "yes"},
        {"headers": ["a"]},
        {"headers": {"X-Count": 1}},
    ],
)
def test_invalid_request_values_raise(request_options):
    with pytest.raises(ConfigurationError):
        normalize_options({"urls": URLS, "request": request_options}, {})


def test_invalid_request_in_defaults_raises():
    with pytest.raises(ConfigurationError):
        normalize_options({"urls": URLS}, {"request": {"retries": "many"}})


def test_timeout_mapping_is_accepted():
    cfg = normalize_options({"urls": URLS, "request": {"timeout": {"connect": 1.0, "read": 9.0}}}, {})
    assert cfg.request["timeout"] == {"connect": 1.0, "read": 9.0}


def test_invalid_request_fails_before_any_fetch():
    class RecordingHttp(HttpClientProtocol):
        calls = []

        def fetch(self, url, request_config):
            self.calls.append(url)

    http = RecordingHttp()
    with pytest.raises(ConfigurationError):
        Crawler.from_options({"urls": URLS, "request": {"timeout": "fast"}}, http_client=http)
    assert http.calls == []


def test_request_is_read_only():
    cfg = normalize_options({"urls": URLS, "request": {"timeout": 5, "headers": {"X": "1"}}}, {})
    with pytest.raises(TypeError):
        cfg.request["timeout"] = 1
    with pytest.raises(TypeError):
        cfg.request["headers"]["X"] = "2"
    assert cfg.request == {"timeout": 5, "headers": {"X": "1"}}
