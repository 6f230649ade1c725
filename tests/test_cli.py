import pytest

import scrape
from scraperlib.config import normalize_options
from scraperlib.errors import ConfigurationError


def test_build_options_from_args():
    args = scrape.parse_args(
        ["https://example.com/", "-r", "-d", "out", "--max-depth", "2", "-H", "X-Token: abc", "--no-subdirectories"]
    )
    options = scrape.build_options(args)
    cfg = normalize_options(options)
    assert cfg.recursive
    assert cfg.max_depth == 2
    assert cfg.subdirectories is None
    assert cfg.request["headers"]["X-Token"] == "abc"
    assert "Accept" in cfg.request["headers"]
    assert cfg.directory == "out"


def test_build_options_rejects_bad_header():
    args = scrape.parse_args(["https://example.com/", "-H", "no-colon"])
    with pytest.raises(ConfigurationError):
        scrape.build_options(args)


def test_main_reports_invalid_options(tmp_path):
    assert scrape.main(["https://example.com/", "--concurrency", "1", "--max-depth", "-1", "--manifest", str(tmp_path / "m.jsonl")]) == 2
