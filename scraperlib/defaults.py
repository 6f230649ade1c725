"""Default crawl options, overridden field-by-field by ``normalize_options``."""

DEFAULT_USER_AGENT = "site-scraper/1.0 (+https://example.com; contact: scraper@example.com)"

DEFAULTS = {
    "default_filename": "index.html",
    "sources": [
        {"selector": "img", "attr": "src"},
        {"selector": "img", "attr": "srcset"},
        {"selector": 'input[type="image"]', "attr": "src"},
        {"selector": "object", "attr": "data"},
        {"selector": "embed", "attr": "src"},
        {"selector": 'param[name="movie"]', "attr": "value"},
        {"selector": "script", "attr": "src"},
        {"selector": 'link[rel="stylesheet"]', "attr": "href"},
        {"selector": 'link[rel*="icon"]', "attr": "href"},
        {"selector": "video", "attr": "src"},
        {"selector": "video", "attr": "poster"},
        {"selector": "audio", "attr": "src"},
        {"selector": "source", "attr": "src"},
        {"selector": "source", "attr": "srcset"},
        {"selector": "track", "attr": "src"},
    ],
    "subdirectories": [
        {"directory": "images", "extensions": [".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico", ".bmp", ".avif"]},
        {"directory": "js", "extensions": [".js", ".mjs"]},
        {"directory": "css", "extensions": [".css"]},
        {"directory": "fonts", "extensions": [".woff", ".woff2", ".ttf", ".otf", ".eot"]},
    ],
    "request": {
        "headers": {
            "User-Agent": DEFAULT_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
            "Accept-Encoding": "gzip, deflate",
        },
        "timeout": 15.0,
        "retries": 2,
        "redirect": True,
    },
}
