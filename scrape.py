#!/usr/bin/env python3
import argparse
import logging
import signal
import sys

from scraperlib.defaults import DEFAULT_USER_AGENT
from scraperlib.engine import Crawler
from scraperlib.errors import ConfigurationError
from scraperlib.prometheus_exporter import PrometheusExporter
from scraperlib.storage import DirectoryWriter, ManifestWriter


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Download web pages together with their images, scripts and stylesheets.")
    parser.add_argument("urls", nargs="+", help="One or more URLs to scrape.")
    parser.add_argument("-d", "--directory", default=None, help="Directory to save fetched files to.")
    parser.add_argument("--default-filename", default=None, help="Filename for pages whose URL names none.")
    parser.add_argument("-r", "--recursive", action="store_true", help="Follow <a href> links to other pages.")
    parser.add_argument("--max-depth", type=int, default=None, help="Maximum depth of any resource from its seed.")
    parser.add_argument("--max-recursive-depth", type=int, default=None, help="Maximum number of followed links.")
    parser.add_argument("--allowed-domain", dest="allowed_domains", nargs="+", default=None, help="Only fetch discovered URLs on these domains.")
    parser.add_argument("--concurrency", type=int, default=8, help="Number of concurrent requests.")
    parser.add_argument("--delay", type=float, default=0.0, help="Per-host politeness delay in seconds.")
    parser.add_argument("--timeout", type=float, default=None, help="HTTP read timeout in seconds.")
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header to send.")
    parser.add_argument("-H", "--header", dest="headers", action="append", default=[], help="Extra request header as 'Name: value'.")
    parser.add_argument("--no-subdirectories", action="store_true", help="Save every file in the output directory itself.")
    parser.add_argument("--manifest", default="scrape.jsonl", help="Path to the JSONL manifest of scraped resources.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase logging verbosity.")
    parser.add_argument("--metrics-interval", type=float, default=10.0, help="Seconds between progress logs (0 to disable).")
    parser.add_argument("--prometheus-port", type=int, default=None, help="Serve Prometheus metrics on this port.")
    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> dict:
    headers = {"User-Agent": args.user_agent}
    for header in args.headers:
        if ":" not in header:
            raise ConfigurationError(f"Invalid header (no colon): {header!r}")
        name, value = header.split(":", 1)
        headers[name.strip()] = value.strip()
    request = {"headers": headers}
    if args.timeout is not None:
        request["timeout"] = args.timeout

    options = {
        "urls": args.urls,
        "recursive": args.recursive,
        "request": request,
        "request_concurrency": max(1, args.concurrency),
        "delay_seconds": max(0.0, args.delay),
        "metrics_interval": max(0.0, args.metrics_interval),
    }
    if args.directory:
        options["directory"] = args.directory
    if args.default_filename:
        options["default_filename"] = args.default_filename
    if args.max_depth is not None:
        options["max_depth"] = args.max_depth
    if args.max_recursive_depth is not None:
        options["max_recursive_depth"] = args.max_recursive_depth
    if args.allowed_domains:
        options["allowed_domains"] = args.allowed_domains
    if args.no_subdirectories:
        options["subdirectories"] = None
    return options


def main(argv=None) -> int:
    args = parse_args(argv)
    log_level = logging.WARNING
    if args.verbose == 1:
        log_level = logging.INFO
    elif args.verbose >= 2:
        log_level = logging.DEBUG
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(threadName)s %(message)s",
    )

    try:
        crawler = Crawler.from_options(build_options(args))
    except ConfigurationError as exc:
        logging.error("Invalid options: %s", exc)
        return 2

    signal.signal(signal.SIGINT, lambda *_: crawler.cancel())

    exporter = None
    if args.prometheus_port:
        exporter = PrometheusExporter(crawler.metrics, port=args.prometheus_port)
        exporter.start()
        logging.info("Prometheus metrics available at http://0.0.0.0:%d/metrics", args.prometheus_port)

    try:
        result = crawler.run()
    finally:
        if exporter:
            exporter.stop()

    with ManifestWriter(args.manifest) as manifest:
        manifest.write_result(result)
    if crawler.config.absolute_directory_path:
        DirectoryWriter(crawler.config.absolute_directory_path).save(result)

    for resource in result.failed:
        logging.warning("Failed: %s (%s)", resource.url, resource.error)
    return 1 if result.cancelled else 0


if __name__ == "__main__":
    sys.exit(main())
