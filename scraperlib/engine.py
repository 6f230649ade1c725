import functools
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from .config import CrawlConfig, normalize_options
from .errors import ExtractionError, FetchError
from .filenames import FilenameAssigner
from .metrics import Metrics, StatsLogger
from .net import HttpClient
from .parsing import SourcePipeline, UrlTools
from .rate import RateLimiter
from .resource import Resource
from .types import FetchResponse, HttpClientProtocol, ResourceState


# How often a running level of fetches checks for cancellation.
CANCEL_POLL_SECONDS = 0.1


class VisitedSet:
    """URLs already turned into a resource during one crawl."""

    def __init__(self):
        self._urls: Set[str] = set()
        self._lock = threading.Lock()

    def claim(self, url: str) -> bool:
        """Atomically mark ``url`` as visited. Only the first caller gets True."""
        with self._lock:
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)


@dataclass
class CrawlResult:
    seeds: List[Resource]
    resources: List[Resource]
    cancelled: bool = False
    _by_url: Dict[str, Resource] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_url = {r.url: r for r in self.resources}

    def get(self, url: str) -> Optional[Resource]:
        return self._by_url.get(url)

    @property
    def failed(self) -> List[Resource]:
        return [r for r in self.resources if r.state is ResourceState.FAILED]


class Crawler:
    def __init__(self, config: CrawlConfig, http_client: HttpClientProtocol | None = None):
        self.config = config
        self.http = http_client or HttpClient(config.request_concurrency)
        # The request configuration is bound once and shared by every fetch.
        self.make_request = functools.partial(self.http.fetch, request_config=config.request)
        self.pipeline = SourcePipeline(config.sources)
        self.filenames = FilenameAssigner(config.default_filename, config.subdirectories)
        self.rate = RateLimiter(config.delay_seconds)
        self.visited = VisitedSet()
        self.metrics = Metrics()
        self.stats_thread: Optional[StatsLogger] = None
        self._cancel = threading.Event()
        self._resources: Dict[str, Resource] = {}
        self.original_resources: List[Resource] = [self._add_seed(seed.url, seed.filename) for seed in config.urls]

    @classmethod
    def from_options(
        cls,
        options: Mapping[str, Any],
        http_client: HttpClientProtocol | None = None,
        defaults: Mapping[str, Any] | None = None,
    ) -> "Crawler":
        return cls(normalize_options(options, defaults), http_client=http_client)

    def _add_seed(self, url: str, filename: Optional[str]) -> Resource:
        key = UrlTools.visit_key(url)
        if not self.visited.claim(key):
            logging.debug("Duplicate seed %s", url)
            return self._resources[key]
        resource = Resource(url, filename=self.filenames.assign(url, filename, use_url=False))
        self._resources[key] = resource
        return resource

    def cancel(self) -> None:
        """Stop the crawl; ``run`` returns the resources finished so far."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _fetch(self, url: str) -> FetchResponse:
        self.rate.wait_turn(url)
        t0 = time.perf_counter()
        try:
            response = self.make_request(url)
        except FetchError:
            self.metrics.record_fetch(False, 0, (time.perf_counter() - t0) * 1000.0)
            raise
        except Exception as exc:
            # substituted clients may raise their own transport errors
            self.metrics.record_fetch(False, 0, (time.perf_counter() - t0) * 1000.0)
            raise FetchError(url, exc) from exc
        dt_ms = (time.perf_counter() - t0) * 1000.0
        if not 200 <= response.status < 300:
            self.metrics.record_fetch(False, response.size_bytes, dt_ms)
            raise FetchError(url, f"HTTP {response.status}", status=response.status)
        self.metrics.record_fetch(True, response.size_bytes, dt_ms)
        return response

    def _complete_fetch(self, resource: Resource, future: Future) -> None:
        try:
            resource.response = future.result()
        except FetchError as exc:
            resource.error = exc
            resource.state = ResourceState.FAILED
            logging.warning("Failed to fetch %s: %s", resource.url, exc.cause)
            return
        resource.state = ResourceState.FETCHED
        logging.debug("Fetched %s (%d bytes)", resource.url, resource.response.size_bytes)

    def _fetch_level(self, executor: ThreadPoolExecutor, level: List[Resource]) -> None:
        futures: Dict[Future, Resource] = {}
        for resource in level:
            if self.cancelled:
                break
            resource.state = ResourceState.FETCHING
            futures[executor.submit(self._fetch, resource.url)] = resource
        pending = set(futures)
        while pending:
            done, pending = wait(pending, timeout=CANCEL_POLL_SECONDS, return_when=FIRST_COMPLETED)
            for future in done:
                self._complete_fetch(futures[future], future)
            if self.cancelled:
                for future in pending:
                    future.cancel()
                    futures[future].state = ResourceState.PENDING
                return

    def _is_eligible(self, resource: Resource) -> bool:
        if resource.state is not ResourceState.FETCHED or resource.response is None:
            return False
        if self.config.max_depth is not None and resource.depth >= self.config.max_depth:
            return False
        return self.pipeline.supports(resource.response.mime_type)

    def _may_follow_links(self, resource: Resource) -> bool:
        limit = self.config.max_recursive_depth
        return limit is None or resource.link_depth < limit

    def _accepts(self, url: str) -> bool:
        if not UrlTools.is_allowed_domain(url, self.config.allowed_domains):
            return False
        return self.config.url_filter is None or bool(self.config.url_filter(url))

    def _expand(self, resource: Resource) -> List[Resource]:
        """Link ``resource`` to its references; return the newly created children."""
        if not self._is_eligible(resource):
            return []
        resource.state = ResourceState.EXPANDING
        try:
            references = self.pipeline.extract(resource.url, resource.response)
        except ExtractionError as exc:
            logging.warning("Could not extract references from %s: %s", resource.url, exc.cause)
            self.metrics.record_extraction_error()
            resource.error = exc
            resource.state = ResourceState.RESOLVED
            return []
        follow_links = self._may_follow_links(resource)
        created: List[Resource] = []
        for reference in references:
            via_link = self.config.is_link_rule(reference.rule_index)
            if via_link and not follow_links:
                continue
            url = UrlTools.normalize_link(resource.url, reference.raw)
            if url is None or not self._accepts(url):
                continue
            if not self.visited.claim(url):
                self.metrics.record_duplicate()
                existing = self._resources[url]
                # children never point back at an ancestor
                if not resource.has_ancestor(existing):
                    resource.link_child(existing)
                continue
            child = Resource(
                url,
                filename=self.filenames.assign(url),
                depth=resource.depth + 1,
                link_depth=resource.link_depth + (1 if via_link else 0),
            )
            self._resources[url] = child
            resource.link_child(child)
            created.append(child)
        resource.state = ResourceState.RESOLVED
        logging.debug("Resolved %s: %d references, %d new", resource.url, len(references), len(created))
        return created

    def _result(self) -> CrawlResult:
        resources = list(self._resources.values())
        seeds = list(self.original_resources)
        if self.cancelled:
            resources = [r for r in resources if r.state.terminal]
            for r in resources:
                r.children = [c for c in r.children if c.state.terminal]
                r.parents = [p for p in r.parents if p.state.terminal]
            seeds = [r for r in seeds if r.state.terminal]
        return CrawlResult(seeds=seeds, resources=resources, cancelled=self.cancelled)

    def run(self) -> CrawlResult:
        logging.info(
            "Starting crawl: %d seed URLs, recursive=%s, concurrency=%d",
            len(self.config.urls),
            self.config.recursive,
            self.config.request_concurrency,
        )
        if self.config.metrics_interval and self.config.metrics_interval > 0:
            self.stats_thread = StatsLogger(self.metrics, self.config.metrics_interval, logging.info)
            self.stats_thread.start()
        # Seeds first, then each level's children in discovery order.
        level = list({id(r): r for r in self.original_resources}.values())
        executor = ThreadPoolExecutor(max_workers=self.config.request_concurrency, thread_name_prefix="fetch")
        try:
            while level and not self.cancelled:
                self._fetch_level(executor, level)
                if self.cancelled:
                    break
                next_level: List[Resource] = []
                for resource in level:
                    next_level.extend(self._expand(resource))
                level = next_level
        finally:
            executor.shutdown(wait=not self.cancelled, cancel_futures=True)
            if self.stats_thread:
                self.stats_thread.stop()
        result = self._result()
        if result.cancelled:
            logging.info("Crawl cancelled. Resources finished: %d", len(result.resources))
        else:
            logging.info(
                "Finished. Resources: %d, failed: %d", len(result.resources), len(result.failed)
            )
        return result
