import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

from .errors import ConfigurationError
from .resource import Resource


logger = logging.getLogger(__name__)


def resource_record(resource: Resource) -> Dict:
    response = resource.response
    return {
        "url": resource.url,
        "filename": resource.filename,
        "state": resource.state.value,
        "depth": resource.depth,
        "status": response.status if response else None,
        "content_type": response.content_type if response else None,
        "size_bytes": response.size_bytes if response else 0,
        "error": str(resource.error) if resource.error else None,
        "children": [child.url for child in resource.children],
    }


class ManifestWriter:
    """Writes one JSON line per resource of a crawl result."""

    def __init__(self, output_path: str, append: bool = False) -> None:
        self.output_path = output_path
        self._lock = threading.Lock()
        out_path = Path(self.output_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = out_path.open("a" if append else "w", encoding="utf-8")

    def write(self, record: Dict) -> None:
        line = json.dumps(record, ensure_ascii=False)
        with self._lock:
            self._fh.write(line + "\n")
            self._fh.flush()

    def write_result(self, result) -> int:
        for resource in result.resources:
            self.write(resource_record(resource))
        return len(result.resources)

    def close(self) -> None:
        with self._lock:
            if not self._fh.closed:
                self._fh.close()

    def __enter__(self) -> "ManifestWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class DirectoryWriter:
    """Saves fetched bodies under the crawl's output directory.

    Files land at ``<absolute_directory_path>/<resource.filename>``. Failed
    resources and resources without a body are skipped.
    """

    def __init__(self, absolute_directory_path: Optional[str]):
        if not absolute_directory_path:
            raise ConfigurationError("No output directory configured")
        self.root = Path(absolute_directory_path)

    def path_for(self, resource: Resource) -> Path:
        path = (self.root / resource.filename).resolve()
        if self.root.resolve() not in path.parents:
            raise ConfigurationError(f"Filename escapes output directory: {resource.filename!r}")
        return path

    def save(self, result) -> List[Path]:
        written: List[Path] = []
        for resource in result.resources:
            if resource.response is None or not resource.filename:
                continue
            path = self.path_for(resource)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(resource.response.body)
            written.append(path)
        logger.info("Saved %d files to %s", len(written), self.root)
        return written
