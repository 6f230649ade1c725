from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol


@dataclass(frozen=True)
class FetchResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value or ""
        return ""

    @property
    def mime_type(self) -> str:
        return self.content_type.split(";")[0].strip().lower()

    @property
    def charset(self) -> Optional[str]:
        for part in self.content_type.split(";")[1:]:
            key, _, value = part.partition("=")
            if key.strip().lower() == "charset" and value.strip():
                return value.strip().strip("\"'")
        return None

    @property
    def size_bytes(self) -> int:
        return len(self.body)


class HttpClientProtocol(Protocol):
    def fetch(self, url: str, request_config: Mapping[str, Any]) -> FetchResponse: ...


class ResourceState(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    FETCHED = "fetched"
    FAILED = "failed"
    EXPANDING = "expanding"
    RESOLVED = "resolved"

    @property
    def terminal(self) -> bool:
        return self in (ResourceState.FETCHED, ResourceState.FAILED, ResourceState.RESOLVED)
