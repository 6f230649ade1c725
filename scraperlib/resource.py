from typing import List, Optional

from .types import FetchResponse, ResourceState


class Resource:
    """One URL-addressable unit of a crawl.

    ``url`` is the resource's identity and never changes. ``filename`` is the
    local path assigned at creation, relative to the output directory.
    ``depth`` counts hops from the nearest seed and ``link_depth`` only the
    hops made through link-following rules.
    """

    def __init__(
        self,
        url: str,
        filename: Optional[str] = None,
        depth: int = 0,
        link_depth: int = 0,
    ):
        self.url = url
        self.filename = filename
        self.depth = depth
        self.link_depth = link_depth
        self.children: List["Resource"] = []
        self.parents: List["Resource"] = []
        self.response: Optional[FetchResponse] = None
        self.state = ResourceState.PENDING
        self.error: Optional[Exception] = None

    def get_filename(self) -> Optional[str]:
        return self.filename

    def link_child(self, child: "Resource") -> bool:
        if any(existing is child for existing in self.children):
            return False
        self.children.append(child)
        child.parents.append(self)
        return True

    def has_ancestor(self, other: "Resource") -> bool:
        """True when ``other`` is this resource or one of its ancestors."""
        stack = [self]
        seen = set()
        while stack:
            current = stack.pop()
            if current is other:
                return True
            if id(current) in seen:
                continue
            seen.add(id(current))
            stack.extend(current.parents)
        return False

    @property
    def failed(self) -> bool:
        return self.state is ResourceState.FAILED

    def __repr__(self) -> str:
        return f"Resource(url={self.url!r}, filename={self.filename!r}, state={self.state.value})"
