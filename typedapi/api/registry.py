"""Route registry shared by the router and the OpenAPI generator.

Entries are appended while routes are registered and never modified
afterwards. Readers get a snapshot copy, so document synthesis can run
while registration continues.
"""

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from typedapi.api.options import RouteOptions

if TYPE_CHECKING:
    from typedapi.webhooks.registry import WebhookHandle


@dataclass(frozen=True)
class RouteInfo:
    """Everything known about one registered operation."""

    method: str
    path: str
    handler: Callable[..., Any]
    handler_name: str
    request_type: type[BaseModel] | None
    response_type: type | None
    options: RouteOptions = field(default_factory=RouteOptions)
    webhook: "WebhookHandle | None" = None


class ReadWriteLock:
    """Lock allowing many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the lock for reading."""
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the lock exclusively."""
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class RouteRegistry:
    """Append-only collection of ``RouteInfo`` entries.

    Construct one per API surface and pass it to the routers that
    populate it; nothing here is process-global.
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._routes: list[RouteInfo] = []

    def register(self, info: RouteInfo) -> None:
        """Append ``info`` under the write lock."""
        with self._lock.write():
            self._routes.append(info)

    def routes(self) -> list[RouteInfo]:
        """Snapshot of the registered routes, in registration order."""
        with self._lock.read():
            return list(self._routes)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._routes)
