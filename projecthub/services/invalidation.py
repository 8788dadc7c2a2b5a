"""
services/invalidation.py
------------------------
View-invalidation signal.

Every mutating operation calls `invalidate()` with the listing/detail
paths whose rendered views are now stale, after its transaction has
committed. Listeners are registered once at startup: main.py subscribes a
PurgeHook when VIEW_PURGE_URL is set, otherwise no listener is registered
and `invalidate()` only logs.

Read endpoints additionally respond with Cache-Control: no-store, so the
listeners only have to cover caches outside this process.
"""

import asyncio
from typing import Callable, List, Optional, Set

import httpx

from projecthub.core.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[[str], None]

PROJECTS_PATH = "/projects"


def project_path(project_id: str) -> str:
    return f"{PROJECTS_PATH}/{project_id}"


class ViewInvalidator:

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def invalidate(self, *paths: str) -> None:
        for path in dict.fromkeys(paths):
            logger.debug("View invalidated", path=path)
            for listener in list(self._listeners):
                try:
                    listener(path)
                except Exception as exc:
                    # The write already committed; a failed purge must not
                    # turn it into an error response.
                    logger.error(
                        "Invalidation listener failed",
                        path=path,
                        error=str(exc),
                        exc_info=True,
                    )


class PurgeHook:
    """
    Listener that POSTs each stale path as {"path": ...} to an external
    purge endpoint (CDN purge, frontend revalidation route).

    Requests run as tasks on the running loop; `aclose()` waits for the
    ones still in flight.
    """

    def __init__(self, url: str, client: Optional[httpx.AsyncClient] = None) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=5.0)
        self._pending: Set[asyncio.Task] = set()

    def __call__(self, path: str) -> None:
        task = asyncio.get_running_loop().create_task(self._post(path))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _post(self, path: str) -> None:
        try:
            response = await self._client.post(self.url, json={"path": path})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("View purge failed", path=path, error=str(exc))

    async def aclose(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending)
        await self._client.aclose()


# Singleton, shared across all requests
view_invalidator = ViewInvalidator()
