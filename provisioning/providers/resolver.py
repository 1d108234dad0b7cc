"""
Name-or-id resolution against vendor catalogs.

``resolve`` tries a direct by-id lookup when the search looks like an id, falls
through to a bulk catalog scan on a vendor 404, and raises ``NotFoundError``
carrying the original search when nothing matches. Catalog listings are
memoized in the ``CatalogCache`` bound to the current provider operation.
"""

import re
from collections.abc import Awaitable, Callable, Hashable, Iterable
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, TypeVar

from provisioning.core.exceptions import NotFoundError, ProvisionError

T = TypeVar("T")

NUMERIC_ID = re.compile(r"^\d+$")


class CatalogCache:
    """Per-operation memo of catalog listings keyed by catalog type (and virtualization type)."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, Any] = {}
        self.fetches = 0

    async def get_or_fetch(self, key: Hashable, fetch: Callable[[], Awaitable[T]]) -> T:
        if key not in self._entries:
            self.fetches += 1
            self._entries[key] = await fetch()
        return self._entries[key]

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


_catalog_cache: ContextVar[CatalogCache | None] = ContextVar("catalog_cache", default=None)


@contextmanager
def catalog_scope():
    """Bind a fresh ``CatalogCache`` for the duration of one provider operation."""
    cache = CatalogCache()
    token = _catalog_cache.set(cache)
    try:
        yield cache
    finally:
        _catalog_cache.reset(token)


def current_cache() -> CatalogCache:
    cache = _catalog_cache.get()
    if cache is None:
        # Outside an operation nothing is shared: each lookup gets its own cache
        cache = CatalogCache()
    return cache


async def cached_catalog(key: Hashable, fetch: Callable[[], Awaitable[T]]) -> T:
    return await current_cache().get_or_fetch(key, fetch)


def is_vendor_not_found(exc: ProvisionError) -> bool:
    return exc.code == 404


async def resolve(
    search: str | int,
    *,
    catalog: Callable[[], Awaitable[Iterable[T]]],
    labels: Callable[[T], Iterable[str]],
    not_found: str,
    search_key: str,
    by_id: Callable[[str], Awaitable[T | None]] | None = None,
    id_pattern: re.Pattern[str] | None = None,
) -> T:
    """Find the catalog entry whose id or label matches ``search`` exactly.

    ``by_id`` is only tried when ``search`` matches ``id_pattern`` (numeric by
    default); a vendor 404 falls through to the catalog scan. ``labels`` yields
    every candidate label for an entry, e.g. ``name``, ``name version``,
    ``name version variant``.
    """
    search = str(search)

    if by_id is not None and _looks_like_id(search, id_pattern):
        try:
            found = await by_id(search)
        except ProvisionError as e:
            if not is_vendor_not_found(e):
                raise
            found = None
        if found is not None:
            return found

    for entry in await catalog():
        if search in {str(label) for label in labels(entry) if label is not None}:
            return entry

    raise NotFoundError(not_found, {search_key: search})


def _looks_like_id(search: str, id_pattern: re.Pattern[str] | None) -> bool:
    if id_pattern is None:
        return bool(NUMERIC_ID.match(search.strip()))
    return bool(id_pattern.search(search))
