"""
Name-or-id resolution and the per-operation catalog cache.
"""

import re

import pytest

from provisioning.core.exceptions import NotFoundError, ProviderApiError
from provisioning.providers.resolver import CatalogCache, cached_catalog, catalog_scope, current_cache, resolve

CATALOG = [
    {"id": "10", "name": "Ubuntu", "version": "22.04"},
    {"id": "11", "name": "Debian", "version": "12"},
]


def labels(entry):
    return (entry["id"], entry["name"], f"{entry['name']} {entry['version']}")


class Recorder:
    def __init__(self, by_id_result=None, by_id_error=None):
        self.by_id_calls: list[str] = []
        self.catalog_calls = 0
        self.by_id_result = by_id_result
        self.by_id_error = by_id_error

    async def by_id(self, search):
        self.by_id_calls.append(search)
        if self.by_id_error is not None:
            raise self.by_id_error
        return self.by_id_result

    async def catalog(self):
        self.catalog_calls += 1
        return CATALOG


async def run(recorder: Recorder, search: str, **kwargs):
    return await resolve(
        search,
        by_id=recorder.by_id,
        catalog=recorder.catalog,
        labels=labels,
        not_found="Image not found",
        search_key="image",
        **kwargs,
    )


class TestResolve:
    async def test_numeric_search_resolved_by_id(self):
        recorder = Recorder(by_id_result={"id": "99", "name": "Direct"})
        found = await run(recorder, "99")
        assert found["name"] == "Direct"
        assert recorder.by_id_calls == ["99"]
        assert recorder.catalog_calls == 0

    async def test_vendor_404_falls_through_to_catalog(self):
        recorder = Recorder(by_id_error=ProviderApiError("Not found", code=404))
        found = await run(recorder, "11")
        assert found["name"] == "Debian"
        assert recorder.catalog_calls == 1

    async def test_other_vendor_errors_propagate(self):
        recorder = Recorder(by_id_error=ProviderApiError("Boom", code=500))
        with pytest.raises(ProviderApiError):
            await run(recorder, "11")
        assert recorder.catalog_calls == 0

    async def test_non_id_search_skips_by_id(self):
        recorder = Recorder()
        found = await run(recorder, "Ubuntu 22.04")
        assert found["id"] == "10"
        assert recorder.by_id_calls == []

    async def test_custom_id_pattern(self):
        recorder = Recorder(by_id_result={"id": "linode/debian12", "name": "Debian 12"})
        found = await run(recorder, "linode/debian12", id_pattern=re.compile(r"[a-z]+/[a-z0-9\-\.]+"))
        assert found["name"] == "Debian 12"

    async def test_labels_match_exactly(self):
        recorder = Recorder()
        with pytest.raises(NotFoundError) as exc_info:
            await run(recorder, "ubuntu")
        assert exc_info.value.message == "Image not found"
        assert exc_info.value.data == {"image": "ubuntu"}


class TestCatalogCache:
    async def test_fetches_once_per_key(self):
        calls = []

        async def fetch():
            calls.append(1)
            return CATALOG

        with catalog_scope() as cache:
            first = await cached_catalog("templates", fetch)
            second = await cached_catalog("templates", fetch)
            await cached_catalog(("templates", "kvm"), fetch)

        assert first is second
        assert len(calls) == 2
        assert cache.fetches == 2
        assert "templates" in cache and len(cache) == 2

    async def test_scopes_do_not_share_entries(self):
        with catalog_scope() as outer:
            await outer.get_or_fetch("plans", _empty)
            with catalog_scope() as inner:
                assert "plans" not in inner
                assert current_cache() is inner
            assert current_cache() is outer

    def test_outside_scope_gets_fresh_cache(self):
        assert isinstance(current_cache(), CatalogCache)
        assert current_cache() is not current_cache()


async def _empty():
    return []
