"""
Tests for the version catalog: TTL cache, upstream sources, local profiles
and the merged listing.
"""

import asyncio
import json

import httpx
import pytest

from gamedeck.catalog.cache import CatalogCache
from gamedeck.catalog.models import VersionCatalogEntry
from gamedeck.catalog.profiles import DEFAULT_PROFILES, LocalProfileStore
from gamedeck.catalog.service import CatalogService
from gamedeck.catalog.sources import (
    MOJANG_VERSION_MANIFEST_URL,
    PAPER_PROJECT_URL,
    fetch_paper,
    fetch_vanilla,
    version_key,
)
from gamedeck.errors import CatalogEntryNotFound
from gamedeck.jobs.models import JobKind, JobStatus


def _entry(entry_id: str, group: str, version: str, url: str = "https://dl.example/x.jar"):
    return VersionCatalogEntry(
        id=entry_id, source_group=group, version=version,
        download_url=url, filename=f"{entry_id}.jar",
    )


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _static_cache(name, entries):
    async def fetch():
        return list(entries)
    return CatalogCache(name, fetch, ttl_seconds=600)


class TestCatalogCache:

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            return [_entry("vanilla-1.20.4", "vanilla", "1.20.4")]

        cache = CatalogCache("vanilla", fetch, ttl_seconds=600)
        results = await asyncio.gather(*(cache.get() for _ in range(8)))
        assert calls == 1
        assert all(len(result) == 1 for result in results)

    @pytest.mark.asyncio
    async def test_refetches_after_ttl(self):
        calls = 0
        clock = FakeClock()

        async def fetch():
            nonlocal calls
            calls += 1
            return [_entry(f"vanilla-1.{calls}", "vanilla", f"1.{calls}")]

        cache = CatalogCache("vanilla", fetch, ttl_seconds=60, clock=clock)
        await cache.get()
        clock.now = 59
        await cache.get()
        assert calls == 1
        clock.now = 61
        entries = await cache.get()
        assert calls == 2
        assert entries[0].id == "vanilla-1.2"

    @pytest.mark.asyncio
    async def test_empty_fetch_keeps_previous_entries(self):
        responses = [[_entry("paper-1.20.4", "paper", "1.20.4")], [], []]
        clock = FakeClock()

        async def fetch():
            return responses.pop(0)

        cache = CatalogCache("paper", fetch, ttl_seconds=60, clock=clock)
        assert len(await cache.get()) == 1
        clock.now = 120
        assert [e.id for e in await cache.get()] == ["paper-1.20.4"]
        # Still stale, so the next read tries upstream again.
        assert [e.id for e in await cache.get()] == ["paper-1.20.4"]
        assert responses == []

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            return [_entry("vanilla-1.20.4", "vanilla", "1.20.4")]

        cache = CatalogCache("vanilla", fetch, ttl_seconds=600)
        await cache.get()
        cache.invalidate()
        await cache.get()
        assert calls == 2


class TestSources:

    def test_version_key_orders_numerically(self):
        versions = ["1.9", "1.20.4", "1.20", "snapshot"]
        assert sorted(versions, key=version_key, reverse=True) == ["1.20.4", "1.20", "1.9", "snapshot"]

    @pytest.mark.asyncio
    async def test_vanilla_keeps_releases_with_server_jar(self):
        manifest = {"versions": [
            {"id": "24w10a", "type": "snapshot", "url": "https://meta.example/24w10a.json",
             "releaseTime": "2024-03-06T10:00:00+00:00"},
            {"id": "1.20.4", "type": "release", "url": "https://meta.example/1.20.4.json",
             "releaseTime": "2023-12-07T12:00:00+00:00"},
            {"id": "1.2.5", "type": "release", "url": "https://meta.example/1.2.5.json",
             "releaseTime": "2012-03-29T22:00:00+00:00"},
        ]}
        details = {
            "/1.20.4.json": {"downloads": {"server": {"url": "https://dl.example/server-1.20.4.jar"}}},
            "/1.2.5.json": {"downloads": {}},
        }

        def handler(request):
            if str(request.url) == MOJANG_VERSION_MANIFEST_URL:
                return httpx.Response(200, json=manifest)
            return httpx.Response(200, json=details[request.url.path])

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            entries = await fetch_vanilla(client)

        assert [e.id for e in entries] == ["vanilla-1.20.4"]
        assert entries[0].download_url == "https://dl.example/server-1.20.4.jar"
        assert entries[0].filename == "vanilla-1.20.4.jar"

    @pytest.mark.asyncio
    async def test_paper_takes_latest_stable_builds(self):
        def handler(request):
            url = str(request.url)
            if url == PAPER_PROJECT_URL:
                return httpx.Response(200, json={"versions": ["1.19.4", "1.20.4", "1.21-pre1"]})
            if url.endswith("/versions/1.20.4"):
                return httpx.Response(200, json={"builds": [494, 496]})
            if url.endswith("/versions/1.19.4"):
                return httpx.Response(200, json={"builds": [550]})
            if "/builds/" in url:
                build = url.rsplit("/", 1)[1]
                version = url.split("/versions/")[1].split("/")[0]
                return httpx.Response(200, json={
                    "time": "2024-01-01T00:00:00Z",
                    "downloads": {"application": {"name": f"paper-{version}-{build}.jar"}},
                })
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            entries = await fetch_paper(client, limit=5)

        assert [e.id for e in entries] == ["paper-1.20.4", "paper-1.19.4"]
        assert entries[0].filename == "paper-1.20.4-496.jar"
        assert entries[0].download_url.endswith("/versions/1.20.4/builds/496/downloads/paper-1.20.4-496.jar")

    @pytest.mark.asyncio
    async def test_upstream_errors_yield_empty_list(self):
        handler = lambda request: httpx.Response(503)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await fetch_vanilla(client) == []
            assert await fetch_paper(client) == []


class TestLocalProfileStore:

    def test_defaults_without_file(self, tmp_path):
        store = LocalProfileStore(tmp_path)
        assert [e.id for e in store.load()] == [e.id for e in DEFAULT_PROFILES]

    def test_upsert_replaces_by_id(self, tmp_path):
        store = LocalProfileStore(tmp_path)
        store.upsert(_entry("spigot-1.20.4", "spigot", "1.20.4"))
        store.upsert(_entry("Spigot-1.20.4", "spigot", "1.20.4", url="https://dl.example/new.jar"))

        matching = [e for e in store.load() if e.id.lower() == "spigot-1.20.4"]
        assert len(matching) == 1
        assert matching[0].download_url == "https://dl.example/new.jar"

    def test_downloaded_flag_is_not_persisted(self, tmp_path):
        store = LocalProfileStore(tmp_path)
        store.save([_entry("spigot-1.20.4", "spigot", "1.20.4").model_copy(update={"downloaded": True})])
        raw = json.loads((tmp_path / "profiles.json").read_text())
        assert "downloaded" not in raw[0]


class TestCatalogService:

    def _service(self, tmp_path, vanilla=(), paper=()):
        return CatalogService(
            tmp_path, client=None,
            caches=[_static_cache("vanilla", vanilla), _static_cache("paper", paper)],
        )

    @pytest.mark.asyncio
    async def test_upstream_overrides_local_by_id(self, tmp_path):
        upstream = _entry("vanilla-1.20.4", "vanilla", "1.20.4", url="https://dl.example/fresh.jar")
        service = self._service(tmp_path, vanilla=[upstream])

        entries = {e.id: e for e in await service.list_entries()}
        assert entries["vanilla-1.20.4"].download_url == "https://dl.example/fresh.jar"
        assert "vanilla-1.19.4" in entries

    @pytest.mark.asyncio
    async def test_sorted_by_group_then_version_descending(self, tmp_path):
        service = self._service(
            tmp_path,
            vanilla=[_entry("vanilla-1.9", "vanilla", "1.9"), _entry("vanilla-1.21", "vanilla", "1.21")],
            paper=[_entry("paper-1.21", "paper", "1.21")],
        )
        ordered = [e.id for e in await service.list_entries()]
        assert ordered == [
            "paper-1.21", "paper-1.20.4",
            "vanilla-1.21", "vanilla-1.20.4", "vanilla-1.19.4", "vanilla-1.9",
        ]

    @pytest.mark.asyncio
    async def test_downloaded_reflects_disk_on_every_read(self, tmp_path):
        service = self._service(tmp_path)
        entry = await service.get_entry("vanilla-1.20.4")
        assert entry.downloaded is False

        jar = service.jar_path(entry)
        jar.parent.mkdir(parents=True)
        jar.write_bytes(b"jar")
        assert (await service.get_entry("VANILLA-1.20.4")).downloaded is True

        jar.unlink()
        assert (await service.get_entry("vanilla-1.20.4")).downloaded is False

    @pytest.mark.asyncio
    async def test_unknown_entry(self, tmp_path):
        with pytest.raises(CatalogEntryNotFound):
            await self._service(tmp_path).get_entry("forge-1.0")

    def test_download_requires_url(self, tmp_path):
        entry = VersionCatalogEntry(id="spigot-1.20.4", source_group="spigot", version="1.20.4",
                                    filename="spigot-1.20.4.jar")
        with pytest.raises(ValueError):
            self._service(tmp_path).download_work(entry)

    @pytest.mark.asyncio
    async def test_download_job_writes_jar(self, tmp_path, registry, wait_terminal):
        payload = b"x" * 200_000
        handler = lambda request: httpx.Response(200, content=payload)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            service = CatalogService(tmp_path, client, caches=[])
            entry = await service.get_entry("paper-1.20.4")
            job_id = registry.submit(JobKind.PROFILE_DOWNLOAD, entry.id, service.download_work(entry))
            snapshot = await wait_terminal(lambda: registry.get_status(job_id))

        assert snapshot.status is JobStatus.COMPLETED
        assert service.jar_path(entry).read_bytes() == payload
        assert (await service.get_entry("paper-1.20.4")).downloaded is True
