"""Tests for the single-flight profile cache."""

import asyncio

from profile_cache import ProfileCache

from fakes import EMPLOYER, WORKER, FakeApi


def test_concurrent_lookups_for_one_address_issue_one_request():
    api = FakeApi(names={EMPLOYER: "Acme"})
    cache = ProfileCache(api)

    async def scenario():
        api.gate = asyncio.Event()
        tasks = [asyncio.ensure_future(cache.get(EMPLOYER)) for _ in range(4)]
        tasks.append(asyncio.ensure_future(cache.get(EMPLOYER.lower())))
        tasks.append(asyncio.ensure_future(cache.get(EMPLOYER.upper().replace("0X", "0x"))))
        await asyncio.sleep(0)
        api.gate.set()
        return await asyncio.gather(*tasks)

    results = asyncio.run(scenario())

    assert api.exists_calls == 1
    assert api.get_calls == 1
    assert cache.lookup_count == 1
    assert {r.display_name for r in results} == {"Acme"}


def test_resolved_profiles_are_served_from_cache():
    api = FakeApi(names={EMPLOYER: "Acme"})
    cache = ProfileCache(api)

    async def scenario():
        first = await cache.get(EMPLOYER)
        second = await cache.get(EMPLOYER.lower())
        return first, second

    first, second = asyncio.run(scenario())

    assert first is second
    assert api.exists_calls == 1
    assert cache.peek(EMPLOYER).display_name == "Acme"
    assert len(cache) == 1


def test_failed_lookup_is_not_cached_and_leaves_no_inflight_marker():
    api = FakeApi(names={WORKER: "Bo"})
    api.failing.add(WORKER.lower())
    cache = ProfileCache(api)

    async def scenario():
        failed = await cache.get(WORKER)
        assert cache._inflight == {}
        api.failing.clear()
        recovered = await cache.get(WORKER)
        return failed, recovered

    failed, recovered = asyncio.run(scenario())

    assert failed is None
    assert recovered.display_name == "Bo"
    assert cache.lookup_count == 2


def test_unknown_address_falls_back_to_label():
    api = FakeApi()
    cache = ProfileCache(api)

    async def scenario():
        return (
            await cache.display_name(EMPLOYER),
            await cache.display_name(EMPLOYER, "Unknown Employer"),
            await cache.display_name(None, "Unknown Worker"),
        )

    names = asyncio.run(scenario())

    assert names == ("Unknown", "Unknown Employer", "Unknown Worker")
    assert cache.peek(EMPLOYER) is None
    # not-found results are retried on the next call
    assert api.exists_calls == 2
