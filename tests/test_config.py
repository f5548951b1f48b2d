from __future__ import annotations

import asyncio

import pytest

from src import config


def test_defaults_load():
    cfg = config.load_settings()
    assert cfg.cache.prefix == "douban"
    assert cfg.cache.subject_ttl_s == 604800
    assert cfg.cache.failure_ttl_s == 1800
    assert cfg.fetch.max_redirects == 3
    assert cfg.retry.schedule_s == [2.0, 4.0, 8.0]
    assert cfg.fetch.base_url.startswith("https://movie.douban.com/")


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("RETRY_SCHEDULE_SEC", "1, 3")
    monkeypatch.setenv("CHALLENGE_SUBMIT_FALLBACKS", "https://a.test/c,,https://b.test/c")
    monkeypatch.setenv("CACHE_BACKEND", "Redis")
    monkeypatch.setenv("CACHE_ENABLED", "off")
    monkeypatch.setenv("PACER_JITTER_MAX_SEC", "2.5")

    cfg = config.load_settings()
    assert cfg.retry.schedule_s == [1.0, 3.0]
    assert cfg.challenge.submit_fallbacks == ["https://a.test/c", "https://b.test/c"]
    assert cfg.cache.backend == "redis"
    assert cfg.cache.enabled is False
    assert cfg.pacer.jitter_s[1] == 2.5


def test_bad_integer_is_reported(monkeypatch):
    monkeypatch.setenv("MAX_REDIRECTS", "three")
    with pytest.raises(ValueError, match="MAX_REDIRECTS"):
        config.load_settings()


def test_bad_schedule_is_reported(monkeypatch):
    monkeypatch.setenv("RETRY_SCHEDULE_SEC", "2,x")
    with pytest.raises(ValueError, match="RETRY_SCHEDULE_SEC"):
        config.load_settings()


def test_components_take_defaults_from_app_config():
    from src.fetch import cache as cache_mod
    from src.fetch import client, resolver, throttle
    from src.fetch import pow as pow_solver
    from src.fetch.cache import MemoryCacheStore
    from src.fetch.client import RedirectingFetcher
    from src.fetch.resolver import ChallengeResolver
    from src.fetch.subject import SubjectPageScraper
    from src.subjects import service

    cfg = config.app_config

    pacer = throttle.RequestPacer()
    assert pacer.min_interval_s == cfg.pacer.min_interval_s
    assert tuple(pacer.jitter_s) == tuple(cfg.pacer.jitter_s)

    assert client.FETCH_TIMEOUT_S == cfg.fetch.timeout_s
    assert client.MAX_REDIRECTS == cfg.fetch.max_redirects
    assert pow_solver.DEFAULT_DIFFICULTY == cfg.challenge.difficulty
    assert resolver.SUBJECT_BASE_URL == cfg.fetch.base_url
    assert cache_mod.CACHE_BACKEND == cfg.cache.backend

    fetcher = RedirectingFetcher()
    try:
        res = ChallengeResolver(fetcher)
        assert res.max_attempts == cfg.challenge.max_attempts
        assert res.difficulty == cfg.challenge.difficulty
        assert res.max_nonce == cfg.challenge.max_nonce
        assert res.timeout_s == cfg.challenge.timeout_s
        assert list(res.submit_fallbacks) == cfg.challenge.submit_fallbacks

        scraper = SubjectPageScraper(MemoryCacheStore(), fetcher=fetcher, pacer=pacer)
        assert scraper.cache_prefix == cfg.cache.prefix
        assert scraper.ttl_s == cfg.cache.subject_ttl_s

        details = service.SubjectDetailsService(scraper)
        assert details.failure_ttl_s == cfg.cache.failure_ttl_s
        assert list(details.schedule) == cfg.retry.schedule_s
    finally:
        asyncio.run(fetcher.aclose())
