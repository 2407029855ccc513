import pytest
import requests
from unittest.mock import MagicMock
from core.errors import TileFetchError
from core.settings import MapSettings
from loaders.tiles import TileCache, TileStore, tile_url

URL = "http://files/Shajra%20Parcha/Yazman/4%20DNB/17/93456/54321.png"
PNG = b"\x89PNG\r\n\x1a\n tile"


def ok_response(content=PNG, content_type="image/png"):
    response = MagicMock()
    response.status_code = 200
    response.content = content
    response.headers = {"Content-Type": content_type}
    return response


def status_response(code):
    response = MagicMock()
    response.status_code = code
    response.content = b"not found"
    response.headers = {"Content-Type": "text/html"}
    return response


@pytest.fixture
def settings():
    return MapSettings(retry_min_wait_seconds=0, retry_max_wait_seconds=0)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "tiles.db")


@pytest.fixture
def session():
    session = MagicMock()
    session.get.return_value = ok_response()
    return session


@pytest.fixture
def cache(db_path, settings, session):
    return TileCache(store=TileStore(db_path), settings=settings, session=session)


def test_tile_url_quotes_region_ids():
    url = tile_url("http://files/", ["Shajra Parcha", "Yazman", "4 DNB"], 17, 93456, 54321)
    assert url == URL


def test_second_lookup_is_served_from_cache(cache, session):
    """Two lookups of the same URL reach the network once."""
    assert cache.get_or_fetch(URL) == PNG
    assert cache.get_or_fetch(URL) == PNG
    assert session.get.call_count == 1


def test_cache_survives_restart(cache, db_path, settings):
    cache.get_or_fetch(URL)

    offline = MagicMock()
    offline.get.side_effect = requests.ConnectionError("offline")
    reopened = TileCache(store=TileStore(db_path), settings=settings, session=offline)

    assert reopened.get_or_fetch(URL) == PNG
    offline.get.assert_not_called()


def test_error_status_raises_and_is_not_cached(cache, session):
    session.get.return_value = status_response(404)

    with pytest.raises(TileFetchError) as exc_info:
        cache.get_or_fetch(URL)
    assert exc_info.value.status == 404
    assert exc_info.value.url == URL
    assert cache.stats()["tiles"] == 0


def test_empty_body_raises(cache, session):
    session.get.return_value = ok_response(content=b"")
    with pytest.raises(TileFetchError):
        cache.get_or_fetch(URL)


def test_connection_errors_are_retried(cache, session, settings):
    session.get.side_effect = requests.ConnectionError("refused")

    with pytest.raises(TileFetchError):
        cache.get_or_fetch(URL)
    assert session.get.call_count == settings.fetch_attempts


def test_retry_recovers_from_transient_failure(cache, session):
    session.get.side_effect = [requests.Timeout("slow"), ok_response()]
    assert cache.get_or_fetch(URL) == PNG
    assert session.get.call_count == 2


def test_error_status_is_not_retried(cache, session):
    session.get.return_value = status_response(500)
    with pytest.raises(TileFetchError):
        cache.get_or_fetch(URL)
    assert session.get.call_count == 1


def test_resolve_falls_back_to_origin(cache, session):
    session.get.return_value = status_response(503)

    result = cache.resolve(URL)
    assert result.data is None
    assert result.url == URL

    # The failure was not remembered; the next lookup tries again
    session.get.return_value = ok_response()
    result = cache.resolve(URL)
    assert result.data == PNG
    assert not result.from_cache

    assert cache.resolve(URL).from_cache


def test_clear_and_stats(cache):
    cache.get_or_fetch(URL)
    cache.get_or_fetch(URL.replace("54321", "54322"))

    assert cache.stats() == {"tiles": 2, "bytes": 2 * len(PNG)}
    assert cache.clear() == 2
    assert cache.stats() == {"tiles": 0, "bytes": 0}


def test_store_overwrites_same_url(db_path):
    store = TileStore(db_path)
    store.set(URL, b"old")
    store.set(URL, b"new")
    assert store.get(URL) == b"new"
    assert store.stats()["tiles"] == 1
