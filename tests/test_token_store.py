"""Tests for the persisted session token store."""

from token_store import TokenStore


def test_tokens_survive_reopening_the_store(tmp_path):
    path = tmp_path / "nested" / "session.db"
    TokenStore(path).save_tokens("access-1", "refresh-1")

    reopened = TokenStore(path)

    assert reopened.access_token == "access-1"
    assert reopened.refresh_token == "refresh-1"


def test_saving_only_an_access_token_keeps_the_refresh_token(tmp_path):
    store = TokenStore(tmp_path / "session.db")
    store.save_tokens("access-1", "refresh-1")

    store.save_tokens("access-2")

    assert store.access_token == "access-2"
    assert store.refresh_token == "refresh-1"


def test_clear_forgets_both_tokens(tmp_path):
    store = TokenStore(tmp_path / "session.db")
    store.save_tokens("access-1", "refresh-1")
    store.set("theme", "dark")

    store.clear()

    assert store.access_token is None
    assert store.refresh_token is None
    assert store.get("theme") == "dark"
