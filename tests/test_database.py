"""
Tests for the Supabase client factory
"""

from unittest.mock import MagicMock, patch

import pytest

from scheduling_engine import database


@pytest.fixture(autouse=True)
def clear_clients():
    database.close_all_clients()
    yield
    database.close_all_clients()


@pytest.fixture
def credentials(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")


def test_missing_credentials(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)

    with pytest.raises(ValueError):
        database.get_scheduling_client()


def test_client_cached_per_schema(credentials):
    with patch.object(database, "create_client", side_effect=lambda *args, **kwargs: MagicMock()) as create_client:
        first = database.get_scheduling_client()
        second = database.get_scheduling_client("scheduling")
        public = database.get_scheduling_client("public")

    assert first is second
    assert public is not first
    assert create_client.call_count == 2
    url, key = create_client.call_args_list[0].args
    assert (url, key) == ("https://example.supabase.co", "service-key")
    options = create_client.call_args_list[0].kwargs["options"]
    assert options.schema == "scheduling"


def test_store_session_installed(credentials):
    client = MagicMock()
    with patch.object(database, "create_client", return_value=client):
        database.get_scheduling_client()

    session = client._postgrest.session
    assert session.timeout.read == database.SUPABASE_TIMEOUT_SECONDS
    session.close()
