"""Config parsing and validation."""

import pytest

from config import parse_source_list
from fakes import make_config


def test_parse_source_list_defaults_column_and_skips_blanks():
    assert parse_source_list("app_fixtures:gw, fixtures ,, test_api_fixtures:test_gw") == [
        ("app_fixtures", "gw"),
        ("fixtures", "gw"),
        ("test_api_fixtures", "test_gw"),
    ]
    assert parse_source_list("") == []
    assert parse_source_list(None) == []


def test_config_parses_sources_from_spec():
    config = make_config(fixture_sources_spec="a:gw,b:matchday")
    assert config.fixture_sources == [("a", "gw"), ("b", "matchday")]


def test_config_requires_credentials():
    with pytest.raises(ValueError, match="SUPABASE_URL is required"):
        make_config(supabase_url="")
    with pytest.raises(ValueError, match="FOOTBALL_DATA_API_KEY is required"):
        make_config(football_data_api_key="")


def test_config_requires_a_source():
    with pytest.raises(ValueError, match="FIXTURE_SOURCES"):
        make_config(fixture_sources_spec=" , ")


def test_push_enabled_needs_app_id_and_key():
    assert make_config().push_enabled
    assert not make_config(onesignal_rest_api_key="").push_enabled
