"""Tests for server and fetch URL helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from repocheckout.errors import ConfigurationError
from repocheckout.git.urls import (
    DEFAULT_API_URL,
    get_fetch_url,
    get_origin,
    get_server_api_url,
    get_server_url,
    is_ghes,
)
from repocheckout.models.settings import SyncSettings


def make_settings(**kwargs) -> SyncSettings:
    values = {
        "repository_owner": "octo",
        "repository_name": "hello",
        "repository_path": Path("/tmp/work"),
    }
    values.update(kwargs)
    return SyncSettings(**values)


class TestServerUrl:
    """Tests for server URL resolution."""

    def test_default_is_github(self):
        assert get_server_url().hostname == "github.com"

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv("GITHUB_SERVER_URL", "https://git.example.com")
        assert get_server_url().hostname == "git.example.com"

    def test_explicit_url_wins(self, monkeypatch):
        monkeypatch.setenv("GITHUB_SERVER_URL", "https://git.example.com")
        assert get_server_url("https://other.example.com").hostname == "other.example.com"

    def test_missing_scheme_rejected(self):
        with pytest.raises(ConfigurationError):
            get_server_url("github.com")

    def test_origin_keeps_port(self):
        assert get_origin("https://ghe.local:8443/some/path") == "https://ghe.local:8443"

    def test_file_origin_keeps_path(self):
        assert get_origin("file:///srv/mirrors/") == "file:///srv/mirrors"


class TestFetchUrl:
    """Tests for the URL the repository is fetched from."""

    def test_https(self):
        assert get_fetch_url(make_settings()) == "https://github.com/octo/hello"

    def test_ssh_key_switches_to_ssh(self):
        settings = make_settings(ssh_key="-----BEGIN KEY-----")
        assert get_fetch_url(settings) == "git@github.com:octo/hello.git"

    def test_enterprise_server(self):
        settings = make_settings(server_url="https://ghe.example.com")
        assert get_fetch_url(settings) == "https://ghe.example.com/octo/hello"

    def test_owner_and_name_are_encoded(self):
        settings = make_settings(repository_owner="my org", repository_name="a/b")
        assert get_fetch_url(settings) == "https://github.com/my%20org/a%2Fb"

    def test_file_server(self):
        settings = make_settings(server_url="file:///srv/mirrors")
        assert get_fetch_url(settings) == "file:///srv/mirrors/octo/hello"

    def test_ssh_key_needs_a_host(self):
        settings = make_settings(server_url="file:///srv/mirrors", ssh_key="-----BEGIN KEY-----")
        with pytest.raises(ConfigurationError, match="without a host"):
            get_fetch_url(settings)


class TestApiUrl:
    """Tests for the REST API base URL."""

    def test_github(self):
        assert not is_ghes("https://github.com")
        assert not is_ghes("https://GitHub.com")
        assert get_server_api_url("https://github.com") == DEFAULT_API_URL

    def test_enterprise(self):
        assert is_ghes("https://ghe.example.com")
        assert get_server_api_url("https://ghe.example.com") == "https://ghe.example.com/api/v3"
