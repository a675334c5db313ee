"""Tests for server configuration.

These tests cover:
1. Default values
2. Environment variable loading
3. Validation of names, transports and retry limits
4. The process-wide configuration singleton
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from library_circulation.config import LibraryConfig, get_config, reset_config


class TestLibraryConfig:
    def test_default_configuration(self, monkeypatch, tmp_path):
        monkeypatch.delenv("LIBRARY_DATABASE_PATH")
        monkeypatch.chdir(tmp_path)
        config = LibraryConfig(_env_file=None)

        assert config.server_name == "library-circulation"
        assert config.server_version == "0.1.0"
        assert config.transport == "stdio"
        assert config.database_path == tmp_path / "data" / "library.db"
        assert config.transaction_max_retries == 3
        assert config.observability_enabled is False

    def test_environment_variable_loading(self, tmp_path):
        env_vars = {
            "LIBRARY_SERVER_NAME": "branch-library",
            "LIBRARY_DATABASE_PATH": str(tmp_path / "branch.db"),
            "LIBRARY_TRANSPORT": "streamable_http",
            "LIBRARY_HTTP_PORT": "9000",
            "LIBRARY_TRANSACTION_MAX_RETRIES": "7",
            "LIBRARY_LOG_LEVEL": "DEBUG",
        }

        with patch.dict(os.environ, env_vars):
            config = LibraryConfig(_env_file=None)

        assert config.server_name == "branch-library"
        assert config.database_path == tmp_path / "branch.db"
        assert config.transport == "streamable_http"
        assert config.http_port == 9000
        assert config.transaction_max_retries == 7
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize("name", ["Library_Server", "library server", "ab", "x" * 51])
    def test_invalid_server_names(self, name):
        with pytest.raises(ValidationError):
            LibraryConfig(server_name=name, _env_file=None)

    def test_unknown_transport_rejected(self):
        with pytest.raises(ValidationError):
            LibraryConfig(transport="websocket", _env_file=None)

    def test_retries_must_be_positive(self):
        with pytest.raises(ValidationError):
            LibraryConfig(transaction_max_retries=0, _env_file=None)

    def test_database_directory_is_created(self, tmp_path):
        config = LibraryConfig(database_path=tmp_path / "nested" / "lib.db", _env_file=None)
        assert (tmp_path / "nested").is_dir()
        assert config.get_database_url() == f"sqlite:///{tmp_path / 'nested' / 'lib.db'}"


def test_config_singleton(tmp_path):
    first = get_config()
    assert get_config() is first
    assert first.database_path == tmp_path / "default.db"

    reset_config()
    assert get_config() is not first
