"""Tests for environment variable expansion and .env loading."""

import os

import pytest

from chunkexport.lib.env import expand_connection_options, expand_env_vars, load_env_file
from chunkexport.lib.errors import ConfigurationError


class TestExpandEnvVars:
    """Tests for expand_env_vars."""

    def test_braced_and_bare(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "localhost")
        monkeypatch.setenv("DB_PORT", "3306")
        assert expand_env_vars("${DB_HOST}:$DB_PORT") == "localhost:3306"

    def test_unset_left_as_written(self, monkeypatch):
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        assert expand_env_vars("${NOT_SET_ANYWHERE}") == "${NOT_SET_ANYWHERE}"


class TestExpandConnectionOptions:
    """Tests for expand_connection_options."""

    def test_strings_expanded_others_kept(self, monkeypatch):
        monkeypatch.setenv("DB_USER", "exporter")
        result = expand_connection_options({"user": "${DB_USER}", "port": 3306, "timeout": None})
        assert result == {"user": "exporter", "port": 3306, "timeout": None}

    def test_unset_braced_variable_names_the_field(self, monkeypatch):
        monkeypatch.delenv("DB_PASSWORD_MISSING", raising=False)
        with pytest.raises(ConfigurationError) as exc_info:
            expand_connection_options({"password": "${DB_PASSWORD_MISSING}"})

        assert exc_info.value.field == "connection.password"
        assert "DB_PASSWORD_MISSING" in str(exc_info.value)

    def test_literal_dollar_in_password_is_kept(self, monkeypatch):
        monkeypatch.delenv("word", raising=False)
        assert expand_connection_options({"password": "pa$$word"}) == {"password": "pa$$word"}


class TestLoadEnvFile:
    """Tests for load_env_file."""

    def test_loads_variables(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CHUNK_EXPORT_TEST_PASSWORD", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("CHUNK_EXPORT_TEST_PASSWORD=hunter2\n")

        assert load_env_file(env_file) is True
        assert os.environ["CHUNK_EXPORT_TEST_PASSWORD"] == "hunter2"
        monkeypatch.delenv("CHUNK_EXPORT_TEST_PASSWORD")

    def test_does_not_override_by_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CHUNK_EXPORT_TEST_USER", "from-shell")
        env_file = tmp_path / ".env"
        env_file.write_text("CHUNK_EXPORT_TEST_USER=from-file\n")

        load_env_file(env_file)
        assert os.environ["CHUNK_EXPORT_TEST_USER"] == "from-shell"

    def test_finds_env_in_working_directory(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CHUNK_EXPORT_TEST_HOST", raising=False)
        (tmp_path / ".env").write_text("CHUNK_EXPORT_TEST_HOST=db01\n")
        monkeypatch.chdir(tmp_path)

        assert load_env_file() is True
        assert os.environ["CHUNK_EXPORT_TEST_HOST"] == "db01"
        monkeypatch.delenv("CHUNK_EXPORT_TEST_HOST")

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_env_file(tmp_path / "nope.env")
        assert exc_info.value.field == "env_file"
