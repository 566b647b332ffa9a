"""
Tests for ssrloader.app_config — typed dev-server configuration.

Covers: defaults, from_dict / to_dict, JSON files, env-var overlays,
merge semantics, and validation.
"""

import json
from unittest.mock import patch

import pytest

from ssrloader.app_config import (
    LogFormat,
    LogLevel,
    ServerConfig,
    ValidationError,
    _ENV_TO_FIELD,
    load_config,
)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

class TestDefaults:

    def test_defaults(self):
        cfg = ServerConfig()
        assert cfg.root == "."
        assert cfg.entry == "/entry_server.py"
        assert cfg.host == "127.0.0.1"
        assert cfg.port == 3000
        assert cfg.watch is True
        assert cfg.package_dirs == ["__pypackages__"]
        assert cfg.log_format == LogFormat.TEXT.value

    def test_package_dirs_not_shared(self):
        a, b = ServerConfig(), ServerConfig()
        a.package_dirs.append("vendor")
        assert b.package_dirs == ["__pypackages__"]

    def test_defaults_validate(self, tmp_path):
        assert ServerConfig(root=str(tmp_path)).is_valid()


# ---------------------------------------------------------------------------
# Dict / file I/O
# ---------------------------------------------------------------------------

class TestDictIO:

    def test_from_dict(self):
        cfg = ServerConfig.from_dict({"port": 8080, "debug": True, "package_dirs": "a, b"})
        assert cfg.port == 8080
        assert cfg.debug is True
        assert cfg.package_dirs == ["a", "b"]

    def test_from_dict_coerces_strings(self):
        cfg = ServerConfig.from_dict({"port": "9000", "watch": "false", "poll_interval": "0.5"})
        assert cfg.port == 9000
        assert cfg.watch is False
        assert cfg.poll_interval == 0.5

    def test_int_poll_interval_becomes_float(self):
        cfg = ServerConfig.from_dict({"poll_interval": 2})
        assert isinstance(cfg.poll_interval, float)

    def test_unknown_keys_ignored(self, caplog):
        cfg = ServerConfig.from_dict({"nonsense": 1})
        assert not hasattr(cfg, "nonsense")
        assert "Ignoring unknown config key 'nonsense'" in caplog.text

    def test_to_dict_round_trip(self):
        cfg = ServerConfig(port=4000, package_dirs=["vendor"])
        assert ServerConfig.from_dict(cfg.to_dict()) == cfg

    def test_from_file(self, tmp_path):
        path = tmp_path / "ssr.json"
        path.write_text(json.dumps({"entry": "/main.py", "port": 5000}))
        cfg = ServerConfig.from_file(str(path))
        assert cfg.entry == "/main.py"
        assert cfg.port == 5000

    def test_from_file_rejects_non_object(self, tmp_path):
        path = tmp_path / "ssr.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            ServerConfig.from_file(str(path))


# ---------------------------------------------------------------------------
# Env overlay and merge
# ---------------------------------------------------------------------------

class TestEnvOverrides:

    def test_env_mapping_covers_settings(self):
        assert set(_ENV_TO_FIELD.values()) == set(ServerConfig().to_dict())

    def test_apply(self):
        env = {"SSR_PORT": "7000", "SSR_WATCH": "0", "SSR_PACKAGE_DIRS": "x,y"}
        with patch.dict("os.environ", env, clear=False):
            cfg = ServerConfig()
            applied = cfg.apply_env_overrides()
        assert sorted(applied) == ["SSR_PACKAGE_DIRS", "SSR_PORT", "SSR_WATCH"]
        assert cfg.port == 7000
        assert cfg.watch is False
        assert cfg.package_dirs == ["x", "y"]

    def test_bad_int_coerces_to_zero(self):
        with patch.dict("os.environ", {"SSR_PORT": "abc"}, clear=False):
            cfg = ServerConfig()
            cfg.apply_env_overrides()
        assert cfg.port == 0
        assert not cfg.is_valid()

    def test_merge_skips_none(self):
        cfg = ServerConfig(port=4000)
        cfg.merge({"port": None, "host": "0.0.0.0", "unknown": 1})
        assert cfg.port == 4000
        assert cfg.host == "0.0.0.0"

    def test_load_config_precedence(self, tmp_path):
        path = tmp_path / "ssr.json"
        path.write_text(json.dumps({"port": 5000, "host": "file-host"}))
        with patch.dict("os.environ", {"SSR_PORT": "6000"}, clear=False):
            cfg = load_config(str(path), {"host": "cli-host"})
        assert cfg.port == 6000
        assert cfg.host == "cli-host"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidation:

    def _fields(self, cfg):
        return {e.field for e in cfg.validate()}

    def test_missing_root(self, tmp_path):
        cfg = ServerConfig(root=str(tmp_path / "missing"))
        assert self._fields(cfg) == {"root"}

    def test_entry_must_be_root_relative(self, tmp_path):
        cfg = ServerConfig(root=str(tmp_path), entry="entry_server.py")
        assert self._fields(cfg) == {"entry"}

    def test_entry_must_be_python(self, tmp_path):
        cfg = ServerConfig(root=str(tmp_path), entry="/entry.js")
        assert self._fields(cfg) == {"entry"}

    def test_port_and_interval(self, tmp_path):
        cfg = ServerConfig(root=str(tmp_path), port=70000, poll_interval=0)
        assert self._fields(cfg) == {"port", "poll_interval"}

    def test_log_settings(self, tmp_path):
        cfg = ServerConfig(root=str(tmp_path), log_level="LOUD", log_format="xml")
        assert self._fields(cfg) == {"log_level", "log_format"}

    def test_lowercase_level_accepted(self, tmp_path):
        assert ServerConfig(root=str(tmp_path), log_level="debug").is_valid()
        assert "DEBUG" in LogLevel.__members__

    def test_validation_error_str(self):
        err = ValidationError("port", "Must be 1-65535", 0)
        assert str(err) == "port: Must be 1-65535"
        assert repr(err) == "ValidationError('port', 'Must be 1-65535')"
