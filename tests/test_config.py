"""Tests for configuration file parsing, drop-in merging and CLI overrides."""

import dataclasses
import logging
from datetime import datetime

import pytest

from global_logrotate.config import defaults
from global_logrotate.config.settings import (
    ConfigError,
    get_bool,
    get_int,
    load_config_files,
    parse_config_file,
    parse_log_level,
    resolve_config,
    validate_for_rotation,
)

NOW = datetime(2025, 2, 1, 14, 30, 5)


@pytest.fixture
def conf_dir(tmp_path):
    main = tmp_path / "global.conf"
    dropin = tmp_path / "global.conf.d"
    dropin.mkdir()
    return main, dropin


# ---------------------------------------------------------------------------
# File parsing
# ---------------------------------------------------------------------------

class TestParseConfigFile:
    def test_key_value_lines(self, tmp_path):
        p = tmp_path / "a.conf"
        p.write_text("LOG_DIR = /srv/logs\nPATTERN=*.txt\n")
        values = parse_config_file(str(p), {})
        assert values == {"LOG_DIR": "/srv/logs", "PATTERN": "*.txt"}

    def test_comments_and_blank_lines_ignored(self, tmp_path):
        p = tmp_path / "a.conf"
        p.write_text("# comment\n\n; other comment\nDRY_RUN = yes\n")
        assert parse_config_file(str(p), {}) == {"DRY_RUN": "yes"}

    def test_quotes_stripped(self, tmp_path):
        p = tmp_path / "a.conf"
        p.write_text("A = \"quoted\"\nB = 'single'\n")
        values = parse_config_file(str(p), {})
        assert values["A"] == "quoted"
        assert values["B"] == "single"

    def test_value_may_contain_equals(self, tmp_path):
        p = tmp_path / "a.conf"
        p.write_text("ENCRYPT_PASSWORD = abc=def\n")
        assert parse_config_file(str(p), {})["ENCRYPT_PASSWORD"] == "abc=def"

    def test_line_without_key_ignored(self, tmp_path):
        p = tmp_path / "a.conf"
        p.write_text("= orphan\nnot a pair\n")
        assert parse_config_file(str(p), {}) == {}

    def test_missing_file_leaves_values_untouched(self, tmp_path):
        values = {"X": "1"}
        assert parse_config_file(str(tmp_path / "nope.conf"), values) == {"X": "1"}


class TestLoadConfigFiles:
    def test_dropins_override_main_in_sorted_order(self, conf_dir):
        main, dropin = conf_dir
        main.write_text("PATTERN = *.log\nLOG_DIR = /main\n")
        (dropin / "20-b.conf").write_text("PATTERN = *.b\n")
        (dropin / "10-a.conf").write_text("PATTERN = *.a\nPARALLEL_JOBS = 8\n")
        values = load_config_files(str(main), str(dropin))
        assert values["PATTERN"] == "*.b"
        assert values["LOG_DIR"] == "/main"
        assert values["PARALLEL_JOBS"] == "8"

    def test_non_conf_files_ignored(self, conf_dir):
        main, dropin = conf_dir
        (dropin / "notes.txt").write_text("PATTERN = *.txt\n")
        assert load_config_files(str(main), str(dropin)) == {}


# ---------------------------------------------------------------------------
# Typed accessors
# ---------------------------------------------------------------------------

class TestAccessors:
    def test_int_fallback_on_garbage(self):
        assert get_int({"N": "abc"}, "N", 4) == 4
        assert get_int({"N": ""}, "N", 4) == 4
        assert get_int({"N": "7"}, "N", 4) == 7

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("YES", True), ("1", True),
        ("false", False), ("no", False), ("", False),
    ])
    def test_bool_values(self, raw, expected):
        assert get_bool({"B": raw}, "B", not expected) is expected

    def test_bool_absent_uses_default(self):
        assert get_bool({}, "B", True) is True

    @pytest.mark.parametrize("raw,level", [
        ("error", logging.ERROR), ("0", logging.ERROR),
        ("INFO", logging.INFO), ("1", logging.INFO),
        ("debug", logging.DEBUG), ("2", logging.DEBUG),
        ("bogus", logging.INFO), (None, logging.INFO),
    ])
    def test_log_levels(self, raw, level):
        assert parse_log_level(raw) == level


# ---------------------------------------------------------------------------
# Effective configuration
# ---------------------------------------------------------------------------

class TestResolveConfig:
    def test_defaults(self):
        cfg = resolve_config({}, now=NOW)
        assert cfg.log_dir == defaults.DEFAULT_LOG_DIR
        assert cfg.pattern == "*.log"
        assert cfg.parallel_jobs == 4
        assert cfg.parallel is True
        assert cfg.custom_path is False
        assert cfg.date_suffix == "20250201"
        assert cfg.archive_day == "20250201"
        assert cfg.log_level == logging.INFO
        assert cfg.encrypt is False

    def test_file_values_applied(self):
        values = {
            "LOG_DIR": "/srv/app", "PATTERN": "*.out", "PARALLEL_JOBS": "1",
            "OLD_LOGS_DIR": "/archive", "ENCRYPT": "true",
            "ENCRYPT_PASSWORD_HASH": "ab" * 32, "LOG_LEVEL": "debug",
        }
        cfg = resolve_config(values, now=NOW)
        assert cfg.log_dir == "/srv/app"
        assert cfg.pattern == "*.out"
        assert cfg.parallel is False
        assert cfg.old_logs_dir == "/archive"
        assert cfg.encrypt is True
        assert cfg.encrypt_password_hash == "ab" * 32
        assert cfg.log_level == logging.DEBUG
        assert cfg.custom_path is True

    def test_cli_overrides_file(self):
        values = {"PATTERN": "*.out", "PARALLEL_JOBS": "8", "LOG_LEVEL": "debug"}
        cfg = resolve_config(values, pattern="*.log", parallel_jobs=2,
                             log_level="error", now=NOW)
        assert cfg.pattern == "*.log"
        assert cfg.parallel_jobs == 2
        assert cfg.log_level == logging.ERROR

    def test_switches_only_turn_on(self):
        cfg = resolve_config({"DRY_RUN": "true", "ENCRYPT": "yes"},
                             dry_run=False, encrypt=False, now=NOW)
        assert cfg.dry_run is True
        assert cfg.encrypt is True

    def test_full_time_flag(self):
        cfg = resolve_config({}, full_time=True, now=NOW)
        assert cfg.date_suffix == "20250201T14:30:05"
        assert cfg.archive_day == "20250201"

    def test_full_time_wins_over_date_only(self):
        cfg = resolve_config({}, full_time=True, date_only=True, now=NOW)
        assert cfg.date_suffix == "20250201T14:30:05"

    def test_date_format_full_from_file(self):
        cfg = resolve_config({"DATE_FORMAT": "full"}, now=NOW)
        assert cfg.date_suffix == "20250201T14:30:05"

    def test_date_only_flag_beats_file_full(self):
        cfg = resolve_config({"DATE_FORMAT": "full"}, date_only=True, now=NOW)
        assert cfg.date_suffix == "20250201"

    def test_trailing_slash_stripped(self):
        cfg = resolve_config({}, log_dir="/srv/logs/", now=NOW)
        assert cfg.log_dir == "/srv/logs"

    def test_archive_extension(self):
        assert resolve_config({}, now=NOW).archive_extension == ".gz"
        assert resolve_config({}, encrypt=True, now=NOW).archive_extension == ".gz.enc"

    def test_config_is_immutable(self):
        cfg = resolve_config({}, now=NOW)
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.pattern = "*.txt"


class TestValidateForRotation:
    def test_missing_custom_directory(self, tmp_path):
        cfg = resolve_config({}, log_dir=str(tmp_path / "missing"), now=NOW)
        with pytest.raises(ConfigError, match="does not exist"):
            validate_for_rotation(cfg)

    def test_existing_custom_directory(self, tmp_path):
        cfg = resolve_config({}, log_dir=str(tmp_path), now=NOW)
        validate_for_rotation(cfg)

    def test_encrypt_without_password_or_hash(self, tmp_path):
        cfg = resolve_config({}, log_dir=str(tmp_path), encrypt=True, now=NOW)
        with pytest.raises(ConfigError, match="password"):
            validate_for_rotation(cfg)

    def test_encrypt_with_hash_only(self, tmp_path):
        cfg = resolve_config({"ENCRYPT_PASSWORD_HASH": "00" * 32},
                             log_dir=str(tmp_path), encrypt=True, now=NOW)
        validate_for_rotation(cfg)
