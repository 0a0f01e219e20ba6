"""Tests for password resolution precedence, hash verification and caching."""

import hashlib
import logging
import os
import stat
import threading
from datetime import datetime

import pytest

from global_logrotate.config.settings import resolve_config
from global_logrotate.security.credentials import (
    CredentialResolver,
    credentials_file_path,
    matches_hash,
    password_hash,
    read_credentials_password,
    save_credentials_password,
)

NOW = datetime(2025, 2, 1)
GOOD = "good-password-123"
GOOD_HASH = hashlib.sha256(GOOD.encode()).hexdigest()


def make_cfg(**file_values):
    return resolve_config(file_values, now=NOW)


class PromptRecorder:
    def __init__(self, answer="", exc=None):
        self.answer = answer
        self.exc = exc
        self.calls = []

    def __call__(self, prompt):
        self.calls.append(prompt)
        if self.exc:
            raise self.exc
        return self.answer


@pytest.fixture
def cred_file(tmp_path):
    return tmp_path / "home" / ".global-sys-utils" / "config" / "credentials.ini"


def make_resolver(cred_file, env=None, prompt=None, **file_values):
    return CredentialResolver(
        make_cfg(**file_values),
        prompt_fn=prompt or PromptRecorder(),
        environ=env if env is not None else {},
        credentials_path=cred_file,
    )


# ---------------------------------------------------------------------------
# Hashing and credentials file
# ---------------------------------------------------------------------------

class TestHashing:
    def test_sha256_hex(self):
        assert password_hash(GOOD) == GOOD_HASH

    def test_matches_hash_case_insensitive(self):
        assert matches_hash(GOOD, GOOD_HASH.upper())
        assert not matches_hash("other", GOOD_HASH)


class TestCredentialsFile:
    def test_default_location_under_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert credentials_file_path() == \
            tmp_path / ".global-sys-utils" / "config" / "credentials.ini"

    def test_save_and_read(self, cred_file):
        save_credentials_password(GOOD, cred_file)
        assert read_credentials_password(cred_file) == GOOD

    @pytest.mark.skipif(os.name == "nt", reason="Unix permissions")
    def test_owner_only_permissions(self, cred_file):
        save_credentials_password(GOOD, cred_file)
        assert stat.S_IMODE(os.stat(cred_file).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(cred_file.parent).st_mode) == 0o700

    def test_lowercase_key_accepted(self, cred_file):
        cred_file.parent.mkdir(parents=True)
        cred_file.write_text("# creds\npassword = 'quoted-value'\n")
        assert read_credentials_password(cred_file) == "quoted-value"

    def test_missing_file_empty(self, cred_file):
        assert read_credentials_password(cred_file) == ""


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------

class TestPrecedenceWithoutHash:
    def test_config_password_first(self, cred_file):
        save_credentials_password("from-file", cred_file)
        r = make_resolver(cred_file, env={"LOGROTATE_PASSWORD": "from-env"},
                          ENCRYPT_PASSWORD="from-config")
        assert r.resolve() == "from-config"

    def test_credentials_file_before_env(self, cred_file):
        save_credentials_password("from-file", cred_file)
        r = make_resolver(cred_file, env={"LOGROTATE_PASSWORD": "from-env"})
        assert r.resolve() == "from-file"

    def test_env_when_no_file(self, cred_file):
        r = make_resolver(cred_file, env={"LOGROTATE_PASSWORD": "from-env"})
        assert r.resolve() == "from-env"

    def test_prompt_last(self, cred_file):
        prompt = PromptRecorder("typed")
        r = make_resolver(cred_file, prompt=prompt)
        assert r.resolve() == "typed"
        assert prompt.calls == ["Enter encryption password: "]

    def test_nothing_available(self, cred_file):
        r = make_resolver(cred_file, prompt=PromptRecorder(""))
        assert r.resolve() == ""


class TestPrecedenceWithHash:
    def test_config_password_not_verified(self, cred_file):
        r = make_resolver(cred_file, ENCRYPT_PASSWORD="anything",
                          ENCRYPT_PASSWORD_HASH=GOOD_HASH)
        assert r.resolve() == "anything"

    def test_matching_credentials_file(self, cred_file):
        save_credentials_password(GOOD, cred_file)
        prompt = PromptRecorder()
        r = make_resolver(cred_file, prompt=prompt, ENCRYPT_PASSWORD_HASH=GOOD_HASH)
        assert r.resolve() == GOOD
        assert prompt.calls == []

    def test_mismatched_file_falls_through_to_env(self, cred_file):
        save_credentials_password("stale", cred_file)
        r = make_resolver(cred_file, env={"LOGROTATE_PASSWORD": GOOD},
                          ENCRYPT_PASSWORD_HASH=GOOD_HASH)
        assert r.resolve() == GOOD

    def test_mismatched_env_ignored(self, cred_file, capsys):
        prompt = PromptRecorder(GOOD)
        r = make_resolver(cred_file, env={"LOGROTATE_PASSWORD": "wrong"},
                          prompt=prompt, ENCRYPT_PASSWORD_HASH=GOOD_HASH)
        assert r.resolve() == GOOD
        assert len(prompt.calls) == 1
        assert "does not match configured hash" in capsys.readouterr().err

    def test_mismatched_env_logged_as_error(self, cred_file, caplog):
        r = make_resolver(cred_file, env={"LOGROTATE_PASSWORD": "wrong"},
                          prompt=PromptRecorder(GOOD), ENCRYPT_PASSWORD_HASH=GOOD_HASH)
        with caplog.at_level(logging.DEBUG, logger="global_logrotate"):
            r.resolve()
        [record] = [rec for rec in caplog.records
                    if "environment variable does not match" in rec.getMessage()]
        assert record.levelno == logging.ERROR

    def test_mismatched_prompt_is_terminal(self, cred_file, capsys):
        r = make_resolver(cred_file, prompt=PromptRecorder("wrong"),
                          ENCRYPT_PASSWORD_HASH=GOOD_HASH)
        assert r.resolve() == ""
        assert "does not match" in capsys.readouterr().err

    def test_prompt_read_error(self, cred_file, capsys):
        r = make_resolver(cred_file, prompt=PromptRecorder(exc=EOFError("closed")),
                          ENCRYPT_PASSWORD_HASH=GOOD_HASH)
        assert r.resolve() == ""
        assert "Error reading password" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------

class TestCaching:
    def test_prompt_only_once(self, cred_file):
        prompt = PromptRecorder(GOOD)
        r = make_resolver(cred_file, prompt=prompt, ENCRYPT_PASSWORD_HASH=GOOD_HASH)
        assert r.resolve() == GOOD
        assert r.resolve() == GOOD
        assert len(prompt.calls) == 1

    def test_cache_survives_source_change(self, cred_file):
        env = {"LOGROTATE_PASSWORD": "first"}
        r = make_resolver(cred_file, env=env)
        assert r.resolve() == "first"
        env["LOGROTATE_PASSWORD"] = "second"
        assert r.resolve() == "first"

    def test_failed_resolution_is_remembered(self, cred_file, capsys):
        env = {}
        prompt = PromptRecorder("wrong")
        r = make_resolver(cred_file, env=env, prompt=prompt,
                          ENCRYPT_PASSWORD_HASH=GOOD_HASH)
        assert [r.resolve() for _ in range(3)] == ["", "", ""]
        env["LOGROTATE_PASSWORD"] = GOOD
        assert r.resolve() == ""
        assert prompt.calls == ["Enter encryption password: "]
        assert capsys.readouterr().err.count("does not match configured hash") == 1

    def test_prompt_read_error_reported_once(self, cred_file, capsys):
        prompt = PromptRecorder(exc=EOFError("no input available"))
        r = make_resolver(cred_file, prompt=prompt, ENCRYPT_PASSWORD_HASH=GOOD_HASH)
        assert r.resolve() == ""
        assert r.resolve() == ""
        assert len(prompt.calls) == 1
        assert capsys.readouterr().err.count("Error reading password") == 1

    def test_concurrent_callers_prompt_once(self, cred_file):
        prompt = PromptRecorder(GOOD)
        r = make_resolver(cred_file, prompt=prompt, ENCRYPT_PASSWORD_HASH=GOOD_HASH)
        results = []

        def call():
            results.append(r.resolve())

        threads = [threading.Thread(target=call) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results == [GOOD] * 8
        assert len(prompt.calls) == 1
