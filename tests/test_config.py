"""Tests for config loading and profile path resolution."""

import json
from pathlib import Path

import pytest

from relaybot.config.loader import (
    ConfigInvalid,
    camel_to_snake,
    convert_keys,
    load_config,
    resolve_session_intro,
    save_config,
)
from relaybot.config.paths import normalize_profile, resolve_profile_paths
from relaybot.config.runtime import RelayProfile
from relaybot.config.schema import Config, ReplyConfig, SessionConfig


def _write(path: Path, data) -> Path:
    path.write_text(json.dumps(data))
    return path


def test_camel_to_snake():
    assert camel_to_snake("sessionArgBeforeBody") == "session_arg_before_body"
    assert camel_to_snake("mode") == "mode"


def test_convert_keys_nested():
    data = {"inbound": {"allowFrom": ["+1"], "reply": {"mediaMaxMb": 2}}}
    assert convert_keys(data) == {"inbound": {"allow_from": ["+1"], "reply": {"media_max_mb": 2}}}


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(tmp_path / "relaybot.json")
    assert config.reply is None
    assert config.logging.level == "info"


def test_load_camel_case_config(tmp_path):
    path = _write(tmp_path / "relaybot.json", {
        "inbound": {
            "reply": {
                "mode": "command",
                "command": ["claude", "{{Body}}"],
                "timeoutSeconds": 30,
                "session": {"scope": "global", "resetTriggers": ["/new", "/reset"], "sendSystemOnce": True},
            }
        },
        "web": {"heartbeatRecipient": "+1555"},
    })
    config = load_config(path)

    assert config.reply.command == ["claude", "{{Body}}"]
    assert config.reply.timeout_seconds == 30
    assert config.session.scope == "global"
    assert config.session.reset_triggers == ["/new", "/reset"]
    assert config.session.send_system_once
    assert config.web.heartbeat_recipient == "+1555"


def test_session_defaults():
    session = SessionConfig()
    assert session.reset_triggers == ["/new"]
    assert session.idle_minutes == 60
    assert session.session_arg_before_body


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "relaybot.json"
    path.write_text("{oops")
    with pytest.raises(ConfigInvalid):
        load_config(path)


def test_validation_errors_name_the_field(tmp_path):
    path = _write(tmp_path / "relaybot.json", {"inbound": {"reply": {"mode": "command"}}})
    with pytest.raises(ConfigInvalid) as exc:
        load_config(path)
    assert exc.value.path == path
    assert any("inbound.reply" in issue for issue in exc.value.issues)


def test_bad_enum_rejected(tmp_path):
    path = _write(tmp_path / "relaybot.json", {
        "inbound": {"reply": {"mode": "text", "text": "x", "session": {"scope": "per-channel"}}}
    })
    with pytest.raises(ConfigInvalid):
        load_config(path)


def test_save_and_reload(tmp_path):
    path = tmp_path / "relaybot.json"
    config = load_config(path)
    config.web.heartbeat_seconds = 90
    save_config(config, path)

    assert json.loads(path.read_text())["web"]["heartbeatSeconds"] == 90
    assert load_config(path).web.heartbeat_seconds == 90


def test_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("RELAYBOT_LOGGING__LEVEL", "debug")
    assert Config().logging.level == "debug"


class TestSessionIntro:
    def test_inline(self, tmp_path):
        assert resolve_session_intro(SessionConfig(session_intro="hi"), tmp_path) == "hi"

    def test_path_relative_to_config_dir(self, tmp_path):
        (tmp_path / "intro.txt").write_text("from file")
        cfg = SessionConfig(session_intro="inline", session_intro_path="intro.txt")
        assert resolve_session_intro(cfg, tmp_path) == "from file"

    def test_unreadable_path_falls_back(self, tmp_path):
        cfg = SessionConfig(session_intro="inline", session_intro_path="missing.txt")
        assert resolve_session_intro(cfg, tmp_path) == "inline"

    def test_no_session(self, tmp_path):
        assert resolve_session_intro(None, tmp_path) is None


class TestProfilePaths:
    def test_legacy_default(self, tmp_path):
        paths = resolve_profile_paths(home=tmp_path, env={})
        assert paths.source == "legacy"
        assert paths.config_path == tmp_path / "relaybot.json"
        assert paths.session_store_path == tmp_path / "sessions.json"
        assert paths.profile_label == "default"

    def test_named_profile(self, tmp_path):
        paths = resolve_profile_paths(profile="work", home=tmp_path, env={})
        assert paths.source == "profile"
        assert paths.config_path == tmp_path / "relaybot.work.json"
        assert paths.state_dir == tmp_path / "state" / "work"
        assert paths.media_dir == tmp_path / "media" / "work"
        assert paths.tag == "[profile=work]"

    def test_profile_from_env(self, tmp_path):
        paths = resolve_profile_paths(home=tmp_path, env={"RELAYBOT_PROFILE": "bot2"})
        assert paths.profile == "bot2"

    def test_env_config_path_beats_profile(self, tmp_path):
        target = tmp_path / "custom.json"
        paths = resolve_profile_paths(profile="work", home=tmp_path, env={"RELAYBOT_CONFIG_PATH": str(target)})
        assert paths.source == "env"
        assert paths.config_path == target.resolve()
        assert paths.profile == "work"

    def test_flag_beats_env(self, tmp_path):
        flag = tmp_path / "flag.json"
        paths = resolve_profile_paths(
            config_path=flag,
            home=tmp_path,
            env={"RELAYBOT_CONFIG_PATH": str(tmp_path / "env.json")},
        )
        assert paths.source == "flag"
        assert paths.config_path == flag.resolve()

    @pytest.mark.parametrize("name", ["Work", "a b", "../x", "ü"])
    def test_invalid_profile_names(self, name):
        with pytest.raises(ValueError):
            normalize_profile(name)

    def test_blank_profile_is_default(self):
        assert normalize_profile("") is None


class TestRelayProfile:
    def test_load(self, tmp_path):
        _write(tmp_path / "relaybot.work.json", {"inbound": {"reply": {"mode": "text", "text": "ok"}}})
        profile = RelayProfile.load(profile="work", home=tmp_path)
        assert profile.label == "work"
        assert profile.config.reply.text == "ok"
        assert profile.media.base_dir == tmp_path / "media" / "work"

    def test_store_override(self, tmp_path):
        reply = ReplyConfig(mode="text", text="x", session=SessionConfig(store=str(tmp_path / "s.json")))
        profile = RelayProfile(
            config=Config(inbound={"reply": reply}),
            paths=resolve_profile_paths(home=tmp_path, env={}),
        )
        assert profile.session_store_path == tmp_path / "s.json"

    def test_media_cap_follows_config(self, tmp_path):
        reply = ReplyConfig(mode="text", text="x", media_max_mb=1)
        profile = RelayProfile(
            config=Config(inbound={"reply": reply}),
            paths=resolve_profile_paths(home=tmp_path, env={}),
        )
        assert profile.media.max_bytes == 1024 * 1024
