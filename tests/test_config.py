"""Tests for the host plugin configuration file."""

import json
import logging

from conftest import write_config
from weaver.plugins.config import PluginConfigService


def test_missing_file_has_no_allowlist(tmp_path):
    service = PluginConfigService(tmp_path / "config.json")
    assert service.allowlist() is None
    assert service.get_trusted_list() == []
    assert service.strict is False


def test_empty_trusted_list_is_an_allowlist(tmp_path):
    service = PluginConfigService(write_config(tmp_path / "config.json", trusted=[]))
    assert service.allowlist() == frozenset()


def test_invalid_json_is_ignored(tmp_path, caplog):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.ERROR):
        service = PluginConfigService(path)

    assert service.allowlist() is None
    assert "Error loading plugin config" in caplog.text


def test_non_object_is_ignored(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('["com.acme.A"]', encoding="utf-8")
    assert PluginConfigService(path).allowlist() is None


def test_trust_creates_file(tmp_path):
    path = tmp_path / "plugins" / "config.json"
    service = PluginConfigService(path)

    service.trust("com.acme.A")
    service.trust("com.acme.A")

    assert json.loads(path.read_text(encoding="utf-8")) == {"trusted": ["com.acme.A"]}
    assert service.is_trusted("com.acme.A")


def test_untrust_keeps_other_settings(tmp_path):
    path = write_config(tmp_path / "config.json", trusted=["com.acme.A", "com.acme.B"], strict=True)
    service = PluginConfigService(path)

    service.untrust("com.acme.A")
    service.untrust("com.acme.Missing")

    assert json.loads(path.read_text(encoding="utf-8")) == {"trusted": ["com.acme.B"], "strict": True}


def test_settings_sections(tmp_path):
    path = write_config(
        tmp_path / "config.json",
        android={"glue_package": "com.example.plugins"},
        ios="not a section",
    )
    service = PluginConfigService(path)

    assert service.settings("android") == {"glue_package": "com.example.plugins"}
    assert service.settings("ios") == {}
    assert service.settings("hooks") == {}


def test_reload(tmp_path):
    path = write_config(tmp_path / "config.json", trusted=["com.acme.A"])
    service = PluginConfigService(path)
    write_config(path, trusted=["com.acme.B"], strict=True)

    assert service.get_trusted_list() == ["com.acme.A"]
    service.reload()
    assert service.get_trusted_list() == ["com.acme.B"]
    assert service.strict is True
