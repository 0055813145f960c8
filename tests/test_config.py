# tests/test_config.py

import os

import pytest

from overlay.config import AnalyzerConfig, OverlayConfig, load_config


def _write(tmp_path, text):
    path = tmp_path / "overlay.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = load_config(None, env={})
    assert not cfg.enabled
    assert cfg.analyzer.command == []
    assert cfg.analyzer.manifest_path is None
    assert cfg.max_concurrency == 4
    assert cfg.fuzzy


def test_yaml_values_are_loaded(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = _write(
        tmp_path,
        "enabled: true\n"
        "analyzer:\n"
        "  command: twoslash-rust --json\n"
        "  timeout_seconds: 5\n"
        "max_concurrency: 2\n"
        "reconcile:\n"
        "  fuzzy: false\n"
        "  max_slack: 3\n",
    )
    cfg = load_config(path, env={})
    assert cfg.enabled
    assert cfg.analyzer.command == ["twoslash-rust", "--json"]
    assert cfg.analyzer.timeout_seconds == 5.0
    assert cfg.max_concurrency == 2
    assert not cfg.fuzzy
    assert cfg.max_slack == 3


def test_environment_toggle_wins(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = _write(tmp_path, "enabled: false\n")
    assert load_config(path, env={"DOC_OVERLAY": "1"}).enabled
    assert not load_config(_write(tmp_path, "enabled: true\n"), env={"DOC_OVERLAY": "0"}).enabled


def test_manifest_resolution_order(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "Cargo.toml").write_text("[package]\n", encoding="utf-8")
    override = tmp_path / "other.toml"
    override.write_text("[package]\n", encoding="utf-8")

    assert load_config(None, env={}).analyzer.manifest_path == "Cargo.toml"
    env = {"DOC_OVERLAY_MANIFEST": str(override)}
    assert load_config(None, env=env).analyzer.manifest_path == str(override)


def test_invalid_values_raise():
    with pytest.raises(ValueError):
        OverlayConfig(max_concurrency=0)
    with pytest.raises(ValueError):
        OverlayConfig(analyzer=AnalyzerConfig(timeout_seconds=0))


def test_shipped_config_loads():
    root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    cfg = load_config(os.path.join(root, "configs", "overlay.yaml"), env={})
    assert cfg.analyzer.command
    assert not cfg.enabled


def test_environment_toggle_values(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert load_config(None, env={"DOC_OVERLAY": ""}).enabled
    assert load_config(None, env={"DOC_OVERLAY": "yes"}).enabled
    for off in ("0", "false", "No", "OFF"):
        assert not load_config(None, env={"DOC_OVERLAY": off}).enabled
