import json

from widget_runtime.config import PreviewConfig, load_preview_config, save_preview_config


def test_missing_config_written_with_defaults(tmp_path) -> None:
    path = tmp_path / "roaming" / "preview_config.json"
    config = load_preview_config(path)
    assert config == PreviewConfig()
    assert json.loads(path.read_text(encoding="utf-8"))["identity_key_field"] == "id"


def test_partial_config_merged_and_sanitized(tmp_path) -> None:
    path = tmp_path / "preview_config.json"
    path.write_text(json.dumps({"identity_key_field": "key", "evict_after_misses": 0, "unknown": 1}), encoding="utf-8")
    config = load_preview_config(path)
    assert config.identity_key_field == "key"
    assert config.evict_after_misses == 1
    assert config.reuse_identical_bundles is False


def test_corrupt_config_falls_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "preview_config.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_preview_config(path) == PreviewConfig()
    path.write_text('{"pump_interval_ms": "fast"}', encoding="utf-8")
    assert load_preview_config(path) == PreviewConfig()


def test_save_round_trip(tmp_path) -> None:
    path = tmp_path / "preview_config.json"
    save_preview_config(PreviewConfig(reuse_identical_bundles=True, ready_timeout_s=2.5), path)
    config = load_preview_config(path)
    assert config.reuse_identical_bundles is True
    assert config.ready_timeout_s == 2.5
