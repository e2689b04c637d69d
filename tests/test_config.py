import json

import pytest

from admin_reports.config import CollectionConfig, ConfigError, OutputConfig, ToolkitConfig


def write(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return path


def test_from_file(tmp_path):
    path = write(tmp_path, {
        "auth": {
            "mode": "secret",
            "secret": {"tenant_id": "t", "client_id": "c"},
            "certificate": {"tenant_id": "t", "client_id": "c", "certificate_path": "x.pfx"},
        },
        "collection": {"dormant_days": 60, "report_period": "D90", "not_a_setting": 1},
        "output": {"formats": ["csv"]},
        "cache_enabled": False,
    })
    config = ToolkitConfig.from_file(path)

    assert config.auth.mode == "secret"
    assert config.auth.secret.client_secret == ""
    assert config.auth.certificate.certificate_path == "x.pfx"
    assert config.collection.dormant_days == 60
    assert config.collection.report_period == "D90"
    assert not hasattr(config.collection, "not_a_setting")
    assert config.output.formats == ["csv"]
    assert config.cache_enabled is False
    assert config.cache_ttl_hours == 4


@pytest.mark.parametrize("content, message", [
    ("{broken", "not valid JSON"),
    (json.dumps({"auth": {"certificate": {"tenant_id": "t"}}}), "Missing auth setting"),
    (json.dumps({"collection": {"report_period": "D14"}}), "report_period"),
])
def test_from_file_errors(tmp_path, content, message):
    with pytest.raises(ConfigError, match=message):
        ToolkitConfig.from_file(write(tmp_path, content))


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        ToolkitConfig.from_file(tmp_path / "absent.json")


@pytest.mark.parametrize("overrides", [
    {"share_scan_workers": 0},
    {"share_scan_max_depth": -1},
    {"mailbox_quota_warning_pct": 0},
    {"mailbox_quota_warning_pct": 120},
    {"pki_expiry_warning_days": 400, "pki_expiry_notice_days": 365},
])
def test_collection_validate(overrides):
    with pytest.raises(ConfigError):
        CollectionConfig(**overrides).validate()


def test_output_run_dir(tmp_path):
    output = OutputConfig(base_dir=str(tmp_path), timestamp="20241001T120000Z")
    assert output.run_dir("pki") == tmp_path / "pki_20241001T120000Z"
    assert OutputConfig().timestamp.endswith("Z")
