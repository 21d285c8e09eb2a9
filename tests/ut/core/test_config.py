"""BuildConfig / parse_duration 单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from nimbusbuild.core.config import REQUIRED_FIELDS, BuildConfig, parse_duration
from nimbusbuild.core.exceptions import ValidationError


class TestParseDuration:
    """时长解析测试"""

    @pytest.mark.parametrize(
        ("text", "seconds"),
        [
            ("1m", 60.0),
            ("1m30s", 90.0),
            ("500ms", 0.5),
            ("1.5h", 5400.0),
            ("0", 0.0),
            ("-2s", -2.0),
        ],
    )
    def test_valid(self, text: str, seconds: float):
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "10", "5 minutes", "1x", "m"])
    def test_invalid(self, text: str):
        with pytest.raises(ValueError):
            parse_duration(text)


class TestBuildConfig:
    """构建配置测试"""

    def test_defaults_applied(self, raw_config):
        cfg = BuildConfig.from_mapping(raw_config)
        assert cfg.ssh_port == 22
        assert cfg.ssh_timeout_seconds == 60.0
        assert cfg.lease_hours == 1
        assert cfg.public_image is False
        assert cfg.debug is False

    def test_later_mapping_overrides(self, raw_config):
        cfg = BuildConfig.from_mapping(raw_config, {"ssh_port": "2222", "debug": "true"})
        assert cfg.ssh_port == 2222
        assert cfg.debug is True

    def test_all_problems_reported_at_once(self):
        with pytest.raises(ValidationError) as exc_info:
            BuildConfig.from_mapping({"ssh_timeout": "soon", "bogus": 1})
        details = exc_info.value.details
        for name in REQUIRED_FIELDS:
            assert f"必须指定 {name}" in details
        assert "未知配置项: bogus" in details
        assert any(d.startswith("解析 ssh_timeout 失败") for d in details)

    def test_non_positive_timeout(self, raw_config):
        with pytest.raises(ValidationError, match="ssh_timeout 必须大于 0"):
            BuildConfig.from_mapping(raw_config, {"ssh_timeout": "0s"})

    def test_bad_image_name_template(self, raw_config):
        with pytest.raises(ValidationError, match="解析 image_name 失败"):
            BuildConfig.from_mapping(raw_config, {"image_name": "img-{uuid}"})

    def test_unbalanced_brace_rejected(self, raw_config):
        with pytest.raises(ValidationError, match="解析 image_name 失败"):
            BuildConfig.from_mapping(raw_config, {"image_name": "img-{create_time"})

    @pytest.mark.parametrize("port", [0, "0"])
    def test_zero_port_means_default(self, raw_config, port):
        assert BuildConfig.from_mapping(raw_config, {"ssh_port": port}).ssh_port == 22

    def test_format_spec_in_image_name_rejected(self, raw_config):
        with pytest.raises(ValidationError, match="解析 image_name 失败"):
            BuildConfig.from_mapping(raw_config, {"image_name": "img-{create_time:d}"})

    @pytest.mark.parametrize(
        ("override", "message"),
        [
            ({"ssh_port": 70000}, "ssh_port 超出范围"),
            ({"ssh_port": -1}, "ssh_port 超出范围"),
            ({"lease_hours": 0}, "lease_hours 至少为 1"),
            ({"ssh_port": True}, "ssh_port 必须是整数"),
            ({"public_image": "maybe"}, "public_image 必须是布尔值"),
            ({"source_image": ["a"]}, "source_image 必须是字符串"),
        ],
    )
    def test_field_errors(self, raw_config, override, message):
        with pytest.raises(ValidationError, match=message):
            BuildConfig.from_mapping(raw_config, override)

    def test_non_mapping_rejected(self):
        with pytest.raises(ValidationError, match="配置必须是键值映射"):
            BuildConfig.from_mapping(["not", "a", "dict"])  # type: ignore[arg-type]

    def test_derived_paths(self, config):
        assert config.cloud_client_command == (
            Path(config.cloud_client_path) / "bin" / "cloud-client.sh"
        )
        assert config.debug_key_path == "nimbus_nimbus.pem"

    def test_secrets_redacted(self, config):
        data = config.to_dict()
        assert data["s3key"] == "******"
        assert data["key"] == "******"
        assert data["s3id"] == "AKIDEXAMPLE"
        assert config.to_dict(redact=False)["s3key"] == "s3-secret"

    def test_secrets_not_logged(self, raw_config, caplog):
        with caplog.at_level("INFO", logger="nimbusbuild.core.config"):
            BuildConfig.from_mapping(raw_config)
        assert "s3-secret" not in caplog.text
