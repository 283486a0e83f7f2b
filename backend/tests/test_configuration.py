"""Tests for the stored detection configuration."""

import dataclasses

import pytest

from zerotrust.models import Setting
from zerotrust.settings.configuration import (
    DEFAULT_EXTRAS,
    SECRET_MASK,
    DetectionConfig,
    is_valid_webhook_url,
    load_config,
    update_config,
    validate_update,
)


class TestLoad:

    def test_defaults_when_nothing_stored(self, app):
        config = load_config()
        assert config.enabled is False
        assert config.max_depth == 10
        assert config.auto_suspend is False
        assert config.suspend_threshold == 1
        assert config.webhook_url is None
        assert config.extras["ignored_files"] == DEFAULT_EXTRAS["ignored_files"]

    def test_defaults_carry_full_scanner_tuning_set(self, app):
        extras = load_config().extras
        assert "forbidden-players.txt" in extras["ignored_files"]
        assert "plugins/Essentials" in extras["ignored_paths"]
        assert extras["miner_indicators"][0] == "xmrig"
        assert extras["suspicious_ports"] == [1080, 3128, 8080, 8118, 9150, 9001, 9030]
        assert extras["high_cpu_threshold"] == 0.96
        assert extras["recent_account_threshold"] == 604800000

    def test_stored_float_extra_decodes(self, app):
        update_config({"small_volume_size": 5.5})
        assert load_config().extras["small_volume_size"] == 5.5

    def test_snapshot_is_frozen(self, app):
        config = load_config()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.max_depth = 99

    def test_garbage_integer_falls_back_to_default(self, app):
        from zerotrust.extensions import db
        db.session.add(Setting(key="zerotrust.max_depth", value="deep"))
        db.session.commit()
        assert load_config().max_depth == 10


class TestUpdate:

    def test_partial_merge_keeps_other_keys(self, app):
        update_config({"max_depth": 4, "webhook_url": "https://hooks.example.com/a"})
        config = update_config({"auto_suspend": True})

        assert config.auto_suspend is True
        assert config.max_depth == 4
        assert config.webhook_url == "https://hooks.example.com/a"

    def test_booleans_stored_as_strings(self, app):
        update_config({"auto_suspend": True, "enabled": False})
        assert Setting.query.filter_by(key="zerotrust.auto_suspend").one().value == "true"
        assert Setting.query.filter_by(key="zerotrust.enabled").one().value == "false"

    def test_lists_round_trip_as_json(self, app):
        update_config({"ignored_paths": ["cache", "logs"]})
        assert Setting.query.filter_by(key="zerotrust.ignored_paths").one().value == '["cache", "logs"]'
        assert load_config().extras["ignored_paths"] == ["cache", "logs"]

    def test_unknown_keys_kept_in_extras(self, app):
        update_config({"custom_pattern": "xmrig"})
        assert load_config().extras["custom_pattern"] == "xmrig"

    def test_earlier_snapshot_unchanged_by_update(self, app):
        before = load_config()
        update_config({"suspend_threshold": 9})
        assert before.suspend_threshold == 1
        assert load_config().suspend_threshold == 9


class TestValidation:

    @pytest.mark.parametrize("data, message", [
        ({"max_depth": "5"}, "max_depth must be an integer"),
        ({"max_depth": True}, "max_depth must be an integer"),
        ({"suspend_threshold": -1}, "suspend_threshold must be >= 0"),
        ({"scan_interval": 0}, "scan_interval must be >= 1"),
        ({"auto_suspend": "yes"}, "auto_suspend must be a boolean"),
        ({"webhook_url": "ftp://example.com"}, "webhook_url must be an http(s) URL"),
        ({"webhook_url": []}, "webhook_url must be a string"),
        ({"webhook_secret": 123}, "webhook_secret must be a string"),
    ])
    def test_rejects_malformed_values(self, data, message):
        assert validate_update(data) == message

    def test_accepts_valid_update(self):
        assert validate_update({"max_depth": 0, "auto_suspend": False, "webhook_url": None}) is None

    def test_webhook_url_check(self):
        assert is_valid_webhook_url("https://discord.com/api/webhooks/1/abc")
        assert not is_valid_webhook_url("https://")
        assert not is_valid_webhook_url(None)


class TestSerialization:

    def test_to_dict_flattens_extras_and_masks_secret(self):
        config = DetectionConfig(webhook_secret="s3cret", extras={"max_jar_size": 10})
        out = config.to_dict()
        assert out["webhook_secret"] == SECRET_MASK
        assert out["max_jar_size"] == 10
        assert "extras" not in out

    def test_no_secret_is_none(self):
        assert DetectionConfig().to_dict()["webhook_secret"] is None
