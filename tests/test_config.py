"""
Tests for engine configuration loading and validation.
"""

import os

import pytest
import yaml

from core.config import (
    EngineConfig, FusionConfig, apply_env_overrides, config_from_dict, config_to_dict, load_config,
)
from core.exceptions import ConfigError


@pytest.fixture
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith('SIGNAL_ENGINE_'):
            monkeypatch.delenv(key)
    return monkeypatch


class TestFusionConfig:

    def test_defaults(self):
        config = FusionConfig()
        assert config.weights() == {'technical': 0.4, 'sentiment': 0.3, 'fundamental': 0.2, 'volume': 0.1}
        assert (config.buy_threshold, config.sell_threshold) == (0.3, -0.3)

    def test_negative_weight_rejected(self):
        with pytest.raises(ConfigError):
            FusionConfig(sentiment_weight=-0.1)

    def test_all_zero_weights_rejected(self):
        with pytest.raises(ConfigError):
            FusionConfig(technical_weight=0, sentiment_weight=0, fundamental_weight=0, volume_weight=0)

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(ConfigError):
            FusionConfig(buy_threshold=-0.5, sell_threshold=0.5)


class TestLoading:

    def test_no_file_gives_defaults(self, clean_env):
        assert load_config(use_env=False) == EngineConfig()

    def test_yaml_sections(self, tmp_path, clean_env):
        path = tmp_path / 'engine.yaml'
        path.write_text(yaml.safe_dump({
            'fusion': {'technical_weight': 0.5, 'volume_weight': 0.0},
            'indicators': {'rsi_period': 10},
            'patterns': {'max_levels': 2},
            'max_workers': 8,
        }))
        config = load_config(str(path), use_env=False)
        assert config.fusion.technical_weight == 0.5
        assert config.fusion.volume_weight == 0.0
        assert config.indicators.rsi_period == 10
        assert config.patterns.max_levels == 2
        assert config.max_workers == 8

    def test_env_overrides_file(self, tmp_path, clean_env):
        path = tmp_path / 'engine.yaml'
        path.write_text("fusion:\n  technical_weight: 0.5\n")
        clean_env.setenv('SIGNAL_ENGINE_TECHNICAL_WEIGHT', '0.6')
        clean_env.setenv('SIGNAL_ENGINE_MAX_WORKERS', '3')
        clean_env.setenv('SIGNAL_ENGINE_MIN_BARS', '60')
        config = load_config(str(path))
        assert config.fusion.technical_weight == 0.6
        assert config.max_workers == 3
        assert config.min_bars == 60

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / 'missing.yaml'), use_env=False)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'broken.yaml'
        path.write_text("fusion: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(str(path), use_env=False)

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigError):
            config_from_dict({'fusion': {'techincal_weight': 0.5}})
        with pytest.raises(ConfigError):
            config_from_dict({'verbose': True})

    def test_invalid_weights_from_file(self, tmp_path):
        path = tmp_path / 'engine.yaml'
        path.write_text("fusion:\n  technical_weight: -1\n")
        with pytest.raises(ConfigError):
            load_config(str(path), use_env=False)

    def test_invalid_workers(self):
        with pytest.raises(ConfigError):
            config_from_dict({'max_workers': 0})


def test_env_value_must_parse():
    with pytest.raises(ConfigError):
        apply_env_overrides({}, environ={'SIGNAL_ENGINE_MAX_WORKERS': 'many'})


def test_env_overrides_leave_input_untouched():
    data = {'fusion': {'technical_weight': 0.5}}
    merged = apply_env_overrides(data, environ={'SIGNAL_ENGINE_SENTIMENT_WEIGHT': '0.1'})
    assert merged['fusion'] == {'technical_weight': 0.5, 'sentiment_weight': 0.1}
    assert data == {'fusion': {'technical_weight': 0.5}}


def test_round_trip_through_dict():
    config = EngineConfig(fusion=FusionConfig(technical_weight=0.7), max_workers=2)
    assert config_from_dict(config_to_dict(config)) == config
