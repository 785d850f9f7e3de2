"""
Engine Configuration

Holds the fusion weights and thresholds and aggregates the per-module configs
(indicators, patterns, sentiment, fundamentals) into one EngineConfig that is
passed explicitly into the engine. Configs can be loaded from a YAML file and
overridden from the environment (.env supported):

    SIGNAL_ENGINE_TECHNICAL_WEIGHT=0.5
    SIGNAL_ENGINE_SENTIMENT_WEIGHT=0.2
    SIGNAL_ENGINE_MAX_WORKERS=8
"""

import logging
import os
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from analyzers.fundamental_analyzer import FundamentalConfig
from analyzers.sentiment_analyzer import SentimentConfig
from core.exceptions import ConfigError
from core.pattern_detector import PatternConfig
from core.technical_indicators import TechnicalIndicatorConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = 'SIGNAL_ENGINE_'


@dataclass
class FusionConfig:
    """Weights and thresholds used to fuse the factor scores into a signal"""
    # Factor weights
    technical_weight: float = 0.4
    sentiment_weight: float = 0.3
    fundamental_weight: float = 0.2
    volume_weight: float = 0.1

    # Decision thresholds (exclusive)
    buy_threshold: float = 0.3
    sell_threshold: float = -0.3

    # BUY/SELL confidence = min(max_confidence, base + |score| x scale)
    directional_base_confidence: float = 60.0
    directional_confidence_scale: float = 35.0
    max_confidence: float = 95.0
    # HOLD confidence = max(min_hold_confidence, base - |score| x scale)
    hold_base_confidence: float = 70.0
    hold_confidence_scale: float = 20.0
    min_hold_confidence: float = 50.0

    # Technical vote strengths
    macd_strength_divisor: float = 10.0
    moving_average_strength: float = 0.7
    saturated_rsi_votes: bool = False
    technical_hold_base_confidence: float = 60.0
    no_vote_confidence: float = 50.0

    # Volume score: last-N average against the prior-M average
    volume_recent_window: int = 5
    volume_prior_window: int = 15
    volume_surge_ratio: float = 1.5
    volume_surge_score: float = 0.3
    volume_above_ratio: float = 1.2
    volume_above_score: float = 0.1
    volume_weak_ratio: float = 0.7
    volume_weak_score: float = -0.1

    # Price targets, in multiples of daily volatility
    target_volatility_multiple: float = 3.0
    stop_volatility_multiple: float = 2.0
    hold_stop_volatility_multiple: float = 1.5

    # Closing clause of the reasoning
    strong_conviction_score: float = 0.5
    mixed_signals_score: float = 0.2

    def __post_init__(self):
        weights = self.weights()
        negative = {k: v for k, v in weights.items() if v < 0}
        if negative:
            raise ConfigError(f"Fusion weights cannot be negative: {negative}")
        if sum(weights.values()) <= 0:
            raise ConfigError("At least one fusion weight must be positive")
        if self.sell_threshold >= self.buy_threshold:
            raise ConfigError(
                f"sell_threshold ({self.sell_threshold}) must be below buy_threshold ({self.buy_threshold})"
            )

    def weights(self) -> Dict[str, float]:
        return {
            'technical': self.technical_weight,
            'sentiment': self.sentiment_weight,
            'fundamental': self.fundamental_weight,
            'volume': self.volume_weight,
        }


@dataclass
class EngineConfig:
    """Complete signal engine configuration"""
    indicators: TechnicalIndicatorConfig = field(default_factory=TechnicalIndicatorConfig)
    patterns: PatternConfig = field(default_factory=PatternConfig)
    sentiment: SentimentConfig = field(default_factory=SentimentConfig)
    fundamentals: FundamentalConfig = field(default_factory=FundamentalConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)

    # Batch analysis
    max_workers: int = 4
    symbol_timeout: Optional[float] = 10.0

    @property
    def min_bars(self) -> int:
        return self.indicators.min_bars


SECTIONS = {
    'indicators': TechnicalIndicatorConfig,
    'patterns': PatternConfig,
    'sentiment': SentimentConfig,
    'fundamentals': FundamentalConfig,
    'fusion': FusionConfig,
}

# Environment variables mapped onto (section, field); section None = EngineConfig
ENV_OVERRIDES = {
    'TECHNICAL_WEIGHT': ('fusion', 'technical_weight'),
    'SENTIMENT_WEIGHT': ('fusion', 'sentiment_weight'),
    'FUNDAMENTAL_WEIGHT': ('fusion', 'fundamental_weight'),
    'VOLUME_WEIGHT': ('fusion', 'volume_weight'),
    'BUY_THRESHOLD': ('fusion', 'buy_threshold'),
    'SELL_THRESHOLD': ('fusion', 'sell_threshold'),
    'MIN_BARS': ('indicators', 'min_bars'),
    'MAX_WORKERS': (None, 'max_workers'),
    'SYMBOL_TIMEOUT': (None, 'symbol_timeout'),
}


def _build_section(cls, values: Dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**values)


def config_from_dict(data: Dict[str, Any]) -> EngineConfig:
    """Build an EngineConfig from a nested dict (as loaded from YAML)"""
    data = dict(data or {})
    kwargs = {}
    for name, cls in SECTIONS.items():
        section = data.pop(name, None) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"Config section '{name}' must be a mapping")
        kwargs[name] = _build_section(cls, section)

    for key in ('max_workers', 'symbol_timeout'):
        if key in data:
            kwargs[key] = data.pop(key)
    if data:
        raise ConfigError(f"Unknown config keys: {sorted(data)}")

    config = EngineConfig(**kwargs)
    if config.max_workers < 1:
        raise ConfigError(f"max_workers must be at least 1, got {config.max_workers}")
    return config


def _coerce(value: str, current: Any) -> Any:
    if isinstance(current, bool):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    if isinstance(current, int):
        return int(value)
    if current is None or isinstance(current, float):
        return float(value)
    return value


def apply_env_overrides(data: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Overlay SIGNAL_ENGINE_* environment variables on a config dict"""
    environ = os.environ if environ is None else environ
    defaults = EngineConfig()
    data = {k: (dict(v) if isinstance(v, dict) else v) for k, v in (data or {}).items()}

    for suffix, (section, name) in ENV_OVERRIDES.items():
        raw = environ.get(ENV_PREFIX + suffix)
        if raw is None or raw == '':
            continue
        target = defaults if section is None else getattr(defaults, section)
        try:
            value = _coerce(raw, getattr(target, name))
        except ValueError as e:
            raise ConfigError(f"Invalid value for {ENV_PREFIX + suffix}: {raw!r}") from e
        if section is None:
            data[name] = value
        else:
            data.setdefault(section, {})[name] = value
        logger.debug(f"Config override from environment: {ENV_PREFIX + suffix}={raw}")
    return data


def load_config(path: Optional[str] = None, use_env: bool = True) -> EngineConfig:
    """
    Load the engine configuration

    Args:
        path: Optional YAML file with sections indicators/patterns/sentiment/fundamentals/fusion
        use_env: Apply SIGNAL_ENGINE_* overrides (after loading .env)

    Returns:
        EngineConfig
    """
    data: Dict[str, Any] = {}
    if path:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {path}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        logger.info(f"Loaded engine config from {path}")

    if use_env:
        load_dotenv()
        data = apply_env_overrides(data)

    return config_from_dict(data)


def config_to_dict(config: EngineConfig) -> Dict[str, Any]:
    """Nested plain-dict view of a config, suitable for YAML dumps"""
    def convert(obj):
        if is_dataclass(obj):
            return {f.name: convert(getattr(obj, f.name)) for f in fields(obj)}
        if isinstance(obj, tuple):
            return list(obj)
        return obj
    return convert(config)
