from __future__ import annotations

import datetime as dt
import json
import logging
import os
import re
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    Mapping,
    MutableMapping,
    Sequence,
)

import yaml
from pydantic import BaseModel, Field

from .errors import ConfigurationError
from .models import SourceQuality

ENVIRONMENT_VARIABLE = "APEXPICK_ENV"
EXTRA_CONFIG_VARIABLE = "APEXPICK_EXTRA_CONFIG"
ENV_OVERRIDE_PREFIX = "APEXPICK__"

if TYPE_CHECKING:  # pragma: no cover - imported for type checking only
    from .adapters.base import SourceAdapter
    from .aggregator import SourceAggregator
    from .cache import TTLCache
    from .composer import PredictionStore
    from .pipeline import ApexPipeline
    from .settings import ApexSettings

logger = logging.getLogger(__name__)


class AdapterRuntimeConfig(BaseModel):
    """Runtime attributes applied to instantiated adapters."""

    timeout_seconds: float | None = None
    rate_limit_per_second: float | None = None


class AdapterConfig(BaseModel):
    """Configuration describing how to build one source adapter."""

    type: str
    name: str | None = None
    enabled: bool = True
    quality: SourceQuality | None = None
    sports: list[str] | None = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    runtime: AdapterRuntimeConfig = Field(default_factory=AdapterRuntimeConfig)


class CacheConfig(BaseModel):
    ttl_seconds: float = 300.0
    sweep_interval_seconds: float = 60.0
    sweep_grace_seconds: float = 300.0


class AggregationConfig(BaseModel):
    """Per-call adapter deadline and explicit sport routes."""

    timeout_seconds: float | None = None
    routes: Dict[str, list[str]] = Field(default_factory=dict)


class ProbabilityConfig(BaseModel):
    max_goals: int = 10
    situational_signals: bool = True


class StakingConfig(BaseModel):
    stake_cap: float = 5.0
    kelly_multiplier: float = 0.25


class RiskConfig(BaseModel):
    confidence_level: float = 0.95
    low_quality_threshold: float = 50.0
    marginal_edge: float = 2.0
    outsider_probability: float = 40.0


class CompositionConfig(BaseModel):
    min_confidence: float = 55.0
    prediction_ttl_seconds: int = 86_400


class SchedulerConfig(BaseModel):
    """Settings controlling the cache warm-up job."""

    warmup_interval_seconds: float = 240.0
    jitter_seconds: float = 0.0
    retries: int = 3
    retry_backoff: float = 2.0


class ApexConfig(BaseModel):
    """Aggregate configuration for the pipeline."""

    environment: str = "default"
    adapters: list[AdapterConfig] = Field(default_factory=list)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    probability: ProbabilityConfig = Field(default_factory=ProbabilityConfig)
    staking: StakingConfig = Field(default_factory=StakingConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    composition: CompositionConfig = Field(default_factory=CompositionConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise TypeError(f"Configuration at {path} must be a mapping")
    return dict(data)


def _merge_layers(base: Dict[str, Any], layer: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(base)
    for key, value in layer.items():
        if (
            key in merged
            and isinstance(merged[key], Mapping)
            and isinstance(value, Mapping)
        ):
            merged[key] = _merge_layers(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def _resolve_env_tokens(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_PATTERN.sub(lambda match: os.getenv(match.group(1), ""), value)
    if isinstance(value, Mapping):
        return {k: _resolve_env_tokens(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_resolve_env_tokens(item) for item in value]
    return value


def _coerce_env_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        lowered = raw.lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        return raw


def _set_nested(mapping: MutableMapping[str, Any], path: Iterable[str], value: Any) -> None:
    segments = list(path)
    if not segments:
        return
    head, *tail = segments
    key = head.lower().replace("-", "_")
    if not tail:
        mapping[key] = value
        return
    child = mapping.get(key)
    child = dict(child) if isinstance(child, MutableMapping) else {}
    mapping[key] = child
    _set_nested(child, tail, value)


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    updated = dict(data)
    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_OVERRIDE_PREFIX):
            continue
        path = [segment for segment in key[len(ENV_OVERRIDE_PREFIX) :].split("__") if segment]
        if not path:
            continue
        _set_nested(updated, path, _coerce_env_value(raw_value))
    return updated


def load_apex_config(
    *,
    base_path: str | os.PathLike[str] | None = None,
    environment: str | None = None,
    extra_paths: Sequence[str | os.PathLike[str]] | None = None,
) -> ApexConfig:
    """Load layered configuration for the pipeline.

    The loader merges ``config/apexpick.yaml`` with an optional
    environment-specific overlay (``config/apexpick.<env>.yaml``), extra
    override files, and environment variables prefixed ``APEXPICK__``
    (``APEXPICK__staking__stake_cap=3``).  ``${VAR}`` tokens are replaced with
    environment values last, which is how adapter credentials get in.
    """

    config_path = Path(base_path or "config/apexpick.yaml")
    data = _load_yaml(config_path)

    env_name = environment or os.getenv(ENVIRONMENT_VARIABLE) or data.get("environment")
    if isinstance(env_name, str):
        env_path = config_path.with_name(f"{config_path.stem}.{env_name}{config_path.suffix}")
        if env_path.exists():
            data = _merge_layers(data, _load_yaml(env_path))
        data["environment"] = env_name

    merged = dict(data)
    override_sources: list[Path] = []
    if extra_paths:
        override_sources.extend(Path(path) for path in extra_paths)
    env_overrides = os.getenv(EXTRA_CONFIG_VARIABLE)
    if env_overrides:
        override_sources.extend(Path(token) for token in env_overrides.split(os.pathsep) if token)

    for override in override_sources:
        if override.exists():
            merged = _merge_layers(merged, _load_yaml(override))
        else:
            logger.warning("Configuration override %s does not exist", override)

    merged = _apply_env_overrides(merged)
    merged = _resolve_env_tokens(merged)

    return ApexConfig.model_validate(merged)


def validate_apex_config(config: ApexConfig) -> list[str]:
    """Validate an :class:`ApexConfig` instance.

    Returns a list of warning messages and raises
    :class:`ConfigurationError` listing every fatal problem.
    """

    from .aggregator import ADAPTER_REGISTRY

    errors: list[str] = []
    warnings: list[str] = []

    if not config.adapters:
        errors.append("at least one adapter must be defined")
    else:
        enabled = [adapter for adapter in config.adapters if adapter.enabled]
        if not enabled:
            errors.append("all adapters are disabled; enable at least one")
        names: set[str] = set()
        for index, adapter in enumerate(config.adapters):
            label = adapter.name or adapter.type or f"#{index + 1}"
            if not adapter.type.strip():
                errors.append(f"adapter #{index + 1} is missing a type")
            elif adapter.type.lower() not in ADAPTER_REGISTRY:
                errors.append(f"adapter '{label}' has unknown type '{adapter.type}'")
            if adapter.enabled:
                if label in names:
                    errors.append(f"adapter name '{label}' is used more than once")
                names.add(label)
            for field_name in ("timeout_seconds", "rate_limit_per_second"):
                value = getattr(adapter.runtime, field_name)
                if value is not None and value < 0:
                    errors.append(
                        f"adapter '{label}' runtime field '{field_name}' must be non-negative"
                    )
            headers = adapter.parameters.get("headers") or {}
            if adapter.enabled and isinstance(headers, Mapping):
                for header, value in headers.items():
                    if not str(value).strip():
                        warnings.append(
                            f"adapter '{label}' header '{header}' is empty; missing credential?"
                        )
        for sport, route in config.aggregation.routes.items():
            for name in route:
                if name not in names:
                    warnings.append(
                        f"aggregation.routes.{sport} references '{name}', which is not an enabled adapter"
                    )

    cache = config.cache
    if cache.ttl_seconds <= 0:
        errors.append("cache.ttl_seconds must be greater than zero")
    if cache.sweep_interval_seconds <= 0:
        errors.append("cache.sweep_interval_seconds must be greater than zero")
    if cache.sweep_grace_seconds < 0:
        errors.append("cache.sweep_grace_seconds must be non-negative")

    timeout = config.aggregation.timeout_seconds
    if timeout is not None and timeout <= 0:
        errors.append("aggregation.timeout_seconds must be greater than zero")

    if config.probability.max_goals < 1:
        errors.append("probability.max_goals must be at least 1")

    staking = config.staking
    if staking.stake_cap <= 0:
        errors.append("staking.stake_cap must be greater than zero")
    elif staking.stake_cap > 10:
        warnings.append("staking.stake_cap above 10% of bankroll is unusually aggressive")
    if not 0 < staking.kelly_multiplier <= 1:
        errors.append("staking.kelly_multiplier must be within (0, 1]")
    elif staking.kelly_multiplier > 0.5:
        warnings.append("staking.kelly_multiplier above half Kelly increases drawdown risk")

    risk = config.risk
    if not 0 < risk.confidence_level < 1:
        errors.append("risk.confidence_level must be within (0, 1)")
    if not 0 <= risk.low_quality_threshold <= 100:
        errors.append("risk.low_quality_threshold must be between 0 and 100")

    composition = config.composition
    if not 1 <= composition.min_confidence <= 100:
        errors.append("composition.min_confidence must be between 1 and 100")
    if composition.prediction_ttl_seconds <= 0:
        errors.append("composition.prediction_ttl_seconds must be greater than zero")

    scheduler = config.scheduler
    if scheduler.warmup_interval_seconds <= 0:
        errors.append("scheduler.warmup_interval_seconds must be greater than zero")
    elif scheduler.warmup_interval_seconds >= cache.ttl_seconds > 0:
        warnings.append(
            "scheduler warm-up interval is not shorter than the cache TTL; entries will lapse between runs"
        )
    if scheduler.jitter_seconds < 0:
        errors.append("scheduler.jitter_seconds must be non-negative")
    if scheduler.retries < 0:
        errors.append("scheduler.retries must be non-negative")
    if scheduler.retry_backoff < 0:
        errors.append("scheduler.retry_backoff must be non-negative")

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise ConfigurationError(f"Configuration validation failed:\n{bullet_list}")

    return warnings


def create_adapters_from_config(
    config: ApexConfig,
    *,
    settings: "ApexSettings" | None = None,
) -> list["SourceAdapter"]:
    """Instantiate the enabled adapters in declaration (priority) order."""

    from .adapters.common import AsyncHTTPClient
    from .adapters.espn import EspnNewsAdapter
    from .adapters.http import HttpJsonAdapter
    from .aggregator import ADAPTER_REGISTRY

    adapters: list["SourceAdapter"] = []
    for adapter_cfg in config.adapters:
        if not adapter_cfg.enabled:
            continue
        adapter_cls = ADAPTER_REGISTRY.get(adapter_cfg.type.lower())
        if not adapter_cls:
            raise ConfigurationError(f"Unknown adapter type: {adapter_cfg.type}")
        parameters = dict(adapter_cfg.parameters)
        runtime = adapter_cfg.runtime
        if runtime.rate_limit_per_second is not None:
            parameters["rate_limit_per_second"] = runtime.rate_limit_per_second
        if settings is not None and issubclass(adapter_cls, (HttpJsonAdapter, EspnNewsAdapter)):
            parameters.setdefault(
                "client",
                AsyncHTTPClient(timeout=settings.http_timeout, user_agent=settings.user_agent),
            )
        try:
            adapter = adapter_cls(**parameters)
        except TypeError as exc:
            raise ConfigurationError(
                f"Invalid parameters for adapter '{adapter_cfg.name or adapter_cfg.type}': {exc}"
            ) from exc
        adapter.configure(
            name=adapter_cfg.name,
            quality=adapter_cfg.quality,
            sports=adapter_cfg.sports,
            timeout_seconds=runtime.timeout_seconds,
        )
        adapters.append(adapter)
    return adapters


def create_cache(config: ApexConfig) -> "TTLCache":
    from .cache import TTLCache

    return TTLCache(ttl_seconds=config.cache.ttl_seconds)


def create_aggregator(
    config: ApexConfig,
    *,
    settings: "ApexSettings" | None = None,
    cache: "TTLCache" | None = None,
) -> "SourceAggregator":
    """Build a :class:`SourceAggregator` wired to configured adapters."""

    from .aggregator import RoutingTable, SourceAggregator

    routing = RoutingTable(
        create_adapters_from_config(config, settings=settings),
        routes=config.aggregation.routes,
    )
    return SourceAggregator(
        routing,
        cache=cache if cache is not None else create_cache(config),
        timeout_seconds=config.aggregation.timeout_seconds,
    )


def create_pipeline(
    config: ApexConfig,
    *,
    settings: "ApexSettings" | None = None,
    aggregator: "SourceAggregator" | None = None,
    store: "PredictionStore" | None = None,
) -> "ApexPipeline":
    """Construct the full pipeline with configuration defaults."""

    from .composer import PredictionComposer
    from .markets import MarketScorer, MatchModel
    from .pipeline import ApexPipeline
    from .risk import RiskAssessor
    from .staking import StakeSizer

    risk = config.risk
    scorer = MarketScorer(
        match_model=MatchModel(
            max_goals=config.probability.max_goals,
            situational=config.probability.situational_signals,
        ),
        stake_sizer=StakeSizer(
            stake_cap=config.staking.stake_cap,
            kelly_multiplier=config.staking.kelly_multiplier,
        ),
    )
    composer = PredictionComposer(
        min_confidence=config.composition.min_confidence,
        risk_assessor=RiskAssessor(
            risk.confidence_level,
            low_quality_threshold=risk.low_quality_threshold,
            marginal_edge=risk.marginal_edge,
            outsider_probability=risk.outsider_probability,
        ),
    )
    return ApexPipeline(
        aggregator or create_aggregator(config, settings=settings),
        scorer=scorer,
        composer=composer,
        store=store,
        prediction_ttl=dt.timedelta(seconds=config.composition.prediction_ttl_seconds),
    )


__all__ = [
    "AdapterConfig",
    "AdapterRuntimeConfig",
    "AggregationConfig",
    "ApexConfig",
    "CacheConfig",
    "CompositionConfig",
    "ConfigurationError",
    "ProbabilityConfig",
    "RiskConfig",
    "SchedulerConfig",
    "StakingConfig",
    "create_adapters_from_config",
    "create_aggregator",
    "create_cache",
    "create_pipeline",
    "load_apex_config",
    "validate_apex_config",
]
