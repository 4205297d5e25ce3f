"""
apexpick: aggregate sports data sources and score betting markets for edge.

The package gathers team data from several providers concurrently, derives
advanced statistics, estimates probabilities for every priced market and
composes the ranked "Apex" prediction with stake sizing and risk figures.
"""

from importlib.metadata import PackageNotFoundError, version

try:  # pragma: no cover - exercised in packaging workflows
    __version__ = version("apexpick")
except PackageNotFoundError:  # pragma: no cover - local editable installs
    __version__ = "0.0.0"

_EXPORTS = {
    # Pipeline
    "ApexPipeline": ".pipeline",
    "SourceAggregator": ".aggregator",
    "TTLCache": ".cache",
    "derive_stats": ".stats",
    "StatsDeriver": ".stats",
    "ProbabilityModel": ".probability",
    "EdgeCalculator": ".probability",
    "StakeSizer": ".staking",
    "RiskAssessor": ".risk",
    "PredictionComposer": ".composer",
    "MarketScorer": ".markets",
    # Data model
    "EntitySpec": ".models",
    "EnrichedProfile": ".models",
    "Fixture": ".models",
    "MarketOffer": ".models",
    "BettingMarket": ".models",
    "ApexPrediction": ".models",
    # Adapters
    "SourceAdapter": ".adapters",
    "StaticAdapter": ".adapters",
    "HttpJsonAdapter": ".adapters",
    "EspnNewsAdapter": ".adapters",
    # Configuration
    "load_apex_config": ".configuration",
    "create_pipeline": ".configuration",
    "configure_logging": ".logging",
    # Errors
    "ApexError": ".errors",
    "ValidationError": ".errors",
    "SourceUnavailable": ".errors",
    "InsufficientData": ".errors",
    "StakeCapViolation": ".errors",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> object:  # pragma: no cover - thin lazy importer
    from importlib import import_module

    target_module = _EXPORTS.get(name)
    if not target_module:
        raise AttributeError(f"module {__name__} has no attribute {name}")
    module = import_module(target_module, __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


def __dir__() -> list[str]:  # pragma: no cover - trivial
    return sorted(list(globals().keys()) + __all__)
