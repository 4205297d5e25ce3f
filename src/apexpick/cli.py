"""Command line interface for the apexpick prediction pipeline."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import inspect
import json
import signal
from pathlib import Path
from typing import Any, Callable, List, Protocol, Sequence, TypeVar

from .cache import schedule_cache_maintenance
from .composer import markets_frame
from .configuration import (
    ApexConfig,
    ConfigurationError,
    create_pipeline,
    load_apex_config,
    validate_apex_config,
)
from .errors import ValidationError
from .logging import configure_logging
from .models import EntitySpec, Fixture
from .pipeline import ApexPipeline, fixture_entities
from .scheduler import Scheduler
from .settings import ApexSettings, load_settings


@dataclasses.dataclass(slots=True)
class CommandContext:
    """Runtime objects shared across command handlers."""

    pipeline: ApexPipeline
    config: ApexConfig
    settings: ApexSettings


class ContextCommandHandler(Protocol):
    async def __call__(self, context: CommandContext, args: argparse.Namespace) -> None:
        """Execute a command that relies on a built pipeline."""


class ConfigCommandHandler(Protocol):
    async def __call__(self, config: ApexConfig, args: argparse.Namespace) -> None:
        """Execute a command that only needs configuration data."""


CommandHandler = ContextCommandHandler | ConfigCommandHandler

HandlerT = TypeVar("HandlerT", bound=Callable[..., Any])


@dataclasses.dataclass(slots=True)
class Subcommand:
    """Container describing a CLI sub-command."""

    name: str
    help: str
    configure: Callable[[argparse.ArgumentParser], None]
    handler: CommandHandler
    requires_pipeline: bool

    def add_to_parser(
        self,
        subparsers,
        parent: argparse.ArgumentParser,
    ) -> argparse.ArgumentParser:
        parser = subparsers.add_parser(self.name, parents=[parent], help=self.help)
        self.configure(parser)
        parser.set_defaults(
            handler=self.handler,
            command=self.name,
            requires_pipeline=self.requires_pipeline,
        )
        return parser


class SubcommandApp:
    """Registry that wires handlers into an :class:`argparse` parser."""

    def __init__(self, description: str | None = None) -> None:
        self._commands: list[Subcommand] = []
        self._description = description

    def command(
        self,
        name: str,
        *,
        help: str,
        configure: Callable[[argparse.ArgumentParser], None],
        requires_pipeline: bool = True,
    ) -> Callable[[HandlerT], HandlerT]:
        """Register ``handler`` as a sub-command with configuration callback."""

        def _decorator(handler: HandlerT) -> HandlerT:
            if not inspect.iscoroutinefunction(handler):
                raise TypeError(f"Command '{name}' must be an async function")
            if any(command.name == name for command in self._commands):
                raise ValueError(f"Command '{name}' is already registered")
            self._commands.append(
                Subcommand(
                    name=name,
                    help=help,
                    configure=configure,
                    handler=handler,
                    requires_pipeline=requires_pipeline,
                )
            )
            return handler

        return _decorator

    @property
    def commands(self) -> Sequence[Subcommand]:
        return tuple(self._commands)

    def build_parser(self) -> argparse.ArgumentParser:
        parent = argparse.ArgumentParser(add_help=False)
        parent.add_argument("--config", dest="config_file")
        parent.add_argument("--environment", dest="config_environment")
        parent.add_argument("--log-level")

        parser = argparse.ArgumentParser(description=self._description)
        subparsers = parser.add_subparsers(dest="command", required=True)
        for command in self._commands:
            command.add_to_parser(subparsers, parent)
        return parser


APP = SubcommandApp(description=__doc__)


def install_signal_handlers(stop_callback: Callable[[], None]) -> None:
    """Install POSIX signal handlers that trigger ``stop_callback``."""

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_callback)
        except NotImplementedError:  # pragma: no cover - Windows
            signal.signal(sig, lambda *_: stop_callback())


def load_fixtures(path: str | Path) -> List[Fixture]:
    """Read fixtures from a JSON file holding a list or ``{"fixtures": [...]}``."""

    with Path(path).open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if isinstance(data, dict):
        data = data.get("fixtures", [])
    if not isinstance(data, list):
        raise ValidationError(f"{path} must contain a list of fixtures")
    return [Fixture.from_mapping(item) for item in data]


def _configure_predict_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("fixtures", help="JSON file with fixtures and their market offers")
    output = parser.add_mutually_exclusive_group()
    output.add_argument("--json", dest="output", action="store_const", const="json")
    output.add_argument("--table", dest="output", action="store_const", const="table")
    parser.add_argument(
        "--apex",
        action="store_true",
        help="Only print the single best prediction",
    )
    parser.set_defaults(output="table")


def _configure_profile_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("sport")
    parser.add_argument("entity", help="Team or player name")
    parser.add_argument("--league")


def _configure_warm_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("fixtures", help="JSON file whose teams should be kept warm")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between warm-ups; 0 runs once (default from configuration)",
    )


def _configure_validate_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--warnings-as-errors",
        action="store_true",
        help="Exit with status 2 when warnings are present",
    )


def _print_table(predictions) -> None:
    frame = markets_frame(predictions)
    if frame.is_empty():
        print("No priced markets.")
        return
    for prediction in predictions:
        primary = prediction.primary_market
        print(
            f"{prediction.match:<40} {prediction.bet_type:<34} "
            f"@{primary.odds:>6.2f} edge {primary.edge:>6.2f}% "
            f"conf {primary.confidence_score:>5.1f} "
            f"stake {primary.recommended_stake.unit_description}"
        )
    print()
    print(frame)


@APP.command(
    "predict",
    help="Score fixtures and print ranked predictions",
    configure=_configure_predict_parser,
)
async def _cmd_predict(context: CommandContext, args: argparse.Namespace) -> None:
    try:
        fixtures = load_fixtures(args.fixtures)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise SystemExit(f"Could not read fixtures: {exc}") from exc

    predictions = await context.pipeline.predict(fixtures)
    if args.apex:
        predictions = predictions[:1]
    if args.output == "json":
        print(json.dumps([prediction.as_payload() for prediction in predictions], indent=2))
        return
    _print_table(predictions)


@APP.command(
    "profile",
    help="Aggregate and print the enriched profile for one team",
    configure=_configure_profile_parser,
)
async def _cmd_profile(context: CommandContext, args: argparse.Namespace) -> None:
    try:
        entity = EntitySpec(sport=args.sport, entity_name=args.entity, league=args.league)
    except ValidationError as exc:
        raise SystemExit(str(exc)) from exc
    aggregator = context.pipeline.aggregator
    profile = await aggregator.get_profile(entity)
    payload = profile.as_payload()
    payload["sourceHealth"] = aggregator.source_health()
    print(json.dumps(payload, indent=2))


@APP.command(
    "warm",
    help="Keep the profile cache warm for the teams in a fixtures file",
    configure=_configure_warm_parser,
)
async def _cmd_warm(context: CommandContext, args: argparse.Namespace) -> None:
    try:
        fixtures = load_fixtures(args.fixtures)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise SystemExit(f"Could not read fixtures: {exc}") from exc
    entities = fixture_entities(fixtures)
    pipeline = context.pipeline
    scheduler_cfg = context.config.scheduler
    interval = args.interval
    if interval is None:
        interval = scheduler_cfg.warmup_interval_seconds

    if interval <= 0:
        warmed = await pipeline.warm(entities)
        print(f"Warmed {warmed}/{len(entities)} entities")
        return

    cache_cfg = context.config.cache
    async with Scheduler() as scheduler:
        pipeline.schedule_warmup(
            scheduler,
            entities,
            interval=interval,
            jitter=scheduler_cfg.jitter_seconds,
            retries=scheduler_cfg.retries,
            retry_backoff=scheduler_cfg.retry_backoff,
        )
        schedule_cache_maintenance(
            scheduler,
            pipeline.aggregator.cache,
            interval=cache_cfg.sweep_interval_seconds,
            grace_seconds=cache_cfg.sweep_grace_seconds,
        )
        install_signal_handlers(scheduler.stop)
        print(f"Warming {len(entities)} entities every {interval:g}s. Press Ctrl+C to stop.")
        await scheduler.run()


@APP.command(
    "validate-config",
    help="Validate pipeline configuration",
    configure=_configure_validate_parser,
    requires_pipeline=False,
)
async def _cmd_validate_config(config: ApexConfig, args: argparse.Namespace) -> None:
    try:
        warnings = validate_apex_config(config)
    except ConfigurationError as exc:
        print("Configuration invalid:")
        for line in str(exc).splitlines()[1:]:
            print(line)
        raise SystemExit(1) from exc

    print(f"Configuration '{config.environment}' is valid.")
    if warnings:
        print("Warnings:")
        for message in warnings:
            print(f"- {message}")
        if getattr(args, "warnings_as_errors", False):
            raise SystemExit(2)


def _build_parser() -> argparse.ArgumentParser:
    return APP.build_parser()


async def _dispatch(args: argparse.Namespace, settings: ApexSettings) -> None:
    try:
        config = load_apex_config(
            base_path=args.config_file or settings.config_path,
            environment=args.config_environment or settings.environment,
        )
    except FileNotFoundError as exc:
        raise SystemExit(f"Configuration file not found: {exc}") from exc

    handler = args.handler
    if not getattr(args, "requires_pipeline", True):
        await handler(config, args)
        return

    try:
        warnings = validate_apex_config(config)
    except ConfigurationError as exc:
        raise SystemExit(str(exc)) from exc

    if warnings:
        for message in warnings:
            print(f"[config-warning] {message}")

    context = CommandContext(
        pipeline=create_pipeline(config, settings=settings),
        config=config,
        settings=settings,
    )
    await handler(context, args)


def main(argv: Sequence[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = load_settings()
    configure_logging(args.log_level or settings.log_level)
    asyncio.run(_dispatch(args, settings))


__all__ = ["APP", "load_fixtures", "main"]
