from __future__ import annotations

import argparse
import os
import sys
from dataclasses import fields
from typing import Any

from .config import Config, _base_type_name, _is_field_type, _parse_optional, _unwrap_optional
from .coordinator import MODE_COLLECT, run_mode

DEFAULT_TIMES = 1
# Set through --times instead of a generated --duration-seconds flag.
_DEDICATED_FIELDS = {"duration_seconds"}


def parse_times(value: str | None) -> int:
    """Whole seconds; anything unparsable or negative falls back to the default."""
    if value is None:
        return DEFAULT_TIMES
    try:
        seconds = int(str(value).strip())
    except ValueError:
        return DEFAULT_TIMES
    if seconds < 0:
        return DEFAULT_TIMES
    return seconds


def _optional_converter(target_name: str):
    def _convert(value: str) -> Any:
        try:
            return _parse_optional(value, target_name)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"invalid {target_name} value: {value!r}") from exc

    _convert.__name__ = target_name
    return _convert


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    for field in fields(Config):
        if field.name in _DEDICATED_FIELDS:
            continue
        name = field.name.replace("_", "-")
        _base_type, is_optional = _unwrap_optional(field.type)
        if is_optional:
            converter = _optional_converter(_base_type_name(field.type))
            parser.add_argument(f"--{name}", dest=field.name, default=None, type=converter)
        elif _is_field_type(field.type, bool, "bool"):
            group = parser.add_mutually_exclusive_group()
            group.add_argument(f"--{name}", dest=field.name, action="store_true")
            group.add_argument(f"--no-{name}", dest=field.name, action="store_false")
            parser.set_defaults(**{field.name: None})
        elif _is_field_type(field.type, int, "int"):
            parser.add_argument(f"--{name}", dest=field.name, default=None, type=int)
        elif _is_field_type(field.type, float, "float"):
            parser.add_argument(f"--{name}", dest=field.name, default=None, type=float)
        else:
            parser.add_argument(f"--{name}", dest=field.name, default=None)


def _cli_overrides(ns: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for field in fields(Config):
        if field.name in _DEDICATED_FIELDS:
            continue
        value = getattr(ns, field.name, None)
        if value is None:
            continue
        overrides[field.name] = value
    if getattr(ns, "times", None) is not None:
        overrides["duration_seconds"] = parse_times(ns.times)
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trade-sampler",
        description="Samples live trade prices with concurrent workers and aggregates their means.",
        exit_on_error=False,
    )
    parser.add_argument(
        "-m",
        "--mode",
        default=MODE_COLLECT,
        metavar="MODE",
        help="cache: sample the live feed; read: print the saved records",
    )
    parser.add_argument(
        "-t",
        "--times",
        default=None,
        metavar="NUMBER",
        help="number of seconds to listen (default: 1)",
    )
    _add_config_args(parser)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except argparse.ArgumentError as exc:
        print(f"{parser.prog}: error: {exc}", file=sys.stderr)
        return 0
    print(f"Mode: {args.mode}")
    try:
        config = Config.from_env_and_cli(_cli_overrides(args), os.environ).validate()
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 0
    return run_mode(args.mode, config)


if __name__ == "__main__":
    raise SystemExit(main())
