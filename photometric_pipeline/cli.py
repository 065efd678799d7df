"""Command-line interface wiring for the photometric pipeline."""
from __future__ import annotations

import argparse
import json
import logging
import uuid
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Tuple

import yaml

from .composer import DEFAULT_ORDER, PIPELINE_PRESETS, OrderedPipeline
from .pipeline import (
    _process_image_worker,
    _wrap_with_progress,
    collect_images,
    ensure_output_path,
    process_single_image,
)
from .profiles import DEFAULT_PROFILE_NAME, EXECUTION_PROFILES
from .stages import Stage, StageKind

LOGGER = logging.getLogger("photometric_pipeline")


def _load_config_data(path: Path) -> Mapping[str, Any]:
    """Load configuration from a JSON or YAML file.

    Args:
        path: Path to configuration file (.json, .yaml, or .yml).

    Returns:
        Dictionary mapping configuration keys to values.

    Raises:
        FileNotFoundError: If the configuration file doesn't exist.
        ValueError: If file content is not a valid mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(path.read_text())
        else:
            data = json.loads(path.read_text())
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ValueError(f"Unable to parse configuration file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Configuration file {path} must contain a mapping of option names to values")
    return data


def _normalise_config_keys(raw: Mapping[str, Any]) -> dict[str, Any]:
    normalised: dict[str, Any] = {}
    for key, value in raw.items():
        if not isinstance(key, str):
            raise ValueError("Configuration keys must be strings")
        normalised[key.replace("-", "_")] = value
    return normalised


def _build_parser_aliases(parser: argparse.ArgumentParser) -> tuple[dict[str, argparse.Action], dict[str, str]]:
    """Map destination names and option aliases to parser actions."""

    dest_to_action: dict[str, argparse.Action] = {}
    alias_to_dest: dict[str, str] = {}
    actions = list(parser._get_positional_actions()) + list(parser._get_optional_actions())
    for action in actions:
        if action.dest in {argparse.SUPPRESS, "help", "config"}:
            continue
        dest_to_action[action.dest] = action
        alias_to_dest[action.dest.replace("-", "_")] = action.dest
        for option_string in action.option_strings:
            alias = option_string.lstrip("-").replace("-", "_")
            alias_to_dest[alias] = action.dest
    return dest_to_action, alias_to_dest


_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def _coerce_config_value(action: argparse.Action, value: Any, *, source: Path, key: str) -> Any:
    """Convert configuration values so they match argparse expectations."""

    if value is None:
        return None

    if isinstance(action, (argparse._StoreTrueAction, argparse._StoreFalseAction)):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise ValueError(f"Invalid boolean for '{key}' in {source}: expected true/false value, got {value!r}")

    # Lists are accepted for the stage order as well as comma-separated strings.
    if isinstance(value, (list, tuple)):
        value = ",".join(str(item) for item in value)

    if action.type is not None:
        try:
            converted = action.type(value)
        except (TypeError, ValueError, argparse.ArgumentTypeError) as exc:
            raise ValueError(f"Invalid value for '{key}' in {source}: {exc}") from exc
    else:
        converted = value

    if action.choices is not None and converted not in action.choices:
        raise ValueError(
            f"Invalid value for '{key}' in {source}: {converted!r} (choose from {sorted(action.choices)})"
        )

    return converted


def parse_order(value: str) -> Tuple[StageKind, ...]:
    """Parse a comma-separated stage order such as ``"contrast,saturation"``."""

    tokens = [token.strip() for token in str(value).split(",") if token.strip()]
    try:
        return tuple(StageKind.parse(token) for token in tokens)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def default_output_folder(input_path: Path) -> Path:
    """Return the default output location for a given input file or folder."""

    if input_path.suffix and not input_path.is_dir():
        return input_path.parent / f"{input_path.parent.name or 'images'}_adjusted"
    if input_path.name:
        return input_path.parent / f"{input_path.name}_adjusted"
    return input_path / "adjusted_output"


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Apply an ordered, gamma-correct photometric adjustment pipeline to images.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional configuration file (JSON, or YAML with a .yaml/.yml suffix)",
    )
    parser.add_argument("input", type=Path, help="Image file or folder of images to process")
    parser.add_argument(
        "output",
        type=Path,
        nargs="?",
        default=None,
        help="Folder where processed files will be written. Defaults to '<input>_adjusted' next to the input.",
    )
    parser.add_argument(
        "--preset",
        default="neutral",
        choices=sorted(PIPELINE_PRESETS.keys()),
        help="Pipeline preset that provides stage order and starting values",
    )
    parser.add_argument(
        "--profile",
        default=DEFAULT_PROFILE_NAME,
        choices=sorted(EXECUTION_PROFILES.keys()),
        help="Execution profile balancing fidelity and speed",
    )
    parser.add_argument(
        "--order",
        type=parse_order,
        default=None,
        help="Comma-separated stage order, e.g. 'hue,contrast,saturation'. Defaults to the preset order.",
    )
    parser.add_argument("--brightness", type=float, default=None, help="Brightness offset (-100 to 100)")
    parser.add_argument("--contrast", type=float, default=None, help="Contrast around mid-gray (-100 to 100)")
    parser.add_argument("--saturation", type=float, default=None, help="Saturation change (-100 to 100)")
    parser.add_argument("--vibrance", type=float, default=None, help="Muted-color saturation change (-100 to 100)")
    parser.add_argument("--hue", type=float, default=None, help="Hue rotation in degrees (-180 to 180)")
    parser.add_argument(
        "--no-gamut-clip",
        action="store_true",
        help="Only clamp at the final encode instead of after every stage",
    )
    parser.add_argument(
        "--recursive",
        action="store_true",
        help="Process folders recursively and mirror the directory tree in the output",
    )
    parser.add_argument(
        "--suffix",
        default="_adjusted",
        help="Filename suffix appended before the extension for processed files",
    )
    parser.add_argument("--overwrite", action="store_true", help="Allow overwriting existing files in the destination")
    parser.add_argument(
        "--max-side",
        type=int,
        default=None,
        help="Downsize so the longest edge is at most this many pixels (overrides the profile)",
    )
    parser.add_argument("--quality", type=int, default=95, help="Quality for JPEG/WebP output")
    parser.add_argument(
        "--tile-rows",
        type=int,
        default=None,
        help="Process each image in horizontal tiles of this many rows (overrides the profile)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Preview the work without writing any files")
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress reporting (useful for minimal or non-interactive environments)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes for parallel image processing",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )

    argv_list = list(argv) if argv is not None else None

    config_probe, _ = parser.parse_known_args(argv_list)
    if config_probe.config is not None:
        try:
            raw_config = _load_config_data(config_probe.config)
            normalised_config = _normalise_config_keys(raw_config)
            dest_to_action, alias_to_dest = _build_parser_aliases(parser)

            converted_defaults: dict[str, Any] = {}
            for key, value in normalised_config.items():
                dest = alias_to_dest.get(key)
                if dest is None:
                    raise ValueError(f"Unknown configuration option '{key}' in {config_probe.config}")
                action = dest_to_action[dest]
                converted_defaults[dest] = _coerce_config_value(
                    action, value, source=config_probe.config, key=key
                )

            parser.set_defaults(**converted_defaults)
        except (OSError, ValueError) as exc:
            parser.error(str(exc))

    args = parser.parse_args(argv_list)
    if args.workers < 1:
        parser.error("--workers must be a positive integer")
    if args.tile_rows is not None and args.tile_rows < 1:
        parser.error("--tile-rows must be a positive integer")
    if args.max_side is not None and args.max_side < 1:
        parser.error("--max-side must be a positive integer")
    if not 1 <= args.quality <= 100:
        parser.error("--quality must be between 1 and 100")
    if args.output is None:
        args.output = default_output_folder(args.input)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s: %(message)s")
    return args


def build_pipeline(args: argparse.Namespace) -> OrderedPipeline:
    """Construct the ordered pipeline from a preset and CLI overrides.

    The preset supplies the order and starting values. ``--order`` replaces the
    order, and per-stage flags replace values. A stage given a value but absent
    from the order is appended so the value is never silently ignored.
    """
    preset = PIPELINE_PRESETS[args.preset]
    values = {stage.kind: stage.value for stage in preset}
    order: List[StageKind] = list(args.order) if args.order else list(preset.order or DEFAULT_ORDER)
    for kind in StageKind:
        override = getattr(args, kind.value, None)
        if override is None:
            continue
        values[kind] = override
        if kind not in order:
            LOGGER.debug("Appending %s to the stage order", kind.value)
            order.append(kind)
    pipeline = OrderedPipeline(
        tuple(Stage(kind, values.get(kind, 0.0)) for kind in order),
        clip_between_stages=not getattr(args, "no_gamut_clip", False),
    )
    LOGGER.debug("Using pipeline: %s", pipeline.describe())
    return pipeline


def _ensure_non_overlapping(input_root: Path, output_root: Path) -> None:
    def _contains(parent: Path, child: Path) -> bool:
        try:
            child.relative_to(parent)
        except ValueError:
            return False
        return True

    if input_root == output_root:
        raise SystemExit("Output folder must be different from the input folder to avoid self-overwrites.")
    if _contains(input_root, output_root):
        raise SystemExit(
            "Output folder cannot be located inside the input folder; choose a sibling or separate directory."
        )
    if _contains(output_root, input_root):
        raise SystemExit(
            "Input folder cannot be located inside the output folder; choose non-overlapping directories."
        )


def run_pipeline(args: argparse.Namespace) -> int:
    """Run the batch processor with the provided arguments."""

    run_id = uuid.uuid4().hex
    pipeline = build_pipeline(args)
    profile = EXECUTION_PROFILES[args.profile]
    input_path = args.input.resolve()
    output_root = args.output.resolve()

    if not input_path.exists():
        raise FileNotFoundError(f"Input not found: {input_path}")

    if input_path.is_file():
        input_root = input_path.parent
        images = [input_path]
        recursive = False
    else:
        input_root = input_path
        _ensure_non_overlapping(input_root, output_root)
        images = sorted(collect_images(input_root, args.recursive))
        recursive = args.recursive

    LOGGER.info(
        "Starting run %s for %s using '%s' profile: %s",
        run_id,
        input_path,
        profile.name,
        pipeline.describe(),
    )
    if not images:
        LOGGER.warning("No images found in %s (run %s)", input_root, run_id)
        return 0

    if not args.dry_run:
        output_root.mkdir(parents=True, exist_ok=True)

    LOGGER.info("Found %s image(s) to process", len(images))
    processed = 0
    worker_kwargs = {
        "max_side": args.max_side,
        "tile_rows": args.tile_rows,
        "quality": args.quality,
        "dry_run": args.dry_run,
        "profile": profile,
    }

    pending = []
    for image_path in images:
        destination = ensure_output_path(
            input_root,
            output_root,
            image_path,
            args.suffix,
            recursive,
            create=not args.dry_run,
        )
        if destination.exists() and not args.overwrite and not args.dry_run:
            LOGGER.warning("Skipping %s (exists, use --overwrite to replace)", destination)
            continue
        if args.dry_run:
            LOGGER.info("Dry run: would process %s -> %s", image_path, destination)
        pending.append((image_path, destination))

    show_progress = not getattr(args, "no_progress", False)
    if args.workers <= 1 or len(pending) <= 1:
        for image_path, destination in _wrap_with_progress(
            pending, total=len(pending), description="Processing images", enabled=show_progress
        ):
            if process_single_image(image_path, destination, pipeline, **worker_kwargs):
                processed += 1
    else:
        with ProcessPoolExecutor(max_workers=args.workers) as executor:
            futures = [
                executor.submit(_process_image_worker, image_path, destination, pipeline, **worker_kwargs)
                for image_path, destination in pending
            ]
            for future in _wrap_with_progress(
                as_completed(futures), total=len(futures), description="Processing images", enabled=show_progress
            ):
                if future.result():
                    processed += 1

    LOGGER.info("Finished run %s; processed %s image(s)", run_id, processed)
    return processed


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    run_pipeline(args)
    return 0


__all__ = [
    "build_pipeline",
    "default_output_folder",
    "main",
    "parse_args",
    "parse_order",
    "run_pipeline",
]
