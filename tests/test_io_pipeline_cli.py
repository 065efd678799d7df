from __future__ import annotations

from pathlib import Path
import json
import subprocess
import sys
from typing import Any, Dict

import numpy as np
import pytest
from PIL import Image

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import photometric_pipeline as pp  # noqa: E402  # pylint: disable=wrong-import-position
from photometric_pipeline import cli, io_utils  # noqa: E402  # pylint: disable=wrong-import-position
from photometric_pipeline.stages import StageKind  # noqa: E402

try:
    from .documentation import documents
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import documents


def _create_sample_image(path: Path, color=(200, 100, 50), size=(4, 3)) -> None:
    Image.new("RGB", size, color=color).save(path)


def test_public_api_exports_entry_points():
    for name in ("run_pipeline", "compose_pipeline", "transform_buffer", "kernel_products"):
        assert name in pp.__all__


def test_module_entry_point_prints_help():
    result = subprocess.run(
        [sys.executable, "-m", "photometric_pipeline", "--help"],
        capture_output=True,
        text=True,
        check=False,
        cwd=PROJECT_ROOT,
    )

    assert result.returncode == 0
    assert "gamma-correct" in result.stdout


def test_png_round_trip_keeps_pixels_and_alpha(tmp_path: Path):
    pixels = np.arange(2 * 3 * 3, dtype=np.uint8).reshape(2, 3, 3)
    alpha = np.full((2, 3), 77, dtype=np.uint8)
    buffer = pp.ImageBuffer(pixels, alpha)
    destination = tmp_path / "nested" / "frame.png"

    io_utils.save_image_buffer(destination, buffer)
    restored = io_utils.load_image_buffer(destination)

    assert restored == buffer
    assert not list(destination.parent.glob(".frame*"))


def test_jpeg_output_drops_alpha(tmp_path: Path):
    buffer = pp.ImageBuffer(np.full((4, 4, 3), 90, dtype=np.uint8), np.zeros((4, 4), dtype=np.uint8))
    destination = tmp_path / "frame.jpg"

    io_utils.save_image_buffer(destination, buffer, quality=90)

    with Image.open(destination) as image:
        assert image.mode == "RGB"


def test_unknown_output_suffix_is_rejected(tmp_path: Path):
    buffer = pp.ImageBuffer(np.zeros((1, 1, 3), dtype=np.uint8))

    with pytest.raises(ValueError):
        io_utils.save_image_buffer(tmp_path / "frame.xyz", buffer)


def test_load_respects_max_side(tmp_path: Path):
    source = tmp_path / "wide.png"
    _create_sample_image(source, size=(20, 12))

    buffer = io_utils.load_image_buffer(source, max_side=5)

    assert buffer.size == (5, 3)


def test_transport_encode_keeps_size_and_alpha():
    image = Image.new("RGBA", (8, 6), color=(10, 200, 30, 40))

    encoded = io_utils.transport_encode(image, 85)

    assert encoded.size == (8, 6)
    assert encoded.mode == "RGBA"
    assert np.all(np.array(encoded)[..., 3] == 40)
    with pytest.raises(ValueError):
        io_utils.transport_encode(image, 0)


def test_processing_context_cleans_up_on_failure(tmp_path: Path):
    destination = tmp_path / "frame.png"
    destination.write_bytes(b"original-destination")

    class Boom(RuntimeError):
        pass

    with pytest.raises(Boom):
        with io_utils.ProcessingContext(destination) as staged:
            staged.write_bytes(b"partial")
            raise Boom("simulated failure")

    assert destination.read_bytes() == b"original-destination"
    assert not list(tmp_path.glob(".frame*"))


@documents("Saved pixels equal the composed pipeline applied to the source pixels")
def test_process_single_image_writes_adjusted_pixels(tmp_path: Path):
    source = tmp_path / "frame.png"
    destination = tmp_path / "out" / "frame_adjusted.png"
    _create_sample_image(source)
    pipeline = pp.OrderedPipeline.from_order(["contrast", "saturation"], {"contrast": 50, "saturation": 50})

    written = pp.process_single_image(source, destination, pipeline)

    assert written is True
    restored = io_utils.load_image_buffer(destination)
    assert restored.pixel(0, 0) == tuple(pipeline([200, 100, 50]).tolist())


def test_process_single_image_dry_run_writes_nothing(tmp_path: Path):
    source = tmp_path / "frame.png"
    destination = tmp_path / "out" / "frame_adjusted.png"
    _create_sample_image(source)

    written = pp.process_single_image(source, destination, {"hue": 30}, dry_run=True)

    assert written is False
    assert not destination.exists()


def test_preview_profile_downsizes_and_tiles(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    source = tmp_path / "large.png"
    destination = tmp_path / "out" / "large_adjusted.png"
    _create_sample_image(source, size=(3000, 10))
    seen: Dict[str, Any] = {}
    original = pp.pipeline.apply_to_buffer

    def spy_apply(buffer, fn, **kwargs):
        seen.update(kwargs)
        seen["size"] = buffer.size
        return original(buffer, fn, **kwargs)

    monkeypatch.setattr(pp.pipeline, "apply_to_buffer", spy_apply)

    pp.process_single_image(source, destination, [], profile=pp.EXECUTION_PROFILES["preview"])

    assert seen["size"][0] == 2048
    assert seen["tile_rows"] == 256


def test_collect_images_filters_suffixes(tmp_path: Path):
    (tmp_path / "nested").mkdir()
    _create_sample_image(tmp_path / "a.png")
    _create_sample_image(tmp_path / "nested" / "b.jpg")
    (tmp_path / "notes.txt").write_text("skip")

    flat = sorted(p.name for p in pp.collect_images(tmp_path, recursive=False))
    deep = sorted(p.name for p in pp.collect_images(tmp_path, recursive=True))

    assert flat == ["a.png"]
    assert deep == ["a.png", "b.jpg"]


def test_run_pipeline_processes_folder(tmp_path: Path):
    input_dir = tmp_path / "input"
    output_dir = tmp_path / "output"
    input_dir.mkdir()
    for index in range(2):
        _create_sample_image(input_dir / f"frame_{index}.png")

    args = cli.parse_args([str(input_dir), str(output_dir), "--contrast", "40", "--no-progress"])
    processed = cli.run_pipeline(args)

    assert processed == 2
    assert sorted(p.name for p in output_dir.glob("*.png")) == ["frame_0_adjusted.png", "frame_1_adjusted.png"]


def test_run_pipeline_parallel_execution(tmp_path: Path):
    input_dir = tmp_path / "input"
    output_dir = tmp_path / "output"
    input_dir.mkdir()
    for index in range(3):
        _create_sample_image(input_dir / f"frame_{index}.png")

    args = cli.parse_args([str(input_dir), str(output_dir), "--workers", "2", "--no-progress"])

    assert cli.run_pipeline(args) == 3


def test_run_pipeline_skips_existing_without_overwrite(tmp_path: Path):
    input_dir = tmp_path / "input"
    output_dir = tmp_path / "output"
    input_dir.mkdir()
    output_dir.mkdir()
    _create_sample_image(input_dir / "frame.png")
    existing = output_dir / "frame_adjusted.png"
    existing.write_bytes(b"keep")

    args = cli.parse_args([str(input_dir), str(output_dir), "--no-progress"])

    assert cli.run_pipeline(args) == 0
    assert existing.read_bytes() == b"keep"


@documents("Dry runs report the plan without touching the output folder")
def test_run_pipeline_dry_run_creates_no_outputs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    input_dir = tmp_path / "in"
    output_dir = tmp_path / "out"
    input_dir.mkdir()
    sample = input_dir / "sample.png"
    _create_sample_image(sample)
    calls: Dict[str, Any] = {"items": []}

    def stub_progress(iterable, *, total=None, description=None, enabled=True):
        calls["total"] = total
        calls["description"] = description
        for item in iterable:
            calls["items"].append(item)
            yield item

    monkeypatch.setattr(cli, "_wrap_with_progress", stub_progress)
    args = cli.parse_args([str(input_dir), str(output_dir), "--dry-run"])

    assert cli.run_pipeline(args) == 0
    assert not output_dir.exists()
    assert calls["total"] == 1
    assert calls["items"][0][0] == sample.resolve()
    assert "Processing" in calls["description"]


def test_run_pipeline_rejects_nested_output(tmp_path: Path):
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    _create_sample_image(input_dir / "frame.png")

    args = cli.parse_args([str(input_dir), str(input_dir / "nested")])

    with pytest.raises(SystemExit):
        cli.run_pipeline(args)


def test_parse_args_sets_default_output(tmp_path: Path):
    input_dir = tmp_path / "shots"
    input_dir.mkdir()

    args = cli.parse_args([str(input_dir)])

    assert args.output == tmp_path / "shots_adjusted"
    assert args.workers == 1
    assert args.preset == "neutral"


def test_parse_args_rejects_unknown_stage_in_order(tmp_path: Path):
    with pytest.raises(SystemExit):
        cli.parse_args([str(tmp_path), "--order", "contrast,sharpen"])


@pytest.mark.parametrize("flag, value", [("--workers", "0"), ("--tile-rows", "0"), ("--quality", "101")])
def test_parse_args_rejects_invalid_numbers(tmp_path: Path, flag: str, value: str):
    with pytest.raises(SystemExit):
        cli.parse_args([str(tmp_path), flag, value])


def test_build_pipeline_applies_order_and_overrides(tmp_path: Path):
    args = cli.parse_args(
        [str(tmp_path), "--preset", "vivid", "--order", "saturation,contrast", "--contrast", "70", "--hue", "15"]
    )

    pipeline = cli.build_pipeline(args)

    assert pipeline.order == (StageKind.SATURATION, StageKind.CONTRAST, StageKind.HUE)
    assert [stage.value for stage in pipeline] == [18.0, 70.0, 15.0]
    assert pipeline.clip_between_stages is True


def test_build_pipeline_honours_no_gamut_clip(tmp_path: Path):
    args = cli.parse_args([str(tmp_path), "--no-gamut-clip"])

    assert cli.build_pipeline(args).clip_between_stages is False


def test_yaml_config_supplies_defaults(tmp_path: Path):
    config = tmp_path / "look.yaml"
    config.write_text("order:\n  - hue\n  - contrast\ncontrast: 25\nhue: -20\nrecursive: yes\nmax-side: 512\n")

    args = cli.parse_args([str(tmp_path), "--config", str(config)])
    pipeline = cli.build_pipeline(args)

    assert args.recursive is True
    assert args.max_side == 512
    assert pipeline.order == (StageKind.HUE, StageKind.CONTRAST)
    assert [stage.value for stage in pipeline] == [-20.0, 25.0]


def test_command_line_overrides_config(tmp_path: Path):
    config = tmp_path / "look.json"
    config.write_text(json.dumps({"contrast": 25, "workers": 2}))

    args = cli.parse_args([str(tmp_path), "--config", str(config), "--contrast", "5"])

    assert args.contrast == 5.0
    assert args.workers == 2


@pytest.mark.parametrize(
    "payload",
    ["{\"sharpness\": 3}", "[1, 2]", "{\"recursive\": \"maybe\"}", "{\"preset\": \"sepia\"}", "{not json"],
)
def test_invalid_config_is_rejected(tmp_path: Path, payload: str):
    config = tmp_path / "bad.json"
    config.write_text(payload)

    with pytest.raises(SystemExit):
        cli.parse_args([str(tmp_path), "--config", str(config)])


def test_missing_config_is_rejected(tmp_path: Path):
    with pytest.raises(SystemExit):
        cli.parse_args([str(tmp_path), "--config", str(tmp_path / "absent.yaml")])


def test_main_processes_single_file(tmp_path: Path):
    source = tmp_path / "frame.png"
    output_dir = tmp_path / "out"
    _create_sample_image(source)

    assert cli.main([str(source), str(output_dir), "--hue", "90", "--no-progress"]) == 0
    assert (output_dir / "frame_adjusted.png").exists()
