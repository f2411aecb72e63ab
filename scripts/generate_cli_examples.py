from __future__ import annotations

import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import PIL.Image

EXAMPLES_ROOT = Path("examples/cli-options")
BASE_ARGS = ["--resolution", "160", "--iterations", "500"]


@dataclass
class Expected:
    path: Path
    size: tuple[int, int] = (160, 160)
    mode: str = "L"


@dataclass
class Example:
    name: str
    args: list[str]
    expected: list[Expected]
    clean: list[Path] | None = None

    def full_args(self) -> list[str]:
        return [sys.executable, "render.py", *self.args]


EXAMPLES: list[Example] = [
    Example(
        name="defaults",
        args=[*BASE_ARGS, "--output", str(EXAMPLES_ROOT / "defaults" / "overview.png")],
        expected=[Expected(EXAMPLES_ROOT / "defaults" / "overview.png")],
        clean=[EXAMPLES_ROOT / "defaults"],
    ),
    Example(
        name="iterations",
        args=[*BASE_ARGS, "--iterations", "3500", "--output", str(EXAMPLES_ROOT / "iterations" / "high-iterations.png")],
        expected=[Expected(EXAMPLES_ROOT / "iterations" / "high-iterations.png")],
        clean=[EXAMPLES_ROOT / "iterations"],
    ),
    Example(
        name="resolution",
        args=[*BASE_ARGS, "--resolution", "240", "--output", str(EXAMPLES_ROOT / "resolution" / "large.png")],
        expected=[Expected(EXAMPLES_ROOT / "resolution" / "large.png", size=(240, 240))],
        clean=[EXAMPLES_ROOT / "resolution"],
    ),
    Example(
        name="center",
        args=[*BASE_ARGS, "--output", str(EXAMPLES_ROOT / "center" / "period-three.png"), "--", "-1.401155", "0.0", "0.05"],
        expected=[Expected(EXAMPLES_ROOT / "center" / "period-three.png")],
        clean=[EXAMPLES_ROOT / "center"],
    ),
    Example(
        name="no-supersample",
        args=[*BASE_ARGS, "--supersample", "1", "--output", str(EXAMPLES_ROOT / "no-supersample" / "aliased.png")],
        expected=[Expected(EXAMPLES_ROOT / "no-supersample" / "aliased.png")],
        clean=[EXAMPLES_ROOT / "no-supersample"],
    ),
    Example(
        name="discrete",
        args=[*BASE_ARGS, "--style", "discrete", "--output", str(EXAMPLES_ROOT / "discrete" / "banded.png")],
        expected=[Expected(EXAMPLES_ROOT / "discrete" / "banded.png")],
        clean=[EXAMPLES_ROOT / "discrete"],
    ),
    Example(
        name="rgb",
        args=[*BASE_ARGS, "--color", "rgb", "--output", str(EXAMPLES_ROOT / "rgb" / "blue.png")],
        expected=[Expected(EXAMPLES_ROOT / "rgb" / "blue.png", mode="RGB")],
        clean=[EXAMPLES_ROOT / "rgb"],
    ),
    Example(
        name="colormap",
        args=[*BASE_ARGS, "--color", "colormap", "--colormap", "inferno", "--inside-color", "#0a3ba0",
              "--output", str(EXAMPLES_ROOT / "colormap" / "inferno.png")],
        expected=[Expected(EXAMPLES_ROOT / "colormap" / "inferno.png", mode="RGB")],
        clean=[EXAMPLES_ROOT / "colormap"],
    ),
    Example(
        name="origin",
        args=[*BASE_ARGS, "--origin", "lower", "--output", str(EXAMPLES_ROOT / "origin" / "flipped.png")],
        expected=[Expected(EXAMPLES_ROOT / "origin" / "flipped.png")],
        clean=[EXAMPLES_ROOT / "origin"],
    ),
    Example(
        name="format",
        args=[*BASE_ARGS, "--format", "jpg", "--output", str(EXAMPLES_ROOT / "format" / "compressed")],
        expected=[Expected(EXAMPLES_ROOT / "format" / "compressed.jpg")],
        clean=[EXAMPLES_ROOT / "format"],
    ),
    Example(
        name="progress",
        args=[*BASE_ARGS, "--progress", "--output", str(EXAMPLES_ROOT / "progress" / "with-bar.png")],
        expected=[Expected(EXAMPLES_ROOT / "progress" / "with-bar.png")],
        clean=[EXAMPLES_ROOT / "progress"],
    ),
    Example(
        name="verbose",
        args=[*BASE_ARGS, "--verbose", "--output", str(EXAMPLES_ROOT / "verbose" / "diagnostic.png")],
        expected=[Expected(EXAMPLES_ROOT / "verbose" / "diagnostic.png")],
        clean=[EXAMPLES_ROOT / "verbose"],
    ),
]


def _ensure_clean(paths: Iterable[Path]) -> None:
    for path in paths:
        if path.exists():
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()


def _prepare(example: Example) -> None:
    clean = example.clean or []
    _ensure_clean(clean)
    for expected in example.expected:
        expected.path.parent.mkdir(parents=True, exist_ok=True)


def _verify(example: Example) -> None:
    for expected in example.expected:
        if not expected.path.is_file():
            raise RuntimeError(f"Expected file {expected.path} was not created")
        with PIL.Image.open(expected.path) as image:
            if image.size != expected.size:
                raise RuntimeError(f"{expected.path} is {image.size}, expected {expected.size}")
            if image.mode != expected.mode:
                raise RuntimeError(f"{expected.path} has mode {image.mode}, expected {expected.mode}")


def main() -> None:
    EXAMPLES_ROOT.mkdir(parents=True, exist_ok=True)
    for example in EXAMPLES:
        print(f"\n[cli-example] {example.name}")
        _prepare(example)
        completed = subprocess.run(example.full_args(), check=True)
        if completed.returncode != 0:
            raise RuntimeError(f"Example {example.name} failed with {completed.returncode}")
        _verify(example)
    print("\nAll CLI examples generated successfully.")


if __name__ == "__main__":
    main()
