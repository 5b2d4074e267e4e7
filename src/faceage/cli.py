"""faceage CLI - estimate ages from detector output."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from faceage import __version__
from faceage.common.logging import setup_logging
from faceage.config import Config, load_config
from faceage.estimation import AgeEstimator, DetectedFace

app = typer.Typer(
    name="faceage",
    help="Facial age estimation CLI",
    no_args_is_help=True,
)
console = Console()


def get_config(config_path: Optional[Path] = None) -> Config:
    """Get configuration, exiting with status 1 if it is invalid."""
    try:
        return load_config(config_path)
    except (ValidationError, yaml.YAMLError, OSError, TypeError) as e:
        console.print(f"[red]Error:[/] invalid configuration: {e}")
        sys.exit(1)


def read_faces(path: Path) -> list[DetectedFace]:
    """Read one face object or a list of them from a JSON file."""
    with open(path) as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = data.get("faces", [data])
    if not isinstance(data, list):
        raise ValueError("expected a face object or a list of faces")

    return [DetectedFace.from_dict(item) for item in data]


@app.command()
def estimate(
    faces_file: Path = typer.Argument(..., help="JSON file with detector output"),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Config file"),
):
    """Estimate age for each face in a detector output file."""
    cfg = get_config(config_path)
    setup_logging(level=cfg.device.log_level, json_output=json_output)

    try:
        faces = read_faces(faces_file)
    except (OSError, ValueError, KeyError, TypeError) as e:
        console.print(f"[red]Error:[/] could not read {faces_file}: {e}")
        sys.exit(1)

    estimator = AgeEstimator(cfg.estimation)
    results = estimator.estimate_many(faces, max_workers=cfg.analysis.max_workers)

    if json_output:
        payload = [
            {"face_id": face.face_id, **result.to_dict()}
            for face, result in zip(faces, results)
        ]
        print(json.dumps(payload, indent=2))
        return

    table = Table(title=f"Age Estimates ({estimator.strategy.name})")
    table.add_column("Face", style="cyan")
    table.add_column("Age", justify="right")
    table.add_column("Range")
    table.add_column("Confidence", justify="right")
    table.add_column("Group")
    table.add_column("Method")

    for face, result in zip(faces, results):
        group = result.age_group
        confidence_style = "green" if estimator.is_reliable(result) else "yellow"
        table.add_row(
            face.face_id[:8],
            f"{result.estimated_age:.0f}",
            result.age_range_string,
            f"[{confidence_style}]{result.confidence_percentage}[/]",
            f"[{group.color}]{group.label}[/]",
            result.method.value,
        )

    console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]faceage[/] v{__version__}")


@app.command()
def config(
    json_output: bool = typer.Option(False, "--json", help="Print as JSON"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Config file"),
):
    """Show configuration."""
    cfg = get_config(config_path)

    if json_output:
        print(json.dumps(cfg.model_dump(mode="json"), indent=2, default=str))
    else:
        console.print("[bold]Configuration[/]")
        console.print(f"  Device: {cfg.device.name}")
        console.print(f"  Mode: {cfg.device.mode}")
        console.print(f"  Log Level: {cfg.device.log_level}")
        console.print("\n[bold]Estimation[/]")
        console.print(f"  Strategy: {cfg.estimation.strategy}")
        console.print(f"  Model Path: {cfg.estimation.model_path}")
        console.print(f"  Confidence Threshold: {cfg.estimation.confidence_threshold}")
        console.print("\n[bold]Analysis[/]")
        console.print(f"  Max Faces: {cfg.analysis.max_faces}")
        console.print(f"  Face Padding: {cfg.analysis.face_padding}")
        console.print(f"  Stats Window: {cfg.analysis.stats_window}")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
