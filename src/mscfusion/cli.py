"""CLI entry point for the msc-fusion offline pipeline.

Usage:
    msc-fusion run --rig rig.yaml --frames frames/   # Run full pipeline
    msc-fusion run-step s01_tsdf_fusion -i '{...}'    # Run single step
    msc-fusion info                                   # Show pipeline info
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from mscfusion.core.logging import setup_logging

app = typer.Typer(name="msc-fusion", help="Multi static camera TSDF fusion")
console = Console()

DEFAULT_CONFIG = Path("configs/pipeline.yaml")


@app.command()
def run(
    config: Path = typer.Option(DEFAULT_CONFIG, help="Pipeline config path"),
    rig: Path = typer.Option(None, help="Camera rig file for the first step"),
    frames: Path = typer.Option(None, help="Frames directory for the first step"),
    log_level: str = typer.Option("INFO", help="Logging level"),
    log_file: Path = typer.Option(None, help="Also write logs to this file"),
) -> None:
    """Run the full pipeline."""
    setup_logging(log_level, log_file)
    from mscfusion.core.pipeline_runner import run_pipeline

    seed = {}
    if rig is not None:
        seed["rig_file"] = str(rig)
    if frames is not None:
        seed["frames_dir"] = str(frames)
    results = run_pipeline(config, initial_input=seed)
    for name, output in results.items():
        console.print(f"[green]{name}:[/green] {output.model_dump_json(indent=2)}")


@app.command()
def run_step(
    step_name: str = typer.Argument(..., help="Step name (e.g. s01_tsdf_fusion)"),
    config: Path = typer.Option(DEFAULT_CONFIG, help="Pipeline config path"),
    input_json: str = typer.Option(None, "--input", "-i", help="Input as JSON string"),
) -> None:
    """Run a single pipeline step."""
    import json

    setup_logging()
    from mscfusion.core.pipeline_runner import build_step, load_pipeline_config

    pipeline_cfg = load_pipeline_config(config)
    entry = next((s for s in pipeline_cfg.steps if s.name == step_name), None)
    if entry is None:
        console.print(f"[red]Step '{step_name}' not found in pipeline config[/red]")
        raise typer.Exit(1)

    step_instance = build_step(entry, pipeline_cfg.data_root)

    if input_json:
        input_data = json.loads(input_json)
    else:
        schema = step_instance.get_input_schema()
        required = schema.get("required", [])
        if required:
            console.print(f"[yellow]Step '{step_name}' requires input fields: {required}[/yellow]")
            console.print("[yellow]Use --input/-i with JSON string, e.g.:[/yellow]")
            console.print(f'  msc-fusion run-step {step_name} -i \'{{"field": "value"}}\'')
            raise typer.Exit(1)
        input_data = {}

    console.print(f"[green]Running step: {step_name}[/green]")
    step_input = step_instance.input_type(**input_data)
    output = step_instance.execute(step_input)
    elapsed = step_instance.meta.elapsed_seconds
    console.print(f"[green]Done in {elapsed:.1f}s. Output:[/green] {output.model_dump_json(indent=2)}")


@app.command()
def info(config: Path = typer.Option(DEFAULT_CONFIG, help="Pipeline config path")) -> None:
    """Show pipeline steps and their status."""
    from mscfusion.core.pipeline_runner import load_pipeline_config

    pipeline_cfg = load_pipeline_config(config)
    table = Table(title=f"Pipeline: {pipeline_cfg.project_name}")
    table.add_column("#", style="dim")
    table.add_column("Step", style="cyan")
    table.add_column("Module", style="green")
    table.add_column("Enabled", style="yellow")
    table.add_column("Depends On", style="dim")

    for i, step in enumerate(pipeline_cfg.steps, 1):
        table.add_row(
            str(i),
            step.name,
            step.module,
            "Y" if step.enabled else "N",
            ", ".join(step.depends_on) if step.depends_on else "-",
        )
    console.print(table)


if __name__ == "__main__":
    app()
