#!/usr/bin/env python3
"""
Evaluate field detection accuracy on a labeled dataset.

This script:
1. Loads PDFs and their ground-truth annotation files from the dataset directory
2. Runs the selected detector on each document
3. Matches predictions to ground truth by IoU and computes precision, recall and F1
4. Writes one JSON report per document and optionally prints a summary

Generate a sample dataset first with ``scripts/generate_sample_docs.py``.
"""

import asyncio
from pathlib import Path

import typer

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.services.evaluation import get_detector, list_detectors, run_dataset

app = typer.Typer(help="Benchmark form field detectors against ground truth.")


def print_detectors() -> None:
    typer.echo("Available detectors:")
    for detector in list_detectors():
        typer.echo(f"- {detector['id']}: {detector['name']}")


@app.command()
def main(
    detector: str = typer.Option("heuristic:raster", "--detector", "-d", help="Detector to run"),
    sample: list[str] | None = typer.Option(None, "--sample", "-s", help="Run on a specific sample id (repeatable)"),
    limit: int = typer.Option(10, "--limit", "-l", help="Maximum number of samples"),
    threshold: float | None = typer.Option(None, "--threshold", "-t", help="IoU threshold for matching (defaults to settings)"),
    out_dir: Path | None = typer.Option(None, "--out-dir", "-o", help="Directory for JSON reports (defaults to settings)"),
    summary: bool = typer.Option(False, "--summary", help="Print micro/macro F1 per document"),
    dataset: Path | None = typer.Option(None, "--dataset", help="Dataset directory (defaults to settings)"),
    scale: float | None = typer.Option(None, "--scale", help="Render scale for raster detectors"),
    list_only: bool = typer.Option(False, "--list", help="List detectors and exit"),
):
    """Run one detector over the dataset and score it."""
    settings = get_settings()
    configure_logging(settings.log_level)

    if list_only:
        print_detectors()
        return

    if get_detector(detector) is None:
        typer.secho(f"Unknown detector: {detector}", fg=typer.colors.RED, err=True)
        print_detectors()
        raise typer.Exit(code=1)

    out_dir = out_dir or settings.reports_path
    options = {"scale": scale} if scale else {}
    reports = asyncio.run(run_dataset(
        detector,
        test_dir=dataset or settings.dataset_path,
        sample_ids=sample,
        limit=limit,
        threshold=threshold,
        out_dir=out_dir,
        options=options,
    ))

    typer.echo(f"Evaluated {len(reports)} documents with detector \"{detector}\"")
    typer.echo(f"Reports saved to: {out_dir}")

    if summary:
        typer.echo("\n--- Summary ---")
        for report in reports:
            typer.echo(f"\nDocument: {report.document_id}")
            typer.echo(f"  Micro F1: {report.micro.f1:.3f}")
            typer.echo(f"  Macro F1: {report.macro.f1:.3f}")

            failed = (report.summary or {}).get("failedPages") or []
            if failed:
                typer.secho(f"  Failed pages: {len(failed)}", fg=typer.colors.YELLOW)


if __name__ == "__main__":
    app()
