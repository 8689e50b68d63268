import csv
import json
from dataclasses import replace
from pathlib import Path

import click

from data.loader import find_dataset, load_claims
from engine.drift import DEFAULT_CONFIG, DriftConfig, compute_drift, list_providers, scan_providers
from narrative.brief import generate_brief
from narrative.gemini import GeminiEnricher
from reports.pdf import generate_drift_pdf

OUTPUT_DIR = Path(__file__).parent / "output"

data_path_option = click.option(
    "--data-path", default=None, type=click.Path(exists=True, dir_okay=False),
    help="Path to the claims CSV (auto-detected in data/raw/ if not specified)",
)


@click.group()
def cli():
    """Provider Drift: screen providers for behavioral drift between two periods."""
    pass


def _load(data_path: str | None):
    filepath = Path(data_path) if data_path else find_dataset()
    return load_claims(filepath)


def _compute_known(claims, provider_id: str, config: DriftConfig = DEFAULT_CONFIG):
    result = compute_drift(claims, provider_id, config)
    if not result.periods:
        raise click.ClickException(f"No claims found for provider {provider_id}")
    return result


@cli.command()
@data_path_option
def providers(data_path: str | None):
    """List provider IDs in the dataset."""
    claims = _load(data_path)
    for provider_id in list_providers(claims):
        click.echo(provider_id)


@cli.command()
@click.argument("provider_id")
@data_path_option
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
@click.option("--driver-threshold", default=DEFAULT_CONFIG.driver_threshold, type=int,
              help="Axis drift (0-100) at which it is reported as a driver")
@click.option("--stable-at", default=DEFAULT_CONFIG.stable_threshold, type=int,
              help="Minimum stability index labelled Stable")
@click.option("--watch-at", default=DEFAULT_CONFIG.watch_threshold, type=int,
              help="Minimum stability index labelled Watch")
def drift(provider_id: str, data_path: str | None, as_json: bool,
          driver_threshold: int, stable_at: int, watch_at: int):
    """Compute behavioral drift for one provider."""
    if watch_at > stable_at:
        raise click.BadParameter("--watch-at must not exceed --stable-at")
    config = replace(DEFAULT_CONFIG, driver_threshold=driver_threshold,
                     stable_threshold=stable_at, watch_threshold=watch_at)

    claims = _load(data_path)
    result = _compute_known(claims, provider_id, config)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(f"\n{'=' * 60}")
    click.echo(f"Provider: {provider_id}")
    click.echo(f"Periods: {', '.join(str(p) for p in result.periods)}")
    click.echo(f"Stability Index: {result.stability_index} ({result.label.value})")
    click.echo(f"Drift Score: {result.drift_score}% | Service Mix: {result.service_mix_drift}% | "
               f"Intensity: {result.intensity_drift}% | Place of Service: {result.pos_drift}%")
    click.echo("\nDrivers:")
    for driver in result.drivers:
        click.echo(f"  - {driver}")
    click.echo(f"\n{result.executive_summary}")
    click.echo(f"{'=' * 60}")


@cli.command()
@data_path_option
@click.option("--top", default=50, type=int, help="Number of top results to display")
@click.option("--min-score", default=0, type=int, help="Minimum drift score (0-100) to include")
def scan(data_path: str | None, top: int, min_score: int):
    """Rank every provider by drift score."""
    claims = _load(data_path)
    click.echo("Computing drift for all providers...")
    results = [r for r in scan_providers(claims) if r.drift_score >= min_score]

    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    output_path = OUTPUT_DIR / "drift_scan.csv"

    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["rank", "provider_id", "drift_score", "stability_index", "label",
                         "service_mix_drift", "intensity_drift", "pos_drift"])
        for i, r in enumerate(results, 1):
            writer.writerow([i, r.provider_id, r.drift_score, r.stability_index, r.label.value,
                             r.service_mix_drift, r.intensity_drift, r.pos_drift])

    click.echo(f"\nFull results saved to {output_path}")
    click.echo(f"\nTop {min(top, len(results))} drifting providers:")
    click.echo("-" * 80)

    for i, r in enumerate(results[:top], 1):
        click.echo(f"  {i:3d}. {r.provider_id} | Drift: {r.drift_score:3d}% | "
                   f"Stability: {r.stability_index:3d} ({r.label.value})")

    if results:
        click.echo("\nTo investigate a provider, run: python cli.py drift <PROVIDER_ID>")


def _brief_for(result, ai: bool):
    brief = generate_brief(result, GeminiEnricher() if ai else None)
    if brief.warning:
        click.echo(f"Warning: {brief.warning}", err=True)
    return brief


@cli.command()
@click.argument("provider_id")
@data_path_option
@click.option("--ai/--no-ai", default=False, help="Ask Gemini to write the brief (needs GEMINI_API_KEY)")
def brief(provider_id: str, data_path: str | None, ai: bool):
    """Print an executive brief for one provider."""
    claims = _load(data_path)
    result = _compute_known(claims, provider_id)
    click.echo(_brief_for(result, ai).text)


@cli.command()
@click.argument("provider_id")
@data_path_option
@click.option("--ai/--no-ai", default=False, help="Include a Gemini-written brief (needs GEMINI_API_KEY)")
@click.option("--output-dir", default=None, type=click.Path(file_okay=False),
              help="Directory for the PDF (default: output/reports/)")
def report(provider_id: str, data_path: str | None, ai: bool, output_dir: str | None):
    """Write a PDF drift report for one provider."""
    claims = _load(data_path)
    result = _compute_known(claims, provider_id)
    pdf_path = generate_drift_pdf(result, _brief_for(result, ai),
                                  output_dir=Path(output_dir) if output_dir else None)
    click.echo(f"\nReport generated: {pdf_path}")


if __name__ == "__main__":
    cli()
