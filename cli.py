import asyncio
import csv
import logging
from pathlib import Path

import click

from config import settings
from data.benchmarks import BENCHMARKS, DEFAULT_BENCHMARK
from data.fetch import find_summary_file
from data.models import DataSource, ScanResult
from reports.pdf import generate_group_pdf, generate_scan_pdf
from scanner.engine import RevenueEngine, build_engine
from scanner.errors import RevenueEngineError


def _engine(data_path: str | None, offline: bool) -> RevenueEngine:
    overrides = {}
    if data_path:
        path = Path(data_path)
        overrides["provider_summary_path"] = find_summary_file(path) if path.is_dir() else path
    if offline:
        overrides["nppes_lookup"] = False
    return build_engine(settings.model_copy(update=overrides))


def _run(coro):
    try:
        return asyncio.run(coro)
    except RevenueEngineError as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_scan(result: ScanResult) -> None:
    provider = result.provider
    click.echo(f"\n{'=' * 60}")
    click.echo(f"Provider NPI: {provider.npi}")
    if provider.name:
        click.echo(f"Provider Name: {provider.name} {provider.credential}".rstrip())
    click.echo(f"Specialty: {provider.specialty or 'N/A'}")
    if result.data_source is DataSource.ESTIMATED:
        click.echo("Data: estimated (no CMS billing detail found)")
    if not result.benchmark_matched:
        click.echo(f"Benchmark: {result.benchmark.specialty} (no match for specialty)")

    score = result.score
    click.echo(f"\nRevenue Score: {score.overall} ({score.tier}, ~{score.percentile}th percentile)")
    click.echo(f"Current Revenue: ${result.current_revenue:,.0f}")
    click.echo(f"Missed Revenue: ${result.total_missed_revenue:,.0f}")
    click.echo(f"Potential Revenue: ${result.potential_revenue:,.0f}")

    click.echo("\nGaps:")
    click.echo(f"  - E&M Coding: ${result.coding_gap.annual_gap:,.0f} "
               f"({result.coding_gap.shift_description})")
    for gap in result.program_gaps:
        click.echo(f"  - {gap.program_name}: ${gap.annual_gap:,.0f} "
                   f"({gap.enrolled_patients:,} of {gap.eligible_patients:,} eligible enrolled)")

    if result.action_plan:
        click.echo("\nAction Plan:")
        for item in result.action_plan:
            click.echo(f"  {item.priority}. {item.title} | ${item.estimated_revenue:,.0f}/yr | "
                       f"{item.difficulty.value} | {item.timeline}")
    click.echo(f"{'=' * 60}")


@click.group()
@click.option("--log-level", default=None, help="Override the configured log level")
def cli(log_level: str | None):
    """Provider Revenue Intelligence: find missed Medicare revenue for providers and practices."""
    logging.basicConfig(level=(log_level or settings.log_level).upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@cli.command()
@click.argument("npi")
@click.option("--data-path", default=None, type=click.Path(exists=True),
              help="Processed provider summary file or directory")
@click.option("--offline", is_flag=True, help="Skip the NPPES registry lookup")
def scan(npi: str, data_path: str | None, offline: bool):
    """Analyze one provider's revenue opportunity."""
    engine = _engine(data_path, offline)
    result = _run(engine.scan_one(npi))
    _echo_scan(result)


@cli.command()
@click.argument("npis", nargs=-1, required=True)
@click.option("--practice-name", default="Group Practice", help="Name shown on the report")
@click.option("--concurrency", default=None, type=int,
              help="Maximum scans in flight (capped by tier)")
@click.option("--tier", default="anonymous", help="Access tier (anonymous, free, pro, enterprise)")
@click.option("--data-path", default=None, type=click.Path(exists=True),
              help="Processed provider summary file or directory")
@click.option("--offline", is_flag=True, help="Skip the NPPES registry lookup")
@click.option("--pdf", "make_pdf", is_flag=True, help="Also write a practice PDF report")
def group(npis: tuple[str, ...], practice_name: str, concurrency: int | None, tier: str,
          data_path: str | None, offline: bool, make_pdf: bool):
    """Scan every provider in a practice and roll up the results."""
    engine = _engine(data_path, offline)
    result = _run(engine.scan_group(list(npis), concurrency_hint=concurrency, tier=tier,
                                    practice_name=practice_name))

    # Save per-provider results to CSV
    output_dir = settings.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / "group_results.csv"

    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["position", "npi", "status", "name", "specialty", "score", "tier",
                         "current_revenue", "missed_revenue", "data_source", "error"])
        for outcome in result.outcomes:
            scan_result = outcome.result
            if scan_result is None:
                writer.writerow([outcome.position + 1, outcome.npi, outcome.status.value,
                                 "", "", "", "", "", "", "", outcome.error])
                continue
            writer.writerow([
                outcome.position + 1, outcome.npi, outcome.status.value,
                scan_result.provider.name, scan_result.provider.specialty,
                scan_result.score.overall, scan_result.score.tier,
                f"{scan_result.current_revenue:.2f}", f"{scan_result.total_missed_revenue:.2f}",
                scan_result.data_source.value, "",
            ])

    click.echo(f"\nFull results saved to {output_path}")
    click.echo(f"\n{result.practice_name}: {result.successful_scans} of "
               f"{result.total_providers} providers scanned")
    click.echo("-" * 80)
    click.echo(f"  Average Score: {result.average_score:.1f}")
    click.echo(f"  Current Revenue: ${result.total_current_revenue:,.0f}")
    click.echo(f"  Missed Revenue: ${result.total_missed_revenue:,.0f} "
               f"(+{result.revenue_increase_pct:.1f}%)")

    for failure in result.failures:
        click.echo(f"  ! {failure.npi}: {failure.status.value} {failure.error}".rstrip())

    if result.practice_action_plan:
        click.echo("\nPractice Action Plan:")
        for item in result.practice_action_plan:
            click.echo(f"  {item.priority}. {item.title} | ${item.estimated_revenue:,.0f}/yr | "
                       f"{item.affected_providers} providers")

    if make_pdf:
        pdf_path = generate_group_pdf(result, settings.output_dir / "reports")
        click.echo(f"\nPractice report generated: {pdf_path}")


@cli.command()
@click.argument("npi")
@click.option("--data-path", default=None, type=click.Path(exists=True),
              help="Processed provider summary file or directory")
@click.option("--offline", is_flag=True, help="Skip the NPPES registry lookup")
def report(npi: str, data_path: str | None, offline: bool):
    """Build a PDF revenue report for a specific provider."""
    engine = _engine(data_path, offline)
    result = _run(engine.scan_one(npi))
    pdf_path = generate_scan_pdf(result, settings.output_dir / "reports")
    click.echo(f"\nReport generated: {pdf_path}")
    _echo_scan(result)


@cli.command()
def benchmarks():
    """List the bundled specialty benchmarks."""
    click.echo(f"{'Specialty':<24} {'Providers':>10} {'Rev/Patient':>12} "
               f"{'99214+':>8} {'CCM':>6} {'RPM':>6} {'AWV':>6}")
    click.echo("-" * 80)
    for benchmark in [*BENCHMARKS.values(), DEFAULT_BENCHMARK]:
        click.echo(
            f"{benchmark.specialty:<24} {benchmark.provider_count:>10,} "
            f"${benchmark.avg_revenue_per_patient:>11,.0f} "
            f"{benchmark.level_mix.high_level_share:>8.1%} "
            f"{benchmark.adoption.ccm:>6.1%} {benchmark.adoption.rpm:>6.1%} "
            f"{benchmark.adoption.awv:>6.1%}"
        )


if __name__ == "__main__":
    cli()
