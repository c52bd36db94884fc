"""CLI for the Compliance Scoring Engine.

Provides a command-line interface for scoring assessments against a
template and matching vendors against an organization's gaps and priorities.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import find_config_file, load_config
from .engine import ComplianceEngine, load_data_file, validate_catalog, validate_template
from .schema import (
    Answer,
    AssessmentResult,
    Gap,
    Organization,
    RiskBand,
    Severity,
    VendorMatch,
)

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, markup=False)],
        force=True,
    )


@click.group()
@click.version_option(version="1.0.0", prog_name="compliance-scorer")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a scorer-config.yaml (otherwise the usual locations are searched)"
)
@click.option("--verbose", "-v", is_flag=True, help="Log scoring progress")
def main(config_path: Optional[str], verbose: bool):
    """Compliance Assessment Scoring and Vendor Matching Engine.

    Scores questionnaire answers into a risk score with gaps and risks,
    and ranks compliance vendors against an organization's needs.
    """
    _configure_logging(verbose)
    path = Path(config_path) if config_path else find_config_file()
    if path:
        load_config(path)
        logging.getLogger(__name__).info("Using configuration from %s", path)


def load_answers(path: str) -> list[Answer]:
    """Load answers from a list, an ``{"answers": [...]}`` object or a question_id -> value map."""
    data = load_data_file(path)
    if isinstance(data, dict):
        if "answers" in data:
            data = data["answers"]
        else:
            data = [{"question_id": qid, "value": value} for qid, value in data.items()]
    return [Answer.model_validate(a) for a in data]


def load_organization(path: str) -> Organization:
    return Organization.model_validate(load_data_file(path))


def load_gaps(path: str) -> list[Gap]:
    """Load gaps from a list or from a saved assessment result."""
    data = load_data_file(path)
    if isinstance(data, dict):
        data = data.get("gaps", [])
    return [Gap.model_validate(g) for g in data]


@main.command("score")
@click.option(
    "--template", "-t",
    required=True,
    type=click.Path(exists=True),
    help="Path to the assessment template (JSON or YAML)"
)
@click.option(
    "--answers", "-a",
    required=True,
    type=click.Path(exists=True),
    help="Path to the answers file"
)
@click.option(
    "--organization", "-o",
    type=click.Path(exists=True),
    help="Path to the organization profile (enables contextual rules)"
)
@click.option(
    "--out",
    type=click.Path(),
    help="Save the full result as JSON"
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Print the result as JSON instead of formatted text"
)
def score_cmd(
    template: str,
    answers: str,
    organization: Optional[str],
    out: Optional[str],
    json_output: bool,
):
    """Score an assessment's answers against a template.

    Examples:
        compliance-scorer score -t template.json -a answers.json
        compliance-scorer score -t template.yaml -a answers.json -o org.json --out result.json
    """
    try:
        engine = ComplianceEngine()
        loaded = engine.load_template(template)
        org = load_organization(organization) if organization else None
        result = engine.score_assessment(loaded, load_answers(answers), org)

        if json_output:
            output_json(result.model_dump_json(indent=2), out)
        else:
            display_assessment(result, engine.template_warnings)
            if out:
                output_json(result.model_dump_json(indent=2), out)
                console.print(f"\n[green]Results saved to {out}[/green]")

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("match")
@click.option(
    "--catalog", "-c",
    required=True,
    type=click.Path(exists=True),
    help="Path to the vendor catalog (JSON or YAML)"
)
@click.option(
    "--organization", "-o",
    required=True,
    type=click.Path(exists=True),
    help="Path to the organization profile"
)
@click.option(
    "--gaps", "-g",
    type=click.Path(exists=True),
    help="Path to a gap list or a saved assessment result"
)
@click.option(
    "--top", "-n",
    "top_n",
    type=int,
    default=None,
    help="Maximum number of vendors to show"
)
@click.option(
    "--min-score",
    type=float,
    default=None,
    help="Hide vendors with a lower total score"
)
@click.option(
    "--labeled-only",
    is_flag=True,
    help="Only show vendors with a match quality label"
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Print matches as JSON instead of formatted text"
)
def match_cmd(
    catalog: str,
    organization: str,
    gaps: Optional[str],
    top_n: Optional[int],
    min_score: Optional[float],
    labeled_only: bool,
    json_output: bool,
):
    """Rank vendors for an organization and its open gaps.

    Examples:
        compliance-scorer match -c vendors.json -o org.json
        compliance-scorer match -c vendors.json -o org.json -g result.json -n 5
    """
    try:
        engine = ComplianceEngine()
        vendors = engine.load_vendor_catalog(catalog)
        org = load_organization(organization)
        gap_list = load_gaps(gaps) if gaps else []

        matches = engine.match_vendors(
            org, gap_list, vendors,
            min_score=min_score, top_n=top_n, labeled_only=labeled_only,
        )

        if json_output:
            print(json.dumps([m.to_api_dict() for m in matches], indent=2))
        else:
            display_matches(matches, org, gap_list)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("validate")
@click.option(
    "--template", "-t",
    type=click.Path(),
    help="Path to an assessment template"
)
@click.option(
    "--catalog", "-c",
    type=click.Path(),
    help="Path to a vendor catalog"
)
def validate_cmd(template: Optional[str], catalog: Optional[str]):
    """Validate template and/or vendor catalog files.

    Examples:
        compliance-scorer validate -t template.json
        compliance-scorer validate -c vendors.json
        compliance-scorer validate -t template.json -c vendors.json
    """
    if not template and not catalog:
        console.print("[yellow]Please specify --template and/or --catalog to validate[/yellow]")
        return

    all_valid = True

    if template:
        is_valid, issues = validate_template(template)
        if is_valid:
            console.print(f"[green]✓ Template valid: {template}[/green]")
            for issue in issues:
                console.print(f"  [yellow]- {issue}[/yellow]")
        else:
            console.print(f"[red]✗ Template invalid: {template}[/red]")
            for issue in issues:
                console.print(f"  - {issue}")
            all_valid = False

    if catalog:
        is_valid, issues = validate_catalog(catalog)
        if is_valid:
            console.print(f"[green]✓ Catalog valid: {catalog}[/green]")
        else:
            console.print(f"[red]✗ Catalog invalid: {catalog}[/red]")
            for issue in issues:
                console.print(f"  - {issue}")
            all_valid = False

    sys.exit(0 if all_valid else 1)


def display_assessment(result: AssessmentResult, template_warnings: list[str]):
    """Display an assessment result in formatted text."""
    score = result.assessment
    band_color = {
        RiskBand.LOW: "green",
        RiskBand.MEDIUM: "yellow",
        RiskBand.HIGH: "red",
        RiskBand.CRITICAL: "bold red",
    }.get(score.risk_band, "white")

    console.print(Panel(
        f"[bold]{result.template_id}[/bold]\n\n"
        f"Risk Score: [bold]{score.risk_score}/100[/bold]\n"
        f"Risk Band: [{band_color}]{score.risk_band.value}[/{band_color}]\n"
        f"Foundational Coverage: {score.foundational_coverage_percent:.0f}%\n\n"
        f"{result.summary.summary}",
        title="Assessment Summary",
    ))

    table = Table(title="Sections")
    table.add_column("Section")
    table.add_column("Weight", justify="right")
    table.add_column("Score (0-5)", justify="right")
    table.add_column("Scored", justify="right")
    for section in score.section_scores:
        table.add_row(
            section.title or section.section_id,
            f"{section.weight:.2f}",
            f"{section.score:.2f}" if section.included else "[dim]n/a[/dim]",
            f"{section.scored_count}/{section.question_count}",
        )
    console.print(table)

    if result.gaps:
        severity_color = {
            Severity.CRITICAL: "bold red",
            Severity.HIGH: "red",
            Severity.MEDIUM: "yellow",
            Severity.LOW: "white",
        }
        gap_table = Table(title="Gaps")
        gap_table.add_column("Category")
        gap_table.add_column("Severity")
        gap_table.add_column("Priority")
        gap_table.add_column("Score", justify="right")
        gap_table.add_column("Effort")
        gap_table.add_column("Cost")
        for gap in result.gaps:
            color = severity_color[gap.severity]
            gap_table.add_row(
                gap.category,
                f"[{color}]{gap.severity.value}[/{color}]",
                gap.priority.value,
                f"{gap.score:.2f}",
                gap.estimated_effort.value,
                gap.estimated_cost.value,
            )
        console.print(gap_table)
    else:
        console.print("[green]No gaps identified.[/green]")

    if result.summary.priorities:
        console.print("\n[bold]Priorities:[/bold]")
        for priority in result.summary.priorities:
            console.print(f"  [yellow]•[/yellow] {priority}")

    warnings = template_warnings + score.warnings
    if warnings:
        console.print("\n[dim]Warnings:[/dim]")
        for warning in warnings:
            console.print(f"  [dim]• {warning}[/dim]")


def display_matches(matches: list[VendorMatch], organization: Organization, gaps: list[Gap]):
    """Display ranked vendor matches in formatted text."""
    console.print(
        f"\n[bold blue]Vendor Matches[/bold blue] for "
        f"{organization.name or organization.organization_id} ({len(gaps)} open gaps)\n"
    )
    if not matches:
        console.print("[yellow]No vendors matched.[/yellow]")
        return

    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Vendor")
    table.add_column("Total", justify="right")
    table.add_column("Base", justify="right")
    table.add_column("Boost", justify="right")
    table.add_column("Gaps", justify="right")
    table.add_column("Quality")
    for i, match in enumerate(matches, 1):
        name = match.vendor.name + (" [cyan]★[/cyan]" if match.vendor.featured else "")
        table.add_row(
            str(i),
            name,
            f"{match.total_score:.1f}",
            f"{match.base_score.total_base:.1f}",
            f"{match.priority_boost.total_boost:.1f}",
            str(match.gaps_covered),
            match.match_quality.value if match.match_quality else "[dim]-[/dim]",
        )
    console.print(table)

    for i, match in enumerate(matches, 1):
        if not match.match_reasons:
            continue
        console.print(f"\n  [bold cyan]{i}. {match.vendor.name}[/bold cyan] [dim]{match.match_summary}[/dim]")
        for reason in match.match_reasons:
            console.print(f"     [green]•[/green] {reason}")


def output_json(json_str: str, out_path: Optional[str]):
    """Write JSON to a file, or to stdout when no path is given."""
    if out_path:
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(json_str)
    else:
        print(json_str)


@main.command("init-config")
@click.option(
    "--out", "-o",
    type=click.Path(),
    default="scorer-config.yaml",
    help="Output path for the configuration file"
)
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Overwrite existing config file"
)
def init_config_cmd(out: str, force: bool):
    """Generate a default scorer configuration file.

    Example:
        compliance-scorer init-config --out my-config.yaml
    """
    from .config import save_default_config

    out_path = Path(out)
    if out_path.exists() and not force:
        console.print(f"[red]Error:[/red] Config file already exists: {out}")
        console.print("Use --force to overwrite")
        sys.exit(1)

    try:
        save_default_config(out_path)
        console.print(f"[green]✓[/green] Config file created: {out}")
        console.print("\nThis file configures:")
        console.print("  • aggregation - Weight tolerance, adequacy score and risk bands")
        console.print("  • gap_thresholds - Category scores that raise CRITICAL/HIGH/MEDIUM gaps")
        console.print("  • base_score - Vendor compatibility points and price tolerance")
        console.print("  • priority_boost - Points for priorities, features, deployment and speed")
        console.print("  • match_quality - Total scores for match labels")
        console.print("  • category_aliases - Alternate category names")
        console.print("\nThe scorer will look for config in this order:")
        console.print("  1. COMPLIANCE_SCORER_CONFIG environment variable")
        console.print("  2. ./scorer-config.yaml (current directory)")
        console.print("  3. ~/.config/compliance-scorer/config.yaml")
    except Exception as e:
        console.print(f"[red]Error creating config:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
