"""Creative Council: Entry Point.

Usage:
    # Run a council against one or more creative assets
    python main.py run --url https://brand.example --asset ad.mp4 --asset banner.png

    # Pick the market and council size
    python main.py run --url https://brand.example --market Japan --personas 5 --asset ad.mp4

    # List supported markets
    python main.py markets
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

import config
from council.artifacts import write_run_artifacts
from council.errors import PipelineError
from council.llm import get_usage_summary
from council.orchestrator import Orchestrator
from schemas.council import Asset, PipelineState, RunInputs

console = Console()


def setup_logging():
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def load_assets(paths: list[str]) -> list[Asset]:
    assets = []
    for index, raw in enumerate(paths, start=1):
        path = Path(raw)
        if not path.exists():
            console.print(f"[red]Asset not found: {path}[/red]")
            sys.exit(1)
        assets.append(Asset.from_path(path, asset_id=f"asset_{index}"))
    return assets


def print_judgments(state: PipelineState):
    table = Table(title="Council Verdicts")
    table.add_column("Persona", style="cyan")
    table.add_column("Role")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Trust")
    table.add_column("Verdict")

    personas = {p.id: p for p in state.personas}
    for judgment in state.judgments:
        persona = personas[judgment.persona_id]
        score = judgment.score
        color = "green" if score >= 70 else "yellow" if score >= 40 else "red"
        table.add_row(
            f"{persona.name} ({persona.age})",
            persona.occupation,
            f"[{color}]{score:g}[/{color}]",
            judgment.trust_perception or "-",
            judgment.verdict,
        )
    console.print(table)


def print_metrics(state: PipelineState):
    metrics = state.metrics
    if metrics is None or not metrics.has_data:
        return
    emotions = ", ".join(f"{t.label} ×{t.count}" for t in metrics.top_emotions) or "-"
    distribution = "  ".join(f"{k}: {v}" for k, v in metrics.score_distribution.items())
    console.print(
        Panel(
            f"Average score:     [bold]{metrics.average_score}[/bold]/100"
            f"  (median {metrics.median_score:g}, stdev {metrics.score_stdev:g})\n"
            f"Distribution:      {distribution}\n"
            f"Consensus:         {metrics.consensus_index}%"
            f"   Polarization: {metrics.polarization_index}%\n"
            f"Emotional charge:  {metrics.average_intensity:g}/10\n"
            f"Share likelihood:  {metrics.average_share_likelihood}%\n"
            f"Top emotions:      {emotions}",
            title="Council Metrics",
            border_style="cyan",
        )
    )


def print_usage():
    usage = get_usage_summary()
    if not usage["calls"]:
        return
    console.print(
        f"[dim]{usage['calls']} reasoning call(s), "
        f"{usage['total_tokens']:,} tokens, "
        f"~${usage['total_cost']:.4f}[/dim]"
    )


def run_council(args: argparse.Namespace) -> int:
    inputs = RunInputs(
        target_url=args.url,
        market=args.market,
        persona_count=args.personas,
        assets=load_assets(args.asset),
    )
    output_dir = Path(args.output_dir) if args.output_dir else config.OUTPUT_DIR

    console.print(
        Panel(
            f"[bold]Target:[/bold] {inputs.target_url}\n"
            f"[bold]Market:[/bold] {inputs.market}\n"
            f"[bold]Council size:[/bold] {inputs.persona_count}\n"
            f"[bold]Assets:[/bold] {len(inputs.assets)}",
            title="Council Run",
            border_style="bright_magenta",
        )
    )

    orchestrator = Orchestrator()
    try:
        state = orchestrator.run(inputs)
    except PipelineError as e:
        state = orchestrator.snapshot()
        console.print(f"[red]Council failed: {e}[/red]")
        write_run_artifacts(state, output_dir)
        print_usage()
        return 1

    print_judgments(state)
    print_metrics(state)
    for path in write_run_artifacts(state, output_dir):
        console.print(f"  [green]Output saved:[/green] {path}")
    print_usage()
    return 0


def list_markets():
    for market in config.MARKETS:
        marker = " [dim](default)[/dim]" if market == config.DEFAULT_MARKET else ""
        console.print(f"  {market}{marker}")


def main():
    parser = argparse.ArgumentParser(
        description="Creative Council: simulated audience feedback on ad creatives"
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- run command --
    run_cmd = subparsers.add_parser("run", help="Research → Recruit → Judge → Synthesize")
    run_cmd.add_argument("--url", "-u", required=True, help="Brand website to research")
    run_cmd.add_argument(
        "--market", "-m",
        default=config.DEFAULT_MARKET,
        help=f"Target market (default: {config.DEFAULT_MARKET})",
    )
    run_cmd.add_argument(
        "--personas", "-n",
        type=int,
        default=config.DEFAULT_PERSONA_COUNT,
        help=f"Council size, {config.MIN_PERSONAS}-{config.MAX_PERSONAS} (default: {config.DEFAULT_PERSONA_COUNT})",
    )
    run_cmd.add_argument(
        "--asset", "-a",
        action="append",
        required=True,
        help="Creative asset (image or video). Repeat for multiple assets.",
    )
    run_cmd.add_argument(
        "--output-dir",
        help="Directory for run artifacts (default: outputs/)",
    )

    # -- markets command --
    subparsers.add_parser("markets", help="List supported markets")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging()

    console.print(
        Panel(
            "[bold]CREATIVE COUNCIL[/bold]\n"
            "Simulated audience feedback",
            border_style="bright_magenta",
        )
    )

    if args.command == "run":
        sys.exit(run_council(args))
    elif args.command == "markets":
        list_markets()


if __name__ == "__main__":
    main()
