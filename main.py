"""Main entry point for the Posts API conformance suite."""
import json
import logging
import os
import re
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from config import settings
from src.analyzer.failure_parser import collect_failure_reports, load_failure_report
from src.client.api_client import ALLOWED_METHODS, PostsApiClient, bearer, response_body

PROJECT_ROOT = Path(__file__).parent
FAILURES_DIR = PROJECT_ROOT / settings.FAILURES_DIR

app = typer.Typer(
    help="Posts API conformance suite - run CRUD and auth checks against a posts API",
    no_args_is_help=True
)
console = Console()


def run_suite(base_url: str, keyword: Optional[str] = None, timeout: int = 300) -> Dict[str, Any]:
    """Run the checks in tests/api against base_url and return the outcome."""
    cmd = [sys.executable, "-m", "pytest", "tests/api", "-v", "--tb=short"]
    if keyword:
        cmd += ["-k", keyword]

    env = dict(os.environ)
    env["POSTS_API_BASE_URL"] = base_url
    env["POSTS_API_FAKE"] = ""
    env["POSTS_API_FAILURES_DIR"] = str(FAILURES_DIR)

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=str(PROJECT_ROOT),
            env=env
        )
    except subprocess.TimeoutExpired:
        return {"success": False, "returncode": 1, "output": "", "counts": {},
                "error": "Check execution timed out"}

    output = result.stdout + result.stderr
    # "1 error" and "2 errors" both count as error
    counts = {
        outcome: int(count)
        for count, outcome in re.findall(r'(\d+) (passed|failed|skipped|error)', output)
    }

    return {
        "success": True,
        "returncode": result.returncode,
        "output": output,
        "counts": counts,
        "error": None
    }


def clear_failures(failures_dir: Path) -> int:
    """Delete failure reports and return how many were removed."""
    reports = collect_failure_reports(failures_dir)
    for report in reports:
        report.unlink()
    return len(reports)


def print_session_banner(base_url: str):
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    banner = Panel(
        Text(f"Posts API Conformance Suite\nTarget: {base_url}\nSession started: {timestamp}", justify="center"),
        border_style="bright_blue",
        title="[bold bright_blue]CONFORMANCE RUN[/bold bright_blue]"
    )
    console.print(banner)


def print_summary_report(counts: Dict[str, int], reports: List[Path]):
    """Print check totals and one row per captured failure."""
    table = Table(title="Conformance Run - Summary", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_row("Checks Passed", str(counts.get("passed", 0)))
    table.add_row("Checks Failed", str(counts.get("failed", 0)))
    table.add_row("Errors", str(counts.get("error", 0)))
    console.print(table)

    if not reports:
        return

    failures = Table(title="Failed Checks", show_header=True, header_style="bold red")
    failures.add_column("Check", style="cyan")
    failures.add_column("Request")
    failures.add_column("Status")
    failures.add_column("Expected")
    failures.add_column("Actual")
    for report in reports:
        context = load_failure_report(report)
        request = f"{context.request_method or '-'} {context.request_url or ''}".strip()
        status = str(context.api_response.status_code) if context.api_response else "-"
        failures.add_row(
            context.check_failure.test_name,
            request,
            status,
            str(context.check_failure.expected) if context.check_failure.expected is not None else "-",
            str(context.check_failure.actual) if context.check_failure.actual is not None else "-",
        )
    console.print(failures)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")):
    """Posts API conformance suite."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


@app.command(name="run")
def run_cmd(
    base_url: str = typer.Option(settings.API_BASE_URL, "--base-url", help="Target API base URL"),
    keyword: Optional[str] = typer.Option(None, "-k", help="Only run checks matching this pytest expression"),
    show_output: bool = typer.Option(False, "--show-output", help="Print the raw pytest output")
):
    """
    Run the conformance checks against a live API.

    Executes: Clear old reports → Run checks → Collect failures → Summarize
    """
    base_url = settings.validate_base_url(base_url)
    print_session_banner(base_url)

    removed = clear_failures(FAILURES_DIR)
    if removed:
        console.print(f"[dim]Removed {removed} old failure report(s)[/dim]")

    console.print("[bold]Running checks...[/bold]")
    result = run_suite(base_url, keyword)
    if not result["success"]:
        console.print(f"[red]Error running checks: {result['error']}[/red]")
        raise typer.Exit(code=1)

    if show_output:
        console.print(result["output"], markup=False, highlight=False)

    if result["returncode"] == 0:
        console.print("[green]✓ All checks passed![/green]")
    else:
        console.print("[yellow]⚠ Some checks failed[/yellow]")

    print_summary_report(result["counts"], collect_failure_reports(FAILURES_DIR))
    raise typer.Exit(code=result["returncode"])


@app.command(name="call")
def call_cmd(
    method: str = typer.Argument(..., help=f"HTTP method: {', '.join(ALLOWED_METHODS)}"),
    path: str = typer.Argument(..., help="Path relative to the base URL, e.g. /posts/1"),
    data: Optional[str] = typer.Option(None, "--data", help="JSON request body"),
    token: Optional[str] = typer.Option(None, "--token", help="Bearer token"),
    base_url: str = typer.Option(settings.API_BASE_URL, "--base-url", help="Target API base URL")
):
    """Make a single request to the API and print the response."""
    payload = None
    if data is not None:
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            console.print(f"[red]Invalid JSON body: {e}[/red]")
            raise typer.Exit(code=1)

    try:
        with PostsApiClient(base_url=settings.validate_base_url(base_url)) as client:
            response = client.request(
                method,
                path,
                json=payload,
                headers=bearer(token) if token else None,
                fail_on_status=False
            )
    except (ValueError, httpx.HTTPError) as e:
        console.print(f"[red]Request failed: {e}[/red]")
        raise typer.Exit(code=1)

    style = "green" if response.is_success else "red"
    console.print(f"[{style}]{response.status_code} {response.reason_phrase}[/{style}]")
    content_type = response.headers.get("content-type", "")
    console.print(f"[dim]content-type: {content_type or '-'}[/dim]")
    if content_type.startswith("application/json"):
        console.print_json(data=response_body(response))
    else:
        console.print(response.text, markup=False)


@app.command(name="clean")
def clean_cmd():
    """Delete failure reports left by previous runs."""
    removed = clear_failures(FAILURES_DIR)
    console.print(f"[green]✓ Removed {removed} failure report(s)[/green]")


if __name__ == "__main__":
    app()
