"""CLI entry point for api-test-runner."""

import asyncio
import fnmatch
import logging
from pathlib import Path

import click
import yaml

from api_test_runner.config import SECRET_MASK, ConfigError, load_config, save_config
from api_test_runner.generator.models import TestCategory
from api_test_runner.generator.testcase import TestCaseGenerator
from api_test_runner.parser.base import ApiEndpoint
from api_test_runner.parser.java import discover_controllers, load_sources, parse_controller_file
from api_test_runner.report.writer import list_reports, load_report
from api_test_runner.runner import TestRunner

CATEGORY_CHOICE = click.Choice([c.value for c in TestCategory])


def _parse_controllers(path: Path, dto_dir: Path | None = None) -> list[ApiEndpoint]:
    """Extract endpoints from a controller file or every controller under a directory."""
    if dto_dir is not None:
        extra = load_sources(dto_dir)
    else:
        extra = load_sources(path) if path.is_dir() else []
    endpoints = []
    for file_path in discover_controllers(path):
        endpoints.extend(parse_controller_file(file_path, extra))
    return endpoints


def _filter_endpoints(endpoints: list[ApiEndpoint], patterns: tuple[str, ...]) -> list[ApiEndpoint]:
    """Keep endpoints matching any "METHOD /path" or path glob such as "/users/*"."""
    if not patterns:
        return endpoints
    kept = []
    for ep in endpoints:
        for pattern in patterns:
            if pattern.upper() == ep.label.upper() or fnmatch.fnmatch(ep.path, pattern):
                kept.append(ep)
                break
    return kept


def _load_endpoints(path: Path, patterns: tuple[str, ...], dto_dir: Path | None = None) -> list[ApiEndpoint]:
    click.echo(f"Parsing controllers in {path}...")
    endpoints = _filter_endpoints(_parse_controllers(path, dto_dir), patterns)
    click.echo(f"Found {len(endpoints)} endpoints.")
    return endpoints


@click.group()
@click.option("--workspace", default=".", type=click.Path(file_okay=False, path_type=Path),
              help="Project directory holding .api-tests/ (config and reports).")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, workspace: Path, verbose: bool):
    """API Test Runner: extract endpoints from Spring controllers, generate and run API tests."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"workspace": workspace}


@main.command()
@click.option("--base-url", default=None, help="Base URL of the service under test.")
@click.option("--token", default=None, help="Bearer token sent with every request.")
@click.option("--header", "headers", multiple=True, metavar="KEY=VALUE", help="Extra header (repeatable).")
@click.option("--timeout", default=None, type=int, help="Request timeout in milliseconds.")
@click.pass_obj
def configure(obj: dict, base_url: str | None, token: str | None, headers: tuple[str, ...], timeout: int | None):
    """Save the run configuration for this workspace."""
    workspace = obj["workspace"]
    try:
        config = load_config(workspace)
    except ConfigError as e:
        raise click.ClickException(str(e))

    update: dict = {}
    if base_url is not None:
        update["base_url"] = base_url
    if token is not None:
        update["token"] = token
    if timeout is not None:
        update["timeout"] = timeout
    if headers:
        merged = dict(config.headers)
        for item in headers:
            key, sep, value = item.partition("=")
            if not sep or not key.strip():
                raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--header")
            merged[key.strip()] = value.strip()
        update["headers"] = merged

    config = config.model_validate({**config.model_dump(), **update})
    path = save_config(config, workspace)
    click.echo(f"Base URL: {config.base_url}")
    click.echo(f"Token: {SECRET_MASK if config.token else '(none)'}")
    click.echo(f"Timeout: {config.timeout}ms")
    click.echo(f"Configuration saved to {path}")


@main.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option("--dto-dir", default=None, type=click.Path(exists=True, file_okay=False, path_type=Path),
              help="Directory of Java sources used to resolve request body types.")
def endpoints(path: Path, dto_dir: Path | None):
    """List endpoints extracted from a controller file or directory."""
    found = _parse_controllers(path, dto_dir)
    if not found:
        click.echo("No endpoints found.")
        return
    for ep in found:
        params = ", ".join(p.name for p in ep.all_params())
        click.echo(f"{ep.method:<7} {ep.path}  ({ep.controller}.{ep.name})  [{params}]")
    click.echo(f"{len(found)} endpoints.")


@main.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(path_type=Path), help="Output YAML file for test cases.")
@click.option("--category", "categories", multiple=True, type=CATEGORY_CHOICE, help="Keep only these categories.")
@click.option("--endpoint", "patterns", multiple=True, help='Endpoint filter: "GET /users" or a path glob.')
@click.option("--dto-dir", default=None, type=click.Path(exists=True, file_okay=False, path_type=Path),
              help="Directory of Java sources used to resolve request body types.")
def gen_cases(path: Path, output: Path, categories: tuple[str, ...], patterns: tuple[str, ...], dto_dir: Path | None):
    """Generate test cases and export them as YAML."""
    found = _load_endpoints(path, patterns, dto_dir)
    cases = TestCaseGenerator().generate_all(found, categories or None)

    data = []
    for case in cases:
        item = {"endpoint": case.endpoint.label}
        item.update(case.model_dump(mode="json", exclude={"endpoint"}, exclude_defaults=True))
        data.append(item)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8")
    click.echo(f"{len(cases)} test cases saved to {output}")


@main.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option("--category", "categories", multiple=True, type=CATEGORY_CHOICE, help="Run only these categories.")
@click.option("--endpoint", "patterns", multiple=True, help='Endpoint filter: "GET /users" or a path glob.')
@click.option("--concurrency", default=10, show_default=True, type=click.IntRange(min=1),
              help="Parallel requests per concurrency run.")
@click.option("--iterations", default=100, show_default=True, type=click.IntRange(min=1),
              help="Requests per performance run.")
@click.option("--dto-dir", default=None, type=click.Path(exists=True, file_okay=False, path_type=Path),
              help="Directory of Java sources used to resolve request body types.")
@click.pass_obj
def run(obj: dict, path: Path, categories: tuple[str, ...], patterns: tuple[str, ...],
        concurrency: int, iterations: int, dto_dir: Path | None):
    """Full pipeline: extract endpoints -> generate cases -> execute -> write report."""
    workspace = obj["workspace"]
    found = _load_endpoints(path, patterns, dto_dir)
    if not found:
        raise click.ClickException("No endpoints to test.")

    def on_progress(current: int, total: int, label: str) -> None:
        click.echo(f"[{current}/{total}] {label}")

    try:
        config = load_config(workspace)
        click.echo(f"Testing against {config.base_url}...")
        runner = TestRunner(config, workspace)
        outcome = asyncio.run(runner.run(
            found,
            categories=categories or None,
            concurrency=concurrency,
            iterations=iterations,
            on_progress=on_progress,
        ))
    except (ConfigError, OSError) as e:
        raise click.ClickException(str(e))

    summary = outcome.report.summary
    for label, perf in outcome.performance.items():
        stats = perf.stats
        click.echo(f"  {label}: avg {stats.avg}ms, p50 {stats.p50}ms, p90 {stats.p90}ms, p99 {stats.p99}ms")
    click.echo(f"Passed: {summary.passed}  Failed: {summary.failed}  Skipped: {summary.skipped}  "
               f"Pass rate: {summary.pass_rate}")
    click.echo(f"Report saved to {outcome.report_dir}")


@main.command()
@click.pass_obj
def reports(obj: dict):
    """List stored reports, newest first."""
    found = list_reports(obj["workspace"])
    if not found:
        click.echo("No reports found.")
        return
    for report_dir in found:
        try:
            summary = load_report(report_dir).summary
        except (OSError, ValueError) as e:
            click.echo(f"{report_dir.name}  (unreadable: {e})")
            continue
        click.echo(f"{report_dir.name}  {summary.passed}/{summary.total} passed ({summary.pass_rate})")
