from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click

from phasegate import __version__
from phasegate.config import PhaseGateConfig, load_config, save_config
from phasegate.errors import PhaseGateError
from phasegate.gate import CONFIG_FILENAME, PhaseGate, ProcessOutcome, RequestOutcome
from phasegate.plan import parse_intended_paths
from phasegate.status import InitiativeStatus
from phasegate.vcs.git import GitRepository
from phasegate.verdict import load_verdict

LOG_FORMAT = "%(levelname)s: %(message)s"
REJECTED_EXIT_CODE = 2


@dataclass(slots=True)
class Runtime:
    repo_root: Path
    config_path: Path
    config: PhaseGateConfig
    gate: PhaseGate


def _resolve_config_path(repo_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = repo_root / config_path
    return config_path.resolve()


_log_handler: logging.Handler | None = None


def _configure_logging(level: str) -> None:
    global _log_handler
    package_logger = logging.getLogger("phasegate")
    package_logger.setLevel(level.upper())
    if _log_handler is not None:
        package_logger.removeHandler(_log_handler)
    # Bind to the current stderr; click's test runner swaps it per invocation.
    _log_handler = logging.StreamHandler(sys.stderr)
    _log_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(_log_handler)


def _load_runtime(repo_root: Path, config_path: Path) -> Runtime:
    config = load_config(config_path)
    options = click.get_current_context().find_root().obj or {}
    _configure_logging(options.get("log_level") or config.logging.level)
    try:
        repo = GitRepository(repo_root)
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc
    try:
        config_file: str | None = config_path.relative_to(repo_root).as_posix()
    except ValueError:
        config_file = None
    return Runtime(
        repo_root=repo_root,
        config_path=config_path,
        config=config,
        gate=PhaseGate(repo_root, repo, config, config_file=config_file),
    )


def _echo_request(outcome: RequestOutcome, max_diff_lines: int) -> None:
    plan = outcome.plan
    click.echo(f"Phase {plan.phase_number}: {plan.phase_name}")
    click.echo("Planned files:")
    for path in plan.intended_paths:
        click.echo(f" - {path}")
    if outcome.oversized:
        click.echo(
            f"WARNING: The generated diff is very large ({outcome.artifact.diff_line_count} "
            f"lines, limit {max_diff_lines}). Double-check '{plan.checklist_name()}'.",
            err=True,
        )
    click.echo(f"Review request: {outcome.path}")


def _echo_process(outcome: ProcessOutcome) -> None:
    plan = outcome.plan
    if outcome.commit is None:
        click.echo(f"Phase {plan.phase_number} REJECTED. Required fixes:")
        for index, fix in enumerate(outcome.required_fixes, start=1):
            click.echo(f"{index}. {fix}")
        click.get_current_context().exit(REJECTED_EXIT_CODE)
    result = outcome.commit
    click.echo(f"Phase {plan.phase_number} ACCEPTED.")
    click.echo(f"Commit: {result.commit_ref}")
    click.echo(f"Message: {result.message}")
    for path in result.committed_paths:
        click.echo(f" - {path}")
    if result.state.status is InitiativeStatus.COMPLETED:
        click.echo("Initiative completed.")
    else:
        click.echo(f"Next phase: {result.state.current_phase}")


@click.group()
@click.version_option(__version__, prog_name="phasegate")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Phase review gate CLI."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


@cli.command("init")
@click.option("--tag", "message_tag", default=None, help="Commit message tag.")
@click.option("--status-file", default=None)
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def init_command(message_tag: str | None, status_file: str | None, config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    config = load_config(config_path)
    if message_tag:
        config.commit.message_tag = message_tag
    if status_file:
        config.project.status_file = status_file
    save_config(config_path, config)
    click.echo(f"Initialized phasegate in {repo_root}")
    click.echo(f"Config: {config_path}")


@cli.command("status")
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def status_command(config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    runtime = _load_runtime(repo_root, _resolve_config_path(repo_root, config_value))
    try:
        state = runtime.gate.load_state()
        payload: dict[str, object] = {
            "initiative": state.to_dict(),
            "stage": str(runtime.gate.stage(state)),
        }
        if state.status is InitiativeStatus.ACTIVE:
            payload["request_file"] = str(runtime.gate.request_path(state))
            payload["verdict_file"] = str(runtime.gate.verdict_path(state))
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@cli.command("plan")
@click.option("--checklist", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def plan_command(checklist: str | None, config_value: str) -> None:
    try:
        if checklist:
            paths = parse_intended_paths(
                Path(checklist).read_text(encoding="utf-8"), source=checklist
            )
        else:
            repo_root = Path.cwd().resolve()
            runtime = _load_runtime(repo_root, _resolve_config_path(repo_root, config_value))
            paths = list(runtime.gate.load_plan().intended_paths)
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc
    for path in paths:
        click.echo(path)


@cli.command("request")
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def request_command(config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    runtime = _load_runtime(repo_root, _resolve_config_path(repo_root, config_value))
    try:
        outcome = runtime.gate.request_review()
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_request(outcome, runtime.config.review.max_diff_lines)


@cli.command("process")
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def process_command(config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    runtime = _load_runtime(repo_root, _resolve_config_path(repo_root, config_value))
    try:
        outcome = runtime.gate.process_verdict()
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_process(outcome)


@cli.command("run")
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
def run_command(config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    runtime = _load_runtime(repo_root, _resolve_config_path(repo_root, config_value))
    try:
        outcome = runtime.gate.run()
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc
    if isinstance(outcome, RequestOutcome):
        _echo_request(outcome, runtime.config.review.max_diff_lines)
        return
    _echo_process(outcome)


@cli.command("verdict")
@click.argument("verdict_file", type=click.Path(dir_okay=False))
def verdict_command(verdict_file: str) -> None:
    try:
        verdict = load_verdict(Path(verdict_file))
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps(verdict.to_dict(), ensure_ascii=False, indent=2))
