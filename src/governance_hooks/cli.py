"""CLI entrypoint for the governance hooks."""

import json
import shlex
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv

from governance_hooks.approval import ConsoleApprovalChannel
from governance_hooks.config import ConfigError, configure_logging, load_config
from governance_hooks.hashing import compute_content_hash
from governance_hooks.hooks import HookResult
from governance_hooks.locks import LockSnapshot
from governance_hooks.runtime import Runtime, build_runtime

# Load .env file on CLI startup
load_dotenv()

EXIT_ERROR = 1
EXIT_VIOLATION = 2


@click.group()
@click.version_option(package_name="governance-hooks")
@click.option(
    "--workspace",
    type=click.Path(file_okay=False),
    default=None,
    help="Workspace root (default: GOVERNANCE_WORKSPACE or the current directory).",
)
@click.pass_context
def cli(ctx: click.Context, workspace: Optional[str]):
    """Govhooks - intent-gated mutations with an append-only trace ledger."""
    ctx.ensure_object(dict)
    ctx.obj["workspace"] = workspace


def _runtime(ctx: click.Context, console_approval: bool = False) -> Runtime:
    """Load config and wire a runtime, exiting with code 1 on bad config."""
    try:
        config = load_config(workspace=ctx.obj.get("workspace"))
    except ConfigError as e:
        click.echo(f"Configuration error:\n{e}", err=True)
        raise SystemExit(EXIT_ERROR)
    configure_logging(config.log_level)

    approval = None
    if console_approval and not config.approval_url:
        approval = ConsoleApprovalChannel()
    return build_runtime(config, approval=approval)


def _report(result: HookResult) -> None:
    """Print a hook result; exit 2 when blocked, 1 when failed."""
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)
    if result.degraded:
        click.echo(f"Warning: intent {result.intent.id} is not registered; ran with permissive scope", err=True)

    if result.ok:
        if result.entry is not None:
            click.echo(f"DONE  entry {result.entry.id}")
            for record in result.entry.files:
                click.echo(f"  {record.relative_path}  {record.content_hash}")
        else:
            click.echo("DONE  (nothing recorded)")
        return

    click.echo(f"{result.state.value}: {result.violation.message}", err=True)
    click.echo(f"  Recovery: {result.violation.recovery}", err=True)
    raise SystemExit(EXIT_VIOLATION if result.blocked else EXIT_ERROR)


def _format_entry(entry) -> str:
    files = ", ".join(f"{r.relative_path}@{r.content_hash[:12]}" for r in entry.files)
    return f"{entry.timestamp[:19]}  {entry.intent_id:<12} {entry.mutation_class.value:<7} {files}"


@cli.command()
@click.pass_context
def check_config(ctx: click.Context):
    """Check the environment configuration and the intent source."""
    runtime = _runtime(ctx)
    config = runtime.config
    click.echo("Configuration loaded successfully!")
    click.echo(f"  Workspace:        {config.workspace}")
    click.echo(f"  Intents:          {config.intents_path}")
    click.echo(f"  Ledger:           {config.ledger_path}")
    click.echo(f"  Strict intents:   {config.strict_intents}")
    click.echo(f"  Approval timeout: {config.approval_timeout_s}s")
    click.echo(f"  Approval URL:     {config.approval_url or '[not set]'}")
    click.echo(f"  Ruleset version:  {runtime.gate.ruleset_version}")
    click.echo(f"  Intents loaded:   {len(runtime.registry.intents())}")
    if runtime.registry.errors:
        click.echo(f"  Malformed entries: {len(runtime.registry.errors)} (run 'govhooks intents validate')")


# =============================================================================
# INTENTS
# =============================================================================

@cli.group()
def intents():
    """Inspect the declared intents."""
    pass


@intents.command("list")
@click.pass_context
def intents_list(ctx: click.Context):
    """List declared intents."""
    runtime = _runtime(ctx)
    declared = runtime.registry.intents()
    if not declared:
        click.echo(f"No intents declared in {runtime.config.intents_path}")
        return
    for intent in declared:
        click.echo(f"{intent.id:<12} {intent.status.value:<12} {intent.name}")
        click.echo(f"{'':<12} scope: {', '.join(intent.owned_scope)}")


@intents.command("show")
@click.argument("intent_id")
@click.pass_context
def intents_show(ctx: click.Context, intent_id: str):
    """Show one intent as JSON."""
    runtime = _runtime(ctx)
    intent = runtime.registry.lookup(intent_id)
    if intent is None:
        click.echo(f"Error: Intent not found: {intent_id}", err=True)
        raise SystemExit(EXIT_VIOLATION)
    click.echo(json.dumps(intent.to_dict(), indent=2))


@intents.command("validate")
@click.pass_context
def intents_validate(ctx: click.Context):
    """Validate every entry of the intent source."""
    runtime = _runtime(ctx)
    result = runtime.registry.load()
    click.echo(f"Valid intents: {len(result.intents)}")
    if result.errors:
        click.echo(f"Malformed entries: {len(result.errors)}", err=True)
        for error in result.errors:
            click.echo(f"  - {error}", err=True)
        raise SystemExit(EXIT_ERROR)


@cli.command()
@click.argument("intent_id")
@click.pass_context
def select(ctx: click.Context, intent_id: str):
    """Select an intent and print the context handed to the model."""
    runtime = _runtime(ctx)
    context, violation = runtime.new_session().select_active_intent(intent_id)
    if violation is not None:
        click.echo(violation.to_tool_message(), err=True)
        raise SystemExit(EXIT_VIOLATION)
    click.echo(context.to_xml())


@cli.command("hash")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def hash_file(file: str):
    """Print the normalized content hash of FILE."""
    click.echo(compute_content_hash(Path(file).read_bytes()))


# =============================================================================
# GOVERNED MUTATIONS
# =============================================================================

@cli.command()
@click.argument("path")
@click.option("--intent", "intent_id", default=None, help="Active intent id")
@click.option("--input", "source", type=click.File("r"), default="-", help="Content source (default: stdin)")
@click.option("--expect-hash", default=None, help="Hash read earlier; the write fails if the file changed since")
@click.option("--model", "model_identifier", default=None, help="Model identifier for the trace entry")
@click.pass_context
def write(ctx: click.Context, path: str, intent_id: Optional[str], source, expect_hash: Optional[str], model_identifier: Optional[str]):
    """Write stdin to PATH under governance."""
    runtime = _runtime(ctx)
    session = runtime.new_session()
    session.context.active_intent_id = intent_id

    snapshot = None
    if expect_hash:
        snapshot = LockSnapshot(
            path=path,
            expected_hash=expect_hash,
            captured_at=datetime.now(timezone.utc).isoformat(),
        )

    result = runtime.tools_for(session).write_file(
        path, source.read(), snapshot=snapshot, model_identifier=model_identifier,
    )
    _report(result)


@cli.command()
@click.argument("path")
@click.option("--intent", "intent_id", default=None, help="Active intent id")
@click.pass_context
def delete(ctx: click.Context, path: str, intent_id: Optional[str]):
    """Delete PATH under governance (asks for approval)."""
    runtime = _runtime(ctx, console_approval=True)
    session = runtime.new_session()
    session.context.active_intent_id = intent_id
    result = runtime.tools_for(session).delete_file(path)
    _report(result)


@cli.command(context_settings={"ignore_unknown_options": True})
@click.option("--intent", "intent_id", default=None, help="Active intent id")
@click.option("--cwd", default=".", help="Working directory inside the workspace")
@click.option("--timeout", type=float, default=None, help="Command timeout in seconds")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run(ctx: click.Context, intent_id: Optional[str], cwd: str, timeout: Optional[float], command):
    """Run COMMAND in the workspace under governance (asks for approval).

    Example: govhooks run --intent INT-001 -- make test
    """
    runtime = _runtime(ctx, console_approval=True)
    session = runtime.new_session()
    session.context.active_intent_id = intent_id
    result = runtime.tools_for(session).execute_command(shlex.join(command), cwd=cwd, timeout_s=timeout)

    if result.ok and result.value is not None:
        if result.value.stdout:
            click.echo(result.value.stdout, nl=False)
        if result.value.stderr:
            click.echo(result.value.stderr, nl=False, err=True)
    _report(result)
    if result.value is not None and result.value.returncode != 0:
        raise SystemExit(result.value.returncode)


# =============================================================================
# LEDGER
# =============================================================================

@cli.group()
def ledger():
    """Read the trace ledger."""
    pass


@ledger.command("show")
@click.option("--intent", "intent_id", default=None, help="Only entries for this intent")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON lines")
@click.pass_context
def ledger_show(ctx: click.Context, intent_id: Optional[str], as_json: bool):
    """Show ledger entries in append order."""
    runtime = _runtime(ctx)
    entries = runtime.ledger.entries()
    if intent_id:
        entries = [e for e in entries if e.intent_id == intent_id]
    if not entries:
        click.echo("No trace entries found.")
        return
    for entry in entries:
        click.echo(entry.to_json() if as_json else _format_entry(entry))


@ledger.command("tail")
@click.option("-n", "--lines", default=10, show_default=True, help="Entries to show before following")
@click.option("--follow", "-f", is_flag=True, help="Keep printing new entries as they are appended")
@click.option("--interval", default=0.5, show_default=True, help="Polling interval in seconds")
@click.pass_context
def ledger_tail(ctx: click.Context, lines: int, follow: bool, interval: float):
    """Show the newest entries, optionally following the ledger."""
    runtime = _runtime(ctx)
    recent = runtime.ledger.entries()[-lines:] if lines > 0 else []
    for entry in recent:
        click.echo(_format_entry(entry))
    if not follow:
        return
    try:
        for entry in runtime.ledger.follow(poll_interval_s=interval, from_start=False):
            click.echo(_format_entry(entry))
    except KeyboardInterrupt:
        pass


@ledger.command("summary")
@click.argument("intent_id")
@click.pass_context
def ledger_summary(ctx: click.Context, intent_id: str):
    """Summarize everything recorded under INTENT_ID."""
    from governance_hooks.observe import print_intent_summary

    runtime = _runtime(ctx)
    print_intent_summary(runtime.ledger, intent_id)


@ledger.command("verify")
@click.pass_context
def ledger_verify(ctx: click.Context):
    """Check every ledger line for integrity problems."""
    runtime = _runtime(ctx)
    problems = runtime.ledger.verify()
    if not problems:
        click.echo(f"Ledger OK: {runtime.ledger.count()} entries")
        return
    for problem in problems:
        click.echo(f"  - {problem}", err=True)
    raise SystemExit(EXIT_ERROR)


@cli.command()
@click.pass_context
def drift(ctx: click.Context):
    """Compare traced hashes with the workspace; exit 2 if anything drifted."""
    from governance_hooks.observe import audit_drift, print_drift_report

    runtime = _runtime(ctx)
    records = audit_drift(runtime.ledger, runtime.storage)
    print_drift_report(records)
    if any(r.drifted for r in records):
        raise SystemExit(EXIT_VIOLATION)


if __name__ == "__main__":
    cli()
