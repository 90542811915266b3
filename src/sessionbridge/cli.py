"""Click-based command line interface for Sessionbridge."""

from __future__ import annotations

import asyncio
import json

import click
from loguru import logger

from sessionbridge.core.config import BridgeConfig
from sessionbridge.core.errors import InvalidPathError
from sessionbridge.core.log import configure_logging
from sessionbridge.core.relay import ConversationContext, SessionRelay
from sessionbridge.core.service import build_relay


def _relay(ctx: click.Context) -> SessionRelay:
    obj = ctx.ensure_object(dict)
    if "relay" not in obj:
        config: BridgeConfig = obj["config"]
        obj["relay"] = build_relay(config)
    return obj["relay"]


def _conversation(conversation_id: str, group: bool) -> ConversationContext:
    try:
        cid: int | str = int(conversation_id)
    except ValueError:
        cid = conversation_id
    return ConversationContext(conversation_id=cid, is_group=group)


def _echo_warnings(relay: SessionRelay) -> None:
    for warning in relay.drain_warnings():
        click.echo(f"WARN: {warning}", err=True)


@click.group()
@click.pass_context
def main(ctx: click.Context) -> None:
    config, warnings = BridgeConfig.from_env()
    configure_logging(config.logs_dir, component="cli")
    for message in warnings:
        logger.debug(message)
    ctx.obj = {"config": config}


@main.command("version", help="Print sessionbridge version.")
def cmd_version() -> None:
    from sessionbridge import __version__

    click.echo(__version__)


@main.command("run", help="Run the Telegram bridge in the foreground.")
def cmd_run() -> None:
    from sessionbridge.core.main import main as run_bridge

    raise SystemExit(run_bridge())


@main.command("ask", help="Relay one message for a conversation and print the reply.")
@click.argument("conversation_id")
@click.argument("text")
@click.option("--group", is_flag=True, default=False, help="Treat the conversation as a group chat.")
@click.option("--model", default="", help="Model override for this invocation.")
@click.pass_context
def cmd_ask(ctx: click.Context, conversation_id: str, text: str, group: bool, model: str) -> None:
    relay = _relay(ctx)
    outcome = asyncio.run(relay.handle_text(_conversation(conversation_id, group), text, model or None))
    for warning in outcome.warnings:
        click.echo(f"WARN: {warning}", err=True)
    if not outcome.ok:
        raise click.ClickException(str(outcome.error or outcome.status))
    click.echo(outcome.text)


@main.group(help="Workspace mapping commands.")
def workspace() -> None:
    pass


@workspace.command("set", help="Assign a working directory to a conversation.")
@click.argument("conversation_id")
@click.argument("path")
@click.pass_context
def workspace_set(ctx: click.Context, conversation_id: str, path: str) -> None:
    relay = _relay(ctx)
    try:
        record = relay.set_workspace(_conversation(conversation_id, False), path)
    except InvalidPathError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_warnings(relay)
    click.echo(f"{conversation_id} -> {record.path}")


@workspace.command("show", help="Show the working directory a conversation uses.")
@click.argument("conversation_id")
@click.pass_context
def workspace_show(ctx: click.Context, conversation_id: str) -> None:
    relay = _relay(ctx)
    conversation = _conversation(conversation_id, False)
    record = relay.workspace_info(conversation)
    suffix = f" (set {record.set_at})" if record else " (default)"
    click.echo(relay.workspace_for(conversation) + suffix)


@workspace.command("clear", help="Remove a conversation's workspace mapping.")
@click.argument("conversation_id")
@click.pass_context
def workspace_clear(ctx: click.Context, conversation_id: str) -> None:
    relay = _relay(ctx)
    removed = relay.clear_workspace(_conversation(conversation_id, False))
    _echo_warnings(relay)
    click.echo("cleared" if removed else "no mapping")


@workspace.command("list", help="List all workspace mappings.")
@click.pass_context
def workspace_list(ctx: click.Context) -> None:
    click.echo(json.dumps(_relay(ctx).workspaces.list(), ensure_ascii=False, indent=2))


@main.group(help="Session mapping commands.")
def session() -> None:
    pass


@session.command("show", help="Show the session a conversation currently maps to.")
@click.argument("conversation_id")
@click.option("--group", is_flag=True, default=False)
@click.pass_context
def session_show(ctx: click.Context, conversation_id: str, group: bool) -> None:
    report = _relay(ctx).status(_conversation(conversation_id, group))
    payload = {
        "session_key": report.session_key,
        "workspace": report.workspace,
        "model": report.model or "auto",
        "session": report.session.to_dict() if report.session else None,
    }
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@session.command("list", help="List all stored session keys with their current handle.")
@click.pass_context
def session_list(ctx: click.Context) -> None:
    sessions = _relay(ctx).sessions
    for key in sessions.keys():
        record = sessions.info(key)
        click.echo(f"{key} {record.handle if record else '-'}")


@session.command("reset", help="Start a fresh session for the conversation's current workspace.")
@click.argument("conversation_id")
@click.option("--group", is_flag=True, default=False)
@click.pass_context
def session_reset(ctx: click.Context, conversation_id: str, group: bool) -> None:
    relay = _relay(ctx)
    result = relay.reset_session(_conversation(conversation_id, group))
    _echo_warnings(relay)
    click.echo(f"{result.session_key} -> {result.handle}")


if __name__ == "__main__":
    main()
