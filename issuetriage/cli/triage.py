"""
IssueTriage CLI: run workspace tools and inspect the context they produce.

Usage examples:
    python -m issuetriage.cli.triage list
    python -m issuetriage.cli.triage run builtin.workspaceSnapshot
    python -m issuetriage.cli.triage context --max-chars 2000
    python -m issuetriage.cli.triage serve
"""

import argparse
import asyncio
import json
import os
import sys
from typing import List, Optional

from triagecore.base.config import get_config, setup_logging
from triagecore.base.exceptions import TriageError
from triagecore.data.state import SqliteStateStore, workspace_scope
from triagecore.engine.service import CliToolService
from triagecore.toolkit.models import RunReason, RunResult
from triagecore.toolkit.tokens import WorkspaceContext


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="IssueTriage CLI tool context")
    parser.add_argument("--workspace", default=None, help="Workspace root (default: current directory)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List resolved tools")

    run = sub.add_parser("run", help="Run one tool")
    run.add_argument("tool_id")
    run.add_argument("--auto", action="store_true", help="Record the run as an auto refresh")
    run.add_argument("--no-force", dest="force", action="store_false",
                     help="Join an in-flight run instead of starting a new one")

    show = sub.add_parser("show", help="Print the cached result of a tool")
    show.add_argument("tool_id")

    sub.add_parser("refresh", help="Run every stale auto-run tool")

    context = sub.add_parser("context", help="Print the prompt context block")
    context.add_argument("--max-chars", type=int, default=None)

    serve = sub.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    return parser


def build_service(workspace_root: str) -> CliToolService:
    config = get_config()
    state = SqliteStateStore(config.storage.db_path, scope=workspace_scope(workspace_root))
    return CliToolService(WorkspaceContext(workspace_root=workspace_root), state=state, config=config)


def _print_result(result: RunResult) -> None:
    status = "success" if result.success else "failed"
    exit_label = "n/a" if result.exit_code is None else result.exit_code
    print(f"{result.title} [{result.id}] {status} (exit {exit_label}, {result.duration_ms}ms)")
    if result.timed_out:
        print("timed out")
    if result.structured is not None:
        print(json.dumps(result.structured, indent=2))
    elif result.stdout:
        print(result.stdout)
    if result.parse_error:
        print(f"parse error: {result.parse_error}", file=sys.stderr)
    if not result.success and result.stderr:
        print(result.stderr, file=sys.stderr)


async def _dispatch(service: CliToolService, args: argparse.Namespace) -> int:
    await service.start()
    try:
        if args.command == "list":
            for descriptor in service.list_tools():
                flags = " (auto)" if descriptor.auto_run else ""
                print(f"{descriptor.id}\t{descriptor.title}{flags}\t{descriptor.command_preview()}")
            return 0

        if args.command == "run":
            reason = RunReason.AUTO if args.auto else RunReason.MANUAL
            result = await service.run_tool(args.tool_id, reason=reason, force=args.force)
            _print_result(result)
            return 0 if result.success else 1

        if args.command == "show":
            result = service.get_result(args.tool_id)
            if result is None:
                print(f"No result recorded for {args.tool_id}", file=sys.stderr)
                return 1
            _print_result(result)
            return 0

        if args.command == "refresh":
            refreshed = await service.ensure_fresh()
            print(", ".join(refreshed) if refreshed else "All auto-run tools are fresh")
            return 0

        if args.command == "context":
            text = service.compose_context(args.max_chars)
            if text is None:
                print("No CLI tool results yet", file=sys.stderr)
                return 1
            print(text)
            return 0
    finally:
        await service.close()
    return 2


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    setup_logging(config)

    workspace_root = os.path.abspath(args.workspace or os.getcwd())
    service = build_service(workspace_root)

    if args.command == "serve":
        from triagecore.server.api import serve
        serve(service, port=args.port, host=args.host)
        return 0

    try:
        return asyncio.run(_dispatch(service, args))
    except TriageError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
