"""CLI entrypoints for repowiki commands."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from .config import ConfigStore
from .errors import ConfigError
from .logging import configure_logging
from .models import AgentAvailability, AgentType, BatchResult, DocStatus, SourceDocMapping
from .orchestrator import GenerationOrchestrator, create_orchestrator
from .progress import LoggingProgress

_STATUS_LABELS = {
    DocStatus.MISSING: "missing",
    DocStatus.OUTDATED: "outdated",
    DocStatus.UP_TO_DATE: "up to date",
}


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_workspace_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "-w",
        "--workspace",
        default=argparse.SUPPRESS if suppress_default else ".",
        help="Path to the workspace root (defaults to current directory).",
    )


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    _add_verbose_option(parser, suppress_default=True)
    _add_workspace_option(parser, suppress_default=True)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repowiki",
        description="Generate and maintain a repository wiki with agent CLIs.",
    )
    _add_verbose_option(parser)
    _add_workspace_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init",
        help="Create the wiki skeleton and generate every mapped document.",
    )
    _add_common_options(init_parser)

    update_parser = subparsers.add_parser(
        "update",
        help="Generate missing documents and refresh outdated ones.",
    )
    _add_common_options(update_parser)
    update_parser.add_argument(
        "sources",
        nargs="*",
        metavar="SOURCE",
        help="Only consider documents mapped from these files (workspace-relative or absolute).",
    )

    regenerate_parser = subparsers.add_parser(
        "regenerate",
        help="Delete the generated content and generate everything again.",
    )
    _add_common_options(regenerate_parser)

    status_parser = subparsers.add_parser(
        "status",
        help="Show whether each mapped document is missing, outdated or up to date.",
    )
    _add_common_options(status_parser)

    agents_parser = subparsers.add_parser(
        "agents",
        help="Detect installed agent CLIs and show which one would be used.",
    )
    _add_common_options(agents_parser)
    agents_parser.add_argument(
        "--use",
        choices=[agent.value for agent in AgentType],
        default=None,
        help="Make this agent the preferred one and save the choice.",
    )

    map_parser = subparsers.add_parser(
        "map",
        help="Manage source-to-document mappings.",
    )
    _add_common_options(map_parser)
    map_subparsers = map_parser.add_subparsers(dest="map_command", required=True)

    map_add_parser = map_subparsers.add_parser(
        "add",
        help="Map a source file to a document (replaces an existing entry for the document).",
    )
    _add_common_options(map_add_parser)
    map_add_parser.add_argument("source", help="Source file, relative to the workspace.")
    map_add_parser.add_argument("doc", help="Document path, relative to the docs root.")
    map_add_parser.add_argument(
        "--title",
        default=None,
        help="Document title (defaults to the document file name).",
    )

    map_list_parser = map_subparsers.add_parser("list", help="List configured mappings.")
    _add_common_options(map_list_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service.",
    )
    _add_common_options(serve_parser)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for repowiki commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)
    workspace = Path(args.workspace).expanduser().resolve()

    try:
        if args.command in ("init", "update", "regenerate"):
            orchestrator = create_orchestrator(workspace)
            if not orchestrator.store.mappings():
                print("No mappings configured. Add one with `repowiki map add SOURCE DOC`.")
            sources = getattr(args, "sources", None)
            result = asyncio.run(_run_batch(orchestrator, args.command, sources))
            _print_batch(args.command, result)
            if result.failed:
                parser.exit(1)
        elif args.command == "status":
            _show_status(create_orchestrator(workspace))
        elif args.command == "agents":
            if not _manage_agents(create_orchestrator(workspace), args.use):
                parser.exit(1)
        elif args.command == "map":
            store = ConfigStore.load(workspace)
            if args.map_command == "add":
                _add_mapping(store, args.source, args.doc, args.title)
            else:
                _list_mappings(store.mappings())
        elif args.command == "serve":
            from .service import run_service

            run_service(
                host=args.host,
                port=args.port,
                workspace_root=workspace,
                verbose=bool(args.verbose),
            )
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except ConfigError as exc:
        parser.exit(1, f"repowiki {args.command} failed: {exc}\n")


async def _run_batch(
    orchestrator: GenerationOrchestrator, command: str, sources: Optional[List[str]] = None
) -> BatchResult:
    progress = LoggingProgress()
    if command == "init":
        return await orchestrator.initialize(progress)
    if command == "update":
        return await orchestrator.update(progress, sources=sources or None)
    return await orchestrator.regenerate(progress)


def _print_batch(command: str, result: BatchResult) -> None:
    print(
        f"{command}: {result.success} succeeded, {result.failed} failed, "
        f"{result.skipped} skipped ({result.duration:.1f}s)"
    )
    for error in result.errors:
        print(f"  - {error}")


def _show_status(orchestrator: GenerationOrchestrator) -> None:
    records = asyncio.run(orchestrator.status())
    if not records:
        print("No mappings configured.")
        return
    for record in records:
        label = _STATUS_LABELS[record.status]
        print(f"[{label:>10}] {record.title} -> {record.doc_path}")
    summary = orchestrator.staleness.summarize(records)
    print(
        f"{summary.total} documents: {summary.up_to_date} up to date, "
        f"{summary.outdated} outdated, {summary.missing} missing"
    )


def _manage_agents(orchestrator: GenerationOrchestrator, use: Optional[str]) -> bool:
    registry = orchestrator.registry

    async def _detect() -> List[AgentAvailability]:
        records = await registry.detect_available()
        if registry.available:
            await registry.select_best()
        return records

    records = asyncio.run(_detect())
    for record in records:
        mark = "✓" if record.available else "✗"
        version = f" {record.version}" if record.version else ""
        print(f"{mark} {record.name} [{record.type.value}] priority={record.priority}{version}")

    if use is not None:
        agent_type = AgentType(use)
        if not registry.set_active(agent_type):
            print(f"Agent '{use}' is not available.", file=sys.stderr)
            return False
        orchestrator.store.update("agent.preferred", agent_type.value)

    active = registry.active
    if active is None:
        print("No agent CLI available.", file=sys.stderr)
        return False
    print(f"Active agent: {active.name}")
    return True


def _add_mapping(store: ConfigStore, source: str, doc: str, title: Optional[str]) -> None:
    mapping = SourceDocMapping(source_path=source, doc_path=doc, title=title or Path(doc).stem)
    mappings = [m for m in store.mappings() if m.doc_path != doc]
    mappings.append(mapping)
    store.save_mappings(mappings)
    print(f"Mapped {source} -> {doc} ({mapping.title})")


def _list_mappings(mappings: List[SourceDocMapping]) -> None:
    if not mappings:
        print("No mappings configured.")
        return
    for mapping in mappings:
        print(f"{mapping.source_path} -> {mapping.doc_path} ({mapping.title})")


if __name__ == "__main__":
    main(sys.argv[1:])
