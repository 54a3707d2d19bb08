"""
Audit commands for the Agent-SAFE Grid CLI.

Usage:
    agentsafe audit list --tenant TENANT [--limit N]
    agentsafe audit export --tenant TENANT [--output PATH]
    agentsafe audit verify --tenant TENANT
"""

import argparse
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentsafe.cli.main import CLIContext


def register(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """Register the audit command with the parser."""
    parser = subparsers.add_parser(
        "audit",
        help="Audit log queries",
        description="List, export and verify tenant audit logs.",
    )
    audit_subparsers = parser.add_subparsers(
        title="audit commands", dest="audit_command", metavar="<subcommand>"
    )

    list_parser = audit_subparsers.add_parser("list", help="List audit entries")
    list_parser.add_argument("--tenant", required=True, help="Tenant id")
    list_parser.add_argument("--limit", type=int, default=50, help="Maximum entries")
    list_parser.set_defaults(func=run_audit_list)

    export_parser = audit_subparsers.add_parser(
        "export", help="Export the audit log as CSV"
    )
    export_parser.add_argument("--tenant", required=True, help="Tenant id")
    export_parser.add_argument("--output", "-o", metavar="PATH", help="Write to a file")
    export_parser.set_defaults(func=run_audit_export)

    verify_parser = audit_subparsers.add_parser(
        "verify",
        help="Check the hash-chain linkage of the audit log",
        description="Check that every chained entry links to its predecessor.",
    )
    verify_parser.add_argument("--tenant", required=True, help="Tenant id")
    verify_parser.set_defaults(func=run_audit_verify)


def _format_timestamp(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def run_audit_list(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the audit list command."""
    from agentsafe.cli.formatters import format_rows
    from agentsafe.cli.main import EXIT_SUCCESS

    entries = ctx.services.recorder.entries(args.tenant, limit=args.limit)
    if ctx.output_format != "table":
        ctx.output([e.to_dict() for e in entries])
        return EXIT_SUCCESS
    if not entries:
        ctx.print(f"No audit entries for tenant {args.tenant}")
        return EXIT_SUCCESS
    rows = [
        [e.sequence, _format_timestamp(e.timestamp), e.action, e.user, e.status.value, e.details]
        for e in entries
    ]
    print(format_rows(["#", "Time (UTC)", "Action", "User", "Status", "Details"], rows))
    return EXIT_SUCCESS


def run_audit_export(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the audit export command."""
    from agentsafe.audit.export import export_csv
    from agentsafe.cli.main import EXIT_SUCCESS

    entries = ctx.services.recorder.entries(args.tenant)
    document = export_csv(entries)
    if args.output:
        Path(args.output).write_text(document, encoding="utf-8")
        ctx.print(f"Exported {len(entries)} entries to {args.output}")
    else:
        print(document, end="")
    return EXIT_SUCCESS


def run_audit_verify(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """
    Execute the audit verify command.

    Exits 0 when the chain is intact and 2 when a link is broken.
    """
    from agentsafe.cli.main import EXIT_SUCCESS, EXIT_VALIDATION_ERROR

    services = ctx.services
    entries = services.recorder.entries(args.tenant)
    issues = services.verifier.verify_chain(entries)
    chained = sum(1 for e in entries if e.previous_hash is not None)

    if ctx.output_format != "table":
        ctx.output({
            "tenant_id": args.tenant,
            "total_entries": len(entries),
            "chained_entries": chained,
            "is_valid": not issues,
            "chain_issues": issues,
        })
    else:
        ctx.print(f"Entries: {len(entries)} ({chained} chained)")
        if chained == 0 and entries:
            ctx.print("Hash chaining is off for this log; linkage cannot be checked.")
        for issue in issues:
            ctx.print_error(
                f"Entry {issue['entry_id']} at position {issue['index']}: {issue['type']}"
            )
        ctx.print("Audit chain is intact." if not issues else f"{len(issues)} broken link(s).")
    return EXIT_SUCCESS if not issues else EXIT_VALIDATION_ERROR
