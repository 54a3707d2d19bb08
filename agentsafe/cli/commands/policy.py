"""
Policy commands for the Agent-SAFE Grid CLI.

Usage:
    agentsafe policy validate FILE
    agentsafe policy export FILE [--output PATH]
    agentsafe policy check FILE --text TEXT [--role ROLE] [--country CODE]
    agentsafe policy apply FILE --tenant TENANT
    agentsafe policy show --tenant TENANT
"""

import argparse
import json
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentsafe.cli.main import CLIContext

from agentsafe.engine.parser import PolicyParser
from agentsafe.models.policy import PolicyConfig


def register(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """Register the policy command with the parser."""
    parser = subparsers.add_parser(
        "policy",
        help="Policy management",
        description="Validate, export, dry-run and store tenant policies.",
    )
    policy_subparsers = parser.add_subparsers(
        title="policy commands", dest="policy_command", metavar="<subcommand>"
    )

    validate_parser = policy_subparsers.add_parser(
        "validate", help="Validate a policy file", description="Validate a policy file."
    )
    validate_parser.add_argument("path", metavar="FILE", help="Policy file (YAML or JSON)")
    validate_parser.set_defaults(func=run_policy_validate)

    export_parser = policy_subparsers.add_parser(
        "export",
        help="Export a policy file as the policy DSL",
        description="Export the enabled rules of a policy file as a DSL JSON document.",
    )
    export_parser.add_argument("path", metavar="FILE", help="Policy file (YAML or JSON)")
    export_parser.add_argument("--output", "-o", metavar="PATH", help="Write to a file")
    export_parser.set_defaults(func=run_policy_export)

    check_parser = policy_subparsers.add_parser(
        "check",
        help="Dry-run a policy against a message",
        description="Enforce a policy file on a message without calling a model.",
    )
    check_parser.add_argument("path", metavar="FILE", help="Policy file (YAML or JSON)")
    check_parser.add_argument("--text", "-t", required=True, help="Message to check")
    check_parser.add_argument("--role", help="Role of the acting user")
    check_parser.add_argument("--permission", help="Permission the request needs")
    check_parser.add_argument("--country", help="ISO country code of the request")
    check_parser.add_argument(
        "--compliance", action="append", default=[], metavar="STANDARD",
        help="Standard the request is cleared for (repeatable)",
    )
    check_parser.add_argument("--now", metavar="ISO8601", help="Request time with offset")
    check_parser.add_argument(
        "--response", action="store_true", help="Check the text as a model response"
    )
    check_parser.set_defaults(func=run_policy_check)

    apply_parser = policy_subparsers.add_parser(
        "apply",
        help="Store a policy file for a tenant",
        description="Validate a policy file and store it as a tenant's policy.",
    )
    apply_parser.add_argument("path", metavar="FILE", help="Policy file (YAML or JSON)")
    apply_parser.add_argument("--tenant", required=True, help="Tenant id")
    apply_parser.set_defaults(func=run_policy_apply)

    show_parser = policy_subparsers.add_parser(
        "show", help="Show a tenant's policy", description="Show a tenant's stored policy."
    )
    show_parser.add_argument("--tenant", required=True, help="Tenant id")
    show_parser.set_defaults(func=run_policy_show)


def _load_policy(path: str, ctx: "CLIContext") -> PolicyConfig | None:
    """Parse a policy file, printing errors and warnings."""
    result = PolicyParser().parse_file(Path(path))
    for warning in result.warnings:
        ctx.print(f"Warning: {warning}", error=True)
    if not result.success:
        for error in result.errors:
            ctx.print_error(str(error))
        return None
    return result.policy


def run_policy_validate(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the policy validate command."""
    from agentsafe.cli.main import EXIT_SUCCESS, EXIT_VALIDATION_ERROR
    from agentsafe.engine.validator import PolicyValidator

    policy = _load_policy(args.path, ctx)
    if policy is None:
        return EXIT_VALIDATION_ERROR

    validation = PolicyValidator().validate(policy)
    if ctx.output_format != "table":
        ctx.output(validation.to_dict())
        return EXIT_SUCCESS if validation.valid else EXIT_VALIDATION_ERROR

    ctx.print(f"Validating: {args.path}")
    for title, messages in (
        ("Validation Errors:", validation.errors),
        ("Validation Warnings:", validation.warnings),
        ("Info:", validation.info),
    ):
        if messages:
            ctx.print("")
            ctx.print(title)
            for message in messages:
                ctx.print(f"  {message}")

    ctx.print("")
    if not validation.valid:
        ctx.print(f"Policy is invalid: {len(validation.errors)} error(s).")
        return EXIT_VALIDATION_ERROR
    ctx.print("Policy is valid.")
    ctx.print(f"  Rules: {len(policy.advanced_rules)} ({sum(r.enabled for r in policy.advanced_rules)} enabled)")
    ctx.print(f"  Max budget: {policy.max_budget}")
    return EXIT_SUCCESS


def run_policy_export(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the policy export command."""
    from agentsafe.cli.main import EXIT_SUCCESS, EXIT_VALIDATION_ERROR

    policy = _load_policy(args.path, ctx)
    if policy is None:
        return EXIT_VALIDATION_ERROR

    document = json.dumps(policy.export_dsl(), indent=2)
    if args.output:
        Path(args.output).write_text(document + "\n", encoding="utf-8")
        ctx.print(f"Exported {len(policy.advanced_rules)} rule(s) to {args.output}")
    else:
        print(document)
    return EXIT_SUCCESS


def run_policy_check(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """
    Execute the policy check command.

    Exits 0 when the message is allowed and 2 when a rule blocks it.
    """
    from agentsafe.cli.main import EXIT_SUCCESS, EXIT_VALIDATION_ERROR
    from agentsafe.engine.context import EvaluationContext
    from agentsafe.engine.engine import PolicyEngine

    policy = _load_policy(args.path, ctx)
    if policy is None:
        return EXIT_VALIDATION_ERROR

    context = EvaluationContext.from_dict(
        {
            "role": args.role,
            "permission": args.permission,
            "country": args.country,
            "compliance": args.compliance,
            "now": args.now,
        },
        tenant_id="cli",
    )
    engine = PolicyEngine()
    try:
        if args.response:
            result = engine.enforce_response(policy, args.text, context)
        else:
            result = engine.enforce(policy, args.text, context)
    finally:
        engine.close()

    if ctx.output_format != "table":
        ctx.output(result.to_dict())
    else:
        ctx.print(f"Decision: {'ALLOW' if result.allowed else 'BLOCK'}")
        for fired in result.fired_rules:
            reason = f" - {fired.verdict.reason}" if fired.verdict.reason else ""
            ctx.print(
                f"  {fired.rule_id} ({fired.rule_type.value}, {fired.severity.value}): "
                f"{fired.verdict.action.value}{reason}"
            )
        if result.allowed:
            ctx.print(f"Output: {result.final_text}")
    return EXIT_SUCCESS if result.allowed else EXIT_VALIDATION_ERROR


def run_policy_apply(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the policy apply command."""
    from agentsafe.cli.main import EXIT_SUCCESS, EXIT_VALIDATION_ERROR

    policy = _load_policy(args.path, ctx)
    if policy is None:
        return EXIT_VALIDATION_ERROR

    stored, validation = ctx.services.policies.save(args.tenant, policy)
    for warning in validation.warnings:
        ctx.print(f"  {warning}")
    ctx.print(f"Stored policy for tenant {args.tenant} ({len(stored.advanced_rules)} rule(s))")
    return EXIT_SUCCESS


def run_policy_show(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the policy show command."""
    from agentsafe.cli.main import EXIT_SUCCESS

    policy = ctx.services.policies.load(args.tenant)
    ctx.output(policy.to_dict(), title=f"Policy of tenant {args.tenant}")
    return EXIT_SUCCESS
