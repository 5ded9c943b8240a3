#!/usr/bin/env python3
"""
Human Supervision Protocol - Command Line Interface

Usage:
    hsp demo [--export PATH]            Run the reference scenarios end to end
    hsp classify <action.json>          Classify an action without recording it
    hsp verify <ledger.jsonl>           Verify an exported audit ledger offline
    hsp config                          Show the resolved configuration
    hsp keygen --key-id ID              Generate an Ed25519 approver key pair

Global options:
    -v / --verbose                      DEBUG logging
    --config PATH                       Engine config JSON (else HSP_* env vars)
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from hsp_core.classifier import classify
from hsp_core.config import HSPConfig
from hsp_core.crypto import TrustedKeyStore, create_key_pair
from hsp_core.engine import HSPEngine
from hsp_core.errors import HSPError
from hsp_core.ledger import AuditLedger
from hsp_core.rules import value_above
from hsp_core.signing import Ed25519ApprovalVerifier, sign_approval
from hsp_core.types import ActionStatus, AgentAction, CriticalityLevel, EscalationRule


def setup_logging(verbose: bool = False):
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def load_config(config_path: Optional[Path]) -> HSPConfig:
    """
    Load engine configuration from a JSON file, else from HSP_* env vars.

    On invalid JSON, raises a clear error rather than falling back silently.
    """
    if config_path is None:
        return HSPConfig.from_env()
    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"CONFIG_ERROR: Invalid JSON in config file '{config_path}': {e}") from e
    except OSError as e:
        raise ValueError(f"CONFIG_ERROR: Failed to read config file '{config_path}': {e}") from e
    return HSPConfig.from_dict(data)


def cmd_classify(args) -> int:
    """Classify an action from a JSON file."""
    config = load_config(args.config)
    with open(args.action_file, encoding="utf-8") as f:
        action = AgentAction.from_dict(json.load(f))

    c = classify(action, config.escalation_rules, config.default_level)
    print(f"Action:            {action.id} ({action.type})")
    print(f"Level:             {c.level.value}")
    print(f"Reason:            {c.reason}")
    print(f"Requires approval: {'yes' if c.level.requires_approval else 'no'}")
    return 0


def cmd_verify(args) -> int:
    """Verify an exported ledger. A missing file fails."""
    ok, reason, count = AuditLedger.verify_file(args.ledger_file)
    if reason == "NO_FILE":
        ok = False

    if args.json_out:
        payload = {"ok": ok, "command": "verify", "path": args.ledger_file, "reason": reason, "records": count}
        if args.json_pretty:
            print(json.dumps(payload, indent=2, sort_keys=True))
        else:
            print(json.dumps(payload, separators=(",", ":"), sort_keys=True))
        return 0 if ok else 1

    if ok:
        print(f"✓ AUDIT_LEDGER_OK: {reason} (records={count})")
        return 0
    print(f"✗ AUDIT_LEDGER_FAIL: {reason} (records={count})")
    return 1


def cmd_config(args) -> int:
    """Show current configuration."""
    config = load_config(args.config)
    print(json.dumps(config.to_dict(), indent=2, sort_keys=True))
    return 0


def cmd_keygen(args) -> int:
    """Generate an approver key pair."""
    kp = create_key_pair(args.key_id)
    print(json.dumps(
        {
            "key_id": kp.key_id,
            "public_key_hex": kp.public_key_hex,
            "private_key_hex": kp.private_key_bytes.hex(),
        },
        indent=2,
    ))
    return 0


def _demo_action(action_id: str, action_type: str, description: str, value: Optional[float] = None,
                 target: Optional[str] = None) -> AgentAction:
    return AgentAction(
        id=action_id,
        agent_id="agent-001",
        type=action_type,
        description=description,
        value=value,
        currency="USD" if value is not None else None,
        target=target,
        requested_at=datetime.now(timezone.utc),
    )


def cmd_demo(args) -> int:
    """Run the reference scenarios through a fresh engine."""
    approver = create_key_pair("alice")
    keys = TrustedKeyStore()
    keys.add_public_key(approver.key_id, approver.public_key_hex)

    config = HSPConfig(
        escalation_rules=(
            EscalationRule(value_above(10000), CriticalityLevel.CRITICAL, "Value exceeds 10000"),
            EscalationRule(value_above(1000), CriticalityLevel.HIGH, "Value exceeds 1000"),
        ),
    )
    engine = HSPEngine(config, signature_verifier=Ed25519ApprovalVerifier(keys))

    actions = [
        _demo_action("demo-1", "query", "Query user preferences"),
        _demo_action("demo-2", "purchase", "Purchase item", value=500),
        _demo_action("demo-3", "read", "High value read", value=5000),
        _demo_action("demo-4", "transfer", "Transfer funds", value=100, target="agent-002"),
    ]

    print(f"\n{'=' * 60}")
    print("HSP DEMO")
    print(f"{'=' * 60}")
    for action in actions:
        result = engine.process(action)
        print(f"\n{action.id} ({action.type}, value={action.value})")
        print(f"  Level:  {result.criticality_level.value}")
        print(f"  Status: {result.status.value}")
        print(f"  Reason: {result.classification_reason}")

        if result.status is ActionStatus.AWAITING_APPROVAL:
            approve = action.type != "read"
            response = sign_approval(
                approver,
                session_id=result.session_id,
                approved=approve,
                comment="demo decision",
            )
            result = engine.process_approval(response)
            print(f"  Human:  {result.status.value} by {response.approver_id}")

        if result.status is ActionStatus.APPROVED:
            engine.execute(result)
            print("  Executed")

    entries = engine.audit_log()
    print(f"\nAudit entries: {len(entries)}")
    print(f"Integrity:     {'OK' if engine.verify_audit_integrity() else 'FAILED'}")

    if args.export:
        n = engine.ledger.export_jsonl(args.export)
        print(f"Exported {n} entries to {args.export}")
    print(f"{'=' * 60}\n")
    return 0 if engine.verify_audit_integrity() else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hsp",
        description="Human Supervision Protocol CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--config", type=Path, help="Path to config JSON file")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    demo_parser = subparsers.add_parser("demo", help="Run demo scenarios")
    demo_parser.add_argument("--export", help="Write the resulting ledger to this JSONL path")
    demo_parser.set_defaults(func=cmd_demo)

    classify_parser = subparsers.add_parser("classify", help="Classify an action")
    classify_parser.add_argument("action_file", help="Path to action JSON file")
    classify_parser.set_defaults(func=cmd_classify)

    verify_parser = subparsers.add_parser("verify", help="Verify an exported audit ledger")
    verify_parser.add_argument("ledger_file", help="Path to ledger JSONL")
    verify_parser.add_argument("--json", dest="json_out", action="store_true", help="Emit machine-readable JSON")
    verify_parser.add_argument("--pretty", dest="json_pretty", action="store_true", help="Pretty-print JSON (only with --json)")
    verify_parser.set_defaults(func=cmd_verify)

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.set_defaults(func=cmd_config)

    keygen_parser = subparsers.add_parser("keygen", help="Generate an approver key pair")
    keygen_parser.add_argument("--key-id", required=True, help="Approver id the key belongs to")
    keygen_parser.set_defaults(func=cmd_keygen)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    try:
        return args.func(args)
    except HSPError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
