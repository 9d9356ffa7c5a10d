"""daohub CLI - command-line interface for the governance engine.

Usage:
    python -m daohub.cli status
    python -m daohub.cli create-org --caller alice --name Guild --token tok-1 --threshold 100
    python -m daohub.cli join --caller bob --org 1
    python -m daohub.cli join-with-proof --caller carol --org 1 --balance 250
    python -m daohub.cli propose --caller carol --org 1 --title "Fund docs"
    python -m daohub.cli vote --caller bob --org 1 --proposal 0 --direction for
    python -m daohub.cli finalize --caller bob --org 1 --proposal 0 --now 2000
    python -m daohub.cli fund --account dave --amount 500
    python -m daohub.cli deposit --caller dave --org 1 --amount 200
    python -m daohub.cli withdraw --caller alice --org 1 --to erin --amount 50
    python -m daohub.cli check-invariants

State lives in the data directory (DAOHUB_DATA_DIR, default data/):
state.json (keyed records), events.jsonl (audit log), custody.json
(local custody balances).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

from daohub.config import DaoConfig, load_environment
from daohub.context import HeightClock
from daohub.invariants import check_store
from daohub.models.governance import VoteDirection
from daohub.persistence.event_log import EventLog
from daohub.persistence.state_store import StateStore
from daohub.service import DaoService, ServiceResult
from daohub.treasury.custody import InMemoryCustody


STATE_FILE = "state.json"
EVENTS_FILE = "events.jsonl"
CUSTODY_FILE = "custody.json"


def _make_service(args: argparse.Namespace) -> DaoService:
    """Create a DaoService with durable persistence in the data directory."""
    data_dir: Path = args.data
    data_dir.mkdir(parents=True, exist_ok=True)
    config = DaoConfig.from_config_dir(args.config)
    store = StateStore(storage_path=data_dir / STATE_FILE)
    event_log = EventLog(storage_path=data_dir / EVENTS_FILE)
    custody_path = data_dir / CUSTODY_FILE
    balances: dict[str, int] = {}
    if custody_path.exists():
        balances = json.loads(custody_path.read_text(encoding="utf-8"))
    last_height = event_log.last_event.height if event_log.last_event else 0
    return DaoService(
        config=config,
        store=store,
        event_log=event_log,
        custody=InMemoryCustody(balances),
        clock=HeightClock(last_height),
    )


def _save_custody(args: argparse.Namespace, service: DaoService) -> None:
    custody = service.custody
    if isinstance(custody, InMemoryCustody):
        path = args.data / CUSTODY_FILE
        path.write_text(
            json.dumps(custody.to_records(), indent=2, sort_keys=True),
            encoding="utf-8",
        )


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    kind = result.error_kind.value if result.error_kind else "error"
    print(f"Failed ({kind}): {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _print_record(record: Optional[Any], label: str) -> int:
    if record is None:
        print(f"{label} not found", file=sys.stderr)
        return 1
    print(json.dumps(asdict(record), indent=2, default=str))
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_create_org(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.create_organization(
        caller=args.caller,
        name=args.name,
        description=args.description,
        governance_token=args.token,
        membership_threshold=args.threshold,
        now=args.now,
    ))


def cmd_join(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.join_directly(args.caller, args.org, now=args.now))


def cmd_join_with_proof(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.join_with_token_proof(
        args.caller, args.org, args.balance, now=args.now,
    ))


def cmd_update_settings(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.update_settings(
        caller=args.caller,
        org_id=args.org,
        voting_period=args.voting_period,
        quorum_bp=args.quorum_bp,
        majority_bp=args.majority_bp,
        proposal_threshold=args.proposal_threshold,
        now=args.now,
    ))


def cmd_propose(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.create_proposal(
        args.caller, args.org, args.title, args.description, now=args.now,
    ))


def cmd_vote(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.vote(
        args.caller, args.org, args.proposal, VoteDirection(args.direction),
        now=args.now,
    ))


def cmd_finalize(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.finalize(args.caller, args.org, args.proposal, now=args.now))


def cmd_fund(args: argparse.Namespace) -> int:
    """Credit an account in the local custody backend."""
    service = _make_service(args)
    custody = service.custody
    if not isinstance(custody, InMemoryCustody):
        print("Funding is only available for the local custody backend", file=sys.stderr)
        return 1
    try:
        custody.credit(args.account, args.amount)
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    _save_custody(args, service)
    print(json.dumps({"account": args.account, "balance": custody.balance_of(args.account)}))
    return 0


def cmd_deposit(args: argparse.Namespace) -> int:
    service = _make_service(args)
    code = _report(service.deposit(args.caller, args.org, args.amount, now=args.now))
    _save_custody(args, service)
    return code


def cmd_withdraw(args: argparse.Namespace) -> int:
    service = _make_service(args)
    code = _report(service.withdraw(
        args.caller, args.org, args.to, args.amount, now=args.now,
    ))
    _save_custody(args, service)
    return code


def cmd_show_org(args: argparse.Namespace) -> int:
    service = _make_service(args)
    org = service.get_organization(args.org)
    if org is None:
        print(f"Organization {args.org} not found", file=sys.stderr)
        return 1
    print(json.dumps(
        {
            "organization": asdict(org),
            "settings": asdict(service.get_settings(args.org)),
            "treasury": asdict(service.get_treasury(args.org)),
            "members": [asdict(m) for m in service.list_members(args.org)],
        },
        indent=2,
        default=str,
    ))
    return 0


def cmd_show_proposal(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _print_record(
        service.get_proposal(args.org, args.proposal),
        f"Proposal {args.org}/{args.proposal}",
    )


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run structural invariant checks over the persisted state."""
    service = _make_service(args)
    errors = check_store(service.store)
    if errors:
        for error in errors:
            print(f"VIOLATION: {error}", file=sys.stderr)
        return 1
    print("All invariant checks passed.")
    return 0


def _add_caller(p: argparse.ArgumentParser) -> None:
    p.add_argument("--caller", required=True, help="Calling account")
    p.add_argument("--now", type=int, help="Current height (default: last observed)")


def build_parser(env_config: Path, env_data: Path) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="daohub",
        description="daohub - multi-tenant DAO governance engine CLI",
    )
    parser.add_argument(
        "--config", type=Path, default=env_config,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data", type=Path, default=env_data,
        help="Path to data directory (default: data/)",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show system status")

    p = sub.add_parser("create-org", help="Create an organization")
    _add_caller(p)
    p.add_argument("--name", required=True)
    p.add_argument("--description", default="")
    p.add_argument("--token", required=True, help="Governance token reference")
    p.add_argument("--threshold", type=int, required=True, help="Membership threshold")

    p = sub.add_parser("join", help="Join an organization directly")
    _add_caller(p)
    p.add_argument("--org", type=int, required=True)

    p = sub.add_parser("join-with-proof", help="Join with an asserted token balance")
    _add_caller(p)
    p.add_argument("--org", type=int, required=True)
    p.add_argument("--balance", type=int, required=True)

    p = sub.add_parser("update-settings", help="Replace governance settings (admin)")
    _add_caller(p)
    p.add_argument("--org", type=int, required=True)
    p.add_argument("--voting-period", type=int, required=True)
    p.add_argument("--quorum-bp", type=int, required=True)
    p.add_argument("--majority-bp", type=int, required=True)
    p.add_argument("--proposal-threshold", type=int, required=True)

    p = sub.add_parser("propose", help="Create a proposal")
    _add_caller(p)
    p.add_argument("--org", type=int, required=True)
    p.add_argument("--title", required=True)
    p.add_argument("--description", default="")

    p = sub.add_parser("vote", help="Vote on a proposal")
    _add_caller(p)
    p.add_argument("--org", type=int, required=True)
    p.add_argument("--proposal", type=int, required=True)
    p.add_argument(
        "--direction", required=True, choices=[d.value for d in VoteDirection],
    )

    p = sub.add_parser("finalize", help="Finalize a proposal after its deadline")
    _add_caller(p)
    p.add_argument("--org", type=int, required=True)
    p.add_argument("--proposal", type=int, required=True)

    p = sub.add_parser("fund", help="Credit an account in local custody")
    p.add_argument("--account", required=True)
    p.add_argument("--amount", type=int, required=True)

    p = sub.add_parser("deposit", help="Deposit into an organization's treasury")
    _add_caller(p)
    p.add_argument("--org", type=int, required=True)
    p.add_argument("--amount", type=int, required=True)

    p = sub.add_parser("withdraw", help="Withdraw from a treasury (admin)")
    _add_caller(p)
    p.add_argument("--org", type=int, required=True)
    p.add_argument("--to", required=True, help="Recipient account")
    p.add_argument("--amount", type=int, required=True)

    p = sub.add_parser("show-org", help="Show an organization")
    p.add_argument("--org", type=int, required=True)

    p = sub.add_parser("show-proposal", help="Show a proposal")
    p.add_argument("--org", type=int, required=True)
    p.add_argument("--proposal", type=int, required=True)

    sub.add_parser("check-invariants", help="Run structural invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    env = load_environment()
    logging.basicConfig(
        level=getattr(logging, env.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = build_parser(env.config_dir, env.data_dir)
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "create-org": cmd_create_org,
        "join": cmd_join,
        "join-with-proof": cmd_join_with_proof,
        "update-settings": cmd_update_settings,
        "propose": cmd_propose,
        "vote": cmd_vote,
        "finalize": cmd_finalize,
        "fund": cmd_fund,
        "deposit": cmd_deposit,
        "withdraw": cmd_withdraw,
        "show-org": cmd_show_org,
        "show-proposal": cmd_show_proposal,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
