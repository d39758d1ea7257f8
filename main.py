#!/usr/bin/env python3
"""
kbot permissions - operator CLI for the chat bot's permission records.

Runs the same authorization code the bot uses, against the configured store
(TelegramBotPermission custom resources by default, local JSON files with
PERMISSION_STORE=local).
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from kbot.config import BotConfig, ConfigError, load_config
from kbot.rbac.errors import PermissionDenied, RBACError

# Configure logging
logging.basicConfig(
    level=getattr(logging, (os.getenv("LOG_LEVEL") or "info").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)

logger = logging.getLogger("kbot.cli")


def _print_json(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=False))


def cmd_check(args: argparse.Namespace, cfg: BotConfig) -> int:
    from kbot.rbac.engine import AuthzRequest
    from kbot.rbac.factory import build_authorizer

    authorizer = build_authorizer(cfg)
    req = AuthzRequest.build(
        args.principal, args.verb, args.resource, namespace=args.namespace, instance_name=args.name
    )
    decision = authorizer.authorize(req, timeout=cfg.request_timeout_seconds)
    _print_json(
        {
            "allowed": decision.allowed,
            "reason": decision.reason,
            "principal": req.principal_id,
            "namespace": req.namespace,
            "resource": req.resource,
            "verb": req.verb,
            "name": req.instance_name or None,
        }
    )
    return 0 if decision.allowed else 1


def _require_actor(args: argparse.Namespace, cfg: BotConfig) -> None:
    if args.actor is None:
        return
    from kbot.rbac.factory import build_authorizer

    build_authorizer(cfg).require_admin(args.actor, timeout=cfg.request_timeout_seconds)


def cmd_grant(args: argparse.Namespace, cfg: BotConfig) -> int:
    from kbot.rbac.factory import build_manager

    _require_actor(args, cfg)
    record = build_manager(cfg).grant(
        args.principal,
        args.namespace,
        args.resource,
        args.verb,
        args.selector,
        timeout=cfg.request_timeout_seconds,
    )
    _print_json(record.to_document())
    return 0


def cmd_revoke(args: argparse.Namespace, cfg: BotConfig) -> int:
    from kbot.rbac.factory import build_manager

    _require_actor(args, cfg)
    record = build_manager(cfg).revoke(
        args.principal, args.namespace, args.resource, args.verb, timeout=cfg.request_timeout_seconds
    )
    _print_json(record.to_document())
    return 0


def cmd_show(args: argparse.Namespace, cfg: BotConfig) -> int:
    from kbot.rbac.factory import build_manager

    record = build_manager(cfg).get(args.principal, timeout=cfg.request_timeout_seconds)
    _print_json(record.to_document())
    return 0


def cmd_namespaces(args: argparse.Namespace, cfg: BotConfig) -> int:
    from kbot.rbac.factory import build_authorizer

    namespaces = build_authorizer(cfg).visible_namespaces(args.principal, timeout=cfg.request_timeout_seconds)
    _print_json({"principal": args.principal, "namespaces": namespaces})
    return 0


def cmd_role(args: argparse.Namespace, cfg: BotConfig) -> int:
    from kbot.rbac.factory import build_authorizer

    authorizer = build_authorizer(cfg)
    _print_json(
        {
            "principal": args.principal,
            "role": authorizer.role_of(args.principal, timeout=cfg.request_timeout_seconds),
            "bootstrap": authorizer.bootstrap.is_bootstrap(args.principal),
            "has_any_permission": authorizer.has_any_permission(args.principal, timeout=cfg.request_timeout_seconds),
        }
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inspect and edit chat bot permissions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Can user 42 read logs of frontend-1 in production?
  python main.py check 42 logs pods -n production --name frontend-1

  # Grant logs on pods in production, limited to app=frontend
  python main.py grant 42 logs pods -n production -l app=frontend

  # Revoke it again (namespace is required)
  python main.py revoke 42 logs pods -n production
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("check", help="Evaluate one authorization request")
    p.add_argument("principal", type=int)
    p.add_argument("verb")
    p.add_argument("resource")
    p.add_argument("-n", "--namespace", default=None, help="Namespace (default: default)")
    p.add_argument("--name", default="", help="Resource instance name (enables selector checks)")
    p.set_defaults(func=cmd_check)

    p = sub.add_parser("grant", help="Grant a verb on a resource type")
    p.add_argument("principal", type=int)
    p.add_argument("verb")
    p.add_argument("resource")
    p.add_argument("-n", "--namespace", default="*", help="Namespace or * (default: *)")
    p.add_argument("-l", "--selector", default="", help="Label selector limiting the grant")
    p.add_argument("--as", dest="actor", type=int, default=None, help="Acting principal (must be admin)")
    p.set_defaults(func=cmd_grant)

    p = sub.add_parser("revoke", help="Revoke a verb on a resource type")
    p.add_argument("principal", type=int)
    p.add_argument("verb")
    p.add_argument("resource")
    p.add_argument("-n", "--namespace", required=True, help="Namespace the grant is scoped to")
    p.add_argument("--as", dest="actor", type=int, default=None, help="Acting principal (must be admin)")
    p.set_defaults(func=cmd_revoke)

    for name, func, help_text in (
        ("show", cmd_show, "Print a principal's permission record"),
        ("namespaces", cmd_namespaces, "List namespaces visible to a principal"),
        ("role", cmd_role, "Print a principal's effective role"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("principal", type=int)
        p.set_defaults(func=func)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 2

    try:
        cfg = load_config(require_admins=False)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    logging.getLogger().setLevel(cfg.log_level_value)

    try:
        return args.func(args, cfg)
    except PermissionDenied as e:
        print(f"Permission denied: {e.reason}", file=sys.stderr)
        return 1
    except RBACError as e:
        logger.debug("command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
