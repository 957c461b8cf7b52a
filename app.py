from __future__ import annotations

import argparse
import getpass
import json
import sys
from typing import Any, List, Optional

from pydantic import BaseModel

from droptidy.core.config.manager import ConfigManager
from droptidy.core.config.paths import ConfigFsPaths
from droptidy.core.errors import ConfigError
from droptidy.core.logger import setup_logging
from droptidy.core.service import AccountService, build_service

# Commands that act on other people's accounts need a signed-in administrator.
ADMIN_COMMANDS = {"list", "update", "delete", "export", "import", "backup", "snapshots", "restore", "audit"}


def _emit(obj: Any) -> None:
    if isinstance(obj, BaseModel):
        data = obj.model_dump(mode="json", by_alias=True)
    elif isinstance(obj, list):
        data = [x.model_dump(mode="json", by_alias=True) if isinstance(x, BaseModel) else x for x in obj]
    else:
        data = obj
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _secret(value: Optional[str], prompt: str) -> str:
    return value if value is not None else getpass.getpass(prompt)


def _ok(result: Any) -> int:
    return 0 if bool(getattr(result, "success", result)) else 1


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="DropTidy local account directory")
    ap.add_argument("--root", default=".", help="Directory holding config/, data/ and logs/.")
    ap.add_argument("--login", default=None, help="Sign in as this user before running the command.")
    ap.add_argument("--login-password", default=None, help="Password for --login (prompted when omitted).")
    ap.add_argument("--quiet", action="store_true", help="Do not echo log lines to the console.")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("register", help="Create an account.")
    p.add_argument("username")
    p.add_argument("--password", default=None)
    p.add_argument("--role", choices=["admin", "user"], default="user")

    p = sub.add_parser("verify", help="Check a username/password pair.")
    p.add_argument("username")
    p.add_argument("--password", default=None)

    sub.add_parser("list", help="List accounts.")

    p = sub.add_parser("update", help="Change an account's password and/or role.")
    p.add_argument("username")
    p.add_argument("--password", default=None)
    p.add_argument("--role", choices=["admin", "user"], default=None)

    p = sub.add_parser("delete", help="Delete an account.")
    p.add_argument("username")

    p = sub.add_parser("reset-init", help="Issue a password reset code.")
    p.add_argument("username")
    p.add_argument("--complete", action="store_true", help="Prompt for the code and a new password in this process.")

    p = sub.add_parser("reset-complete", help="Set a new password with a reset code.")
    p.add_argument("username")
    p.add_argument("code")
    p.add_argument("--password", default=None)

    p = sub.add_parser("export", help="Export all accounts.")
    p.add_argument("--out", default=None, help="Write the bundle to this file instead of stdout.")

    p = sub.add_parser("import", help="Import accounts from an export bundle.")
    p.add_argument("path")
    p.add_argument("--mode", choices=["replace", "merge"], default="merge")

    p = sub.add_parser("backup", help="Snapshot the account directory now.")
    p.add_argument("--category", default="manual")

    p = sub.add_parser("snapshots", help="List snapshots, newest first.")
    p.add_argument("--category", default=None)

    p = sub.add_parser("restore", help="Replace the account directory with a snapshot.")
    p.add_argument("path")

    p = sub.add_parser("audit", help="Show audit entries.")
    p.add_argument("--action", default=None)
    p.add_argument("--user", default=None)
    p.add_argument("--limit", type=int, default=None)
    return ap


def run_command(svc: AccountService, args: argparse.Namespace) -> int:
    cmd = args.command
    if cmd == "register":
        res = svc.register(args.username, _secret(args.password, "Password: "), args.role)
    elif cmd == "verify":
        res = svc.verify_credentials(args.username, _secret(args.password, "Password: "))
    elif cmd == "list":
        res = svc.list_accounts()
        _emit(res)
        return 0
    elif cmd == "update":
        res = svc.update_account(args.username, password=args.password, role=args.role)
        _emit({"success": res})
        return _ok(res)
    elif cmd == "delete":
        res = svc.delete_account(args.username)
    elif cmd == "reset-init":
        res = svc.initiate_password_reset(args.username)
        if args.complete and res.success:
            # codes live in memory, so completion must happen before exit
            _emit(res)
            code = input("Reset code: ").strip()
            res = svc.complete_password_reset(args.username, code, _secret(None, "New password: "))
    elif cmd == "reset-complete":
        res = svc.complete_password_reset(args.username, args.code, _secret(args.password, "New password: "))
    elif cmd == "export":
        res = svc.export_accounts(args.out)
        if res.success and res.data is not None:
            _emit(res.data.to_json_obj())
            return 0
    elif cmd == "import":
        res = svc.import_accounts(args.path, args.mode)
    elif cmd == "backup":
        res = svc.create_backup(args.category)
    elif cmd == "snapshots":
        _emit(svc.list_backups(args.category))
        return 0
    elif cmd == "restore":
        res = svc.restore_backup(args.path)
    elif cmd == "audit":
        _emit(svc.list_audit_entries(action=args.action, username=args.user, limit=args.limit))
        return 0
    else:
        print(f"Unknown command: {cmd}", file=sys.stderr)
        return 2
    _emit(res)
    return _ok(res)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cm = ConfigManager(fs=ConfigFsPaths(args.root))
        cfg = cm.load_all()
    except ConfigError as e:
        print(f"Config error: {e.user_message}", file=sys.stderr)
        return 2
    logger = setup_logging(cm.open_paths()["log_dir"], level=cfg.app.log_level, console=not args.quiet)
    cm.logger = logger
    svc = build_service(root=args.root, config_manager=cm, logger=logger)

    if args.login:
        res = svc.verify_credentials(args.login, _secret(args.login_password, f"Password for {args.login}: "))
        if not res.success:
            _emit(res)
            return 1
    if args.command in ADMIN_COMMANDS and not svc.session.is_admin():
        print(f"'{args.command}' requires --login as an administrator.", file=sys.stderr)
        return 1

    try:
        return run_command(svc, args)
    finally:
        svc.logout()


if __name__ == "__main__":
    raise SystemExit(main())
