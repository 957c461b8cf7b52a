from __future__ import annotations

import argparse

from droptidy.core.audit.log import AuditLog
from droptidy.core.backup.manager import BackupManager
from droptidy.core.config.manager import get_config
from droptidy.core.errors import DropTidyError
from droptidy.core.identity.factory import open_account_store


def main() -> int:
    ap = argparse.ArgumentParser(description="DropTidy account restore (lists snapshots unless --apply)")
    ap.add_argument("path", nargs="?", default=None, help="Snapshot file; defaults to the newest one.")
    ap.add_argument("--category", default=None, help="Only consider snapshots of this category.")
    ap.add_argument("--apply", action="store_true", help="Apply restore (overwrites the account directory).")
    ap.add_argument("--root", default=".")
    args = ap.parse_args()

    cm = get_config(root=args.root, logger=None)
    cfg = cm.get()
    paths = cm.open_paths()
    store = open_account_store(cfg.storage, paths)
    mgr = BackupManager(store=store, backups_dir=paths["backups_dir"], cfg=cfg.backup, audit=AuditLog(path=paths["audit_file"]))

    snaps = mgr.list_snapshots(args.category)
    target = args.path or (snaps[0].path if snaps else None)
    if not args.apply:
        for s in snaps:
            print(f"{s.timestamp}  {s.category:<20} {s.path}")
        print(f"would restore: {target}")
        return 0
    if target is None:
        print("no snapshot to restore")
        return 1
    try:
        n = mgr.restore(target)
    except DropTidyError as e:
        print(f"restore failed: {e.user_message}")
        return 1
    print(f"restored {n} accounts from {target}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
