from __future__ import annotations

import argparse

from droptidy.core.audit.log import AuditLog
from droptidy.core.backup.manager import BackupManager
from droptidy.core.config.manager import get_config
from droptidy.core.identity.factory import open_account_store


def main() -> int:
    ap = argparse.ArgumentParser(description="DropTidy account snapshot")
    ap.add_argument("category", nargs="?", default="manual", help="Snapshot category (lowercase letters, digits, underscore).")
    ap.add_argument("--root", default=".", help="Directory holding config/ and data/.")
    args = ap.parse_args()

    cm = get_config(root=args.root, logger=None)
    cfg = cm.get()
    paths = cm.open_paths()
    store = open_account_store(cfg.storage, paths)
    mgr = BackupManager(store=store, backups_dir=paths["backups_dir"], cfg=cfg.backup, audit=AuditLog(path=paths["audit_file"]))
    snap = mgr.snapshot(args.category, record_audit=True)
    if snap is None:
        print("nothing to back up")
        return 1
    print(snap.path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
