from __future__ import annotations

import os
from typing import Callable, List, Optional, TypeVar, Union

from droptidy.core.audit.log import AuditLog
from droptidy.core.audit.models import AuditAction, AuditEntry
from droptidy.core.auth.engine import AuthenticationEngine
from droptidy.core.auth.policy import check_password, check_username
from droptidy.core.auth.session import Session
from droptidy.core.backup.manager import BackupManager
from droptidy.core.backup.models import BackupSnapshot
from droptidy.core.config.manager import ConfigManager
from droptidy.core.config.models import AppConfig
from droptidy.core.config.paths import ConfigFsPaths
from droptidy.core.error_reporter import ErrorReporter
from droptidy.core.errors import (
    AccountLockedError,
    AccountNotFoundError,
    AuthenticationError,
    DropTidyError,
    DuplicateUsernameError,
    LastAdminError,
    SelfDeletionError,
    ValidationError,
)
from droptidy.core.identity.factory import open_account_store
from droptidy.core.identity.models import Account, AccountRole, AccountStatus, AccountUpdate, count_admins, iso_now
from droptidy.core.identity.store import AccountStore
from droptidy.core.logger import component_logger
from droptidy.core.reset.manager import PasswordResetManager
from droptidy.core.results import (
    BackupResult,
    CommandResult,
    DeleteResult,
    ExportResult,
    ImportResult,
    LoginResult,
    ResetInitResult,
)
from droptidy.core.transfer.engine import ImportSource, TransferEngine
from droptidy.core.transfer.models import ImportMode

T = TypeVar("T")

GENERIC_RESET_MESSAGE = "If the account exists, a reset code has been generated."


class AccountService:
    """
    Command surface consumed by the presentation layer.

    Every public method returns a result value; no exception crosses this
    boundary. Domain errors become failed results carrying their user message;
    anything else is written to the error reporter and returned as a generic
    failure.

    The signed-in operator lives in `self.session`, owned by this object.
    """

    def __init__(
        self,
        *,
        store: AccountStore,
        audit: AuditLog,
        backups: BackupManager,
        auth: AuthenticationEngine,
        resets: PasswordResetManager,
        transfer: TransferEngine,
        cfg: Optional[AppConfig] = None,
        session: Optional[Session] = None,
        error_reporter: Optional[ErrorReporter] = None,
        logger=None,
    ):
        self.store = store
        self.audit = audit
        self.backups = backups
        self.auth = auth
        self.resets = resets
        self.transfer = transfer
        self.cfg = cfg or AppConfig()
        self.session = session or Session()
        self.error_reporter = error_reporter
        self.logger = logger or component_logger("service")

    # ---- error boundary ----
    def _guard(self, operation: str, fn: Callable[[], T], on_error: Callable[[DropTidyError], T]) -> T:
        try:
            return fn()
        except DropTidyError as e:
            if e.code in {"storage_error", "config_error"}:
                self._report(e, operation)
            return on_error(e)
        except Exception as e:  # noqa: BLE001
            return on_error(self._report(e, operation))

    def _report(self, exc: BaseException, operation: str) -> DropTidyError:
        self.logger.error(f"{operation} failed: {type(exc).__name__}: {exc}")
        if self.error_reporter is not None:
            try:
                return self.error_reporter.report_exception(exc, operation=operation)
            except OSError as e:
                self.logger.error(f"Unable to write error report: {e}")
        if isinstance(exc, DropTidyError):
            return exc
        return DropTidyError(code="unknown_error", user_message="Something went wrong.")

    @staticmethod
    def _fail(result_type, fallback: str):  # noqa: ANN001, ANN205
        def make(e: DropTidyError):  # noqa: ANN202
            msg = e.user_message if e.code not in {"unknown_error", "storage_error"} else fallback
            return result_type(success=False, message=msg, error_code=e.code)

        return make

    # ---- registration & login ----
    def register(self, username: str, password: str, role: Union[AccountRole, str] = AccountRole.user) -> CommandResult:
        def run() -> CommandResult:
            check_username(username, min_length=self.cfg.security.min_username_length)
            check_password(password)
            try:
                wanted = AccountRole(role)
            except ValueError as e:
                raise ValidationError("Role must be 'admin' or 'user'.") from e
            existing = self.store.list()
            if any(a.username == username for a in existing):
                raise DuplicateUsernameError(username=username)
            # the first account bootstraps the directory as its administrator
            assigned = AccountRole.admin if not existing else wanted
            snap = self.backups.snapshot("user_registration")
            self.store.create(
                Account(
                    username=username,
                    password=password,
                    role=assigned,
                    failed_login_attempts=0,
                    status=AccountStatus.active,
                    created_at=iso_now(),
                )
            )
            self.audit.append(AuditAction.register, username, self.session.username, {"role": assigned.value, "backup": snap.path if snap else None})
            self.logger.info(f"Account registered: {username} ({assigned.value})")
            return CommandResult(success=True)

        return self._guard("register", run, self._fail(CommandResult, "An error occurred during registration"))

    def verify_credentials(self, username: str, password: str) -> LoginResult:
        def run() -> LoginResult:
            account = self.auth.verify(username, password)
            self.session.start(account)
            return LoginResult(success=True)

        def on_error(e: DropTidyError) -> LoginResult:
            if isinstance(e, AccountLockedError):
                return LoginResult(success=False, message=e.user_message, error_code=e.code, retry_after_seconds=e.retry_after_seconds)
            if isinstance(e, AuthenticationError):
                return LoginResult(success=False, message=e.user_message, error_code=e.code, attempts_remaining=e.context.get("attempts_remaining"))
            return LoginResult(success=False, message="An error occurred during login", error_code=e.code)

        return self._guard("verify_credentials", run, on_error)

    def logout(self) -> bool:
        def run() -> bool:
            who = self.session.username
            if who is not None:
                self.audit.append(AuditAction.logout, who, who, {})
            self.session.end()
            return True

        return self._guard("logout", run, lambda _e: False)

    def is_logged_in(self) -> bool:
        return self.session.is_logged_in()

    def current_user(self) -> Optional[str]:
        return self.session.username

    def current_role(self) -> Optional[str]:
        role = self.session.role
        return role.value if role is not None else None

    # ---- administration ----
    def list_accounts(self) -> List[Account]:
        return self._guard("list_accounts", self.store.list, lambda _e: [])

    def update_account(self, username: str, *, password: Optional[str] = None, role: Optional[Union[AccountRole, str]] = None) -> bool:
        """
        Change password and/or role. Exactly one `update` audit entry per call.
        """
        requested = {"password": password, "role": getattr(role, "value", role)}

        def run() -> bool:
            fields: dict = {}
            if password:
                check_password(password)
                fields["password"] = password
            if role:
                try:
                    fields["role"] = AccountRole(role)
                except ValueError as e:
                    raise ValidationError("Role must be 'admin' or 'user'.") from e
            if not fields:
                raise ValidationError("Nothing to update.")
            if self.store.find(username) is None:
                raise AccountNotFoundError(username=username)
            snap = self.backups.snapshot("user_update")
            updated = self.store.update(username, AccountUpdate(**fields))
            self.session.refresh(updated)
            self.audit.append(AuditAction.update, username, self.session.username, {**requested, "outcome": "success", "backup": snap.path if snap else None})
            return True

        def on_error(e: DropTidyError) -> bool:
            self.logger.warning(f"Update of {username} rejected: {e.user_message}")
            self._audit_quietly(AuditAction.update, username, {**requested, "outcome": "failed", "error": e.code})
            return False

        return self._guard("update_account", run, on_error)

    def delete_account(self, username: str) -> DeleteResult:
        """
        Remove an account. Refuses self-deletion and the last administrator
        before anything is written. Exactly one `delete` audit entry per call.
        """

        def run() -> DeleteResult:
            if self.session.username == username:
                raise SelfDeletionError(username=username)
            accounts = self.store.list()
            target = next((a for a in accounts if a.username == username), None)
            if target is None:
                raise AccountNotFoundError(username=username)
            if target.is_admin and count_admins(accounts) <= 1:
                raise LastAdminError(username=username)
            snap = self.backups.snapshot("user_deletion")
            self.store.delete(username)
            self.audit.append(
                AuditAction.delete,
                username,
                self.session.username,
                {"deleted_by": self.session.username, "outcome": "success", "backup": snap.path if snap else None},
            )
            return DeleteResult(success=True)

        def on_error(e: DropTidyError) -> DeleteResult:
            self._audit_quietly(AuditAction.delete, username, {"deleted_by": self.session.username, "outcome": "failed", "error": e.code})
            if e.code in {"unknown_error", "storage_error"}:
                return DeleteResult(success=False, error="An error occurred while deleting the account", error_code=e.code)
            return DeleteResult(success=False, error=e.user_message, error_code=e.code)

        return self._guard("delete_account", run, on_error)

    def list_audit_entries(self, *, action: Optional[str] = None, username: Optional[str] = None, limit: Optional[int] = None) -> List[AuditEntry]:
        return self._guard("list_audit_entries", lambda: self.audit.list(action=action, username=username, limit=limit), lambda _e: [])

    # ---- password reset ----
    def initiate_password_reset(self, username: str) -> ResetInitResult:
        def run() -> ResetInitResult:
            code = self.resets.initiate(username)
            if code is None:
                return ResetInitResult(success=True, message=GENERIC_RESET_MESSAGE)
            # no delivery channel: the code is handed back to the caller
            return ResetInitResult(success=True, code=code, message=GENERIC_RESET_MESSAGE)

        return self._guard("initiate_password_reset", run, self._fail(ResetInitResult, "An error occurred during password reset"))

    def complete_password_reset(self, username: str, code: str, new_password: str) -> CommandResult:
        def run() -> CommandResult:
            self.resets.complete(username, code, new_password)
            return CommandResult(success=True, message="Password has been reset successfully")

        return self._guard("complete_password_reset", run, self._fail(CommandResult, "An error occurred during password reset"))

    # ---- bulk transfer ----
    def export_accounts(self, destination: Optional[str] = None) -> ExportResult:
        def run() -> ExportResult:
            bundle = self.transfer.export(destination, performed_by=self.session.username)
            if destination:
                return ExportResult(
                    success=True,
                    message=f"Exported {bundle.metadata.record_count} user records to {destination}",
                    path=str(destination),
                )
            return ExportResult(success=True, data=bundle)

        return self._guard("export_accounts", run, self._fail(ExportResult, "Failed to export user data"))

    def import_accounts(self, source: ImportSource, mode: Union[ImportMode, str] = ImportMode.merge) -> ImportResult:
        def run() -> ImportResult:
            s = self.transfer.import_accounts(source, mode, performed_by=self.session.username)
            return ImportResult(
                success=True,
                message=f"Import successful. {s.imported_count} users added, {s.updated_count} users updated.",
                imported_count=s.imported_count,
                updated_count=s.updated_count,
                backup=s.backup,
            )

        return self._guard("import_accounts", run, self._fail(ImportResult, "Failed to import user data"))

    # ---- backups ----
    def create_backup(self, category: str = "manual") -> BackupResult:
        def run() -> BackupResult:
            snap = self.backups.snapshot(category, record_audit=True, performed_by=self.session.username)
            if snap is None:
                return BackupResult(success=False, message="Nothing to back up.")
            return BackupResult(success=True, path=snap.path)

        return self._guard("create_backup", run, self._fail(BackupResult, "Failed to create backup"))

    def list_backups(self, category: Optional[str] = None) -> List[BackupSnapshot]:
        return self._guard("list_backups", lambda: self.backups.list_snapshots(category), lambda _e: [])

    def restore_backup(self, path: str) -> BackupResult:
        def run() -> BackupResult:
            n = self.backups.restore(path, performed_by=self.session.username)
            return BackupResult(success=True, path=path, restored_count=n, message=f"Restored {n} user records.")

        return self._guard("restore_backup", run, self._fail(BackupResult, "Failed to restore backup"))

    # ---- helpers ----
    def _audit_quietly(self, action: str, username: str, details: dict) -> None:
        try:
            self.audit.append(action, username, self.session.username, details)
        except DropTidyError as e:
            self.logger.error(f"Unable to audit {action} for {username}: {e.user_message}")


def build_service(
    *,
    root: str = ".",
    config_manager: Optional[ConfigManager] = None,
    session: Optional[Session] = None,
    logger=None,
) -> AccountService:
    """Wire the components from config under `root`."""
    cm = config_manager or ConfigManager(fs=ConfigFsPaths(root), logger=logger)
    cfg = cm.load_all() if config_manager is None else cm.get()
    paths = cm.open_paths()

    store = open_account_store(cfg.storage, paths)
    audit = AuditLog(path=paths["audit_file"])
    backups = BackupManager(store=store, backups_dir=paths["backups_dir"], cfg=cfg.backup, audit=audit)
    return AccountService(
        store=store,
        audit=audit,
        backups=backups,
        auth=AuthenticationEngine(store=store, audit=audit, cfg=cfg.security),
        resets=PasswordResetManager(store=store, audit=audit, backups=backups, cfg=cfg.security),
        transfer=TransferEngine(store=store, backups=backups, audit=audit),
        cfg=cfg,
        session=session,
        error_reporter=ErrorReporter(path=os.path.join(paths["log_dir"], "errors.jsonl")),
        logger=logger,
    )
