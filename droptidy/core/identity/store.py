from __future__ import annotations

import abc
from typing import Any, Dict, List, Optional, Sequence, Union

from droptidy.core.errors import AccountNotFoundError, DuplicateUsernameError, LastAdminError
from droptidy.core.identity.models import Account, AccountUpdate, count_admins


class AccountStore(abc.ABC):
    """
    Durable CRUD over the account directory.

    Every operation is a whole-directory read-modify-write: load the full list,
    apply the change in memory, persist the full list. There is no record-level
    locking; a single writer per directory is assumed.

    Subclasses only implement `_load`, `_save` and `snapshot_to`.
    """

    backend_id: str = "abstract"

    # ---- backend hooks ----
    @abc.abstractmethod
    def _load(self) -> List[Account]:
        ...

    @abc.abstractmethod
    def _save(self, accounts: Sequence[Account]) -> None:
        ...

    @abc.abstractmethod
    def snapshot_to(self, path: str) -> bool:
        """
        Write the current directory, in the users.json record-list format, to `path`.
        Returns False (and writes nothing) when there is nothing to protect.
        """

    # ---- contract ----
    def list(self) -> List[Account]:
        return self._load()

    def find(self, username: str) -> Optional[Account]:
        for a in self._load():
            if a.username == username:
                return a
        return None

    def create(self, account: Account) -> Account:
        accounts = self._load()
        if any(a.username == account.username for a in accounts):
            raise DuplicateUsernameError(username=account.username)
        accounts.append(account)
        self._save(accounts)
        return account

    def update(self, username: str, changes: Union[AccountUpdate, Dict[str, Any]]) -> Account:
        if isinstance(changes, dict):
            changes = AccountUpdate.model_validate(changes)
        patch = changes.model_dump(exclude_unset=True)
        accounts = self._load()
        for i, a in enumerate(accounts):
            if a.username != username:
                continue
            merged = a.model_copy(update=patch)
            # model_copy skips validation; round-trip through the model so enums stay typed
            updated = Account.model_validate(merged.model_dump())
            if a.is_admin and not updated.is_admin and count_admins(accounts) <= 1:
                raise LastAdminError("Cannot demote the last administrator account", username=username)
            accounts[i] = updated
            self._save(accounts)
            return updated
        raise AccountNotFoundError(username=username)

    def delete(self, username: str) -> Account:
        accounts = self._load()
        target = next((a for a in accounts if a.username == username), None)
        if target is None:
            raise AccountNotFoundError(username=username)
        if target.is_admin and count_admins(accounts) <= 1:
            raise LastAdminError(username=username)
        self._save([a for a in accounts if a.username != username])
        return target

    def replace_all(self, accounts: Sequence[Account]) -> None:
        self._save(list(accounts))

    def count(self) -> int:
        return len(self._load())
