"""Stored accounts and game history, and the table of connected clients."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import TypeVar

from caroplay.records import (
    Account,
    ClientSession,
    ClientStatus,
    FriendLink,
    HistoryRecord,
)

ACCOUNT_FILE = "data/account.txt"
HISTORY_FILE = "data/history.txt"

log = logging.getLogger(__name__)

T = TypeVar("T")


def _read_lines(path: Path, parse: Callable[[str], T]) -> list[T]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        log.warning("Can't open file %s for read", path)
        return []
    return [parse(line) for line in text.splitlines() if line.strip()]


def _append_line(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8", newline="") as handle:
        handle.write("\n" + line)


class Database:
    """Accounts and game history kept in two text files."""

    def __init__(
        self,
        account_file: str | Path = ACCOUNT_FILE,
        history_file: str | Path = HISTORY_FILE,
    ) -> None:
        self.account_file = Path(account_file)
        self.history_file = Path(history_file)
        self.accounts: list[Account] = []
        self.history: list[HistoryRecord] = []
        self.friends: list[FriendLink] = []
        self._lock = threading.Lock()

    def load(self) -> None:
        """Read accounts, then history, from disk; a missing file reads as empty."""
        accounts = _read_lines(self.account_file, Account.from_line)
        history = _read_lines(self.history_file, HistoryRecord.from_line)
        with self._lock:
            self.accounts = accounts
            self.history = history

    def add_account(self, account: Account) -> None:
        """Store a new account on disk and in memory."""
        with self._lock:
            _append_line(self.account_file, account.to_line())
            self.accounts.append(account)

    def add_history(self, record: HistoryRecord) -> None:
        """Store a finished game on disk and in memory."""
        with self._lock:
            _append_line(self.history_file, record.to_line())
            self.history.append(record)

    def is_valid_login(self, account: str, password: str) -> bool:
        """Tell whether the account exists with this password."""
        with self._lock:
            return any(
                a.account == account and a.password == password for a in self.accounts
            )

    def history_for(self, account: str) -> list[HistoryRecord]:
        """Return the games recorded from this account's side, oldest first."""
        with self._lock:
            return [r for r in self.history if r.first_account == account]


class ClientRegistry:
    """Connected clients keyed by socket id, in the order they connected."""

    def __init__(self) -> None:
        self._sessions: dict[int, ClientSession] = {}
        self._lock = threading.RLock()

    def add(self, session: ClientSession) -> None:
        with self._lock:
            self._sessions[session.sock_id] = session

    def remove(self, sock_id: int) -> ClientSession | None:
        """Forget a client; return it, or None if it was not known."""
        with self._lock:
            return self._sessions.pop(sock_id, None)

    def by_id(self, sock_id: int) -> ClientSession | None:
        with self._lock:
            return self._sessions.get(sock_id)

    def by_name(self, name: str) -> ClientSession | None:
        """Return the first client logged in under this name."""
        with self._lock:
            return next((s for s in self._sessions.values() if s.name == name), None)

    def online_names(self, exclude: str) -> list[str]:
        """Return names of logged-in clients other than ``exclude``."""
        with self._lock:
            return [
                s.name for s in self._sessions.values() if s.name and s.name != exclude
            ]

    def set_status(self, sock_id: int, status: ClientStatus) -> None:
        with self._lock:
            session = self._sessions.get(sock_id)
            if session is not None:
                session.status = ClientStatus(status)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __iter__(self) -> Iterator[ClientSession]:
        with self._lock:
            return iter(list(self._sessions.values()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)