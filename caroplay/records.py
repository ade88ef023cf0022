"""Records kept by the game server and exchanged with its clients."""

from __future__ import annotations

import enum
from dataclasses import dataclass

FIELD_SEPARATOR = "#"


def _fields(line: str, count: int, kind: str) -> list[str]:
    """Split a stored line on the field separator, skipping empty fields."""
    parts = [part for part in line.rstrip("\r\n").split(FIELD_SEPARATOR) if part]
    if len(parts) < count:
        raise ValueError(f"{kind} line needs {count} fields: {line!r}")
    return parts[:count]


class ClientStatus(enum.IntEnum):
    """Connection state of a client known to the server."""

    OFFLINE = 1
    ONLINE = 2
    IN_GAME = 3


@dataclass(frozen=True)
class Account:
    """A registered account and its password."""

    account: str
    password: str

    @classmethod
    def from_line(cls, line: str) -> Account:
        """Parse an ``account#password`` line."""
        account, password = _fields(line, 2, "account")
        return cls(account=account, password=password)

    def to_line(self) -> str:
        """Format the account as it is stored on disk."""
        return FIELD_SEPARATOR.join((self.account, self.password))


@dataclass(frozen=True)
class HistoryRecord:
    """One finished game as seen by ``first_account``."""

    first_account: str
    second_account: str
    result: str
    date: str

    @classmethod
    def from_line(cls, line: str) -> HistoryRecord:
        """Parse a ``first#second#result#date`` line."""
        first, second, result, date = _fields(line, 4, "history")
        return cls(first, second, result, date)

    def to_line(self) -> str:
        """Format the record as it is stored on disk."""
        return FIELD_SEPARATOR.join(
            (self.first_account, self.second_account, self.result, self.date)
        )


@dataclass(frozen=True)
class FriendLink:
    """A friendship between two accounts."""

    first_account: str
    second_account: str

    @classmethod
    def from_line(cls, line: str) -> FriendLink:
        """Parse a ``first#second`` line."""
        first, second = _fields(line, 2, "friend")
        return cls(first, second)


@dataclass
class ClientSession:
    """A connected client as tracked by the server."""

    sock_id: int
    address: tuple[str, int] | None = None
    name: str = ""
    password: str = ""
    status: ClientStatus = ClientStatus.OFFLINE


@dataclass(frozen=True)
class PersonHistory:
    """A history or online-list entry as shown to a player."""

    name: str
    result: str = ""
    date: str = ""