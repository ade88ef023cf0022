"""Text messages exchanged between the game server and its clients."""

from __future__ import annotations

import enum
import re
from collections.abc import Iterable, Sequence

from caroplay.records import HistoryRecord, PersonHistory

SEPARATOR = "#"
HISTORY_SEPARATOR = "|"
BUFFER_SIZE = 1024
BOARD_SIZE = 15
WIN_LENGTH = 5


class Prefix(str, enum.Enum):
    """Command words that open every message."""

    SUCCESS = "$OK"
    FAIL = "$FAIL"
    LOGIN = "$LOGIN"
    REGISTER = "$REGISTER"
    HISTORY = "$HISTORY"
    ONLINE = "$ONLINE"
    MESSAGE = "$MESSAGE"
    CELL = "$CELL"
    ADD_FRIEND = "$ADD"
    NEW_GAME = "$NEW_GAME"
    CLOSE = "$CLOSE"
    ACCEPT_PLAY = "$ACCEPT_PLAY"
    PLAY = "$PLAY"
    FAIL_REQUEST_NEW_GAME = "$FAIL_REQUEST_NEW_GAME"
    END_GAME = "$END_GAME"
    WIN = "$WIN"
    LOST = "$LOST"


class ProtocolError(ValueError):
    """A message is malformed or cannot be encoded."""


def _text(data: str | bytes) -> str:
    """Return the text of a message up to its first NUL."""
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode("utf-8", errors="replace")
    return data.split("\0", 1)[0]


def _split(text: str, separators: str) -> list[str]:
    pattern = f"[{re.escape(separators)}]"
    return [part for part in re.split(pattern, text) if part]


def _encode_digit(value: int) -> str:
    if not 0 <= value < BOARD_SIZE:
        raise ProtocolError(f"cell index out of range: {value}")
    return chr(ord("0") + value)


def _decode_digit(char: str) -> int:
    if len(char) != 1:
        raise ProtocolError(f"bad cell field: {char!r}")
    value = ord(char) - ord("0")
    if not 0 <= value < BOARD_SIZE:
        raise ProtocolError(f"cell index out of range: {char!r}")
    return value


def _expect(data: str | bytes, *prefixes: Prefix) -> list[str]:
    parts = tokens(data)
    if not parts or parts[0] not in {p.value for p in prefixes}:
        expected = ", ".join(p.value for p in prefixes)
        raise ProtocolError(f"expected {expected} message: {_text(data)!r}")
    return parts


def tokens(data: str | bytes) -> list[str]:
    """Split a message on the separator, dropping empty fields."""
    return _split(_text(data), SEPARATOR)


def command_of(data: str | bytes) -> Prefix:
    """Return the command word a message starts with."""
    parts = tokens(data)
    if not parts:
        raise ProtocolError("empty message")
    try:
        return Prefix(parts[0])
    except ValueError:
        raise ProtocolError(f"unknown command: {parts[0]!r}") from None


def build(prefix: Prefix | str, *args: object) -> str:
    """Join a command word and its fields into one message."""
    head = prefix.value if isinstance(prefix, Prefix) else str(prefix)
    return SEPARATOR.join([head, *(str(arg) for arg in args)])


def make_login(account: str, password: str) -> str:
    return build(Prefix.LOGIN, account, password)


def make_register(account: str, password: str) -> str:
    return build(Prefix.REGISTER, account, password)


def make_message(message: str) -> str:
    return build(Prefix.MESSAGE, message)


def make_new_game(account: str) -> str:
    return build(Prefix.NEW_GAME, account)


def make_accept_play(account: str) -> str:
    return build(Prefix.ACCEPT_PLAY, account)


def make_add_friend(account: str) -> str:
    return build(Prefix.ADD_FRIEND, account)


def make_cell(row: int, col: int) -> str:
    """Encode a move; each index is sent as one character offset from '0'."""
    return build(Prefix.CELL, _encode_digit(row), _encode_digit(col))


def make_history(records: Iterable[HistoryRecord]) -> str:
    """Encode a player's history as opponent|result|date entries."""
    entries = (
        HISTORY_SEPARATOR.join((r.second_account, r.result, r.date)) for r in records
    )
    return build(Prefix.HISTORY, *entries)


def make_online(names: Iterable[str]) -> str:
    return build(Prefix.ONLINE, *names)


def _make_result(prefix: Prefix, cells: Sequence[tuple[int, int]]) -> str:
    cells = list(cells)
    if len(cells) != WIN_LENGTH:
        raise ProtocolError(f"a result names {WIN_LENGTH} cells, got {len(cells)}")
    fields = [_encode_digit(v) for cell in cells for v in cell]
    return build(prefix, *fields)


def make_win(cells: Sequence[tuple[int, int]]) -> str:
    """Encode the winning line sent to the winner."""
    return _make_result(Prefix.WIN, cells)


def make_lost(cells: Sequence[tuple[int, int]]) -> str:
    """Encode the winning line sent to the loser."""
    return _make_result(Prefix.LOST, cells)


def parse_credentials(data: str | bytes) -> tuple[str, str]:
    """Return (account, password) from a login or register message."""
    parts = tokens(data)
    if len(parts) < 3:
        raise ProtocolError(f"missing account or password: {_text(data)!r}")
    return parts[1], parts[2]


def parse_account(data: str | bytes) -> str:
    """Return the account named by a new-game, accept or friend message."""
    parts = tokens(data)
    if len(parts) < 2:
        raise ProtocolError(f"missing account: {_text(data)!r}")
    return parts[1]


def parse_message(data: str | bytes) -> str:
    """Return the chat text of a message command."""
    parts = tokens(data)
    if len(parts) < 2:
        raise ProtocolError(f"missing message text: {_text(data)!r}")
    return parts[1]


def parse_cell(data: str | bytes) -> tuple[int, int]:
    """Return (row, col) from a move message."""
    parts = _expect(data, Prefix.CELL)
    if len(parts) < 3:
        raise ProtocolError(f"incomplete cell message: {_text(data)!r}")
    return _decode_digit(parts[1]), _decode_digit(parts[2])


def parse_result_cells(data: str | bytes) -> list[tuple[int, int]]:
    """Return the winning line from a win or lost message."""
    parts = _expect(data, Prefix.WIN, Prefix.LOST)
    fields = parts[1:]
    if len(fields) < 2 * WIN_LENGTH:
        raise ProtocolError(f"incomplete result message: {_text(data)!r}")
    values = [_decode_digit(field) for field in fields[: 2 * WIN_LENGTH]]
    return list(zip(values[0::2], values[1::2]))


def parse_history(data: str | bytes) -> list[PersonHistory]:
    """Return complete name/result/date entries of a history message."""
    text = _text(data)
    head = _expect(text, Prefix.HISTORY)[0]
    rest = text[text.index(head) + len(head):]
    fields = iter(_split(rest, SEPARATOR + HISTORY_SEPARATOR))
    return [PersonHistory(name, result, date) for name, result, date in zip(fields, fields, fields)]


def parse_online(data: str | bytes) -> list[str]:
    """Return the account names of an online-list message."""
    return _expect(data, Prefix.ONLINE)[1:]