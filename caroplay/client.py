"""Network client for the caro game server."""

from __future__ import annotations

import logging
import socket
from collections.abc import Iterator
from dataclasses import dataclass

from caroplay.board import Mark
from caroplay.protocol import (
    BUFFER_SIZE,
    Prefix,
    ProtocolError,
    build,
    command_of,
    make_accept_play,
    make_add_friend,
    make_cell,
    make_login,
    make_message,
    make_new_game,
    make_register,
    parse_account,
    parse_cell,
    parse_history,
    parse_message,
    parse_online,
    parse_result_cells,
)
from caroplay.records import PersonHistory

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5500
MACHINE_NAME = "Máy"

log = logging.getLogger(__name__)


class ClientError(Exception):
    """The client could not set up or use its connection."""

    CREATE_SOCKET = -1
    CONNECT_FAIL = -2
    INVALID_PARAMS = -3

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class Event:
    """A message from the server, decoded."""

    kind: Prefix
    account: str = ""
    text: str = ""
    cell: tuple[int, int] | None = None
    cells: tuple[tuple[int, int], ...] = ()
    history: tuple[PersonHistory, ...] = ()
    names: tuple[str, ...] = ()


def parse_event(data: str | bytes) -> Event:
    """Decode one server message into an event."""
    kind = command_of(data)
    if kind is Prefix.CELL:
        return Event(kind, cell=parse_cell(data))
    if kind is Prefix.MESSAGE:
        return Event(kind, text=parse_message(data))
    if kind is Prefix.HISTORY:
        return Event(kind, history=tuple(parse_history(data)))
    if kind is Prefix.ONLINE:
        return Event(kind, names=tuple(parse_online(data)))
    if kind in (Prefix.NEW_GAME, Prefix.ACCEPT_PLAY):
        return Event(kind, account=parse_account(data))
    if kind in (Prefix.WIN, Prefix.LOST):
        return Event(kind, cells=tuple(parse_result_cells(data)))
    return Event(kind)


class GameClient:
    """A player's connection to the server, with the state of the current game."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._closed = False
        self.opponent = ""
        self.mark: Mark | None = None
        self.my_turn = False
        self.game_over = False

    @classmethod
    def connect(cls, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> GameClient:
        """Open a TCP connection to the server."""
        if not isinstance(port, int) or not 0 < port < 65536:
            raise ClientError(ClientError.INVALID_PARAMS, f"invalid port: {port!r}")
        if not host:
            raise ClientError(ClientError.INVALID_PARAMS, "missing host")
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as exc:
            raise ClientError(ClientError.CREATE_SOCKET, "can't create socket") from exc
        try:
            sock.connect((host, port))
        except OSError as exc:
            sock.close()
            raise ClientError(ClientError.CONNECT_FAIL, "can't connect to server") from exc
        return cls(sock)

    def __enter__(self) -> GameClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _send(self, text: str) -> None:
        data = text.encode("utf-8")
        if len(data) > BUFFER_SIZE:
            raise ProtocolError(f"message longer than {BUFFER_SIZE} bytes")
        log.debug("send %s", text)
        self._sock.sendall(data.ljust(BUFFER_SIZE, b"\0"))

    def _recv_frame(self) -> bytes | None:
        buffer = bytearray()
        while len(buffer) < BUFFER_SIZE:
            chunk = self._sock.recv(BUFFER_SIZE - len(buffer))
            if not chunk:
                break
            buffer += chunk
        if not buffer:
            return None
        return bytes(buffer)

    def _reply_is_success(self) -> bool:
        frame = self._recv_frame()
        if frame is None:
            raise ConnectionError("server closed the connection")
        reply = frame.split(b"\0", 1)[0].decode("utf-8", errors="replace")
        log.debug("recv %s", reply)
        return reply == Prefix.SUCCESS.value

    def register(self, account: str, password: str) -> bool:
        """Create an account; tell whether the server accepted it."""
        self._send(make_register(account, password))
        return self._reply_is_success()

    def login(self, account: str, password: str) -> bool:
        """Log in; tell whether the server accepted it."""
        self._send(make_login(account, password))
        return self._reply_is_success()

    def request_history(self) -> None:
        self._send(Prefix.HISTORY.value)

    def request_online(self) -> None:
        self._send(Prefix.ONLINE.value)

    def send_message(self, message: str) -> None:
        self._send(make_message(message))

    def request_new_game(self, account: str | None = None) -> None:
        """Invite a player, or start a game against the machine if none is named."""
        if not account:
            self._send(build(Prefix.NEW_GAME, ""))
            self.opponent = MACHINE_NAME
            return
        self._send(make_new_game(account))

    def send_cell(self, row: int, col: int) -> None:
        """Play a move and hand the turn to the opponent."""
        self._send(make_cell(row, col))
        self.my_turn = False

    def accept_play(self, account: str | None = None) -> None:
        """Accept an invitation from ``account``, or from the last inviter."""
        self._send(make_accept_play(account or self.opponent))

    def add_friend(self, account: str) -> None:
        self._send(make_add_friend(account))

    def end_game(self) -> None:
        self._send(Prefix.END_GAME.value)

    def _apply(self, event: Event) -> None:
        kind = event.kind
        if kind is Prefix.CELL:
            self.my_turn = True
        elif kind is Prefix.NEW_GAME:
            self.opponent = event.account
        elif kind is Prefix.ACCEPT_PLAY:
            self.opponent = event.account
            self.mark = Mark.O
            self.my_turn = False
            self.game_over = False
        elif kind is Prefix.PLAY:
            self.mark = Mark.X
            self.my_turn = True
            self.game_over = False
        elif kind in (Prefix.WIN, Prefix.LOST):
            self.my_turn = False
            self.game_over = True
        elif kind is Prefix.END_GAME:
            self.mark = None
            self.my_turn = False
            self.game_over = False

    def receive(self) -> Event | None:
        """Wait for the next server message; None once the server has closed."""
        frame = self._recv_frame()
        if frame is None:
            return None
        event = parse_event(frame)
        self._apply(event)
        return event

    def events(self) -> Iterator[Event]:
        """Yield server messages until the connection closes, skipping bad ones."""
        while True:
            try:
                event = self.receive()
            except ProtocolError as exc:
                log.debug("ignored message: %s", exc)
                continue
            if event is None:
                return
            yield event

    def close(self) -> None:
        """Tell the server goodbye and close the connection."""
        if self._closed:
            return
        self._closed = True
        try:
            self._send(Prefix.CLOSE.value)
        except OSError:
            pass
        self._sock.close()