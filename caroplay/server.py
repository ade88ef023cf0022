"""The caro game server: accounts, lobby requests and running games."""

from __future__ import annotations

import argparse
import datetime
import logging
import selectors
import socket
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from caroplay.board import Board, Mark
from caroplay.protocol import (
    BUFFER_SIZE,
    Prefix,
    ProtocolError,
    command_of,
    make_accept_play,
    make_history,
    make_lost,
    make_new_game,
    make_online,
    make_win,
    parse_account,
    parse_cell,
    parse_credentials,
    tokens,
)
from caroplay.records import Account, ClientSession, ClientStatus, HistoryRecord
from caroplay.store import ClientRegistry, Database

DEFAULT_PORT = 5500
MAX_PENDING = 20
SELECT_TIMEOUT = 2.0

Sender = Callable[[int, str], None]

log = logging.getLogger(__name__)


def _as_text(data: str | bytes) -> str:
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode("utf-8", errors="replace")
    return data.split("\0", 1)[0]


def _today() -> str:
    today = datetime.date.today()
    return f"{today.day}-{today.month}-{today.year}"


@dataclass(eq=False)
class GameSession:
    """A game in progress between two clients, or one client and the machine."""

    players: tuple[ClientSession, ...]
    machine: bool = False
    board: Board = field(default_factory=Board)

    def other(self, sock_id: int) -> ClientSession | None:
        """Return the opponent of ``sock_id``; None when it is the machine."""
        if all(player.sock_id != sock_id for player in self.players):
            raise KeyError(f"client {sock_id} is not in this game")
        return next((p for p in self.players if p.sock_id != sock_id), None)


class CaroServer:
    """Serves logins, lobby requests and games to connected clients."""

    def __init__(
        self,
        host: str = "",
        port: int = DEFAULT_PORT,
        database: Database | None = None,
        sender: Sender | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.database = database if database is not None else Database()
        self.clients = ClientRegistry()
        self.games: dict[int, GameSession] = {}
        self._send = sender if sender is not None else self._send_frame
        self._sockets: dict[int, socket.socket] = {}
        self._selector: selectors.BaseSelector | None = None
        self._listener: socket.socket | None = None
        self._running = False
        self._serving = False

    # -- sending and connections -------------------------------------------

    def _send_frame(self, sock_id: int, text: str) -> None:
        sock = self._sockets.get(sock_id)
        if sock is None:
            log.warning("no connection for client %d", sock_id)
            return
        data = text.encode("utf-8")
        if len(data) > BUFFER_SIZE:
            raise ProtocolError(f"message longer than {BUFFER_SIZE} bytes")
        log.debug("send %d: %s", sock_id, text)
        try:
            sock.sendall(data.ljust(BUFFER_SIZE, b"\0"))
        except OSError as exc:
            log.warning("send to client %d failed: %s", sock_id, exc)

    def _session(self, sock_id: int) -> ClientSession:
        session = self.clients.by_id(sock_id)
        if session is None:
            raise LookupError(f"unknown client {sock_id}")
        return session

    def _end_game(self, game: GameSession) -> None:
        for player in game.players:
            self.games.pop(player.sock_id, None)
            self.clients.set_status(player.sock_id, ClientStatus.ONLINE)

    def _drop(self, sock_id: int) -> None:
        game = self.games.get(sock_id)
        if game is not None:
            self._end_game(game)
        self.clients.remove(sock_id)
        sock = self._sockets.pop(sock_id, None)
        if sock is None:
            return
        if self._selector is not None:
            try:
                self._selector.unregister(sock)
            except (KeyError, ValueError):
                pass
        sock.close()

    def _start_game(self, players: Sequence[ClientSession], machine: bool) -> GameSession:
        game = GameSession(players=tuple(players), machine=machine)
        for player in game.players:
            player.status = ClientStatus.IN_GAME
            self.games[player.sock_id] = game
        return game

    # -- lobby requests ----------------------------------------------------

    def handle_request(self, sock_id: int, data: str | bytes) -> None:
        """Handle one message from a client that is not in a game."""
        kind = command_of(data)
        if kind is Prefix.CLOSE:
            self._drop(sock_id)
            return
        session = self._session(sock_id)
        if kind is Prefix.LOGIN:
            self._login(session, data)
        elif kind is Prefix.REGISTER:
            self._register(session, data)
        elif kind is Prefix.HISTORY:
            self._send(sock_id, make_history(self.database.history_for(session.name)))
        elif kind is Prefix.ONLINE:
            self._send(sock_id, make_online(self.clients.online_names(session.name)))
        elif kind is Prefix.NEW_GAME:
            self._new_game(session, data)
        elif kind is Prefix.ACCEPT_PLAY:
            self._accept_play(session, data)
        else:
            log.debug("ignored request %s from client %d", kind.value, sock_id)

    def _login(self, session: ClientSession, data: str | bytes) -> None:
        account, password = parse_credentials(data)
        if (
            not self.database.is_valid_login(account, password)
            or self.clients.by_name(account) is not None
            or session.status is ClientStatus.ONLINE
        ):
            self._send(session.sock_id, Prefix.FAIL.value)
            return
        session.name = account
        session.password = password
        session.status = ClientStatus.ONLINE
        self._send(session.sock_id, Prefix.SUCCESS.value)

    def _register(self, session: ClientSession, data: str | bytes) -> None:
        account, password = parse_credentials(data)
        self.database.add_account(Account(account, password))
        session.name = account
        session.password = password
        self._send(session.sock_id, Prefix.SUCCESS.value)

    def _new_game(self, session: ClientSession, data: str | bytes) -> None:
        if len(tokens(data)) < 2:
            self._send(session.sock_id, Prefix.PLAY.value)
            self._start_game([session], machine=True)
            return
        invited = self.clients.by_name(parse_account(data))
        if invited is not None:
            self._send(invited.sock_id, make_new_game(session.name))

    def _accept_play(self, session: ClientSession, data: str | bytes) -> None:
        inviter = self.clients.by_name(parse_account(data))
        if inviter is None:
            self._send(session.sock_id, Prefix.FAIL_REQUEST_NEW_GAME.value)
            return
        self._send(session.sock_id, Prefix.PLAY.value)
        self._send(inviter.sock_id, make_accept_play(session.name))
        self._send(inviter.sock_id, make_new_game(session.name))
        self._start_game([inviter, session], machine=False)

    # -- game messages -----------------------------------------------------

    def handle_game_message(self, game: GameSession, sock_id: int, data: str | bytes) -> None:
        """Handle one message from a client playing ``game``."""
        kind = command_of(data)
        other = game.other(sock_id)
        if kind is Prefix.MESSAGE:
            if other is not None:
                self._send(other.sock_id, _as_text(data))
        elif kind is Prefix.CELL:
            self._play_cell(game, sock_id, other, data)
        elif kind is Prefix.CLOSE:
            self._drop(sock_id)
        elif kind is Prefix.END_GAME:
            if other is not None:
                self._send(other.sock_id, Prefix.END_GAME.value)
            self._end_game(game)
        else:
            log.debug("ignored game message %s from client %d", kind.value, sock_id)

    def _play_cell(
        self,
        game: GameSession,
        sock_id: int,
        other: ClientSession | None,
        data: str | bytes,
    ) -> None:
        x, y = parse_cell(data)
        if other is None:
            log.info("machine's turn in game of client %d", sock_id)
            return
        mark = Mark.X if sock_id > other.sock_id else Mark.O
        line = game.board.place(y, x, mark)
        self._send(other.sock_id, _as_text(data))
        if line is None:
            return
        winner = self._session(sock_id)
        date = _today()
        self.database.add_history(HistoryRecord(winner.name, other.name, "win", date))
        self.database.add_history(HistoryRecord(other.name, winner.name, "lost", date))
        self._send(sock_id, make_win(line))
        self._send(other.sock_id, make_lost(line))

    # -- network loop ------------------------------------------------------

    def _accept(self) -> None:
        assert self._listener is not None and self._selector is not None
        conn, address = self._listener.accept()
        sock_id = conn.fileno()
        self._sockets[sock_id] = conn
        self._selector.register(conn, selectors.EVENT_READ, sock_id)
        self.clients.add(ClientSession(sock_id=sock_id, address=address))

    def _recv_frame(self, sock: socket.socket) -> bytes:
        buffer = bytearray()
        try:
            while len(buffer) < BUFFER_SIZE:
                chunk = sock.recv(BUFFER_SIZE - len(buffer))
                if not chunk:
                    break
                buffer += chunk
        except OSError:
            return b""
        return bytes(buffer)

    def _read(self, sock_id: int) -> None:
        sock = self._sockets.get(sock_id)
        if sock is None:
            return
        frame = self._recv_frame(sock)
        if not frame:
            self._drop(sock_id)
            return
        log.debug("recv %d: %s", sock_id, _as_text(frame))
        try:
            game = self.games.get(sock_id)
            if game is not None:
                self.handle_game_message(game, sock_id, frame)
            else:
                self.handle_request(sock_id, frame)
        except (ProtocolError, LookupError, IndexError) as exc:
            log.warning("bad message from client %d: %s", sock_id, exc)

    def serve_forever(self) -> None:
        """Load the stored data, listen, and serve until closed."""
        self.database.load()
        self._listener = socket.create_server((self.host, self.port), backlog=MAX_PENDING)
        self._selector = selectors.DefaultSelector()
        self._selector.register(self._listener, selectors.EVENT_READ, None)
        self._running = True
        self._serving = True
        try:
            while self._running:
                for key, _ in self._selector.select(SELECT_TIMEOUT):
                    if key.data is None:
                        self._accept()
                    else:
                        self._read(key.data)
        finally:
            self._serving = False
            self._cleanup()

    def _cleanup(self) -> None:
        for sock_id in list(self._sockets):
            self._drop(sock_id)
        if self._selector is not None:
            self._selector.close()
            self._selector = None
        if self._listener is not None:
            self._listener.close()
            self._listener = None
        self.games.clear()
        self.clients.clear()

    def close(self) -> None:
        """Stop serving and release every connection."""
        self._running = False
        if not self._serving:
            self._cleanup()


def main(argv: Sequence[str] | None = None) -> int:
    """Run the game server."""
    parser = argparse.ArgumentParser(description="Caro game server.")
    parser.add_argument("port", nargs="?", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    server = CaroServer(port=args.port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("Close server")
    finally:
        server.close()
    return 0