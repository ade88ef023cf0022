import re

import pytest

from caroplay.board import Mark
from caroplay.protocol import (
    Prefix,
    ProtocolError,
    make_accept_play,
    make_cell,
    make_login,
    make_message,
    make_new_game,
    make_register,
    parse_result_cells,
)
from caroplay.records import Account, ClientSession, ClientStatus, HistoryRecord
from caroplay.server import CaroServer, GameSession, main
from caroplay.store import Database


class Outbox(list):
    def __call__(self, sock_id, text):
        self.append((sock_id, text))


@pytest.fixture
def setup(tmp_path):
    database = Database(tmp_path / "account.txt", tmp_path / "history.txt")
    outbox = Outbox()
    server = CaroServer(database=database, sender=outbox)
    return server, outbox


def join(server, sock_id, name="", status=ClientStatus.OFFLINE):
    session = ClientSession(sock_id=sock_id, name=name, status=status)
    server.clients.add(session)
    return session


def start_game(server, outbox):
    join(server, 3, "alice", ClientStatus.ONLINE)
    join(server, 4, "bob", ClientStatus.ONLINE)
    server.handle_request(3, make_accept_play("bob"))
    outbox.clear()
    return server.games[3]


def test_login_success(setup):
    server, outbox = setup
    password = "password"
    server.database.add_account(Account("alice", password))
    session = join(server, 3)
    server.handle_request(3, make_login("alice", password))
    assert outbox == [(3, "$OK")]
    assert session.name == "alice"
    assert session.status is ClientStatus.ONLINE


def test_login_accepts_padded_frame(setup):
    server, outbox = setup
    password = "password"
    server.database.add_account(Account("alice", password))
    join(server, 3)
    frame = make_login("alice", password).encode().ljust(1024, b"\0")
    server.handle_request(3, frame)
    assert outbox == [(3, "$OK")]


def test_login_wrong_password_fails(setup):
    server, outbox = setup
    password = "password"
    wrong_password = "secret"
    server.database.add_account(Account("alice", password))
    session = join(server, 3)
    server.handle_request(3, make_login("alice", wrong_password))
    assert outbox == [(3, "$FAIL")]
    assert session.name == ""


def test_login_name_already_in_use_fails(setup):
    server, outbox = setup
    password = "password"
    server.database.add_account(Account("alice", password))
    join(server, 4, "alice", ClientStatus.ONLINE)
    join(server, 3)
    server.handle_request(3, make_login("alice", password))
    assert outbox == [(3, "$FAIL")]


def test_login_when_already_online_fails(setup):
    server, outbox = setup
    password = "password"
    server.database.add_account(Account("bob", password))
    join(server, 3, "carol", ClientStatus.ONLINE)
    server.handle_request(3, make_login("bob", password))
    assert outbox == [(3, "$FAIL")]


def test_login_from_unknown_client_raises(setup):
    server, _ = setup
    password = "password"
    server.database.add_account(Account("alice", password))
    with pytest.raises(LookupError):
        server.handle_request(9, make_login("alice", password))


def test_register_stores_account(setup):
    server, outbox = setup
    password = "password"
    session = join(server, 3)
    server.handle_request(3, make_register("dave", password))
    assert outbox == [(3, "$OK")]
    assert session.name == "dave"
    assert server.database.is_valid_login("dave", password)
    reloaded = Database(server.database.account_file, server.database.history_file)
    reloaded.load()
    assert reloaded.accounts == [Account("dave", password)]


def test_history_lists_own_games(setup):
    server, outbox = setup
    server.database.history.extend(
        [
            HistoryRecord("alice", "bob", "win", "1-2-2023"),
            HistoryRecord("bob", "alice", "lost", "1-2-2023"),
        ]
    )
    join(server, 3, "alice", ClientStatus.ONLINE)
    server.handle_request(3, "$HISTORY")
    assert outbox == [(3, "$HISTORY#bob|win|1-2-2023")]


def test_online_excludes_self_and_unnamed(setup):
    server, outbox = setup
    join(server, 3, "alice", ClientStatus.ONLINE)
    join(server, 4, "bob", ClientStatus.ONLINE)
    join(server, 5)
    server.handle_request(3, "$ONLINE")
    assert outbox == [(3, "$ONLINE#bob")]


def test_new_game_against_machine(setup):
    server, outbox = setup
    session = join(server, 3, "alice", ClientStatus.ONLINE)
    server.handle_request(3, "$NEW_GAME#")
    assert outbox == [(3, "$PLAY")]
    assert session.status is ClientStatus.IN_GAME
    assert server.games[3].machine is True


def test_new_game_invites_named_player(setup):
    server, outbox = setup
    join(server, 3, "alice", ClientStatus.ONLINE)
    join(server, 4, "bob", ClientStatus.ONLINE)
    server.handle_request(3, make_new_game("bob"))
    assert outbox == [(4, "$NEW_GAME#alice")]
    assert server.games == {}


def test_new_game_unknown_player_sends_nothing(setup):
    server, outbox = setup
    join(server, 3, "alice", ClientStatus.ONLINE)
    server.handle_request(3, make_new_game("nobody"))
    assert outbox == []


def test_accept_unknown_inviter_fails(setup):
    server, outbox = setup
    join(server, 3, "alice", ClientStatus.ONLINE)
    server.handle_request(3, make_accept_play("nobody"))
    assert outbox == [(3, "$FAIL_REQUEST_NEW_GAME")]


def test_accept_starts_game(setup):
    server, outbox = setup
    alice = join(server, 3, "alice", ClientStatus.ONLINE)
    bob = join(server, 4, "bob", ClientStatus.ONLINE)
    server.handle_request(3, make_accept_play("bob"))
    assert outbox == [
        (3, "$PLAY"),
        (4, "$ACCEPT_PLAY#alice"),
        (4, "$NEW_GAME#alice"),
    ]
    assert alice.status is ClientStatus.IN_GAME
    assert bob.status is ClientStatus.IN_GAME
    assert server.games[3] is server.games[4]
    assert server.games[3].machine is False


def test_game_message_forwarded(setup):
    server, outbox = setup
    game = start_game(server, outbox)
    server.handle_game_message(game, 3, make_message("hello"))
    assert outbox == [(4, "$MESSAGE#hello")]


def test_machine_game_message_not_forwarded(setup):
    server, outbox = setup
    join(server, 3, "alice", ClientStatus.ONLINE)
    server.handle_request(3, "$NEW_GAME#")
    outbox.clear()
    server.handle_game_message(server.games[3], 3, make_message("hello"))
    server.handle_game_message(server.games[3], 3, make_cell(1, 1))
    assert outbox == []


def test_cell_forwarded_and_marked(setup):
    server, outbox = setup
    game = start_game(server, outbox)
    server.handle_game_message(game, 3, make_cell(2, 5))
    server.handle_game_message(game, 4, make_cell(3, 5))
    assert outbox == [(4, make_cell(2, 5)), (3, make_cell(3, 5))]
    assert game.board[5, 2] is Mark.O
    assert game.board[5, 3] is Mark.X


def test_five_in_row_wins(setup):
    server, outbox = setup
    game = start_game(server, outbox)
    for x in range(5):
        server.handle_game_message(game, 3, make_cell(x, 0))
    (win_to, win), (lost_to, lost) = outbox[-2:]
    assert (win_to, lost_to) == (3, 4)
    expected = {(0, c) for c in range(5)}
    assert set(parse_result_cells(win)) == expected
    assert set(parse_result_cells(lost)) == expected
    first, second = server.database.history
    assert (first.first_account, first.second_account, first.result) == ("alice", "bob", "win")
    assert (second.first_account, second.second_account, second.result) == ("bob", "alice", "lost")
    assert re.fullmatch(r"\d{1,2}-\d{1,2}-\d{4}", first.date)
    assert first.date == second.date


def test_four_in_row_does_not_win(setup):
    server, outbox = setup
    game = start_game(server, outbox)
    for x in range(4):
        server.handle_game_message(game, 3, make_cell(x, 0))
    assert all(not text.startswith(Prefix.WIN.value) for _, text in outbox)
    assert server.database.history == []


def test_end_game_restores_both_players(setup):
    server, outbox = setup
    game = start_game(server, outbox)
    server.handle_game_message(game, 3, "$END_GAME")
    assert outbox == [(4, "$END_GAME")]
    assert server.games == {}
    assert server.clients.by_id(3).status is ClientStatus.ONLINE
    assert server.clients.by_id(4).status is ClientStatus.ONLINE


def test_close_in_game_removes_client(setup):
    server, outbox = setup
    game = start_game(server, outbox)
    server.handle_game_message(game, 3, "$CLOSE")
    assert server.clients.by_id(3) is None
    assert server.clients.by_id(4).status is ClientStatus.ONLINE
    assert server.games == {}


def test_close_request_removes_client(setup):
    server, _ = setup
    join(server, 3, "alice", ClientStatus.ONLINE)
    server.handle_request(3, "$CLOSE")
    assert len(server.clients) == 0


def test_unknown_command_raises(setup):
    server, _ = setup
    join(server, 3)
    with pytest.raises(ProtocolError):
        server.handle_request(3, "$BOGUS#x")


def test_game_session_other():
    alice = ClientSession(sock_id=3, name="alice")
    bob = ClientSession(sock_id=4, name="bob")
    game = GameSession(players=(alice, bob))
    assert game.other(3) is bob
    assert game.other(4) is alice
    solo = GameSession(players=(alice,), machine=True)
    assert solo.other(3) is None
    with pytest.raises(KeyError):
        game.other(7)


def test_close_without_serving_clears_clients(setup):
    server, _ = setup
    join(server, 3, "alice", ClientStatus.ONLINE)
    server.close()
    assert len(server.clients) == 0


def test_main_rejects_bad_port():
    with pytest.raises(SystemExit) as info:
        main(["not-a-port"])
    assert info.value.code == 2