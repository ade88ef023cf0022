# caroplay

A small networked Caro (five-in-a-row, also known as Gomoku) game. One
server keeps player accounts and match history, lets logged-in players
see who else is online, pairs two players for a game on a 15 x 15 board,
relays their moves and chat messages, and announces the winner once five
marks line up horizontally, vertically or diagonally.

Everything travels over TCP as `#`-separated text commands such as
`$LOGIN#alice#password`, `$CELL#3#4` or `$WIN#...`. Each message is sent
as a fixed 1024-byte frame padded with NUL bytes.

## Installing

```
pip install .
```

Only the Python standard library is needed (Python 3.10 or newer).

## Running the server

```
caroplay-server          # listens on TCP port 5500
caroplay-server 6000     # or on another port
```

The server keeps its data in two plain text files, relative to the
working directory:

- `data/account.txt` – one account per line, `name#password`
- `data/history.txt` – one result per line, `player#opponent#result#date`

Both are read at start-up; a missing file counts as empty. New
registrations and finished games are appended (the `data` directory is
created when first written to), so they survive a restart. A finished
game adds two lines, one `win` and one `lost`, dated `day-month-year`.

Stop the server with Ctrl-C.

## Playing from Python

`caroplay.client.GameClient` speaks the protocol for you:

```python
from caroplay.client import GameClient

password = "password"

with GameClient.connect("127.0.0.1", 5500) as client:
    if client.login("alice", password):
        client.request_online()         # ask who else is logged in
        client.request_new_game("bob")  # invite bob
        for event in client.events():   # decoded server messages
            print(event.kind, event)
```

`GameClient.connect` raises `ClientError` (with a `code` of
`CREATE_SOCKET`, `CONNECT_FAIL` or `INVALID_PARAMS`) when it cannot
connect. `register` and `login` return whether the server answered
`$OK`. The other requests are `request_history`, `request_online`,
`send_message`, `request_new_game`, `send_cell(row, col)` (indices 0–14),
`accept_play`, `add_friend` and `end_game`; `close` sends `$CLOSE` and
closes the socket.

`receive` waits for one message and returns an `Event` (or `None` once
the server has closed); `events` yields them until the connection ends,
skipping malformed ones. The client also tracks the current game in
`opponent`, `mark`, `my_turn` and `game_over`. `parse_event` decodes a
single message without a connection.

## How a game starts

1. A logged-in player sends `$NEW_GAME#bob`; the server forwards
   `$NEW_GAME#<inviter>` to bob.
2. Bob answers with `accept_play` (`$ACCEPT_PLAY#<inviter>`). Bob receives
   `$PLAY` and moves first; the inviter receives `$ACCEPT_PLAY#bob`.
3. Moves (`$CELL`) and chat (`$MESSAGE`) are relayed to the opponent.
   After a winning move the winner gets `$WIN#...` and the loser
   `$LOST#...`, each listing the five winning cells.
4. `$END_GAME` from either player ends the game and returns both to the
   lobby.

A login fails when the account or password is wrong, when the name is
already logged in, or when the connection is already logged in.

## Building blocks

- `caroplay.protocol` – `Prefix`, `ProtocolError`, and the builders and
  parsers for every message (`make_login`, `make_cell`, `make_win`,
  `parse_credentials`, `parse_history`, `parse_result_cells`, …).
- `caroplay.board` – `Mark` and `Board`, whose `place` returns the five
  cells of a winning line through the new mark, or `None`.
- `caroplay.records` – `Account`, `HistoryRecord`, `FriendLink`,
  `ClientSession`, `ClientStatus` and `PersonHistory`.
- `caroplay.store` – the file-backed `Database` and the thread-safe
  `ClientRegistry` of connected players.
- `caroplay.server` – `CaroServer` and `GameSession`. `CaroServer` takes an
  optional `sender` callable, so `handle_request` and
  `handle_game_message` can be driven without sockets.

## What it does not do

- There is no graphical or interactive client: `GameClient` is a library
  for programs to build on.
- Asking for a game without naming an opponent starts a game against the
  machine, but the server makes no moves in it.
- `$ADD` (friend requests) can be sent, but the server ignores it; stored
  friendships are not kept.
- Registering does not check whether the name is already taken.
- Passwords are stored and sent as plain text, and traffic is not
  encrypted.

## Tests

```
pip install ".[test]"
pytest
```