# Copyright (c) 2025 Robert McKenzie (@M1XZG)
# Repository: discord-bot-for-fun
# https://github.com/M1XZG/discord-bot-for-fun
#
# This software is released under the MIT License.
# See LICENSE.md for details.

"""In-progress Blackjack/Mines games keyed by player, one per game kind."""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass

from casino_errors import IllegalStateTransition
from casino_games import GameKind

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = 5.0


@dataclass
class Session:
    owner: str
    kind: GameKind
    guild_id: str | None
    game: object  # BlackjackGame or MinesGame
    settled: bool = False

    @property
    def pending_settlement(self) -> bool:
        return self.game.is_terminal and not self.settled


class SessionRegistry:
    def __init__(self, lock_timeout: float = LOCK_TIMEOUT):
        self._sessions: dict[tuple[str, GameKind], Session] = {}
        # owner -> [lock, number of callers holding or waiting on it]
        self._locks: dict[str, list] = {}
        self._guard = threading.Lock()
        self.lock_timeout = lock_timeout

    def _checkout(self, owner: str) -> threading.RLock:
        with self._guard:
            entry = self._locks.setdefault(owner, [threading.RLock(), 0])
            entry[1] += 1
            return entry[0]

    def _checkin(self, owner: str):
        with self._guard:
            entry = self._locks[owner]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[owner]

    @contextmanager
    def owned(self, owner):
        """Hold the player's lock for a find-validate-mutate sequence.

        The lock entry is dropped once no caller holds or waits on it.
        """
        owner = str(owner)
        lock = self._checkout(owner)
        if not lock.acquire(timeout=self.lock_timeout):
            self._checkin(owner)
            logger.warning("Timed out waiting for session lock of %s", owner)
            raise IllegalStateTransition("Your previous action is still being processed. Try again.")
        try:
            yield
        finally:
            lock.release()
            self._checkin(owner)

    def get(self, owner, kind: GameKind) -> Session | None:
        with self._guard:
            return self._sessions.get((str(owner), kind))

    def require(self, owner, kind: GameKind) -> Session:
        session = self.get(owner, kind)
        if session is None:
            raise IllegalStateTransition(f"No active {kind.value} game. Start a new one.")
        return session

    def open(self, session: Session) -> Session:
        key = (session.owner, session.kind)
        with self._guard:
            if key in self._sessions:
                raise IllegalStateTransition(
                    f"You already have a {session.kind.value} game in progress. Finish it first."
                )
            self._sessions[key] = session
        return session

    def remove(self, session: Session):
        key = (session.owner, session.kind)
        with self._guard:
            if self._sessions.get(key) is session:
                del self._sessions[key]

    def active_count(self) -> int:
        with self._guard:
            return len(self._sessions)
