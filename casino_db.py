# Copyright (c) 2025 Robert McKenzie (@M1XZG)
# Repository: discord-bot-for-fun
# https://github.com/M1XZG/discord-bot-for-fun
#
# This software is released under the MIT License.
# See LICENSE.md for details.

"""
Casino persistence: credit balances, bet preferences, bonus timestamps,
per-guild game stats and a balance ledger, all in one SQLite file.

Every mutation runs inside ``BEGIN IMMEDIATE`` so the read-modify-write on a
balance or stats row holds the database write lock for its whole duration.
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

from casino_errors import CasinoError, InsufficientFunds, InvalidSelection, PersistenceFailure

logger = logging.getLogger(__name__)

CASINO_DB = "games_stats.db"  # reuse existing DB file
DEFAULT_STARTING_BALANCE = 200
MIN_BET = 1
MAX_BET = 100000
BONUS_COOLDOWN_MS = 4 * 60 * 60 * 1000

STAT_METRICS = ("wins", "losses", "pushes", "winrate", "net")


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _gid(guild_id) -> str:
    return str(guild_id) if guild_id is not None else "dm"


def clamp_bet(amount: int, min_bet: int = MIN_BET, max_bet: int = MAX_BET) -> int:
    return max(min_bet, min(max_bet, int(amount)))


@dataclass(frozen=True)
class BonusClaim:
    ok: bool
    credited: int
    next_at: int  # epoch millis


@dataclass(frozen=True)
class StatLine:
    user_id: str
    wins: int
    losses: int
    pushes: int
    net: int

    @property
    def plays(self) -> int:
        return self.wins + self.losses + self.pushes

    @property
    def winrate(self) -> float:
        decided = self.wins + self.losses
        return self.wins / decided if decided else 0.0


class CasinoDB:
    def __init__(self, path: str = CASINO_DB, starting_balance: int = DEFAULT_STARTING_BALANCE, timeout: float = 5.0):
        self.path = path
        self.starting_balance = int(starting_balance)
        self.timeout = timeout

    def _connect(self):
        return sqlite3.connect(self.path, timeout=self.timeout)

    @contextmanager
    def _transaction(self):
        conn = self._connect()
        c = conn.cursor()
        try:
            c.execute("BEGIN IMMEDIATE")
            yield c
            conn.commit()
        except CasinoError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            try:
                conn.rollback()
            except sqlite3.Error:
                pass
            logger.error("Casino transaction rolled back: %s", e, exc_info=True)
            raise PersistenceFailure("The casino database is unavailable right now. Nothing was changed.") from e
        finally:
            conn.close()

    def init_db(self):
        with self._transaction() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS casino_accounts (
                    user_id TEXT PRIMARY KEY,
                    balance INTEGER NOT NULL,
                    last_updated DATETIME NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS casino_bets (
                    user_id TEXT NOT NULL,
                    game TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    PRIMARY KEY (user_id, game)
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS casino_stats (
                    guild_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    game TEXT NOT NULL,
                    wins INTEGER NOT NULL DEFAULT 0,
                    losses INTEGER NOT NULL DEFAULT 0,
                    pushes INTEGER NOT NULL DEFAULT 0,
                    net INTEGER NOT NULL DEFAULT 0,
                    last_played DATETIME NOT NULL,
                    PRIMARY KEY (guild_id, user_id, game)
                )
                """
            )
            c.execute("CREATE INDEX IF NOT EXISTS idx_casino_stats_guild ON casino_stats(guild_id, game)")
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS casino_bonus (
                    user_id TEXT PRIMARY KEY,
                    last_claim INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS casino_ledger (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    game TEXT NOT NULL,
                    delta INTEGER NOT NULL,
                    balance_after INTEGER NOT NULL,
                    ts DATETIME NOT NULL,
                    meta TEXT
                )
                """
            )
            c.execute("CREATE INDEX IF NOT EXISTS idx_casino_ledger_user ON casino_ledger(user_id)")

    # --- helpers running inside an open transaction ---

    def _balance_in(self, c, uid: str, default: int | None) -> int:
        start = self.starting_balance if default is None else int(default)
        c.execute(
            "INSERT OR IGNORE INTO casino_accounts (user_id, balance, last_updated) VALUES (?, ?, ?)",
            (uid, start, _now_iso()),
        )
        c.execute("SELECT balance FROM casino_accounts WHERE user_id = ?", (uid,))
        return int(c.fetchone()[0])

    def _apply_delta(self, c, uid: str, delta: int, game: str, meta: str | None, default: int | None = None) -> int:
        ts = _now_iso()
        new_balance = self._balance_in(c, uid, default) + int(delta)
        c.execute(
            "UPDATE casino_accounts SET balance = ?, last_updated = ? WHERE user_id = ?",
            (new_balance, ts, uid),
        )
        c.execute(
            "INSERT INTO casino_ledger (user_id, game, delta, balance_after, ts, meta) VALUES (?, ?, ?, ?, ?, ?)",
            (uid, game, int(delta), new_balance, ts, meta),
        )
        return new_balance

    def _record_in(self, c, gid: str, uid: str, game: str, result: str, net: int):
        if result not in ("win", "loss", "push"):
            raise InvalidSelection(f"Unknown result '{result}'")
        c.execute(
            """
            INSERT INTO casino_stats (guild_id, user_id, game, wins, losses, pushes, net, last_played)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(guild_id, user_id, game) DO UPDATE SET
                wins = wins + excluded.wins,
                losses = losses + excluded.losses,
                pushes = pushes + excluded.pushes,
                net = net + excluded.net,
                last_played = excluded.last_played
            """,
            (
                gid, uid, game,
                1 if result == "win" else 0,
                1 if result == "loss" else 0,
                1 if result == "push" else 0,
                int(net), _now_iso(),
            ),
        )

    # --- balances ---

    def get_balance(self, user_id, default: int | None = None) -> int:
        """Current balance; creates the account with the starting balance on first reference."""
        with self._transaction() as c:
            return self._balance_in(c, str(user_id), default)

    def set_balance(self, user_id, amount: int, meta: str | None = None) -> int:
        with self._transaction() as c:
            uid = str(user_id)
            before = self._balance_in(c, uid, None)
            return self._apply_delta(c, uid, int(amount) - before, "admin", meta or "set")

    def add_balance(self, user_id, delta: int, default: int | None = None, game: str = "admin", meta: str | None = None) -> int:
        """Atomic unconditional delta. Returns the new balance."""
        with self._transaction() as c:
            return self._apply_delta(c, str(user_id), delta, game, meta, default)

    def adjust_balance(self, user_id, delta: int | None = None, set_to: int | None = None,
                       meta: str | None = None, game: str = "admin") -> tuple[int, int]:
        """Admin change by delta or to an exact amount, refused if it would go below zero.

        Returns (before, after) as read inside the transaction.
        """
        if (delta is None) == (set_to is None):
            raise InvalidSelection("Give exactly one of delta or set_to.")
        if set_to is not None and int(set_to) < 0:
            raise InvalidSelection("Cannot set a negative balance.")
        with self._transaction() as c:
            uid = str(user_id)
            before = self._balance_in(c, uid, None)
            change = int(set_to) - before if set_to is not None else int(delta)
            if before + change < 0:
                raise InsufficientFunds(before, -change)
            after = self._apply_delta(c, uid, change, game, meta or ("set" if set_to is not None else None))
            return before, after

    def debit(self, user_id, amount: int, game: str, meta: str = "bet") -> int:
        """Take a stake. Raises InsufficientFunds without touching anything if the balance is short."""
        if int(amount) <= 0:
            raise InvalidSelection("Bet must be a positive whole number.")
        with self._transaction() as c:
            uid = str(user_id)
            bal = self._balance_in(c, uid, None)
            if bal < amount:
                raise InsufficientFunds(bal, int(amount))
            return self._apply_delta(c, uid, -int(amount), game, meta)

    def transfer(self, from_id, to_id, amount: int) -> tuple[int, int]:
        """Move credits between two accounts in one transaction. Returns (from_balance, to_balance)."""
        amount = int(amount)
        if amount <= 0:
            raise InvalidSelection("Amount must be a positive whole number.")
        src, dst = str(from_id), str(to_id)
        if src == dst:
            raise InvalidSelection("You can't give credits to yourself.")
        with self._transaction() as c:
            bal = self._balance_in(c, src, None)
            if bal < amount:
                raise InsufficientFunds(bal, amount)
            from_bal = self._apply_delta(c, src, -amount, "give", f"to:{dst}")
            to_bal = self._apply_delta(c, dst, amount, "give", f"from:{src}")
            return from_bal, to_bal

    # --- bet preferences ---

    def get_bet(self, user_id, game: str, default: int, min_bet: int = MIN_BET, max_bet: int = MAX_BET) -> int:
        """Stored bet for a game, clamped to the current bounds."""
        with self._transaction() as c:
            c.execute(
                "INSERT OR IGNORE INTO casino_bets (user_id, game, amount) VALUES (?, ?, ?)",
                (str(user_id), str(game), clamp_bet(default, min_bet, max_bet)),
            )
            c.execute("SELECT amount FROM casino_bets WHERE user_id = ? AND game = ?", (str(user_id), str(game)))
            return clamp_bet(c.fetchone()[0], min_bet, max_bet)

    def set_bet(self, user_id, game: str, amount: int, min_bet: int = MIN_BET, max_bet: int = MAX_BET) -> int:
        amount = clamp_bet(amount, min_bet, max_bet)
        with self._transaction() as c:
            c.execute(
                """
                INSERT INTO casino_bets (user_id, game, amount) VALUES (?, ?, ?)
                ON CONFLICT(user_id, game) DO UPDATE SET amount = excluded.amount
                """,
                (str(user_id), str(game), amount),
            )
        return amount

    # --- bonus ---

    def get_last_bonus(self, user_id) -> int:
        with self._transaction() as c:
            c.execute("INSERT OR IGNORE INTO casino_bonus (user_id, last_claim) VALUES (?, 0)", (str(user_id),))
            c.execute("SELECT last_claim FROM casino_bonus WHERE user_id = ?", (str(user_id),))
            return int(c.fetchone()[0] or 0)

    def claim_bonus(self, user_id, amount: int, cooldown_ms: int = BONUS_COOLDOWN_MS, now_ms: int | None = None) -> BonusClaim:
        """Check the cooldown, stamp the claim and credit the amount as one unit."""
        now = _now_ms() if now_ms is None else int(now_ms)
        uid = str(user_id)
        with self._transaction() as c:
            c.execute("INSERT OR IGNORE INTO casino_bonus (user_id, last_claim) VALUES (?, 0)", (uid,))
            c.execute("SELECT last_claim FROM casino_bonus WHERE user_id = ?", (uid,))
            last = int(c.fetchone()[0] or 0)
            if now - last < cooldown_ms:
                return BonusClaim(False, 0, last + cooldown_ms)
            c.execute("UPDATE casino_bonus SET last_claim = ? WHERE user_id = ?", (now, uid))
            self._apply_delta(c, uid, int(amount), "bonus", "timed bonus")
        return BonusClaim(True, int(amount), now + cooldown_ms)

    # --- stats ---

    def record_result(self, guild_id, user_id, game: str, result: str, net: int):
        """Upsert and increment the stats row in a single statement."""
        with self._transaction() as c:
            self._record_in(c, _gid(guild_id), str(user_id), str(game), result, net)

    def settle(self, guild_id, user_id, game: str, payout: int, result: str, net: int) -> int:
        """Credit the payout (if any) and record the result together. Returns the new balance."""
        uid = str(user_id)
        with self._transaction() as c:
            if payout:
                balance = self._apply_delta(c, uid, int(payout), str(game), f"payout:{result}")
            else:
                balance = self._balance_in(c, uid, None)
            self._record_in(c, _gid(guild_id), uid, str(game), result, net)
            return balance

    def play_round(self, guild_id, user_id, game: str, stake: int, payout: int, result: str, net: int) -> int:
        """Take the stake, credit the payout and record the result as one unit.

        Used by single-call games whose outcome is known before anything is written.
        Raises InsufficientFunds with nothing changed if the balance is short.
        """
        stake = int(stake)
        if stake <= 0:
            raise InvalidSelection("Bet must be a positive whole number.")
        uid = str(user_id)
        with self._transaction() as c:
            bal = self._balance_in(c, uid, None)
            if bal < stake:
                raise InsufficientFunds(bal, stake)
            balance = self._apply_delta(c, uid, -stake, str(game), "bet")
            if payout:
                balance = self._apply_delta(c, uid, int(payout), str(game), f"payout:{result}")
            self._record_in(c, _gid(guild_id), uid, str(game), result, net)
            return balance

    def get_stats(self, guild_id, user_id, game: str | None = None) -> StatLine:
        conn = self._connect()
        try:
            c = conn.cursor()
            sql = (
                "SELECT COALESCE(SUM(wins),0), COALESCE(SUM(losses),0), COALESCE(SUM(pushes),0), COALESCE(SUM(net),0) "
                "FROM casino_stats WHERE guild_id = ? AND user_id = ?"
            )
            params = [_gid(guild_id), str(user_id)]
            if game:
                sql += " AND game = ?"
                params.append(str(game))
            c.execute(sql, params)
            wins, losses, pushes, net = c.fetchone()
            return StatLine(str(user_id), int(wins), int(losses), int(pushes), int(net))
        except sqlite3.Error as e:
            logger.error("Error loading casino stats: %s", e, exc_info=True)
            raise PersistenceFailure("Could not load stats right now.") from e
        finally:
            conn.close()

    # --- leaderboards ---

    def leaderboard_by_balance(self, guild_id, limit: int = 10) -> list[tuple[str, int]]:
        """Top balances among users with any stats in this guild."""
        conn = self._connect()
        try:
            c = conn.cursor()
            c.execute(
                """
                SELECT a.user_id, a.balance
                FROM casino_accounts a
                JOIN (SELECT DISTINCT user_id FROM casino_stats WHERE guild_id = ?) g
                  ON g.user_id = a.user_id
                ORDER BY a.balance DESC, a.user_id
                LIMIT ?
                """,
                (_gid(guild_id), int(limit)),
            )
            return [(row[0], int(row[1])) for row in c.fetchall()]
        except sqlite3.Error as e:
            logger.error("Error loading balance leaderboard: %s", e, exc_info=True)
            raise PersistenceFailure("Could not load the leaderboard right now.") from e
        finally:
            conn.close()

    def leaderboard_by_stat(self, guild_id, game: str = "all", metric: str = "wins", limit: int = 10) -> list[StatLine]:
        """Rank by wins/losses/pushes/winrate/net, summing over games when game is 'all'."""
        if metric not in STAT_METRICS:
            raise InvalidSelection(f"Unknown metric '{metric}'. Try: {', '.join(STAT_METRICS)}")
        conn = self._connect()
        try:
            c = conn.cursor()
            if game == "all":
                c.execute(
                    """
                    SELECT user_id, SUM(wins), SUM(losses), SUM(pushes), SUM(net)
                    FROM casino_stats
                    WHERE guild_id = ?
                    GROUP BY user_id
                    ORDER BY user_id
                    """,
                    (_gid(guild_id),),
                )
            else:
                c.execute(
                    """
                    SELECT user_id, wins, losses, pushes, net
                    FROM casino_stats
                    WHERE guild_id = ? AND game = ?
                    ORDER BY user_id
                    """,
                    (_gid(guild_id), str(game)),
                )
            rows = [StatLine(r[0], int(r[1]), int(r[2]), int(r[3]), int(r[4])) for r in c.fetchall()]
        except sqlite3.Error as e:
            logger.error("Error loading stats leaderboard: %s", e, exc_info=True)
            raise PersistenceFailure("Could not load the leaderboard right now.") from e
        finally:
            conn.close()
        rows.sort(key=lambda r: getattr(r, metric), reverse=True)
        return rows[: int(limit)]
