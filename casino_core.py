# Copyright (c) 2025 Robert McKenzie (@M1XZG)
# Repository: discord-bot-for-fun
# https://github.com/M1XZG/discord-bot-for-fun
#
# This software is released under the MIT License.
# See LICENSE.md for details.

"""
Casino core: takes bets, drives the game engines and settles outcomes.

Usage from the command layer:
    casino = Casino(CasinoDB(settings.db, settings.starting_credits), settings)
    casino.db.init_db()
    receipt = casino.play_slots(guild_id, user_id)

Every finished session goes through ``_settle`` exactly once: the payout credit
and the guild stats increment are written in the same database transaction.
Single-call games draw their outcome first and write stake, payout and stats
together through ``_play_round``.
"""

import logging
from dataclasses import dataclass, field, fields

from casino_db import CASINO_DB, MAX_BET, MIN_BET, BonusClaim, CasinoDB, StatLine
from casino_errors import IllegalStateTransition, InvalidSelection
from casino_games import (
    BlackjackGame,
    GameKind,
    MinesGame,
    RouletteBet,
    RouletteSelection,
    RoundOutcome,
    randbelow,
    roll_dice,
    spin_roulette,
    spin_slots,
)
from casino_sessions import Session, SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_BETS = {
    GameKind.SLOTS.value: 5,
    GameKind.DICE.value: 5,
    GameKind.MINES.value: 10,
    GameKind.BLACKJACK.value: 10,
    GameKind.ROULETTE.value: 10,
}
LEADERBOARD_TYPES = ("balance", "wins", "losses", "pushes", "winrate", "net")


def _parse_amount(amount, message: str) -> int:
    if isinstance(amount, bool):
        raise InvalidSelection(message)
    try:
        return int(str(amount).strip())
    except (TypeError, ValueError):
        raise InvalidSelection(message) from None


@dataclass(frozen=True)
class CasinoSettings:
    db: str = CASINO_DB
    starting_credits: int = 200
    default_bets: dict = field(default_factory=lambda: dict(DEFAULT_BETS))
    min_bet: int = MIN_BET
    max_bet: int = MAX_BET
    bonus_amount: int = 50
    bonus_cooldown_hours: float = 4
    mines_rows: int = 4
    mines_cols: int = 5
    mines_count: int = 5
    mines_house_edge: float = 0.04

    @classmethod
    def from_config(cls, config: dict | None) -> "CasinoSettings":
        """Build from the "casino" section of the bot config; unknown keys are ignored."""
        section = dict((config or {}).get("casino", {}) or {})
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in section.items() if k in known}
        bets = dict(DEFAULT_BETS)
        bets.update({str(k): int(v) for k, v in (kwargs.pop("default_bets", None) or {}).items()})
        return cls(default_bets=bets, **kwargs)

    @property
    def bonus_cooldown_ms(self) -> int:
        return int(self.bonus_cooldown_hours * 60 * 60 * 1000)

    def default_bet(self, game: GameKind) -> int:
        return int(self.default_bets.get(game.value, DEFAULT_BETS[game.value]))


@dataclass(frozen=True)
class RoundReceipt:
    """A settled single-call round (slots, dice, roulette) plus the resulting balance."""
    round: object
    balance: int

    @property
    def outcome(self) -> RoundOutcome:
        return self.round.outcome


@dataclass(frozen=True)
class SessionView:
    snapshot: object  # BlackjackSnapshot or MinesSnapshot
    balance: int


class Casino:
    def __init__(self, db: CasinoDB, settings: CasinoSettings | None = None, sessions: SessionRegistry | None = None, draw=randbelow):
        self.db = db
        self.settings = settings or CasinoSettings()
        self.sessions = sessions or SessionRegistry()
        self.draw = draw
        self._roulette: dict[str, RouletteSelection] = {}

    # --- balances and bets ---

    def balance(self, user_id) -> int:
        return self.db.get_balance(user_id, self.settings.starting_credits)

    def validate_amount(self, amount) -> int:
        value = _parse_amount(amount, f"Enter a whole number between {self.settings.min_bet} and {self.settings.max_bet}.")
        if not self.settings.min_bet <= value <= self.settings.max_bet:
            raise InvalidSelection(f"Enter a whole number between {self.settings.min_bet} and {self.settings.max_bet}.")
        return value

    def bet(self, user_id, game) -> int:
        kind = GameKind.parse(game)
        return self.db.get_bet(
            user_id, kind.value, self.settings.default_bet(kind), self.settings.min_bet, self.settings.max_bet
        )

    def set_bet(self, user_id, game, amount) -> int:
        kind = GameKind.parse(game)
        return self.db.set_bet(
            user_id, kind.value, self.validate_amount(amount), self.settings.min_bet, self.settings.max_bet
        )

    def _stake(self, user_id, kind: GameKind, stake) -> int:
        return self.bet(user_id, kind) if stake is None else self.validate_amount(stake)

    # --- settlement ---

    def _settle(self, guild_id, user_id, outcome: RoundOutcome) -> int:
        balance = self.db.settle(guild_id, user_id, outcome.game.value, outcome.payout, outcome.result.value, outcome.net)
        logger.info(
            "Settled %s for %s in %s: %s, stake %d, payout %d, net %+d",
            outcome.game.value, user_id, guild_id, outcome.result.value, outcome.stake, outcome.payout, outcome.net,
        )
        return balance

    def _finish(self, session: Session) -> int:
        balance = self._settle(session.guild_id, session.owner, session.game.outcome)
        session.settled = True
        self.sessions.remove(session)
        return balance

    def _play_round(self, guild_id, user_id, outcome: RoundOutcome) -> int:
        balance = self.db.play_round(
            guild_id, user_id, outcome.game.value, outcome.stake, outcome.payout, outcome.result.value, outcome.net
        )
        logger.info(
            "Played %s for %s in %s: %s, stake %d, payout %d, net %+d",
            outcome.game.value, user_id, guild_id, outcome.result.value, outcome.stake, outcome.payout, outcome.net,
        )
        return balance

    # --- single-call games ---

    def play_slots(self, guild_id, user_id, stake=None) -> RoundReceipt:
        stake = self._stake(user_id, GameKind.SLOTS, stake)
        spin = spin_slots(stake, self.draw)
        return RoundReceipt(spin, self._play_round(guild_id, user_id, spin.outcome))

    def play_dice(self, guild_id, user_id, stake=None) -> RoundReceipt:
        stake = self._stake(user_id, GameKind.DICE, stake)
        roll = roll_dice(stake, self.draw)
        return RoundReceipt(roll, self._play_round(guild_id, user_id, roll.outcome))

    def roulette_selection(self, user_id) -> RouletteSelection:
        return self._roulette.get(str(user_id), RouletteSelection())

    def choose_roulette(self, user_id, bet, number: int | None = None) -> RouletteSelection:
        """Change the remembered wager. The last chosen number is kept for a later switch to single."""
        uid = str(user_id)
        if isinstance(bet, RouletteSelection):
            selection = bet
        else:
            try:
                kind = RouletteBet(str(bet).strip().lower())
            except ValueError:
                selection = RouletteSelection.parse(str(bet))
                if selection.number is None:
                    selection = RouletteSelection(selection.bet, self.roulette_selection(uid).number)
            else:
                if number is None:
                    number = self.roulette_selection(uid).number
                selection = RouletteSelection(kind, number)
        with self.sessions.owned(uid):
            self._roulette[uid] = selection
        return selection

    def play_roulette(self, guild_id, user_id, stake=None, selection: RouletteSelection | None = None) -> RoundReceipt:
        selection = selection or self.roulette_selection(user_id)
        if selection.bet is RouletteBet.SINGLE and selection.number is None:
            raise InvalidSelection("Choose a number (0–36) first.")
        stake = self._stake(user_id, GameKind.ROULETTE, stake)
        spin = spin_roulette(stake, selection, self.draw)
        return RoundReceipt(spin, self._play_round(guild_id, user_id, spin.outcome))

    # --- session games ---

    def _open(self, guild_id, user_id, kind: GameKind, stake, build) -> SessionView:
        uid = str(user_id)
        with self.sessions.owned(uid):
            existing = self.sessions.get(uid, kind)
            if existing is not None and existing.pending_settlement:
                self._finish(existing)
            elif existing is not None:
                raise IllegalStateTransition(f"You already have a {kind.value} game in progress. Finish it first.")
            stake = self._stake(uid, kind, stake)
            game = build(uid, stake)
            self.db.debit(uid, stake, kind.value)
            session = self.sessions.open(Session(uid, kind, guild_id, game))
            if game.is_terminal:
                balance = self._finish(session)
            else:
                balance = self.balance(uid)
            return SessionView(game.snapshot(), balance)

    def _advance(self, user_id, kind: GameKind, action) -> SessionView:
        uid = str(user_id)
        with self.sessions.owned(uid):
            session = self.sessions.require(uid, kind)
            # A pending session only retries its settlement
            if not session.pending_settlement:
                action(session.game)
            if session.game.is_terminal:
                balance = self._finish(session)
            else:
                balance = self.balance(uid)
            return SessionView(session.game.snapshot(), balance)

    def current(self, user_id, kind) -> SessionView | None:
        session = self.sessions.get(user_id, GameKind.parse(kind))
        if session is None:
            return None
        return SessionView(session.game.snapshot(), self.balance(user_id))

    def blackjack_start(self, guild_id, user_id, stake=None, deck: list[str] | None = None) -> SessionView:
        def build(owner, amount):
            game = BlackjackGame(owner, amount, deck=deck, draw=self.draw)
            game.deal()
            return game
        return self._open(guild_id, user_id, GameKind.BLACKJACK, stake, build)

    def blackjack_hit(self, user_id) -> SessionView:
        return self._advance(user_id, GameKind.BLACKJACK, lambda game: game.hit())

    def blackjack_stand(self, user_id) -> SessionView:
        return self._advance(user_id, GameKind.BLACKJACK, lambda game: game.stand())

    def mines_start(self, guild_id, user_id, stake=None, mines=None) -> SessionView:
        s = self.settings

        def build(owner, amount):
            return MinesGame(
                owner, amount,
                rows=s.mines_rows, cols=s.mines_cols, mine_count=s.mines_count,
                house_edge=s.mines_house_edge, mines=mines, draw=self.draw,
            )
        return self._open(guild_id, user_id, GameKind.MINES, stake, build)

    def mines_reveal(self, user_id, index: int) -> SessionView:
        return self._advance(user_id, GameKind.MINES, lambda game: game.reveal(int(index)))

    def mines_cash_out(self, user_id) -> SessionView:
        return self._advance(user_id, GameKind.MINES, lambda game: game.cash_out())

    def mines_forfeit(self, user_id) -> SessionView:
        return self._advance(user_id, GameKind.MINES, lambda game: game.forfeit())

    # --- bonus, transfers ---

    def claim_bonus(self, user_id) -> BonusClaim:
        claim = self.db.claim_bonus(user_id, self.settings.bonus_amount, self.settings.bonus_cooldown_ms)
        if claim.ok:
            logger.info("Bonus of %d claimed by %s", claim.credited, user_id)
        return claim

    def give(self, from_id, to_id, amount) -> tuple[int, int]:
        amount = _parse_amount(amount, "Amount must be a whole number of credits.")
        if amount < 1:
            raise InvalidSelection("Amount must be at least 1.")
        return self.db.transfer(from_id, to_id, amount)

    def grant(self, user_id, amount: int, meta: str | None = None) -> int:
        """Admin credit (or debit, when negative) without a funds check."""
        amount = _parse_amount(amount, "Amount must be a whole number of credits.")
        if amount == 0:
            raise InvalidSelection("Amount must be non-zero.")
        return self.db.add_balance(user_id, amount, self.settings.starting_credits, game="admin", meta=meta)

    # --- stats ---

    def stats(self, guild_id, user_id, game=None) -> StatLine:
        kind = None if game in (None, "all") else GameKind.parse(game).value
        return self.db.get_stats(guild_id, user_id, kind)

    def leaderboard(self, guild_id, metric: str = "balance", game: str = "all", limit: int = 10):
        metric = (metric or "").strip().lower()
        if metric not in LEADERBOARD_TYPES:
            raise InvalidSelection(f"Unknown leaderboard '{metric}'. Try: {' | '.join(LEADERBOARD_TYPES)}")
        if metric == "balance":
            return self.db.leaderboard_by_balance(guild_id, limit)
        game = "all" if game in (None, "", "all") else GameKind.parse(game).value
        return self.db.leaderboard_by_stat(guild_id, game, metric, limit)
