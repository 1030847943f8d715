# Copyright (c) 2025 Robert McKenzie (@M1XZG)
# Repository: discord-bot-for-fun
# https://github.com/M1XZG/discord-bot-for-fun
#
# This software is released under the MIT License.
# See LICENSE.md for details.

"""
Casino game engines: pure rules, randomness and state machines.

Nothing here touches the database or discord. Every engine takes the stake
that was already debited and produces a RoundOutcome describing how many
credits go back to the player when the round is settled.

Usage from the core:
    from casino_games import spin_slots, roll_dice, spin_roulette, BlackjackGame, MinesGame
"""

import math
import secrets
from dataclasses import dataclass
from enum import Enum

from casino_errors import IllegalStateTransition, InvalidSelection


class GameKind(str, Enum):
    SLOTS = "slots"
    DICE = "dice"
    ROULETTE = "roulette"
    BLACKJACK = "blackjack"
    MINES = "mines"

    @classmethod
    def parse(cls, value: "str | GameKind") -> "GameKind":
        if isinstance(value, GameKind):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(g.value for g in cls)
            raise InvalidSelection(f"Unknown game '{value}'. Try: {names}") from None


class GameResult(str, Enum):
    WIN = "win"
    LOSS = "loss"
    PUSH = "push"

    @classmethod
    def from_net(cls, net: int) -> "GameResult":
        if net > 0:
            return cls.WIN
        if net < 0:
            return cls.LOSS
        return cls.PUSH


@dataclass(frozen=True)
class RoundOutcome:
    """Settled result of one round. payout is what gets credited back."""
    game: GameKind
    stake: int
    payout: int
    net: int
    result: GameResult


def _outcome(game: GameKind, stake: int, payout: int, result: GameResult | None = None) -> RoundOutcome:
    net = payout - stake
    return RoundOutcome(game, stake, payout, net, result or GameResult.from_net(net))


# --- RNG ---

def randbelow(n: int) -> int:
    """Uniform integer in [0, n)."""
    return secrets.randbelow(n)


def shuffle(items: list, draw=randbelow) -> list:
    """Fisher-Yates shuffle in place. Returns the same list."""
    for i in range(len(items) - 1, 0, -1):
        j = draw(i + 1)
        items[i], items[j] = items[j], items[i]
    return items


SUITS = ["♠", "♥", "♦", "♣"]
RANKS = ["A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K"]


def new_deck(draw=randbelow) -> list[str]:
    """Fresh shuffled 52-card deck, cards like '10♥'."""
    return shuffle([f"{r}{s}" for s in SUITS for r in RANKS], draw)


# --- Slots ---

SLOT_SYMBOLS = ["🍒", "🍋", "🍇", "🍉", "🔔", "⭐", "7️⃣"]
TOP_SYMBOL = "7️⃣"
TRIPLE_TOP_PAYOUT = 100
TRIPLE_PAYOUT = 30
PAIR_PAYOUT = 10


@dataclass(frozen=True)
class SlotsSpin:
    frame: tuple[str, str, str]
    outcome: RoundOutcome


def spin_reels(draw=randbelow) -> tuple[str, str, str]:
    return tuple(SLOT_SYMBOLS[draw(len(SLOT_SYMBOLS))] for _ in range(3))


def slots_payout(frame) -> int:
    # Fixed credit amounts, not multiples of the stake
    a, b, c = frame
    if a == b == c:
        return TRIPLE_TOP_PAYOUT if a == TOP_SYMBOL else TRIPLE_PAYOUT
    if a == b or b == c or a == c:
        return PAIR_PAYOUT
    return 0


def spin_slots(stake: int, draw=randbelow) -> SlotsSpin:
    frame = spin_reels(draw)
    return SlotsSpin(frame, _outcome(GameKind.SLOTS, stake, slots_payout(frame)))


# --- Dice ---

DICE_FACES = ["⚀", "⚁", "⚂", "⚃", "⚄", "⚅"]
DICE_WIN_FROM = 4


@dataclass(frozen=True)
class DiceRoll:
    face: int
    outcome: RoundOutcome

    @property
    def symbol(self) -> str:
        return DICE_FACES[self.face - 1]


def roll_dice(stake: int, draw=randbelow) -> DiceRoll:
    """Roll 1-6; 4 or more pays double the stake."""
    face = 1 + draw(6)
    payout = stake * 2 if face >= DICE_WIN_FROM else 0
    return DiceRoll(face, _outcome(GameKind.DICE, stake, payout))


# --- Roulette ---

RED_NUMBERS = frozenset({1, 3, 5, 7, 9, 12, 14, 16, 18, 19, 21, 23, 25, 27, 30, 32, 34, 36})


class RouletteBet(str, Enum):
    RED = "red"
    BLACK = "black"
    EVEN = "even"
    ODD = "odd"
    LOW = "low"
    HIGH = "high"
    DOZEN_1 = "dz1"
    DOZEN_2 = "dz2"
    DOZEN_3 = "dz3"
    SINGLE = "single"


# Profit multiplier, stake not included
ROULETTE_PAYOUTS = {
    RouletteBet.RED: 1,
    RouletteBet.BLACK: 1,
    RouletteBet.EVEN: 1,
    RouletteBet.ODD: 1,
    RouletteBet.LOW: 1,
    RouletteBet.HIGH: 1,
    RouletteBet.DOZEN_1: 2,
    RouletteBet.DOZEN_2: 2,
    RouletteBet.DOZEN_3: 2,
    RouletteBet.SINGLE: 35,
}

ROULETTE_ALIASES = {
    RouletteBet.RED: {"red", "r"},
    RouletteBet.BLACK: {"black", "b"},
    RouletteBet.EVEN: {"even", "ev"},
    RouletteBet.ODD: {"odd", "od"},
    RouletteBet.LOW: {"low", "1-18", "1to18"},
    RouletteBet.HIGH: {"high", "hi", "19-36", "19to36"},
    RouletteBet.DOZEN_1: {"dz1", "1st12", "first12", "dozen1"},
    RouletteBet.DOZEN_2: {"dz2", "2nd12", "second12", "dozen2"},
    RouletteBet.DOZEN_3: {"dz3", "3rd12", "third12", "dozen3"},
    RouletteBet.SINGLE: {"single", "straight", "number"},
}


@dataclass(frozen=True)
class RouletteSelection:
    bet: RouletteBet = RouletteBet.RED
    number: int | None = None

    def __post_init__(self):
        if self.number is not None and not (0 <= self.number <= 36):
            raise InvalidSelection("Number must be 0–36.")

    @classmethod
    def parse(cls, text: str) -> "RouletteSelection":
        """Accept 'red', 'odd', '2nd12', a bare number like '17', or 'single 17'."""
        s = (text or "").strip().lower()
        parts = s.split()
        if len(parts) == 2 and parts[0] in ROULETTE_ALIASES[RouletteBet.SINGLE]:
            s = parts[1]
        if s.isdigit():
            return cls(RouletteBet.SINGLE, int(s))
        for bet, aliases in ROULETTE_ALIASES.items():
            if s in aliases:
                return cls(bet)
        raise InvalidSelection(
            "Unknown selection. Try: red, black, even, odd, low, high, 1st12, 2nd12, 3rd12, or a number 0..36"
        )

    def label(self) -> str:
        if self.bet is RouletteBet.SINGLE:
            return f"single ({'—' if self.number is None else self.number})"
        return self.bet.value


@dataclass(frozen=True)
class RouletteSpin:
    number: int
    selection: RouletteSelection
    outcome: RoundOutcome

    @property
    def color(self) -> str:
        return roulette_color(self.number)


def roulette_color(n: int) -> str:
    if n == 0:
        return "green"
    return "red" if n in RED_NUMBERS else "black"


def _roulette_dozen(n: int) -> int | None:
    if 1 <= n <= 12:
        return 1
    if 13 <= n <= 24:
        return 2
    if 25 <= n <= 36:
        return 3
    return None


def roulette_multiplier(number: int, selection: RouletteSelection) -> int:
    """Profit multiplier for a wheel result, 0 when the selection loses."""
    bet = selection.bet
    if bet is RouletteBet.SINGLE:
        hit = number == selection.number
    elif number == 0:
        return 0
    elif bet in (RouletteBet.RED, RouletteBet.BLACK):
        hit = roulette_color(number) == bet.value
    elif bet is RouletteBet.EVEN:
        hit = number % 2 == 0
    elif bet is RouletteBet.ODD:
        hit = number % 2 == 1
    elif bet is RouletteBet.LOW:
        hit = 1 <= number <= 18
    elif bet is RouletteBet.HIGH:
        hit = 19 <= number <= 36
    else:
        dozen = {RouletteBet.DOZEN_1: 1, RouletteBet.DOZEN_2: 2, RouletteBet.DOZEN_3: 3}[bet]
        hit = _roulette_dozen(number) == dozen
    return ROULETTE_PAYOUTS[bet] if hit else 0


def spin_roulette(stake: int, selection: RouletteSelection, draw=randbelow) -> RouletteSpin:
    if selection.bet is RouletteBet.SINGLE and selection.number is None:
        raise InvalidSelection("Choose a number (0–36) first.")
    number = draw(37)
    mult = roulette_multiplier(number, selection)
    payout = stake * (mult + 1) if mult > 0 else 0
    return RouletteSpin(number, selection, _outcome(GameKind.ROULETTE, stake, payout))


# --- Blackjack ---

DEALER_STANDS_ON = 17


def card_rank(card: str) -> str:
    return card[:-1]


def hand_value(cards) -> int:
    """Best total; each ace counts 11 until the hand would bust, then 1."""
    total = 0
    aces = 0
    for card in cards:
        r = card_rank(card)
        if r == "A":
            aces += 1
            total += 11
        elif r in ("K", "Q", "J"):
            total += 10
        else:
            total += int(r)
    while total > 21 and aces:
        total -= 10
        aces -= 1
    return total


def is_blackjack(cards) -> bool:
    return len(cards) == 2 and hand_value(cards) == 21


class BlackjackState(Enum):
    AWAITING_BET = "awaiting_bet"
    DEALING = "dealing"
    PLAYER_TURN = "player_turn"
    DEALER_TURN = "dealer_turn"
    SETTLED = "settled"


@dataclass(frozen=True)
class BlackjackSnapshot:
    owner: str
    stake: int
    state: BlackjackState
    player: tuple[str, ...]
    player_total: int
    dealer: tuple[str, ...]
    # None while the hole card is hidden
    dealer_total: int | None
    outcome: RoundOutcome | None


class BlackjackGame:
    """One blackjack hand. The shoe is consumed from the end."""

    def __init__(self, owner: str, stake: int, deck: list[str] | None = None, draw=randbelow):
        self.owner = str(owner)
        self.stake = int(stake)
        self.deck = list(deck) if deck is not None else new_deck(draw)
        self.player: list[str] = []
        self.dealer: list[str] = []
        self.state = BlackjackState.AWAITING_BET
        self.outcome: RoundOutcome | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state is BlackjackState.SETTLED

    def _require(self, state: BlackjackState, action: str):
        if self.state is not state:
            raise IllegalStateTransition(f"Can't {action} now; the hand is {self.state.value.replace('_', ' ')}.")

    def _finish(self, payout: int, result: GameResult | None = None) -> RoundOutcome:
        self.state = BlackjackState.SETTLED
        self.outcome = _outcome(GameKind.BLACKJACK, self.stake, payout, result)
        return self.outcome

    def deal(self) -> RoundOutcome | None:
        """Deal player, dealer, player, dealer. Resolves naturals immediately."""
        self._require(BlackjackState.AWAITING_BET, "deal")
        self.state = BlackjackState.DEALING
        for hand in (self.player, self.dealer, self.player, self.dealer):
            hand.append(self.deck.pop())
        if is_blackjack(self.player):
            if is_blackjack(self.dealer):
                return self._finish(self.stake)
            return self._finish(self.stake + math.floor(self.stake * 1.5))
        self.state = BlackjackState.PLAYER_TURN
        return None

    def hit(self) -> RoundOutcome | None:
        self._require(BlackjackState.PLAYER_TURN, "hit")
        self.player.append(self.deck.pop())
        if hand_value(self.player) > 21:
            return self._finish(0, GameResult.LOSS)
        return None

    def stand(self) -> RoundOutcome:
        self._require(BlackjackState.PLAYER_TURN, "stand")
        self.state = BlackjackState.DEALER_TURN
        while hand_value(self.dealer) < DEALER_STANDS_ON:
            self.dealer.append(self.deck.pop())
        pv = hand_value(self.player)
        dv = hand_value(self.dealer)
        if dv > 21 or pv > dv:
            return self._finish(self.stake * 2)
        if pv == dv:
            return self._finish(self.stake)
        return self._finish(0)

    def snapshot(self) -> BlackjackSnapshot:
        hidden = not self.is_terminal and len(self.dealer) > 1
        dealer = tuple(self.dealer[:1]) if hidden else tuple(self.dealer)
        return BlackjackSnapshot(
            owner=self.owner,
            stake=self.stake,
            state=self.state,
            player=tuple(self.player),
            player_total=hand_value(self.player),
            dealer=dealer,
            dealer_total=None if hidden else hand_value(self.dealer),
            outcome=self.outcome,
        )


# --- Mines ---

MINES_ROWS = 4
MINES_COLS = 5
MINES_COUNT = 5
MINES_HOUSE_EDGE = 0.04


class MinesState(Enum):
    ACTIVE = "active"
    CASHED_OUT = "cashed_out"
    BUSTED = "busted"
    FORFEITED = "forfeited"


@dataclass(frozen=True)
class MinesSnapshot:
    owner: str
    stake: int
    rows: int
    cols: int
    mine_count: int
    state: MinesState
    revealed: frozenset[int]
    # Only exposed once the board is finished
    mines: frozenset[int] | None
    multiplier: float
    potential_cashout: int
    outcome: RoundOutcome | None


class MinesGame:
    def __init__(
        self,
        owner: str,
        stake: int,
        rows: int = MINES_ROWS,
        cols: int = MINES_COLS,
        mine_count: int = MINES_COUNT,
        house_edge: float = MINES_HOUSE_EDGE,
        mines=None,
        draw=randbelow,
    ):
        self.owner = str(owner)
        self.stake = int(stake)
        self.rows = rows
        self.cols = cols
        self.total_cells = rows * cols
        if not 0 < mine_count < self.total_cells:
            raise InvalidSelection(f"Mine count must be between 1 and {self.total_cells - 1}.")
        self.mine_count = mine_count
        self.total_safe = self.total_cells - mine_count
        self.house_edge = house_edge
        if mines is None:
            # Partial Fisher-Yates: first mine_count cells of a shuffled grid
            cells = list(range(self.total_cells))
            for i in range(mine_count):
                j = i + draw(self.total_cells - i)
                cells[i], cells[j] = cells[j], cells[i]
            mines = cells[:mine_count]
        self.mines = frozenset(mines)
        if len(self.mines) != mine_count or not all(0 <= m < self.total_cells for m in self.mines):
            raise InvalidSelection("Mine layout does not match the board.")
        self.revealed: set[int] = set()
        self.safe_revealed = 0
        self.multiplier = 1.0
        self.state = MinesState.ACTIVE
        self.outcome: RoundOutcome | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state is not MinesState.ACTIVE

    @property
    def potential_cashout(self) -> int:
        return math.floor(self.stake * self.multiplier)

    def index(self, row: int, col: int) -> int:
        return row * self.cols + col

    def _require_active(self, action: str):
        if self.state is not MinesState.ACTIVE:
            raise IllegalStateTransition(f"No active Mines game to {action}.")

    def _finish(self, state: MinesState, payout: int, result: GameResult | None = None) -> RoundOutcome:
        self.state = state
        self.outcome = _outcome(GameKind.MINES, self.stake, payout, result)
        return self.outcome

    def reveal(self, index: int) -> RoundOutcome | None:
        """Reveal a tile. Returns the losing outcome on a mine, else None."""
        self._require_active("reveal")
        if not 0 <= index < self.total_cells:
            raise InvalidSelection(f"Tile must be 0–{self.total_cells - 1}.")
        if index in self.revealed:
            raise IllegalStateTransition("That tile is already revealed.")
        if index in self.mines:
            return self._finish(MinesState.BUSTED, 0, GameResult.LOSS)
        cells_left = self.total_cells - len(self.revealed)
        safe_left = self.total_safe - self.safe_revealed
        self.multiplier *= (cells_left / safe_left) * (1 - self.house_edge)
        self.revealed.add(index)
        self.safe_revealed += 1
        return None

    def cash_out(self) -> RoundOutcome:
        self._require_active("cash out")
        return self._finish(MinesState.CASHED_OUT, self.potential_cashout)

    def forfeit(self) -> RoundOutcome:
        self._require_active("forfeit")
        return self._finish(MinesState.FORFEITED, 0, GameResult.LOSS)

    def snapshot(self) -> MinesSnapshot:
        return MinesSnapshot(
            owner=self.owner,
            stake=self.stake,
            rows=self.rows,
            cols=self.cols,
            mine_count=self.mine_count,
            state=self.state,
            revealed=frozenset(self.revealed),
            mines=self.mines if self.is_terminal else None,
            multiplier=self.multiplier,
            potential_cashout=self.potential_cashout,
            outcome=self.outcome,
        )
