import pytest

from casino_errors import IllegalStateTransition, InvalidSelection
from casino_games import (
    SLOT_SYMBOLS,
    BlackjackGame,
    BlackjackState,
    GameKind,
    GameResult,
    MinesGame,
    MinesState,
    RouletteBet,
    RouletteSelection,
    hand_value,
    new_deck,
    roll_dice,
    roulette_multiplier,
    slots_payout,
    spin_roulette,
    spin_slots,
)

SEVEN = SLOT_SYMBOLS.index("7️⃣")
CHERRY = SLOT_SYMBOLS.index("🍒")
BELL = SLOT_SYMBOLS.index("🔔")


# --- slots ---

def test_slots_triple_sevens_pays_fixed_100(script):
    spin = spin_slots(5, script(SEVEN, SEVEN, SEVEN))
    assert spin.frame == ("7️⃣", "7️⃣", "7️⃣")
    assert spin.outcome.payout == 100
    assert spin.outcome.net == 95
    assert spin.outcome.result is GameResult.WIN


def test_slots_other_triple_and_pair():
    assert slots_payout(("🍒", "🍒", "🍒")) == 30
    assert slots_payout(("🍒", "🔔", "🍒")) == 10
    assert slots_payout(("🔔", "🍒", "🍒")) == 10


def test_slots_no_match_loses_stake(script):
    spin = spin_slots(20, script(CHERRY, BELL, SEVEN))
    assert spin.outcome.payout == 0
    assert spin.outcome.net == -20
    assert spin.outcome.result is GameResult.LOSS


def test_slots_pair_below_stake_is_a_loss(script):
    spin = spin_slots(50, script(CHERRY, CHERRY, BELL))
    assert spin.outcome.payout == 10
    assert spin.outcome.result is GameResult.LOSS


# --- dice ---

@pytest.mark.parametrize("draw,face,payout", [(0, 1, 0), (2, 3, 0), (3, 4, 20), (5, 6, 20)])
def test_dice_wins_on_four_or_more(script, draw, face, payout):
    roll = roll_dice(10, script(draw))
    assert roll.face == face
    assert roll.outcome.payout == payout
    assert roll.outcome.result is (GameResult.WIN if payout else GameResult.LOSS)


# --- roulette ---

def test_zero_loses_everything_but_single_zero():
    for bet in RouletteBet:
        if bet is RouletteBet.SINGLE:
            continue
        assert roulette_multiplier(0, RouletteSelection(bet)) == 0
    assert roulette_multiplier(0, RouletteSelection(RouletteBet.SINGLE, 0)) == 35


@pytest.mark.parametrize("bet,winners", [
    (RouletteBet.RED, 18), (RouletteBet.BLACK, 18),
    (RouletteBet.EVEN, 18), (RouletteBet.ODD, 18),
    (RouletteBet.LOW, 18), (RouletteBet.HIGH, 18),
    (RouletteBet.DOZEN_1, 12), (RouletteBet.DOZEN_2, 12), (RouletteBet.DOZEN_3, 12),
])
def test_outside_bets_cover_expected_numbers(bet, winners):
    hits = [n for n in range(37) if roulette_multiplier(n, RouletteSelection(bet))]
    assert len(hits) == winners


def test_roulette_known_numbers():
    assert roulette_multiplier(1, RouletteSelection(RouletteBet.RED)) == 1
    assert roulette_multiplier(2, RouletteSelection(RouletteBet.RED)) == 0
    assert roulette_multiplier(36, RouletteSelection(RouletteBet.HIGH)) == 1
    assert roulette_multiplier(13, RouletteSelection(RouletteBet.DOZEN_2)) == 2
    assert roulette_multiplier(12, RouletteSelection(RouletteBet.DOZEN_2)) == 0


def test_single_number_hit_returns_stake_times_36(script):
    spin = spin_roulette(10, RouletteSelection(RouletteBet.SINGLE, 17), script(17))
    assert spin.number == 17
    assert spin.color == "black"
    assert spin.outcome.payout == 360
    assert spin.outcome.net == 350


def test_even_money_hit_pays_double(script):
    spin = spin_roulette(10, RouletteSelection(RouletteBet.RED), script(3))
    assert spin.outcome.payout == 20


def test_single_without_number_is_rejected(script):
    with pytest.raises(InvalidSelection):
        spin_roulette(10, RouletteSelection(RouletteBet.SINGLE), script(0))


def test_roulette_selection_parse():
    assert RouletteSelection.parse("Red") == RouletteSelection(RouletteBet.RED)
    assert RouletteSelection.parse("2nd12") == RouletteSelection(RouletteBet.DOZEN_2)
    assert RouletteSelection.parse("17") == RouletteSelection(RouletteBet.SINGLE, 17)
    assert RouletteSelection.parse("single 0") == RouletteSelection(RouletteBet.SINGLE, 0)
    with pytest.raises(InvalidSelection):
        RouletteSelection.parse("37")
    with pytest.raises(InvalidSelection):
        RouletteSelection.parse("purple")


# --- blackjack ---

@pytest.mark.parametrize("cards,total", [
    (["A♠", "K♥"], 21),
    (["A♠", "A♥"], 12),
    (["A♠", "A♥", "9♦"], 21),
    (["A♠", "9♥", "5♦"], 15),
    (["K♠", "Q♥", "2♦"], 22),
    (["10♠", "7♥"], 17),
])
def test_hand_value_aces(cards, total):
    assert hand_value(cards) == total


def test_new_deck_has_52_unique_cards():
    deck = new_deck()
    assert len(deck) == 52
    assert len(set(deck)) == 52


def _deck(player, dealer, rest=()):
    """Stack a shoe so deal() gives these hands; rest is drawn afterwards in order."""
    order = [player[0], dealer[0], player[1], dealer[1], *rest]
    return list(reversed(order))


def test_deal_order_and_hidden_hole_card():
    game = BlackjackGame("u1", 10, deck=_deck(["10♠", "9♥"], ["10♦", "6♣"]))
    assert game.deal() is None
    snap = game.snapshot()
    assert snap.state is BlackjackState.PLAYER_TURN
    assert snap.player == ("10♠", "9♥")
    assert snap.dealer == ("10♦",)
    assert snap.dealer_total is None


def test_player_natural_pays_three_to_two_floored():
    game = BlackjackGame("u1", 15, deck=_deck(["A♥", "K♠"], ["7♦", "9♣"]))
    outcome = game.deal()
    assert game.is_terminal
    assert outcome.payout == 15 + 22
    assert outcome.result is GameResult.WIN


def test_both_naturals_push():
    game = BlackjackGame("u1", 10, deck=_deck(["A♥", "K♠"], ["A♦", "Q♣"]))
    outcome = game.deal()
    assert outcome.payout == 10
    assert outcome.result is GameResult.PUSH


def test_dealer_draws_to_seventeen_then_stands():
    game = BlackjackGame("u1", 10, deck=_deck(["10♠", "9♥"], ["10♦", "6♣"], ["5♠", "K♥"]))
    game.deal()
    outcome = game.stand()
    assert game.snapshot().dealer == ("10♦", "6♣", "5♠")
    assert game.snapshot().dealer_total == 21
    assert outcome.payout == 0
    assert outcome.result is GameResult.LOSS


def test_dealer_bust_pays_double():
    game = BlackjackGame("u1", 10, deck=_deck(["10♠", "8♥"], ["10♦", "6♣"], ["K♠"]))
    game.deal()
    outcome = game.stand()
    assert outcome.payout == 20
    assert outcome.result is GameResult.WIN


def test_dealer_stands_on_soft_seventeen():
    game = BlackjackGame("u1", 10, deck=_deck(["10♠", "8♥"], ["A♦", "6♣"], ["5♠"]))
    game.deal()
    outcome = game.stand()
    assert game.snapshot().dealer == ("A♦", "6♣")
    assert game.snapshot().dealer_total == 17
    assert outcome.payout == 20
    assert outcome.result is GameResult.WIN


def test_hit_to_twenty_one_is_not_a_natural():
    game = BlackjackGame("u1", 10, deck=_deck(["5♠", "6♥"], ["10♦", "7♣"], ["K♠"]))
    game.deal()
    assert game.hit() is None
    assert game.snapshot().player_total == 21
    assert game.snapshot().state is BlackjackState.PLAYER_TURN
    outcome = game.stand()
    assert outcome.payout == 20
    assert outcome.result is GameResult.WIN


def test_equal_totals_push():
    game = BlackjackGame("u1", 10, deck=_deck(["10♠", "7♥"], ["10♦", "7♣"]))
    game.deal()
    assert game.stand().result is GameResult.PUSH


def test_hit_to_bust_loses_and_closes_hand():
    game = BlackjackGame("u1", 10, deck=_deck(["10♠", "6♥"], ["10♦", "7♣"], ["K♠"]))
    game.deal()
    outcome = game.hit()
    assert outcome.result is GameResult.LOSS
    assert outcome.payout == 0
    with pytest.raises(IllegalStateTransition):
        game.hit()
    with pytest.raises(IllegalStateTransition):
        game.stand()


def test_cannot_act_before_deal():
    game = BlackjackGame("u1", 10)
    with pytest.raises(IllegalStateTransition):
        game.hit()


# --- mines ---

MINES = [0, 1, 2, 3, 4]


def test_random_mine_layout_has_distinct_cells():
    game = MinesGame("u1", 10)
    assert len(game.mines) == 5
    assert all(0 <= m < 20 for m in game.mines)


def test_scripted_mine_layout(script):
    # Always swap with the first remaining cell: mines land on 0..4
    game = MinesGame("u1", 10, draw=script(0, 0, 0, 0, 0))
    assert game.mines == frozenset(MINES)


def test_multiplier_grows_with_each_safe_reveal():
    game = MinesGame("u1", 10, mines=MINES)
    game.reveal(5)
    assert game.multiplier == pytest.approx((20 / 15) * 0.96)
    first = game.multiplier
    game.reveal(6)
    assert game.multiplier == pytest.approx(first * (19 / 14) * 0.96)
    assert game.multiplier > first


def test_cash_out_floors_payout():
    game = MinesGame("u1", 10, mines=MINES)
    game.reveal(5)
    game.reveal(6)
    outcome = game.cash_out()
    assert outcome.payout == 16
    assert outcome.result is GameResult.WIN
    assert game.snapshot().mines == frozenset(MINES)


def test_cash_out_without_reveals_is_a_push():
    game = MinesGame("u1", 10, mines=MINES)
    outcome = game.cash_out()
    assert outcome.payout == 10
    assert outcome.result is GameResult.PUSH


def test_mine_busts_the_board():
    game = MinesGame("u1", 10, mines=MINES)
    outcome = game.reveal(3)
    assert game.state is MinesState.BUSTED
    assert outcome.payout == 0
    assert outcome.result is GameResult.LOSS
    with pytest.raises(IllegalStateTransition):
        game.reveal(7)


def test_reveal_rejections():
    game = MinesGame("u1", 10, mines=MINES)
    game.reveal(5)
    multiplier, revealed, safe = game.multiplier, set(game.revealed), game.safe_revealed
    with pytest.raises(IllegalStateTransition):
        game.reveal(5)
    assert game.multiplier == multiplier
    assert game.revealed == revealed
    assert game.safe_revealed == safe
    with pytest.raises(InvalidSelection):
        game.reveal(20)
    with pytest.raises(InvalidSelection):
        game.reveal(-1)


def test_forfeit_loses_and_hides_nothing():
    game = MinesGame("u1", 10, mines=MINES)
    assert game.snapshot().mines is None
    outcome = game.forfeit()
    assert outcome.result is GameResult.LOSS
    assert game.snapshot().mines == frozenset(MINES)


def test_bad_mine_layout_rejected():
    with pytest.raises(InvalidSelection):
        MinesGame("u1", 10, mines=[0, 0, 1, 2, 3])
    with pytest.raises(InvalidSelection):
        MinesGame("u1", 10, mine_count=20)


def test_game_kind_parse():
    assert GameKind.parse(" Slots ") is GameKind.SLOTS
    with pytest.raises(InvalidSelection):
        GameKind.parse("poker")
