import sqlite3
import threading

import pytest

from casino_errors import InsufficientFunds, InvalidSelection, PersistenceFailure


def _ledger(db, user_id):
    conn = sqlite3.connect(db.path)
    try:
        return conn.execute(
            "SELECT game, delta, balance_after, meta FROM casino_ledger WHERE user_id = ? ORDER BY id",
            (str(user_id),),
        ).fetchall()
    finally:
        conn.close()


def test_first_reference_creates_starting_balance(db):
    assert db.get_balance(1) == 200
    assert db.get_balance("1") == 200


def test_debit_and_ledger_entry(db):
    assert db.debit(1, 30, "slots") == 170
    assert _ledger(db, 1) == [("slots", -30, 170, "bet")]


def test_debit_rejects_overdraw_without_side_effects(db):
    with pytest.raises(InsufficientFunds) as exc:
        db.debit(1, 201, "dice")
    assert exc.value.balance == 200
    assert exc.value.stake == 201
    assert db.get_balance(1) == 200
    assert _ledger(db, 1) == []


def test_debit_rejects_non_positive(db):
    with pytest.raises(InvalidSelection):
        db.debit(1, 0, "dice")


def test_concurrent_debits_cannot_double_spend(db):
    db.get_balance(1)
    results = []
    barrier = threading.Barrier(2)

    def worker():
        barrier.wait()
        try:
            results.append(db.debit(1, 150, "slots"))
        except InsufficientFunds:
            results.append("refused")

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results, key=str) == [50, "refused"]
    assert db.get_balance(1) == 50


def test_transfer_moves_credits(db):
    assert db.transfer(1, 2, 75) == (125, 275)
    assert _ledger(db, 1)[-1] == ("give", -75, 125, "to:2")
    assert _ledger(db, 2)[-1] == ("give", 75, 275, "from:1")


def test_transfer_rejections(db):
    with pytest.raises(InvalidSelection):
        db.transfer(1, 1, 10)
    with pytest.raises(InvalidSelection):
        db.transfer(1, 2, 0)
    with pytest.raises(InsufficientFunds):
        db.transfer(1, 2, 500)
    assert db.get_balance(1) == 200


def test_set_and_add_balance(db):
    assert db.set_balance(1, 1000) == 1000
    assert db.add_balance(1, -250, meta="fine") == 750
    assert [row[:3] for row in _ledger(db, 1)] == [("admin", 800, 1000), ("admin", -250, 750)]


def test_bet_preferences(db):
    assert db.get_bet(1, "slots", 5) == 5
    assert db.set_bet(1, "slots", 40) == 40
    assert db.get_bet(1, "slots", 5) == 40
    assert db.set_bet(1, "dice", 10**9) == 100000


def test_bonus_cooldown(db):
    first = db.claim_bonus(1, 50, cooldown_ms=1000, now_ms=10_000)
    assert first.ok and first.credited == 50 and first.next_at == 11_000
    assert db.get_balance(1) == 250

    early = db.claim_bonus(1, 50, cooldown_ms=1000, now_ms=10_500)
    assert not early.ok
    assert early.next_at == 11_000
    assert db.get_balance(1) == 250

    again = db.claim_bonus(1, 50, cooldown_ms=1000, now_ms=11_000)
    assert again.ok
    assert db.get_balance(1) == 300
    assert db.get_last_bonus(1) == 11_000


def test_record_result_increments_counters(db):
    db.record_result(7, 1, "dice", "win", 10)
    db.record_result(7, 1, "dice", "loss", -10)
    db.record_result(7, 1, "dice", "loss", -10)
    db.record_result(7, 1, "slots", "push", 0)
    stats = db.get_stats(7, 1)
    assert (stats.wins, stats.losses, stats.pushes, stats.net) == (1, 2, 1, -10)
    dice = db.get_stats(7, 1, "dice")
    assert dice.plays == 3
    assert dice.winrate == pytest.approx(1 / 3)


def test_stats_are_per_guild(db):
    db.record_result(7, 1, "dice", "win", 10)
    db.record_result(None, 1, "dice", "win", 10)
    assert db.get_stats(7, 1).wins == 1
    assert db.get_stats(None, 1).wins == 1
    assert db.get_stats(8, 1).wins == 0


def test_winrate_with_no_decided_rounds_is_zero(db):
    db.record_result(7, 1, "slots", "push", 0)
    assert db.get_stats(7, 1).winrate == 0


def test_record_result_rejects_unknown_result(db):
    with pytest.raises(InvalidSelection):
        db.record_result(7, 1, "dice", "draw", 0)


def test_settle_credits_and_records_together(db):
    db.debit(1, 10, "dice")
    assert db.settle(7, 1, "dice", 20, "win", 10) == 210
    assert db.get_stats(7, 1).wins == 1
    assert _ledger(db, 1)[-1] == ("dice", 20, 210, "payout:win")


def test_settle_rolls_back_when_stats_write_fails(db):
    db.debit(1, 10, "dice")
    conn = sqlite3.connect(db.path)
    conn.execute("DROP TABLE casino_stats")
    conn.commit()
    conn.close()

    with pytest.raises(PersistenceFailure):
        db.settle(7, 1, "dice", 20, "win", 10)
    assert db.get_balance(1) == 190
    assert len(_ledger(db, 1)) == 1


def test_balance_leaderboard_is_guild_scoped(db):
    db.set_balance(1, 500)
    db.set_balance(2, 900)
    db.set_balance(3, 700)
    db.record_result(7, 1, "dice", "win", 10)
    db.record_result(7, 3, "dice", "loss", -10)
    db.record_result(8, 2, "dice", "win", 10)
    assert db.leaderboard_by_balance(7) == [("3", 700), ("1", 500)]


def test_stat_leaderboard_orders_and_breaks_ties_by_user(db):
    db.record_result(7, 2, "dice", "win", 10)
    db.record_result(7, 1, "dice", "win", 10)
    db.record_result(7, 3, "dice", "win", 10)
    db.record_result(7, 3, "slots", "win", 25)
    db.record_result(7, 1, "slots", "loss", -5)

    wins = db.leaderboard_by_stat(7, "all", "wins")
    assert [s.user_id for s in wins] == ["3", "1", "2"]

    dice = db.leaderboard_by_stat(7, "dice", "wins", limit=2)
    assert [s.user_id for s in dice] == ["1", "2"]

    rate = db.leaderboard_by_stat(7, "all", "winrate")
    assert [s.user_id for s in rate] == ["2", "3", "1"]

    with pytest.raises(InvalidSelection):
        db.leaderboard_by_stat(7, "all", "balance")


def test_bet_preferences_follow_configured_bounds(db):
    assert db.get_bet(1, "slots", 500, min_bet=5, max_bet=50) == 50
    assert db.set_bet(1, "slots", 60, min_bet=5, max_bet=50) == 50
    assert db.set_bet(1, "dice", 1, min_bet=5, max_bet=50) == 5
    assert db.get_bet(1, "dice", 10, min_bet=10, max_bet=50) == 10


def test_concurrent_bonus_claims_credit_once(db):
    barrier = threading.Barrier(4)
    results = []

    def claim():
        barrier.wait()
        results.append(db.claim_bonus(1, 50, cooldown_ms=1000, now_ms=10_000).ok)

    threads = [threading.Thread(target=claim) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results) == [False, False, False, True]
    assert db.get_balance(1) == 250


def test_play_round_writes_stake_payout_and_stats(db):
    assert db.play_round(7, 1, "slots", 10, 100, "win", 90) == 290
    assert _ledger(db, 1) == [("slots", -10, 190, "bet"), ("slots", 100, 290, "payout:win")]
    assert db.get_stats(7, 1, "slots").wins == 1


def test_play_round_loss_has_no_payout_row(db):
    assert db.play_round(7, 1, "dice", 10, 0, "loss", -10) == 190
    assert _ledger(db, 1) == [("dice", -10, 190, "bet")]


def test_play_round_short_balance_changes_nothing(db):
    db.set_balance(1, 5)
    with pytest.raises(InsufficientFunds):
        db.play_round(7, 1, "dice", 10, 20, "win", 10)
    assert db.get_balance(1) == 5
    assert len(_ledger(db, 1)) == 1
    assert db.get_stats(7, 1).plays == 0


def test_play_round_keeps_stake_when_stats_write_fails(db):
    conn = sqlite3.connect(db.path)
    conn.execute("DROP TABLE casino_stats")
    conn.commit()
    conn.close()

    with pytest.raises(PersistenceFailure):
        db.play_round(7, 1, "dice", 10, 20, "win", 10)
    assert db.get_balance(1) == 200
    assert _ledger(db, 1) == []


def test_adjust_balance_reports_before_and_after(db):
    assert db.adjust_balance(1, delta=50, meta="refund") == (200, 250)
    assert db.adjust_balance(1, set_to=75) == (250, 75)
    assert _ledger(db, 1)[-1] == ("admin", -175, 75, "set")


def test_adjust_balance_refuses_negative_result(db):
    with pytest.raises(InsufficientFunds):
        db.adjust_balance(1, delta=-201)
    with pytest.raises(InvalidSelection):
        db.adjust_balance(1, set_to=-1)
    with pytest.raises(InvalidSelection):
        db.adjust_balance(1, delta=5, set_to=5)
    assert db.get_balance(1) == 200
    assert _ledger(db, 1) == []
