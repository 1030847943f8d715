#!/usr/bin/env python3

# Copyright (c) 2025 Robert McKenzie (@M1XZG)
# Repository: discord-bot-for-fun
# https://github.com/M1XZG/discord-bot-for-fun
#
# This software is released under the MIT License.
# See LICENSE.md for details.

"""
🎰 Casino statistics CLI

Reports credit balances, per-game results, leaderboards and ledger activity.
Defaults to a summary plus top balances. Balance adjustments go through the
same transactional ledger the bot uses and need --confirm to run.

Database schema (from casino_db.py):
- casino_accounts(user_id, balance, last_updated)
- casino_bets(user_id, game, amount)
- casino_stats(guild_id, user_id, game, wins, losses, pushes, net, last_played)
- casino_bonus(user_id, last_claim)
- casino_ledger(id, user_id, game, delta, balance_after, ts, meta)
"""

import os
import sys
import sqlite3
import argparse
from datetime import datetime
import asyncio
from dotenv import load_dotenv
import discord

# Run from a checkout: make the bot modules one directory up importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from casino_db import CASINO_DB, STAT_METRICS, CasinoDB
from casino_errors import CasinoError


def fmt_date(ts: str) -> str:
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M")
    except (AttributeError, ValueError):
        return str(ts)


def connect_or_die(path: str) -> sqlite3.Connection:
    if not os.path.exists(path):
        print(f"❌ Database not found: {path}", file=sys.stderr)
        print("💡 Run the bot first or specify --db path", file=sys.stderr)
        sys.exit(1)
    try:
        conn = sqlite3.connect(path)
        conn.row_factory = sqlite3.Row
        return conn
    except sqlite3.Error as e:
        print(f"❌ Database error: {e}", file=sys.stderr)
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    epilog = """
Examples:
  %(prog)s                                   # Summary + top balances
  %(prog)s --summary                         # Summary only
  %(prog)s --balances -n 20                  # Top 20 balances
  %(prog)s --leaderboard --guild 1 --metric net --game slots
  %(prog)s --ledger --user 123               # Ledger for a user
  %(prog)s --user 123 --add 500              # Preview a grant (add --confirm to run)
"""
    parser = argparse.ArgumentParser(
        description="🎰 Display casino statistics from the database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=epilog,
    )
    parser.add_argument(
        "--db",
        type=str,
        default=os.getenv("CASINO_DB") or CASINO_DB,
        help=f"Path to database file (default: $CASINO_DB or {CASINO_DB})",
    )
    parser.add_argument("-n", "--number", type=int, default=10, help="Number of rows to display")
    parser.add_argument("--all", action="store_true", help="Show all rows (ignore -n)")
    parser.add_argument("--guild", type=str, help="Filter by guild id ('dm' for direct messages)")
    parser.add_argument("--user", type=str, help="Filter by user id")

    group = parser.add_mutually_exclusive_group()
    group.add_argument("--summary", action="store_true", help="Show overall casino summary")
    group.add_argument("--balances", action="store_true", help="Show credit balance leaderboard")
    group.add_argument("--leaderboard", action="store_true", help="Show a stats leaderboard for one guild")
    group.add_argument("--ledger", action="store_true", help="Show ledger entries")

    parser.add_argument("--metric", type=str, default="wins", choices=STAT_METRICS,
                        help="Leaderboard metric (default: wins)")
    parser.add_argument("--game", type=str, default=None, help="Filter ledger/leaderboard by game name")
    parser.add_argument("--since", type=str, help="Filter ts >= ISO-8601 timestamp")
    parser.add_argument("--until", type=str, help="Filter ts <= ISO-8601 timestamp")

    # Name resolution flags
    parser.add_argument("--names", dest="names", action="store_true", default=True,
                        help="Resolve guild and user IDs to Discord names (default)")
    parser.add_argument("--no-names", dest="names", action="store_false",
                        help="Do not resolve names; show numeric IDs only")
    parser.add_argument("--show-ids", action="store_true",
                        help="Append numeric IDs after names in parentheses")

    # Balance adjustment (admin), mutually exclusive operations
    adjust = parser.add_mutually_exclusive_group()
    adjust.add_argument("--set", type=int, help="Set user balance to this exact amount")
    adjust.add_argument("--add", type=int, help="Add this amount to user balance (can be negative)")
    adjust.add_argument("--sub", type=int, help="Subtract this amount from user balance")
    parser.add_argument("--reason", type=str, default="admin-script",
                        help="Reason/meta to store in ledger (default: admin-script)")
    parser.add_argument("--confirm", action="store_true",
                        help="Execute the update. Without this, performs a dry-run preview only.")

    return parser


def print_summary(conn: sqlite3.Connection):
    c = conn.cursor()

    c.execute("SELECT COUNT(*) AS players, COALESCE(SUM(balance),0) AS credits FROM casino_accounts")
    row = c.fetchone()
    print("🎰 Casino Summary")
    print("─" * 60)
    print(f"Players:            {row['players'] or 0}")
    print(f"Total credits:      {row['credits'] or 0}")

    c.execute("SELECT COUNT(*) AS entries, COALESCE(SUM(delta),0) AS net FROM casino_ledger")
    led = c.fetchone()
    print(f"Ledger entries:     {led['entries'] or 0}")
    print(f"Net delta (ledger): {led['net'] or 0}")

    c.execute("SELECT COUNT(*) AS claims, COALESCE(SUM(delta),0) AS credits FROM casino_ledger WHERE game='bonus'")
    b = c.fetchone()
    print(f"Bonus claims:       count={b['claims']}  credits={b['credits']}")

    # Per-game player results; house edge shows as negative net
    c.execute(
        "SELECT game, SUM(wins) AS wins, SUM(losses) AS losses, SUM(pushes) AS pushes, SUM(net) AS net "
        "FROM casino_stats GROUP BY game ORDER BY game"
    )
    rows = c.fetchall()
    if rows:
        print()
        print(f"{'Game':<12} {'Rounds':<8} {'Wins':<8} {'Losses':<8} {'Pushes':<8} {'Player net':<10}")
        print("─" * 60)
    for r in rows:
        rounds = int(r['wins']) + int(r['losses']) + int(r['pushes'])
        print(f"{r['game']:<12} {rounds:<8} {int(r['wins']):<8} {int(r['losses']):<8} {int(r['pushes']):<8} {int(r['net']):<10}")


def adjust_balance(db: CasinoDB, user_id: str, *, set_to: int | None = None, add: int | None = None,
                   sub: int | None = None, reason: str = "admin-script") -> dict:
    """Transactional balance adjustment with ledger entry.
    Returns a dict with keys: ok, before, after, delta, message.
    """
    if set_to is None and add is None and sub is None:
        return {"ok": False, "message": "No operation specified"}
    delta = None if set_to is not None else (int(add) if add is not None else -int(sub))
    try:
        # Floor check and both balance reads happen in the same transaction as the write.
        before, after = db.adjust_balance(user_id, delta=delta, set_to=set_to, meta=reason)
    except CasinoError as e:
        return {"ok": False, "message": str(e)}
    return {"ok": True, "before": before, "after": after, "delta": after - before, "message": "updated"}


def print_balances(conn: sqlite3.Connection, limit: int | None, guild: str | None, user: str | None):
    c = conn.cursor()
    sql = "SELECT a.user_id, a.balance, a.last_updated FROM casino_accounts a WHERE 1=1"
    params = []
    if guild:
        sql += " AND a.user_id IN (SELECT DISTINCT user_id FROM casino_stats WHERE guild_id = ?)"
        params.append(guild)
    if user:
        sql += " AND a.user_id = ?"
        params.append(user)
    sql += " ORDER BY a.balance DESC, a.user_id"
    if limit:
        sql += f" LIMIT {int(limit)}"

    c.execute(sql, params)
    print("🏆 Credit Balances")
    print("─" * 70)
    print(f"{'Rank':<6} {'User':<30} {'Balance':<12} {'Updated':<16}")
    print("─" * 70)
    for rank, r in enumerate(c.fetchall(), start=1):
        u = format_user(guild or "dm", r['user_id'])
        print(f"{rank:<6} {u:<30} {int(r['balance']):<12} {fmt_date(r['last_updated']):<16}")


def print_leaderboard(db: CasinoDB, guild: str, metric: str, game: str | None, limit: int | None):
    rows = db.leaderboard_by_stat(guild, game or "all", metric, limit or 1_000_000)
    print(f"📊 {metric.capitalize()} Leaderboard — {format_guild(guild)} ({game or 'all games'})")
    print("─" * 90)
    print(f"{'Rank':<6} {'User':<30} {'Wins':<8} {'Losses':<8} {'Pushes':<8} {'Win rate':<10} {'Net':<10}")
    print("─" * 90)
    for rank, s in enumerate(rows, start=1):
        u = format_user(guild, s.user_id)
        print(f"{rank:<6} {u:<30} {s.wins:<8} {s.losses:<8} {s.pushes:<8} {s.winrate * 100:<10.1f} {s.net:<10}")


def print_ledger(conn: sqlite3.Connection, limit: int | None, user: str | None, game: str | None,
                 since: str | None, until: str | None):
    c = conn.cursor()
    sql = "SELECT ts, user_id, game, delta, balance_after, meta FROM casino_ledger WHERE 1=1"
    params = []
    if user:
        sql += " AND user_id = ?"
        params.append(user)
    if game:
        sql += " AND game = ?"
        params.append(game)
    if since:
        sql += " AND ts >= ?"
        params.append(since)
    if until:
        sql += " AND ts <= ?"
        params.append(until)
    sql += " ORDER BY id DESC"
    if limit:
        sql += f" LIMIT {int(limit)}"

    c.execute(sql, params)
    print("📒 Casino Ledger")
    print("─" * 110)
    print(f"{'Date':<16} {'User':<30} {'Game':<10} {'Delta':<8} {'Balance':<10} {'Meta':<30}")
    print("─" * 110)
    for r in c.fetchall():
        meta = r['meta'] if r['meta'] else ''
        u = format_user("dm", r['user_id'])
        print(f"{fmt_date(r['ts']):<16} {u:<30} {r['game']:<10} {int(r['delta']):<8} {int(r['balance_after']):<10} {meta:<30}")


# ─── Discord Name Resolution (optional) ───────────────────────────────────────
_resolver = None
_resolver_loop = None

class NameResolver:
    def __init__(self, loop: asyncio.AbstractEventLoop, show_ids: bool = False):
        intents = discord.Intents.none()
        intents.guilds = True
        intents.members = True
        self.client = discord.Client(intents=intents)
        self.loop = loop
        self.ready = asyncio.Event()
        self.guild_names: dict[str, str] = {}
        self.user_names: dict[tuple[str, str], str] = {}
        self.show_ids = show_ids

        @self.client.event
        async def on_ready():
            self.ready.set()

    async def start(self, token: str):
        asyncio.create_task(self.client.start(token))
        await self.ready.wait()

    async def shutdown(self):
        await self.client.close()

    async def guild_name_async(self, gid: str) -> str:
        if gid in self.guild_names:
            return self.guild_names[gid]
        if gid == "dm":
            name = "DM"
        else:
            g = self.client.get_guild(int(gid))
            name = g.name if g else str(gid)
        self.guild_names[gid] = name
        return name

    async def user_name_async(self, gid: str, uid: str) -> str:
        key = (gid, uid)
        if key in self.user_names:
            return self.user_names[key]
        name = str(uid)
        try:
            g = None if gid == "dm" else self.client.get_guild(int(gid))
            member = g.get_member(int(uid)) if g else None
            if member:
                name = member.display_name
            else:
                u = await self.client.fetch_user(int(uid))
                name = getattr(u, "global_name", None) or getattr(u, "name", str(uid))
        except (discord.HTTPException, ValueError):
            pass
        self.user_names[key] = name
        return name

def format_guild(gid: str) -> str:
    if not _resolver:
        return str(gid)
    name = _resolver_loop.run_until_complete(_resolver.guild_name_async(str(gid)))
    return f"{name} ({gid})" if _resolver.show_ids and gid != "dm" else name

def format_user(gid: str, uid: str) -> str:
    if not _resolver:
        return str(uid)
    name = _resolver_loop.run_until_complete(_resolver.user_name_async(str(gid), str(uid)))
    return f"{name} ({uid})" if _resolver.show_ids else name


def _start_resolver(show_ids: bool):
    global _resolver, _resolver_loop
    load_dotenv()
    token = os.getenv("DISCORD_TOKEN")
    if not token:
        print("⚠️ Name resolution disabled: DISCORD_TOKEN not set (.env).", file=sys.stderr)
        return
    _resolver_loop = asyncio.new_event_loop()
    asyncio.set_event_loop(_resolver_loop)
    _resolver = NameResolver(_resolver_loop, show_ids=show_ids)
    try:
        _resolver_loop.run_until_complete(_resolver.start(token))
    except (discord.DiscordException, OSError) as e:
        print(f"⚠️ Name resolution disabled (Discord login failed): {e}", file=sys.stderr)
        _resolver = None
        _resolver_loop.close()
        _resolver_loop = None


def _stop_resolver():
    if _resolver and _resolver_loop:
        _resolver_loop.run_until_complete(_resolver.shutdown())
        _resolver_loop.close()


def run_adjustment(args, db: CasinoDB):
    if not args.user:
        print("❌ Provide --user to target a balance.", file=sys.stderr)
        return
    op_text = (
        f"set to {args.set}" if args.set is not None else
        (f"add {args.add}" if args.add is not None else f"subtract {args.sub}")
    )
    print("🔧 Balance Adjustment (preview)")
    print("─" * 60)
    print(f"User:   {format_user(args.guild or 'dm', args.user)}")
    print(f"Op:     {op_text}")
    print(f"Reason: {args.reason}")
    if not args.confirm:
        print("⚠️ Dry-run only. Add --confirm to execute.")
        return
    result = adjust_balance(db, args.user, set_to=args.set, add=args.add, sub=args.sub, reason=args.reason)
    if result.get("ok"):
        print("✅ Updated")
        print(f"Before: {result['before']}  Delta: {result['delta']}  After: {result['after']}")
    else:
        print(f"❌ {result.get('message', 'failed')}")


def main():
    parser = build_parser()
    args = parser.parse_args()

    limit = None if args.all else (args.number or 10)
    conn = connect_or_die(args.db)
    db = CasinoDB(args.db)

    if args.names:
        _start_resolver(args.show_ids)

    try:
        if any([args.set is not None, args.add is not None, args.sub is not None]):
            run_adjustment(args, db)
        elif args.summary:
            print_summary(conn)
        elif args.balances:
            print_balances(conn, limit=limit, guild=args.guild, user=args.user)
        elif args.leaderboard:
            if not args.guild:
                print("❌ Provide --guild for a leaderboard.", file=sys.stderr)
            else:
                print_leaderboard(db, args.guild, args.metric, args.game, limit)
        elif args.ledger:
            print_ledger(conn, limit=limit, user=args.user, game=args.game, since=args.since, until=args.until)
        else:
            # Default view: summary + top balances
            print_summary(conn)
            print()
            print_balances(conn, limit=10, guild=args.guild, user=args.user)
    finally:
        conn.close()
        _stop_resolver()


if __name__ == "__main__":
    main()
