#!/usr/bin/env python3

# Copyright (c) 2025 Robert McKenzie (@M1XZG)
# Repository: discord-bot-for-fun
# https://github.com/M1XZG/discord-bot-for-fun
#
# This software is released under the MIT License.
# See LICENSE.md for details.

# Casino module: discord commands and button views over casino_core

import logging
from datetime import datetime, timezone

import discord

from casino_core import LEADERBOARD_TYPES, Casino
from casino_errors import CasinoError
from casino_games import (
    DICE_FACES,
    RED_NUMBERS,
    ROULETTE_PAYOUTS,
    SLOT_SYMBOLS,
    BlackjackState,
    GameResult,
    MinesState,
    RouletteBet,
)

logger = logging.getLogger(__name__)

RESULT_COLORS = {
    GameResult.WIN: discord.Color.green(),
    GameResult.LOSS: discord.Color.red(),
    GameResult.PUSH: discord.Color.greyple(),
}


def _fmt_net(n: int) -> str:
    return f"+{n}" if n >= 0 else str(n)


def _prefix(user) -> str:
    display = getattr(user, 'display_name', str(user))
    return f"{user.mention} ({display}) "


def _color_icon(n: int) -> str:
    return "🟢" if n == 0 else ("🔴" if n in RED_NUMBERS else "⚫")


def _next_bonus_text(next_at_ms: int) -> str:
    return f"<t:{next_at_ms // 1000}:R>"


# --- Blackjack rendering ---

def _blackjack_embed(user, view) -> discord.Embed:
    snap = view.snapshot
    dealer = " | ".join(snap.dealer)
    if snap.dealer_total is None:
        dealer_line = f"{dealer} | 🂠  → **??**"
    else:
        dealer_line = f"{dealer}  → **{snap.dealer_total}**"
    lines = [
        f"**Player ({user.mention})**",
        f"{' | '.join(snap.player)}  → **{snap.player_total}**",
        "",
        "**Dealer**",
        dealer_line,
    ]
    out = snap.outcome
    if out is not None:
        if out.result is GameResult.WIN and snap.player_total == 21 and len(snap.player) == 2:
            verdict = f"**Blackjack!** You win {_fmt_net(out.net)}."
        elif out.result is GameResult.WIN:
            verdict = f"**You win!** {_fmt_net(out.net)}."
        elif out.result is GameResult.PUSH:
            verdict = f"**Push.** Bet returned (+{out.stake})."
        elif snap.player_total > 21:
            verdict = f"**Bust!** You lose {out.stake}."
        else:
            verdict = f"**Dealer wins.** You lose {out.stake}."
        lines = [verdict, ""] + lines
    embed = discord.Embed(
        title="🃏 Blackjack — Result" if snap.state is BlackjackState.SETTLED else "🃏 Blackjack",
        description="\n".join(lines),
        color=RESULT_COLORS[out.result] if out else discord.Color.blurple(),
    )
    embed.add_field(name="Bet", value=str(snap.stake))
    embed.add_field(name="Balance", value=str(view.balance))
    embed.set_footer(text="Hand finished" if out else "Dealer stands on 17.")
    return embed


class BlackjackView(discord.ui.View):
    def __init__(self, casino: Casino, author, finished: bool = False):
        super().__init__(timeout=120)
        self.casino = casino
        self.author = author
        self.message: discord.Message | None = None
        if finished:
            self._disable_all()

    def _disable_all(self):
        for child in self.children:
            if isinstance(child, discord.ui.Button):
                child.disabled = True

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.author.id:
            logger.warning("Rejected blackjack button from %s on %s's hand", interaction.user.id, self.author.id)
            await interaction.response.send_message("This button isn't for your hand.", ephemeral=True)
            return False
        return True

    async def _act(self, interaction: discord.Interaction, action):
        try:
            view = action(str(self.author.id))
        except CasinoError as e:
            await interaction.response.send_message(str(e), ephemeral=True)
            return
        if view.snapshot.outcome is not None:
            self._disable_all()
            self.stop()
        await interaction.response.edit_message(embed=_blackjack_embed(self.author, view), view=self)

    @discord.ui.button(label="Hit ➕", style=discord.ButtonStyle.primary)
    async def hit(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._act(interaction, self.casino.blackjack_hit)

    @discord.ui.button(label="Stand ✋", style=discord.ButtonStyle.secondary)
    async def stand(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._act(interaction, self.casino.blackjack_stand)

    async def on_timeout(self):
        # The hand stays open; !blackjack brings it back
        self._disable_all()
        if self.message:
            try:
                await self.message.edit(content="Timed out. Use !blackjack to continue this hand.", view=self)
            except discord.HTTPException:
                pass


# --- Mines rendering ---

def _mines_embed(view) -> discord.Embed:
    snap = view.snapshot
    if snap.state is MinesState.BUSTED:
        title, desc = "💥 Mines — BOOM!", "You hit a mine and lost your bet."
    elif snap.state is MinesState.CASHED_OUT:
        title, desc = "💰 Mines — Cashed Out", f"You cashed out **{snap.outcome.payout}**."
    elif snap.state is MinesState.FORFEITED:
        title, desc = "🏳️ Mines — Forfeited", "You walked away and lost your bet."
    else:
        title = "💣 Mines"
        desc = (
            "Pick safe tiles to grow your cashout. Cash out anytime.\n"
            f"Grid: {snap.rows}×{snap.cols}, Mines: {snap.mine_count}"
        )
    embed = discord.Embed(
        title=title,
        description=desc,
        color=RESULT_COLORS[snap.outcome.result] if snap.outcome else discord.Color.dark_gold(),
    )
    embed.add_field(name="Bet", value=str(snap.stake))
    embed.add_field(name="Multiplier", value=f"x{snap.multiplier:.2f}")
    embed.add_field(name="Potential Cashout", value=str(snap.potential_cashout))
    embed.add_field(name="Balance", value=str(view.balance))
    return embed


class MinesTileButton(discord.ui.Button):
    def __init__(self, index: int, cols: int):
        super().__init__(label="❔", style=discord.ButtonStyle.secondary, row=index // cols)
        self.index = index

    async def callback(self, interaction: discord.Interaction):
        view: "MinesView" = self.view  # type: ignore
        await view.act(interaction, lambda uid: view.casino.mines_reveal(uid, self.index))


class MinesView(discord.ui.View):
    def __init__(self, casino: Casino, author, session_view):
        super().__init__(timeout=180)
        self.casino = casino
        self.author = author
        self.message: discord.Message | None = None
        snap = session_view.snapshot
        for i in range(snap.rows * snap.cols):
            self.add_item(MinesTileButton(i, snap.cols))
        cash = discord.ui.Button(label="💰 Cash Out", style=discord.ButtonStyle.success, row=snap.rows)
        cash.callback = self._cash_out
        forfeit = discord.ui.Button(label="🏳️ Forfeit", style=discord.ButtonStyle.secondary, row=snap.rows)
        forfeit.callback = self._forfeit
        self.add_item(cash)
        self.add_item(forfeit)
        self.refresh(snap)

    def refresh(self, snap):
        finished = snap.state is not MinesState.ACTIVE
        for child in self.children:
            if isinstance(child, MinesTileButton):
                if child.index in snap.revealed:
                    child.label, child.style, child.disabled = "🟩", discord.ButtonStyle.success, True
                elif finished and snap.mines and child.index in snap.mines:
                    child.label, child.style, child.disabled = "💣", discord.ButtonStyle.danger, True
                elif finished:
                    child.label, child.disabled = "⬜", True
            elif isinstance(child, discord.ui.Button):
                child.disabled = finished

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.author.id:
            logger.warning("Rejected mines button from %s on %s's board", interaction.user.id, self.author.id)
            await interaction.response.send_message("This board isn't yours.", ephemeral=True)
            return False
        return True

    async def act(self, interaction: discord.Interaction, action):
        try:
            view = action(str(self.author.id))
        except CasinoError as e:
            await interaction.response.send_message(str(e), ephemeral=True)
            return
        self.refresh(view.snapshot)
        if view.snapshot.state is not MinesState.ACTIVE:
            self.stop()
        await interaction.response.edit_message(embed=_mines_embed(view), view=self)

    async def _cash_out(self, interaction: discord.Interaction):
        await self.act(interaction, self.casino.mines_cash_out)

    async def _forfeit(self, interaction: discord.Interaction):
        await self.act(interaction, self.casino.mines_forfeit)

    async def on_timeout(self):
        for child in self.children:
            if isinstance(child, discord.ui.Button):
                child.disabled = True
        if self.message:
            try:
                await self.message.edit(content="Timed out. Use !mines to continue this board.", view=self)
            except discord.HTTPException:
                pass


# --- Command Registration ---

def setup_casino(bot, is_feature_enabled, casino: Casino):
    """Register casino commands on the provided bot.

    The commands honor the server feature toggle via is_feature_enabled("casino").
    """
    casino.db.init_db()

    def _not_enabled(ctx):
        return not is_feature_enabled("casino")

    def _gid(ctx):
        return getattr(ctx.guild, 'id', None)

    def _is_admin_like(ctx) -> bool:
        perms = getattr(ctx.author, "guild_permissions", None)
        return bool(perms and (perms.administrator or perms.manage_guild))

    async def _guarded(ctx, call):
        """Run a core call, turning casino errors into a chat reply."""
        try:
            return call()
        except CasinoError as e:
            await ctx.send(f"{ctx.author.mention} {e}")
            return None

    @bot.command(name="casino", help="Open the casino lobby and game list.", aliases=["lobby"])
    async def casino_lobby(ctx):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        s = casino.settings
        embed = discord.Embed(
            title="🏛️ Casino Lobby",
            description="\n".join([
                "Welcome! Pick a game:",
                "• 🎰 `!slots [bet]` — pair pays 10, triple 30, triple 7️⃣ 100.",
                "• 🃏 `!blackjack [bet]` — dealer stands on 17, blackjack pays 3:2.",
                "• 🎲 `!dice [bet]` — roll 4–6 to win double.",
                f"• 💣 `!mines [bet]` — {s.mines_rows}×{s.mines_cols} grid, {s.mines_count} mines; cash out anytime.",
                "• 🎡 `!roulette [bet] [selection]` — European wheel; see `!roulettehelp`.",
                "",
                "`!setbet <game> <amount>` remembers a bet per game. "
                f"`!bonus` gives {s.bonus_amount} credits every {s.bonus_cooldown_hours:g}h.",
            ]),
            color=discord.Color.gold(),
        )
        await ctx.send(embed=embed)

    # --- Credits commands ---
    @bot.command(help="Show your credit balance or another member's.", aliases=["balance", "credits"])
    async def chips(ctx, member: discord.Member | None = None):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        target = member or ctx.author
        bal = await _guarded(ctx, lambda: casino.balance(target.id))
        if bal is None:
            return
        name = getattr(target, 'display_name', str(target))
        await ctx.send(f"{name} balance: {bal} credits")

    @bot.command(help="Claim your timed bonus.")
    async def bonus(ctx):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        claim = await _guarded(ctx, lambda: casino.claim_bonus(ctx.author.id))
        if claim is None:
            return
        if claim.ok:
            await ctx.send(f"🎁 You claimed **{claim.credited}**! Next bonus {_next_bonus_text(claim.next_at)}.")
        else:
            await ctx.send(f"⏳ Bonus not ready. Claim {_next_bonus_text(claim.next_at)}.")

    @bot.command(help="Give credits to another member. Usage: give @user amount")
    async def give(ctx, member: discord.Member, amount: int):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        if member.bot:
            await ctx.send("You can't give credits to a bot.")
            return
        res = await _guarded(ctx, lambda: casino.give(ctx.author.id, member.id, amount))
        if res is None:
            return
        await ctx.send(f"You gave **{amount}** credits to {member.mention}. Your new balance: **{res[0]}**.")

    @bot.command(help="Admin: give chips to a user. Usage: givechips @user amount")
    async def givechips(ctx, member: discord.Member, amount: int):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        if not _is_admin_like(ctx):
            await ctx.send("You do not have permission to use this command.")
            return
        new_bal = await _guarded(ctx, lambda: casino.grant(member.id, amount, meta=f"from:{ctx.author.id}"))
        if new_bal is None:
            return
        await ctx.send(f"Gave {amount} credits to {member.mention}. New balance: {new_bal}")

    @bot.command(help="Remember a bet for a game. Usage: setbet <slots|dice|roulette|blackjack|mines> <amount>")
    async def setbet(ctx, game: str, amount: str):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        amt = await _guarded(ctx, lambda: casino.set_bet(ctx.author.id, game, amount))
        if amt is None:
            return
        await ctx.send(f"Set **{game.lower()}** bet to **{amt}**.")

    # --- Slots ---
    @bot.command(help="Play slots once. Usage: slots [bet]")
    async def slots(ctx, bet: int | None = None):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        receipt = await _guarded(ctx, lambda: casino.play_slots(_gid(ctx), ctx.author.id, bet))
        if receipt is None:
            return
        out = receipt.outcome
        line = " | ".join(receipt.round.frame)
        if out.payout > 0:
            msg = f"{_prefix(ctx.author)}{line} → You won {out.payout} credits (net {_fmt_net(out.net)}). Balance: {receipt.balance}"
        else:
            msg = f"{_prefix(ctx.author)}{line} → No win. Balance: {receipt.balance}"
        await ctx.send(msg)

    @bot.command(name="slotshelp", help="Show slots paytable.", aliases=["slotspay", "slotstable"])
    async def slotshelp(ctx):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        embed = discord.Embed(
            title="Slots Paytable",
            description="Three reels. Payouts are fixed credit amounts.",
            color=discord.Color.gold(),
        )
        embed.add_field(name="Symbols", value=" ".join(SLOT_SYMBOLS), inline=False)
        embed.add_field(name="Three 7️⃣", value="100", inline=False)
        embed.add_field(name="Any other three of a kind", value="30", inline=False)
        embed.add_field(name="Any pair", value="10", inline=False)
        embed.set_footer(text="Play with: !slots [bet]")
        await ctx.send(embed=embed)

    # --- Dice ---
    @bot.command(help="Roll a die; 4–6 wins double. Usage: dice [bet]")
    async def dice(ctx, bet: int | None = None):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        receipt = await _guarded(ctx, lambda: casino.play_dice(_gid(ctx), ctx.author.id, bet))
        if receipt is None:
            return
        roll = receipt.round
        out = receipt.outcome
        embed = discord.Embed(
            title="🎲 Dice — Result",
            description=f"{DICE_FACES[roll.face - 1]} → **{roll.face}**",
            color=RESULT_COLORS[out.result],
        )
        embed.add_field(name="Payout", value=str(out.payout))
        embed.add_field(name="Net", value=_fmt_net(out.net))
        embed.add_field(name="Balance", value=str(receipt.balance))
        await ctx.send(embed=embed)

    # --- Roulette ---
    @bot.command(name="roulette", help="Roulette. Usage: roulette [bet] [selection]. Examples: roulette 50 red | roulette 25 17 | roulette 3rd12")
    async def roulette(ctx, bet: int | None = None, *, selection: str | None = None):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        uid = ctx.author.id
        if selection:
            sel = await _guarded(ctx, lambda: casino.choose_roulette(uid, selection))
            if sel is None:
                return
        receipt = await _guarded(ctx, lambda: casino.play_roulette(_gid(ctx), uid, bet))
        if receipt is None:
            return
        spin = receipt.round
        out = receipt.outcome
        wheel = f"🎯 {spin.number} {_color_icon(spin.number)}"
        sel_text = spin.selection.label()
        if out.payout > 0:
            await ctx.send(f"{_prefix(ctx.author)}{wheel} — {sel_text} wins {out.payout} credits. Balance: {receipt.balance}")
        else:
            await ctx.send(f"{_prefix(ctx.author)}{wheel} — {sel_text} loses. Balance: {receipt.balance}")

    @bot.command(name="roulettehelp", help="Show roulette bet types and payouts.")
    async def roulettehelp(ctx):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        current = casino.roulette_selection(ctx.author.id)
        embed = discord.Embed(
            title="Roulette — Bet Types and Payouts",
            description=(
                "European roulette (single zero). Your selection is remembered between spins.\n"
                "Examples: !roulette 50 red | !roulette 25 17 | !roulette 100 3rd12"
            ),
            color=discord.Color.dark_green(),
        )
        embed.add_field(name=f"Even-Money (x{ROULETTE_PAYOUTS[RouletteBet.RED]} profit)", value="red, black, even, odd, low (1-18), high (19-36)", inline=False)
        embed.add_field(name=f"{ROULETTE_PAYOUTS[RouletteBet.DOZEN_1]}:1 Profit", value="dozens (1st12, 2nd12, 3rd12)", inline=False)
        embed.add_field(name=f"{ROULETTE_PAYOUTS[RouletteBet.SINGLE]}:1 Profit", value="single number 0..36", inline=False)
        embed.add_field(name="Colors", value="Red numbers: " + ", ".join(str(n) for n in sorted(RED_NUMBERS)), inline=False)
        embed.set_footer(text=f"Your current selection: {current.label()}. 0 loses every bet except a single on 0.")
        await ctx.send(embed=embed)

    # --- Blackjack ---
    @bot.command(help="Play blackjack. Usage: blackjack [bet]", aliases=["bj"])
    async def blackjack(ctx, bet: int | None = None):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        uid = ctx.author.id
        view = casino.current(uid, "blackjack")
        if view is None or view.snapshot.outcome is not None:
            view = await _guarded(ctx, lambda: casino.blackjack_start(_gid(ctx), uid, bet))
            if view is None:
                return
        ui = BlackjackView(casino, ctx.author, finished=view.snapshot.outcome is not None)
        ui.message = await ctx.send(embed=_blackjack_embed(ctx.author, view), view=ui)

    # --- Mines ---
    @bot.command(help="Play mines: reveal safe tiles and cash out. Usage: mines [bet]")
    async def mines(ctx, bet: int | None = None):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        uid = ctx.author.id
        view = casino.current(uid, "mines")
        if view is None or view.snapshot.outcome is not None:
            view = await _guarded(ctx, lambda: casino.mines_start(_gid(ctx), uid, bet))
            if view is None:
                return
        ui = MinesView(casino, ctx.author, view)
        ui.message = await ctx.send(embed=_mines_embed(view), view=ui)

    # --- Stats and leaderboards ---
    @bot.command(help="View casino stats for this server. Usage: casinostats [@user] [game]")
    async def casinostats(ctx, member: discord.Member | None = None, game: str | None = None):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        target = member or ctx.author
        stats = await _guarded(ctx, lambda: casino.stats(_gid(ctx), target.id, game))
        if stats is None:
            return
        name = getattr(target, 'display_name', str(target))
        embed = discord.Embed(
            title=f"Casino Stats — {name}" + (f" ({game.lower()})" if game and game.lower() != "all" else ""),
            description=f"Server: {ctx.guild.name if ctx.guild else 'DM'}",
            color=discord.Color.blurple(),
        )
        embed.add_field(name="Wins", value=str(stats.wins))
        embed.add_field(name="Losses", value=str(stats.losses))
        embed.add_field(name="Pushes", value=str(stats.pushes))
        embed.add_field(name="Win rate", value=f"{stats.winrate * 100.0:.1f}%")
        embed.add_field(name="Net", value=_fmt_net(stats.net))
        embed.set_footer(text=f"Checked {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M')} UTC")
        await ctx.send(embed=embed)

    @bot.command(help="Leaderboards. Usage: leaderboard <balance|wins|losses|pushes|winrate|net> [game|all]", aliases=["lb"])
    async def leaderboard(ctx, metric: str = "balance", game: str = "all"):
        if _not_enabled(ctx):
            await ctx.send("Casino is not enabled on this server.")
            return
        if not ctx.guild:
            await ctx.send("Leaderboards are server-only.")
            return
        metric = metric.lower()
        rows = await _guarded(ctx, lambda: casino.leaderboard(ctx.guild.id, metric, game))
        if rows is None:
            return
        if not rows:
            await ctx.send("No data yet.")
            return
        lines = []
        for i, row in enumerate(rows, start=1):
            if metric == "balance":
                uid, value = row
            else:
                uid = row.user_id
                value = f"{row.winrate * 100.0:.1f}%" if metric == "winrate" else getattr(row, metric)
            lines.append(f"{i}. <@{uid}> — **{value}**")
        title = f"🏆 {metric.capitalize()} Leaderboard" + (f" ({game.lower()})" if metric != "balance" and game != "all" else "")
        embed = discord.Embed(title=title, description="\n".join(lines), color=discord.Color.gold())
        embed.set_footer(text=f"Server: {ctx.guild.name}  •  Types: {', '.join(LEADERBOARD_TYPES)}")
        await ctx.send(embed=embed)
