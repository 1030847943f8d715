#!/usr/bin/env python3

# Copyright (c) 2025 Robert McKenzie (@M1XZG)
# Repository: discord-bot-for-fun
# https://github.com/M1XZG/discord-bot-for-fun
#
# This software is released under the MIT License.
# See LICENSE.md for details.

import discord
from discord.ext import commands
import logging
from dotenv import load_dotenv
import os
import json
import shutil
import sys
from datetime import datetime, timezone
import platform
from casino import setup_casino
from casino_core import Casino, CasinoSettings
from casino_db import CasinoDB

# Load the token and overrides from the .env file
load_dotenv()

# --- Persistent Config Helpers ---
CONFIG_FILE = "myconfig.json"
DEFAULT_CONFIG_FILE = "config.json"

# On startup, copy config.json to myconfig.json if myconfig.json does not exist
if not os.path.exists(CONFIG_FILE):
    if os.path.exists(DEFAULT_CONFIG_FILE):
        shutil.copy(DEFAULT_CONFIG_FILE, CONFIG_FILE)

def load_config():
    if not os.path.exists(CONFIG_FILE):
        return {}
    with open(CONFIG_FILE, "r") as f:
        return json.load(f)

def save_config(config):
    with open(CONFIG_FILE, "w") as f:
        json.dump(config, f, indent=2)

config = load_config()

# Optional single admin override (from env or config). If unset, defaults to 0 (disabled)
ADMIN_USER_ID = int(os.getenv("ADMIN_USER_ID") or config.get("admin_user_id", 0) or 0)

FEATURE_NAMES = ("casino",)

def get_features():
    # Default: all features enabled
    return config.setdefault("features", {name: True for name in FEATURE_NAMES})

def is_feature_enabled(name: str) -> bool:
    feats = get_features()
    return bool(feats.get(name, True))

def set_feature(name: str, enabled: bool):
    feats = get_features()
    if name not in FEATURE_NAMES:
        raise ValueError("Invalid feature name")
    feats[name] = bool(enabled)
    config["features"] = feats
    save_config(config)

# Used by admin-only commands
def is_admin_like(ctx) -> bool:
    perms = getattr(ctx.author, "guild_permissions", None)
    return (
        (perms and (perms.administrator or perms.manage_guild))
        or (ctx.author.id == ADMIN_USER_ID)
    )

# Feature categories used in help
CASINO_COMMANDS = {
    "casino", "chips", "bonus", "give", "setbet",
    "slots", "slotshelp", "dice", "roulette", "roulettehelp",
    "blackjack", "mines", "casinostats", "leaderboard",
}
CASINO_ADMIN_COMMANDS = {"givechips"}
ADMIN_CORE_COMMANDS = {
    # feature toggles and global admin
    "features", "enable", "disable", "setfeature",
}

ADMIN_COMMANDS_GLOBAL = ADMIN_CORE_COMMANDS | CASINO_ADMIN_COMMANDS

# Track start time for uptime reporting
BOT_START_TIME: datetime | None = None

# Accept friendly names for features
FEATURE_ALIASES = {
    "casino": {"casino", "gambling", "chips"},
}

def normalize_feature_name(name):
    if not name:
        return None
    n = name.lower().strip()
    for key, aliases in FEATURE_ALIASES.items():
        if n in aliases:
            return key
    return None

# --- Bot Code ---

# Intents are required for receiving events about guilds, members, and messages
intents = discord.Intents.default()
intents.messages = True
intents.guilds = True
intents.message_content = True  # Required for prefix commands

# Create the bot instance
bot = commands.Bot(command_prefix="!", intents=intents, case_insensitive=True)
bot.remove_command("help")  # Use our custom help

# --- Logging Setup ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler("bot.log"),
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger("discord")
logger.setLevel(logging.INFO)

# Initialize the casino; CASINO_DB in the environment overrides the config path
casino_settings = CasinoSettings.from_config(config)
casino_db_path = os.getenv("CASINO_DB") or casino_settings.db
casino = Casino(CasinoDB(casino_db_path, casino_settings.starting_credits), casino_settings)
setup_casino(bot, is_feature_enabled, casino)

# --- Admin Commands ---

@bot.command()
@commands.check(lambda ctx: is_admin_like(ctx) and ctx.guild is not None)
async def setfeature(ctx, name: str, *, value: str):
    """Set a feature flag for the server."""
    enabled = value.lower() in ("true", "1", "yes")
    try:
        set_feature(name, enabled)
        await ctx.send(f"Feature `{name}` has been {'enabled' if enabled else 'disabled'}.")
    except ValueError as e:
        await ctx.send(f"Error: {str(e)}")

@bot.command(help="Show feature toggle status (ADMIN only).", aliases=["showfeatures"])
@commands.check(lambda ctx: is_admin_like(ctx) and ctx.guild is not None)
async def features(ctx):
    feats = get_features()
    def onoff(b): return "ON ✅" if b else "OFF ❌"
    embed = discord.Embed(
        title="⚙️ Feature Toggles",
        color=discord.Color.teal(),
        description="Enable/disable major modules at runtime."
    )
    embed.add_field(name="Casino", value=onoff(feats.get("casino", True)))
    embed.set_footer(text="Use !enable casino or !disable casino")
    await ctx.send(embed=embed)

@bot.command(help="Enable a feature (ADMIN only). Usage: !enable casino", aliases=["enablefeature"])
@commands.check(lambda ctx: is_admin_like(ctx) and ctx.guild is not None)
async def enable(ctx, feature: str = None):
    key = normalize_feature_name(feature)
    if not key:
        await ctx.send("Usage: !enable casino")
        return
    set_feature(key, True)
    await ctx.send(f"✅ Enabled: {key}")

@bot.command(help="Disable a feature (ADMIN only). Usage: !disable casino", aliases=["disablefeature"])
@commands.check(lambda ctx: is_admin_like(ctx) and ctx.guild is not None)
async def disable(ctx, feature: str = None):
    key = normalize_feature_name(feature)
    if not key:
        await ctx.send("Usage: !disable casino")
        return
    set_feature(key, False)
    await ctx.send(f"❌ Disabled: {key}")


@bot.command(help="Show bot info and uptime.")
async def botinfo(ctx):
    """Display basic bot information, uptime, and feature toggles."""
    # Uptime
    now = datetime.now(timezone.utc)
    if BOT_START_TIME:
        delta = now - BOT_START_TIME
        days = delta.days
        hours, remainder = divmod(delta.seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        uptime_str = f"{days}d {hours}h {minutes}m {seconds}s"
    else:
        uptime_str = "unknown"

    feats = get_features()
    def onoff(b): return "ON ✅" if b else "OFF ❌"

    embed = discord.Embed(
        title="🤖 Bot Info",
        color=discord.Color.blurple()
    )
    embed.add_field(name="Version", value=config.get("version", "dev"))
    embed.add_field(name="Python", value=platform.python_version())
    embed.add_field(name="discord.py", value=discord.__version__)
    embed.add_field(name="Guilds", value=str(len(bot.guilds)))
    embed.add_field(name="Users (cached)", value=str(len(bot.users)))
    embed.add_field(name="Uptime", value=uptime_str)
    embed.add_field(name="Open casino games", value=str(casino.sessions.active_count()))
    embed.add_field(name="Features",
                    value=f"Casino: {onoff(feats.get('casino', True))}",
                    inline=False)
    await ctx.send(embed=embed)

# --- Error Handling ---

@bot.event
async def on_command_error(ctx, error):
    """Handle command errors."""
    if isinstance(error, commands.CommandNotFound):
        await ctx.send("Unknown command. Use `!help` to see available commands.")
    elif isinstance(error, commands.MissingRequiredArgument):
        await ctx.send(f"Missing argument: {error.param.name}")
    elif isinstance(error, commands.BadArgument):
        await ctx.send("Invalid argument. Please check your input.")
    elif isinstance(error, commands.CheckFailure):
        # Triggered when admin-only checks fail
        await ctx.send("You don't have permission to use that command.")
    else:
        await ctx.send(f"An error occurred: {str(error)}")
        logger.error(f"Error in command {ctx.command}: {str(error)}", exc_info=True)

# --- Startup ---

@bot.event
async def on_ready():
    """Bot startup sequence."""
    logger.info(f"Logged in as {bot.user.name} (ID: {bot.user.id})")
    logger.info("------")
    global config
    global BOT_START_TIME
    config = load_config()
    BOT_START_TIME = datetime.now(timezone.utc)
    logger.info(f"Casino database: {casino.db.path}")

def _collect_commands_by_names(names: set[str]):
    """Return sorted list of Command objects whose name is in names."""
    name_map = {cmd.name: cmd for cmd in bot.commands}
    cmds = [name_map[n] for n in names if n in name_map]
    return sorted(cmds, key=lambda c: c.name)

def _format_cmd_lines(cmds: list[commands.Command], max_lines: int | None = None):
    """Format commands as list lines with their help."""
    lines = []
    for cmd in cmds:
        desc = cmd.help or cmd.brief or "No description."
        lines.append(f"• !{cmd.name} — {desc}")
    if max_lines and len(lines) > max_lines:
        more = len(lines) - max_lines
        lines = lines[:max_lines] + [f"...and {more} more."]
    return "\n".join(lines) if lines else "_None_"

def _safe_field_value(text: str, limit: int = 1024) -> str:
    """Ensure embed field value does not exceed Discord's 1024-char limit."""
    if text is None:
        return "_None_"
    return text if len(text) <= limit else (text[: limit - 1] + "…")

def _section_enabled_label(enabled: bool):
    return "Enabled ✅" if enabled else "Disabled ❌"

def _resolve_section_name(arg: str | None):
    if not arg:
        return None
    a = arg.lower().strip()
    if a in {"casino", "games", "game"}:
        return "casino"
    if a in {"admin", "admins", "adminfunctions", "admin-funcs"}:
        return "admin"
    return None

@bot.command(name="help", help="Show help for all categories, or use !help <casino|admin>.")
async def help_command(ctx, section: str = None):
    """Custom, sectioned help."""
    sec = _resolve_section_name(section)
    casino_cmds = _collect_commands_by_names(CASINO_COMMANDS)
    admin_cmds = _collect_commands_by_names(ADMIN_COMMANDS_GLOBAL)
    casino_enabled = is_feature_enabled("casino")
    admin_like = is_admin_like(ctx)

    if section and not sec:
        await ctx.send("Unknown help section. Try: casino, admin.")
        return

    embed = discord.Embed(
        title=f"Help — {sec.capitalize()}" if sec else "Help — Overview",
        color=discord.Color.purple()
    )
    if sec in (None, "casino"):
        embed.add_field(
            name=f"🎰 Casino — {_section_enabled_label(casino_enabled)}",
            value=_safe_field_value(_format_cmd_lines(casino_cmds, max_lines=None if sec else 8)),
            inline=False
        )
    if sec in (None, "admin"):
        embed.add_field(
            name="🛠️ Admin Functions",
            value=(
                _safe_field_value(_format_cmd_lines(admin_cmds, max_lines=10)) if admin_like
                else "_Admin-only commands. Ask a server admin for access._"
            ),
            inline=False
        )
    if not sec:
        embed.description = "Tip: view a specific section with `!help casino` or `!help admin`."
    await ctx.send(embed=embed)

# --- Run the Bot ---

TOKEN = os.getenv("DISCORD_TOKEN")
if not TOKEN:
    print("Error: DISCORD_TOKEN not found in environment variables.")
    sys.exit(1)

# Start the bot
bot.run(TOKEN)
