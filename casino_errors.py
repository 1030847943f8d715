# Copyright (c) 2025 Robert McKenzie (@M1XZG)
# Repository: discord-bot-for-fun
# https://github.com/M1XZG/discord-bot-for-fun
#
# This software is released under the MIT License.
# See LICENSE.md for details.

"""Casino error types shared by the engine, ledger and command layer."""


class CasinoError(Exception):
    """Base class for every casino failure reported back to a player."""


class InsufficientFunds(CasinoError):
    def __init__(self, balance: int, stake: int):
        self.balance = balance
        self.stake = stake
        super().__init__(f"You need {stake} credits. Balance: {balance}.")


class InvalidSelection(CasinoError):
    """Bad bet amount, roulette number, tile index or transfer target."""


class IllegalStateTransition(CasinoError):
    """Action not allowed in the current game/session state (or bonus cooldown)."""


class PersistenceFailure(CasinoError):
    """A ledger or stats transaction failed and was rolled back."""
