"""Chat bot command handling."""

from arena.bot.commands import CommandHandler

__all__ = ['CommandHandler']
