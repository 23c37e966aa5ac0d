"""Chat command handling for the Telegram bot."""

import html
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from loguru import logger

from arena.engine.errors import UserInputError, UserRegistryError
from arena.engine.service import PredictionService
from arena.notify.broadcast import format_duration, format_price


class CommandHandler:
    """
    Turns chat text into reply text.

    Supported commands:
    - /start, /help
    - /prices
    - /rounds
    - /predict <SYMBOL> <up|down>
    - /bets
    - /stats
    """

    def __init__(self, service: PredictionService, reward_per_win: float, round_duration_seconds: int):
        self.service = service
        self.reward_per_win = reward_per_win
        self.round_duration_seconds = round_duration_seconds

        self._commands: Dict[str, Callable] = {
            "/start": self.cmd_start,
            "/help": self.cmd_help,
            "/menu": self.cmd_help,
            "/prices": self.cmd_prices,
            "/rounds": self.cmd_rounds,
            "/predict": self.cmd_predict,
            "/bets": self.cmd_bets,
            "/stats": self.cmd_stats,
        }

    def handle(self, user_id: str, text: str, now: Optional[datetime] = None) -> Optional[str]:
        """
        Dispatch a chat message.

        Returns:
            Reply text, or None if the message is not a command
        """
        text = (text or "").strip()
        if not text.startswith("/"):
            return None

        parts = text.split()
        # Telegram appends @botname to commands in group chats
        command = parts[0].split("@", 1)[0].lower()
        args = parts[1:]
        now = now or datetime.now(timezone.utc)

        handler = self._commands.get(command)
        if handler is None:
            return "❓ Unknown command. Use /help to see available commands."

        try:
            return handler(user_id, args, now)
        except UserInputError as e:
            # Replies are sent as HTML and errors can echo user text
            return f"❌ {html.escape(str(e))}"
        except UserRegistryError as e:
            logger.error(f"{command} failed for {user_id}: {e}")
            return "⚠️ Your statistics are temporarily unavailable. Please try again shortly."

    # ========== COMMANDS ==========

    def cmd_start(self, user_id: str, args, now: datetime) -> str:
        self.service.user_registry.get_or_create(user_id)
        minutes = self.round_duration_seconds // 60
        return (
            "🌧️ <b>Welcome to Rainmaker Arena!</b> ⚡\n\n"
            "🎯 Predict crypto price moves\n"
            f"📊 {minutes}-minute prediction rounds\n"
            f"💰 {self.reward_per_win:g} per winning prediction\n\n"
            "🚀 <b>Quick Start:</b>\n"
            "/prices - Live prices\n"
            "/rounds - Open rounds\n"
            "/predict BTC up - Make a prediction\n"
            "/help - All commands"
        )

    def cmd_help(self, user_id: str, args, now: datetime) -> str:
        symbols = ", ".join(
            f"{a.name} ({a.symbol})" for a in self.service.assets.values()
        )
        return (
            "❓ <b>RAINMAKER ARENA HELP</b>\n\n"
            "🎯 <b>How to Play:</b>\n"
            "1. Wait for a prediction round to open\n"
            "2. Use /predict &lt;SYMBOL&gt; up|down\n"
            f"3. Wait {format_duration(self.round_duration_seconds)} for the round to end\n"
            f"4. Win {self.reward_per_win:g} if your prediction is correct!\n\n"
            "📋 <b>Commands:</b>\n"
            "/start - Welcome & registration\n"
            "/prices - Live crypto prices\n"
            "/rounds - Open rounds\n"
            "/predict - Make a prediction\n"
            "/bets - Your open predictions\n"
            "/stats - Your statistics\n\n"
            f"💰 <b>Supported:</b> {symbols}"
        )

    def cmd_prices(self, user_id: str, args, now: datetime) -> str:
        prices = self.service.prices()
        if not prices:
            return "⏳ Loading prices... Please try again in a moment."

        lines = ["💰 <b>LIVE CRYPTO PRICES</b>", ""]
        for p in prices:
            asset = self.service.assets.get(p.symbol)
            name = asset.name if asset else p.symbol
            trend = "📈" if p.change_24h_pct >= 0 else "📉"
            lines.append(f"<b>{name} ({p.symbol})</b>")
            lines.append(f"💲 {format_price(p.price)}")
            lines.append(f"{trend} {p.change_24h_pct:.2f}% (24h)")
            lines.append("")
        lines.append("🎯 Use /predict to bet on price movements!")
        return "\n".join(lines)

    def cmd_rounds(self, user_id: str, args, now: datetime) -> str:
        rounds = self.service.active_rounds()
        if not rounds:
            return "⏳ No open rounds right now. A new round starts soon."

        lines = ["🎮 <b>OPEN ROUNDS</b>", ""]
        for r in rounds:
            counts = r.direction_counts()
            lines.append(
                f"<b>{r.symbol}</b> @ {format_price(r.start_price)} | "
                f"{format_duration(r.seconds_left(now))} left | "
                f"⬆️ {counts['up']} / ⬇️ {counts['down']}"
            )
        return "\n".join(lines)

    def cmd_predict(self, user_id: str, args, now: datetime) -> str:
        if len(args) != 2:
            return "Usage: /predict &lt;SYMBOL&gt; up|down (e.g. /predict BTC up)"

        receipt = self.service.submit_prediction(user_id, args[0], args[1], now=now)
        verb = "updated" if receipt.replaced else "recorded"
        arrow = "⬆️ UP" if receipt.direction.value == "up" else "⬇️ DOWN"
        return (
            f"✅ Prediction {verb}: <b>{receipt.symbol}</b> {arrow}\n"
            f"Start price: {format_price(receipt.start_price)}\n"
            f"Round ends in {format_duration(receipt.seconds_left)}"
        )

    def cmd_bets(self, user_id: str, args, now: datetime) -> str:
        rounds = self.service.open_predictions_for(user_id)
        if not rounds:
            return "💸 You have no open predictions. Use /predict to join a round!"

        lines = ["💸 <b>YOUR OPEN PREDICTIONS</b>", ""]
        for r in rounds:
            direction = r.predictions[user_id].direction.value.upper()
            lines.append(
                f"{r.symbol}: {direction} from {format_price(r.start_price)}, "
                f"{format_duration(r.seconds_left(now))} left"
            )
        return "\n".join(lines)

    def cmd_stats(self, user_id: str, args, now: datetime) -> str:
        record = self.service.user_stats(user_id)
        if record is None:
            return "📊 No statistics yet. Make your first prediction with /predict!"

        return (
            "📊 <b>YOUR STATISTICS</b>\n\n"
            f"🎯 Predictions: {record.prediction_count}\n"
            f"🏆 Wins: {record.win_count}\n"
            f"📈 Accuracy: {record.accuracy:.1f}%\n"
            f"💎 Total rewards: {record.cumulative_reward:g}"
        )
