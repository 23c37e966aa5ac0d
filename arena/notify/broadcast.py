"""
Broadcast Adapter

Formats round events into messages and dispatches them through a
NotificationChannel. Delivery failures are logged and swallowed so
they never affect round state.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from loguru import logger

from arena.engine.models import PriceSnapshot, Round
from arena.engine.resolution import ResolutionOutcome
from arena.notify.channels import NotificationChannel


def format_price(price: float) -> str:
    """Dollar price with precision suited to its magnitude."""
    if price >= 1:
        return f"${price:,.2f}"
    return f"${price:,.4f}"


def format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    if minutes and secs:
        return f"{minutes}m {secs}s"
    if minutes:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{secs}s"


class BroadcastAdapter:
    """Announces round lifecycle events."""

    def __init__(self, channel: NotificationChannel, reward_per_win: float):
        self.channel = channel
        self.reward_per_win = reward_per_win
        self._stats = {'sent': 0, 'failed': 0}

    # ========== FORMATTING ==========

    def format_open(self, round_: Round) -> str:
        duration = (round_.end_time - round_.start_time).total_seconds()
        return (
            f"🚀 <b>NEW PREDICTION ROUND</b>\n\n"
            f"💰 <b>{round_.symbol}</b> - {format_price(round_.start_price)}\n"
            f"⏰ Duration: {format_duration(duration)}\n"
            f"🎯 Predict: UP ⬆️ or DOWN ⬇️\n"
            f"💎 Reward: {self.reward_per_win:g} for winners\n\n"
            f"Use /predict {round_.symbol} up|down to join!"
        )

    def format_resolved(self, outcome: ResolutionOutcome) -> str:
        round_ = outcome.round
        arrow = "📈 UP" if outcome.direction.value == "up" else "📉 DOWN"
        closing = (
            "🎉 Congratulations to all winners!" if outcome.winners
            else "😢 No winners this round"
        )
        return (
            f"🏁 <b>ROUND COMPLETED</b>\n\n"
            f"💰 <b>{round_.symbol}</b>: {format_price(round_.start_price)} → "
            f"{format_price(round_.end_price)}\n"
            f"{arrow} {abs(outcome.price_change_pct):.2f}%\n\n"
            f"🏆 <b>Winners</b>: {len(outcome.winners)}/{len(round_.predictions)} player(s)\n"
            f"💎 <b>Reward</b>: {outcome.reward_per_winner:g} each\n\n"
            f"{closing}\n\n"
            f"Next round starting soon! Use /predict"
        )

    def format_digest(
        self,
        active_rounds: List[Round],
        prices: List[PriceSnapshot],
        player_count: int,
        now: Optional[datetime] = None,
    ) -> str:
        now = now or datetime.now(timezone.utc)
        open_predictions = sum(len(r.predictions) for r in active_rounds)

        lines = [
            "🔴 <b>LIVE PREDICTION UPDATE</b>",
            "",
            f"🎯 Open predictions: {open_predictions}",
            f"🎮 Live rounds: {len(active_rounds)}",
            f"👥 Players: {player_count}",
        ]

        if active_rounds:
            lines.append("")
            lines.append("⏳ <b>Closing:</b>")
            for r in active_rounds:
                counts = r.direction_counts()
                lines.append(
                    f"{r.symbol}: {format_duration(r.seconds_left(now))} left, "
                    f"⬆️ {counts['up']} / ⬇️ {counts['down']}"
                )

        if prices:
            lines.append("")
            lines.append("📊 <b>Current Prices:</b>")
            for p in prices:
                trend = "📈" if p.change_24h_pct >= 0 else "📉"
                lines.append(f"{p.symbol}: {format_price(p.price)} {trend} {p.change_24h_pct:.2f}%")

        lines.append("")
        lines.append("💡 Use /predict to join the action!")
        return "\n".join(lines)

    # ========== DISPATCH ==========

    def _dispatch(self, message: str, event: Dict[str, Any]) -> bool:
        try:
            self.channel.send(message, event)
        except Exception as e:
            self._stats['failed'] += 1
            logger.warning(f"Broadcast of {event.get('type')} failed: {e}")
            return False

        self._stats['sent'] += 1
        return True

    def announce_open(self, round_: Round) -> bool:
        """Announce a newly created round. Returns True if delivered."""
        return self._dispatch(
            self.format_open(round_),
            {"type": "round_opened", "round": round_.to_dict()},
        )

    def announce_resolved(self, outcome: ResolutionOutcome) -> bool:
        """Announce a round result. Returns True if delivered."""
        return self._dispatch(
            self.format_resolved(outcome),
            {
                "type": "round_resolved",
                "round": outcome.round.to_dict(),
                "direction": outcome.direction.value,
                "winners": len(outcome.winners),
                "reward_per_winner": outcome.reward_per_winner,
            },
        )

    def announce_digest(
        self,
        active_rounds: List[Round],
        prices: List[PriceSnapshot],
        player_count: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """Broadcast the periodic live summary. Returns True if delivered."""
        return self._dispatch(
            self.format_digest(active_rounds, prices, player_count, now),
            {
                "type": "digest",
                "active_rounds": [r.to_dict() for r in active_rounds],
                "prices": [p.to_dict() for p in prices],
                "players": player_count,
            },
        )

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)
