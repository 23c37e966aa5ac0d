"""Telegram webhook endpoint."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from loguru import logger

from arena.api.dependencies import get_command_handler, get_settings
from arena.bot.commands import CommandHandler
from config.settings import Settings


router = APIRouter(
    prefix="/api/telegram",
    tags=["telegram"],
)


@router.post("/webhook", response_model=Dict[str, Any])
def telegram_webhook(
    update: Dict[str, Any],
    handler: CommandHandler = Depends(get_command_handler),
    app_settings: Settings = Depends(get_settings),
    x_telegram_bot_api_secret_token: Optional[str] = Header(None),
) -> Dict[str, Any]:
    """
    Receive a Telegram update and answer chat commands.

    The reply is returned in the webhook response as a sendMessage call,
    which Telegram executes on the bot's behalf.
    """
    secret = app_settings.TELEGRAM_WEBHOOK_SECRET
    if secret and x_telegram_bot_api_secret_token != secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )

    message = update.get("message") or update.get("edited_message")
    if not isinstance(message, dict):
        return {"ok": True}

    text = message.get("text")
    sender = message.get("from") or {}
    chat = message.get("chat") or {}
    if not text or "id" not in sender or "id" not in chat:
        return {"ok": True}

    user_id = str(sender["id"])
    reply = handler.handle(user_id, text)
    if reply is None:
        return {"ok": True}

    logger.debug(f"Telegram command from {user_id}: {text.split()[0]}")
    return {
        "method": "sendMessage",
        "chat_id": chat["id"],
        "text": reply,
        "parse_mode": "HTML",
    }
