from typing import Optional, Sequence

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError

from .events import EndpointsChanged
from .formatter import escape_markdown, render_message
from ..errors import SendError
from ..utils.logger import get_logger


class TelegramPublisher:
    name = "telegram"

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        dns_name: str,
        topic_id: Optional[int] = None,
        bot: Optional[Bot] = None,
    ):
        self.logger = get_logger(__name__)
        self.chat_id = chat_id
        self.topic_id = topic_id
        self.dns_name = dns_name

        if bot is None:
            bot = Bot(
                token=bot_token,
                default=DefaultBotProperties(parse_mode=ParseMode.MARKDOWN),
            )
        self._bot = bot

        topic_info = f", topic_id={topic_id}" if topic_id else ""
        self.logger.info(f"TelegramPublisher initialized for chat_id={chat_id}{topic_info}")

    async def publish(self, endpoints: Sequence[str]) -> None:
        message = render_message(EndpointsChanged(name=escape_markdown(self.dns_name), endpoints=list(endpoints)))
        try:
            await self._bot.send_message(
                chat_id=self.chat_id,
                text=message,
                message_thread_id=self.topic_id,
            )
        except TelegramAPIError as e:
            self.logger.warning(f"Telegram API error: {e}")
            raise SendError(str(e)) from e
        except Exception as e:
            self.logger.error(f"Failed to send notification: {e}")
            raise SendError(str(e)) from e

        self.logger.debug(f"Sent endpoint notification to chat {self.chat_id}")

    async def close(self) -> None:
        await self._bot.session.close()
        self.logger.info("TelegramPublisher stopped")
