import logging
import sys
import asyncio
import os
from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
from hll_observer.config import Config, ConfigError
from hll_observer.discord_bot import create

LOG_FORMAT = "%(asctime)s:%(levelname)s:%(name)s:%(message)s"


def load_config():
    path = os.getenv("OBSERVER_CONFIG") or "config.json"
    return Config(path)


def init_logging(logging_config: dict):
    level = logging_config.get("level") or "INFO"
    file_name = logging_config.get("file") or "hll-observer.log"
    file_handler = RotatingFileHandler(
        file_name,
        maxBytes=int(logging_config.get("max_bytes") or 10 * 1024 * 1024),
        backupCount=int(logging_config.get("backup_count") or 2),
        encoding="utf-8",
    )
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[file_handler])
    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(stream)


async def amain():
    load_dotenv()

    config = load_config()
    init_logging(config.section("logging"))

    token = os.getenv("DISCORD_TOKEN")
    if not token:
        raise ConfigError("DISCORD_TOKEN missing")

    bot = create(config)
    async with bot:
        await bot.start(token)


def run():
    try:
        asyncio.run(amain())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
