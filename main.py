#!/usr/bin/env python3
"""
EduTube Quiz Bot entry point.

Starts the Discord bot that pauses a YouTube watch-along for vocabulary questions.

    python main.py [path/to/config.json]

The Discord token comes from DISCORD_BOT_TOKEN or bot.token in the config file.
The Gemini credential comes from GEMINI_API_KEY, API_KEY or provider.api_key.
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from edutube.bot import run_bot

DEFAULT_CONFIG_PATH = "config.json"
TOKEN_PLACEHOLDER = "YOUR_DISCORD_BOT_TOKEN_HERE"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class StartupError(Exception):
    """Raised when the bot cannot start with the given configuration."""
    pass


def load_config(path: str = DEFAULT_CONFIG_PATH) -> dict:
    """
    Read the JSON configuration file.

    Raises:
        StartupError: If the file is missing, unreadable or not a JSON object
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise StartupError(f"{config_path} not found. Copy the sample config.json and add your bot token.")

    try:
        with config_path.open('r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise StartupError(f"{config_path} is not valid JSON: {e}") from e
    except OSError as e:
        raise StartupError(f"Could not read {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise StartupError(f"{config_path} must contain a JSON object")
    return config


def resolve_discord_token(config: dict) -> str:
    """Pick the Discord token, preferring the environment over the file."""
    token = os.getenv('DISCORD_BOT_TOKEN') or config.get('bot', {}).get('token')
    if not token or token == TOKEN_PLACEHOLDER:
        raise StartupError(
            "No Discord bot token. Set DISCORD_BOT_TOKEN or fill in bot.token in config.json."
        )
    return token


def configure_logging(config: dict) -> Path:
    """
    Send logs to the console, <log_directory>/bot.log and <log_directory>/errors.log.

    Returns:
        The log directory in use
    """
    log_settings = config.get('logging', {})
    level = getattr(logging, str(log_settings.get('level', 'INFO')).upper(), logging.INFO)
    log_directory = Path(log_settings.get('log_directory', './logs/'))
    log_directory.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_directory / "bot.log", encoding='utf-8')
        ]
    )

    errors = logging.FileHandler(log_directory / "errors.log", encoding='utf-8')
    errors.setLevel(logging.ERROR)
    errors.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(errors)

    # discord.py is chatty at INFO
    for name in ('discord', 'discord.http', 'discord.gateway'):
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_directory


async def start(config_path: str) -> None:
    config = load_config(config_path)
    log_directory = configure_logging(config)
    logging.getLogger(__name__).info(f"Logging to {log_directory.resolve()}")

    await run_bot(resolve_discord_token(config), config)


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_CONFIG_PATH
    print("🎬 Starting EduTube Quiz Bot...")
    try:
        asyncio.run(start(path))
    except StartupError as e:
        print(f"❌ {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n👋 Bot stopped")
