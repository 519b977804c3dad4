"""
ModBot
======

Runs the moderation HTTP API and, when a Discord token is configured, the
Discord bot in the same event loop. Both surfaces share one orchestrator,
one warning store and one deduplication cache.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. MODBOT_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("MODBOT_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

import discord
import uvicorn
from dotenv import load_dotenv

from modbot.api.app import create_app
from modbot.api.security import DEFAULT_API_KEY
from modbot.classifier.perspective_client import PerspectiveClient
from modbot.configuration.app_configuration import app_config
from modbot.database.db_connection import db_connection
from modbot.database.warning_persistence import SqliteWarningPersistence
from modbot.moderation.decision_enactor import DecisionEnactor
from modbot.moderation.dedup_cache import DeduplicationCache
from modbot.moderation.moderation_orchestrator import ModerationOrchestrator
from modbot.moderation.policy_evaluator import PolicyEvaluator
from modbot.moderation.score_normalizer import ScoreNormalizer
from modbot.moderation.warning_store import WarningStore
from modbot.util.logger import get_logger, handle_exception

logger = get_logger("main")


@dataclass
class Runtime:
    """Long-lived components created at start-up and released at shutdown."""

    orchestrator: ModerationOrchestrator
    classifier: PerspectiveClient
    cache: DeduplicationCache
    persistence: SqliteWarningPersistence


def load_environment() -> None:
    """Load secrets and process settings from ``.env``."""
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    if not os.getenv("PERSPECTIVE_API_KEY"):
        logger.warning("'PERSPECTIVE_API_KEY' not set. Every text will be allowed in degraded mode.")


def parse_owner_id() -> Optional[int]:
    raw = os.getenv("OWNER_ID")
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("OWNER_ID %r is not a Discord id, ignoring it", raw)
        return None


def build_intents() -> discord.Intents:
    """Intents needed to read message content and time out members."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.members = True
    return intents


async def build_runtime() -> Runtime:
    """Open the database, load warning states and wire the orchestrator."""
    settings = app_config.moderation

    persistence = SqliteWarningPersistence(db_connection)
    await persistence.initialize(app_config.database_path)

    warning_store = WarningStore(
        reset_window=settings.reset_window,
        mute_duration=timedelta(seconds=settings.mute_duration_seconds),
        persistence=persistence,
    )
    loaded = await warning_store.async_init()
    logger.info("Loaded %d warning states", loaded)

    cache = DeduplicationCache(
        ttl_seconds=settings.cache_ttl_seconds,
        sweep_interval_seconds=settings.cache_sweep_interval_seconds,
    )
    cache.start()

    classifier = PerspectiveClient(
        os.getenv("PERSPECTIVE_API_KEY"),
        url=settings.classifier_url,
        timeout_seconds=settings.classifier_timeout_seconds,
        languages=settings.classifier_languages,
    )

    orchestrator = ModerationOrchestrator(
        classifier,
        warning_store,
        normalizer=ScoreNormalizer(settings.thresholds),
        evaluator=PolicyEvaluator(settings.policy),
        cache=cache,
        audit_log=persistence,
        max_text_length=settings.max_text_length,
        classifier_timeout=settings.classifier_timeout_seconds,
        batch_default_concurrency=settings.batch_default_concurrency,
        batch_max_items=settings.batch_max_items,
    )
    return Runtime(orchestrator=orchestrator, classifier=classifier, cache=cache, persistence=persistence)


async def create_bot(runtime: Runtime) -> discord.Bot:
    """Instantiate the Discord bot and register the cogs."""
    from modbot.bot.cogs import message_listener, moderation_cmds
    from modbot.bot.monitored_channels import MonitoredChannels

    discord_settings = app_config.discord
    settings = app_config.moderation
    owner_id = parse_owner_id()

    channels = MonitoredChannels(discord_settings.monitored_channels, db_connection)
    await channels.async_init()

    enactor = DecisionEnactor(
        escalation_limit=settings.policy.escalation_limit,
        mute_duration_seconds=settings.mute_duration_seconds,
    )

    bot = discord.Bot(intents=build_intents())
    message_listener.setup(
        bot,
        runtime.orchestrator,
        enactor,
        channels,
        discord_settings,
        owner_id=owner_id,
        min_text_length=settings.min_text_length,
    )
    moderation_cmds.setup(
        bot,
        runtime.orchestrator,
        channels,
        owner_id=owner_id,
        mute_duration_seconds=settings.mute_duration_seconds,
    )
    logger.info("All cogs loaded successfully.")
    return bot


def create_server(runtime: Runtime) -> uvicorn.Server:
    settings = app_config.moderation
    app = create_app(
        runtime.orchestrator,
        settings=settings,
        api_key=os.getenv("API_SECRET_KEY", DEFAULT_API_KEY),
        classifier_configured=runtime.classifier.configured,
        audit_log=runtime.persistence,
    )
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "3000"))
    logger.info("HTTP API listening on %s:%d", host, port)
    return uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and log around the connection."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def close_bot(bot: Optional[discord.Bot]) -> None:
    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
            logger.info("Discord bot connection closed.")
        except Exception as exc:
            logger.exception("Error while closing Discord bot: %s", exc)


async def shutdown_runtime(runtime: Runtime, bot: Optional[discord.Bot] = None) -> None:
    """Close the bot, the background sweep, the HTTP session and the database."""
    await close_bot(bot)

    await runtime.cache.shutdown()

    try:
        await runtime.classifier.close()
    except Exception as exc:
        logger.exception("Error during classifier shutdown: %s", exc)

    try:
        await runtime.persistence.close()
    except Exception as exc:
        logger.exception("Error during database shutdown: %s", exc)

    logger.info(runtime.orchestrator.stats.get_summary())
    logger.info("Shutdown complete.")


async def stop_services(
    server: uvicorn.Server,
    tasks: List[asyncio.Task],
    runtime: Runtime,
    bot: Optional[discord.Bot] = None,
) -> None:
    """Stop both surfaces, wait for their in-flight work, then release shared resources."""
    server.should_exit = True
    await close_bot(bot)
    await asyncio.gather(*tasks, return_exceptions=True)
    await shutdown_runtime(runtime, bot)


async def async_main() -> int:
    """Bootstrap every component and run until the server or the bot stops.

    Returns
    -------
    int
        Process exit code reflecting success or failure of initialization.
    """
    load_environment()

    try:
        logger.info("Initializing database and loading warning states...")
        runtime = await build_runtime()
    except Exception as exc:
        logger.critical("Failed to initialize moderation runtime: %s", exc)
        await db_connection.close()
        return 1

    bot: Optional[discord.Bot] = None
    token = os.getenv("DISCORD_BOT_TOKEN")
    if token:
        try:
            bot = await create_bot(runtime)
        except Exception as exc:
            logger.critical("Failed to initialize Discord bot: %s", exc)
            await shutdown_runtime(runtime)
            return 1
    else:
        logger.info("'DISCORD_BOT_TOKEN' not set. Running the HTTP API only.")

    server = create_server(runtime)
    tasks = [asyncio.create_task(server.serve(), name="http-api")]
    if bot is not None and token:
        tasks.append(asyncio.create_task(start_bot(bot, token), name="discord-bot"))

    exit_code = 0
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.critical("%s stopped with an error: %s", task.get_name(), task.exception())
                exit_code = 1
    finally:
        await stop_services(server, tasks, runtime, bot)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process code."""
    logger.info("Starting ModBot…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except Exception as exc:
        logger.critical("An unexpected error occurred while running ModBot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    sys.exit(main())
