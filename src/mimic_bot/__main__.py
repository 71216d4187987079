"""CLI entry point for mimic-bot."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from mimic_bot.app import MimicBotApp
from mimic_bot.config import load_config
from mimic_bot.log import setup_logging


def main() -> None:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    common.add_argument("-e", "--env", default=".env", help="Path to .env file")

    parser = argparse.ArgumentParser(
        prog="mimic-bot",
        description="Answers your private Telegram chats in your voice while you are away",
    )
    parser.set_defaults(config="config.yaml", env=".env")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    subparsers.add_parser("start", parents=[common], help="Start the bot")
    subparsers.add_parser("config-check", parents=[common], help="Validate configuration")

    args = parser.parse_args()

    if args.command == "config-check":
        _check_config(args.config, args.env)
    else:
        # No subcommand means start
        _run(args.config, args.env)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    try:
        config = load_config(config_path, env_path)
        config.ai.resolve_system_prompt()
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Storage: {config.storage.db_path}")
    print(f"  Model: {config.ai.model} (max_tokens={config.ai.max_tokens})")
    print(f"  Wake word: {config.owner.wake_word}")
    print(f"  Rate limit: {config.rate_limit.max_messages_per_hour}/h")
    print(f"  Quiet period: {config.presence.quiet_period}s (max wait {config.processing.max_quiet_wait}s)")
    print(f"  Typo probability: {config.humanize.typo.probability}")


def _run(config_path: str, env_path: str) -> None:
    """Load config and start the application."""
    try:
        config = load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level, json_output=config.log_json)

    async def _async_main() -> None:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: _signal_handler())

        app = MimicBotApp(config)
        await app.start()
        try:
            await stop_event.wait()
        finally:
            await app.stop()

    asyncio.run(_async_main())


if __name__ == "__main__":
    main()
