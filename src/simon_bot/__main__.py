import argparse
import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from simon_bot.app_config import load_json_config, parse_app_config, resolve_runtime_env
from simon_bot.bootstrap import AppRuntime, bootstrap_runtime
from simon_bot.discord.models import ChatMessage


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="simon_bot", description="Discord chat bot for the simon.dev channel")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run the bot until interrupted (default)")

    history = sub.add_parser("history", help="Print the channel's reply tree")
    history.add_argument("--limit", type=int, default=None, help="Number of messages to fetch")
    history.add_argument("--follow", action="store_true", help="Re-print whenever the channel changes")

    chain = sub.add_parser("chain", help="Print the reply chain ending at a message")
    chain.add_argument("message_id")

    return parser


def _print_tree(messages: list[ChatMessage], depth: int = 0) -> None:
    for message in messages:
        edited = " (edited)" if message.edited else ""
        print(f"{'  ' * depth}{message.author.name}: {message.content}{edited}")
        _print_tree(message.replies, depth + 1)


async def _run_bot(runtime: AppRuntime) -> None:
    print("simon-bot (Ctrl+C to quit)")
    print("Tools:")
    for t in runtime.catalog.tools:
        print(f"  - {t.name}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    await runtime.bot.start(runtime.gateway)
    await asyncio.Event().wait()


async def _show_history(runtime: AppRuntime, limit: int, follow: bool) -> None:
    _print_tree(await runtime.resolver.get_channel_messages(limit))
    if not follow:
        return

    changed = asyncio.Event()
    await runtime.gateway.subscribe(changed.set)
    while True:
        await changed.wait()
        changed.clear()
        print()
        _print_tree(await runtime.resolver.get_channel_messages(limit))


async def _show_chain(runtime: AppRuntime, message_id: str) -> None:
    for entry in await runtime.resolver.get_message_chain(message_id):
        marker = " [bot]" if entry.is_bot else ""
        print(f"{entry.id} {entry.username}{marker}: {entry.content}")


async def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = _build_parser().parse_args(argv)
    command = args.command or "run"

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()

    missing = env.missing()
    if command != "run":
        missing = [name for name in missing if name != "ANTHROPIC_API_KEY"]
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        sys.exit(1)

    runtime = await bootstrap_runtime(app, env)
    try:
        if command == "history":
            await _show_history(runtime, args.limit or app.channel_history_limit, args.follow)
        elif command == "chain":
            await _show_chain(runtime, args.message_id)
        else:
            await _run_bot(runtime)
    finally:
        await runtime.aclose()


def cli() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
