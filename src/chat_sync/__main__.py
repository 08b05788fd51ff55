"""Entrypoint: python -m chat_sync --user-id 5 [--peer 7] [--send "hi"]"""
from __future__ import annotations

import argparse
import asyncio
import contextlib

from chat_sync.application.dto.session_user import SessionUser
from chat_sync.config import settings
from chat_sync.infrastructure.http.api_client import AiohttpChatApi
from chat_sync.infrastructure.logging_context import bind_session_id, configure_logging
from chat_sync.services.chat_session import ChatSession


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chat_sync", description="Headless chat sync session")
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--name", default=None)
    parser.add_argument("--peer", default=None, help="counterparty to open")
    parser.add_argument("--send", default=None, help="message to send to --peer")
    return parser


async def run(user: SessionUser, peer: str | None, text: str | None) -> None:
    api = AiohttpChatApi.from_settings(settings)
    try:
        async with ChatSession(user, api) as session:
            if peer:
                await session.open_conversation(peer)
                if text:
                    await session.send(text)
            await asyncio.Event().wait()
    finally:
        await api.aclose()


def main(argv: list[str] | None = None) -> None:
    args = _parser().parse_args(argv)
    configure_logging(settings.LOG_LEVEL)
    bind_session_id()
    user = SessionUser(user_id=args.user_id, name=args.name)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run(user, args.peer, args.send))


if __name__ == "__main__":
    main()
