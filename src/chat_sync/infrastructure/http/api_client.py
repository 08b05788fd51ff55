"""aiohttp client for the chat persistence API."""
from __future__ import annotations

import asyncio
import logging
from datetime import tzinfo
from typing import Any

import aiohttp
from pydantic import ValidationError as SchemaError

from chat_sync.application.dto.message import SendReceipt
from chat_sync.application.exceptions import PersistenceError
from chat_sync.config import Settings
from chat_sync.domain.entities.contact import Contact
from chat_sync.domain.entities.message import Attachment, Message
from chat_sync.infrastructure.http.schemas import (
    ApiEnvelope,
    RawFetchedMessage,
    RawUser,
    SendMessageResponse,
)
from chat_sync.infrastructure.mappers.message import as_utc, fetched_to_message

logger = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2


class AiohttpChatApi:
    """Implements application.ports.chat_api.ChatApi."""

    def __init__(
        self,
        http: aiohttp.ClientSession,
        *,
        messages_url: str,
        users_url: str,
        server_tz: tzinfo | None = None,
    ) -> None:
        self._http = http
        self._messages_url = messages_url
        self._users_url = users_url
        self._server_tz = server_tz

    @classmethod
    def from_settings(cls, settings: Settings) -> AiohttpChatApi:
        http = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=settings.HTTP_TIMEOUT_SECONDS),
        )
        return cls(
            http,
            messages_url=settings.api_endpoint_url,
            users_url=settings.user_endpoint_url,
            server_tz=settings.api_tzinfo,
        )

    async def aclose(self) -> None:
        await self._http.close()

    async def get_messages(self, user_id: str) -> list[Message]:
        body = await self._post(
            self._messages_url, json={"operation": "get_message", "userid": user_id},
        )
        envelope = self._envelope(body)
        if not envelope.ok:
            raise PersistenceError(f"get_message rejected with status {envelope.status!r}")
        records = envelope.data if isinstance(envelope.data, list) else []
        messages: list[Message] = []
        for record in records:
            try:
                raw = RawFetchedMessage.model_validate(record)
                messages.append(fetched_to_message(raw, self._server_tz))
            except SchemaError:
                logger.warning("Skipping malformed history record: %r", record)
        return messages

    async def send_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: str,
        attachment: Attachment | None = None,
    ) -> SendReceipt:
        form = {
            "operation": "sendMessage",
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "message": text,
        }
        if attachment is not None:
            form.update(
                attachment_url=attachment.url,
                attachment_type=attachment.mime_type,
                attachment_name=attachment.name,
            )
        body = await self._post(self._messages_url, data=form)
        try:
            response = SendMessageResponse.model_validate(body)
        except SchemaError as exc:
            raise PersistenceError(f"Unexpected sendMessage response: {body!r}") from exc
        if not response.ok:
            raise PersistenceError(f"sendMessage rejected with status {response.status!r}")
        return SendReceipt(
            confirmed_id=response.confirmed_id,
            created_at=as_utc(response.created_at, self._server_tz) if response.created_at else None,
        )

    async def search_users(self, term: str) -> list[Contact]:
        term = term.strip()
        if len(term) < MIN_SEARCH_LENGTH:
            return []
        body = await self._post(
            self._users_url,
            json={"operation": "fetchUserByEmailOrFullname", "searchTerm": term},
        )
        envelope = self._envelope(body)
        if not envelope.ok or not isinstance(envelope.data, list):
            return []
        contacts: list[Contact] = []
        for record in envelope.data:
            try:
                user = RawUser.model_validate(record)
            except SchemaError:
                logger.warning("Skipping malformed user record: %r", record)
                continue
            contacts.append(
                Contact(
                    user_id=user.users_id,
                    name=user.full_name,
                    email=user.users_email,
                    picture_ref=user.users_pic,
                )
            )
        return contacts

    async def _post(self, url: str, **kwargs: Any) -> Any:
        try:
            async with self._http.post(url, **kwargs) as resp:
                if resp.status >= 400:
                    raise PersistenceError(f"{url} answered HTTP {resp.status}")
                # PHP backends often reply with text/html
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise PersistenceError(f"Request to {url} failed: {exc}") from exc
        except ValueError as exc:
            raise PersistenceError(f"{url} returned a non-JSON body") from exc

    @staticmethod
    def _envelope(body: Any) -> ApiEnvelope:
        try:
            return ApiEnvelope.model_validate(body)
        except SchemaError as exc:
            raise PersistenceError(f"Unexpected API response: {body!r}") from exc
