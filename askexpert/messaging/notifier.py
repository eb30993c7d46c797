from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Protocol
from urllib.parse import quote

import httpx

from .models import ConversationRef, DeliveryHandle, OutboundMessage, UserIdentity

logger = logging.getLogger(__name__)


class NotifierError(RuntimeError):
    """Raised when a message could not be delivered."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        prefix = f"[{self.status_code}] " if self.status_code is not None else ""
        return f"{prefix}{super().__str__()}"


class Notifier(Protocol):
    async def send_to_conversation(self, conversation: ConversationRef, message: OutboundMessage) -> DeliveryHandle:
        ...

    async def send_to_team(
        self, team_id: str, message: OutboundMessage, *, service_url: str | None = None
    ) -> DeliveryHandle:
        ...

    async def update_message(self, handle: DeliveryHandle, message: OutboundMessage) -> bool:
        ...

    async def get_conversation_member(self, conversation: ConversationRef) -> UserIdentity | None:
        ...


@dataclass(slots=True)
class _AccessToken:
    value: str
    expires_at: float


class BotConnectorCredentials:
    """Client-credentials token source for the Bot Connector REST API."""

    # refresh a little before the service-side expiry
    _EXPIRY_MARGIN_SECONDS = 300.0

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        app_id: str | None,
        app_password: str | None,
        token_url: str,
        scope: str,
    ) -> None:
        self._client = client
        self._app_id = app_id
        self._app_password = app_password
        self._token_url = token_url
        self._scope = scope
        self._token: _AccessToken | None = None

    @property
    def enabled(self) -> bool:
        return bool(self._app_id and self._app_password)

    async def authorization_header(self) -> dict[str, str]:
        if not self.enabled:
            return {}
        now = time.monotonic()
        if self._token is None or self._token.expires_at <= now:
            self._token = await self._fetch_token(now)
        return {"Authorization": f"Bearer {self._token.value}"}

    async def _fetch_token(self, now: float) -> _AccessToken:
        try:
            response = await self._client.post(
                self._token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._app_id,
                    "client_secret": self._app_password,
                    "scope": self._scope,
                },
            )
        except httpx.HTTPError as exc:
            raise NotifierError(f"Token request failed: {exc}") from exc
        if response.status_code >= 400:
            raise NotifierError("Token request was rejected", status_code=response.status_code)
        body = response.json()
        expires_in = float(body.get("expires_in", 3600))
        return _AccessToken(
            value=str(body["access_token"]),
            expires_at=now + max(0.0, expires_in - self._EXPIRY_MARGIN_SECONDS),
        )


class BotConnectorNotifier:
    """Deliver messages through the Bot Framework connector REST API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        default_service_url: str,
        credentials: BotConnectorCredentials | None = None,
    ) -> None:
        self._client = client
        self._default_service_url = default_service_url
        self._credentials = credentials

    async def send_to_conversation(self, conversation: ConversationRef, message: OutboundMessage) -> DeliveryHandle:
        service_url = self._service_url(conversation.service_url)
        body = await self._request(
            "POST",
            f"{service_url}v3/conversations/{quote(conversation.id, safe='')}/activities",
            json=message.to_activity(),
        )
        return DeliveryHandle(
            conversation_id=conversation.id,
            message_id=str(body.get("id", "")),
            service_url=conversation.service_url,
        )

    async def send_to_team(
        self, team_id: str, message: OutboundMessage, *, service_url: str | None = None
    ) -> DeliveryHandle:
        # falls back to the configured endpoint
        service_url = self._service_url(service_url)
        payload = {
            "isGroup": True,
            "channelData": {"channel": {"id": team_id}},
            "activity": message.to_activity(),
        }
        body = await self._request("POST", f"{service_url}v3/conversations", json=payload)
        return DeliveryHandle(
            conversation_id=str(body["id"]),
            message_id=str(body.get("activityId", "")),
            service_url=service_url,
        )

    async def update_message(self, handle: DeliveryHandle, message: OutboundMessage) -> bool:
        service_url = self._service_url(handle.service_url)
        url = (
            f"{service_url}v3/conversations/{quote(handle.conversation_id, safe='')}"
            f"/activities/{quote(handle.message_id, safe='')}"
        )
        activity = {**message.to_activity(), "id": handle.message_id}
        try:
            await self._request("PUT", url, json=activity)
        except NotifierError as exc:
            if exc.status_code is None:
                raise
            logger.warning("Could not update message %s in %s: %s", handle.message_id, handle.conversation_id, exc)
            return False
        return True

    async def get_conversation_member(self, conversation: ConversationRef) -> UserIdentity | None:
        service_url = self._service_url(conversation.service_url)
        members = await self._request(
            "GET",
            f"{service_url}v3/conversations/{quote(conversation.id, safe='')}/members",
        )
        if not isinstance(members, list) or not members:
            return None
        member = members[0]
        return UserIdentity(
            id=str(member.get("aadObjectId") or member.get("id", "")),
            name=str(member.get("name", "")),
            principal_name=member.get("userPrincipalName"),
            given_name=member.get("givenName"),
        )

    def _service_url(self, service_url: str | None) -> str:
        url = service_url or self._default_service_url
        return url if url.endswith("/") else url + "/"

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._credentials is not None:
            headers.update(await self._credentials.authorization_header())
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise NotifierError(f"Connector request failed: {exc}") from exc

        if response.status_code >= 400:
            raise NotifierError(_extract_error_message(response), status_code=response.status_code)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()


def _extract_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or "Unknown connector error"
    if isinstance(data, Mapping):
        error = data.get("error")
        if isinstance(error, Mapping) and "message" in error:
            return str(error["message"])
    return "Connector request failed"
