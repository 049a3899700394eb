"""
api.py — REST client for the off-chain message and user backend.

Payloads are validated here and turned into tagged records; malformed items
are logged and skipped. Transport failures on the message endpoints are
logged and reported as empty results. The user-directory calls raise so that
the profile cache can decide what to do with a failed lookup.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from config import CHAT_PAGE_LIMIT
from models import DisputePost, PeerMessage, ProfileInfo
from transport import AuthenticatedTransport
from monitoring import get_logger

logger = get_logger("api")


class MarketApi:
    def __init__(self, transport: AuthenticatedTransport):
        self.transport = transport

    # --- User directory ---

    async def user_exists(self, address: str) -> bool:
        """Probe the directory with a HEAD request. Raises on transport failure."""
        response = await self.transport.head(f"/users/{address}")
        if response.status_code == 404:
            return False
        response.raise_for_status()
        return response.status_code == 200

    async def get_user(self, address: str) -> ProfileInfo:
        """Fetch a profile. Raises on transport failure or a malformed payload."""
        response = await self.transport.get(f"/users/{address}")
        response.raise_for_status()
        return parse_profile(response.json(), address)

    # --- Dispute threads ---

    async def get_dispute_messages(self, dispute_id: int) -> list[DisputePost]:
        try:
            response = await self.transport.get(f"/messages/{dispute_id}")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching messages for dispute {dispute_id}: {e}")
            return []
        return _parse_list(data, parse_dispute_post, f"dispute {dispute_id} messages")

    async def post_dispute_message(self, dispute_id: int, content: str) -> Optional[DisputePost]:
        try:
            response = await self.transport.post(
                "/messages", json={"disputeId": str(dispute_id), "content": content}
            )
            response.raise_for_status()
            return parse_dispute_post(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error sending message for dispute {dispute_id}: {e}")
            return None

    # --- Peer-to-peer chat ---

    async def get_peer_messages(self, peer: str, page: int = 1, limit: int = CHAT_PAGE_LIMIT) -> list[PeerMessage]:
        try:
            response = await self.transport.get(
                f"/chat/messages/{peer}", params={"page": page, "limit": limit}
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching P2P messages with {peer}: {e}")
            return []
        return _parse_list(data, parse_peer_message, f"P2P messages with {peer}")

    async def post_peer_message(self, to: str, content: str) -> bool:
        try:
            response = await self.transport.post("/chat/messages", json={"to": to, "content": content})
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Error sending P2P message to {to}: {e}")
            return False

    async def get_conversation_feed(self) -> list[PeerMessage]:
        """Every direct message involving the current user, in no particular order."""
        try:
            response = await self.transport.get("/chat/conversations")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching conversations: {e}")
            return []
        return _parse_list(data, parse_peer_message, "conversation feed")


# --- Boundary parsers ---

def parse_profile(data: Any, address: str) -> ProfileInfo:
    if not isinstance(data, dict):
        raise ValueError(f"profile for {address} is not an object")
    display_name = data.get("displayName")
    if not isinstance(display_name, str):
        raise ValueError(f"profile for {address} has no displayName")
    return ProfileInfo(
        address=str(data.get("wallet") or address).lower(),
        display_name=display_name,
        role=data.get("role"),
        raw=data,
    )


def parse_dispute_post(data: Any) -> DisputePost:
    if not isinstance(data, dict):
        raise ValueError("dispute message is not an object")
    sender = _require_str(data, "sender")
    return DisputePost(
        sender=sender.lower(),
        content=str(data.get("content", "")),
        created_at=parse_timestamp(data.get("createdAt")),
    )


def parse_peer_message(data: Any) -> PeerMessage:
    if not isinstance(data, dict):
        raise ValueError("chat message is not an object")
    created_at = parse_timestamp(data.get("createdAt"))
    if created_at is None:
        raise ValueError("chat message has no createdAt")
    return PeerMessage(
        sender=_require_str(data, "sender").lower(),
        receiver=_require_str(data, "receiver").lower(),
        content=str(data.get("content", "")),
        created_at=created_at,
    )


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch milliseconds into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"unsupported timestamp: {value!r}") from e
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"unparseable timestamp: {value!r}")
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    raise ValueError(f"unsupported timestamp type: {type(value).__name__}")


def _require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"missing {key}")
    return value


def _parse_list(data: Any, parser, label: str) -> list:
    if not isinstance(data, list):
        logger.error(f"Expected a list for {label}, got {type(data).__name__}")
        return []
    parsed = []
    for item in data:
        try:
            parsed.append(parser(item))
        except ValueError as e:
            logger.warning(f"Skipping malformed item in {label}: {e}")
    return parsed
