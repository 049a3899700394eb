"""
conversations.py — Folds a flat direct-message feed into per-counterparty threads.
"""

import asyncio
from typing import Iterable

from models import Conversation, PeerMessage
from monitoring import get_logger

logger = get_logger("conversations")


def truncate_address(address: str) -> str:
    """Short display label for an address: first 6 and last 4 characters."""
    if len(address) <= 10:
        return address
    return f"{address[:6]}…{address[-4:]}"


def counterparty_of(message: PeerMessage, me: str) -> str:
    me = me.lower()
    sender = message.sender.lower()
    receiver = message.receiver.lower()
    return receiver if sender == me else sender


def _message_order(message: PeerMessage):
    # Total order so that ties on created_at do not depend on input order
    return (message.created_at, message.sender.lower(), message.receiver.lower(), message.content)


def group_messages(messages: Iterable[PeerMessage], me: str) -> dict[str, list[PeerMessage]]:
    """Map each counterparty address to its messages, oldest first."""
    groups: dict[str, list[PeerMessage]] = {}
    for message in messages:
        groups.setdefault(counterparty_of(message, me), []).append(message)
    for thread in groups.values():
        thread.sort(key=_message_order)
    return groups


async def build_conversations(messages: Iterable[PeerMessage], me: str, profiles) -> list[Conversation]:
    """
    Group the feed by counterparty, resolve each counterparty's display name
    and return the conversations newest-first by last message.
    """
    groups = group_messages(messages, me)
    if not groups:
        return []

    counterparties = sorted(groups)
    names = await asyncio.gather(
        *(profiles.display_name(addr, truncate_address(addr)) for addr in counterparties)
    )

    conversations = [
        Conversation(
            counterparty_address=addr,
            counterparty_display_name=name,
            last_message=groups[addr][-1],
            messages=tuple(groups[addr]),
        )
        for addr, name in zip(counterparties, names)
    ]
    # counterparties are already sorted, so the stable sort breaks ties by address
    conversations.sort(key=lambda c: c.last_message.created_at, reverse=True)

    logger.info(f"Grouped {sum(len(g) for g in groups.values())} messages into {len(conversations)} conversations")
    return conversations
