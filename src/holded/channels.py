"""
Business channel classification for purchases.

Rules are evaluated top to bottom and the first one whose keyword appears
in the provider name or tags wins, so a provider called "Catering de l'Hort"
is CATERING, not MENJAR_D_HORT.
"""

from collections.abc import Iterable
from typing import NamedTuple

DEFAULT_CHANNEL = "OTROS"


class ChannelRule(NamedTuple):
    channel: str
    keywords: tuple[str, ...]


CHANNEL_RULES: tuple[ChannelRule, ...] = (
    ChannelRule("CATERING", ("catering",)),
    ChannelRule("ESTRUCTURA", ("estructura",)),
    ChannelRule("IDONI", ("idoni",)),
    ChannelRule("OBRADOR", ("obrador",)),
    ChannelRule("MENJAR_D_HORT", ("menjar d'hort", "menjar dhort", "hort")),
)


def _tags_text(tags: Iterable[str] | str | None) -> str:
    if not tags:
        return ""
    if isinstance(tags, str):
        return tags
    return ", ".join(str(tag) for tag in tags if tag is not None)


def classify_channel(
    provider: str | None,
    tags: Iterable[str] | str | None = None,
    rules: tuple[ChannelRule, ...] = CHANNEL_RULES,
) -> str:
    """Return the channel for a provider name and tag list, ``OTROS`` if none match."""
    haystack = f"{provider or ''} {_tags_text(tags)}".lower()
    for rule in rules:
        if any(keyword in haystack for keyword in rule.keywords):
            return rule.channel
    return DEFAULT_CHANNEL
