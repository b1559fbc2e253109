"""Closed taxonomy of signal categories an entity can be monitored for."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

TRENDING_TOPIC = "trending_topic"


@dataclass(frozen=True)
class SignalTypeDefinition:
    label: str
    description: str
    prompt_fragment: str


SIGNAL_TYPES: dict[str, SignalTypeDefinition] = {
    "executive_change": SignalTypeDefinition(
        label="Executive Changes",
        description="New hires, departures, promotions (C-suite/VP)",
        prompt_fragment="**Executive changes**: new hires, departures, promotions (especially C-suite/VP level)",
    ),
    "funding": SignalTypeDefinition(
        label="Funding Events",
        description="Fundraising announcements, investment rounds",
        prompt_fragment="**Funding events**: fundraising announcements, investment rounds",
    ),
    "hiring": SignalTypeDefinition(
        label="Hiring Activity",
        description="Significant hiring activity, team expansions",
        prompt_fragment="**Hiring activity**: significant hiring posts, new team expansions",
    ),
    "product_launch": SignalTypeDefinition(
        label="Product Launches",
        description="New products, features, services",
        prompt_fragment="**Product launches**: new products, features, or services announced",
    ),
    "expansion": SignalTypeDefinition(
        label="Expansion",
        description="New offices, markets, geographic growth",
        prompt_fragment="**Expansion**: new offices, markets, or geographic expansion",
    ),
    "partnership": SignalTypeDefinition(
        label="Partnerships",
        description="Strategic partnerships, integrations",
        prompt_fragment="**Partnerships**: strategic partnerships, integrations, collaborations",
    ),
    "social_posts": SignalTypeDefinition(
        label="Social Media Posts",
        description="Recent social media posts and content activity",
        prompt_fragment="**Social media posts**: recent posts, content activity, engagement trends",
    ),
    "news_mentions": SignalTypeDefinition(
        label="News & Media",
        description="Press coverage, news articles, media mentions",
        prompt_fragment="**News mentions**: press coverage, news articles, media mentions",
    ),
    "awards": SignalTypeDefinition(
        label="Awards & Recognition",
        description="Awards, rankings, certifications",
        prompt_fragment="**Awards**: awards, rankings, certifications, recognitions",
    ),
    "events": SignalTypeDefinition(
        label="Events",
        description="Conference appearances, webinars, speaking engagements",
        prompt_fragment="**Events**: conference appearances, webinars, speaking engagements",
    ),
}

ALL_SIGNAL_TYPE_KEYS: list[str] = list(SIGNAL_TYPES)


def resolve_monitor_signals(selected: Iterable[str] | None) -> list[str]:
    """Return the known categories from ``selected`` in taxonomy order.

    Falls back to every category when nothing valid was selected.
    """
    wanted = {key.strip() for key in selected or [] if isinstance(key, str)}
    resolved = [key for key in ALL_SIGNAL_TYPE_KEYS if key in wanted]
    return resolved or list(ALL_SIGNAL_TYPE_KEYS)
