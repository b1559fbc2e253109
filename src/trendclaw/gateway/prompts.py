"""Task descriptions sent to the OpenClaw agent for each monitored entity."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from trendclaw.signal_types import SIGNAL_TYPES, TRENDING_TOPIC, resolve_monitor_signals

if TYPE_CHECKING:
    from trendclaw.models import Client, Niche

MAX_SEARCH_QUERIES = 8

EMPTY_RESULT_INSTRUCTION = "If you find no notable signals, return an empty array: []"

NICHE_FOCUS = [
    "**Trending topics**: viral discussions, emerging trends",
    "**Industry news**: major announcements in this space",
    "**Content opportunities**: topics gaining traction that would be good for content creation",
]


def _dedupe(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        cleaned = " ".join(value.split())
        if not cleaned or cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        result.append(cleaned)
    return result


def _bare_domain(domain: str | None) -> str | None:
    if not domain:
        return None
    cleaned = domain.strip().lower()
    for prefix in ("https://", "http://"):
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix) :]
    if cleaned.startswith("www."):
        cleaned = cleaned[4:]
    return cleaned.split("/")[0] or None


def build_search_queries(
    name: str,
    *,
    domain: str | None = None,
    keywords: Iterable[str] = (),
    sources: Iterable[str] = (),
) -> list[str]:
    """Suggested web searches derived from the entity's name, domain and keywords."""
    keywords = [k for k in keywords if k and k.strip()]
    queries = [f'"{name}" news']
    bare = _bare_domain(domain)
    if bare:
        queries.append(f"site:{bare}")
        queries.append(f'"{bare}" -site:{bare}')
    for keyword in keywords:
        queries.append(f'"{name}" {keyword}')
    for source in sources:
        if source and source.strip() and keywords:
            queries.append(f"{' OR '.join(keywords[:3])} site:{_bare_domain(source) or source.strip()}")
    return _dedupe(queries)[:MAX_SEARCH_QUERIES]


def _output_contract(subject: str, categories: list[str]) -> list[str]:
    enum = ", ".join(f'"{key}"' for key in categories)
    return [
        "Output a JSON array of signals. Each signal must be an object with:",
        f"- type: one of {enum}",
        "- title: short headline (under 100 chars)",
        f"- summary: 2-3 sentence description of {subject}",
        "- sourceUrl: URL where you found this information",
        '- sourceName: name of the source (e.g. "LinkedIn", "Twitter")',
        "- confidence: 0.0 to 1.0 indicating how confident you are this is real",
        "",
        EMPTY_RESULT_INSTRUCTION,
        "",
        "Respond ONLY with valid JSON. No markdown, no code fences, no explanation.",
    ]


def build_client_prompt(client: Client) -> str:
    """Prompt for monitoring a company for buying signals."""
    categories = resolve_monitor_signals(client.monitor_signals)
    social_urls = [
        f"{label}: {url}"
        for label, url in (
            ("LinkedIn", client.linkedin_url),
            ("Twitter/X", client.twitter_url),
            ("Facebook", client.facebook_url),
            ("Instagram", client.instagram_url),
        )
        if url
    ]
    custom_urls = [url for url in client.custom_urls or [] if url]
    keywords = [k for k in client.keywords or [] if k]

    parts = [
        f'You are a business intelligence agent monitoring "{client.name}" for buying signals and notable activity.',
        "",
        f"Company: {client.name}",
    ]
    if client.domain:
        parts.append(f"Website: {client.domain}")
    if client.industry:
        parts.append(f"Industry: {client.industry}")
    if client.description:
        parts.append(f"Description: {client.description}")
    if social_urls:
        parts.extend(["", "Social Media Pages:", *social_urls])
    if custom_urls:
        parts.extend(["", "Additional URLs:", *custom_urls])
    if keywords:
        parts.extend(["", f"Keywords to watch: {', '.join(keywords)}"])

    parts.extend(["", "Search their website, social media pages and recent news for activity. Look for:"])
    for index, key in enumerate(categories, start=1):
        parts.append(f"{index}. {SIGNAL_TYPES[key].prompt_fragment}")

    queries = build_search_queries(client.name, domain=client.domain, keywords=keywords)
    parts.extend(["", "Suggested searches:", *(f"- {q}" for q in queries)])

    parts.append("")
    parts.extend(_output_contract("what happened", categories))
    return "\n".join(parts)


def build_niche_prompt(niche: Niche) -> str:
    """Prompt for tracking a content topic."""
    keywords = [k for k in niche.keywords or [] if k]
    sources = [s for s in niche.sources or [] if s]

    parts = [
        f'You are a trend monitoring agent tracking the topic "{niche.name}".',
        "",
        f"Keywords: {', '.join(keywords)}",
    ]
    if sources:
        parts.append(f"Sources to check: {', '.join(sources)}")

    parts.extend(["", "Search for trending content, news, and discussions related to these keywords. Look for:"])
    for index, fragment in enumerate(NICHE_FOCUS, start=1):
        parts.append(f"{index}. {fragment}")

    queries = build_search_queries(niche.name, keywords=keywords, sources=sources)
    parts.extend(["", "Suggested searches:", *(f"- {q}" for q in queries)])

    parts.append("")
    parts.extend(_output_contract("the trend", [TRENDING_TOPIC]))
    return "\n".join(parts)
