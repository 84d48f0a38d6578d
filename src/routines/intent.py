"""
Keyword heuristics that decide how a NOTIFICATION step gets enriched.
Kept behind classify_notification_intent so the heuristic can be swapped out.
"""

import re
from dataclasses import dataclass
from typing import Optional

TRAFFIC_KEYWORDS = ("trafic", "traffic", "itinéraire", "itineraire")
NEWS_KEYWORDS = ("actualités", "actualites", "journal", "nouvelles", "news")
DEPARTURE_KEYWORDS = ("travail", "départ", "depart", "partir")

# Checked in order; "à propos de" must come before "de"
NEWS_ANCHORS = ("sur", "concernant", "à propos de", "de")
DEFAULT_NEWS_QUERY = "actualités générales"


@dataclass
class NotificationIntent:
    traffic: bool = False
    news: bool = False
    departure: bool = False
    news_query: Optional[str] = None


def _mentions(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def extract_news_query(message: str) -> str:
    """Topic following the first anchor word found, e.g. 'actualités sur X' -> 'X'"""
    for anchor in NEWS_ANCHORS:
        match = re.search(rf"(?<!\w){re.escape(anchor)}(?!\w)", message, re.IGNORECASE)
        if not match:
            continue
        query = message[match.end():].strip().rstrip("?!.").strip()
        if query:
            return query
    return DEFAULT_NEWS_QUERY


def classify_notification_intent(message: str, hint: Optional[str] = None) -> NotificationIntent:
    """Classify a notification message; an explicit payload type hint always wins"""
    text = (message or "").lower()
    intent = NotificationIntent(
        traffic=hint == "traffic" or _mentions(text, TRAFFIC_KEYWORDS),
        news=hint == "news" or _mentions(text, NEWS_KEYWORDS),
        departure=hint == "weather" or _mentions(text, DEPARTURE_KEYWORDS),
    )
    if intent.news:
        intent.news_query = extract_news_query(message or "")
    return intent
