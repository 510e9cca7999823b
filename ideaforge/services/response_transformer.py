"""
Normalizes raw enrichment items (HackerNews hits, Reddit posts/comments)
into ResearchItem records with a comparable relevance score.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from ideaforge.models.schemas import ResearchItem

DAYS_PER_PENALTY_STEP = 30
PENALTY_PER_STEP = 10
FRESH_DAYS = 7


def recency_penalty(created_at: Optional[str], now: Optional[datetime] = None) -> float:
    """No penalty for the first week, then -10 for every 30 days of age."""
    if not created_at:
        return 0.0
    try:
        created = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    age_days = ((now or datetime.now(timezone.utc)) - created).total_seconds() / 86400
    if age_days < FRESH_DAYS:
        return 0.0
    return float(int(age_days // DAYS_PER_PENALTY_STEP) * PENALTY_PER_STEP)


def transform_hackernews(hit: dict[str, Any], now: Optional[datetime] = None) -> ResearchItem:
    object_id = str(hit.get("objectID") or hit.get("id") or "")
    comment = hit.get("comment_text") or ""
    title = hit.get("title") or hit.get("story_title") or ""
    if not title and comment:
        first = comment.split("\n")[0]
        title = first if len(first) <= 100 else first[:97] + "..."
    points = int(hit.get("points") or 0)
    comments = int(hit.get("num_comments") or 0)
    created_at = hit.get("created_at")
    modifier = 0.8 if comment else 1.0
    score = max(0.0, (points + comments * 2 - recency_penalty(created_at, now)) * modifier)
    return ResearchItem(
        source="hackernews",
        id=object_id,
        title=title or "Untitled",
        url=hit.get("url") or f"https://news.ycombinator.com/item?id={object_id}",
        score=score,
        author=hit.get("author") or "",
        comments=comments,
        created_at=created_at,
        summary=comment or hit.get("story_text") or title,
    )


def transform_reddit(item: dict[str, Any], now: Optional[datetime] = None) -> ResearchItem:
    created_at = item.get("created_at")
    if not created_at and item.get("created_utc") is not None:
        created_at = datetime.fromtimestamp(float(item["created_utc"]), tz=timezone.utc).isoformat()
    ups = float(item.get("ups") or 0)
    comments = int(item.get("num_comments") or 0)
    penalty = recency_penalty(created_at, now)

    if item.get("body") is not None and item.get("title") is None:
        # comment
        score = max(0.0, ups - int(item.get("depth") or 0) * 10 - penalty)
        title = f"Comment on: {item.get('link_title') or 'Unknown Post'}"
        summary = item.get("body") or ""
    else:
        ratio = float(item.get("upvote_ratio") or 0.5)
        awards = len(item.get("all_awardings") or [])
        score = max(0.0, ups * ratio + comments * 3 + awards * 50 - penalty)
        title = item.get("title") or "Untitled"
        summary = item.get("selftext") or title

    permalink = item.get("permalink") or ""
    return ResearchItem(
        source="reddit",
        id=str(item.get("id") or ""),
        title=title,
        url=f"https://reddit.com{permalink}" if permalink else item.get("url", ""),
        score=score,
        author=item.get("author") or "",
        comments=comments,
        created_at=created_at,
        summary=summary,
    )
