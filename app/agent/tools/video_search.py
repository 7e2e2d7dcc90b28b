import logging
import re
from functools import lru_cache
from typing import List, Optional, Sequence

from tavily import AsyncTavilyClient  # type: ignore

from app.config import TAVILY_API_KEY, VIDEO_SEARCH_DOMAINS, VIDEO_SEARCH_MAX_RESULTS
from app.errors import VideoProviderError
from app.models.diagnosis import VideoHit

logger = logging.getLogger("cardiag.video_search")

VIDEO_URL_MARKERS = (
    "youtube.com/watch",
    "youtube.com/shorts/",
    "youtu.be/",
    "carcarekiosk.com/video/",
)

# Videos about these only count when the part itself mentions them
FORBIDDEN_WORDS = ("battery", "بطارية", "brake", "فرامل")


# -------------------------------------------------
# Helpers
# -------------------------------------------------

def is_video_url(url: str) -> bool:
    return any(marker in url for marker in VIDEO_URL_MARKERS)


def normalize_text(text: str) -> str:
    text = (text or "").lower()
    text = re.sub(r"[ً-ْ]", "", text)                  # Arabic diacritics
    text = re.sub(r"[^\u0000-\u007F؀-ۿ]", " ", text)   # keep ASCII + Arabic
    return re.sub(r"\s+", " ", text).strip()


def is_relevant_video(hit: VideoHit, part_name: str) -> bool:
    """
    Rejects a hit that is clearly about something else: a battery or brake
    video returned for a part that has nothing to do with either.
    """
    if not hit.url or not hit.title:
        return False

    part = normalize_text(part_name)
    video_text = " ".join(
        normalize_text(t) for t in (hit.title, hit.description, hit.url)
    )

    for word in FORBIDDEN_WORDS:
        pattern = re.compile(rf"\b{re.escape(normalize_text(word))}\b")
        if pattern.search(video_text) and not pattern.search(part):
            logger.debug("Rejected video %r for part %r (%s)", hit.title, part_name, word)
            return False

    return True


# -------------------------------------------------
# Provider
# -------------------------------------------------

class TavilyVideoSearch:
    """Finds repair videos through Tavily web search, limited to video sites."""

    def __init__(
        self,
        client,
        domains: Sequence[str] = tuple(VIDEO_SEARCH_DOMAINS),
        max_results: int = VIDEO_SEARCH_MAX_RESULTS,
    ):
        self.client = client
        self.domains = list(domains)
        self.max_results = max_results

    async def search(self, query: str) -> List[VideoHit]:
        try:
            res = await self.client.search(
                query=query,
                max_results=self.max_results,
                include_domains=self.domains or None,
            )
        except Exception as exc:
            raise VideoProviderError(f"Video search failed for {query!r}: {exc}") from exc

        hits: List[VideoHit] = []
        seen = set()
        for r in (res or {}).get("results", []):
            url = (r.get("url") or "").strip()
            title = (r.get("title") or "").strip()
            if not url or not title or not is_video_url(url) or url in seen:
                continue
            seen.add(url)
            hits.append(VideoHit(url=url, title=title, description=r.get("content") or ""))

        return hits


@lru_cache(maxsize=1)
def get_video_search() -> Optional[TavilyVideoSearch]:
    if not TAVILY_API_KEY:
        logger.warning("TAVILY_WEB_SEARCH not set, repair videos disabled")
        return None

    return TavilyVideoSearch(AsyncTavilyClient(api_key=TAVILY_API_KEY))
