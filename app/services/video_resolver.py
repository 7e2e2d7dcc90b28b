import asyncio
import logging
import re
from typing import List, Optional, Sequence

from app.agent.tools.video_search import is_relevant_video
from app.config import VIDEO_TIMEOUT_SECONDS
from app.errors import VideoProviderError
from app.models.diagnosis import RequiredPart, RequiredPartWithVideo, VehicleDetails

logger = logging.getLogger("cardiag.video_resolver")


def build_video_query(part_name: str, vehicle: Optional[VehicleDetails] = None) -> str:
    """'2020 Toyota Camry spark plugs replacement'"""
    pieces = [vehicle.label() if vehicle else "", part_name, "replacement"]
    return re.sub(r"\s+", " ", " ".join(p for p in pieces if p)).strip()


class VideoResolver:
    """
    Attaches one repair video to each required part.

    Lookups run concurrently, one per part. Any failure only costs that
    part its video; the result always has one entry per input part, in
    input order.
    """

    def __init__(self, provider, timeout: float = VIDEO_TIMEOUT_SECONDS):
        self.provider = provider
        self.timeout = timeout

    async def resolve(
        self,
        parts: Sequence[RequiredPart],
        vehicle: Optional[VehicleDetails] = None,
    ) -> List[RequiredPartWithVideo]:
        if not parts:
            return []

        if self.provider is None:
            logger.info("Video search not configured, %d part(s) left without videos", len(parts))
            return [RequiredPartWithVideo.from_part(p) for p in parts]

        outcomes = await asyncio.gather(
            *(self._lookup(part, vehicle) for part in parts),
            return_exceptions=True,
        )

        # gather keeps argument order, so index i belongs to parts[i]
        resolved: List[RequiredPartWithVideo] = []
        for part, outcome in zip(parts, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Video lookup for %r crashed: %r", part.name, outcome)
                outcome = RequiredPartWithVideo.from_part(part)
            resolved.append(outcome)

        found = sum(1 for r in resolved if r.video_url)
        logger.info("Resolved videos for %d/%d part(s)", found, len(parts))
        return resolved

    async def _lookup(
        self,
        part: RequiredPart,
        vehicle: Optional[VehicleDetails],
    ) -> RequiredPartWithVideo:
        query = build_video_query(part.name, vehicle)

        try:
            hits = await asyncio.wait_for(self.provider.search(query), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Video lookup timed out for %r", part.name)
            return RequiredPartWithVideo.from_part(part)
        except VideoProviderError as exc:
            logger.warning("Video lookup failed for %r: %s", part.name, exc)
            return RequiredPartWithVideo.from_part(part)

        hit = next((h for h in hits or [] if is_relevant_video(h, part.name)), None)
        if hit is None:
            return RequiredPartWithVideo.from_part(part)

        return RequiredPartWithVideo.from_part(part, video_url=hit.url, video_title=hit.title)
