"""
Version Resolver - picks the release tag an update should move to
"""
from typing import Iterable, List

import structlog

from gateway_updater.models.update import ReleaseTag
from gateway_updater.services.errors import NoCandidateVersionError, VersionResolutionError

logger = structlog.get_logger(__name__)

CHANNELS = ("stable", "beta")


class VersionResolver:
    """
    Resolves a target tag for a release channel

    ``stable`` only accepts final releases; ``beta`` accepts pre-releases
    too, so it follows whichever of the two is newer.
    """

    def candidates(self, tags: Iterable[str], channel: str) -> List[ReleaseTag]:
        """Parsed tags eligible for ``channel``, in upstream order"""
        if channel not in CHANNELS:
            raise VersionResolutionError(
                f"Unknown update channel '{channel}' (expected one of: {', '.join(CHANNELS)})"
            )

        eligible = []
        for name in tags:
            tag = ReleaseTag.parse(name)
            if tag is None:
                logger.debug("tag_skipped", tag=name, reason="not_a_version")
                continue
            if channel == "stable" and tag.is_prerelease:
                continue
            eligible.append(tag)
        return eligible

    def resolve(self, tags: Iterable[str], channel: str) -> ReleaseTag:
        """
        Pick the highest version eligible for ``channel``

        Ties keep the first tag in upstream order.

        Raises:
            NoCandidateVersionError: If no tag qualifies
            VersionResolutionError: If the channel is unknown
        """
        eligible = self.candidates(tags, channel)
        if not eligible:
            raise NoCandidateVersionError(f"No release tag available on the {channel} channel")

        best = eligible[0]
        for tag in eligible[1:]:
            if tag.version > best.version:
                best = tag

        logger.info("version_resolved", channel=channel, tag=best.name, version=str(best.version))
        return best
