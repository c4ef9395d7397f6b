"""Recommendation oracle interface and a deterministic heuristic implementation."""

from collections.abc import Sequence
from typing import Protocol

from backend.itinerary.models.external import Recommendation
from backend.itinerary.models.input import Destination


class RecommendationOracle(Protocol):
    """Scores candidate destinations for a user.

    Implementations must be side-effect free as seen by the pipeline and
    must only return ``Recommendation`` values.
    """

    def recommend(
        self,
        user_id: str,
        items: Sequence[Destination],
        limit: int,
        interests: Sequence[str] = (),
    ) -> list[Recommendation]:
        """Score items for a user.

        Args:
            user_id: Owner of the request.
            items: Candidate destinations.
            limit: Maximum number of recommendations to return.
            interests: Declared interests and themes used as the profile.

        Returns:
            At most ``limit`` recommendations, best first.
        """
        ...


def _interest_overlap(item: Destination, interests: Sequence[str]) -> float:
    if not interests:
        return 0.0
    haystack = [item.category.lower(), *(t.lower() for t in item.tags)]
    matched = sum(
        1 for interest in interests if any(interest.lower() in h for h in haystack)
    )
    return matched / len(interests)


class HeuristicOracle:
    """Rating and interest-overlap scorer.

    score = 0.6 * rating/5 + 0.4 * interest overlap; confidence grows with
    how much signal the item carried. Deterministic for a given input.
    """

    version = 1

    def recommend(
        self,
        user_id: str,
        items: Sequence[Destination],
        limit: int,
        interests: Sequence[str] = (),
    ) -> list[Recommendation]:
        recs: list[Recommendation] = []
        for item in items:
            overlap = _interest_overlap(item, interests)
            score = 0.6 * (item.rating / 5.0) + 0.4 * overlap
            signals = int(item.rating > 0) + int(overlap > 0) + int(bool(item.tags))
            confidence = min(0.95, 0.5 + 0.15 * signals)
            recs.append(
                Recommendation(
                    id=item.id,
                    score=round(min(1.0, score), 4),
                    confidence=round(confidence, 4),
                    predicted_rating=round(min(5.0, item.rating + 0.3 * overlap), 2),
                    version=self.version,
                )
            )
        # Stable on id so equal scores don't depend on catalog order
        recs.sort(key=lambda r: (-r.score, r.id))
        return recs[: max(0, limit)]
