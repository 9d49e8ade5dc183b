"""
Ordering and radius filtering of enriched features.

Functions:
    rank_features: Containing features first, then by ascending distance
"""

from typing import List, Optional

from core.models import EnrichedFeature


def rank_features(
    features: List[EnrichedFeature],
    effective_radius: Optional[float] = None
) -> List[EnrichedFeature]:
    """
    Drop features beyond the effective radius and sort the rest.

    Containing features are always kept. The sort is stable, so ties keep
    their merge order (containment leg before proximity leg, then page order).

    Parameters:
    -----------
    features : List[EnrichedFeature]
        Merged features from both legs
    effective_radius : Optional[float]
        Radius cap in miles; None keeps containing features only

    Returns:
    --------
    List[EnrichedFeature]
        New list, containing first, then ascending distance_miles
    """
    kept = [
        f for f in features
        if f.is_containing or (effective_radius is not None and f.distance_miles <= effective_radius)
    ]
    return sorted(kept, key=lambda f: (not f.is_containing, f.distance_miles))
