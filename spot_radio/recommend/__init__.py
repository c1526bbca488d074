"""
Recommendation module for spot-radio.

Usage:
    from spot_radio.recommend import RecommendationEngine
"""

from spot_radio.recommend.engine import RecommendationEngine
from spot_radio.recommend.scoring import (
    ScoredCandidate,
    SourceBucket,
    diversify,
    jaccard,
    rank_genre_neighbors,
    score_candidate,
)
from spot_radio.recommend.taste import TasteProfile, WeightedTrack, build_taste_profile

__all__ = [
    "RecommendationEngine",
    "ScoredCandidate",
    "SourceBucket",
    "diversify",
    "jaccard",
    "rank_genre_neighbors",
    "score_candidate",
    "TasteProfile",
    "WeightedTrack",
    "build_taste_profile",
]
