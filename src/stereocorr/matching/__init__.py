from stereocorr.matching.block_matching import build_correspondences, search_disparity
from stereocorr.matching.flow import TermCriteria, track_horizontal_flow
from stereocorr.matching.subpixel import refine_subpixel

__all__ = [
    "build_correspondences",
    "search_disparity",
    "refine_subpixel",
    "TermCriteria",
    "track_horizontal_flow",
]
