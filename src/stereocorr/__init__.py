from stereocorr import meta
from stereocorr.api import correspond, depth_from_stereo_images
from stereocorr.core.correspondence import Correspondences
from stereocorr.core.preconditions import PreconditionError
from stereocorr.matching import TermCriteria, build_correspondences, track_horizontal_flow

__all__ = [
    "meta",
    "Correspondences",
    "PreconditionError",
    "TermCriteria",
    "build_correspondences",
    "track_horizontal_flow",
    "correspond",
    "depth_from_stereo_images",
]
