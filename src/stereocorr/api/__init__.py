from stereocorr.api.stereo_depth import MatchMethod, correspond, depth_from_stereo_images

__all__ = [
    "MatchMethod",
    "correspond",
    "depth_from_stereo_images",
]
