from stereocorr.depth.conversion import (
    cvt_depth_from_float,
    cvt_depth_to_float,
    decimate,
    depth_from_disparity,
    depth_from_stereo_correspondences,
    disparity_from_stereo_correspondences,
    disparity_from_stereo_images,
    get_depth,
)
from stereocorr.depth.registration import HoleFill, fill_registered_depth_holes, register_depth, rigid_transform

__all__ = [
    "cvt_depth_from_float",
    "cvt_depth_to_float",
    "decimate",
    "depth_from_disparity",
    "depth_from_stereo_correspondences",
    "disparity_from_stereo_correspondences",
    "disparity_from_stereo_images",
    "get_depth",
    "HoleFill",
    "fill_registered_depth_holes",
    "register_depth",
    "rigid_transform",
]
