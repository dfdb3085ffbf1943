from __future__ import annotations


def test_public_api_exports() -> None:
    import stereocorr as sc

    assert hasattr(sc, "build_correspondences")
    assert hasattr(sc, "track_horizontal_flow")
    assert hasattr(sc, "correspond")
    assert hasattr(sc, "depth_from_stereo_images")
    assert hasattr(sc, "Correspondences")
    assert issubclass(sc.PreconditionError, ValueError)


def test_subpackage_exports() -> None:
    from stereocorr import depth, matching

    assert hasattr(matching, "search_disparity")
    assert hasattr(matching, "refine_subpixel")
    assert hasattr(depth, "register_depth")
    assert hasattr(depth, "HoleFill")
