"""
Canvas alignment and pyramid level transforms.

These are appended to (or prepended before) a tile's own transform chain
to map source pixels onto output canvas pixels.
"""

from .models import AffineTransform2D, CoordinateTransformList


def create_scale_and_offset(
    x: float,
    y: float,
    scale: float,
    area_offset: bool = False,
) -> AffineTransform2D:
    """
    Create the affine mapping world coordinates to canvas pixels.

    Args:
        x: Viewport left edge in world units
        y: Viewport top edge in world units
        scale: Output scale (canvas pixels per world unit)
        area_offset: Align pixel centres instead of pixel corners

    Returns:
        AffineTransform2D with scale (scale, scale) and translation
        (-(x*scale + o), -(y*scale + o))

    Example:
        >>> create_scale_and_offset(16536, 32, 1.0).translation
        (-16536.0, -32.0)
    """
    offset = (1.0 - scale) * 0.5 if area_offset else 0.0
    return AffineTransform2D(
        scale,
        0.0,
        0.0,
        scale,
        -(x * scale + offset),
        -(y * scale + offset),
    )


def build_render_chain(
    transform_list: CoordinateTransformList,
    x: float,
    y: float,
    scale: float,
    area_offset: bool = False,
) -> CoordinateTransformList:
    """
    Compose a tile's chain with the canvas alignment transform.

    The input list is not modified.
    """
    chain = transform_list.copy()
    chain.add(create_scale_and_offset(x, y, scale, area_offset))
    return chain


def create_scale_level_transform(level: int) -> AffineTransform2D:
    """
    Map pixel coordinates of pyramid `level` to full resolution pixels.

    Level pixels are 2**level full resolution pixels wide; the translation
    keeps the centre of each level pixel on the centre of the block it covers.
    """
    if level < 0:
        raise ValueError(f"level must be >= 0, got {level}")
    factor = float(1 << level)
    shift = (factor - 1.0) * 0.5
    return AffineTransform2D(factor, 0.0, 0.0, factor, shift, shift)


def attach_level_transform(
    render_chain: CoordinateTransformList,
    level: int,
) -> CoordinateTransformList:
    """Prepend the level transform so the chain consumes level pixels."""
    chain = CoordinateTransformList([create_scale_level_transform(level)])
    for transform in render_chain:
        chain.add(transform)
    return chain
