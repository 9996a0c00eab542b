"""Tests for tile data structures."""

import pytest

from mosaic_render.tiling.models import ImageAndMask, TileSpec
from mosaic_render.transforms.models import AffineTransform2D
from mosaic_render.transforms.specs import ListTransformSpec, ReferenceTransformSpec

from tests.fixtures.tile_fixtures import make_tile, translation


def pyramid(*levels):
    return {level: (f"/data/tile_{level}.png", None) for level in levels}


class TestImageAndMask:
    """Tests for ImageAndMask."""

    def test_has_mask(self):
        """Test mask presence."""
        assert not ImageAndMask("a.png").has_mask
        assert ImageAndMask("a.png", "a_mask.png").has_mask

    def test_from_dict_requires_image(self):
        """Test the image locator is required."""
        with pytest.raises(ValueError):
            ImageAndMask.from_dict({"maskUrl": "m.png"})

    def test_to_dict_omits_missing_mask(self):
        """Test dictionary form of an unmasked level."""
        assert ImageAndMask("a.png").to_dict() == {"imageUrl": "a.png"}


class TestTileSpecPyramid:
    """Tests for sparse pyramid lookup."""

    def test_levels_sorted(self):
        """Test levels are kept in ascending order."""
        tile = make_tile("t", pyramid(4, 0, 2))
        assert tile.levels == [0, 2, 4]

    def test_first_entry(self):
        """Test first entry is the highest resolution level."""
        tile = make_tile("t", pyramid(3, 5))
        level, entry = tile.first_mipmap_entry()
        assert level == 3
        assert entry.image_url == "/data/tile_3.png"

    @pytest.mark.parametrize("desired,expected", [
        (0, 0),
        (1, 0),
        (2, 2),
        (3, 2),
        (4, 4),
        (9, 4),
    ])
    def test_floor_lookup(self, desired, expected):
        """Test floor lookup picks the greatest stored level <= desired."""
        tile = make_tile("t", pyramid(0, 2, 4))
        level, entry = tile.floor_mipmap_entry(desired)
        assert level == expected
        assert entry.image_url == f"/data/tile_{expected}.png"

    def test_floor_lookup_below_all_levels(self):
        """Test floor lookup returns None when every level is larger."""
        tile = make_tile("t", pyramid(3, 4))
        assert tile.floor_mipmap_entry(1) is None

    def test_empty_pyramid_rejected(self):
        """Test tiles need at least one level."""
        with pytest.raises(ValueError):
            TileSpec(tile_id="t", mipmap_levels={})

    def test_negative_level_rejected(self):
        """Test negative levels are rejected."""
        with pytest.raises(ValueError):
            make_tile("t", {-1: ("a.png", None)})


class TestTileSpecTransforms:
    """Tests for tile transform chains."""

    def test_transform_list(self):
        """Test the chain is built in order."""
        tile = make_tile("t", pyramid(0), [translation(10, 0), AffineTransform2D(2, 0, 0, 2, 0, 0)])
        assert tile.get_transform_list().apply_point(1.0, 1.0) == (22.0, 2.0)

    def test_unresolved_chain(self):
        """Test chains with references cannot be built."""
        tile = make_tile("t", pyramid(0))
        tile.add_transform_spec(ReferenceTransformSpec("align"))
        with pytest.raises(ValueError, match="align"):
            tile.get_transform_list()

    def test_width_and_height_defined(self):
        """Test unknown sizes are negative."""
        assert not make_tile("t", pyramid(0)).has_width_and_height_defined()
        assert make_tile("t", pyramid(0), width=0, height=0).has_width_and_height_defined()


class TestTileSpecBoundingBox:
    """Tests for TileSpec.derive_bounding_box."""

    def test_translated_box(self):
        """Test a translated tile's box."""
        tile = make_tile("t", pyramid(0), [translation(100, 50)], width=200, height=100)
        tile.derive_bounding_box(64.0)
        assert tile.bounding_box == (100.0, 50.0, 300.0, 150.0)

    def test_non_affine_box(self):
        """Test the mesh captures bulging edges."""
        from mosaic_render.transforms.models import PolynomialTransform2D
        # y' = y + 0.001 * x^2 bulges the bottom edge
        bulge = PolynomialTransform2D([0, 1, 0, 0, 0, 0, 0, 0, 1, 0.001, 0, 0])
        tile = make_tile("t", pyramid(0), [bulge], width=100, height=100)
        tile.derive_bounding_box(10.0)
        assert tile.max_y == pytest.approx(110.0)

    def test_existing_box_kept(self):
        """Test an existing box is not recomputed without force."""
        tile = make_tile("t", pyramid(0), [translation(5, 5)], width=10, height=10)
        tile.min_x, tile.min_y, tile.max_x, tile.max_y = 0.0, 0.0, 1.0, 1.0
        tile.derive_bounding_box(64.0)
        assert tile.bounding_box == (0.0, 0.0, 1.0, 1.0)

        tile.derive_bounding_box(64.0, force=True)
        assert tile.bounding_box == (5.0, 5.0, 15.0, 15.0)

    def test_unknown_size(self):
        """Test the size must be known."""
        tile = make_tile("t", pyramid(0))
        with pytest.raises(ValueError, match="width and height"):
            tile.derive_bounding_box(64.0)


class TestTileSpecSerialization:
    """Tests for TileSpec dictionary form."""

    def test_from_dict(self):
        """Test parsing the dictionary form."""
        tile = TileSpec.from_dict({
            "tileId": "tile-1",
            "width": 64,
            "height": 32,
            "minIntensity": 10,
            "maxIntensity": 200,
            "mipmapLevels": {
                "2": {"imageUrl": "b.png"},
                "0": {"imageUrl": "a.png", "maskUrl": "a_mask.png"},
            },
            "transforms": {
                "type": "list",
                "specList": [{"type": "leaf", "className": "affine", "dataString": "1 0 0 1 3 4"}],
            },
        })
        assert tile.levels == [0, 2]
        assert tile.mipmap_levels[0].mask_url == "a_mask.png"
        assert tile.min_intensity == 10.0
        assert tile.get_transform_list().apply_point(0.0, 0.0) == (3.0, 4.0)

    def test_single_spec_wrapped_in_list(self):
        """Test a bare transform spec becomes a one element list."""
        tile = TileSpec.from_dict({
            "tileId": "t",
            "mipmapLevels": {"0": {"imageUrl": "a.png"}},
            "transforms": {"type": "leaf", "className": "translation", "dataString": "1 1"},
        })
        assert isinstance(tile.transforms, ListTransformSpec)
        assert len(tile.transforms) == 1

    def test_to_dict_keys(self):
        """Test dictionary form carries the box once derived."""
        tile = make_tile("t", pyramid(0), [translation(1, 1)], width=4, height=4)
        assert "minX" not in tile.to_dict()
        tile.derive_bounding_box(64.0)
        data = tile.to_dict()
        assert data["minX"] == 1.0
        assert data["mipmapLevels"]["0"]["imageUrl"] == "/data/tile_0.png"
