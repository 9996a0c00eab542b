"""
Tests for the mosaic-render command-line interface.
"""

import json
import os
import subprocess
import sys

import pytest
import cv2
import numpy as np

from mosaic_render.cli import main
from mosaic_render.tiling.collection import ResolvedTileCollection

from tests.fixtures.tile_fixtures import create_constant, make_tile, translation, write_raster

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))


@pytest.fixture
def collection_path(tmp_path):
    """Collection JSON with two side by side 8x8 tiles."""
    left = write_raster(tmp_path, "left.png", create_constant((8, 8), 40))
    right = write_raster(tmp_path, "right.png", create_constant((8, 8), 220))
    collection = ResolvedTileCollection([
        make_tile("left", {0: (left, None)}, [translation(0, 0)], width=8, height=8),
        make_tile("right", {0: (right, None)}, [translation(8, 0)], width=8, height=8),
    ])
    path = tmp_path / "tiles.json"
    path.write_text(json.dumps(collection.to_dict()))
    return str(path)


class TestRenderCommand:
    """Tests for the render command."""

    def test_render_writes_image(self, collection_path, tmp_path):
        """Test rendering to a PNG file."""
        out = str(tmp_path / "out.png")

        result = subprocess.run(
            [
                sys.executable, "-m", "mosaic_render", "render", collection_path,
                "--out", out, "--width", "16", "--height", "8",
            ],
            capture_output=True,
            text=True,
            cwd=PROJECT_ROOT,
        )

        assert result.returncode == 0
        output = json.loads(result.stdout)
        assert output["rendered_tiles"] == 2

        image = cv2.imread(out, cv2.IMREAD_UNCHANGED)
        assert image.shape == (8, 16, 4)
        assert image[4, 2, 0] == 40
        assert image[4, 12, 0] == 220

    def test_render_with_request_file(self, collection_path, tmp_path, capsys):
        """Test YAML requests combine with command line overrides."""
        request = tmp_path / "request.yaml"
        request.write_text(
            "render:\n"
            "  width: 4\n"
            "  height: 4\n"
            "  skip_interpolation: true\n"
            "  background_color: '#000000'\n"
        )
        out = str(tmp_path / "out.png")

        code = main(["render", collection_path, "--out", out, "--request", str(request), "--x", "8"])

        assert code == 0
        image = cv2.imread(out, cv2.IMREAD_UNCHANGED)
        assert image.shape == (4, 4, 4)
        assert np.all(image[:, :, 0] == 220)
        assert json.loads(capsys.readouterr().out)["cache"]["misses"] >= 1

    def test_render_missing_tiles(self, tmp_path, capsys):
        """Test a missing tile file is reported."""
        code = main(["render", str(tmp_path / "nope.json"), "--out", str(tmp_path / "o.png")])
        assert code == 1
        assert "not found" in capsys.readouterr().err

    def test_render_invalid_request(self, collection_path, tmp_path, capsys):
        """Test invalid parameters fail with an error code."""
        code = main(["render", collection_path, "--out", str(tmp_path / "o.png"), "--scale", "-1"])
        assert code == 1
        assert "Error" in capsys.readouterr().err


class TestBboxCommand:
    """Tests for the bbox command."""

    def test_bbox(self, collection_path, capsys):
        """Test boxes are printed per tile."""
        code = main(["bbox", collection_path])

        assert code == 0
        boxes = json.loads(capsys.readouterr().out)
        assert boxes["right"]["bounding_box"] == [8.0, 0.0, 16.0, 8.0]


class TestApplyTransformCommand:
    """Tests for the apply-transform command."""

    def test_apply_transform(self, collection_path, tmp_path):
        """Test the transform is pooled and referenced by every tile."""
        out = tmp_path / "out.json"

        code = main([
            "apply-transform", collection_path,
            "--id", "shift", "--class", "affine", "--data", "1,0,0,1,10,0",
            "--out", str(out),
        ])

        assert code == 0
        collection = ResolvedTileCollection.from_json_file(str(out))
        assert collection.has_transform_spec("shift")
        tiles = collection.resolve_tile_specs()
        assert tiles[0].get_transform_list().apply_point(0.0, 0.0) == (10.0, 0.0)

    def test_malformed_data(self, collection_path, tmp_path):
        """Test malformed parameters are rejected before writing."""
        out = tmp_path / "out.json"

        code = main([
            "apply-transform", collection_path,
            "--id", "shift", "--class", "affine", "--data", "1,0,0",
            "--out", str(out),
        ])

        assert code == 1
        assert not out.exists()


class TestMain:
    """Tests for main entry point."""

    def test_no_command(self, capsys):
        """Test running without a command prints help."""
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()
