"""Tests for serializable transform specs."""

import pytest

from mosaic_render.transforms.models import AffineTransform2D, CoordinateTransformList
from mosaic_render.transforms.specs import (
    LeafTransformSpec,
    ListTransformSpec,
    ReferenceTransformSpec,
    transform_spec_from_dict,
)


def shift_spec(tx, spec_id=None):
    return LeafTransformSpec("affine", f"1 0 0 1 {tx} 0", spec_id=spec_id)


class TestLeafTransformSpec:
    """Tests for LeafTransformSpec."""

    def test_build(self):
        """Test building the described transform."""
        transform = shift_spec(5).build()
        assert isinstance(transform, AffineTransform2D)
        assert transform.translation == (5.0, 0.0)

    def test_from_transform_preserves_parameters(self):
        """Test describing an existing transform."""
        original = AffineTransform2D(0.5, 0.1, -0.1, 0.5, 12.25, -3.0)
        rebuilt = LeafTransformSpec.from_transform(original).build()
        assert rebuilt.matrix.tolist() == original.matrix.tolist()

    def test_is_resolved(self):
        """Test leaves never need resolution."""
        spec = shift_spec(1)
        assert spec.is_fully_resolved()
        assert spec.referenced_ids() == set()


class TestReferenceTransformSpec:
    """Tests for ReferenceTransformSpec."""

    def test_resolve(self):
        """Test a reference resolves to its pool entry."""
        pool = {"shift": shift_spec(3, spec_id="shift")}
        resolved = ReferenceTransformSpec("shift").resolve(pool)
        assert resolved.build().translation == (3.0, 0.0)

    def test_resolve_missing(self):
        """Test a dangling reference fails."""
        with pytest.raises(ValueError, match="missing_id"):
            ReferenceTransformSpec("missing_id").resolve({})

    def test_build_unresolved(self):
        """Test an unresolved reference cannot be built."""
        with pytest.raises(ValueError, match="unresolved"):
            ReferenceTransformSpec("x").build()

    def test_nested_pool_references(self):
        """Test pool entries may reference other pool entries."""
        pool = {
            "inner": shift_spec(2, spec_id="inner"),
            "outer": ListTransformSpec([ReferenceTransformSpec("inner"), shift_spec(1)], spec_id="outer"),
        }
        chain = ReferenceTransformSpec("outer").resolve(pool).build()
        assert chain.apply_point(0.0, 0.0) == (3.0, 0.0)

    def test_self_reference_fails(self):
        """Test a pool entry referencing itself is reported as a cycle."""
        pool = {"loop": ListTransformSpec([ReferenceTransformSpec("loop")], spec_id="loop")}
        with pytest.raises(ValueError, match="cycle"):
            ReferenceTransformSpec("loop").resolve(pool)

    def test_mutual_references_fail(self):
        """Test two pool entries referencing each other are reported as a cycle."""
        pool = {
            "a": ListTransformSpec([ReferenceTransformSpec("b"), shift_spec(1)], spec_id="a"),
            "b": ListTransformSpec([ReferenceTransformSpec("a")], spec_id="b"),
        }
        with pytest.raises(ValueError, match="cycle"):
            ReferenceTransformSpec("a").resolve(pool)

    def test_repeated_reference_is_not_a_cycle(self):
        """Test the same entry may appear twice in one chain."""
        pool = {"shift": shift_spec(2, spec_id="shift")}
        chain = ListTransformSpec([
            ReferenceTransformSpec("shift"),
            ReferenceTransformSpec("shift"),
        ]).resolve(pool).build()
        assert chain.apply_point(0.0, 0.0) == (4.0, 0.0)


class TestListTransformSpec:
    """Tests for ListTransformSpec."""

    def test_build_flattens(self):
        """Test nested lists build into one flat chain."""
        spec = ListTransformSpec([
            shift_spec(1),
            ListTransformSpec([shift_spec(2), shift_spec(3)]),
        ])
        chain = spec.build()
        assert isinstance(chain, CoordinateTransformList)
        assert len(chain) == 3
        assert chain.apply_point(0.0, 0.0) == (6.0, 0.0)

    def test_replace_last(self):
        """Test replacing the last entry."""
        spec = ListTransformSpec([shift_spec(1), shift_spec(2)])
        spec.replace_last(shift_spec(10))
        assert len(spec) == 2
        assert spec.build().apply_point(0.0, 0.0) == (11.0, 0.0)

    def test_replace_last_on_empty_appends(self):
        """Test replacing in an empty list appends."""
        spec = ListTransformSpec()
        spec.replace_last(shift_spec(4))
        assert len(spec) == 1

    def test_referenced_ids(self):
        """Test reference ids are collected recursively."""
        spec = ListTransformSpec([
            ReferenceTransformSpec("a"),
            ListTransformSpec([ReferenceTransformSpec("b"), shift_spec(1)]),
        ])
        assert spec.referenced_ids() == {"a", "b"}
        assert not spec.is_fully_resolved()

    def test_resolve_does_not_modify(self):
        """Test resolution returns a new list."""
        spec = ListTransformSpec([ReferenceTransformSpec("a")])
        resolved = spec.resolve({"a": shift_spec(1, spec_id="a")})
        assert resolved.is_fully_resolved()
        assert not spec.is_fully_resolved()


class TestTransformSpecFromDict:
    """Tests for transform_spec_from_dict."""

    def test_list_with_reference(self):
        """Test parsing a list holding a leaf and a reference."""
        spec = transform_spec_from_dict({
            "type": "list",
            "specList": [
                {"type": "leaf", "className": "affine", "dataString": "1 0 0 1 5 5"},
                {"type": "ref", "refId": "align"},
            ],
        })
        assert isinstance(spec, ListTransformSpec)
        assert spec.referenced_ids() == {"align"}
        assert spec.to_dict()["specList"][1] == {"type": "ref", "refId": "align"}

    def test_default_type_is_leaf(self):
        """Test entries without a type are leaves."""
        spec = transform_spec_from_dict({"className": "translation", "dataString": "1 2"})
        assert isinstance(spec, LeafTransformSpec)

    def test_missing_fields(self):
        """Test incomplete dictionaries fail fast."""
        with pytest.raises(ValueError):
            transform_spec_from_dict({"type": "leaf", "className": "affine"})
        with pytest.raises(ValueError):
            transform_spec_from_dict({"type": "ref"})

    def test_unknown_type(self):
        """Test unknown spec types are rejected."""
        with pytest.raises(ValueError, match="Unknown transform spec type"):
            transform_spec_from_dict({"type": "interpolated"})
