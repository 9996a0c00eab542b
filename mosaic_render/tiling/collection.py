"""
Resolved tile collections.

A collection holds an ordered set of tiles plus a shared pool of named
transform specs that tile chains may reference by id. Before a collection
is persisted or rendered every reference must resolve, and shared specs
that no tile references any more are pruned.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from ..transforms.specs import ReferenceTransformSpec, TransformSpec, transform_spec_from_dict
from .models import TileSpec

logger = logging.getLogger(__name__)


class ResolvedTileCollection:
    """
    Tiles plus the shared transform specs they reference.

    Example:
        >>> collection = ResolvedTileCollection(tiles)
        >>> collection.add_transform_spec(spec)
        >>> collection.add_reference_transform_to_all_tiles(spec.spec_id)
        >>> collection.remove_unreferenced_transforms()
        >>> render_tiles = collection.resolve_tile_specs()
    """

    def __init__(
        self,
        tile_specs: Optional[Iterable[TileSpec]] = None,
        transform_specs: Optional[Iterable[TransformSpec]] = None,
    ):
        self._transform_specs: Dict[str, TransformSpec] = {}
        self._tile_specs: Dict[str, TileSpec] = {}

        for spec in transform_specs or []:
            self.add_transform_spec(spec)
        for tile in tile_specs or []:
            self.add_tile_spec(tile)

    @property
    def transform_specs(self) -> Dict[str, TransformSpec]:
        return dict(self._transform_specs)

    @property
    def tile_specs(self) -> List[TileSpec]:
        """Tiles in insertion order."""
        return list(self._tile_specs.values())

    def get_tile_count(self) -> int:
        return len(self._tile_specs)

    def get_tile_spec(self, tile_id: str) -> TileSpec:
        try:
            return self._tile_specs[tile_id]
        except KeyError:
            raise KeyError(f"tile '{tile_id}' is not in the collection") from None

    def has_transform_spec(self, transform_id: str) -> bool:
        return transform_id in self._transform_specs

    def add_transform_spec(self, spec: TransformSpec) -> None:
        """
        Add or replace a shared spec.

        Raises:
            ValueError: If the spec has no id
        """
        if not spec.spec_id:
            raise ValueError("shared transform specs must have an id")
        self._transform_specs[spec.spec_id] = spec

    def remove_transform_spec(self, transform_id: str) -> None:
        """
        Remove a shared spec.

        Tiles that still reference it are left untouched; validate() will
        report them until their chains are edited.
        """
        self._transform_specs.pop(transform_id, None)

    def add_tile_spec(self, tile: TileSpec) -> None:
        self._tile_specs[tile.tile_id] = tile

    def remove_tile_spec(self, tile_id: str) -> None:
        self._tile_specs.pop(tile_id, None)

    def add_transform_spec_to_tile(
        self,
        tile_id: str,
        spec: TransformSpec,
        replace_last: bool = False,
    ) -> None:
        """
        Append a spec to one tile's chain.

        Raises:
            KeyError: If the tile is unknown
            ValueError: If the spec references a missing shared spec
        """
        self._check_references(spec.referenced_ids())
        self.get_tile_spec(tile_id).add_transform_spec(spec, replace_last=replace_last)

    def add_reference_transform_to_all_tiles(
        self,
        transform_id: str,
        replace_last: bool = False,
    ) -> None:
        """
        Append a reference to a shared spec to every tile's chain.

        Raises:
            ValueError: If the shared spec does not exist
        """
        self._check_references({transform_id})
        for tile in self._tile_specs.values():
            tile.add_transform_spec(ReferenceTransformSpec(ref_id=transform_id), replace_last=replace_last)
            # any derived box is stale now
            tile.min_x = tile.min_y = tile.max_x = tile.max_y = None

    def referenced_transform_ids(self) -> Set[str]:
        """Ids referenced by any tile chain or, transitively, by shared specs."""
        ids: Set[str] = set()
        pending = set()
        for tile in self._tile_specs.values():
            pending |= tile.transforms.referenced_ids()
        while pending:
            transform_id = pending.pop()
            if transform_id in ids:
                continue
            ids.add(transform_id)
            spec = self._transform_specs.get(transform_id)
            if spec is not None:
                pending |= spec.referenced_ids() - ids
        return ids

    def remove_unreferenced_transforms(self) -> int:
        """
        Drop shared specs no tile references.

        Returns:
            Number of specs removed
        """
        referenced = self.referenced_transform_ids()
        unreferenced = [t for t in self._transform_specs if t not in referenced]
        for transform_id in unreferenced:
            del self._transform_specs[transform_id]
        if unreferenced:
            logger.debug(f"Removed {len(unreferenced)} unreferenced transforms: {unreferenced}")
        return len(unreferenced)

    def validate(self) -> None:
        """
        Check that every referenced shared spec exists and that shared
        specs do not reference themselves, directly or through others.

        Raises:
            ValueError: Listing the tiles with dangling or cyclic references
        """
        problems = []
        for tile in self._tile_specs.values():
            missing = sorted(self._missing_ids(tile.transforms.referenced_ids()))
            if missing:
                problems.append(f"{tile.tile_id} -> {missing}")
        for transform_id, spec in self._transform_specs.items():
            missing = sorted(self._missing_ids(spec.referenced_ids()))
            if missing:
                problems.append(f"shared spec {transform_id} -> {missing}")
                continue
            try:
                spec.resolve(self._transform_specs, frozenset([transform_id]))
            except ValueError as e:
                problems.append(f"shared spec {transform_id}: {e}")
        if problems:
            raise ValueError(f"unresolved transform references: {'; '.join(problems)}")

    def resolve_tile_specs(self) -> List[TileSpec]:
        """
        Tiles with every reference replaced by its shared spec.

        The collection itself is not modified.

        Raises:
            ValueError: If any reference cannot be resolved
        """
        self.validate()
        resolved = []
        for tile in self._tile_specs.values():
            resolved.append(TileSpec(
                tile_id=tile.tile_id,
                mipmap_levels=dict(tile.mipmap_levels),
                transforms=tile.transforms.resolve(self._transform_specs),
                width=tile.width,
                height=tile.height,
                min_intensity=tile.min_intensity,
                max_intensity=tile.max_intensity,
                z=tile.z,
                min_x=tile.min_x,
                min_y=tile.min_y,
                max_x=tile.max_x,
                max_y=tile.max_y,
            ))
        return resolved

    def _missing_ids(self, ids: Set[str]) -> Set[str]:
        return {i for i in ids if i not in self._transform_specs}

    def _check_references(self, ids: Set[str]) -> None:
        missing = self._missing_ids(ids)
        if missing:
            raise ValueError(f"transform specs not in collection: {sorted(missing)}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "transformIdToSpecMap": {k: v.to_dict() for k, v in self._transform_specs.items()},
            "tileIdToSpecMap": {k: v.to_dict() for k, v in self._tile_specs.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolvedTileCollection":
        """Create from dictionary."""
        transform_specs = []
        for transform_id, spec_data in data.get("transformIdToSpecMap", {}).items():
            spec = transform_spec_from_dict(spec_data)
            spec.spec_id = transform_id
            transform_specs.append(spec)
        tiles = [TileSpec.from_dict(t) for t in data.get("tileIdToSpecMap", {}).values()]
        return cls(tile_specs=tiles, transform_specs=transform_specs)

    @classmethod
    def from_json_file(cls, path: str) -> "ResolvedTileCollection":
        """
        Load a collection, or a plain JSON list of tile specs.
        """
        with open(path, "r") as f:
            data = json.load(f)
        if isinstance(data, list):
            return cls(tile_specs=[TileSpec.from_dict(t) for t in data])
        return cls.from_dict(data)


def apply_transform_to_collection(
    collection: ResolvedTileCollection,
    spec: TransformSpec,
    replace_last: bool = False,
) -> int:
    """
    Apply one shared transform to every tile of a collection.

    Adds the spec to the shared pool, appends a reference to it to every
    tile chain, prunes shared specs that are no longer referenced, and
    validates what remains.

    Returns:
        Number of tiles in the collection
    """
    collection.add_transform_spec(spec)
    collection.add_reference_transform_to_all_tiles(spec.spec_id, replace_last=replace_last)
    collection.remove_unreferenced_transforms()
    collection.validate()
    logger.info(f"Applied transform {spec.spec_id} to {collection.get_tile_count()} tiles")
    return collection.get_tile_count()
