"""
Serializable transform specifications.

A tile's transform chain is stored as a list of specs. Leaf specs carry a
class name and data string, reference specs point at a named spec in a
shared pool, and list specs nest other specs. Only fully resolved chains
(no remaining references) can be turned into coordinate transforms.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Set

from .models import CoordinateTransform, CoordinateTransformList, create_transform


class TransformSpec:
    """Base class for transform specs."""

    spec_id: Optional[str] = None

    def is_fully_resolved(self) -> bool:
        raise NotImplementedError

    def referenced_ids(self) -> Set[str]:
        """Ids of all shared specs this spec (transitively) references."""
        raise NotImplementedError

    def resolve(
        self,
        pool: Mapping[str, "TransformSpec"],
        visiting: FrozenSet[str] = frozenset(),
    ) -> "TransformSpec":
        """
        Return a copy with every reference replaced by its pool entry.

        Args:
            pool: Shared specs by id
            visiting: Ids of the references currently being expanded

        Raises:
            ValueError: For missing or cyclic references
        """
        raise NotImplementedError

    def build(self) -> CoordinateTransform:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass
class LeafTransformSpec(TransformSpec):
    """A single parametric transform."""
    class_name: str
    data_string: str
    spec_id: Optional[str] = None

    def is_fully_resolved(self) -> bool:
        return True

    def referenced_ids(self) -> Set[str]:
        return set()

    def resolve(
        self,
        pool: Mapping[str, TransformSpec],
        visiting: FrozenSet[str] = frozenset(),
    ) -> "LeafTransformSpec":
        return self

    def build(self) -> CoordinateTransform:
        return create_transform(self.class_name, self.data_string)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": "leaf",
            "className": self.class_name,
            "dataString": self.data_string,
        }
        if self.spec_id is not None:
            result["id"] = self.spec_id
        return result

    @classmethod
    def from_transform(
        cls,
        transform: CoordinateTransform,
        spec_id: Optional[str] = None,
    ) -> "LeafTransformSpec":
        """Create a spec describing an existing transform."""
        return cls(
            class_name=transform.class_name,
            data_string=transform.to_data_string(),
            spec_id=spec_id,
        )


@dataclass
class ReferenceTransformSpec(TransformSpec):
    """Reference to a named spec in a shared pool."""
    ref_id: str
    spec_id: Optional[str] = None

    def is_fully_resolved(self) -> bool:
        return False

    def referenced_ids(self) -> Set[str]:
        return {self.ref_id}

    def resolve(
        self,
        pool: Mapping[str, TransformSpec],
        visiting: FrozenSet[str] = frozenset(),
    ) -> TransformSpec:
        if self.ref_id in visiting:
            raise ValueError(f"transform reference cycle through '{self.ref_id}'")
        target = pool.get(self.ref_id)
        if target is None:
            raise ValueError(f"transform reference '{self.ref_id}' is not in the shared pool")
        # shared specs may themselves reference other shared specs
        return target.resolve(pool, visiting | {self.ref_id})

    def build(self) -> CoordinateTransform:
        raise ValueError(f"cannot build unresolved transform reference '{self.ref_id}'")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "ref", "refId": self.ref_id}


@dataclass
class ListTransformSpec(TransformSpec):
    """Ordered list of specs, applied first to last."""
    specs: List[TransformSpec] = field(default_factory=list)
    spec_id: Optional[str] = None

    def add(self, spec: TransformSpec) -> None:
        self.specs.append(spec)

    def replace_last(self, spec: TransformSpec) -> None:
        if self.specs:
            self.specs[-1] = spec
        else:
            self.specs.append(spec)

    def is_fully_resolved(self) -> bool:
        return all(s.is_fully_resolved() for s in self.specs)

    def referenced_ids(self) -> Set[str]:
        ids: Set[str] = set()
        for spec in self.specs:
            ids |= spec.referenced_ids()
        return ids

    def resolve(
        self,
        pool: Mapping[str, TransformSpec],
        visiting: FrozenSet[str] = frozenset(),
    ) -> "ListTransformSpec":
        return ListTransformSpec(
            specs=[s.resolve(pool, visiting) for s in self.specs],
            spec_id=self.spec_id,
        )

    def build(self) -> CoordinateTransformList:
        chain = CoordinateTransformList()
        for spec in self.specs:
            built = spec.build()
            if isinstance(built, CoordinateTransformList):
                for transform in built:
                    chain.add(transform)
            else:
                chain.add(built)
        return chain

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": "list",
            "specList": [s.to_dict() for s in self.specs],
        }
        if self.spec_id is not None:
            result["id"] = self.spec_id
        return result

    def __len__(self) -> int:
        return len(self.specs)


def transform_spec_from_dict(data: Dict[str, Any]) -> TransformSpec:
    """
    Create a spec from its dictionary form.

    Raises:
        ValueError: For unknown spec types or missing fields
    """
    spec_type = data.get("type", "leaf")
    if spec_type == "leaf":
        try:
            return LeafTransformSpec(
                class_name=data["className"],
                data_string=data["dataString"],
                spec_id=data.get("id"),
            )
        except KeyError as e:
            raise ValueError(f"leaf transform spec is missing {e}") from e
    if spec_type == "ref":
        if "refId" not in data:
            raise ValueError("reference transform spec is missing 'refId'")
        return ReferenceTransformSpec(ref_id=data["refId"], spec_id=data.get("id"))
    if spec_type == "list":
        return ListTransformSpec(
            specs=[transform_spec_from_dict(d) for d in data.get("specList", [])],
            spec_id=data.get("id"),
        )
    raise ValueError(f"Unknown transform spec type: {spec_type}")
