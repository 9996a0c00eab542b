"""
Parametric 2D coordinate transforms.

Every transform maps an (N, 2) array of (x, y) points to a new (N, 2)
array. Transforms are built from a class name and a whitespace separated
data string, the same form they take inside tile specs.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Type
import numpy as np


class CoordinateTransform(ABC):
    """Base class for 2D coordinate transforms."""

    #: Name used in tile specs to identify the transform class
    class_name: str = ""

    @abstractmethod
    def apply(self, points: np.ndarray) -> np.ndarray:
        """
        Transform points.

        Args:
            points: (N, 2) array of (x, y) coordinates

        Returns:
            (N, 2) float64 array of transformed coordinates
        """

    @abstractmethod
    def to_data_string(self) -> str:
        """Serialize parameters to a whitespace separated string."""

    @classmethod
    @abstractmethod
    def from_data_string(cls, data: str) -> "CoordinateTransform":
        """Create from a whitespace separated parameter string."""

    def apply_point(self, x: float, y: float) -> Tuple[float, float]:
        """Transform a single point."""
        result = self.apply(np.array([[x, y]], dtype=np.float64))
        return (float(result[0, 0]), float(result[0, 1]))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_data_string()})"


def _parse_values(data: str, expected: int, name: str) -> List[float]:
    """Parse a data string into exactly `expected` floats."""
    try:
        values = [float(v) for v in data.replace(",", " ").split()]
    except ValueError as e:
        raise ValueError(f"{name}: cannot parse data string '{data}'") from e
    if len(values) != expected:
        raise ValueError(f"{name}: expected {expected} values, got {len(values)} in '{data}'")
    return values


def _as_points(points: np.ndarray) -> np.ndarray:
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"points must have shape (N, 2), got {pts.shape}")
    return pts


class AffineTransform2D(CoordinateTransform):
    """
    Affine transform x' = m00*x + m01*y + m02, y' = m10*x + m11*y + m12.

    The data string lists the coefficients column by column:
    ``m00 m10 m01 m11 m02 m12``.
    """

    class_name = "affine"

    def __init__(
        self,
        m00: float = 1.0,
        m10: float = 0.0,
        m01: float = 0.0,
        m11: float = 1.0,
        m02: float = 0.0,
        m12: float = 0.0,
    ):
        self.matrix = np.array(
            [[m00, m01, m02], [m10, m11, m12]],
            dtype=np.float64,
        )

    @property
    def scale_x(self) -> float:
        return float(self.matrix[0, 0])

    @property
    def scale_y(self) -> float:
        return float(self.matrix[1, 1])

    @property
    def translation(self) -> Tuple[float, float]:
        """Translation part (m02, m12)."""
        return (float(self.matrix[0, 2]), float(self.matrix[1, 2]))

    def apply(self, points: np.ndarray) -> np.ndarray:
        pts = _as_points(points)
        return pts @ self.matrix[:, :2].T + self.matrix[:, 2]

    def to_data_string(self) -> str:
        m = self.matrix
        values = [m[0, 0], m[1, 0], m[0, 1], m[1, 1], m[0, 2], m[1, 2]]
        return " ".join(repr(float(v)) for v in values)

    @classmethod
    def from_data_string(cls, data: str) -> "AffineTransform2D":
        return cls(*_parse_values(data, 6, cls.__name__))

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> "AffineTransform2D":
        """Create from a 2x3 matrix."""
        m = np.asarray(matrix, dtype=np.float64)
        return cls(m[0, 0], m[1, 0], m[0, 1], m[1, 1], m[0, 2], m[1, 2])


class TranslationTransform2D(CoordinateTransform):
    """Pure translation by (tx, ty)."""

    class_name = "translation"

    def __init__(self, tx: float = 0.0, ty: float = 0.0):
        self.tx = float(tx)
        self.ty = float(ty)

    def apply(self, points: np.ndarray) -> np.ndarray:
        return _as_points(points) + np.array([self.tx, self.ty])

    def to_data_string(self) -> str:
        return f"{self.tx!r} {self.ty!r}"

    @classmethod
    def from_data_string(cls, data: str) -> "TranslationTransform2D":
        return cls(*_parse_values(data, 2, cls.__name__))


class PolynomialTransform2D(CoordinateTransform):
    """
    Second order polynomial transform (non-affine).

    x' = a0 + a1*x + a2*y + a3*x^2 + a4*x*y + a5*y^2
    y' = b0 + b1*x + b2*y + b3*x^2 + b4*x*y + b5*y^2

    Data string: ``a0 .. a5 b0 .. b5``.
    """

    class_name = "polynomial2"

    def __init__(self, coefficients: Sequence[float]):
        coeffs = np.asarray(coefficients, dtype=np.float64)
        if coeffs.shape != (12,):
            raise ValueError(f"PolynomialTransform2D needs 12 coefficients, got {coeffs.size}")
        self.coefficients = coeffs

    def apply(self, points: np.ndarray) -> np.ndarray:
        pts = _as_points(points)
        x, y = pts[:, 0], pts[:, 1]
        terms = np.stack([np.ones_like(x), x, y, x * x, x * y, y * y], axis=1)
        a = self.coefficients[:6]
        b = self.coefficients[6:]
        return np.stack([terms @ a, terms @ b], axis=1)

    def to_data_string(self) -> str:
        return " ".join(repr(float(v)) for v in self.coefficients)

    @classmethod
    def from_data_string(cls, data: str) -> "PolynomialTransform2D":
        return cls(_parse_values(data, 12, cls.__name__))


TRANSFORM_CLASSES: Dict[str, Type[CoordinateTransform]] = {
    AffineTransform2D.class_name: AffineTransform2D,
    TranslationTransform2D.class_name: TranslationTransform2D,
    PolynomialTransform2D.class_name: PolynomialTransform2D,
}


def create_transform(class_name: str, data: str) -> CoordinateTransform:
    """
    Instantiate a transform from its spec class name and data string.

    Raises:
        ValueError: If the class name is unknown or the data is malformed
    """
    transform_class = TRANSFORM_CLASSES.get(class_name)
    if transform_class is None:
        raise ValueError(
            f"Unknown transform class: {class_name}. Available: {sorted(TRANSFORM_CLASSES)}"
        )
    return transform_class.from_data_string(data)


class CoordinateTransformList(CoordinateTransform):
    """
    Ordered chain of transforms, applied first to last.

    Composition is never cached; every call to apply() runs the chain.
    """

    class_name = "list"

    def __init__(self, transforms: Optional[Iterable[CoordinateTransform]] = None):
        self.transforms: List[CoordinateTransform] = list(transforms or [])

    def add(self, transform: CoordinateTransform) -> None:
        self.transforms.append(transform)

    def apply(self, points: np.ndarray) -> np.ndarray:
        result = _as_points(points)
        for transform in self.transforms:
            result = transform.apply(result)
        return result

    def to_data_string(self) -> str:
        raise NotImplementedError("transform lists are serialized as spec lists")

    @classmethod
    def from_data_string(cls, data: str) -> "CoordinateTransformList":
        raise NotImplementedError("transform lists are built from spec lists")

    def copy(self) -> "CoordinateTransformList":
        """Shallow copy; transforms themselves are shared."""
        return CoordinateTransformList(self.transforms)

    def __len__(self) -> int:
        return len(self.transforms)

    def __iter__(self) -> Iterator[CoordinateTransform]:
        return iter(self.transforms)

    def __getitem__(self, index: int) -> CoordinateTransform:
        return self.transforms[index]

    def __repr__(self) -> str:
        return f"CoordinateTransformList({self.transforms!r})"
