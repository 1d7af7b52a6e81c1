"""Distance, angle and dihedral measurements."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np
from MDAnalysis.lib.distances import calc_angles, calc_dihedrals

from qmregions.errors import GeometryError
from qmregions.model.store import Structure

logger = logging.getLogger(__name__)

_KINDS = {2: "distance", 3: "angle", 4: "dihedral"}


@dataclass(frozen=True)
class Measurement:
    """Result of a geometric measurement.

    Attributes
    ----------
    kind
        ``distance`` (Angstrom), ``angle`` or ``dihedral`` (degrees).
    value
        Measured value.
    atoms
        Atom serials in the order measured.
    """

    kind: str
    value: float
    atoms: Tuple[int, ...]

    @property
    def unit(self) -> str:
        return "Å" if self.kind == "distance" else "°"

    def format(self) -> str:
        if self.kind == "distance":
            return f"Distance: {self.value:.3f} Å"
        return f"{self.kind.capitalize()}: {self.value:.1f}°"

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind,
            "value": self.value,
            "unit": self.unit,
            "atoms": list(self.atoms),
        }


def distances(origin: Sequence[float], points: np.ndarray) -> np.ndarray:
    """Return Euclidean distances from ``origin`` to each row of ``points``."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    delta = points - np.asarray(origin, dtype=np.float64)
    return np.sqrt(np.einsum("ij,ij->i", delta, delta))


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    return float(distances(a, np.asarray(b, dtype=np.float64))[0])


def _as_row(point: Sequence[float]) -> np.ndarray:
    return np.asarray(point, dtype=np.float64).reshape(1, 3)


def angle(a: Sequence[float], b: Sequence[float], c: Sequence[float]) -> float:
    """Return the angle a-b-c in degrees."""
    radians = calc_angles(_as_row(a), _as_row(b), _as_row(c))
    return float(np.degrees(np.asarray(radians).reshape(-1)[0]))


def dihedral(
    a: Sequence[float], b: Sequence[float], c: Sequence[float], d: Sequence[float]
) -> float:
    """Return the signed dihedral a-b-c-d in degrees, in (-180, 180]."""
    radians = calc_dihedrals(_as_row(a), _as_row(b), _as_row(c), _as_row(d))
    value = float(np.degrees(np.asarray(radians).reshape(-1)[0]))
    if value <= -180.0:
        value += 360.0
    return value


def measure(structure: Structure, serials: Sequence[int]) -> Measurement:
    """Measure the distance, angle or dihedral defined by 2-4 atoms.

    Parameters
    ----------
    structure
        Structure holding the atoms.
    serials
        Atom serials, in measurement order.

    Returns
    -------
    Measurement
        Measured value with its kind.

    Raises
    ------
    GeometryError
        If fewer than 2 or more than 4 atoms are given.
    NotFoundError
        If a serial does not exist.
    """

    serials = tuple(serials)
    kind = _KINDS.get(len(serials))
    if kind is None:
        raise GeometryError(
            f"Measurement needs 2 to 4 atoms, got {len(serials)}",
            {"atoms": list(serials)},
        )
    coords = structure.coordinates()
    points = [coords[structure.atom_index(serial)] for serial in serials]
    if kind == "distance":
        value = distance(points[0], points[1])
    elif kind == "angle":
        value = angle(*points)
    else:
        value = dihedral(*points)
    logger.debug("Measured %s over %s: %f", kind, serials, value)
    return Measurement(kind=kind, value=value, atoms=serials)
