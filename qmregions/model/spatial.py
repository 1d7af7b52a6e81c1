"""KD-tree backed proximity queries."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree

from qmregions import config
from qmregions.errors import ParseError
from qmregions.model.geometry import distances
from qmregions.model.store import Structure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContactPair:
    """Pair of atoms closer than a threshold.

    Attributes
    ----------
    first
        Serial of the atom that comes first in the structure.
    second
        Serial of the other atom.
    distance
        Distance in Angstrom.
    """

    first: int
    second: int
    distance: float

    def to_dict(self) -> Dict[str, object]:
        return {"first": self.first, "second": self.second, "distance": self.distance}


class SpatialIndex:
    """Proximity queries over a fixed set of coordinates.

    The tree stores array indices only; serials and residues are looked up
    in the structure the index was built from.

    Attributes
    ----------
    coordinates_version
        Structure coordinate version the tree was built for.
    """

    def __init__(
        self,
        structure: Structure,
        submit: Optional[Callable[..., Future]] = None,
        chunk_size: int = config.SCAN_CHUNK_SIZE,
    ) -> None:
        self._structure = structure
        self._submit = submit
        self._chunk_size = max(1, int(chunk_size))
        self._coords = np.array(structure.coordinates(), dtype=np.float64)
        self._residue_of = np.array(
            [atom.residue_index for atom in structure.atoms], dtype=np.int64
        )
        names = [atom.name.strip().upper() for atom in structure.atoms]
        self._carbonyl = np.array([name == "C" for name in names], dtype=bool)
        self._amide = np.array([name == "N" for name in names], dtype=bool)
        self._tree = cKDTree(self._coords) if len(self._coords) else None
        self.coordinates_version = structure.coordinates_version
        logger.debug("Built spatial index over %d atoms", len(self._coords))

    def is_current(self, structure: Structure) -> bool:
        return (
            structure is self._structure
            and structure.coordinates_version == self.coordinates_version
        )

    def sphere(self, center_serial: int, radius: float) -> List[Tuple[int, float]]:
        """Return atoms within ``radius`` of an atom, the center included.

        Parameters
        ----------
        center_serial
            Serial of the center atom.
        radius
            Inclusive radius in Angstrom.

        Returns
        -------
        list of tuple
            ``(serial, distance)`` pairs sorted by distance, then serial.

        Raises
        ------
        ParseError
            If the radius is negative.
        NotFoundError
            If the center atom does not exist.
        """

        if radius < 0:
            raise ParseError(f"Sphere radius must be non-negative, got {radius}", {"radius": radius})
        center = self._coords[self._structure.atom_index(center_serial)]
        limit = radius + config.SPHERE_TOLERANCE
        candidates = np.asarray(self._tree.query_ball_point(center, limit), dtype=np.int64)
        found = distances(center, self._coords[candidates])
        atoms = self._structure.atoms
        hits = [
            (atoms[index].serial, float(value))
            for index, value in zip(candidates.tolist(), found.tolist())
            if value <= limit
        ]
        hits.sort(key=lambda item: (item[1], item[0]))
        return hits

    def residue_sphere(self, center_serial: int, radius: float) -> List[int]:
        """Return indices of residues with any atom inside the sphere, nearest first."""
        return self._structure.residues_of(serial for serial, _ in self.sphere(center_serial, radius))

    def clash_scan(self, threshold: float = config.DEFAULT_CLASH_CUTOFF) -> List[ContactPair]:
        """Return inter-residue pairs closer than the clash threshold."""
        return self._pair_scan(threshold)

    def contact_scan(self, threshold: float = config.DEFAULT_CONTACT_CUTOFF) -> List[ContactPair]:
        """Return inter-residue pairs closer than ``threshold``.

        Atoms of the same residue and peptide-bonded C/N pairs of consecutive
        residues are never reported.

        Parameters
        ----------
        threshold
            Exclusive distance cutoff in Angstrom.

        Returns
        -------
        list of ContactPair
            Each unordered pair once, sorted by distance then serials.
        """
        return self._pair_scan(threshold)

    def _pair_scan(self, threshold: float) -> List[ContactPair]:
        if threshold <= 0:
            raise ParseError(f"Cutoff must be positive, got {threshold}", {"cutoff": threshold})
        count = len(self._coords)
        if count < 2:
            return []
        chunks = [
            (start, min(start + self._chunk_size, count))
            for start in range(0, count, self._chunk_size)
        ]
        if self._submit is not None and len(chunks) > 1:
            futures = [self._submit(self._scan_chunk, start, stop, threshold) for start, stop in chunks]
            parts = [future.result() for future in futures]
        else:
            parts = [self._scan_chunk(start, stop, threshold) for start, stop in chunks]

        atoms = self._structure.atoms
        pairs = [
            ContactPair(atoms[i].serial, atoms[j].serial, value)
            for part in parts
            for i, j, value in part
        ]
        pairs.sort(key=lambda pair: (pair.distance, pair.first, pair.second))
        logger.debug("Pair scan below %.3f found %d pairs", threshold, len(pairs))
        return pairs

    def _bonded_neighbours(self, i: int, j: int) -> bool:
        # Same residue, or the peptide bond C(k)-N(k+1).
        first, second = self._residue_of[i], self._residue_of[j]
        if first == second:
            return True
        if self._carbonyl[i] and self._amide[j] and second == first + 1:
            return True
        return bool(self._amide[i] and self._carbonyl[j] and first == second + 1)

    def _scan_chunk(self, start: int, stop: int, threshold: float) -> List[Tuple[int, int, float]]:
        neighbours = self._tree.query_ball_point(self._coords[start:stop], threshold)
        found: List[Tuple[int, int, float]] = []
        for offset, candidates in enumerate(neighbours):
            i = start + offset
            later = [j for j in candidates if j > i and not self._bonded_neighbours(i, j)]
            if not later:
                continue
            values = distances(self._coords[i], self._coords[later])
            for j, value in zip(later, values.tolist()):
                if value < threshold:
                    found.append((i, j, float(value)))
        return found

