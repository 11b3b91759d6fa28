"""
Pore Network (Graph Model)
==========================
Pores are the nodes and throats the edges of the network graph. Positions
and radii are stored in voxel units; `voxel_size` (micrometers per voxel)
converts them to meters.

The network is validated once, at construction, and is read-only afterwards.
Derived quantities (tortuosity, permeability) are NOT cached here; they are
returned by value from the solver.
"""
from __future__ import annotations

import hashlib
import logging
import math
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

import numpy as np

from permeabilityanalysis.config import MICROMETER, SUSPICIOUS_VOXEL_SIZE
from permeabilityanalysis.exceptions import NetworkError

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


class Pore:
    """
    Represents a pore (void region) of the network.
    """
    __slots__ = ("id", "position", "radius")

    def __init__(
        self,
        index: int,
        position: list[float] | tuple[float, float, float] | npt.NDArray[np.float64],
        radius: float,
    ) -> None:
        """
        Initialize the pore.

        Args:
            index: Unique, non-negative pore identifier.
            position: Center of the pore in voxel coordinates [X, Y, Z].
            radius: Equivalent radius in voxel units.
        """
        coords = np.array(position, dtype=np.float64).reshape(-1)
        if coords.size != 3:
            raise NetworkError(f"Pore {index}: position must have 3 coordinates, got {coords.size}.")
        coords.setflags(write=False)

        self.id = int(index)
        self.position: npt.NDArray[np.float64] = coords
        self.radius = float(radius)

    def __repr__(self) -> str:
        """String representation of the pore."""
        return f"{self.__class__.__name__}(id={self.id}, position={self.position.tolist()}, radius={self.radius})"

    @property
    def x(self) -> float:
        return float(self.position[0])

    @property
    def y(self) -> float:
        return float(self.position[1])

    @property
    def z(self) -> float:
        return float(self.position[2])

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "position": self.position.tolist(), "radius": self.radius}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Pore:
        return Pore(index=data["id"], position=data["position"], radius=data["radius"])


class Throat:
    """
    Represents a throat (constriction) connecting two pores.
    """
    __slots__ = ("id", "pore1_id", "pore2_id", "radius")

    def __init__(self, index: int, pore1_id: int, pore2_id: int, radius: float) -> None:
        """
        Initialize the throat.

        Args:
            index: Unique throat identifier.
            pore1_id: Id of the first connected pore.
            pore2_id: Id of the second connected pore.
            radius: Equivalent radius in voxel units.
        """
        self.id = int(index)
        self.pore1_id = int(pore1_id)
        self.pore2_id = int(pore2_id)
        self.radius = float(radius)

    def __repr__(self) -> str:
        """String representation of the throat."""
        return (f"{self.__class__.__name__}(id={self.id}, pores=({self.pore1_id}, {self.pore2_id}), "
                f"radius={self.radius})")

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "pore1_id": self.pore1_id, "pore2_id": self.pore2_id, "radius": self.radius}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Throat:
        return Throat(
            index=data["id"],
            pore1_id=data["pore1_id"],
            pore2_id=data["pore2_id"],
            radius=data["radius"],
        )


class PoreNetwork:
    """
    Owning collection of pores and throats plus the voxel size.

    Raises:
        NetworkError: On any construction contract violation (duplicate ids,
            dangling throat references, negative radii, invalid voxel size).
    """

    def __init__(
        self,
        pores: Iterable[Pore],
        throats: Iterable[Throat],
        voxel_size: float = 1.0,
        name: str = "network",
    ) -> None:
        """
        Initialize and validate the network.

        Args:
            pores: Pores of the network (any order; the order is kept).
            throats: Throats of the network.
            voxel_size: Physical length of one voxel in micrometers.
            name: Label used in logs and reports.
        """
        self.name = name
        self._pores: tuple[Pore, ...] = tuple(pores)
        self._throats: tuple[Throat, ...] = tuple(throats)
        self._voxel_size = float(voxel_size)

        self._pore_index: Dict[int, int] = {}
        self._validate()

        if self._pores:
            positions = np.vstack([pore.position for pore in self._pores])
        else:
            positions = np.empty((0, 3), dtype=np.float64)
        positions.setflags(write=False)
        self._positions: npt.NDArray[np.float64] = positions

    def _validate(self) -> None:
        if not math.isfinite(self._voxel_size) or self._voxel_size <= 0.0:
            raise NetworkError(f"Voxel size must be a positive finite number, got {self._voxel_size}.")
        if self._voxel_size > SUSPICIOUS_VOXEL_SIZE:
            logger.warning(f"Suspicious voxel size: {self._voxel_size} um (> {SUSPICIOUS_VOXEL_SIZE} um).")

        for i, pore in enumerate(self._pores):
            if pore.id < 0:
                raise NetworkError(f"Pore ids must be non-negative, got {pore.id}.")
            if pore.id in self._pore_index:
                raise NetworkError(f"Duplicate pore id {pore.id}.")
            if not np.all(np.isfinite(pore.position)):
                raise NetworkError(f"Pore {pore.id} has a non-finite position.")
            if not math.isfinite(pore.radius) or pore.radius < 0.0:
                raise NetworkError(f"Pore {pore.id} has an invalid radius {pore.radius}.")
            self._pore_index[pore.id] = i

        throat_ids: set[int] = set()
        for throat in self._throats:
            if throat.id in throat_ids:
                raise NetworkError(f"Duplicate throat id {throat.id}.")
            throat_ids.add(throat.id)
            for pore_id in (throat.pore1_id, throat.pore2_id):
                if pore_id not in self._pore_index:
                    raise NetworkError(f"Throat {throat.id} references nonexistent pore {pore_id}.")
            if not math.isfinite(throat.radius) or throat.radius < 0.0:
                raise NetworkError(f"Throat {throat.id} has an invalid radius {throat.radius}.")

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(name='{self.name}', pores={len(self._pores)}, "
                f"throats={len(self._throats)}, voxel_size={self._voxel_size})")

    @property
    def pores(self) -> tuple[Pore, ...]:
        return self._pores

    @property
    def throats(self) -> tuple[Throat, ...]:
        return self._throats

    @property
    def voxel_size(self) -> float:
        """Voxel size in micrometers."""
        return self._voxel_size

    @property
    def voxel_size_m(self) -> float:
        """Voxel size in meters."""
        return self._voxel_size * MICROMETER

    @property
    def positions(self) -> npt.NDArray[np.float64]:
        """Pore positions (N x 3, voxel units) in pore order."""
        return self._positions

    @property
    def number_of_pores(self) -> int:
        return len(self._pores)

    @property
    def number_of_throats(self) -> int:
        return len(self._throats)

    @property
    def is_empty(self) -> bool:
        """A network without pores or without throats cannot carry flow."""
        return not self._pores or not self._throats

    @property
    def max_pore_id(self) -> int:
        return max(self._pore_index) if self._pore_index else -1

    @property
    def max_pore_radius(self) -> float:
        return max((pore.radius for pore in self._pores), default=0.0)

    @property
    def max_throat_radius(self) -> float:
        return max((throat.radius for throat in self._throats), default=0.0)

    def has_pore(self, pore_id: int) -> bool:
        return pore_id in self._pore_index

    def pore(self, pore_id: int) -> Pore:
        """Return the pore with the given id."""
        try:
            return self._pores[self._pore_index[pore_id]]
        except KeyError:
            raise KeyError(f"No pore with id {pore_id}.") from None

    def pore_position(self, pore_id: int) -> int:
        """Return the index of the pore with the given id in `pores`."""
        return self._pore_index[pore_id]

    def fingerprint(self) -> str:
        """
        Stable content hash of the network.

        Two networks with the same pores, throats and voxel size (in the same
        order) share a fingerprint; used as a cache key by callers.
        """
        digest = hashlib.sha256()
        digest.update(np.float64(self._voxel_size).tobytes())
        digest.update(np.array([p.id for p in self._pores], dtype=np.int64).tobytes())
        digest.update(np.ascontiguousarray(self._positions).tobytes())
        digest.update(np.array([p.radius for p in self._pores], dtype=np.float64).tobytes())
        digest.update(np.array(
            [(t.id, t.pore1_id, t.pore2_id) for t in self._throats], dtype=np.int64
        ).tobytes())
        digest.update(np.array([t.radius for t in self._throats], dtype=np.float64).tobytes())
        return digest.hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "voxel_size": self._voxel_size,
            "pores": [pore.to_dict() for pore in self._pores],
            "throats": [throat.to_dict() for throat in self._throats],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any], name: Optional[str] = None) -> PoreNetwork:
        try:
            pores: List[Pore] = [Pore.from_dict(p) for p in data.get("pores", [])]
            throats: List[Throat] = [Throat.from_dict(t) for t in data.get("throats", [])]
            voxel_size = float(data.get("voxel_size", 1.0))
        except NetworkError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Malformed network data: {e}") from e
        return PoreNetwork(
            pores=pores,
            throats=throats,
            voxel_size=voxel_size,
            name=name or data.get("name", "network"),
        )
