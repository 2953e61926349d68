"""
Uniform 3D bucket grids for fixed-radius neighbor queries over a frozen
point set. Points are bucketed once on insertion; a range query only scans
the buckets that can contain a point within the requested distance.
"""

import math
from typing import Dict, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

import numpy as np

from protcon.constants import DEFAULT_GRID_BUCKETS

# smallest bin width used for degenerate (zero-width) extents
MIN_BIN_WIDTH = 1e-6

T = TypeVar("T")


### FUNCTIONS ###
def calculate_extent(points: Iterable[Sequence[float]]) -> Tuple[np.ndarray, np.ndarray]:
  """Compute the axis-aligned bounding box of a point set.

  Parameters:
    points: Iterable of 3D coordinates (or an ``(n, 3)`` array)

  Returns:
    ``(lo, hi)`` corner coordinates as two arrays of shape ``(3,)``

  """
  xyz = np.asarray(list(points) if not isinstance(points, np.ndarray) else points, dtype=float)
  if xyz.size == 0:
    raise ValueError("Cannot calculate the extent of an empty point set.")
  xyz = xyz.reshape(-1, 3)
  return xyz.min(axis=0), xyz.max(axis=0)


### CLASSES ###
class SpatialIndex:
  def __init__(self, xlo: float, ylo: float, zlo: float, xhi: float, yhi: float, zhi: float, n: int = DEFAULT_GRID_BUCKETS):
    """Uniform ``n x n x n`` bucket grid over a fixed bounding box.

    Points outside the box may still be added, they get clamped into the
    closest edge bucket. Tags are opaque integers stored next to each point
    (by default the insertion index).

    Parameters:
      xlo, ylo, zlo: Lower corner of the grid
      xhi, yhi, zhi: Upper corner of the grid
      n: Number of buckets along each axis

    """
    if xhi < xlo or yhi < ylo or zhi < zlo:
      raise ValueError(f"Invalid grid extent: ({xlo}, {ylo}, {zlo}) -> ({xhi}, {yhi}, {zhi})")
    self.lo = np.array([xlo, ylo, zlo], dtype=float)
    self.hi = np.array([xhi, yhi, zhi], dtype=float)
    self._points: List[np.ndarray] = []
    self._tags: List[int] = []
    self._xyz: Optional[np.ndarray] = None
    self.reinit_buckets(n)

  @classmethod
  def from_points(
    cls,
    points: Sequence[Sequence[float]],
    n: Optional[int] = None,
    characteristic_distance: Optional[float] = None,
    tags: Optional[Sequence] = None,
    pad: float = 0.0,
    add_points: bool = True,
  ):
    """Build a grid sized to a point set.

    Exactly one of ``n`` and ``characteristic_distance`` must be given. With a
    characteristic distance the bucket count is picked so that the bucket
    width roughly matches that distance.

    Parameters:
      points: Points used to compute the extent (and inserted if ``add_points``)
      n: Number of buckets along each axis
      characteristic_distance: Typical query radius
      tags: Optional tags for the inserted points
      pad: Symmetric padding added to the bounding box
      add_points: Insert the points after building the grid

    Returns:
      A new grid

    """
    if (n is None) == (characteristic_distance is None):
      raise ValueError("Provide exactly one of n or characteristic_distance.")
    lo, hi = calculate_extent(points)
    lo = lo - pad
    hi = hi + pad
    if characteristic_distance is not None:
      if characteristic_distance <= 0:
        raise ValueError(f"characteristic_distance must be positive, got {characteristic_distance}")
      n = max(1, int(math.ceil(float(np.max(hi - lo)) / characteristic_distance)))
    index = cls(lo[0], lo[1], lo[2], hi[0], hi[1], hi[2], n=n)
    if add_points:
      index.add_points(points, tags)
    return index

  def __len__(self) -> int:
    return len(self._points)

  def __repr__(self):
    return f"<{type(self).__name__}: N={self.n}, Points={len(self)}, Extent={self.lo.tolist()}->{self.hi.tolist()}>"

  @property
  def xlo(self) -> float:
    return float(self.lo[0])

  @property
  def ylo(self) -> float:
    return float(self.lo[1])

  @property
  def zlo(self) -> float:
    return float(self.lo[2])

  @property
  def xhi(self) -> float:
    return float(self.hi[0])

  @property
  def yhi(self) -> float:
    return float(self.hi[1])

  @property
  def zhi(self) -> float:
    return float(self.hi[2])

  def point_size(self) -> int:
    return len(self._points)

  def get_point(self, i: int) -> np.ndarray:
    return self._points[i]

  def get_point_tag(self, i: int):
    return self._tags[i]

  def distance(self, i: int, j: int) -> float:
    """Euclidean distance between two stored points."""
    return float(np.linalg.norm(self._points[i] - self._points[j]))

  def grid_spacing(self) -> np.ndarray:
    """Nominal bucket width along each axis, ``(hi - lo) / n``."""
    return (self.hi - self.lo) / self.n

  def reinit_buckets(self, n: int):
    """Change the number of buckets per axis and re-bucket all stored points.

    Parameters:
      n: New number of buckets along each axis

    """
    if n < 1:
      raise ValueError(f"Number of buckets must be at least 1, got {n}")
    self.n = int(n)
    self.bin_width = np.maximum((self.hi - self.lo) / self.n, MIN_BIN_WIDTH)
    self._buckets: Dict[Tuple[int, int, int], List[int]] = {}
    for i, p in enumerate(self._points):
      self._buckets.setdefault(self.point_bucket(p), []).append(i)

  def limit_index(self, i: int) -> int:
    """Clamp a bucket index into ``[0, n - 1]``."""
    if i < 0:
      return 0
    if i > self.n - 1:
      return self.n - 1
    return i

  def _raw_bucket(self, p: np.ndarray) -> Tuple[int, int, int]:
    idx = np.floor((p - self.lo) / self.bin_width)
    return int(idx[0]), int(idx[1]), int(idx[2])

  def point_bucket(self, p: Sequence[float]) -> Tuple[int, int, int]:
    """Bucket that holds (or would hold) point ``p``, clamped to the grid."""
    i, j, k = self._raw_bucket(np.asarray(p, dtype=float))
    return self.limit_index(i), self.limit_index(j), self.limit_index(k)

  def is_point_within_grid(self, p: Sequence[float]) -> bool:
    p = np.asarray(p, dtype=float)
    return bool(np.all(p >= self.lo) and np.all(p <= self.hi))

  def add_point(self, p: Sequence[float], tag: int):
    """Insert a point with an integer tag.

    Parameters:
      p: 3D coordinate
      tag: Tag stored alongside the point

    """
    p = np.array(p, dtype=float).reshape(3)
    self._points.append(p)
    self._tags.append(tag)
    self._buckets.setdefault(self.point_bucket(p), []).append(len(self._points) - 1)
    self._xyz = None

  def add_points(self, points: Iterable[Sequence[float]], tags: Optional[Sequence] = None):
    """Insert several points. Tags default to each point's insertion index."""
    points = list(points) if not isinstance(points, np.ndarray) else points
    if tags is not None and len(tags) != len(points):
      raise ValueError(f"Got {len(points)} points but {len(tags)} tags.")
    for i, p in enumerate(points):
      self.add_point(p, len(self._points) if tags is None else tags[i])

  def _coords(self) -> np.ndarray:
    if self._xyz is None:
      self._xyz = np.array(self._points, dtype=float).reshape(-1, 3)
    return self._xyz

  def _candidates(self, center: np.ndarray, dmax: float) -> List[int]:
    ci = self._raw_bucket(center)
    reach = np.ceil(dmax / self.bin_width).astype(int)
    ranges = []
    for axis in range(3):
      ranges.append(
        range(
          self.limit_index(ci[axis] - int(reach[axis])),
          self.limit_index(ci[axis] + int(reach[axis])) + 1,
        )
      )
    candidates = []
    for i in ranges[0]:
      for j in ranges[1]:
        for k in ranges[2]:
          bucket = self._buckets.get((i, j, k))
          if bucket:
            candidates.extend(bucket)
    return candidates

  def points_within(self, center: Sequence[float], dmin: float, dmax: float, by_tag: bool = False) -> List:
    """Find all stored points whose distance to ``center`` lies in ``[dmin, dmax]``.

    Only buckets within ``ceil(dmax / bin_width)`` of the center's bucket are
    scanned; every candidate is then checked against the exact Euclidean
    distance.

    Parameters:
      center: Query point, may lie outside the grid
      dmin: Minimum distance (inclusive)
      dmax: Maximum distance (inclusive)
      by_tag: Return the (de-duplicated) tags of matching points instead of their indices

    Returns:
      Matching point indices in ascending order, or their tags in order of first appearance

    """
    if dmax < 0 or not self._points:
      return []
    center = np.asarray(center, dtype=float).reshape(3)
    candidates = self._candidates(center, dmax)
    if not candidates:
      return []
    candidates = np.array(sorted(candidates), dtype=int)
    d = np.linalg.norm(self._coords()[candidates] - center, axis=1)
    hits = candidates[(d >= dmin) & (d <= dmax)].tolist()
    if not by_tag:
      return hits
    return list(dict.fromkeys(self._tags[i] for i in hits))

  def num_points_within(self, center: Sequence[float], dmin: float, dmax: float) -> int:
    return len(SpatialIndex.points_within(self, center, dmin, dmax))

  def any_points_within(self, center: Sequence[float], dmin: float, dmax: float) -> bool:
    return len(SpatialIndex.points_within(self, center, dmin, dmax)) > 0

  def overlaps(self, other: "SpatialIndex", pad: float = 0.0) -> bool:
    """Check whether this grid's box (inflated by ``pad``) intersects another grid's box."""
    return bool(np.all(self.lo - pad <= other.hi) and np.all(self.hi + pad >= other.lo))


class DecoratedSpatialIndex(SpatialIndex, Generic[T]):
  """SpatialIndex whose points carry arbitrary Python objects as tags.

  Internally every point is tagged with a slot into a list of decorations,
  queries map the slots back to the decorations.
  """

  def __init__(self, xlo: float, ylo: float, zlo: float, xhi: float, yhi: float, zhi: float, n: int = DEFAULT_GRID_BUCKETS):
    self._decorations: List[T] = []
    super().__init__(xlo, ylo, zlo, xhi, yhi, zhi, n=n)

  def add_point(self, p: Sequence[float], tag: T):
    super().add_point(p, len(self._decorations))
    self._decorations.append(tag)

  def add_points(self, points: Iterable[Sequence[float]], tags: Optional[Sequence[T]] = None):
    points = list(points) if not isinstance(points, np.ndarray) else points
    if tags is None:
      tags = list(range(len(self._decorations), len(self._decorations) + len(points)))
    super().add_points(points, tags)

  def get_point_tag(self, i: int) -> T:
    return self._decorations[self._tags[i]]

  def points_within(self, center: Sequence[float], dmin: float, dmax: float, by_tag: bool = True) -> List:
    """Decorations of all points within ``[dmin, dmax]`` of ``center``.

    Tags are de-duplicated by slot and returned in order of first appearance.
    Pass ``by_tag=False`` to get raw point indices instead.
    """
    slots = super().points_within(center, dmin, dmax, by_tag=by_tag)
    if not by_tag:
      return slots
    return [self._decorations[s] for s in slots]

  def points_within_indices(self, center: Sequence[float], dmin: float, dmax: float) -> List[int]:
    """Decoration slots (integer tags) of all points within ``[dmin, dmax]`` of ``center``."""
    return super().points_within(center, dmin, dmax, by_tag=True)
