# tests/test_spatial.py
import numpy as np
import pytest

from protcon.spatial import DecoratedSpatialIndex, SpatialIndex, calculate_extent


def _brute_force(points, center, dmin, dmax):
  d = np.linalg.norm(points - np.asarray(center, dtype=float), axis=1)
  return sorted(np.nonzero((d >= dmin) & (d <= dmax))[0].tolist())


@pytest.fixture
def cloud():
  rng = np.random.default_rng(7)
  return rng.uniform(-15.0, 15.0, size=(400, 3))


def test_calculate_extent(cloud):
  lo, hi = calculate_extent(cloud)
  assert np.allclose(lo, cloud.min(axis=0))
  assert np.allclose(hi, cloud.max(axis=0))
  with pytest.raises(ValueError):
    calculate_extent([])


@pytest.mark.parametrize("n", [1, 3, 20])
def test_points_within_matches_brute_force(cloud, n):
  index = SpatialIndex.from_points(cloud, n=n)
  rng = np.random.default_rng(11)
  for center in rng.uniform(-20.0, 20.0, size=(25, 3)):
    for dmin, dmax in ((0.0, 2.7), (1.3, 6.1), (0.0, 11.9)):
      assert index.points_within(center, dmin, dmax) == _brute_force(cloud, center, dmin, dmax)
      assert index.num_points_within(center, dmin, dmax) == len(_brute_force(cloud, center, dmin, dmax))


def test_characteristic_distance_sizing(cloud):
  index = SpatialIndex.from_points(cloud, characteristic_distance=3.0)
  assert index.n == int(np.ceil(np.max(cloud.max(axis=0) - cloud.min(axis=0)) / 3.0))
  center = cloud[0]
  assert index.points_within(center, 0.0, 3.0) == _brute_force(cloud, center, 0.0, 3.0)


def test_from_points_requires_exactly_one_sizing(cloud):
  with pytest.raises(ValueError):
    SpatialIndex.from_points(cloud)
  with pytest.raises(ValueError):
    SpatialIndex.from_points(cloud, n=4, characteristic_distance=2.0)


def test_insertion_order_does_not_change_results(cloud):
  perm = np.random.default_rng(3).permutation(len(cloud))
  a = SpatialIndex.from_points(cloud, n=8, tags=list(range(len(cloud))))
  b = SpatialIndex.from_points(cloud[perm], n=8, tags=perm.tolist())
  center = (1.0, -2.0, 0.5)
  assert sorted(a.points_within(center, 0.0, 5.0, by_tag=True)) == sorted(b.points_within(center, 0.0, 5.0, by_tag=True))


def test_query_outside_grid(cloud):
  index = SpatialIndex.from_points(cloud, n=10)
  far = (100.0, 0.0, 0.0)
  assert not index.is_point_within_grid(far)
  assert index.points_within(far, 0.0, 10.0) == []
  assert index.points_within(far, 0.0, 200.0) == list(range(len(cloud)))
  assert not index.any_points_within(far, 0.0, 10.0)


def test_points_added_outside_grid_are_clamped():
  index = SpatialIndex(0.0, 0.0, 0.0, 1.0, 1.0, 1.0, n=4)
  index.add_point((5.0, 5.0, 5.0), 42)
  assert index.point_bucket((5.0, 5.0, 5.0)) == (3, 3, 3)
  assert index.points_within((5.0, 5.0, 4.0), 0.0, 1.0) == [0]
  assert index.get_point_tag(0) == 42


def test_tags_are_deduplicated():
  points = [(0.0, 0.0, 0.0), (0.5, 0.0, 0.0), (1.0, 0.0, 0.0), (9.0, 0.0, 0.0)]
  index = SpatialIndex.from_points(points, n=2, tags=[7, 7, 3, 5])
  assert index.points_within((0.0, 0.0, 0.0), 0.0, 2.0, by_tag=True) == [7, 3]
  assert index.distance(0, 2) == pytest.approx(1.0)


def test_degenerate_extent():
  index = SpatialIndex.from_points([(1.0, 1.0, 1.0)], characteristic_distance=5.0)
  assert index.n == 1
  assert index.points_within((1.0, 1.0, 2.0), 0.0, 1.0) == [0]


def test_overlaps():
  a = SpatialIndex(0.0, 0.0, 0.0, 1.0, 1.0, 1.0)
  b = SpatialIndex(2.0, 0.0, 0.0, 3.0, 1.0, 1.0)
  assert not a.overlaps(b)
  assert a.overlaps(b, pad=1.0)
  assert b.overlaps(a, pad=1.0)


def test_decorated_index_returns_decorations():
  points = [(0.0, 0.0, 0.0), (0.5, 0.0, 0.0), (6.0, 0.0, 0.0)]
  index = DecoratedSpatialIndex.from_points(points, n=3, tags=["alpha", "beta", "gamma"])
  assert index.points_within((0.0, 0.0, 0.0), 0.0, 1.0) == ["alpha", "beta"]
  assert index.points_within((0.0, 0.0, 0.0), 0.0, 1.0, by_tag=False) == [0, 1]
  assert index.points_within_indices((6.0, 0.0, 0.0), 0.0, 1.0) == [2]
  assert index.get_point_tag(2) == "gamma"
  assert index.num_points_within((0.0, 0.0, 0.0), 0.0, 10.0) == 3
