"""
Contact degree calculations over ensembles of side-chain rotamers.

For every residue the engine places the candidate rotamers of its amino acid,
removes those whose side chains clash with nearby backbone atoms and indexes
the heavy atoms of the survivors. Pairs of residues are then scored by the
weighted fraction of rotamer pairs that come into contact (contact degree).
The same per-residue caches give directional backbone interference, backbone
to backbone interactions and per-residue freedom / crowdedness summaries.

Algorithm Description:
  1. Index every backbone atom (N, CA, C, O) and every CA atom of the structure in two uniform grids
  2. For a residue, find all residues with a backbone atom within ``dcut`` of its CA
  3. Record backbone-backbone clashes with those residues (permanent contacts)
  4. Place library rotamers and prune those whose side-chain atoms clash with a neighbor backbone
  5. Index the side-chain atoms of the surviving rotamers, tagged by rotamer
  6. Score residue pairs by the probability mass of contacting rotamer pairs
"""

import itertools
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

import numpy as np
from Bio.PDB.Entity import Entity
from Bio.PDB.Residue import Residue
from scipy.spatial.distance import cdist
from tqdm import tqdm

from protcon.constants import (
  AA_RECORDS,
  BACKBONE_ATOMS_AA,
  DEFAULT_CLASH_DIST,
  DEFAULT_CONT_DIST,
  DEFAULT_DCUT,
  DEFAULT_EXCLUDED_AAS,
  DEFAULT_FREEDOM_TYPE,
  DEFAULT_HI_COLL_PROB_CUT,
  DEFAULT_LO_COLL_PROB_CUT,
  FREEDOM_TYPES,
  NON_SIDECHAIN_ATOMS,
)
from protcon.contacts import ContactList
from protcon.log import close_rotamer_log, get_rotamer_logger, logger, open_rotamer_log
from protcon.protein import Protein, ResidueRecord, ResidueTable
from protcon.rotamers import Rotamer, RotamerLibrary, library_aa
from protcon.spatial import DecoratedSpatialIndex, SpatialIndex


# suffixes of the per-engine rotamer diagnostics loggers
_ENGINE_IDS = itertools.count()


### EXCEPTIONS ###
class ContactUsageError(ValueError):
  """Raised when the engine is called with arguments it cannot work with."""


class ResidueNotCachedError(RuntimeError):
  """Raised when a computation needs a residue cache that was explicitly not built."""


### CLASSES ###
class CacheState(Enum):
  UNCACHED = "uncached"
  CACHED = "cached"


def _check_freedom_params(lo: float, hi: float, freedom_type: int):
  if freedom_type not in FREEDOM_TYPES:
    raise ValueError(f"Unknown freedom type {freedom_type}, expected one of {FREEDOM_TYPES}")
  if not 0.0 <= lo <= hi <= 1.0:
    raise ValueError(f"Collision probability cutoffs must satisfy 0 <= lo <= hi <= 1, got lo={lo} hi={hi}")


@dataclass
class ContactParams:
  """Parameters of the contact engine.

  Attributes:
    dcut: CA-CA distance beyond which residues are never considered to interact
    clash_dist: Distance below which side-chain vs backbone or backbone vs backbone atoms clash
    cont_dist: Distance at or below which atoms of two rotamers are in contact
    do_not_count_cb: If True, CB is not counted as a side-chain atom (except for ALA)
    lo_coll_prob_cut: Collision probability at or below which a rotamer counts as fully free
    hi_coll_prob_cut: Collision probability above which a rotamer counts as blocked
    freedom_type: Freedom formula, 1 (count-based step) or 2 (weight-based linear ramp)
    excluded_aas: Amino acids whose rotamers are not considered
    show_progress: Show a progress bar when caching the whole structure
  """
  dcut: float = DEFAULT_DCUT
  clash_dist: float = DEFAULT_CLASH_DIST
  cont_dist: float = DEFAULT_CONT_DIST
  do_not_count_cb: bool = True
  lo_coll_prob_cut: float = DEFAULT_LO_COLL_PROB_CUT
  hi_coll_prob_cut: float = DEFAULT_HI_COLL_PROB_CUT
  freedom_type: int = DEFAULT_FREEDOM_TYPE
  excluded_aas: Tuple[str, ...] = DEFAULT_EXCLUDED_AAS
  show_progress: bool = False

  def __post_init__(self):
    for name in ("dcut", "clash_dist", "cont_dist"):
      if getattr(self, name) <= 0:
        raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
    _check_freedom_params(self.lo_coll_prob_cut, self.hi_coll_prob_cut, self.freedom_type)
    self.excluded_aas = tuple(aa.upper() for aa in self.excluded_aas)


@dataclass
class _ResidueCache:
  neighbors: List[int]
  permanent: Set[int]
  rotamers: List[Rotamer]
  sidechains: List[np.ndarray]
  num_library: int = 0
  library_weight: float = 0.0
  available_weight: float = 0.0
  fraction_pruned: float = 0.0
  interference: Dict[int, float] = field(default_factory=dict)
  rotamer_index: Optional[DecoratedSpatialIndex] = None


class ContactEngine:
  def __init__(
    self,
    structure: Union[Protein, ResidueTable, Entity, str, Path],
    rotamer_library: RotamerLibrary,
    params: Optional[ContactParams] = None,
    model: Optional[int] = None,
  ):
    """Contact degree engine over a frozen snapshot of a structure.

    Builds the backbone and CA grids once. Per-residue rotamer caches are
    filled lazily on first use and never invalidated, moving atoms after
    construction has no effect on the engine.

    Parameters:
      structure: Protein object, residue table, Biopython Structure / Model, or a PDB / mmCIF path
      rotamer_library: Source of candidate rotamers
      params: Engine parameters, defaults to :obj:`ContactParams()`
      model: Model ID to use, defaults to the first model

    """
    # private copy, freedom cutoffs are changed per engine
    self.params = replace(params) if params is not None else ContactParams()
    self.rotamer_library = rotamer_library
    self.residues = _residue_table(structure, model)

    self._backbone: Dict[int, np.ndarray] = {}
    bb_points, bb_tags, ca_points, ca_tags = [], [], [], []
    for rec in self.residues:
      missing = [a for a in BACKBONE_ATOMS_AA if not rec.has_atom(a)]
      if missing:
        if rec.res_id[0] == " " or rec.name in AA_RECORDS:
          logger.warning(f"Residue {rec.label} {rec.name} is missing backbone atoms {missing} and will be ignored.")
        continue
      bb = rec.coords(BACKBONE_ATOMS_AA)
      self._backbone[rec.index] = bb
      bb_points.extend(bb)
      bb_tags.extend([rec.index] * len(bb))
      ca_points.append(rec.atoms["CA"])
      ca_tags.append(rec.index)
    if not self._backbone:
      raise ContactUsageError("Structure does not contain any residue with a complete backbone (N, CA, C, O).")

    self.bb_index = SpatialIndex.from_points(bb_points, characteristic_distance=self.params.dcut, tags=bb_tags)
    self.ca_index = SpatialIndex.from_points(ca_points, characteristic_distance=self.params.dcut, tags=ca_tags)
    logger.debug(f"Indexed {len(self._backbone)} residues ({len(bb_points)} backbone atoms) out of {len(self.residues)}")

    self._cache: Dict[int, _ResidueCache] = {}
    self._degrees: Dict[Tuple[int, int], float] = {}
    self._coll_prob: Dict[int, List[float]] = {}
    self._coll_done: Set[int] = set()
    self._coll_update: Set[int] = set()
    self._freedom: Dict[int, float] = {}
    self._crowdedness: Dict[int, float] = {}
    self._log_handler = None
    self._rotamer_log = get_rotamer_logger(next(_ENGINE_IDS))

  def __repr__(self):
    return f"<ContactEngine: Residues={len(self._backbone)}, Cached={len(self._cache)}, dcut={self.params.dcut}>"

  def __enter__(self):
    return self

  def __exit__(self, exc_type, exc, tb):
    self.close_log_file()

  ## residue references ##
  def _index(self, ref) -> int:
    return self.residues.index_of(ref)

  def _targets(self, target) -> List[int]:
    if target is None:
      return sorted(self._backbone)
    if _is_single_ref(target):
      return [self._index(target)]
    return [self._index(ref) for ref in target]

  def _ca_neighbors(self, idx: int) -> List[int]:
    ca = self._ca(idx)
    return sorted(t for t in self.ca_index.points_within(ca, 0.0, self.params.dcut, by_tag=True) if t != idx)

  def _backbone_neighbors_of(self, idx: int) -> List[int]:
    """Residues whose cache neighbor set holds ``idx``, i.e. whose CA lies within ``dcut`` of any of its backbone atoms."""
    self._ca(idx)
    found = set()
    for xyz in self._backbone[idx]:
      found.update(self.ca_index.points_within(xyz, 0.0, self.params.dcut, by_tag=True))
    found.discard(idx)
    return sorted(found)

  def _ca(self, idx: int) -> np.ndarray:
    if idx not in self._backbone:
      raise ContactUsageError(f"Residue {self.residues[idx].label} has no complete backbone and is not indexed.")
    return self.residues[idx].atoms["CA"]

  def _flanking(self, i: int, j: int, ignore_flanking: int) -> bool:
    a, b = self.residues[i], self.residues[j]
    return a.chain_id == b.chain_id and abs(a.chain_pos - b.chain_pos) <= ignore_flanking

  def considers(self, residue) -> bool:
    """Whether rotamers are placed at this residue (its amino acid is not excluded)."""
    rec = self.residues.resolve(residue)
    return library_aa(rec.name) not in self.params.excluded_aas

  def counts_as_sidechain(self, atom_name: str, res_name: str) -> bool:
    """Whether an atom counts as side-chain for side-chain to side-chain contacts.

    Backbone atoms and hydrogens never count. CB only counts for ALA when
    ``do_not_count_cb`` is set.
    """
    name = atom_name.strip().upper()
    if not name or name in NON_SIDECHAIN_ATOMS:
      return False
    if name.startswith("H") or (name[0].isdigit() and name[1:2] == "H"):
      return False
    if name == "CB" and self.params.do_not_count_cb and library_aa(res_name) != "ALA":
      return False
    return True

  def _sidechain_coords(self, rot: Rotamer, res_name: str) -> np.ndarray:
    keep = [i for i, name in enumerate(rot.atom_names) if self.counts_as_sidechain(name, res_name)]
    return rot.coords[keep].reshape(-1, 3)

  ## caching ##
  def cache(self, target=None):
    """Build the per-residue caches (neighbors, permanent contacts, surviving rotamers).
    Idempotent, already cached residues are skipped.

    Parameters:
      target: A residue reference, an iterable of them, or ``None`` for every indexed residue

    """
    indices = self._targets(target)
    if target is None and self.params.show_progress:
      indices = tqdm(indices, desc="Caching residues", total=len(indices))
    for idx in indices:
      self._cache_one(idx)

  def cache_state(self, residue) -> CacheState:
    return CacheState.CACHED if self._index(residue) in self._cache else CacheState.UNCACHED

  def is_cached(self, residue) -> bool:
    return self.cache_state(residue) is CacheState.CACHED

  def _require(self, idx: int, do_cache: bool) -> _ResidueCache:
    if do_cache:
      return self._cache_one(idx)
    if idx not in self._cache:
      raise ResidueNotCachedError(f"Residue {self.residues[idx].label} has not been cached.")
    return self._cache[idx]

  def _cache_one(self, idx: int) -> _ResidueCache:
    if idx in self._cache:
      return self._cache[idx]
    p = self.params
    rec = self.residues[idx]
    ca = self._ca(idx)

    # residues with any backbone atom close to this CA
    neighbors = sorted(t for t in self.bb_index.points_within(ca, 0.0, p.dcut, by_tag=True) if t != idx)

    # backbone-backbone clashes, independent of side-chain choice
    own_bb = self._backbone[idx]
    permanent = set()
    for j in neighbors:
      if self._flanking(idx, j, 1):
        continue
      if np.any(cdist(own_bb, self._backbone[j]) < p.clash_dist):
        permanent.add(j)

    entry = _ResidueCache(neighbors=neighbors, permanent=permanent, rotamers=[], sidechains=[])
    if self.considers(idx):
      self._prune_rotamers(rec, entry)

    points, tags = [], []
    for k, sc in enumerate(entry.sidechains):
      points.extend(sc)
      tags.extend([k] * len(sc))
    if points:
      entry.rotamer_index = DecoratedSpatialIndex.from_points(points, characteristic_distance=p.cont_dist, tags=tags)

    self._cache[idx] = entry
    return entry

  def _prune_rotamers(self, rec: ResidueRecord, entry: _ResidueCache):
    p = self.params
    # errors from the library propagate unchanged
    candidates = self.rotamer_library.rotamers(rec)
    if entry.neighbors:
      nb_bb = np.vstack([self._backbone[j] for j in entry.neighbors])
      nb_owner = np.concatenate([[j] * len(self._backbone[j]) for j in entry.neighbors])
    else:
      nb_bb = np.zeros((0, 3))
      nb_owner = np.zeros(0, dtype=int)

    entry.num_library = len(candidates)
    for rot in candidates:
      entry.library_weight += rot.probability
      sc = self._sidechain_coords(rot, rec.name)
      blockers: List[int] = []
      if len(sc) and len(nb_bb):
        clashing = np.any(cdist(sc, nb_bb) < p.clash_dist, axis=0)
        blockers = sorted(set(nb_owner[clashing].tolist()))
      if blockers:
        for j in blockers:
          entry.interference[j] = entry.interference.get(j, 0.0) + rot.probability
        self._rotamer_log.debug(
          f"  {rec.label} {rec.name} rotamer {rot.index} (p={rot.probability:.4f}) clashes with backbone of "
          + ", ".join(self.residues[j].label for j in blockers)
        )
        continue
      entry.rotamers.append(rot)
      entry.sidechains.append(sc)
      entry.available_weight += rot.probability

    if entry.library_weight > 0:
      entry.fraction_pruned = 1.0 - entry.available_weight / entry.library_weight
      entry.interference = {j: w / entry.library_weight for j, w in entry.interference.items()}
    self._rotamer_log.debug(
      f"{rec.label} {rec.name}: {len(entry.rotamers)} of {entry.num_library} rotamers survive, fraction pruned {entry.fraction_pruned:.3f}"
    )

  ## cached per-residue state ##
  def permanent_contacts(self, residue) -> List[ResidueRecord]:
    """Residues whose backbone clashes with this residue's backbone."""
    return [self.residues[j] for j in sorted(self._cache_one(self._index(residue)).permanent)]

  def surviving_rotamers(self, residue) -> List[Rotamer]:
    return list(self._cache_one(self._index(residue)).rotamers)

  def num_library_rotamers(self, residue) -> int:
    return self._cache_one(self._index(residue)).num_library

  def fraction_pruned(self, residue) -> float:
    """Fraction of the library rotamer weight removed by backbone clashes."""
    return self._cache_one(self._index(residue)).fraction_pruned

  def weight_of_available_rotamers(self, residue) -> float:
    """Total weight of the rotamers surviving backbone pruning at this residue."""
    return self._cache_one(self._index(residue)).available_weight

  def interference_degree(self, residue, other) -> float:
    """Fraction of the library rotamer weight at ``residue`` that clashes with the backbone of ``other``."""
    return self._cache_one(self._index(residue)).interference.get(self._index(other), 0.0)

  ## neighbors ##
  def get_neighbors(self, target) -> List[ResidueRecord]:
    """Residues whose CA lies within ``dcut`` of the CA of any of the given residues.

    Parameters:
      target: A residue reference or an iterable of them

    Returns:
      Neighboring residues ordered by structural index, excluding the query residues

    """
    indices = self._targets(target)
    found = set()
    for idx in indices:
      found.update(self._ca_neighbors(idx))
    found.difference_update(indices)
    return [self.residues[j] for j in sorted(found)]

  def are_neighbors(self, a, b) -> bool:
    ia, ib = self._index(a), self._index(b)
    return float(np.linalg.norm(self._ca(ia) - self._ca(ib))) <= self.params.dcut

  ## contact degree ##
  def contact_degree(self, a, b, cache_a: bool = True, cache_b: bool = True, check_neighbors: bool = True) -> float:
    """Contact degree between two residues.

    The contact degree is the probability mass of rotamer pairs (one rotamer
    from each residue) with at least one pair of side-chain atoms within
    ``cont_dist``, normalized by the product of the available rotamer weights
    of both residues. It is symmetric in ``a`` and ``b``.

    Parameters:
      a: First residue
      b: Second residue
      cache_a: Build the cache of ``a`` if needed, otherwise require it to exist
      cache_b: Build the cache of ``b`` if needed, otherwise require it to exist
      check_neighbors: Return 0 right away for residues further apart than ``dcut``

    Returns:
      Contact degree in ``[0, 1]``

    """
    ia, ib = self._index(a), self._index(b)
    if ia == ib:
      raise ContactUsageError(f"Cannot compute the contact degree of residue {self.residues[ia].label} with itself.")
    if check_neighbors and not self.are_neighbors(ia, ib):
      return 0.0
    entry_a = self._require(ia, cache_a)
    entry_b = self._require(ib, cache_b)

    updating = ia in self._coll_update or ib in self._coll_update
    if not updating and (ia, ib) in self._degrees:
      return self._degrees[(ia, ib)]
    cd = self._rotamer_contact_degree(ia, entry_a, ib, entry_b)
    self._degrees[(ia, ib)] = cd
    self._degrees[(ib, ia)] = cd
    return cd

  def _rotamer_contact_degree(self, ia: int, entry_a: _ResidueCache, ib: int, entry_b: _ResidueCache) -> float:
    if entry_a.rotamer_index is None or entry_b.rotamer_index is None:
      return 0.0
    if entry_a.available_weight <= 0 or entry_b.available_weight <= 0:
      return 0.0
    if not entry_a.rotamer_index.overlaps(entry_b.rotamer_index, self.params.cont_dist):
      return 0.0

    pairs: Set[Tuple[int, int]] = set()
    for i, sc in enumerate(entry_a.sidechains):
      for xyz in sc:
        for j in entry_b.rotamer_index.points_within(xyz, 0.0, self.params.cont_dist):
          pairs.add((i, j))
    if not pairs:
      return 0.0

    wa = [rot.probability for rot in entry_a.rotamers]
    wb = [rot.probability for rot in entry_b.rotamers]
    mass = sum(wa[i] * wb[j] for i, j in sorted(pairs))
    cd = mass / (entry_a.available_weight * entry_b.available_weight)

    if ia in self._coll_update:
      self._accumulate_collisions(ia, [(i, wb[j]) for i, j in pairs], entry_b.available_weight)
    if ib in self._coll_update:
      self._accumulate_collisions(ib, [(j, wa[i]) for i, j in pairs], entry_a.available_weight)
    return min(cd, 1.0)

  def _accumulate_collisions(self, idx: int, hits: List[Tuple[int, float]], other_weight: float):
    per_rotamer: Dict[int, float] = {}
    for k, w in hits:
      per_rotamer[k] = per_rotamer.get(k, 0.0) + w
    table = self._coll_prob[idx]
    for k, w in per_rotamer.items():
      p_hit = min(w / other_weight, 1.0)
      # probability of colliding with at least one neighbor, neighbors treated as independent
      table[k] = 1.0 - (1.0 - table[k]) * (1.0 - p_hit)

  ## batch contact queries ##
  def get_contacts(self, target=None, cd_cut: float = 0.0, contacts: Optional[ContactList] = None) -> ContactList:
    """Side-chain to side-chain contacts of one or more residues.

    Every unordered residue pair is reported once, with the lower structural
    index first. Pairs already present in ``contacts`` are not added again.

    Parameters:
      target: A residue reference, an iterable of them, or ``None`` for every indexed residue
      cd_cut: Only contacts with a degree strictly above this value are reported
      contacts: Optional list to append to

    Returns:
      The contact list (``contacts`` if given)

    """
    contacts = ContactList() if contacts is None else contacts
    seen = set()
    for idx in self._targets(target):
      entry = self._cache_one(idx)
      for j in self._ca_neighbors(idx):
        key = (min(idx, j), max(idx, j))
        if key in seen:
          continue
        seen.add(key)
        lo, hi = self.residues[key[0]], self.residues[key[1]]
        if contacts.are_in_contact(lo, hi):
          continue
        cd = self.contact_degree(idx, j, check_neighbors=False)
        if cd > cd_cut:
          contacts.add_contact(lo, hi, cd, "permanent" if j in entry.permanent else "")
    return contacts

  def get_contacting_residues(self, residue, cd_cut: float = 0.0) -> List[ResidueRecord]:
    idx = self._index(residue)
    contacts = self.get_contacts(idx, cd_cut)
    return [rec.dst if rec.src.index == idx else rec.src for rec in contacts]

  def get_interference(self, target=None, in_cut: float = 0.0, contacts: Optional[ContactList] = None) -> ContactList:
    """Residues whose side-chain choice is limited by the backbone of the given residues.

    Records are directional, the source is the residue whose rotamers clash
    and the destination is the given residue whose backbone they clash with.
    The degree is the clashing fraction of the source's library rotamer weight.

    Parameters:
      target: A residue reference, an iterable of them, or ``None`` for every indexed residue
      in_cut: Only interference strictly above this value is reported
      contacts: Optional list to append to

    Returns:
      The contact list (``contacts`` if given)

    """
    contacts = ContactList() if contacts is None else contacts
    for idx in self._targets(target):
      dst = self.residues[idx]
      for j in self._backbone_neighbors_of(idx):
        value = self._cache_one(j).interference.get(idx, 0.0)
        src = self.residues[j]
        if value > in_cut and not contacts.are_in_contact(src, dst):
          contacts.add_contact(src, dst, value, "", directional=True)
    return contacts

  def get_interfering(self, target=None, in_cut: float = 0.0, contacts: Optional[ContactList] = None) -> ContactList:
    """Residues whose backbone limits the side-chain choice of the given residues.

    Records are directional, the source is the given residue and the
    destination is the residue whose backbone interferes with it.

    Parameters:
      target: A residue reference, an iterable of them, or ``None`` for every indexed residue
      in_cut: Only interference strictly above this value is reported
      contacts: Optional list to append to

    Returns:
      The contact list (``contacts`` if given)

    """
    contacts = ContactList() if contacts is None else contacts
    for idx in self._targets(target):
      src = self.residues[idx]
      for j, value in sorted(self._cache_one(idx).interference.items()):
        dst = self.residues[j]
        if value > in_cut and not contacts.are_in_contact(src, dst):
          contacts.add_contact(src, dst, value, "", directional=True)
    return contacts

  ## backbone interactions ##
  def bb_interaction(self, a, b) -> float:
    """Closest distance between any backbone atoms (N, CA, C, O) of two residues."""
    ra, rb = self.residues.resolve(a), self.residues.resolve(b)
    bb_a, bb_b = ra.coords(BACKBONE_ATOMS_AA), rb.coords(BACKBONE_ATOMS_AA)
    if not len(bb_a) or not len(bb_b):
      empty = ra if not len(bb_a) else rb
      raise ContactUsageError(f"Residue {empty.label} has no backbone atoms.")
    return float(cdist(bb_a, bb_b).min())

  def get_bb_interaction(
    self,
    target=None,
    dist_cut: Optional[float] = None,
    ignore_flanking: int = 1,
    contacts: Optional[ContactList] = None,
  ) -> ContactList:
    """Backbone to backbone interactions of one or more residues.

    Two residues interact when any of their backbone atoms are within
    ``dist_cut`` of each other; the reported value is the closest backbone
    atom distance. Residues of the same chain within ``ignore_flanking``
    positions of each other are skipped. Each unordered pair is reported once.

    Parameters:
      target: A residue reference, an iterable of them, or ``None`` for every indexed residue
      dist_cut: Distance cutoff, defaults to ``clash_dist``
      ignore_flanking: Number of sequence neighbors on each side to ignore
      contacts: Optional list to append to

    Returns:
      The contact list (``contacts`` if given)

    """
    dist_cut = self.params.clash_dist if dist_cut is None else dist_cut
    contacts = ContactList() if contacts is None else contacts
    seen = set()
    for idx in self._targets(target):
      self._ca(idx)
      partners = set()
      for xyz in self._backbone[idx]:
        partners.update(self.bb_index.points_within(xyz, 0.0, dist_cut, by_tag=True))
      for j in sorted(partners):
        if j == idx or self._flanking(idx, j, ignore_flanking):
          continue
        key = (min(idx, j), max(idx, j))
        if key in seen:
          continue
        seen.add(key)
        lo, hi = self.residues[key[0]], self.residues[key[1]]
        if not contacts.are_in_contact(lo, hi):
          contacts.add_contact(lo, hi, self.bb_interaction(lo, hi), "")
    return contacts

  def get_bb_interacting_residues(self, residue, dist_cut: Optional[float] = None, ignore_flanking: int = 1) -> List[ResidueRecord]:
    idx = self._index(residue)
    contacts = self.get_bb_interaction(idx, dist_cut, ignore_flanking)
    return [rec.dst if rec.src.index == idx else rec.src for rec in contacts]

  ## freedom and crowdedness ##
  def set_freedom_params(self, lo_coll_prob_cut: float, hi_coll_prob_cut: float, freedom_type: int):
    """Change the freedom cutoffs / formula and drop previously computed freedom values."""
    _check_freedom_params(lo_coll_prob_cut, hi_coll_prob_cut, freedom_type)
    self.params = replace(
      self.params,
      lo_coll_prob_cut=lo_coll_prob_cut,
      hi_coll_prob_cut=hi_coll_prob_cut,
      freedom_type=freedom_type,
    )
    self.clear_freedom()

  def clear_freedom(self):
    self._freedom.clear()

  @contextmanager
  def _collision_window(self, idx: int):
    """Scoped write access to the collision probability table of one residue."""
    self._coll_prob[idx] = [0.0] * len(self._cache[idx].rotamers)
    self._coll_update.add(idx)
    try:
      yield self._coll_prob[idx]
    finally:
      self._coll_update.discard(idx)

  def _collisions(self, idx: int) -> List[float]:
    if idx in self._coll_done:
      return self._coll_prob[idx]
    self._cache_one(idx)
    neighbors = self._ca_neighbors(idx)
    # the table is only complete once every neighbor is cached
    self.cache(neighbors)
    with self._collision_window(idx) as table:
      for j in neighbors:
        self.contact_degree(idx, j, cache_a=False, cache_b=False, check_neighbors=False)
    self._coll_done.add(idx)
    return table

  def collision_probabilities(self, residue) -> Dict[int, float]:
    """Probability that each surviving rotamer collides with a rotamer of some neighbor.

    Parameters:
      residue: Residue reference

    Returns:
      Mapping of library rotamer index to collision probability

    """
    idx = self._index(residue)
    table = self._collisions(idx)
    return {rot.index: cp for rot, cp in zip(self._cache[idx].rotamers, table)}

  def _compute_freedom(self, idx: int) -> float:
    entry = self._cache[idx]
    if entry.num_library == 0 or entry.library_weight <= 0:
      return 0.0
    lo, hi = self.params.lo_coll_prob_cut, self.params.hi_coll_prob_cut
    table = self._coll_prob[idx]
    if self.params.freedom_type == 1:
      n_lo = sum(1 for cp in table if cp <= lo)
      n_hi = sum(1 for cp in table if cp <= hi)
      return 0.5 * (n_lo + n_hi) / entry.num_library
    total = 0.0
    for rot, cp in zip(entry.rotamers, table):
      if cp <= lo:
        total += rot.probability
      elif cp < hi:
        total += rot.probability * (hi - cp) / (hi - lo)
    return total / entry.library_weight

  def get_freedom(self, target) -> Union[float, List[float]]:
    """Freedom of the side-chain choice at one or more residues.

    The residue and all its neighbors are cached first, so the collision
    probability table is always complete. Rotamers pruned by the backbone
    count as not free. With ``freedom_type`` 1 every library rotamer with a
    collision probability at or below ``lo_coll_prob_cut`` counts fully and
    one at or below ``hi_coll_prob_cut`` counts half. With ``freedom_type`` 2
    rotamers are weighted by probability, with a linear ramp between the two
    cutoffs. Residues without library rotamers have zero freedom.

    Parameters:
      target: A residue reference or an iterable of them

    Returns:
      Freedom in ``[0, 1]`` (a list for an iterable target)

    """
    values = []
    for idx in self._targets(target):
      if idx not in self._freedom:
        self._collisions(idx)
        self._freedom[idx] = self._compute_freedom(idx)
      values.append(self._freedom[idx])
    return values[0] if _is_single_ref(target) else values

  def get_crowdedness(self, target) -> Union[float, List[float]]:
    """Crowdedness of one or more residues.

    The expected fraction of the library rotamer weight that is unavailable,
    either pruned by backbone clashes or colliding with neighbor rotamers.
    Residues without library rotamers have zero crowdedness.

    Parameters:
      target: A residue reference or an iterable of them

    Returns:
      Crowdedness in ``[0, 1]`` (a list for an iterable target)

    """
    values = []
    for idx in self._targets(target):
      if idx not in self._crowdedness:
        table = self._collisions(idx)
        entry = self._cache[idx]
        if entry.library_weight <= 0:
          self._crowdedness[idx] = 0.0
        else:
          free = sum(rot.probability * (1.0 - cp) for rot, cp in zip(entry.rotamers, table))
          self._crowdedness[idx] = min(max(1.0 - free / entry.library_weight, 0.0), 1.0)
      values.append(self._crowdedness[idx])
    return values[0] if _is_single_ref(target) else values

  ## diagnostics ##
  def open_log_file(self, fpath: str, append: bool = False):
    """Write rotamer survival diagnostics of subsequently cached residues to a file."""
    self.close_log_file()
    self._log_handler = open_rotamer_log(self._rotamer_log, fpath, append=append)

  def close_log_file(self):
    close_rotamer_log(self._rotamer_log, self._log_handler)
    self._log_handler = None


### FUNCTIONS ###
def _is_single_ref(ref) -> bool:
  if isinstance(ref, (int, np.integer, ResidueRecord, Residue)):
    return True
  return isinstance(ref, tuple) and len(ref) > 0 and isinstance(ref[0], str)


def _residue_table(structure, model: Optional[int]) -> ResidueTable:
  if isinstance(structure, ResidueTable):
    return structure
  if isinstance(structure, Protein):
    return structure.residue_table(model)
  if isinstance(structure, Entity):
    if structure.level == "S" and model is not None:
      structure = structure[model]
    return ResidueTable.from_entity(structure)
  if isinstance(structure, (str, Path)):
    return Protein(str(structure)).residue_table(model)
  raise ValueError(f"Unsupported structure type: {type(structure).__name__}")
