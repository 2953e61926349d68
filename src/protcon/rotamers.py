"""
Rotamer library interface consumed by the contact engine, plus a simple
in-memory implementation. Rotamers are stored as heavy side-chain atom
templates in a local backbone frame and placed onto a residue on request.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from protcon.constants import AA_RECORDS
from protcon.protein import ResidueKey, ResidueRecord


### CLASSES ###
class RotamerLibraryError(KeyError):
  """Raised when a rotamer library cannot provide rotamers for a residue."""


@dataclass
class Rotamer:
  """A single side-chain conformation.

  Attributes:
    aa: Amino acid (3-letter code) the rotamer belongs to
    index: Position of the rotamer in its library's ordered list
    probability: Rotamer weight / probability
    atom_names: Names of the heavy side-chain atoms
    coords: ``(n, 3)`` coordinates, in the local backbone frame for templates and absolute once placed
  """
  aa: str
  index: int
  probability: float
  atom_names: Tuple[str, ...] = ()
  coords: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=float), repr=False)

  def __post_init__(self):
    self.atom_names = tuple(self.atom_names)
    self.coords = np.asarray(self.coords, dtype=float).reshape(-1, 3)
    if len(self.atom_names) != len(self.coords):
      raise ValueError(f"Rotamer {self.aa}:{self.index} has {len(self.atom_names)} atom names but {len(self.coords)} coordinates")
    if self.probability < 0:
      raise ValueError(f"Rotamer {self.aa}:{self.index} has a negative probability ({self.probability})")


class RotamerLibrary(ABC):
  """Source of candidate rotamers for residues of a structure."""

  @abstractmethod
  def rotamers(self, residue: ResidueRecord) -> List[Rotamer]:
    """Placed rotamers for the residue's own amino-acid identity, in library order.

    Raises:
      RotamerLibraryError: if the library has no entry for the residue
    """

  @abstractmethod
  def num_rotamers(self, aa: str) -> int:
    """Number of rotamers the library holds for an amino acid."""

  def has(self, aa: str) -> bool:
    try:
      self.num_rotamers(aa)
    except RotamerLibraryError:
      return False
    return True


class StaticRotamerLibrary(RotamerLibrary):
  def __init__(self, templates: Optional[Dict[str, Sequence[Rotamer]]] = None):
    """In-memory rotamer library.

    Parameters:
      templates: Optional mapping of amino acid to rotamer templates expressed in the local backbone frame (see :obj:`backbone_frame`)

    """
    self.templates: Dict[str, List[Rotamer]] = {}
    self.overrides: Dict[ResidueKey, List[Rotamer]] = {}
    for aa, rots in (templates or {}).items():
      for rot in rots:
        self.add_rotamer(aa, rot.atom_names, rot.coords, rot.probability)

  def __repr__(self):
    return f"<StaticRotamerLibrary: AAs={sorted(self.templates)}, Overrides={len(self.overrides)}>"

  def add_rotamer(self, aa: str, atom_names: Sequence[str], coords, probability: float) -> Rotamer:
    """Append a rotamer template for an amino acid.

    Parameters:
      aa: Amino acid 3-letter code
      atom_names: Heavy side-chain atom names
      coords: Atom coordinates in the local backbone frame
      probability: Rotamer weight

    Returns:
      The stored template

    """
    aa = aa.upper()
    rots = self.templates.setdefault(aa, [])
    rot = Rotamer(aa=aa, index=len(rots), probability=float(probability), atom_names=tuple(atom_names), coords=coords)
    rots.append(rot)
    return rot

  def set_residue_rotamers(self, key: ResidueKey, rotamers: Sequence[Rotamer]):
    """Pin already placed (absolute coordinate) rotamers to a single residue.
    These take priority over the amino-acid templates.

    Parameters:
      key: Residue key ``(chain_id, resseq, icode)``
      rotamers: Rotamers with absolute coordinates

    """
    if len(key) == 2:
      key = (key[0], int(key[1]), " ")
    self.overrides[tuple(key)] = [replace(rot, index=i) for i, rot in enumerate(rotamers)]

  def num_rotamers(self, aa: str) -> int:
    aa = library_aa(aa)
    if aa not in self.templates:
      raise RotamerLibraryError(f"No rotamers available for amino acid {aa}")
    return len(self.templates[aa])

  def rotamers(self, residue: ResidueRecord) -> List[Rotamer]:
    if residue.key in self.overrides:
      return list(self.overrides[residue.key])
    aa = library_aa(residue.name)
    if aa not in self.templates:
      raise RotamerLibraryError(f"No rotamers available for amino acid {aa} (residue {residue.label})")
    return [place(rot, residue) for rot in self.templates[aa]]


### FUNCTIONS ###
def library_aa(name: str) -> str:
  """Map a residue name onto the amino acid used for library lookups,
  e.g. ``MSE`` onto ``MET``.
  """
  name = name.upper()
  rec = AA_RECORDS.get(name)
  if rec is not None and rec.standard_equiv_abr is not None:
    return rec.standard_equiv_abr
  return name


def backbone_frame(n: np.ndarray, ca: np.ndarray, c: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
  """Local orthonormal frame of a residue backbone.

  The origin sits on CA, x points from CA to C, z is normal to the N-CA-C
  plane and y completes the right-handed frame.

  Parameters:
    n: N coordinate
    ca: CA coordinate
    c: C coordinate

  Returns:
    ``(origin, rotation)`` where rows of ``rotation`` are the frame axes, so
    ``global = origin + local @ rotation``

  """
  x = np.asarray(c, dtype=float) - ca
  v = np.asarray(n, dtype=float) - ca
  z = np.cross(x, v)
  if np.linalg.norm(x) < 1e-12 or np.linalg.norm(z) < 1e-12:
    raise RotamerLibraryError("Degenerate backbone geometry, cannot build a local frame")
  x = x / np.linalg.norm(x)
  z = z / np.linalg.norm(z)
  y = np.cross(z, x)
  return np.asarray(ca, dtype=float), np.vstack([x, y, z])


def place(template: Rotamer, residue: ResidueRecord) -> Rotamer:
  """Place a local-frame rotamer template onto a residue backbone.

  Parameters:
    template: Rotamer template in the local backbone frame
    residue: Target residue, must have N, CA and C atoms

  Returns:
    A new :obj:`Rotamer` with absolute coordinates

  """
  missing = [a for a in ("N", "CA", "C") if not residue.has_atom(a)]
  if missing:
    raise RotamerLibraryError(f"Residue {residue.label} is missing backbone atoms {missing} needed for rotamer placement")
  origin, rot = backbone_frame(residue.atoms["N"], residue.atoms["CA"], residue.atoms["C"])
  return replace(template, coords=origin + template.coords @ rot)
