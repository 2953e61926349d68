"""
Ordered collection of pairwise residue relations (contacts, interference,
backbone interactions) produced by the contact engine.
"""

from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

import pandas as pd

from protcon.protein import ResidueRecord


### CLASSES ###
class ContactRecord(NamedTuple):
  src: ResidueRecord
  dst: ResidueRecord
  degree: float
  info: str
  directional: bool


class ContactList:
  """Append-only list of residue pair relations.

  Records live in parallel lists (source, destination, degree, info,
  directionality). A nested ``src -> dst -> position`` map gives constant time
  membership and degree lookups; non-directional records are registered in
  both directions. A canonical set of pairs, ordered by the structural index
  of the source and then the destination, gives a de-duplicated enumeration.
  """

  def __init__(self):
    self._src: List[ResidueRecord] = []
    self._dst: List[ResidueRecord] = []
    self._degrees: List[float] = []
    self._infos: List[str] = []
    self._directional: List[bool] = []
    self._in_contact: Dict[int, Dict[int, int]] = {}
    self._ordered: Dict[Tuple[int, int], Tuple[ResidueRecord, ResidueRecord]] = {}

  def __len__(self) -> int:
    return len(self._src)

  def __iter__(self) -> Iterator[ContactRecord]:
    for i in range(len(self)):
      yield self.record(i)

  def __repr__(self):
    return f"<ContactList: Contacts={len(self)}, Unique Pairs={len(self._ordered)}>"

  def add_contact(self, src: ResidueRecord, dst: ResidueRecord, degree: float, info: str = "", directional: bool = False):
    """Append a relation between two residues.

    Parameters:
      src: Source residue (first residue for non-directional records)
      dst: Destination residue
      degree: Contact degree, interference or distance
      info: Free-text annotation
      directional: Whether ``src -> dst`` differs from ``dst -> src``

    """
    self._src.append(src)
    self._dst.append(dst)
    self._degrees.append(float(degree))
    self._infos.append(info)
    self._directional.append(directional)
    self._register(len(self._src) - 1)

  def _register(self, i: int):
    src, dst = self._src[i], self._dst[i]
    self._in_contact.setdefault(src.index, {})[dst.index] = i
    if self._directional[i]:
      self._ordered.setdefault((src.index, dst.index), (src, dst))
      return
    self._in_contact.setdefault(dst.index, {})[src.index] = i
    if src.index > dst.index:
      self._ordered.setdefault((dst.index, src.index), (dst, src))
    else:
      self._ordered.setdefault((src.index, dst.index), (src, dst))

  def record(self, i: int) -> ContactRecord:
    return ContactRecord(self._src[i], self._dst[i], self._degrees[i], self._infos[i], self._directional[i])

  def residue_a(self, i: int) -> ResidueRecord:
    return self._src[i]

  def residue_b(self, i: int) -> ResidueRecord:
    return self._dst[i]

  src_residue = residue_a
  dst_residue = residue_b

  def src_residues(self) -> List[ResidueRecord]:
    return list(self._src)

  def dst_residues(self) -> List[ResidueRecord]:
    return list(self._dst)

  def info(self, i: int) -> str:
    return self._infos[i]

  def is_directional(self, i: int) -> bool:
    return self._directional[i]

  def degree(self, a, b: Optional[ResidueRecord] = None) -> float:
    """Degree of a record, either by position or by residue pair.

    Parameters:
      a: Record position, or the source residue when ``b`` is given
      b: Destination residue

    Returns:
      The stored degree

    NOTE:
      Looking up a pair that was never added is a caller error and raises
      ``KeyError`` rather than returning zero.

    """
    if b is None:
      return self._degrees[a]
    try:
      return self._degrees[self._in_contact[a.index][b.index]]
    except KeyError:
      raise KeyError(f"Residues {a.label} and {b.label} are not in the contact list") from None

  def are_in_contact(self, a: ResidueRecord, b: ResidueRecord) -> bool:
    return b.index in self._in_contact.get(a.index, {})

  def ordered_contacts(self) -> List[Tuple[ResidueRecord, ResidueRecord]]:
    """Unique residue pairs, ordered by the structural index of the first residue and then the second."""
    return [self._ordered[k] for k in sorted(self._ordered)]

  def sort_by_degree(self):
    """Sort all records by degree, highest to lowest (stable for ties).
    The lookup map and the ordered pair set are rebuilt to match.
    """
    perm = sorted(range(len(self)), key=lambda i: -self._degrees[i])
    self._src = [self._src[i] for i in perm]
    self._dst = [self._dst[i] for i in perm]
    self._degrees = [self._degrees[i] for i in perm]
    self._infos = [self._infos[i] for i in perm]
    self._directional = [self._directional[i] for i in perm]
    self._in_contact = {}
    self._ordered = {}
    for i in range(len(self)):
      self._register(i)

  def copy(self) -> "ContactList":
    other = ContactList()
    for rec in self:
      other.add_contact(rec.src, rec.dst, rec.degree, rec.info, rec.directional)
    return other

  def to_dataframe(self) -> pd.DataFrame:
    """Export the records as a pandas dataframe, one row per record in list order."""
    df = {
      "src_chain": [],
      "src_res_id": [],
      "src_res_name": [],
      "dst_chain": [],
      "dst_res_id": [],
      "dst_res_name": [],
      "degree": [],
      "info": [],
      "directional": [],
    }
    for rec in self:
      df["src_chain"].append(rec.src.chain_id)
      df["src_res_id"].append(rec.src.res_id[1])
      df["src_res_name"].append(rec.src.name)
      df["dst_chain"].append(rec.dst.chain_id)
      df["dst_res_id"].append(rec.dst.res_id[1])
      df["dst_res_name"].append(rec.dst.name)
      df["degree"].append(rec.degree)
      df["info"].append(rec.info)
      df["directional"].append(rec.directional)
    return pd.DataFrame(df)

  def save(self, fpath: str, tag: str = "contact"):
    """Write the records as tab-separated lines of the form
    ``<tag>  A,12  A,15  0.123  [info]``.

    Parameters:
      fpath: Output file path, overwritten if it exists
      tag: Leading keyword of every line

    """
    with open(fpath, "w") as f:
      for rec in self:
        fields = [tag, rec.src.label, rec.dst.label, f"{rec.degree:.3f}"]
        if rec.info:
          fields.append(rec.info)
        f.write("\t".join(fields) + "\n")
