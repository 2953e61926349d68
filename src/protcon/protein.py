"""
Provides a lightweight wrapper around Biopython protein structures along with
the residue table used by the contact engine to address residues by stable
integer indices.
"""

import io
import os
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Union

import numpy as np
from Bio.PDB import MMCIFParser, PDBParser
from Bio.PDB.Entity import Entity
from Bio.PDB.Residue import Residue

from protcon.log import logger

ResidueKey = Tuple[str, int, str]


### CLASSES ###
class Protein:
  def __init__(self, pdb: Union[str, io.IOBase], format: str = "auto"):
    """Class that wraps around a protein structure.

    Utilizes the biopython protein structure under the hood.
    Atoms that are not part of a chain will automatically be
    added to a new chain that does not overlap with any
    existing chains.

    Parameters:
      pdb: Can be either a file handle or a PDB / mmCIF filepath
      format: File format of the input ("pdb", "mmcif", or "auto" to infer format from extension)

    """
    self.title = "Untitled Protein"
    if isinstance(pdb, io.IOBase):
      if format == "auto":
        format = "pdb"
    elif isinstance(pdb, (str, os.PathLike)):
      pdb = str(pdb)
      if not os.path.exists(pdb):
        raise ValueError(f'Structure file "{pdb}" does not exist.')
      self.title = os.path.basename(pdb)
    else:
      raise ValueError("Invalid input type provided. Can be either a file handle or a PDB / mmCIF filepath")

    # Infer format if set to auto
    if format == "auto":
      if pdb.lower().endswith(".pdb"):
        format = "pdb"
      elif pdb.lower().endswith(".cif") or pdb.lower().endswith(".mmcif"):
        format = "mmcif"
      else:
        raise ValueError("Failed to infer format. Please specify format explicitly as 'pdb' or 'mmcif'.")

    # load structure
    if format == "pdb":
      parser = PDBParser(QUIET=True)
    elif format == "mmcif":
      parser = MMCIFParser(QUIET=True)
    else:
      raise ValueError("Invalid format specified. Supported formats are 'pdb' or 'mmcif'.")

    self.structure = parser.get_structure("structure", pdb)
    assert len(self.structure), "No models found. Structure appears to be empty."

    # Adds any missing chains to the structure.
    # Ensures new chain IDs do not overlap with existing ones.
    existing_chains = set()
    for model in self.structure:
      existing_chains.update(chain.id for chain in model)
    new_chain_id = None
    for char in "ABCDEFGHIJKLMNOPQRSTUVWXYZ":
      if char not in existing_chains:
        new_chain_id = char
        break
    for model in self.structure:
      for chain in list(model):
        if chain.id is None or not chain.id.strip():
          if new_chain_id is None:
            logger.warning(f"No chain IDs available. Could not rename chain with missing ID in model '{model.id}'.")
            continue
          chain.id = new_chain_id
          logger.info(f"Assigned ID '{new_chain_id}' to chain with missing ID in model '{model.id}'.")

  def __repr__(self):
    return f"<Protcon Protein: Title={self.title} Models={self.models()}, Chains=[{', '.join(self.chains())}], Atoms={len(list(self.structure.get_atoms()))}>"

  def models(self) -> List[int]:
    """Returns a list of all the model names/IDs.

    Returns:
      models: Model IDs found within the structure

    """
    return [model.id for model in self.structure]

  def chains(self, model: Optional[int] = None) -> List[str]:
    """Returns a list of all the chain names/IDs.

    Parameters:
      model: The ID of the model you want to fetch the chains of, defaults to the first model

    Returns:
      Chain names/IDs found within the structure

    """
    if model is None:
      model = self.models()[0]
    return [chain.id for chain in self.structure[model] if chain.id.strip()]

  def residue_table(self, model: Optional[int] = None) -> "ResidueTable":
    """Build the residue table for one model.

    Parameters:
      model: Model ID, defaults to the first model

    Returns:
      A :obj:`ResidueTable` over the model's polymer residues

    """
    if model is None:
      model = self.models()[0]
    return ResidueTable.from_entity(self.structure[model])


@dataclass
class ResidueRecord:
  """A residue of a frozen structure snapshot.

  Attributes:
    index: Structural index, position of the residue in its :obj:`ResidueTable`
    chain_id: Parent chain ID
    res_id: Biopython residue ID ``(hetflag, resseq, icode)``
    name: Residue name (3-letter code)
    chain_pos: 0-based position of the residue within its chain
    atoms: Atom name to coordinate mapping, copied at table construction
    residue: The underlying Biopython residue (read-only)
  """
  index: int
  chain_id: str
  res_id: Tuple[str, int, str]
  name: str
  chain_pos: int
  atoms: Dict[str, np.ndarray] = field(default_factory=dict, repr=False)
  residue: Optional[Residue] = field(default=None, repr=False, compare=False)

  @property
  def key(self) -> ResidueKey:
    return (self.chain_id, self.res_id[1], self.res_id[2])

  @property
  def label(self) -> str:
    """Compact human readable label, e.g. ``A,42`` or ``A,42B``."""
    return f"{self.chain_id},{self.res_id[1]}{self.res_id[2].strip()}"

  def has_atom(self, name: str) -> bool:
    return name in self.atoms

  def coords(self, names) -> np.ndarray:
    """Coordinates of the named atoms that exist in this residue, as an ``(n, 3)`` array."""
    return np.array([self.atoms[n] for n in names if n in self.atoms], dtype=float).reshape(-1, 3)

  def __hash__(self):
    return hash(self.index)

  def __eq__(self, other):
    return isinstance(other, ResidueRecord) and other.index == self.index


class ResidueTable:
  """Ordered arena of residues for one structure model.

  Every other component addresses residues by their integer ``index`` in this
  table. Coordinates are copied out of the Biopython objects when the table is
  built, so later edits to the structure do not leak into the table.
  """

  def __init__(self, records: List[ResidueRecord]):
    self.records = records
    self._by_key: Dict[ResidueKey, int] = {}
    for rec in records:
      self._by_key[rec.key] = rec.index

  @classmethod
  def from_entity(cls, entity: Entity) -> "ResidueTable":
    """Build a table from a Biopython ``Model`` (or ``Structure``, using its first model).
    Water molecules are skipped.
    """
    if entity.level == "S":
      entity = entity[sorted(m.id for m in entity)[0]]
    if entity.level != "M":
      raise ValueError(f"Expected a Biopython Structure or Model, got level {entity.level!r}")
    records: List[ResidueRecord] = []
    for chain in entity:
      pos = 0
      for res in chain:
        if res.id[0] == "W":
          continue
        atoms = {atom.get_id(): np.array(atom.coord, dtype=float) for atom in res}
        records.append(
          ResidueRecord(
            index=len(records),
            chain_id=chain.id,
            res_id=res.id,
            name=res.resname,
            chain_pos=pos,
            atoms=atoms,
            residue=res,
          )
        )
        pos += 1
    return cls(records)

  def __len__(self) -> int:
    return len(self.records)

  def __iter__(self) -> Iterator[ResidueRecord]:
    return iter(self.records)

  def __getitem__(self, i: int) -> ResidueRecord:
    return self.records[i]

  def resolve(self, ref) -> ResidueRecord:
    """Resolve any supported residue reference to its record.

    Parameters:
      ref: An int index, a :obj:`ResidueRecord`, a Biopython ``Residue``, or a ``(chain_id, resseq[, icode])`` tuple

    Returns:
      The matching record

    """
    if isinstance(ref, ResidueRecord):
      if 0 <= ref.index < len(self.records) and self.records[ref.index] is ref:
        return ref
      return self.resolve(ref.key)
    if isinstance(ref, (int, np.integer)) and not isinstance(ref, bool):
      if 0 <= ref < len(self.records):
        return self.records[int(ref)]
      raise KeyError(f"Residue index {ref} out of range for a table of {len(self.records)} residues")
    if isinstance(ref, Residue):
      chain = ref.get_parent()
      key = (chain.id if chain is not None else " ", ref.id[1], ref.id[2])
      return self.resolve(key)
    if isinstance(ref, tuple) and len(ref) in (2, 3):
      key = (ref[0], int(ref[1]), ref[2] if len(ref) == 3 else " ")
      if key not in self._by_key:
        raise KeyError(f"Residue {key} not found")
      return self.records[self._by_key[key]]
    raise KeyError(f"Unsupported residue reference: {ref!r}")

  def index_of(self, ref) -> int:
    return self.resolve(ref).index
