# tests/test_protein.py
import io

import numpy as np
import pytest

from protcon.constants import BACKBONE_ATOMS_AA
from protcon.protein import Protein, ResidueTable


def _pdb_from_atoms(atom_defs, hetatms=()):
  lines = []
  serial = 0
  for record, defs in (("ATOM  ", atom_defs), ("HETATM", hetatms)):
    for atom_name, resname, chain_id, resid, x, y, z, element in defs:
      serial += 1
      lines.append(
        f"{record}{serial:5d} {atom_name:>4s} {resname:>3s} {chain_id:1s}{resid:4d}    "
        f"{x:8.3f}{y:8.3f}{z:8.3f}  1.00 20.00           {element:>2s}"
      )
  lines.append("TER")
  lines.append("END")
  return "\n".join(lines) + "\n"


def _make_protein(atom_defs, hetatms=()):
  return Protein(io.StringIO(_pdb_from_atoms(atom_defs, hetatms)), format="pdb")


PROTEIN_ATOMS = (
  ("N", "ALA", "A", 1, 0.000, 0.000, 0.000, "N"),
  ("CA", "ALA", "A", 1, 1.458, 0.000, 0.000, "C"),
  ("C", "ALA", "A", 1, 1.958, 1.410, 0.000, "C"),
  ("O", "ALA", "A", 1, 1.200, 2.380, 0.000, "O"),
  ("CB", "ALA", "A", 1, 1.990, -0.780, 1.200, "C"),
  ("N", "GLY", "A", 2, 3.300, 1.410, 0.000, "N"),
  ("CA", "GLY", "A", 2, 3.800, 2.820, 0.000, "C"),
  ("C", "GLY", "A", 2, 5.200, 2.820, 0.000, "C"),
  ("O", "GLY", "A", 2, 5.900, 3.800, 0.000, "O"),
  ("N", "MSE", "B", 7, 10.000, 0.000, 0.000, "N"),
  ("CA", "MSE", "B", 7, 11.458, 0.000, 0.000, "C"),
  ("C", "MSE", "B", 7, 11.958, 1.410, 0.000, "C"),
  ("O", "MSE", "B", 7, 11.200, 2.380, 0.000, "O"),
)

WATER = (("O", "HOH", "B", 101, 20.000, 20.000, 20.000, "O"),)


# -----------------------
# Protein wrapper
# -----------------------


def test_protein_from_handle():
  prot = _make_protein(PROTEIN_ATOMS)
  assert prot.models() == [0]
  assert prot.chains() == ["A", "B"]
  assert f"Atoms={len(PROTEIN_ATOMS)}" in repr(prot)


def test_protein_missing_file_raises(tmp_path):
  with pytest.raises(ValueError):
    Protein(str(tmp_path / "missing.pdb"))


def test_protein_unknown_extension_raises(tmp_path):
  fpath = tmp_path / "structure.txt"
  fpath.write_text(_pdb_from_atoms(PROTEIN_ATOMS))
  with pytest.raises(ValueError):
    Protein(str(fpath))
  assert len(Protein(str(fpath), format="pdb").residue_table()) == 3


# -----------------------
# Residue table
# -----------------------


def test_residue_table_indices_and_chain_positions():
  table = _make_protein(PROTEIN_ATOMS, WATER).residue_table()
  # the water is skipped
  assert len(table) == 3
  assert [rec.index for rec in table] == [0, 1, 2]
  assert [rec.chain_pos for rec in table] == [0, 1, 0]
  assert [rec.label for rec in table] == ["A,1", "A,2", "B,7"]
  assert table[0].has_atom("CB") and not table[1].has_atom("CB")
  assert table[0].coords(BACKBONE_ATOMS_AA).shape == (4, 3)


def test_residue_table_resolve_references():
  prot = _make_protein(PROTEIN_ATOMS)
  table = prot.residue_table()
  rec = table[2]
  assert table.resolve(2) is rec
  assert table.resolve(("B", 7)) is rec
  assert table.resolve(("B", 7, " ")) is rec
  assert table.resolve(rec) is rec
  bio_res = prot.structure[0]["B"][7]
  assert table.resolve(bio_res) is rec
  assert table.index_of(("A", 2)) == 1


def test_residue_table_resolve_unknown_raises():
  table = _make_protein(PROTEIN_ATOMS).residue_table()
  with pytest.raises(KeyError):
    table.resolve(("C", 1))
  with pytest.raises(KeyError):
    table.resolve(99)
  with pytest.raises(KeyError):
    table.resolve("A1")


def test_residue_table_is_a_snapshot():
  prot = _make_protein(PROTEIN_ATOMS)
  table = ResidueTable.from_entity(prot.structure)
  ca = table[0].atoms["CA"].copy()
  prot.structure[0]["A"][1]["CA"].set_coord(np.array([100.0, 100.0, 100.0], dtype=np.float32))
  assert np.allclose(table[0].atoms["CA"], ca)
