# tests/test_rotamers.py
import numpy as np
import pytest

from protcon.protein import ResidueRecord
from protcon.rotamers import (
  Rotamer,
  RotamerLibraryError,
  StaticRotamerLibrary,
  backbone_frame,
  library_aa,
  place,
)

N = np.array([-0.6, 1.3, 0.0])
CA = np.array([0.0, 0.0, 0.0])
C = np.array([1.5, 0.0, 0.0])


def _residue(name="LEU", shift=(0.0, 0.0, 0.0), atoms=("N", "CA", "C")):
  coords = {"N": N, "CA": CA, "C": C}
  return ResidueRecord(
    index=0,
    chain_id="A",
    res_id=(" ", 5, " "),
    name=name,
    chain_pos=0,
    atoms={a: coords[a] + np.asarray(shift) for a in atoms},
  )


def test_backbone_frame_is_orthonormal():
  origin, rot = backbone_frame(N, CA, C)
  assert np.allclose(origin, CA)
  assert np.allclose(rot @ rot.T, np.eye(3))
  assert np.allclose(rot[0], [1.0, 0.0, 0.0])
  # N lies in the xy plane of the frame on the positive y side
  assert (N - CA) @ rot[1] > 0


def test_backbone_frame_degenerate_raises():
  with pytest.raises(RotamerLibraryError):
    backbone_frame(np.array([-1.0, 0.0, 0.0]), CA, C)


def test_place_follows_the_backbone():
  template = Rotamer(aa="LEU", index=0, probability=1.0, atom_names=("CG",), coords=[[1.0, 0.0, 0.0]])
  placed = place(template, _residue())
  assert np.allclose(placed.coords, [[1.0, 0.0, 0.0]])
  shifted = place(template, _residue(shift=(3.0, -2.0, 7.0)))
  assert np.allclose(shifted.coords - placed.coords, [[3.0, -2.0, 7.0]])
  # the template itself is untouched
  assert np.allclose(template.coords, [[1.0, 0.0, 0.0]])


def test_place_requires_backbone():
  template = Rotamer(aa="LEU", index=0, probability=1.0, atom_names=("CG",), coords=[[1.0, 0.0, 0.0]])
  with pytest.raises(RotamerLibraryError):
    place(template, _residue(atoms=("CA", "C")))


def test_rotamer_validation():
  with pytest.raises(ValueError):
    Rotamer(aa="LEU", index=0, probability=1.0, atom_names=("CG", "CD1"), coords=[[0.0, 0.0, 0.0]])
  with pytest.raises(ValueError):
    Rotamer(aa="LEU", index=0, probability=-0.1, atom_names=("CG",), coords=[[0.0, 0.0, 0.0]])


def test_static_library_templates_and_overrides():
  lib = StaticRotamerLibrary()
  lib.add_rotamer("leu", ("CG",), [[1.0, 1.0, 0.0]], 0.6)
  lib.add_rotamer("LEU", ("CG",), [[1.0, -1.0, 0.0]], 0.4)
  assert lib.num_rotamers("LEU") == 2
  assert lib.has("LEU") and not lib.has("TRP")

  rots = lib.rotamers(_residue())
  assert [r.index for r in rots] == [0, 1]
  assert [r.probability for r in rots] == [0.6, 0.4]

  pinned = Rotamer(aa="LEU", index=9, probability=1.0, atom_names=("CG",), coords=[[5.0, 5.0, 5.0]])
  lib.set_residue_rotamers(("A", 5), [pinned])
  rots = lib.rotamers(_residue())
  assert len(rots) == 1 and rots[0].index == 0
  assert np.allclose(rots[0].coords, [[5.0, 5.0, 5.0]])


def test_static_library_unknown_amino_acid_raises():
  lib = StaticRotamerLibrary()
  with pytest.raises(RotamerLibraryError):
    lib.rotamers(_residue(name="TRP"))
  with pytest.raises(KeyError):
    lib.num_rotamers("TRP")


def test_modified_residues_use_standard_library_entry():
  assert library_aa("MSE") == "MET"
  assert library_aa("leu") == "LEU"
  lib = StaticRotamerLibrary()
  lib.add_rotamer("MET", ("SD",), [[1.0, 1.0, 0.0]], 1.0)
  assert len(lib.rotamers(_residue(name="MSE"))) == 1
