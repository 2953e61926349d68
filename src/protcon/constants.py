"""
This file contains constants.
"""

from dataclasses import dataclass
from typing import Dict, Optional

## Backbone Atoms
# Names of the heavy atoms that make up a protein's backbone, in the order
# they are inserted into the backbone spatial index
BACKBONE_ATOMS_AA = ("N", "CA", "C", "O")
# Extra atom names that never count as side-chain atoms
NON_SIDECHAIN_ATOMS = {"N", "CA", "C", "O", "OXT", "OT1", "OT2", "H", "HA", "H1", "H2", "H3"}

## Amino Acid Codes and Properties


# Amino acid Record class
@dataclass(frozen=True)
class AARecord:
  code: Optional[str]  # 1-letter code; None for if unavailable
  abr: str  # 3-letter abbreviation or CCD code
  name: str  # full name (upper-cased)
  is_standard: bool  # True for the 20 canonical AAs
  standard_equiv_abr: Optional[str]  # e.g., "LYS" for KCX; None if standard or unknown


## Amino acids keyed by ABR
AA_RECORDS: Dict[str, AARecord] = {
  # STANDARD AMINO ACIDS
  "ALA": AARecord("A", "ALA", "ALANINE", True, None),
  "ARG": AARecord("R", "ARG", "ARGININE", True, None),
  "ASN": AARecord("N", "ASN", "ASPARAGINE", True, None),
  "ASP": AARecord("D", "ASP", "ASPARTIC ACID", True, None),
  "CYS": AARecord("C", "CYS", "CYSTEINE", True, None),
  "GLN": AARecord("Q", "GLN", "GLUTAMINE", True, None),
  "GLU": AARecord("E", "GLU", "GLUTAMIC ACID", True, None),
  "GLY": AARecord("G", "GLY", "GLYCINE", True, None),
  "HIS": AARecord("H", "HIS", "HISTIDINE", True, None),
  "ILE": AARecord("I", "ILE", "ISOLEUCINE", True, None),
  "LEU": AARecord("L", "LEU", "LEUCINE", True, None),
  "LYS": AARecord("K", "LYS", "LYSINE", True, None),
  "MET": AARecord("M", "MET", "METHIONINE", True, None),
  "PHE": AARecord("F", "PHE", "PHENYLALANINE", True, None),
  "PRO": AARecord("P", "PRO", "PROLINE", True, None),
  "SER": AARecord("S", "SER", "SERINE", True, None),
  "THR": AARecord("T", "THR", "THREONINE", True, None),
  "TRP": AARecord("W", "TRP", "TRYPTOPHAN", True, None),
  "TYR": AARecord("Y", "TYR", "TYROSINE", True, None),
  "VAL": AARecord("V", "VAL", "VALINE", True, None),
  # NON-STANDARD / MODIFIED (from CCD)
  "HSD": AARecord(None, "HSD", "HISTIDINE (DELTA PROTONATED)", False, "HIS"),
  "HSE": AARecord(None, "HSE", "HISTIDINE (EPSILON PROTONATED)", False, "HIS"),
  "TPO": AARecord(None, "TPO", "O-PHOSPHOTHREONINE", False, "THR"),
  "SEP": AARecord(None, "SEP", "O-PHOSPHOSERINE", False, "SER"),
  "MSE": AARecord(None, "MSE", "SELENOMETHIONINE", False, "MET"),
  "MLY": AARecord(None, "MLY", "Nε-METHYLLYSINE", False, "LYS"),
  "KCX": AARecord(None, "KCX", "CARBOXYLYSINE", False, "LYS"),
  "CSO": AARecord(None, "CSO", "S-HYDROXYCYSTEINE (CYSTEINE SULFINIC ACID)", False, "CYS"),
}

## Contact engine defaults
# CA-CA distance beyond which two residues are never considered to interact
DEFAULT_DCUT = 25.0
# Inter-atomic distance below which side-chain vs backbone (or backbone vs backbone) atoms clash
DEFAULT_CLASH_DIST = 3.0
# Inter-atomic distance below which two rotamers are counted as contacting
DEFAULT_CONT_DIST = 3.0
# Collision probability cutoffs used for the freedom calculation
DEFAULT_LO_COLL_PROB_CUT = 0.1
DEFAULT_HI_COLL_PROB_CUT = 0.5
# Freedom formula: 1 = count-based step, 2 = weight-based linear ramp
DEFAULT_FREEDOM_TYPE = 1
FREEDOM_TYPES = (1, 2)
# Amino acids whose rotamers are not considered
DEFAULT_EXCLUDED_AAS = ("GLY", "PRO")
# Number of buckets per axis used when a grid is built without a characteristic distance
DEFAULT_GRID_BUCKETS = 20
