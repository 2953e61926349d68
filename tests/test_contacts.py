# tests/test_contacts.py
import pytest

from protcon.contacts import ContactList
from protcon.protein import ResidueRecord


def _residues(n, chain_id="A"):
  return [ResidueRecord(index=i, chain_id=chain_id, res_id=(" ", i + 1, " "), name="ALA", chain_pos=i) for i in range(n)]


@pytest.fixture
def res():
  return _residues(5)


def test_add_and_lookup(res):
  contacts = ContactList()
  contacts.add_contact(res[3], res[1], 0.4, "note")
  assert len(contacts) == 1
  assert contacts.are_in_contact(res[3], res[1])
  assert contacts.are_in_contact(res[1], res[3])
  assert contacts.degree(res[1], res[3]) == pytest.approx(0.4)
  assert contacts.degree(0) == pytest.approx(0.4)
  assert contacts.info(0) == "note"
  assert contacts.residue_a(0) is res[3] and contacts.residue_b(0) is res[1]


def test_unknown_pair_raises(res):
  contacts = ContactList()
  contacts.add_contact(res[0], res[1], 0.1)
  with pytest.raises(KeyError):
    contacts.degree(res[0], res[2])
  assert not contacts.are_in_contact(res[0], res[2])


def test_directional_records_are_one_way(res):
  contacts = ContactList()
  contacts.add_contact(res[2], res[0], 0.7, directional=True)
  assert contacts.are_in_contact(res[2], res[0])
  assert not contacts.are_in_contact(res[0], res[2])
  assert contacts.is_directional(0)
  assert contacts.ordered_contacts() == [(res[2], res[0])]


def test_ordered_contacts_are_canonical_and_unique(res):
  contacts = ContactList()
  contacts.add_contact(res[4], res[2], 0.1)
  contacts.add_contact(res[0], res[3], 0.2)
  contacts.add_contact(res[2], res[4], 0.3)
  contacts.add_contact(res[1], res[0], 0.4)
  assert contacts.ordered_contacts() == [(res[0], res[1]), (res[0], res[3]), (res[2], res[4])]


def test_sort_by_degree_keeps_lookups_consistent(res):
  contacts = ContactList()
  contacts.add_contact(res[0], res[1], 0.2, "a")
  contacts.add_contact(res[1], res[2], 0.9, "b")
  contacts.add_contact(res[2], res[3], 0.5, "c")
  contacts.add_contact(res[3], res[4], 0.5, "d")
  before = {(r.src.index, r.dst.index): r.degree for r in contacts}
  pairs_before = contacts.ordered_contacts()

  contacts.sort_by_degree()

  assert [contacts.degree(i) for i in range(len(contacts))] == [0.9, 0.5, 0.5, 0.2]
  # ties keep insertion order
  assert [contacts.info(i) for i in range(len(contacts))] == ["b", "c", "d", "a"]
  for (i, j), degree in before.items():
    assert contacts.degree(res[i], res[j]) == degree
  assert contacts.ordered_contacts() == pairs_before


def test_copy_is_independent(res):
  contacts = ContactList()
  contacts.add_contact(res[0], res[1], 0.2)
  other = contacts.copy()
  other.add_contact(res[1], res[2], 0.3)
  assert len(contacts) == 1 and len(other) == 2


def test_to_dataframe_and_save(res, tmp_path):
  contacts = ContactList()
  contacts.add_contact(res[0], res[1], 0.25, "permanent")
  contacts.add_contact(res[2], res[3], 0.125)
  df = contacts.to_dataframe()
  assert list(df.src_res_id) == [1, 3]
  assert list(df.degree) == [0.25, 0.125]

  fpath = tmp_path / "contacts.tsv"
  contacts.save(str(fpath))
  lines = fpath.read_text().splitlines()
  assert lines == ["contact\tA,1\tA,2\t0.250\tpermanent", "contact\tA,3\tA,4\t0.125"]
