import pytest
import json
import random
import itertools

from kvtree import *

from .common import *


def same_iter(li, ri):
	for l, r in zip(li, ri, strict=True):
		assert l == r


def filled() -> tuple[TreeMap[str, str], dict[str, str]]:
	r = {str(i): str(i) + str(i) for i in range(10)}
	l: TreeMap[str, str] = new_map()
	l.update(r)
	return l, r


def test_construct():
	l, r = filled()
	same_iter(l.items(), sorted(r.items()))
	verify_invariants(l)


@pytest.mark.parametrize('key', ['1', '-1', '2', '10'])
def test_contains(key: str):
	l, r = filled()
	assert (key in l) == (key in r)
	assert l.contains_key(key) == (key in r)


@pytest.mark.parametrize(
	'key,dflt', [(key, dflt) for key in ['1', '-1', '2', '10'] for dflt in [None, 'dflt']]
)
def test_get_dflt(key: str, dflt):
	l, r = filled()
	assert l.get(key, dflt) == r.get(key, dflt)


@pytest.mark.parametrize('key', ['1', '-1', '2', '10', '1000'])
def test_set(key: str):
	l, r = filled()
	l[key] = 'test'
	r[key] = 'test'
	same_iter(l.items(), sorted(r.items()))
	verify_invariants(l)


@pytest.mark.parametrize('key', ['1', '2', '9'])
def test_del(key: str):
	l, r = filled()
	del l[key]
	del r[key]
	same_iter(l.items(), sorted(r.items()))
	verify_invariants(l)


def test_del_absent():
	l, _ = filled()
	with pytest.raises(KeyError):
		del l['nope']
	with pytest.raises(KeyError):
		l['nope']
	assert len(l) == 10


def test_insert_returns_previous():
	m: TreeMap[int, str] = new_map()
	assert m.insert(1, 'a') is None
	assert len(m) == 1
	assert m.insert(1, 'b') == 'a'
	assert len(m) == 1
	assert m.get(1) == 'b'


def test_remove():
	m: TreeMap[int, str] = new_map()
	m.insert(1, 'a')
	m.insert(2, 'b')
	assert m.remove(1) == 'a'
	assert m.remove(1) is None
	assert m.remove_entry(2) == (2, 'b')
	assert len(m) == 0
	verify_invariants(m)


def test_remove_absent_keeps_everything():
	man = InmemManager()
	m: TreeMap[int, int] = new_map(manager=man)
	for i in range(0, 20, 2):
		m[i] = i
	before = list(m.items())
	man.reset_stats()
	assert m.remove(5) is None
	assert man.writes == 0
	assert list(m.items()) == before
	assert m.floor_key(5) == 4


def test_none_key():
	m: TreeMap = new_map()
	with pytest.raises(TypeError):
		m[None] = 1
	assert None not in m
	assert m.get(None, 'd') == 'd'
	assert m.remove(None) is None


def test_pop_popitem():
	l, r = filled()
	op = SameOp(l, r)
	op(lambda x: x.pop('3'))
	op(lambda x: x.pop('3', 'dflt'))
	op(lambda x: x.pop('3'))
	assert l.popitem() == ('0', '00')
	assert len(l) == 8
	l.clear()
	with pytest.raises(KeyError):
		l.popitem()


def test_entry_api():
	m: TreeMap[str, int] = new_map()
	e = m.entry('a')
	assert isinstance(e, VacantEntry)
	assert e.key == 'a'
	assert e.and_modify(lambda x: x + 1).or_insert(1) == 1
	assert m['a'] == 1

	e = m.entry('a')
	assert isinstance(e, OccupiedEntry)
	assert e.get() == 1
	e.and_modify(lambda x: x + 10)
	assert m['a'] == 11
	assert m.entry('a').or_insert(100) == 11
	assert m.entry('a').insert(5) == 11
	assert m['a'] == 5
	assert m.entry('a').remove() == 5
	assert 'a' not in m
	verify_invariants(m)


def test_compute_if_absent():
	m: TreeMap[str, list[int]] = new_map()
	calls = []

	def supplier():
		calls.append(1)
		return [1]

	assert m.compute_if_absent('k', supplier) == [1]
	assert m.compute_if_absent('k', supplier) == [1]
	assert len(calls) == 1
	assert m.setdefault('j', [2]) == [2]
	assert m.setdefault('j', [3]) == [2]


def test_get_mut():
	m: TreeMap[str, list[int]] = new_map()
	m['a'] = [1]
	assert m.get_mut('b') is None
	with m.get_mut('a') as ref:
		ref.value.append(2)
	assert m['a'] == [1, 2]
	assert len(m) == 1


def test_navigation():
	m: TreeMap[int, str] = new_map()
	for k in [2, 4, 6]:
		m[k] = str(k)
	assert m.floor_key(5) == 4
	assert m.ceil_key(5) == 6
	assert m.lower(4) == 2
	assert m.higher(4) == 6
	assert m.floor_key(1) is None
	assert m.min() == 2
	assert m.max() == 6
	assert m.first_key_value() == (2, '2')
	assert m.last_key_value() == (6, '6')
	assert m.get_key_value(4) == (4, '4')
	assert m.get_key_value(5) is None


def test_empty():
	m: TreeMap[int, int] = new_map()
	assert len(m) == 0
	assert list(m) == []
	assert m.first_key_value() is None
	assert m.last_key_value() is None
	assert repr(m) == 'TreeMap({})'


def test_repr_eq():
	m: TreeMap[str, int] = new_map()
	m.update({'b': 2, 'a': 1})
	assert repr(m) == "TreeMap({'a': 1, 'b': 2})"
	assert m == {'a': 1, 'b': 2}
	assert m != {'a': 1}
	assert m != {'a': 1, 'b': 3}


def test_reattach():
	man = InmemManager()
	m: TreeMap[int, int] = new_map(b'x', man)
	for i in range(100):
		m[i] = i * i
	for i in range(0, 100, 3):
		del m[i]
	other: TreeMap[int, int] = new_map(b'x', man)
	assert len(other) == len(m)
	assert other.tree.root == m.tree.root
	assert other.tree.next_id == m.tree.next_id
	same_iter(other.items(), m.items())
	verify_invariants(other)


def test_disjoint_prefixes():
	man = InmemManager()
	l: TreeMap[str, int] = new_map(b'l', man)
	r: TreeMap[str, int] = new_map(b'r', man)
	l['a'] = 1
	r['a'] = 2
	r['b'] = 3
	assert l == {'a': 1}
	assert r == {'a': 2, 'b': 3}


def test_clear_keeps_id_counter():
	man = InmemManager()
	m: TreeMap[int, int] = new_map(manager=man)
	for i in range(10):
		m[i] = i
	m.clear()
	assert len(m) == 0
	assert list(m) == []
	# only tree header is left
	assert len(man) == 1
	assert m.tree.next_id == 10
	m[1] = 1
	assert m.tree.next_id == 11
	verify_invariants(m)


def test_unencodable_value_rolls_back_index():
	man = InmemManager()
	m: TreeMap[str, object] = new_map(manager=man)
	m['a'] = 1
	with pytest.raises(TypeError):
		m['b'] = object()
	assert len(m) == 1
	assert 'b' not in m
	assert m.tree.max() == 'a'
	verify_invariants(m)
	# existing key keeps its value
	with pytest.raises(TypeError):
		m['a'] = object()
	assert m['a'] == 1
	assert len(m) == 1


def test_value_without_index_is_broken_invariant():
	m: TreeMap[str, int] = new_map()
	m['a'] = 1
	m.tree.remove('a')
	with pytest.raises(BrokenInvariantError):
		m['a'] = 2


def test_index_without_value_is_broken_invariant():
	m: TreeMap[str, int] = new_map()
	m['a'] = 1
	m._values.remove('a')
	with pytest.raises(BrokenInvariantError):
		m.remove('a')
	with pytest.raises(BrokenInvariantError):
		list(m.items())


def test_corrupted_value():
	man = InmemManager()
	m: TreeMap[str, int] = new_map(manager=man)
	m['a'] = 1
	man.set(m._values._addr('a'), b'\x80')
	with pytest.raises(StorageCorruptedError):
		m['a']


def test_tuple_keys():
	m: TreeMap[tuple[int, str], int] = new_map()
	m[(1, 'b')] = 1
	m[(1, 'a')] = 2
	m[(0, 'z')] = 3
	assert list(m) == [(0, 'z'), (1, 'a'), (1, 'b')]
	assert m.ceil_key((1, '')) == (1, 'a')


class JsonCodec:
	def encode(self, val):
		return json.dumps(val).encode('utf-8')

	def decode(self, data):
		return json.loads(bytes(data))


@pytest.mark.parametrize('hasher', [Sha3_256(), Sha256(), Blake2b256()])
def test_custom_hasher_and_codec(hasher):
	m: TreeMap[int, dict] = new_map(hasher=hasher, codec=JsonCodec())
	for i in reversed(range(30)):
		m[i] = {'v': i}
	assert list(m.values()) == [{'v': i} for i in range(30)]
	verify_invariants(m)


def test_len_is_constant_io():
	man = InmemManager()
	m: TreeMap[int, int] = new_map(manager=man)
	for i in range(50):
		m[i] = i
	man.reset_stats()
	assert len(m) == 50
	assert man.reads == 0


def test_insert():
	stor: TreeMap[str, int] = new_map()
	dic: dict[str, int] = {}

	def same_items():
		for (lk, lv), (rk, rv) in itertools.zip_longest(stor.items(), sorted(dic.items())):
			assert lk == rk
			assert lv == rv

	op = SameOp(stor, dic)
	same_items()
	vals = list(range(300)) * 2
	vals_dup = vals.copy()
	rnd = random.Random(0)
	rnd.shuffle(vals)
	rnd.shuffle(vals_dup)
	iteration = 0
	while len(vals) > 0:
		iteration += 1
		it = vals.pop()
		op(len)
		op(lambda x: x[str(it)])
		op(lambda x: x.get(str(it), None))
		op(lambda x: x.__setitem__(str(it), iteration), void=True)
		if iteration % 10 == 0:
			verify_invariants(stor)
	same_items()

	op(lambda x: x.__delitem__('-1'), void=True)
	same_items()

	for i, it in enumerate(vals_dup):
		op(lambda x: x.pop(str(it), None))
		if i % 10 == 0:
			verify_invariants(stor)
	same_items()
	assert len(stor) == 0


def test_failed_index_removal_keeps_value():
	man = InmemManager()
	m: TreeMap[int, int] = new_map(manager=man)
	for i in range(1, 8):
		m[i] = i * 10
	tree = m.tree
	root = tree._read(tree.root)
	assert root.key == 4
	# in-order successor of the root
	succ = tree._read(root.right).left
	assert tree._read(succ).key == 5
	man.remove(tree._nodes._addr(succ))

	man.reset_stats()
	with pytest.raises(StorageCorruptedError):
		m.remove(4)
	assert man.writes == 0
	assert tree.contains(4) == m._values.contains_key(4)
	assert m[4] == 40
	assert len(m) == 7
