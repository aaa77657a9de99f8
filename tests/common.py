import random

from kvtree import *


class SameOp:
	def __init__(self, l, r):
		self.l = l
		self.r = r

	def __call__(self, foo, *, void=False):
		threwl = False
		threwr = False
		resl = None
		resr = None
		try:
			resl = foo(self.l)
		except Exception:
			threwl = True
		try:
			resr = foo(self.r)
		except Exception:
			threwr = True
		assert threwl == threwr
		if threwl:
			return
		if void:
			resl = None
			resr = None
		assert resl == resr


def byte_range(first, last):
	return list(range(first, last + 1))


def random_str(size, rnd: random.Random | None = None):
	rnd = rnd or random.Random()
	return ''.join(chr(rnd.choice(byte_range(0x20, 0x7E) + byte_range(0x400, 0x44F))) for _ in range(size))


def new_map(prefix=b'm', manager=None, **kwargs) -> TreeMap:
	if manager is None:
		manager = InmemManager()
	return TreeMap(manager, prefix, **kwargs)


def verify_invariants(m: TreeMap):
	"""
	walks persisted nodes and checks ordering, AVL balance, heights, sizes and map/index consistency
	"""
	tree = m.tree
	keys = []

	def check(idx, lo, hi):
		if idx is None:
			return (0, 0)
		cur = tree._read(idx)
		lh, ls = check(cur.left, lo, cur.key)
		keys.append(cur.key)
		rh, rs = check(cur.right, cur.key, hi)
		if lo is not None:
			assert lo < cur.key, 'order invariant broken'
		if hi is not None:
			assert cur.key < hi, 'order invariant broken'
		assert rh - lh in (-1, 0, 1), f'balance invariant broken at {cur.key!r}'
		assert cur.height == 1 + max(lh, rh), 'height bookkeeping broken'
		assert cur.size == 1 + ls + rs, 'size bookkeeping broken'
		return (cur.height, cur.size)

	_, total = check(tree.root, None, None)
	assert total == len(m)
	for l, r in zip(keys, keys[1:]):
		assert l < r
	for k in keys:
		assert m.contains_key(k)
	return keys


def dump(m: TreeMap, idx=None, ind=0):
	if idx is None:
		idx = m.tree.root
	if idx is None:
		print(f'{" "*ind}null', end='')
		return
	p = m.tree._read(idx)
	print(f'{" "*ind}[key={p.key}, idx={idx}, h={p.height}, size={p.size}]: {{')
	for child in (p.left, p.right):
		if child is None:
			print(f'{" "*(ind+1)}null')
		else:
			dump(m, child, ind + 1)
			print()
	print(f'{" "*ind}}}', end='')
