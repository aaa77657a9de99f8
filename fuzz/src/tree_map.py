#!/usr/bin/env python3

from kvtree import *

import sys
from pathlib import Path

sys.path.append(str(Path(__file__).parent.parent))
from fuzz_common import do_fuzzing, StopFuzzingException, FuzzerBuilder


def verify_invariants(v: TreeMap[str, int]):
	tree = v.tree

	def check(idx):
		if idx is None:
			return (0, 0)
		cur = tree._read(idx)
		lh, ls = check(cur.left)
		rh, rs = check(cur.right)
		if cur.left is not None:
			assert tree._read(cur.left).key < cur.key
		if cur.right is not None:
			assert cur.key < tree._read(cur.right).key
		assert rh - lh in (-1, 0, 1), 'invariant broken'
		assert cur.height == 1 + max(lh, rh)
		assert cur.size == 1 + ls + rs
		return (cur.height, cur.size)

	assert check(tree.root)[1] == len(v)


def in_bounds(k, lo, hi) -> bool:
	match lo:
		case Included(key=b) if k < b:
			return False
		case Excluded(key=b) if k <= b:
			return False
	match hi:
		case Included(key=b) if k > b:
			return False
		case Excluded(key=b) if k >= b:
			return False
	return True


def tree_map(buf):
	builder = FuzzerBuilder(buf)

	try:
		iterations = builder.fetch_int(2)

		etalon: dict[str, int] = {}
		testing: TreeMap[str, int] = TreeMap(InmemManager(), b'f')

		for i in range(iterations):
			op = builder.fetch(1)[0] % 4
			if op == 0:
				key = builder.fetch_str()
				val = builder.fetch_int(4)
				assert testing.insert(key, val) == etalon.get(key)
				etalon[key] = val
			elif op == 1:
				key = builder.fetch_str()
				e = etalon.pop(key, None)
				t = testing.pop(key, None)
				assert e == t
			elif op == 2:
				lo = builder.fetch_bound()
				hi = builder.fetch_bound()
				try:
					it = testing.range(lo, hi)
				except ValueError:
					continue
				expected = [(k, v) for k, v in sorted(etalon.items()) if in_bounds(k, lo, hi)]
				assert len(it) == len(expected)
				skip = builder.fetch(1)[0] % 4
				if builder.fetch(1)[0] % 2 == 0:
					got = it.nth(skip)
					want = expected[skip] if skip < len(expected) else None
					rest = expected[skip + 1 :]
				else:
					got = it.nth_back(skip)
					want = expected[-1 - skip] if skip < len(expected) else None
					rest = expected[: max(len(expected) - skip - 1, 0)]
				assert got == want
				assert list(it) == rest
			else:
				key = builder.fetch_str()
				assert testing.floor_key(key) == max((k for k in etalon if k <= key), default=None)
				assert testing.ceil_key(key) == min((k for k in etalon if k >= key), default=None)

		verify_invariants(testing)

		assert list(testing.items()) == sorted(etalon.items())
	except StopFuzzingException:
		return


if __name__ == '__main__':
	do_fuzzing(tree_map)
