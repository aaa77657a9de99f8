import kvtree.codec as codec
from kvtree import *

from .common import verify_invariants


def codec_decoding_target(buf):
	try:
		decoded = codec.decode(buf)
	except (codec.DecodingError, RecursionError):
		return
	got = codec.encode(decoded)

	assert got == buf, f'decoded is `{decoded}`'


def tree_map_target(buf):
	etalon: dict[int, int] = {}
	testing: TreeMap[int, int] = TreeMap(InmemManager(), b'f')

	for i in range(0, len(buf) - 1, 2):
		op = buf[i] & 1
		key = buf[i + 1] % 32
		if op == 0:
			assert testing.insert(key, i) == etalon.get(key)
			etalon[key] = i
		else:
			assert testing.remove(key) == etalon.pop(key, None)

	verify_invariants(testing)
	assert list(testing.items()) == sorted(etalon.items())
	assert list(reversed(testing)) == sorted(etalon, reverse=True)


def test_codec_decoding():
	from . import do_fuzzing

	do_fuzzing(codec_decoding_target, runs=20_000)


def test_tree_map_against_dict():
	from . import do_fuzzing

	do_fuzzing(tree_map_target, runs=2_000)
