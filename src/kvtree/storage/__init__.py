__all__ = (
	'Manager',
	'InmemManager',
	'Hasher',
	'Sha3_256',
	'Sha256',
	'Blake2b256',
	'Codec',
	'RecordCodec',
	'DIGEST_SIZE',
	'LookupMap',
	'ValueRef',
	'Tree',
	'Comparable',
	'TreeMap',
	'Entry',
	'OccupiedEntry',
	'VacantEntry',
	'Keys',
	'Iter',
	'IterMut',
	'Values',
	'ValuesMut',
	'StorageCorruptedError',
	'BrokenInvariantError',
	'StorageExhaustedError',
)

from ._internal.core import (
	Manager,
	InmemManager,
	Hasher,
	Sha3_256,
	Sha256,
	Blake2b256,
	Codec,
	RecordCodec,
	DIGEST_SIZE,
)
from .lookup_map import LookupMap, ValueRef
from .tree import Tree, Comparable
from .tree_map import TreeMap, Entry, OccupiedEntry, VacantEntry
from .iter import Keys, Iter, IterMut, Values, ValuesMut
from .errors import StorageCorruptedError, BrokenInvariantError, StorageExhaustedError
