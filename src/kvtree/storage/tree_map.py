__all__ = ('TreeMap', 'Entry', 'OccupiedEntry', 'VacantEntry')

import typing
import logging
import collections.abc

from ..types import Bound, Included, Excluded, Unbounded, UNBOUNDED
from ._internal.core import (
	Manager,
	Hasher,
	Codec,
	DEFAULT_HASHER,
	DEFAULT_CODEC,
	as_prefix,
)
from .tree import Tree, Comparable
from .lookup_map import LookupMap, ValueRef
from .iter import Keys, Iter, IterMut, Values, ValuesMut
from .errors import BrokenInvariantError

logger = logging.getLogger(__name__)

_NO_OBJ: typing.Any = object()


def _broken(msg: str) -> BrokenInvariantError:
	logger.error(msg)
	return BrokenInvariantError(msg)


class TreeMap[K: Comparable, V](collections.abc.MutableMapping[K, V]):
	"""
	Represents a sorted mapping from keys to values that is persisted in a :py:class:`~kvtree.storage.Manager`

	Keys are kept in a :py:class:`~kvtree.storage.tree.Tree`, values in a :py:class:`~kvtree.storage.lookup_map.LookupMap`.
	``K`` must implement :py:class:`~kvtree.storage.tree.Comparable` protocol ("<" and "=" are needed),
	:py:obj:`None` is not a valid key

	Creating a map with a prefix that already holds one attaches to the existing data
	"""

	__slots__ = ('_prefix', '_tree', '_values')

	def __init__(
		self,
		manager: Manager,
		prefix: bytes | str,
		*,
		hasher: Hasher = DEFAULT_HASHER,
		codec: Codec = DEFAULT_CODEC,
	):
		self._prefix = as_prefix(prefix)
		self._tree: Tree[K] = Tree(manager, self._prefix + b't', hasher=hasher, codec=codec)
		self._values: LookupMap[K, V] = LookupMap(
			manager, self._prefix + b'v', hasher=hasher, codec=codec
		)

	@property
	def tree(self) -> Tree[K]:
		return self._tree

	def __len__(self) -> int:
		return len(self._tree)

	@staticmethod
	def _check_key(k: K) -> None:
		if k is None:
			raise TypeError('None is not a valid key')

	# values

	def insert(self, k: K, v: V) -> V | None:
		"""
		:returns: previous value associated with ``k`` or :py:obj:`None`
		"""
		self._check_key(k)
		if not self._tree.insert(k):
			return self._values.insert(k, v)
		try:
			old = self._values.insert(k, v)
		except BaseException:
			logger.debug('value for %r was not stored, rolling back index insert', k)
			self._tree.remove(k)
			raise
		if old is not None:
			raise _broken(f'key {k!r} had a value but was not indexed')
		return None

	def remove(self, k: K) -> V | None:
		"""
		:returns: removed value or :py:obj:`None` if ``k`` is absent
		"""
		res = self.remove_entry(k)
		if res is None:
			return None
		return res[1]

	def remove_entry(self, k: K) -> tuple[K, V] | None:
		"""
		:returns: removed key and value, or :py:obj:`None` if ``k`` is absent
		"""
		if k is None or not self._tree.contains(k):
			return None
		old = self._values.get_or(k, _NO_OBJ)
		if old is _NO_OBJ:
			raise _broken(f'key {k!r} is indexed but has no value')
		# index goes first, it writes nothing if it fails half way
		self._tree.remove(k)
		self._values.discard(k)
		return (k, old)

	def get[G](self, k: K, default: G = None) -> V | G:
		"""
		:returns: value associated with ``k`` or ``default`` if there is no such value
		"""
		if k is None:
			return default
		return self._values.get_or(k, default)

	def get_mut(self, k: K) -> ValueRef[K, V] | None:
		"""
		:returns: handle to the value associated with ``k``, see :py:class:`~kvtree.storage.lookup_map.ValueRef`
		"""
		if k is None:
			return None
		return self._values.get_mut(k)

	def get_key_value(self, k: K) -> tuple[K, V] | None:
		v = self.get(k, _NO_OBJ)
		if v is _NO_OBJ:
			return None
		return (k, v)

	def contains_key(self, k: K) -> bool:
		if k is None:
			return False
		return self._values.contains_key(k)

	def __contains__(self, k: object) -> bool:
		return self.contains_key(typing.cast(K, k))

	def __getitem__(self, k: K) -> V:
		res = self.get(k, _NO_OBJ)
		if res is _NO_OBJ:
			raise KeyError(k)
		return res

	def __setitem__(self, k: K, v: V) -> None:
		self.insert(k, v)

	def __delitem__(self, k: K) -> None:
		if self.remove_entry(k) is None:
			raise KeyError(k)

	def pop(self, k: K, default: typing.Any = _NO_OBJ) -> typing.Any:
		res = self.remove_entry(k)
		if res is not None:
			return res[1]
		if default is _NO_OBJ:
			raise KeyError(k)
		return default

	def popitem(self) -> tuple[K, V]:
		"""
		Removes and returns the entry with the smallest key
		"""
		k = self._tree.min()
		if k is None:
			raise KeyError('popitem(): map is empty')
		return typing.cast(tuple[K, V], self.remove_entry(k))

	def clear(self) -> None:
		"""
		Removes all entries. Storage use is proportional to the number of entries
		"""
		self._tree.clear(self._values.discard)

	# entries

	def entry(self, k: K) -> 'Entry[K, V]':
		"""
		:returns: entry at ``k`` which can be inspected and modified in place
		"""
		self._check_key(k)
		ref = self._values.get_mut(k)
		if ref is None:
			return VacantEntry(self, k)
		return OccupiedEntry(self, ref)

	def compute_if_absent(self, k: K, supplier: typing.Callable[[], V]) -> V:
		"""
		:returns: Value associated with ``k`` if it is present, otherwise gets new value from the supplier, stores it at ``k`` and returns
		"""
		return self.entry(k).or_insert_with(supplier)

	def setdefault(self, k: K, default: typing.Any = None) -> typing.Any:
		return self.entry(k).or_insert(default)

	# navigation

	def min(self) -> K | None:
		return self._tree.min()

	def max(self) -> K | None:
		return self._tree.max()

	def floor_key(self, k: K) -> K | None:
		return self._tree.floor_key(k)

	def ceil_key(self, k: K) -> K | None:
		return self._tree.ceil_key(k)

	def lower(self, k: K) -> K | None:
		return self._tree.lower(k)

	def higher(self, k: K) -> K | None:
		return self._tree.higher(k)

	def first_key_value(self) -> tuple[K, V] | None:
		k = self._tree.min()
		if k is None:
			return None
		return (k, self._indexed_value(k))

	def last_key_value(self) -> tuple[K, V] | None:
		k = self._tree.max()
		if k is None:
			return None
		return (k, self._indexed_value(k))

	def _indexed_value(self, k: K) -> V:
		res = self._values.get_or(k, _NO_OBJ)
		if res is _NO_OBJ:
			raise _broken(f'key {k!r} is indexed but has no value')
		return res

	# iteration

	@staticmethod
	def _check_range(min: Bound[K], max: Bound[K]) -> None:
		for b in (min, max):
			if not isinstance(b, (Unbounded, Included, Excluded)):
				raise TypeError(f'not a bound {b!r}')
		if isinstance(min, Unbounded) or isinstance(max, Unbounded):
			return
		if max.key < min.key:
			raise ValueError(f'range start is greater than range end: {min!r}..{max!r}')
		if (
			min.key == max.key
			and isinstance(min, Excluded)
			and isinstance(max, Excluded)
		):
			raise ValueError(f'range start and end are equal and excluded: {min!r}..{max!r}')

	def _keys(self, min: Bound[K], max: Bound[K]) -> Keys[K]:
		self._check_range(min, max)
		return Keys(self._tree, min, max)

	def keys(self) -> Keys[K]:  # type: ignore[override]
		return Keys(self._tree)

	def __iter__(self) -> Keys[K]:
		return Keys(self._tree)

	def __reversed__(self) -> collections.abc.Iterator[K]:
		return reversed(Keys(self._tree))

	def iter(self) -> Iter[K, V]:
		return Iter(Keys(self._tree), self._values)

	def items(self) -> Iter[K, V]:  # type: ignore[override]
		return self.iter()

	def iter_mut(self) -> IterMut[K, V]:
		return IterMut(Keys(self._tree), self._values)

	def values(self) -> Values[K, V]:  # type: ignore[override]
		return Values(Keys(self._tree), self._values)

	def values_mut(self) -> ValuesMut[K, V]:
		return ValuesMut(Keys(self._tree), self._values)

	def range(self, min: Bound[K] = UNBOUNDED, max: Bound[K] = UNBOUNDED) -> Iter[K, V]:
		"""
		:returns: iterator over entries with keys within bounds

		:raises ValueError: if ``min`` is greater than ``max``, or they are equal and both excluded
		"""
		return Iter(self._keys(min, max), self._values)

	def range_mut(
		self, min: Bound[K] = UNBOUNDED, max: Bound[K] = UNBOUNDED
	) -> IterMut[K, V]:
		return IterMut(self._keys(min, max), self._values)

	def range_keys(self, min: Bound[K] = UNBOUNDED, max: Bound[K] = UNBOUNDED) -> Keys[K]:
		return self._keys(min, max)

	def __eq__(self, r: object) -> bool:
		if not isinstance(r, collections.abc.Mapping):
			return NotImplemented
		if len(self) != len(r):
			return False
		for k, v in self.iter():
			if k not in r or r[k] != v:
				return False
		return True

	__hash__ = None  # type: ignore

	def __repr__(self) -> str:
		ret: list[str] = []
		ret.append('TreeMap({')
		comma = False
		for k, v in self.iter():
			if comma:
				ret.append(', ')
			comma = True
			ret.append(repr(k))
			ret.append(': ')
			ret.append(repr(v))
		ret.append('})')
		return ''.join(ret)


class OccupiedEntry[K: Comparable, V]:
	"""
	Entry of a key that has a value
	"""

	__slots__ = ('_map', '_ref')

	def __init__(self, map: TreeMap[K, V], ref: ValueRef[K, V]):
		self._map = map
		self._ref = ref

	@property
	def key(self) -> K:
		return self._ref.key

	def get(self) -> V:
		return self._ref.value

	def insert(self, v: V) -> V:
		"""
		:returns: previous value
		"""
		old = self._ref.value
		self._ref.set(v)
		return old

	def remove(self) -> V:
		res = self._map.remove_entry(self._ref.key)
		if res is None:
			raise _broken(f'key {self._ref.key!r} vanished while being used')
		return res[1]

	def or_insert(self, default: V) -> V:
		return self._ref.value

	def or_insert_with(self, supplier: typing.Callable[[], V]) -> V:
		return self._ref.value

	def and_modify(self, f: typing.Callable[[V], V]) -> 'OccupiedEntry[K, V]':
		"""
		Replaces the value with ``f(value)`` and stores it
		"""
		self._ref.set(f(self._ref.value))
		return self

	def __repr__(self) -> str:
		return f'OccupiedEntry({self._ref.key!r}: {self._ref.value!r})'


class VacantEntry[K: Comparable, V]:
	"""
	Entry of a key that has no value yet
	"""

	__slots__ = ('_map', '_key')

	def __init__(self, map: TreeMap[K, V], key: K):
		self._map = map
		self._key = key

	@property
	def key(self) -> K:
		return self._key

	def insert(self, v: V) -> V:
		self._map.insert(self._key, v)
		return v

	def or_insert(self, default: V) -> V:
		return self.insert(default)

	def or_insert_with(self, supplier: typing.Callable[[], V]) -> V:
		return self.insert(supplier())

	def and_modify(self, f: typing.Callable[[V], V]) -> 'VacantEntry[K, V]':
		return self

	def __repr__(self) -> str:
		return f'VacantEntry({self._key!r})'


type Entry[K: Comparable, V] = OccupiedEntry[K, V] | VacantEntry[K, V]
