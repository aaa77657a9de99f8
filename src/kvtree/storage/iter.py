__all__ = ('Keys', 'Iter', 'IterMut', 'Values', 'ValuesMut')

import abc
import typing
import logging
import collections.abc

from ..types import Bound, Unbounded, Included, Excluded, UNBOUNDED
from .tree import Tree
from .lookup_map import LookupMap, ValueRef
from .errors import BrokenInvariantError

logger = logging.getLogger(__name__)

_NO_OBJ: typing.Any = object()


class _DoubleEnded[T](collections.abc.Iterator[T]):
	"""
	Iterator which can be consumed from both ends. Exhausted iterator never produces new elements
	"""

	__slots__ = ()

	@abc.abstractmethod
	def _front(self, skip: int) -> T: ...

	@abc.abstractmethod
	def _back(self, skip: int) -> T: ...

	@abc.abstractmethod
	def __len__(self) -> int: ...

	def __next__(self) -> T:
		res = self._front(0)
		if res is _NO_OBJ:
			raise StopIteration
		return res

	def next_back(self) -> T | None:
		"""
		:returns: last element that was not produced yet, or :py:obj:`None`
		"""
		res = self._back(0)
		return None if res is _NO_OBJ else res

	def nth(self, n: int) -> T | None:
		"""
		Skips ``n`` elements from the front

		:returns: element that follows skipped ones, or :py:obj:`None`
		"""
		if n < 0:
			raise ValueError(f'negative skip {n}')
		res = self._front(n)
		return None if res is _NO_OBJ else res

	def nth_back(self, n: int) -> T | None:
		"""
		Same as :py:meth:`nth` but from the back
		"""
		if n < 0:
			raise ValueError(f'negative skip {n}')
		res = self._back(n)
		return None if res is _NO_OBJ else res

	def __length_hint__(self) -> int:
		return len(self)

	def __reversed__(self) -> '_Reversed[T]':
		"""
		:returns: view that consumes same elements from the back
		"""
		return _Reversed(self)


@typing.final
class _Reversed[T](_DoubleEnded[T]):
	__slots__ = ('_inner',)

	def __init__(self, inner: _DoubleEnded[T]):
		self._inner = inner

	def _front(self, skip: int) -> T:
		return self._inner._back(skip)

	def _back(self, skip: int) -> T:
		return self._inner._front(skip)

	def __len__(self) -> int:
		return len(self._inner)

	def __reversed__(self) -> typing.Any:
		return self._inner


class Keys[K](_DoubleEnded[K]):
	"""
	Lazy cursor over keys of a :py:class:`~kvtree.storage.tree.Tree` within bounds, in sorted order

	Each step costs one tree descent. Bounds only ever tighten, so consuming from both ends
	never yields an element twice
	"""

	__slots__ = ('_tree', '_length', '_min', '_max')

	_min: Bound[K]
	_max: Bound[K]

	def __init__(
		self,
		tree: Tree[K],
		min: Bound[K] = UNBOUNDED,
		max: Bound[K] = UNBOUNDED,
	):
		self._tree = tree
		self._min = min
		self._max = max
		self._length = tree.count_range(min, max)

	def __len__(self) -> int:
		return self._length

	def _next_asc(self) -> K | None:
		match self._min:
			case Unbounded():
				return self._tree.min()
			case Included(key=bound):
				return self._tree.ceil_key(bound)
			case Excluded(key=bound):
				return self._tree.higher(bound)
		raise TypeError(f'not a bound {self._min!r}')

	def _next_desc(self) -> K | None:
		match self._max:
			case Unbounded():
				return self._tree.max()
			case Included(key=bound):
				return self._tree.floor_key(bound)
			case Excluded(key=bound):
				return self._tree.lower(bound)
		raise TypeError(f'not a bound {self._max!r}')

	def _below_max(self, key: K) -> bool:
		match self._max:
			case Unbounded():
				return True
			case Included(key=bound):
				return not (bound < key)
			case Excluded(key=bound):
				return key < bound
		raise TypeError(f'not a bound {self._max!r}')

	def _above_min(self, key: K) -> bool:
		match self._min:
			case Unbounded():
				return True
			case Included(key=bound):
				return not (key < bound)
			case Excluded(key=bound):
				return bound < key
		raise TypeError(f'not a bound {self._min!r}')

	def _front(self, skip: int) -> K:
		if self._length == 0:
			# all elements were produced
			return _NO_OBJ
		if skip >= self._length:
			key = None
		elif skip == 0:
			key = self._next_asc()
		else:
			idx = self._tree.lower_rank(self._min) + skip
			key = self._tree.select(idx) if idx < len(self._tree) else None
		# map may have shrunk since the length was computed
		if key is None or not self._below_max(key):
			self._length = 0
			return _NO_OBJ
		self._min = Excluded(key)
		self._length -= skip + 1
		return key

	def _back(self, skip: int) -> K:
		if self._length == 0:
			return _NO_OBJ
		if skip >= self._length:
			key = None
		elif skip == 0:
			key = self._next_desc()
		else:
			idx = self._tree.upper_rank(self._max) - 1 - skip
			key = self._tree.select(idx) if idx >= 0 else None
		if key is None or not self._above_min(key):
			self._length = 0
			return _NO_OBJ
		self._max = Excluded(key)
		self._length -= skip + 1
		return key

	def __repr__(self) -> str:
		return f'Keys(min={self._min!r}, max={self._max!r}, len={self._length})'


class _WithValues[K, V, T](_DoubleEnded[T]):
	__slots__ = ('_keys', '_values')

	def __init__(self, keys: Keys[K], values: LookupMap[K, V]):
		self._keys = keys
		self._values = values

	@abc.abstractmethod
	def _produce(self, key: K) -> T: ...

	def _value(self, key: K) -> V:
		res = self._values.get_or(key, _NO_OBJ)
		if res is _NO_OBJ:
			logger.error('key %r is indexed but has no value', key)
			raise BrokenInvariantError(f'key {key!r} is indexed but has no value')
		return res

	def _value_ref(self, key: K) -> ValueRef[K, V]:
		res = self._values.get_mut(key)
		if res is None:
			logger.error('key %r is indexed but has no value', key)
			raise BrokenInvariantError(f'key {key!r} is indexed but has no value')
		return res

	def _front(self, skip: int) -> T:
		key = self._keys._front(skip)
		if key is _NO_OBJ:
			return _NO_OBJ
		return self._produce(key)

	def _back(self, skip: int) -> T:
		key = self._keys._back(skip)
		if key is _NO_OBJ:
			return _NO_OBJ
		return self._produce(key)

	def __len__(self) -> int:
		return len(self._keys)


class Iter[K, V](_WithValues[K, V, tuple[K, V]]):
	"""
	Iterator over ``(key, value)`` pairs, in sorted order
	"""

	__slots__ = ()

	def _produce(self, key: K) -> tuple[K, V]:
		return (key, self._value(key))


class IterMut[K, V](_WithValues[K, V, tuple[K, ValueRef[K, V]]]):
	"""
	Iterator over ``(key, handle)`` pairs, in sorted order. Each key is produced once,
	so there is exactly one handle per value during the pass
	"""

	__slots__ = ()

	def _produce(self, key: K) -> tuple[K, ValueRef[K, V]]:
		return (key, self._value_ref(key))


class Values[K, V](_WithValues[K, V, V]):
	"""
	Iterator over values, in order by key
	"""

	__slots__ = ()

	def _produce(self, key: K) -> V:
		return self._value(key)


class ValuesMut[K, V](_WithValues[K, V, ValueRef[K, V]]):
	"""
	Iterator over value handles, in order by key
	"""

	__slots__ = ()

	def _produce(self, key: K) -> ValueRef[K, V]:
		return self._value_ref(key)
