__all__ = ('LookupMap', 'ValueRef')

import typing
import logging

from ._internal.core import (
	Manager,
	Hasher,
	Codec,
	DEFAULT_HASHER,
	DEFAULT_CODEC,
	as_prefix,
	check_hasher,
)
from .errors import StorageCorruptedError
import kvtree._internal.reflect as reflect

logger = logging.getLogger(__name__)

_NO_OBJ = object()


class LookupMap[K, V]:
	"""
	Unordered mapping which stores every value at its own address ``hasher(prefix ++ encode(key))``

	It can't be iterated: keys are known only by their digests
	"""

	__slots__ = ('_manager', '_prefix', '_hasher', '_codec', '_value_codec')

	def __init__(
		self,
		manager: Manager,
		prefix: bytes | str,
		*,
		hasher: Hasher = DEFAULT_HASHER,
		codec: Codec = DEFAULT_CODEC,
		value_codec: Codec | None = None,
	):
		"""
		:param prefix: namespace of this collection, must not be shared with other collections
		:param codec: codec for keys, also used for values unless ``value_codec`` is provided
		"""
		self._manager = manager
		self._prefix = as_prefix(prefix)
		self._hasher = check_hasher(hasher)
		self._codec = codec
		self._value_codec = codec if value_codec is None else value_codec

	@property
	def prefix(self) -> bytes:
		return self._prefix

	def _addr(self, key: K) -> bytes:
		with reflect.context_notes(f'while encoding key {key!r}'):
			enc = self._codec.encode(key)
		return self._hasher.digest(self._prefix + enc)

	def _decode(self, addr: bytes, data: bytes) -> V:
		try:
			return self._value_codec.decode(data)
		except Exception as e:
			logger.error('undecodable record at %s in %r', addr.hex(), self._prefix)
			raise StorageCorruptedError('undecodable record', addr) from e

	def _encode(self, key: K, value: V) -> bytes:
		with reflect.context_notes(f'while encoding value for key {key!r}'):
			return self._value_codec.encode(value)

	def get(self, key: K) -> V | None:
		"""
		:returns: value associated with ``key`` or :py:obj:`None`
		"""
		addr = self._addr(key)
		data = self._manager.get(addr)
		if data is None:
			return None
		return self._decode(addr, data)

	def get_mut(self, key: K) -> 'ValueRef[K, V] | None':
		"""
		:returns: handle to the value associated with ``key``, writes are performed only via the handle
		"""
		addr = self._addr(key)
		data = self._manager.get(addr)
		if data is None:
			return None
		return ValueRef(self, key, self._decode(addr, data))

	def contains_key(self, key: K) -> bool:
		return self._manager.get(self._addr(key)) is not None

	def __contains__(self, key: object) -> bool:
		return self.contains_key(typing.cast(K, key))

	def insert(self, key: K, value: V) -> V | None:
		"""
		:returns: previous value associated with ``key`` or :py:obj:`None`
		"""
		addr = self._addr(key)
		data = self._encode(key, value)
		old = self._manager.get(addr)
		self._manager.set(addr, data)
		if old is None:
			return None
		return self._decode(addr, old)

	def set(self, key: K, value: V) -> None:
		"""
		Same as :py:meth:`insert` but doesn't read the previous value
		"""
		addr = self._addr(key)
		self._manager.set(addr, self._encode(key, value))

	def remove(self, key: K) -> V | None:
		"""
		:returns: removed value or :py:obj:`None` if there was nothing to remove
		"""
		addr = self._addr(key)
		old = self._manager.remove(addr)
		if old is None:
			return None
		return self._decode(addr, old)

	def discard(self, key: K) -> None:
		self._manager.remove(self._addr(key))

	def __getitem__(self, key: K) -> V:
		res = self.get_or(key, _NO_OBJ)
		if res is _NO_OBJ:
			raise KeyError(key)
		return typing.cast(V, res)

	def get_or[G](self, key: K, default: G) -> V | G:
		addr = self._addr(key)
		data = self._manager.get(addr)
		if data is None:
			return default
		return self._decode(addr, data)

	def __setitem__(self, key: K, value: V) -> None:
		self.set(key, value)

	def __delitem__(self, key: K) -> None:
		if self._manager.remove(self._addr(key)) is None:
			raise KeyError(key)

	def __repr__(self) -> str:
		return f'LookupMap(prefix={self._prefix!r})'


class ValueRef[K, V]:
	"""
	Short-lived handle to a single stored value

	Changes are written back by :py:meth:`set`, :py:meth:`flush`
	or when leaving the ``with`` block without an exception

	.. code:: python

		with m.get_mut('k') as ref:
			ref.value.append(1)
	"""

	__slots__ = ('_map', '_key', 'value')

	value: V

	def __init__(self, map: LookupMap[K, V], key: K, value: V):
		self._map = map
		self._key = key
		self.value = value

	@property
	def key(self) -> K:
		return self._key

	def get(self) -> V:
		return self.value

	def set(self, value: V) -> None:
		self.value = value
		self.flush()

	def flush(self) -> None:
		self._map.set(self._key, self.value)

	def __enter__(self) -> 'ValueRef[K, V]':
		return self

	def __exit__(self, exc_type, exc_val, exc_tb) -> None:
		if exc_type is None:
			self.flush()

	def __eq__(self, r: object) -> bool:
		if isinstance(r, ValueRef):
			return self._key == r._key and self.value == r.value
		return self.value == r

	__hash__ = None  # type: ignore

	def __repr__(self) -> str:
		return f'ValueRef({self._key!r}: {self.value!r})'

