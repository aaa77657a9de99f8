import abc
import typing
import hashlib
import collections.abc

import kvtree.codec as codec

DIGEST_SIZE: typing.Final = 32
"""
Width of every storage address, in bytes
"""


class Manager(metaclass=abc.ABCMeta):
	"""
	Byte-addressed persistent store. Every call is a costed I/O operation
	"""

	@abc.abstractmethod
	def get(self, addr: bytes, /) -> bytes | None: ...

	@abc.abstractmethod
	def set(self, addr: bytes, data: collections.abc.Buffer, /) -> None: ...

	@abc.abstractmethod
	def remove(self, addr: bytes, /) -> bytes | None: ...


class InmemManager(Manager):
	"""
	In-memory store which can be used to create storage entities without a host. Counts I/O operations
	"""

	_parts: dict[bytes, bytes]

	reads: int
	writes: int

	__slots__ = ('_parts', 'reads', 'writes')

	def __init__(self):
		self._parts = {}
		self.reset_stats()

	def reset_stats(self) -> None:
		self.reads = 0
		self.writes = 0

	def get(self, addr: bytes) -> bytes | None:
		self.reads += 1
		return self._parts.get(addr, None)

	def set(self, addr: bytes, data: collections.abc.Buffer) -> None:
		self.writes += 1
		self._parts[addr] = bytes(data)

	def remove(self, addr: bytes) -> bytes | None:
		self.writes += 1
		return self._parts.pop(addr, None)

	def __len__(self) -> int:
		return len(self._parts)


class Hasher(typing.Protocol):
	"""
	Maps arbitrary bytes to a :py:data:`DIGEST_SIZE` bytes storage address
	"""

	def digest(self, data: collections.abc.Buffer, /) -> bytes: ...


class _HashlibHasher(Hasher):
	__slots__ = ()

	@abc.abstractmethod
	def _new(self) -> 'hashlib._Hash': ...

	def digest(self, data: collections.abc.Buffer) -> bytes:
		hasher = self._new()
		hasher.update(data)
		return hasher.digest()

	def __eq__(self, r: object) -> bool:
		return type(self) is type(r)

	def __hash__(self) -> int:
		return hash(type(self).__qualname__)

	def __repr__(self) -> str:
		return type(self).__name__


class Sha3_256(_HashlibHasher):
	def _new(self):
		return hashlib.sha3_256()


class Sha256(_HashlibHasher):
	def _new(self):
		return hashlib.sha256()


class Blake2b256(_HashlibHasher):
	def _new(self):
		return hashlib.blake2b(digest_size=DIGEST_SIZE)


DEFAULT_HASHER: typing.Final[Hasher] = Sha3_256()


def check_hasher(hasher: Hasher) -> Hasher:
	width = len(hasher.digest(b''))
	if width != DIGEST_SIZE:
		raise ValueError(
			f'hasher {hasher!r} produces {width} bytes digests, {DIGEST_SIZE} expected'
		)
	return hasher


class Codec(typing.Protocol):
	"""
	Turns keys and values into storage records and back
	"""

	def encode(self, val: typing.Any, /) -> bytes: ...

	def decode(self, data: collections.abc.Buffer, /) -> typing.Any: ...


class RecordCodec(Codec):
	"""
	:py:mod:`kvtree.codec` based codec
	"""

	__slots__ = ()

	def encode(self, val: codec.Encodable) -> bytes:
		return codec.encode(val)

	def decode(self, data: collections.abc.Buffer) -> codec.Decoded:
		return codec.decode(data)

	def __repr__(self) -> str:
		return 'RecordCodec'


DEFAULT_CODEC: typing.Final[Codec] = RecordCodec()


def as_prefix(prefix: bytes | str) -> bytes:
	if isinstance(prefix, str):
		return prefix.encode('utf-8')
	return bytes(prefix)
