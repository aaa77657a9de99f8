"""
This module is responsible for turning keys, values and tree nodes into storage records

Record format natively supports following types:

#. Primitive types: :py:class:`bool`, :py:obj:`None`, :py:class:`int`, :py:class:`str`, :py:class:`bytes`

#. Composite types:

	#. :py:class:`list` (and any other :py:class:`collections.abc.Sequence`)
	#. :py:class:`tuple`, which is kept distinct from :py:class:`list` so that tuple keys stay comparable after decoding
	#. :py:class:`dict` with :py:class:`str` keys (and any other :py:class:`collections.abc.Mapping` with :py:class:`str` keys)

Every value starts with an uleb128 header, lowest 3 bits of which hold the type tag
and the rest holds either the value itself (integers) or the length (containers)
"""

__all__ = (
	'encode',
	'decode',
	'to_str',
	'Encodable',
	'Decoded',
	'RecordEncodable',
	'DecodingError',
)

import typing
import collections.abc
import dataclasses
import abc
import json

import kvtree._internal.reflect as reflect

BITS_IN_TYPE = 3

TYPE_SPECIAL = 0
TYPE_PINT = 1
TYPE_NINT = 2
TYPE_BYTES = 3
TYPE_STR = 4
TYPE_ARR = 5
TYPE_MAP = 6
TYPE_TUPLE = 7

SPECIAL_NULL = (0 << BITS_IN_TYPE) | TYPE_SPECIAL
SPECIAL_FALSE = (1 << BITS_IN_TYPE) | TYPE_SPECIAL
SPECIAL_TRUE = (2 << BITS_IN_TYPE) | TYPE_SPECIAL


class RecordEncodable(metaclass=abc.ABCMeta):
	"""
	Abstract class to support record encoding for custom types
	"""

	@abc.abstractmethod
	def __to_record__(self) -> 'Encodable':
		"""
		Override this method to return record-compatible type

		.. warning::
			returning ``self`` leads to an infinite loop
		"""
		raise NotImplementedError()


type Decoded = (
	None
	| bool
	| int
	| str
	| bytes
	| list[Decoded]
	| tuple[Decoded, ...]
	| dict[str, Decoded]
)
"""
Type that represents what type is coerced to after ``decode . encode``
"""

type Encodable = (
	None
	| int
	| str
	| bool
	| bytes
	| tuple[Encodable, ...]
	| collections.abc.Sequence[Encodable]
	| collections.abc.Mapping[str, Encodable]
	| RecordEncodable
)
"""
Type that can be encoded into a record
"""


class DecodingError(ValueError):
	pass


def encode(x: Encodable) -> bytes:
	"""
	Encodes python object into record bytes

	.. warning::
		:py:class:`RecordEncodable` and :py:mod:`dataclasses` are coerced to their encodable form, so type information is *not* preserved
	"""
	mem = bytearray()

	def append_uleb128(i: int):
		assert i >= 0
		if i == 0:
			mem.append(0)
		while i > 0:
			cur = i & 0x7F
			i = i >> 7
			if i > 0:
				cur |= 0x80
			mem.append(cur)

	def append_sized(tag: int, data: collections.abc.Buffer):
		data = memoryview(data)
		append_uleb128((len(data) << BITS_IN_TYPE) | tag)
		mem.extend(data)

	def impl_dict(b: collections.abc.Mapping):
		keys = list(b.keys())
		for k in keys:
			if not isinstance(k, str):
				raise TypeError(f'key is not string {reflect.repr_type(type(k))}')
		keys.sort()
		append_uleb128((len(keys) << BITS_IN_TYPE) | TYPE_MAP)
		for k in keys:
			with reflect.context_notes(f'key {k!r}'):
				bts = k.encode('utf-8')
				append_uleb128(len(bts))
				mem.extend(bts)
				impl(b[k])

	def impl_seq(tag: int, b: collections.abc.Sequence):
		append_uleb128((len(b) << BITS_IN_TYPE) | tag)
		for i, x in enumerate(b):
			with reflect.context_notes(f'index {i}'):
				impl(x)

	def impl(b: typing.Any):
		if isinstance(b, RecordEncodable):
			b = b.__to_record__()
		if b is None:
			mem.append(SPECIAL_NULL)
		elif b is True:
			mem.append(SPECIAL_TRUE)
		elif b is False:
			mem.append(SPECIAL_FALSE)
		elif isinstance(b, int):
			if b >= 0:
				append_uleb128((b << BITS_IN_TYPE) | TYPE_PINT)
			else:
				append_uleb128(((-b - 1) << BITS_IN_TYPE) | TYPE_NINT)
		elif isinstance(b, (bytes, bytearray, memoryview)):
			append_sized(TYPE_BYTES, b)
		elif isinstance(b, str):
			append_sized(TYPE_STR, b.encode('utf-8'))
		elif isinstance(b, tuple):
			impl_seq(TYPE_TUPLE, b)
		elif isinstance(b, collections.abc.Sequence):
			impl_seq(TYPE_ARR, b)
		elif isinstance(b, collections.abc.Mapping):
			impl_dict(b)
		elif dataclasses.is_dataclass(b) and not isinstance(b, type):
			with reflect.context_type(type(b)):
				impl_dict(dataclasses.asdict(b))
		else:
			raise TypeError(f'not record encodable {b!r}: {reflect.repr_type(type(b))}')

	impl(x)
	return bytes(mem)


def decode(mem0: collections.abc.Buffer) -> Decoded:
	"""
	Decodes record bytes into python objects

	Out of composite types it will contain only :py:class:`dict`, :py:class:`list` and :py:class:`tuple`
	"""
	mem: memoryview = memoryview(mem0)

	def fetch_mem(cnt: int) -> memoryview:
		nonlocal mem

		if len(mem) < cnt:
			raise DecodingError('unexpected end of memory')
		ret = mem[:cnt]
		mem = mem[cnt:]
		return ret

	def read_uleb128() -> int:
		ret = 0
		off = 0
		while True:
			m = fetch_mem(1)[0]
			ret = ret | ((m & 0x7F) << off)
			if (m & 0x80) == 0:
				if m == 0 and off != 0:
					raise DecodingError('most significant octet can not be zero')
				break
			off += 7
		return ret

	def read_str(cnt: int) -> str:
		try:
			return str(fetch_mem(cnt), encoding='utf-8')
		except UnicodeDecodeError as e:
			raise DecodingError('invalid utf-8 string') from e

	def impl() -> typing.Any:
		code = read_uleb128()
		typ = code & 0x7
		if typ == TYPE_SPECIAL:
			if code == SPECIAL_NULL:
				return None
			if code == SPECIAL_FALSE:
				return False
			if code == SPECIAL_TRUE:
				return True
			raise DecodingError(f'unknown special {bin(code)} {hex(code)}')
		code = code >> BITS_IN_TYPE
		if typ == TYPE_PINT:
			return code
		elif typ == TYPE_NINT:
			return -code - 1
		elif typ == TYPE_BYTES:
			return bytes(fetch_mem(code))
		elif typ == TYPE_STR:
			return read_str(code)
		elif typ == TYPE_ARR:
			return [impl() for _i in range(code)]
		elif typ == TYPE_TUPLE:
			return tuple(impl() for _i in range(code))
		else:
			ret_dict: dict[str, typing.Any] = {}
			prev = None
			for _i in range(code):
				key = read_str(read_uleb128())
				if prev is not None and prev >= key:
					raise DecodingError(f'unordered record keys: `{prev}` >= `{key}`')
				prev = key
				ret_dict[key] = impl()
			return ret_dict

	res = impl()
	if len(mem) != 0:
		raise DecodingError(f'unparsed end {bytes(mem[:5])!r}... (decoded {res!r})')
	return res


def to_str(d: Encodable) -> str:
	"""
	Transforms records into human readable json-like format, should be used for debug purposes only
	"""
	buf: list[str] = []

	def impl(d: typing.Any) -> None:
		if isinstance(d, RecordEncodable):
			d = d.__to_record__()
		if d is None:
			buf.append('null')
		elif d is True:
			buf.append('true')
		elif d is False:
			buf.append('false')
		elif isinstance(d, str):
			buf.append(json.dumps(d))
		elif isinstance(d, (bytes, bytearray, memoryview)):
			buf.append('b#')
			buf.append(bytes(d).hex())
		elif isinstance(d, int):
			buf.append(str(d))
		elif isinstance(d, collections.abc.Mapping):
			buf.append('{')
			comma = False
			for k, v in d.items():
				if comma:
					buf.append(',')
				comma = True
				buf.append(json.dumps(k))
				buf.append(':')
				impl(v)
			buf.append('}')
		elif isinstance(d, collections.abc.Sequence):
			buf.append('(' if isinstance(d, tuple) else '[')
			comma = False
			for v in d:
				if comma:
					buf.append(',')
				comma = True
				impl(v)
			buf.append(')' if isinstance(d, tuple) else ']')
		else:
			raise TypeError(f"can't represent {d!r} as a record")

	impl(d)
	return ''.join(buf)
