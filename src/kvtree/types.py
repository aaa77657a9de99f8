"""
Module that provides integer alias used by persisted records and range bounds
"""

__all__ = (
	'u32',
	'U32_MAX',
	'Bound',
	'Unbounded',
	'Included',
	'Excluded',
	'UNBOUNDED',
)

import typing

u32 = typing.NewType('u32', int)

U32_MAX: typing.Final = 2**32 - 1


@typing.final
class Unbounded:
	"""
	Bound that does not restrict a range. Use :py:data:`UNBOUNDED` instead of creating new instances
	"""

	__slots__ = ()

	def __eq__(self, r: object) -> bool:
		return isinstance(r, Unbounded)

	def __hash__(self) -> int:
		return hash('Unbounded')

	def __repr__(self) -> str:
		return 'Unbounded'


@typing.final
class Included[K]:
	"""
	Bound that includes ``key`` itself
	"""

	__slots__ = ('key',)

	key: K

	def __init__(self, key: K):
		self.key = key

	def __eq__(self, r: object) -> bool:
		if not isinstance(r, Included):
			return False
		return self.key == r.key

	def __hash__(self) -> int:
		return hash(('Included', self.key))

	def __repr__(self) -> str:
		return f'Included({self.key!r})'


@typing.final
class Excluded[K]:
	"""
	Bound that stops right before (or right after) ``key``
	"""

	__slots__ = ('key',)

	key: K

	def __init__(self, key: K):
		self.key = key

	def __eq__(self, r: object) -> bool:
		if not isinstance(r, Excluded):
			return False
		return self.key == r.key

	def __hash__(self) -> int:
		return hash(('Excluded', self.key))

	def __repr__(self) -> str:
		return f'Excluded({self.key!r})'


type Bound[K] = Unbounded | Included[K] | Excluded[K]
"""
One end of a range query
"""

UNBOUNDED: typing.Final = Unbounded()
