__all__ = (
	'StorageCorruptedError',
	'BrokenInvariantError',
	'StorageExhaustedError',
)


class StorageCorruptedError(RuntimeError):
	"""
	Raised when a persisted record can't be decoded, has an unexpected shape or is missing while being referenced

	This error is fatal: the tree can't be traversed past a broken node
	"""

	def __init__(self, what: str, addr: bytes | None = None):
		self.what = what
		self.addr = addr
		msg = f'corrupted storage: {what}'
		if addr is not None:
			msg += f' at {addr.hex()}'
		super().__init__(msg)


class BrokenInvariantError(RuntimeError):
	"""
	Raised when the ordered index and the value store disagree about a key
	"""


class StorageExhaustedError(OverflowError):
	"""
	Raised when no more node ids can be issued
	"""
