__all__ = ('Tree', 'Comparable')

import abc
import typing
import logging
import collections.abc

from ..types import u32, U32_MAX, Bound, Unbounded, Included, Excluded
from ..codec import DecodingError
from ._internal.core import (
	Manager,
	Hasher,
	Codec,
	RecordCodec,
	DEFAULT_HASHER,
	DEFAULT_CODEC,
	as_prefix,
	check_hasher,
)
from .lookup_map import LookupMap
from .errors import StorageCorruptedError, StorageExhaustedError

logger = logging.getLogger(__name__)


class Comparable(typing.Protocol):
	@abc.abstractmethod
	def __eq__(self, other: typing.Any, /) -> bool: ...

	@abc.abstractmethod
	def __lt__(self, other: typing.Any, /) -> bool: ...


class _Node[K]:
	__slots__ = ('key', 'left', 'right', 'height', 'size')

	key: K
	left: u32 | None
	right: u32 | None
	height: int
	size: int

	def __init__(
		self,
		key: K,
		left: u32 | None = None,
		right: u32 | None = None,
		height: int = 1,
		size: int = 1,
	):
		self.key = key
		self.left = left
		self.right = right
		self.height = height
		self.size = size

	def __repr__(self) -> str:
		return f'_Node(key={self.key!r}, left={self.left}, right={self.right}, height={self.height}, size={self.size})'


def _is_id(x: typing.Any) -> bool:
	return x is None or (type(x) is int and 0 <= x <= U32_MAX)


def _is_positive(x: typing.Any) -> bool:
	return type(x) is int and x > 0


class _NodeCodec(Codec):
	"""
	Node record is ``[encoded key, left, right, height, size]``
	"""

	__slots__ = ('_rec', '_key_codec')

	def __init__(self, key_codec: Codec):
		self._rec = RecordCodec()
		self._key_codec = key_codec

	def encode(self, node: _Node) -> bytes:
		return self._rec.encode(
			[self._key_codec.encode(node.key), node.left, node.right, node.height, node.size]
		)

	def decode(self, data: collections.abc.Buffer) -> _Node:
		rec = self._rec.decode(data)
		if not isinstance(rec, list) or len(rec) != 5:
			raise DecodingError(f'malformed node record {rec!r}')
		key, left, right, height, size = rec
		if not isinstance(key, bytes):
			raise DecodingError(f'malformed node key {key!r}')
		if not _is_id(left) or not _is_id(right):
			raise DecodingError(f'malformed node links {left!r} {right!r}')
		if not _is_positive(height) or not _is_positive(size):
			raise DecodingError(f'malformed node height/size {height!r} {size!r}')
		return _Node(self._key_codec.decode(key), left, right, height, size)


class _Txn[K]:
	"""
	Operation-scoped view of the nodes. Every node is read at most once,
	changes reach the storage only on :py:meth:`Tree._commit`
	"""

	__slots__ = ('_tree', '_loaded', '_dirty', '_dropped', 'next_id')

	def __init__(self, tree: 'Tree[K]'):
		self._tree = tree
		self._loaded: dict[u32, _Node[K]] = {}
		self._dirty: set[u32] = set()
		self._dropped: set[u32] = set()
		self.next_id = tree._next_id

	def node(self, idx: u32) -> _Node[K]:
		res = self._loaded.get(idx, None)
		if res is None:
			res = self._tree._read(idx)
			self._loaded[idx] = res
		return res

	def height(self, idx: u32 | None) -> int:
		if idx is None:
			return 0
		return self.node(idx).height

	def size(self, idx: u32 | None) -> int:
		if idx is None:
			return 0
		return self.node(idx).size

	def touch(self, idx: u32) -> None:
		self._dirty.add(idx)

	def create(self, node: _Node[K]) -> u32:
		if self.next_id > U32_MAX:
			logger.error('node id space is exhausted in %r', self._tree._prefix)
			raise StorageExhaustedError('node id space is exhausted')
		idx = u32(self.next_id)
		self.next_id += 1
		self._loaded[idx] = node
		self._dirty.add(idx)
		return idx

	def drop(self, idx: u32) -> None:
		self._loaded.pop(idx, None)
		self._dirty.discard(idx)
		self._dropped.add(idx)


class Tree[K: Comparable]:
	"""
	Ordered index of keys: an AVL tree every node of which is stored as a separate record

	Nodes are addressed by ids issued from a persisted monotonic counter, ids are never reused
	"""

	__slots__ = (
		'_manager',
		'_prefix',
		'_codec',
		'_nodes',
		'_header_addr',
		'_root',
		'_count',
		'_next_id',
	)

	_root: u32 | None
	_count: int
	_next_id: int

	def __init__(
		self,
		manager: Manager,
		prefix: bytes | str,
		*,
		hasher: Hasher = DEFAULT_HASHER,
		codec: Codec = DEFAULT_CODEC,
	):
		"""
		Attaches to the tree stored at ``prefix``, creating an empty one if there is nothing there
		"""
		self._manager = manager
		self._prefix = as_prefix(prefix)
		self._codec = codec
		check_hasher(hasher)
		self._nodes: LookupMap[u32, _Node[K]] = LookupMap(
			manager,
			self._prefix + b'n',
			hasher=hasher,
			value_codec=_NodeCodec(codec),
		)
		self._header_addr = hasher.digest(self._prefix + b'h')
		self._load_header()
		logger.debug(
			'attached tree %r: root=%s count=%d next_id=%d',
			self._prefix,
			self._root,
			self._count,
			self._next_id,
		)

	def _load_header(self) -> None:
		data = self._manager.get(self._header_addr)
		if data is None:
			self._root = None
			self._count = 0
			self._next_id = 0
			return
		try:
			rec = RecordCodec().decode(data)
			if not isinstance(rec, list) or len(rec) != 3:
				raise DecodingError(f'malformed tree header {rec!r}')
			root, count, next_id = rec
			if not _is_id(root) or type(count) is not int or type(next_id) is not int:
				raise DecodingError(f'malformed tree header {rec!r}')
			if count < 0 or next_id < count or next_id > U32_MAX + 1:
				raise DecodingError(f'inconsistent tree header {rec!r}')
			if (root is None) != (count == 0):
				raise DecodingError(f'inconsistent tree header {rec!r}')
		except DecodingError as e:
			logger.error('undecodable tree header in %r', self._prefix)
			raise StorageCorruptedError('undecodable tree header', self._header_addr) from e
		self._root = root
		self._count = count
		self._next_id = next_id

	def _read(self, idx: u32) -> _Node[K]:
		node = self._nodes.get(idx)
		if node is None:
			logger.error('dangling node id %d in %r', idx, self._prefix)
			raise StorageCorruptedError(f'missing node {idx}')
		return node

	def _commit(self, txn: _Txn[K], root: u32 | None, count: int) -> None:
		for idx in txn._dirty:
			self._nodes.set(idx, txn._loaded[idx])
		for idx in txn._dropped:
			self._nodes.discard(idx)
		self._manager.set(
			self._header_addr, RecordCodec().encode([root, count, txn.next_id])
		)
		self._root = root
		self._count = count
		self._next_id = txn.next_id

	def __len__(self) -> int:
		return self._count

	@property
	def root(self) -> u32 | None:
		return self._root

	@property
	def next_id(self) -> int:
		"""
		Id that will be issued to the next created node
		"""
		return self._next_id

	def height(self) -> int:
		if self._root is None:
			return 0
		return self._read(self._root).height

	# navigation

	def contains(self, key: K) -> bool:
		cur = self._root
		while cur is not None:
			node = self._read(cur)
			if node.key == key:
				return True
			cur = node.left if key < node.key else node.right
		return False

	def __contains__(self, key: object) -> bool:
		return self.contains(typing.cast(K, key))

	def min(self) -> K | None:
		"""
		:returns: smallest key or :py:obj:`None` if tree is empty
		"""
		cur = self._root
		if cur is None:
			return None
		while True:
			node = self._read(cur)
			if node.left is None:
				return node.key
			cur = node.left

	def max(self) -> K | None:
		"""
		:returns: largest key or :py:obj:`None` if tree is empty
		"""
		cur = self._root
		if cur is None:
			return None
		while True:
			node = self._read(cur)
			if node.right is None:
				return node.key
			cur = node.right

	def floor_key(self, key: K) -> K | None:
		"""
		:returns: largest key that is less than or equal to ``key``
		"""
		best = None
		cur = self._root
		while cur is not None:
			node = self._read(cur)
			if node.key == key:
				return node.key
			if key < node.key:
				cur = node.left
			else:
				best = node.key
				cur = node.right
		return best

	def ceil_key(self, key: K) -> K | None:
		"""
		:returns: smallest key that is greater than or equal to ``key``
		"""
		best = None
		cur = self._root
		while cur is not None:
			node = self._read(cur)
			if node.key == key:
				return node.key
			if node.key < key:
				cur = node.right
			else:
				best = node.key
				cur = node.left
		return best

	def lower(self, key: K) -> K | None:
		"""
		:returns: largest key that is strictly less than ``key``
		"""
		best = None
		cur = self._root
		while cur is not None:
			node = self._read(cur)
			if node.key < key:
				best = node.key
				cur = node.right
			else:
				cur = node.left
		return best

	def higher(self, key: K) -> K | None:
		"""
		:returns: smallest key that is strictly greater than ``key``
		"""
		best = None
		cur = self._root
		while cur is not None:
			node = self._read(cur)
			if key < node.key:
				best = node.key
				cur = node.left
			else:
				cur = node.right
		return best

	# order statistics

	def _count_before(self, key: K, *, inclusive: bool) -> int:
		txn = _Txn(self)
		res = 0
		cur = self._root
		while cur is not None:
			node = txn.node(cur)
			if node.key < key or (inclusive and node.key == key):
				res += txn.size(node.left) + 1
				cur = node.right
			else:
				cur = node.left
		return res

	def rank(self, key: K) -> int:
		"""
		:returns: number of keys that are strictly less than ``key``
		"""
		return self._count_before(key, inclusive=False)

	def select(self, idx: int) -> K:
		"""
		:returns: ``idx``-th smallest key
		:raises IndexError: if ``idx`` is not in ``0..<len(self)``
		"""
		if idx < 0 or idx >= self._count:
			raise IndexError(f'index out of range {idx} not in 0..<{self._count}')
		txn = _Txn(self)
		cur = self._root
		while cur is not None:
			node = txn.node(cur)
			left_size = txn.size(node.left)
			if idx < left_size:
				cur = node.left
			elif idx == left_size:
				return node.key
			else:
				idx -= left_size + 1
				cur = node.right
		raise StorageCorruptedError('subtree sizes do not match node count')

	def lower_rank(self, bound: Bound[K]) -> int:
		"""
		:returns: number of keys that are before ``bound`` used as a lower bound
		"""
		match bound:
			case Unbounded():
				return 0
			case Included(key=key):
				return self._count_before(key, inclusive=False)
			case Excluded(key=key):
				return self._count_before(key, inclusive=True)
		raise TypeError(f'not a bound {bound!r}')

	def upper_rank(self, bound: Bound[K]) -> int:
		"""
		:returns: number of keys that are before ``bound`` used as an upper bound, including the bound itself if it is included
		"""
		match bound:
			case Unbounded():
				return self._count
			case Included(key=key):
				return self._count_before(key, inclusive=True)
			case Excluded(key=key):
				return self._count_before(key, inclusive=False)
		raise TypeError(f'not a bound {bound!r}')

	def count_range(self, min: Bound[K], max: Bound[K]) -> int:
		"""
		:returns: exact number of keys within bounds
		"""
		res = self.upper_rank(max) - self.lower_rank(min)
		return res if res > 0 else 0

	# mutation

	def _update(self, txn: _Txn[K], idx: u32) -> _Node[K]:
		node = txn.node(idx)
		node.height = 1 + max(txn.height(node.left), txn.height(node.right))
		node.size = 1 + txn.size(node.left) + txn.size(node.right)
		txn.touch(idx)
		return node

	def _rot_left(self, txn: _Txn[K], par: u32) -> u32:
		par_node = txn.node(par)
		cur = typing.cast(u32, par_node.right)
		cur_node = txn.node(cur)
		par_node.right = cur_node.left
		cur_node.left = par
		self._update(txn, par)
		self._update(txn, cur)
		return cur

	def _rot_right(self, txn: _Txn[K], par: u32) -> u32:
		par_node = txn.node(par)
		cur = typing.cast(u32, par_node.left)
		cur_node = txn.node(cur)
		par_node.left = cur_node.right
		cur_node.right = par
		self._update(txn, par)
		self._update(txn, cur)
		return cur

	def _fix(self, txn: _Txn[K], idx: u32) -> u32:
		"""
		Recomputes node bookkeeping and restores balance

		:returns: id of the node which is now the root of this subtree
		"""
		node = txn.node(idx)
		balance = txn.height(node.right) - txn.height(node.left)
		if balance > 1:
			right = txn.node(typing.cast(u32, node.right))
			if txn.height(right.left) > txn.height(right.right):
				# right-left
				node.right = self._rot_right(txn, typing.cast(u32, node.right))
			return self._rot_left(txn, idx)
		if balance < -1:
			left = txn.node(typing.cast(u32, node.left))
			if txn.height(left.right) > txn.height(left.left):
				# left-right
				node.left = self._rot_left(txn, typing.cast(u32, node.left))
			return self._rot_right(txn, idx)
		self._update(txn, idx)
		return idx

	def _retrace(
		self, txn: _Txn[K], path: list[tuple[u32, bool]], child: u32 | None
	) -> u32 | None:
		for idx, went_left in reversed(path):
			node = txn.node(idx)
			if went_left:
				node.left = child
			else:
				node.right = child
			child = self._fix(txn, idx)
		return child

	def _find_path(
		self, txn: _Txn[K], key: K
	) -> tuple[list[tuple[u32, bool]], u32 | None]:
		path: list[tuple[u32, bool]] = []
		cur = self._root
		while cur is not None:
			node = txn.node(cur)
			if node.key == key:
				break
			went_left = key < node.key
			path.append((cur, went_left))
			cur = node.left if went_left else node.right
		return path, cur

	def insert(self, key: K) -> bool:
		"""
		:returns: :py:obj:`True` if ``key`` was added, :py:obj:`False` if it was already present
		"""
		txn = _Txn(self)
		path, found = self._find_path(txn, key)
		if found is not None:
			return False
		child = txn.create(_Node(key))
		root = self._retrace(txn, path, child)
		self._commit(txn, root, self._count + 1)
		return True

	def remove(self, key: K) -> bool:
		"""
		:returns: :py:obj:`True` if ``key`` was removed, :py:obj:`False` if it was not present
		"""
		txn = _Txn(self)
		path, found = self._find_path(txn, key)
		if found is None:
			return False
		target = txn.node(found)
		if target.left is None or target.right is None:
			child = target.left if target.left is not None else target.right
		else:
			# relink in-order successor node to the place of removed one
			succ_path: list[tuple[u32, bool]] = []
			succ = target.right
			succ_node = txn.node(succ)
			while succ_node.left is not None:
				succ_path.append((succ, True))
				succ = succ_node.left
				succ_node = txn.node(succ)
			child = succ_node.right
			succ_node.left = target.left
			path.append((succ, False))
			path.extend(succ_path)
		txn.drop(found)
		root = self._retrace(txn, path, child)
		self._commit(txn, root, self._count - 1)
		return True

	def clear(self, on_remove: typing.Callable[[K], None] | None = None) -> None:
		"""
		Removes all nodes. Node id counter is preserved

		:param on_remove: called with every removed key after all nodes are gone
		"""
		txn = _Txn(self)
		removed: list[K] = []
		stack = [] if self._root is None else [self._root]
		while len(stack) > 0:
			idx = stack.pop()
			node = txn.node(idx)
			if node.left is not None:
				stack.append(node.left)
			if node.right is not None:
				stack.append(node.right)
			removed.append(node.key)
			txn.drop(idx)
		self._commit(txn, None, 0)
		logger.debug('cleared tree %r: %d nodes removed', self._prefix, len(removed))
		if on_remove is not None:
			for key in removed:
				on_remove(key)

	def __repr__(self) -> str:
		return f'Tree(prefix={self._prefix!r}, len={self._count})'

