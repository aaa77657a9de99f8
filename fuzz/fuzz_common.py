import afl
import os

from kvtree import UNBOUNDED, Included, Excluded


def do_fuzzing(target):
	real_stdin = os.fdopen(0, 'rb', closefd=False)

	def step():
		real_stdin.seek(0)

		data = real_stdin.read()
		assert isinstance(data, bytes), f'data is {type(data)}'

		target(data)

	while afl.loop(1000):
		step()


class StopFuzzingException(Exception):
	pass


class FuzzerBuilder:
	"""
	Consumes fuzzer input piece by piece, running out of input stops current case
	"""

	def __init__(self, buf: bytes):
		self.buf = buf

	def fetch(self, le: int) -> bytes:
		if len(self.buf) < le:
			raise StopFuzzingException()

		ret = self.buf[:le]
		self.buf = self.buf[le:]
		return ret

	def fetch_int(self, le: int) -> int:
		return int.from_bytes(self.fetch(le))

	def fetch_str(self) -> str:
		try:
			return self.fetch(self.fetch(1)[0] % 8).decode('utf-8')
		except UnicodeDecodeError:
			raise StopFuzzingException()

	def fetch_bound(self):
		kind = self.fetch(1)[0] % 3
		if kind == 0:
			return UNBOUNDED
		key = self.fetch_str()
		if kind == 1:
			return Included(key)
		return Excluded(key)
