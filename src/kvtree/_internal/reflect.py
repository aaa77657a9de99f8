import inspect
import typing
import contextlib


def try_get_lineno(m) -> dict[str, typing.Any]:
	res = {}
	try:
		res['origin'] = inspect.getsourcefile(m)
	except Exception:
		pass
	try:
		_, lineno = inspect.findsource(m)
		res['line'] = lineno
	except Exception:
		pass
	return res


def repr_type(t: typing.Any) -> str:
	origin = typing.get_origin(t)
	if origin is not None:
		args = typing.get_args(t)
		return f'{repr_type(origin)}[' + ', '.join(map(repr_type, args)) + ']'
	if isinstance(t, type):
		if hasattr(t, '__qualname__'):
			return t.__qualname__
		if hasattr(t, '__name__'):
			return t.__name__
	return repr(t)


@contextlib.contextmanager
def context_notes(notes: str) -> typing.Generator[None, None, None]:
	try:
		yield
	except BaseException as e:
		e.add_note(notes)
		raise


@contextlib.contextmanager
def context_type(t: typing.Any) -> typing.Generator[None, None, None]:
	try:
		yield
	except BaseException as e:
		pushed = 'during processing type ' + repr_type(t)
		if len(ln := try_get_lineno(t)) != 0:
			pushed += str(ln)
		e.add_note(pushed)
		raise
