"""
Persistent sorted map on top of a hashed key-value store

It exposes the storage collections, range bounds and integer aliases to the top scope.
Record format lives in :py:mod:`kvtree.codec`
"""

from .types import *
from .storage import *
