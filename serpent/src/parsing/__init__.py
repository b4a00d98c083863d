"""Parsing package: lark grammar front end and subset checking."""

from .parser import SourceParser, describe_expected
from .subset import MODULE_SCOPE, SubsetChecker
from .transformer import SourceTransformer

__all__ = [
    "SourceParser",
    "SourceTransformer",
    "SubsetChecker",
    "MODULE_SCOPE",
    "describe_expected",
]
