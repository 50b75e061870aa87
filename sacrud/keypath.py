# -*- coding: utf-8 -*-
"""
Resource key-path parsing

A key path is the url path template that identifies a single resource instance,
the supported token formats are:

    :paramName(regex)<columnName>
    :paramName(regex)              => columnName = paramName
    :paramName<columnName>         => regex = ([A-Za-z0-9_]{0,})
    :paramNameAndColumnName

e.g. "/:org<organization_id>/:slug(\\w+)"
"""
import re
from functools import lru_cache
from typing import NamedTuple, Tuple
from .errors import BadControllerConfiguration

DEFAULT_KEY_PATH = ":id"
DEFAULT_PARAM_PATTERN = "([A-Za-z0-9_]{0,})"

_TOKEN_RE = re.compile(r":(\w+)(\([^)]*\))?(<(\w+)>)?")
_COLUMN_ANNOTATION_RE = re.compile(r"<\w+>")
_RESERVED_CHARS = set(":()<>")


class KeyPathEntry(NamedTuple):
    param_name: str
    column_name: str
    pattern: str


def normalize_key_path(key_path: str) -> str:
    """
    :param key_path: configured key path, e.g. ":id"
    :return: the key path with a leading '/'
    """
    key_path = key_path or DEFAULT_KEY_PATH
    if not key_path.startswith("/"):
        key_path = "/" + key_path
    return key_path


@lru_cache(maxsize=256)
def resolve_key_path(key_path: str, resource: str = "") -> Tuple[KeyPathEntry, ...]:
    """
    Parse a key path into (param_name, column_name, pattern) entries, in path order

    :param key_path: key path pattern
    :param resource: resource name used in error reporting
    :return: tuple of KeyPathEntry
    """
    key_path = normalize_key_path(key_path)
    entries = []
    seen = set()
    remainder = []
    pos = 0
    for match in _TOKEN_RE.finditer(key_path):
        remainder.append(key_path[pos : match.start()])
        pos = match.end()
        param_name = match.group(1)
        if param_name in seen:
            raise BadControllerConfiguration(resource, f'Duplicate key path parameter "{param_name}" in "{key_path}"')
        seen.add(param_name)
        pattern = match.group(2) or DEFAULT_PARAM_PATTERN
        try:
            re.compile(pattern)
        except re.error as exc:
            raise BadControllerConfiguration(resource, f'Invalid pattern {pattern} for "{param_name}": {exc}')
        entries.append(KeyPathEntry(param_name=param_name, column_name=match.group(4) or param_name, pattern=pattern))
    remainder.append(key_path[pos:])

    # whatever is left should be literal path text
    leftover = "".join(remainder)
    if _RESERVED_CHARS.intersection(leftover):
        raise BadControllerConfiguration(
            resource, f"failed to parse/convert columnNamePairs. Check your controller's request path pattern: {key_path}"
        )
    return tuple(entries)


def route_template(key_path: str) -> str:
    """
    :param key_path: key path pattern
    :return: the key path without the <columnName> annotations, used to register routes
    """
    return _COLUMN_ANNOTATION_RE.sub("", normalize_key_path(key_path))
