"""
Query string filtering, ordering and pagination

Searchable fields are filtered with a small operator language, the raw query
parameter value is parsed into one of the filter terms below:

- `$between(v1,v2)`       => {"gte": v1, "lte": v2}
- `$like(pattern)`        => {"like": pattern}
- `$in(v1,v2,...)`        => {"in": [v1, v2, ...]}
- `$gt(v)`, `$lt(v)`      => {"gt": v}, {"lt": v}
- `$null`, `$nenull`      => {"eq": None}, {"ne": None}
- `$bool(true|yes|1|false|no|0)` => {"eq": 1} or {"eq": 0}
- anything else           => {"eq": value}

Values may be written as `$dt(epoch milliseconds)`, these are converted to ISO-8601 timestamps.
"""
import datetime
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import sacrud
from .config import get_config
from .errors import InvalidResourceScope, QueryMalformed

Predicate = Dict[str, Any]

_OPERATORS = ("between", "like", "in", "gt", "lt", "nenull", "null", "bool")
_OPERATOR_SIGNAL_RE = re.compile(r"^\$({})\b".format("|".join(_OPERATORS)), re.IGNORECASE)
_OPERATOR_RE = re.compile(r"^\$({})(?:\((.*)\))?$".format("|".join(_OPERATORS)), re.IGNORECASE | re.DOTALL)
_BETWEEN_ARGS_RE = re.compile(r"^([^,]+),(.+)$", re.DOTALL)
_BOOL_ARG_RE = re.compile(r"^(true|1|yes|false|no|0)$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
_DT_RE = re.compile(r"^\$dt\((\d+)\)$", re.IGNORECASE)
_ORDER_RE = re.compile(r"^([^ ]+)(\s+(asc|desc))?$", re.IGNORECASE)

# epoch millis below this threshold are not considered to be $dt timestamps
DT_MILLIS_THRESHOLD = 10**10
_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


class _NoConstraint:
    """Sentinel: the filter value doesn't constrain the query"""

    def __repr__(self) -> str:
        return "NO_CONSTRAINT"

    def __bool__(self) -> bool:
        return False


NO_CONSTRAINT = _NoConstraint()


@dataclass(frozen=True)
class Between:
    low: Any
    high: Any

    def to_predicate(self) -> Predicate:
        return {"gte": self.low, "lte": self.high}


@dataclass(frozen=True)
class Like:
    pattern: str

    def to_predicate(self) -> Predicate:
        return {"like": self.pattern}


@dataclass(frozen=True)
class In:
    values: Tuple[Any, ...]

    def to_predicate(self) -> Union[Predicate, _NoConstraint]:
        if not self.values:
            return NO_CONSTRAINT
        return {"in": list(self.values)}


@dataclass(frozen=True)
class Gt:
    value: Any

    def to_predicate(self) -> Predicate:
        return {"gt": self.value}


@dataclass(frozen=True)
class Lt:
    value: Any

    def to_predicate(self) -> Predicate:
        return {"lt": self.value}


@dataclass(frozen=True)
class IsNull:
    def to_predicate(self) -> Predicate:
        return {"eq": None}


@dataclass(frozen=True)
class IsNotNull:
    def to_predicate(self) -> Predicate:
        return {"ne": None}


@dataclass(frozen=True)
class Bool:
    value: bool

    def to_predicate(self) -> Predicate:
        return {"eq": 1 if self.value else 0}


@dataclass(frozen=True)
class Literal:
    value: Any

    def to_predicate(self) -> Predicate:
        return {"eq": self.value}


FilterTerm = Union[Between, Like, In, Gt, Lt, IsNull, IsNotNull, Bool, Literal]


def _as_number(value: str) -> Union[int, float, None]:
    if not _NUMBER_RE.match(value):
        return None
    if "." in value:
        return float(value)
    return int(value)


def normalize_value(value: Any, resource: str = "") -> Any:
    """
    Convert `$dt(milliseconds)` values to ISO-8601 timestamps, other values are returned unchanged

    :param value: raw filter value
    :param resource: resource name used in error reporting
    :return: normalized value
    """
    if not isinstance(value, str):
        return value
    match = _DT_RE.match(value.strip())
    if not match:
        return value
    millis = int(match.group(1))
    if millis < DT_MILLIS_THRESHOLD:
        return value
    try:
        moment = _EPOCH + datetime.timedelta(milliseconds=millis)
    except OverflowError:
        raise QueryMalformed(resource, f"failed to evalQuery $dt: {value}")
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{millis % 1000:03d}Z"


def _parse_operator(op_name: str, args: Optional[str], raw: str, resource: str) -> FilterTerm:
    def malformed() -> QueryMalformed:
        return QueryMalformed(resource, f"failed to evalQuery ${op_name}: {raw}")

    if op_name == "between":
        match = _BETWEEN_ARGS_RE.match(args or "")
        if not match:
            raise malformed()
        low, high = match.group(1).strip(), match.group(2).strip()
        low_num, high_num = _as_number(low), _as_number(high)
        if low_num is not None and high_num is not None:
            return Between(low_num, high_num)
        return Between(normalize_value(low, resource), normalize_value(high, resource))

    if op_name == "like":
        if args is None:
            raise malformed()
        return Like(args)

    if op_name == "in":
        if args is None:
            raise malformed()
        values = []
        for item in args.split(","):
            item = normalize_value(item.strip(), resource)
            if item == "":
                continue
            number = _as_number(item) if isinstance(item, str) else None
            values.append(item if number is None else number)
        return In(tuple(values))

    if op_name in ("gt", "lt"):
        if not args:
            raise malformed()
        value = normalize_value(args.strip(), resource)
        return Gt(value) if op_name == "gt" else Lt(value)

    if op_name in ("null", "nenull"):
        if args:
            raise malformed()
        return IsNull() if op_name == "null" else IsNotNull()

    # $bool
    match = _BOOL_ARG_RE.match((args or "").strip())
    if not match:
        raise malformed()
    return Bool(match.group(1).lower() in ("true", "1", "yes"))


def parse_filter_value(raw: Any, resource: str = "") -> FilterTerm:
    """
    Parse a raw query parameter value into a filter term

    :param raw: query parameter value
    :param resource: resource name used in error reporting
    :return: filter term
    """
    if callable(raw):
        raise QueryMalformed(resource, "Cannot evaluate value as function.")
    if not isinstance(raw, str):
        raise QueryMalformed(resource, f"Cannot evaluate value of type {type(raw).__name__}: {raw!r}")

    match = _OPERATOR_RE.match(raw)
    if match:
        return _parse_operator(match.group(1).lower(), match.group(2), raw, resource)

    signal = _OPERATOR_SIGNAL_RE.match(raw)
    if signal:
        raise QueryMalformed(resource, f"failed to evalQuery ${signal.group(1).lower()}: {raw}")

    return Literal(normalize_value(raw, resource))


def interpret(raw: Any, resource: str = "") -> Union[Predicate, _NoConstraint]:
    """
    :param raw: query parameter value
    :param resource: resource name used in error reporting
    :return: predicate fragment, e.g. {"gte": 3, "lte": 7}, or NO_CONSTRAINT
    """
    return parse_filter_value(raw, resource).to_predicate()


def where_clause_by_query(
    query: Mapping[str, Any],
    searchable_fields: Sequence[str],
    converters: Optional[Mapping[str, Callable[[Any], Any]]] = None,
    resource: str = "",
) -> List[Dict[str, Predicate]]:
    """
    Build the predicate fragments for the searchable fields present in the query,
    query parameters that are not searchable are ignored

    :param query: request query parameters
    :param searchable_fields: names of the fields that may be filtered
    :param converters: per-field functions that rewrite the raw value before it's interpreted
    :param resource: resource name used in error reporting
    :return: list of {field_name: predicate} fragments, to be AND-ed
    """
    converters = converters or {}
    fragments = []
    for field_name in searchable_fields:
        if field_name not in query:
            continue
        raw = query[field_name]
        if callable(raw):
            raise QueryMalformed(resource, "Cannot evaluate value as function.")
        converter = converters.get(field_name)
        if converter is not None:
            raw = converter(raw)
        predicate = interpret(raw, resource)
        if predicate is NO_CONSTRAINT:
            sacrud.log.debug(f"{resource}: no constraint for {field_name}={raw!r}")
            continue
        fragments.append({field_name: predicate})
    return fragments


def where_clause_by_scope(query: Mapping[str, Any], scopes: Mapping[str, Mapping[str, Any]], resource: str = "") -> Dict[str, Any]:
    """
    :param query: request query parameters
    :param scopes: named scopes, scope name => field equality map
    :param resource: resource name used in error reporting
    :return: the equality map of the requested scope ({} if no scope was requested)
    """
    scope_name = query.get("scope") if scopes else None
    if not scope_name:
        return {}
    if not isinstance(scope_name, str) or scope_name not in scopes:
        raise InvalidResourceScope(resource, f"scope={scope_name!r}, available scopes: {sorted(scopes)}")
    return dict(scopes[scope_name])


def parse_order(order: Any, resource: str = "") -> Dict[str, str]:
    """
    Parse the `order` query parameter

    :param order: order string, e.g. "name asc,created_at"
    :param resource: resource name used in error reporting
    :return: ordered dict field_name => "asc"|"desc", the default direction is "desc"
    """
    if not isinstance(order, str):
        raise QueryMalformed(resource, f"Invalid order {order!r}")
    result = {}
    for token in order.split(","):
        match = _ORDER_RE.match(token.strip())
        if not match:
            raise QueryMalformed(
                resource, "order MUST has following format `db_field_name_1 asc,db_field_name2,db_field_name_3 desc`"
            )
        result[match.group(1)] = (match.group(3) or "desc").lower()
    return result


def parse_populate(populate: Any) -> Optional[List[str]]:
    """
    :param populate: `populate` query parameter, csv string or list of strings
    :return: the list of relationship names, None if nothing was requested
    """
    if not populate:
        return None
    if isinstance(populate, str):
        populate = populate.split(",")
    names = [name.strip() for name in populate if isinstance(name, str) and name.strip()]
    return names or None


def _parse_page_param(query: Mapping[str, Any], name: str, default: int, resource: str) -> int:
    raw = query.get(name)
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        raise QueryMalformed(resource, f"Invalid {name} {raw!r}")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise QueryMalformed(resource, f"Invalid {name} {raw!r}, expected a non-negative integer")
    if value < 0:
        raise QueryMalformed(resource, f"Invalid {name} {raw!r}, expected a non-negative integer")
    return value


def parse_page(query: Mapping[str, Any], resource: str = "") -> Tuple[int, int]:
    """
    :param query: request query parameters
    :param resource: resource name used in error reporting
    :return: (offset, page_size)
    """
    offset = _parse_page_param(query, "offset", get_config("DEFAULT_OFFSET"), resource)
    page_size = _parse_page_param(query, "pagesize", get_config("DEFAULT_PAGE_SIZE"), resource)
    max_page_size = get_config("MAX_PAGE_SIZE")
    if max_page_size is not None and page_size > max_page_size:
        sacrud.log.debug(f"{resource}: pagesize {page_size} exceeds {max_page_size}")
        page_size = max_page_size
    return offset, page_size
