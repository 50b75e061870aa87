import datetime
import sqlalchemy
import sacrud

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


def _parse_datetime(attr_val, timezone: bool) -> datetime.datetime:
    """
    Accepts ISO-8601 (including the javascript "...Z" form) and "%Y-%m-%d %H:%M:%S[.%f]"
    """
    if isinstance(attr_val, datetime.datetime):
        result = attr_val
    elif isinstance(attr_val, datetime.date):
        result = datetime.datetime(attr_val.year, attr_val.month, attr_val.day)
    else:
        date_str = str(attr_val).strip()
        if date_str.endswith("Z"):
            date_str = date_str[:-1] + "+00:00"
        result = datetime.datetime.fromisoformat(date_str)
    if result.tzinfo is not None and not timezone:
        # naive columns store utc
        result = result.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return result


def _parse_bool(attr_val) -> bool:
    if isinstance(attr_val, bool):
        return attr_val
    if isinstance(attr_val, (int, float)):
        return bool(attr_val)
    text = str(attr_val).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean {attr_val!r}")


def parse_attr(column, attr_val):
    """
    Parse the supplied `attr_val` so it can be saved in or compared with the SQLAlchemy `column`

    :param column: SQLAlchemy column
    :param attr_val: request value
    :return: processed value
    :raises ValueError: if the value can't be converted to the column type
    """
    if attr_val is None:
        return attr_val

    try:
        python_type = column.type.python_type
    except NotImplementedError as exc:
        # custom column types should handle their own parsing
        sacrud.log.debug(exc)
        return attr_val

    # skip type coercion on JSON columns, since they could be anything
    if isinstance(column.type, sqlalchemy.types.JSON):
        return attr_val

    if python_type is datetime.datetime:
        return _parse_datetime(attr_val, bool(getattr(column.type, "timezone", False)))
    if python_type is datetime.date:
        if isinstance(attr_val, datetime.datetime):
            return attr_val.date()
        if isinstance(attr_val, datetime.date):
            return attr_val
        return datetime.date.fromisoformat(str(attr_val).strip()[:10])
    if isinstance(attr_val, python_type):
        return attr_val
    if python_type is datetime.time:
        return datetime.time.fromisoformat(str(attr_val).strip())
    if python_type is bool:
        return _parse_bool(attr_val)
    if python_type is int and isinstance(attr_val, str):
        return int(attr_val.strip())
    return python_type(attr_val)
