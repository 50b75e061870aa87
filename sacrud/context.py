from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

QueryValue = Union[str, List[str]]


@dataclass
class RequestContext:
    """
    Request data handed to the controller by the routing adapter

    :param params: path parameters
    :param query: query parameters, repeated parameters are lists
    :param body: parsed request body, or the raw value if it isn't a JSON object
    :param state: authentication data etc., read by scoping functions and hooks
    """

    params: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, QueryValue] = field(default_factory=dict)
    body: Any = None
    state: Dict[str, Any] = field(default_factory=dict)
