from http import HTTPStatus

import pytest
from sqlalchemy.exc import DontWrapMixin

from sacrud.errors import (
    BadControllerConfiguration,
    CrudError,
    InvalidResourceScope,
    QueryMalformed,
    ResourceAlreadyExists,
    ResourceNotFound,
    UpdateMalformed,
)


@pytest.mark.parametrize(
    "error_class, code, status",
    [
        (ResourceNotFound, "RES-001 RESOURCE_NOT_FOUND", HTTPStatus.NOT_FOUND),
        (ResourceAlreadyExists, "RES-002 RESOURCE_ALREADY_EXISTS", HTTPStatus.CONFLICT),
        (InvalidResourceScope, "RES-003 INVALID_RESOURCE_SCOPE", HTTPStatus.BAD_REQUEST),
        (QueryMalformed, "RES-004 QUERY_MALFORM", HTTPStatus.BAD_REQUEST),
        (BadControllerConfiguration, "RES-005 BAD_CONTROLLER_CONFIGURATION", HTTPStatus.INTERNAL_SERVER_ERROR),
        (UpdateMalformed, "RES-006 UPDATE_MALFORM", HTTPStatus.BAD_REQUEST),
    ],
)
def test_codes(error_class, code, status) -> None:
    exc = error_class("todo", "some detail")
    assert isinstance(exc, CrudError)
    assert isinstance(exc, DontWrapMixin)
    assert exc.code == code
    assert exc.status_code == status.value
    assert exc.message == f"{code}: todo: some detail"
    assert str(exc) == exc.message
    assert exc.to_dict() == {"code": code, "resource": "todo", "detail": "some detail"}


def test_errors_are_logged(caplog) -> None:
    with caplog.at_level("WARNING", logger="sacrud.crud_init"):
        QueryMalformed("todo", "bad order")
        ResourceNotFound("todo", "query={}")
    levels = {record.message: record.levelname for record in caplog.records}
    assert levels["RES-004 QUERY_MALFORM: todo: bad order"] == "WARNING"
    assert levels["RES-001 RESOURCE_NOT_FOUND: todo: query={}"] == "ERROR"


def test_raise_and_catch_as_crud_error() -> None:
    with pytest.raises(CrudError) as exc_info:
        raise UpdateMalformed("todo", "Empty update body, nothing to update!")
    assert exc_info.value.resource == "todo"
    assert exc_info.value.detail == "Empty update body, nothing to update!"
