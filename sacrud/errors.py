# Exception Handlers
#
# Every controller failure is a CrudError carrying a stable code string,
# the resource name and a free-form detail, for example:
# {
#      "code": "RES-001 RESOURCE_NOT_FOUND",
#      "resource": "users",
#      "detail": "query={\"id\": \"12\"}"
# }
#
# The exceptions are converted to http responses by the routing adapter
# (cfr. sacrud.fastapi.api.install_crud_exception_handlers)
#
from http import HTTPStatus
from sqlalchemy.exc import DontWrapMixin
import sacrud


class CrudError(Exception, DontWrapMixin):
    """
    Base class for the controller error taxonomy
    """

    code = "RES-000 UNKNOWN"
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value

    def __init__(self, resource: str, detail: str = "") -> None:
        """
        :param resource: name of the resource the error relates to
        :param detail: diagnostic detail, shown to the user
        """
        self.resource = resource
        self.detail = detail
        super().__init__(self.message)
        self._log()

    @property
    def message(self) -> str:
        return f"{self.code}: {self.resource}: {self.detail}"

    def _log(self) -> None:
        sacrud.log.warning(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "resource": self.resource, "detail": self.detail}


class ResourceNotFound(CrudError):
    """
    Raised when the instance addressed by get/update/delete doesn't exist
    """

    code = "RES-001 RESOURCE_NOT_FOUND"
    status_code = HTTPStatus.NOT_FOUND.value

    def _log(self) -> None:
        sacrud.log.error(self.message)


class ResourceAlreadyExists(CrudError):
    """
    Raised by the store when a write violates a uniqueness constraint
    """

    code = "RES-002 RESOURCE_ALREADY_EXISTS"
    status_code = HTTPStatus.CONFLICT.value


class InvalidResourceScope(CrudError):
    """
    Raised when an unknown named scope is requested
    """

    code = "RES-003 INVALID_RESOURCE_SCOPE"
    status_code = HTTPStatus.BAD_REQUEST.value


class QueryMalformed(CrudError):
    """
    Raised when a filter, order or pagination parameter can't be parsed
    """

    code = "RES-004 QUERY_MALFORM"
    status_code = HTTPStatus.BAD_REQUEST.value


class BadControllerConfiguration(CrudError):
    """
    Backend's fault: invalid controller configuration or a hook broke an invariant
    """

    code = "RES-005 BAD_CONTROLLER_CONFIGURATION"
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value

    def _log(self) -> None:
        sacrud.log.error(self.message)


class UpdateMalformed(CrudError):
    """
    Raised when create/update is called with an empty or non-object body
    """

    code = "RES-006 UPDATE_MALFORM"
    status_code = HTTPStatus.BAD_REQUEST.value
