# flake8: noqa: F401
#
# crud_init has to be imported first: the other modules log through sacrud.log
#
from .crud_init import CRUD, log
from .errors import (
    CrudError,
    ResourceNotFound,
    ResourceAlreadyExists,
    InvalidResourceScope,
    QueryMalformed,
    BadControllerConfiguration,
    UpdateMalformed,
)
from .context import RequestContext
from .options import ResourceOptions, RelationshipDescriptor
from .store import Store, SQLAlchemyStore
from .controller import CrudController
from .json_encoder import CrudJSONEncoder, to_dict
from .__about__ import __version__, __description__

__all__ = (
    "__version__",
    "__description__",
    #
    "CRUD",
    "CrudController",
    "ResourceOptions",
    "RelationshipDescriptor",
    "RequestContext",
    # persistence:
    "Store",
    "SQLAlchemyStore",
    # json:
    "CrudJSONEncoder",
    "to_dict",
    # Errors:
    "CrudError",
    "ResourceNotFound",
    "ResourceAlreadyExists",
    "InvalidResourceScope",
    "QueryMalformed",
    "BadControllerConfiguration",
    "UpdateMalformed",
)
