# -*- coding: utf-8 -*-
# flake8: noqa: F401
from .api import CrudFastAPI, install_crud_exception_handlers
