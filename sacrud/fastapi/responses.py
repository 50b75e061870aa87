# -*- coding: utf-8 -*-

import json
from typing import Any

from fastapi.responses import JSONResponse

from sacrud.json_encoder import CrudJSONEncoder


class CrudJSONResponse(JSONResponse):
    """
    JSON response rendered with CrudJSONEncoder (datetimes, decimals, mapped instances)
    """

    def render(self, content: Any) -> bytes:
        return json.dumps(content, cls=CrudJSONEncoder, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
