# Configuration settings are stored as class variables of sacrud.CRUD
# get_config resolves an option from the environment first so deployments
# can override defaults without touching code
import os
import logging
from functools import lru_cache
from typing import Any, Optional
import sacrud

ENV_PREFIX = "SACRUD_"


def _parse_env(raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the default value"""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            sacrud.log.warning(f'Invalid integer "{raw}" in environment, using {default}')
            return default
    return raw


@lru_cache(maxsize=128)
def get_config(option: str) -> Optional[Any]:
    """Retrieve a configuration parameter
    :param option: configuration parameter
    :return: configuration value
    """
    default = getattr(sacrud.CRUD, option, None)
    raw = os.environ.get(ENV_PREFIX + option, None)
    if raw is not None:
        return _parse_env(raw, default)
    return default


def is_debug() -> bool:
    """
    We use the loglevel to check whether we're running in debug mode
    :return: whether the app is in debug mode
    :rtype: Boolean
    """
    return sacrud.log.getEffectiveLevel() < logging.INFO
