import logging
import os
import sys
from typing import Any


class CRUD:
    """Settings holder for sacrud controllers

    Configuration settings are stored as class variables, they can be overridden
    with `CRUD.configure(...)` at application bootstrap or with `SACRUD_<OPTION>`
    environment variables (see `sacrud.config.get_config`).
    """

    DEFAULT_PAGE_SIZE = 20
    DEFAULT_OFFSET = 0
    MAX_PAGE_SIZE = 100000
    # cache hint (ms) handed to the store for single-instance lookups
    FIND_ONE_CACHE_TTL = 200
    # flush after every removal in delete_one, cfr. DESIGN.md (D-1)
    DELETE_FLUSH_PER_INSTANCE = True
    LOGLEVEL = logging.WARNING

    @classmethod
    def configure(cls, **kwargs: Any) -> None:
        """
        Set configuration options
        :param kwargs: option names and values, e.g. DEFAULT_PAGE_SIZE=50
        """
        from .config import get_config

        for conf_name, conf_val in kwargs.items():
            setattr(cls, conf_name, conf_val)
            if conf_name == "LOGLEVEL":
                log.setLevel(conf_val)
        get_config.cache_clear()

    @staticmethod
    def init_logging(loglevel: int = logging.WARNING) -> logging.Logger:
        """
        Specify the log format used in the webserver logs
        The webserver will catch stdout so we redirect eveything to sys.stderr
        """
        log = logging.getLogger(__name__)
        if log.level == logging.NOTSET:
            handler = logging.StreamHandler(sys.stderr)
            formatter = logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s")
            handler.setFormatter(formatter)
            log.setLevel(loglevel)
            log.addHandler(handler)
        return log


try:
    DEBUG = os.getenv("DEBUG", logging.WARNING)
    LOGLEVEL = int(DEBUG)
except ValueError:  # pragma: no cover
    print(f'Invalid LogLevel in DEBUG Environment Variable! "{DEBUG}"')
    LOGLEVEL = logging.INFO

log = CRUD.init_logging(LOGLEVEL)
