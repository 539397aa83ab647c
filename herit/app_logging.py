import logging
from pythonjsonlogger import jsonlogger

_HANDLER_NAME = 'herit-json'


def setup_logger(level: int = logging.INFO) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    if any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        return
    logHandler = logging.StreamHandler()
    logHandler.set_name(_HANDLER_NAME)
    formatter = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s',
                                         rename_fields={'levelname': 'level', 'asctime': 'timestamp'})
    logHandler.setFormatter(formatter)
    root.addHandler(logHandler)
