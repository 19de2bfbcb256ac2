import logging

from flask import has_request_context, request

_FORMAT = "%(asctime)s %(levelname)s [%(module)s] %(message)s%(route)s"


class RequestFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        if has_request_context():
            record.route = f" route={request.method} {request.path}"
        else:
            record.route = ""
        return super().format(record)


def configure_logging(app) -> None:
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(RequestFormatter(_FORMAT))
    handler.setLevel(level)

    app.logger.handlers.clear()
    app.logger.addHandler(handler)
    app.logger.setLevel(level)
