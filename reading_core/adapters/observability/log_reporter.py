import logging

logger = logging.getLogger("reading_core.errors")


class LoggingErrorReporter:
    """
    Implements ErrorReporterPort on top of the JSON log stream.
    """

    def __init__(self):
        self.captured = 0

    def capture_exception(self, exc: BaseException, **context) -> None:
        self.captured += 1
        logger.error(
            "Captured %s: %s",
            type(exc).__name__,
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={"error_type": type(exc).__name__, **context},
        )
