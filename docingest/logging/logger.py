import logging
import sys

NOISY_LOGGERS = ("pdfminer", "httpx", "openai", "PIL")


class Log:
    """Process-wide logger facade; keyword arguments become record extras."""

    _logger: logging.Logger = logging.getLogger("docingest")

    @classmethod
    def configure(cls, log_level: str, app_env: str = "production") -> None:
        """Attach a stdout handler once and set levels.

        Outside production the thread name is included, since jobs run on a
        worker pool. Chatty library loggers are held at WARNING either way.
        """
        cls._logger.setLevel(log_level.upper())
        if not cls._logger.handlers:
            fmt = "%(asctime)s [%(levelname)s] %(message)s"
            if app_env != "production":
                fmt = "%(asctime)s [%(levelname)s] (%(threadName)s) %(message)s"
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(fmt))
            cls._logger.addHandler(handler)
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    @classmethod
    def debug(cls, message: str, **kwargs: object) -> None:
        cls._logger.debug(message, extra=kwargs)

    @classmethod
    def info(cls, message: str, **kwargs: object) -> None:
        cls._logger.info(message, extra=kwargs)

    @classmethod
    def warning(cls, message: str, **kwargs: object) -> None:
        cls._logger.warning(message, extra=kwargs)

    @classmethod
    def error(cls, message: str, **kwargs: object) -> None:
        cls._logger.error(message, extra=kwargs)

    @classmethod
    def exception(cls, message: str, **kwargs: object) -> None:
        """Error with the active exception's traceback attached."""
        cls._logger.exception(message, extra=kwargs)
