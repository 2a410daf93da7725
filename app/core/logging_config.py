"""Process-wide logging setup."""
import logging

LOG_FORMAT = '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s'


def configure_logging(level: str = "INFO") -> None:
    """Attach a console handler to the ``app`` logger once."""
    app_logger = logging.getLogger("app")
    app_logger.setLevel(level.upper())

    if not app_logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level.upper())
        formatter = logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S')
        console_handler.setFormatter(formatter)
        app_logger.addHandler(console_handler)
