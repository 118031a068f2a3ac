import os
import sys
import threading

import logfire
from loguru import logger

SERVICE_NAME = "trippz-auth-api"
SERVICE_VERSION = "1.0.0"
CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


class SingletonLogger:
    """loguru logger shipped to Logfire when a token is configured.

    Production writes JSON lines to stderr; everything else gets the coloured
    console format.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if not cls._instance:
            with cls._lock:
                if not cls._instance:
                    cls._instance = super(SingletonLogger, cls).__new__(cls)
                    cls._instance._init_logger()
        return cls._instance

    def _init_logger(self):
        environment = os.getenv("ENVIRONMENT", "development")
        level = os.getenv("LOG_LEVEL", "DEBUG" if environment == "development" else "INFO")

        logger.remove()
        logfire.configure(
            token=os.getenv("LOGFIRE_TOKEN"),
            send_to_logfire="if-token-present",
            service_name=SERVICE_NAME,
            service_version=SERVICE_VERSION,
            environment=environment,
        )
        logger.configure(handlers=[logfire.loguru_handler()])
        if environment == "production":
            logger.add(sys.stderr, level=level, serialize=True)
        else:
            logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, backtrace=True)
        self.logger = logger.bind(service=SERVICE_NAME)

    def get_logger(self):
        return self.logger
