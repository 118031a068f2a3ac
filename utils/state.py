from core.logger import SingletonLogger


class SingletonMeta(type):
    """A metaclass for creating singleton classes."""

    _instances = {}

    def __call__(cls, *args, **kwargs):
        if cls not in cls._instances:
            cls._instances[cls] = super().__call__(*args, **kwargs)
        return cls._instances[cls]


class State(metaclass=SingletonMeta):
    """Process-wide handles shared by routes, services and middleware."""

    logger = SingletonLogger().get_logger()

    @classmethod
    def log_failure(cls, action: str, error: Exception) -> None:
        cls.logger.error(f"An error occured while {action}: {str(error)}")
