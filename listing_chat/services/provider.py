import logging
from typing import Any, Dict, Type, TypeVar

from .events import ChatEventBus, NotificationDispatcher

T = TypeVar("T")
logger = logging.getLogger(__name__)


class ServiceProvider:
    """
    Holds the process-wide singletons shared across requests.

    Only objects that own no database session belong here. Session-bound
    services are built per request in ``services.dependencies``.
    """

    _instances: Dict[Type[T], T] = {}

    @classmethod
    def get_service(cls, service_class: Type[T], **dependencies: Any) -> T:
        """
        Retrieves or creates the singleton instance of the given class.
        Dependencies are only used the first time the instance is created.
        """
        if service_class not in cls._instances:
            try:
                logger.debug(
                    f"Creating new instance of service: {service_class.__name__}"
                )
                cls._instances[service_class] = service_class(**dependencies)
            except Exception as e:
                logger.error(
                    f"Failed to initialize service {service_class.__name__}: {e}",
                    exc_info=True,
                )
                raise
        return cls._instances[service_class]

    @classmethod
    def clear(cls) -> None:
        """
        Clears all cached instances.
        Tests call this so every case starts with a fresh event bus.
        """
        logger.debug("Clearing all cached service instances.")
        cls._instances.clear()


def get_event_bus() -> ChatEventBus:
    return ServiceProvider.get_service(ChatEventBus)


def get_notification_dispatcher() -> NotificationDispatcher:
    return ServiceProvider.get_service(NotificationDispatcher)
