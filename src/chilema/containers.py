"""Dependency container wiring for the meal journal."""

import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from chilema.adapters.sqlite_meal_repository import SqliteMealRepository
from chilema.app_logging import configure_logging
from chilema.config import Settings, resolve_timezone
from chilema.services.images import ImageCodec
from chilema.services.meals import MealLogService, MealRepository
from chilema.services.transfer import TransferService

_container: "AppContainer | None" = None
_container_lock = threading.Lock()


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    meal_repository: MealRepository
    meal_log_service: MealLogService
    transfer_service: TransferService
    image_codec: ImageCodec
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    repository = SqliteMealRepository.create(resolved_settings)
    meal_log_service = MealLogService(
        repository=repository,
        tz=resolve_timezone(resolved_settings.timezone),
        list_limit=resolved_settings.list_limit,
    )
    transfer_service = TransferService(
        repository=repository,
        export_limit=resolved_settings.export_limit,
    )
    image_codec = ImageCodec.create(resolved_settings)

    async def close_resources() -> None:
        repository.close()

    return AppContainer(
        settings=resolved_settings,
        meal_repository=repository,
        meal_log_service=meal_log_service,
        transfer_service=transfer_service,
        image_codec=image_codec,
        close_resources=close_resources,
    )


def get_container() -> AppContainer:
    """Return the process-wide container, building it on first use."""
    global _container  # noqa: PLW0603
    with _container_lock:
        if _container is None:
            configure_logging()
            _container = build_container()
        return _container
