from fastapi import Depends, Request

from .container import ApplicationContainer


def get_container(request: Request) -> ApplicationContainer:
    container = getattr(request.app.state, "container", None)
    if not container:
        raise RuntimeError("Application container not initialised.")
    return container


def get_settings(container: ApplicationContainer = Depends(get_container)):
    return container.settings


def get_telegram_source(container: ApplicationContainer = Depends(get_container)):
    return container.telegram_source


def get_monitoring_service(container: ApplicationContainer = Depends(get_container)):
    return container.monitoring_service


def get_signal_query_service(container: ApplicationContainer = Depends(get_container)):
    return container.signal_query_service
