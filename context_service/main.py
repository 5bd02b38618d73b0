import uvicorn

from .application.api.api_server import create_app
from .config import get_settings
from .infrastructure.observability.logging import setup_logging

settings = get_settings()
setup_logging(
    log_level=settings.log_level,
    log_format=settings.log_format,
    service_name=settings.service_name,
)

app = create_app(settings)


def run():
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
