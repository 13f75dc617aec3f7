"""Main application entry point.

Run with ``python -m geo_resolver.main``; settings come from the environment
and the .env file selected by APP_ENV.
"""

import uvicorn

from geo_resolver.core.application import create_application
from geo_resolver.core.config.settings import settings
from geo_resolver.core.logging import configure_logging

configure_logging(log_level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)

app = create_application(settings)


def run() -> None:
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
