import uvicorn

from ratelimit_guard.core.app_factory import create_app
from ratelimit_guard.core.config import settings

app = create_app()


def run() -> None:
    """Serve the application with uvicorn (``ratelimit-guard`` console script)."""
    uvicorn.run(
        "ratelimit_guard.main:app",
        host=settings.app.host,
        port=settings.app.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
