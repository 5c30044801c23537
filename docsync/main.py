import uvicorn

from docsync.api.app import create_app
from docsync.config.settings import Settings
from docsync.logging.logger import Log


def main() -> None:
    """Entry point: load settings -> configure logging -> serve API and job loops."""
    settings = Settings()
    Log.configure(settings.log_level)
    Log.info("Starting docsync-worker", env=settings.app_env, jobs=settings.enable_jobs)
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
