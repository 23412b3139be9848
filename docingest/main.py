from docingest.config.settings import Settings
from docingest.database.connection import close_pool, init_pool
from docingest.logging.logger import Log
from docingest.service import build_components
from docingest.worker.worker import Worker


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level, settings.app_env)
    init_pool(settings)

    try:
        components = build_components(settings)
        worker = Worker(components.job_repo, components.job_queue, settings)
        try:
            worker.run()
        finally:
            components.job_queue.shutdown()
    finally:
        close_pool()


if __name__ == "__main__":
    main()
