import uvicorn

from . import config


def run():
    """Serve the API with uvicorn; reloads on code changes in development."""
    uvicorn.run(
        "locallens.main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.is_development(),
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
