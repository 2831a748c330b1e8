import os

from loguru import logger


def setup_logging(config):
    """
    Configure loguru sinks once at process start and return the logger.

    The default stderr sink is always removed because it would draw over the
    full-screen table. With debug enabled, records go to a rotating file.
    Components receive the returned logger explicitly and bind their own
    ``component`` extra.
    """
    logger.remove()

    if config.DEBUG_ENABLED:
        path = config.log_path
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        # Log to a file
        logger.add(
            path,
            rotation=config.LOG_ROTATION,
            retention=config.LOG_RETENTION,
            level=config.LOG_LEVEL,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[component]} | {message}",
        )
        logger.configure(extra={"component": "main"})
        logger.info(f"Debug logging initialized at {path}")

    return logger
