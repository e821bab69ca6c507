"""Global error handler for the bot application."""

import logging
import traceback

from telegram.ext import ContextTypes

logger = logging.getLogger(__name__)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log errors raised by handlers and scheduled jobs.

    Reminder delivery failures are handled inside the jobs; anything that
    reaches this point escaped a pass and is only logged.
    """
    error = context.error
    job_name = context.job.name if context.job else None

    if job_name:
        logger.error(f"Exception in job {job_name}:", exc_info=error)
    else:
        logger.error("Exception while handling an update:", exc_info=error)

    if error is not None:
        tb_string = "".join(traceback.format_exception(None, error, error.__traceback__))
        logger.debug(f"Traceback:\n{tb_string}")
