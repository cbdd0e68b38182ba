"""Serverless function entry point"""

import logging

from nuvemflow.utils.responses import initialization_error_app

logger = logging.getLogger(__name__)

try:
    # Importing the app validates the environment; a bad value must not crash the function
    from nuvemflow.app import create_serverless_app

    app = create_serverless_app()
except Exception as e:
    logger.error(f"Error loading backend server: {e}", exc_info=True)
    app = initialization_error_app(str(e))
