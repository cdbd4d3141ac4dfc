import logging

logger = logging.getLogger(__name__)

class AutomationError(Exception):
    """Base exception for failures inside the automation engine."""
    pass

class StorageError(AutomationError):
    """Raised when the settings store cannot be read or written."""
    pass

class EngineUnavailableError(AutomationError):
    """Raised when a script execution strategy cannot be used on the current page."""
    pass

def handle_storage_error(e: Exception, message: str = "Settings storage failed"):
    """
    Centralized error handling for storage calls.
    """
    logger.error(f"❌ {message}: {e}")
    raise StorageError(message) from e

def create_error_message(error) -> str:
    """
    Creates a formatted error message.
    """
    if isinstance(error, BaseException):
        text = str(error) or error.__class__.__name__
    else:
        text = str(error)
    return f"❌ {text}"
