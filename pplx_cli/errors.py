"""Map failures to a message, a remedy, and a non-zero exit."""
import sys, traceback
from typing import NoReturn, Optional, Tuple

import openai

from .output import Console


class UsageError(Exception):
    """A local mistake by the user (bad key name, unknown thread, ...)."""


def describe_error(error: BaseException) -> Tuple[str, Optional[str]]:
    """Return (message, remedy) for an exception raised while running a command."""
    if isinstance(error, openai.AuthenticationError):
        return "Error: Invalid or missing API key.", "Run: pplx config set-key <your-api-key>"
    if isinstance(error, openai.RateLimitError):
        return "Error: Rate limit exceeded.", "Wait a moment and try again, or check your usage tier."
    if isinstance(error, openai.BadRequestError):
        if "model" in str(error.message).lower():
            return "Error: Bad request.", "The specified model may not be available. Run: pplx models"
        return "Error: Bad request.", str(error.message)
    if isinstance(error, openai.APITimeoutError):
        return "Error: Request timed out.", "Check your internet connection and try again."
    if isinstance(error, openai.APIConnectionError):
        return "Error: Unable to connect to Perplexity API.", "Check your internet connection."
    if isinstance(error, openai.InternalServerError):
        return "Error: Perplexity API server error.", "Try again in a moment."
    if isinstance(error, openai.APIStatusError):
        return f"Error: API returned status {error.status_code}.", str(error.message)
    if isinstance(error, openai.APIError):
        return "Error: API request failed.", str(error.message)
    if str(error):
        return f"Error: {error}", None
    return "An unexpected error occurred.", None


def handle_error(error: BaseException, console: Console, verbose: bool = False) -> NoReturn:
    message, hint = describe_error(error)
    console.error(message, hint)
    if verbose:
        console.print("\nDebug info:", "gray", err=True)
        console.print("".join(traceback.format_exception(type(error), error, error.__traceback__)).rstrip(),
                      "gray", err=True)
        if isinstance(error, openai.APIStatusError):
            console.print(f"Status: {error.status_code}", "gray", err=True)
    sys.exit(1)


def exit_no_api_key(console: Console) -> NoReturn:
    console.error("Error: No API key configured.", "Set your key: pplx config set-key <your-api-key>")
    console.print("Or set PERPLEXITY_API_KEY environment variable.", "yellow", err=True)
    sys.exit(1)
