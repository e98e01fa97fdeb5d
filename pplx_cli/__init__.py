"""pplx - command-line client for the Perplexity AI API."""

APP_NAME = "pplx"
__version__ = "1.0.0"
