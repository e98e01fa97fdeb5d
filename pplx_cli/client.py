"""Perplexity API access through the OpenAI-compatible SDK."""
import logging, os
from typing import Any, Dict, Optional

from openai import OpenAI

logger = logging.getLogger(__name__)

BASE_URL = os.environ.get("PERPLEXITY_BASE_URL", "https://api.perplexity.ai")
MAX_RETRIES = 2
TIMEOUT_SECONDS = 120.0
RESEARCH_MODEL = "sonar-deep-research"


class ClientCache:
    """Builds one OpenAI client per API key and reuses it while the key is unchanged."""

    def __init__(self, base_url: str = BASE_URL):
        self.base_url = base_url
        self._client: Optional[OpenAI] = None
        self._key: Optional[str] = None

    def get(self, api_key: str) -> OpenAI:
        if self._client is not None and self._key == api_key:
            return self._client
        logger.debug("Creating API client for %s", self.base_url)
        self._client = OpenAI(api_key=api_key, base_url=self.base_url,
                              max_retries=MAX_RETRIES, timeout=TIMEOUT_SECONDS)
        self._key = api_key
        return self._client

    def reset(self) -> None:
        self._client = None
        self._key = None


def to_dict(obj: Any) -> Dict[str, Any]:
    """Plain-dict view of an SDK response model (extra Perplexity fields included)."""
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    return dict(vars(obj))


def submit_research(client: OpenAI, topic: str, model: str = RESEARCH_MODEL) -> Dict[str, Any]:
    body = {"request": {"model": model, "messages": [{"role": "user", "content": topic}]}}
    logger.debug("Submitting async job for model %s", model)
    return client.post("/async/chat/completions", body=body, cast_to=object)


def get_research(client: OpenAI, request_id: str) -> Dict[str, Any]:
    return client.get(f"/async/chat/completions/{request_id}", cast_to=object)
