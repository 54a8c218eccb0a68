"""Text and image generation providers used alongside publishing."""

from __future__ import annotations

import base64
import binascii
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

import requests

from .config import DEFAULT_ASSETS_DIR, GenerationConfig
from .errors import ConfigurationError, ProviderError, ResponseParseError
from .images import write_asset

logger = logging.getLogger("wechat_mdx.generation")

SUMMARY_MAX_CHARS = 100
SUMMARY_PROMPT = (
    "Summarize the following WeChat article Markdown in no more than 100 characters, "
    "on a single line. Reply with the summary only.\n\n{markdown}"
)
PROBE_PROMPT = "Reply with the uppercase letters OK only."
FALLBACK_COVER_TITLE = "WeChat article"
COVER_PROMPT = (
    "Create a clean, modern, minimalist cover image for a WeChat article titled '{title}'. "
    "The image should be professional, eye-catching, and suitable for social media. "
    "Use a 16:9 aspect ratio with vibrant colors and simple geometric shapes. No text in the image."
)


def _require_key(config: GenerationConfig, provider: str) -> str:
    if not config.api_key:
        raise ConfigurationError(f"{provider} API key is not configured")
    return config.api_key


def _post_json(
    session: Any,
    url: str,
    payload: Dict[str, Any],
    headers: Dict[str, str],
    timeout: float,
) -> Dict[str, Any]:
    try:
        resp = session.post(url, json=payload, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        raise ProviderError(f"Request to {url} failed: {exc}") from exc
    if not resp.ok:
        raise ProviderError(f"HTTP {resp.status_code} from {url}: {resp.text}")
    try:
        return resp.json()
    except ValueError as exc:
        raise ResponseParseError(f"Response from {url} is not JSON") from exc


class SummaryGenerator:
    """OpenAI-compatible chat completion client producing a short article digest."""

    def __init__(
        self,
        config: GenerationConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()

    def _complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        api_key = _require_key(self.config, "OpenAI")
        url = f"{self.config.base_url.rstrip('/')}/chat/completions"
        body = _post_json(
            self.session,
            url,
            {
                "model": self.config.model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
            {"Authorization": f"Bearer {api_key}"},
            self.config.request_timeout,
        )
        try:
            return body["choices"][0]["message"]["content"].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ResponseParseError("Empty response from the summary provider") from exc

    def generate(self, markdown: str) -> str:
        logger.info("Requesting summary from %s (%s)", self.config.base_url, self.config.model)
        content = self._complete(SUMMARY_PROMPT.format(markdown=markdown), 200, 0.3)
        return content[:SUMMARY_MAX_CHARS]

    def check(self) -> str:
        """Send a probe prompt and describe whether the endpoint answered as expected."""
        content = self._complete(PROBE_PROMPT, 5, 0.0)
        if "OK" in content.upper():
            return f"OpenAI endpoint OK, model = {self.config.model}"
        return f"OpenAI endpoint reachable, unexpected reply: {content}"


def cover_prompt(markdown: str) -> str:
    """Build the image prompt from the first level-one heading."""
    title = ""
    for line in markdown.splitlines():
        stripped = line.strip()
        if stripped.startswith("# "):
            title = stripped[2:].strip()
            break
    return COVER_PROMPT.format(title=title or FALLBACK_COVER_TITLE)


class CoverImageGenerator:
    """Imagen ``:predict`` client that saves a generated cover into the assets directory."""

    def __init__(
        self,
        config: GenerationConfig,
        session: Optional[requests.Session] = None,
        clock=time.time,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self._clock = clock

    def generate(
        self,
        markdown: str,
        base_dir: Union[str, Path, None],
        assets_dir: str = DEFAULT_ASSETS_DIR,
    ) -> str:
        api_key = _require_key(self.config, "Gemini")
        if base_dir is None:
            raise ConfigurationError("Save the Markdown file before generating a cover image")

        url = f"{self.config.base_url.rstrip('/')}/{self.config.model.lstrip('/')}:predict"
        body = _post_json(
            self.session,
            url,
            {
                "instances": [{"prompt": cover_prompt(markdown)}],
                "parameters": {"sampleCount": 1},
            },
            {"x-goog-api-key": api_key},
            self.config.request_timeout,
        )
        predictions = body.get("predictions") or []
        if not predictions or not predictions[0].get("bytesBase64Encoded"):
            raise ResponseParseError("The image provider returned no image")
        try:
            data = base64.b64decode(predictions[0]["bytesBase64Encoded"], validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ResponseParseError(f"Could not decode generated image: {exc}") from exc

        filename = f"cover-{int(self._clock() * 1000)}.png"
        destination = write_asset(Path(base_dir) / assets_dir, filename, data)
        logger.info("Saved cover image to %s", destination)
        return f"{assets_dir}/{filename}"
