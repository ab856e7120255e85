"""Ollama-backed activity classifier.

Asks a local Ollama server to pick one of the known project names for a
sample. Every failure (server down, timeout, bad status, unparseable
answer) is reported as ``None``: the classifier is a best-effort oracle
and absence of a result means "no signal".
"""

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Optional, Sequence

from timetrack.core.models import ClassifierGuess

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "llama3.2:3b"
_USER_AGENT = "TimeTrack/1.0"

_PROMPT_TEMPLATE = """\
Analyze this activity and assign it to the correct project.
Available projects: {projects}

App: {app_name}
Title: {window_title}
URL: {url}

Reply ONLY with JSON in the format: {{"project": "project_name", "confidence": 0.0-1.0}}
where confidence is how sure you are of the categorization (0.0 to 1.0).
If you are not sure, use a confidence below 0.7.
The project name must be exactly as listed above."""


class OllamaClassifier:
    """HTTP client for the Ollama ``/api/generate`` and ``/api/tags`` endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.is_available = False

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "OllamaClassifier":
        ollama = config.get("ollama", {})
        return cls(
            base_url=ollama.get("base_url", DEFAULT_BASE_URL),
            model=ollama.get("model", DEFAULT_MODEL),
            timeout=ollama.get("timeout_seconds", 30),
        )

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def check_availability(self) -> bool:
        """Ask the server whether it is up and cache the answer in ``is_available``."""
        try:
            with self._open(self._request("/api/tags")) as resp:
                self.is_available = resp.status == 200
        except (urllib.error.URLError, OSError) as exc:
            logger.info("Ollama not available at %s: %s", self.base_url, exc)
            self.is_available = False
        return self.is_available

    def list_models(self) -> list[str]:
        """Return the names of the models installed on the server."""
        try:
            with self._open(self._request("/api/tags")) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except (urllib.error.URLError, OSError, ValueError) as exc:
            logger.debug("Failed to list Ollama models: %s", exc)
            return []
        models = payload.get("models") if isinstance(payload, dict) else None
        if not isinstance(models, list):
            return []
        return [m["name"] for m in models if isinstance(m, dict) and "name" in m]

    # ------------------------------------------------------------------
    # Categorization
    # ------------------------------------------------------------------

    def categorize(
        self,
        app_name: str,
        window_title: Optional[str],
        url: Optional[str],
        project_names: Sequence[str],
    ) -> Optional[ClassifierGuess]:
        """Ask the model for a project name and confidence.

        Returns ``None`` when the server is unavailable or the reply
        cannot be parsed.
        """
        if not self.is_available:
            return None

        prompt = build_prompt(app_name, window_title, url, project_names)
        body = json.dumps({
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
        }).encode("utf-8")

        try:
            with self._open(self._request("/api/generate", body)) as resp:
                if resp.status != 200:
                    logger.info("Ollama categorization failed: HTTP %d", resp.status)
                    return None
                envelope = json.loads(resp.read().decode("utf-8"))
        except (urllib.error.URLError, OSError, ValueError) as exc:
            logger.info("Ollama categorization error: %s", exc)
            return None

        if not isinstance(envelope, dict) or not isinstance(envelope.get("response"), str):
            logger.info("Ollama returned an unexpected envelope")
            return None
        return parse_guess(envelope["response"])

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _request(self, path: str, body: Optional[bytes] = None) -> urllib.request.Request:
        headers = {"User-Agent": _USER_AGENT}
        if body is not None:
            headers["Content-Type"] = "application/json"
        return urllib.request.Request(
            self.base_url + path,
            data=body,
            headers=headers,
            method="POST" if body is not None else "GET",
        )

    def _open(self, req: urllib.request.Request):
        return urllib.request.urlopen(req, timeout=self.timeout)


def build_prompt(
    app_name: str,
    window_title: Optional[str],
    url: Optional[str],
    project_names: Sequence[str],
) -> str:
    return _PROMPT_TEMPLATE.format(
        projects=", ".join(project_names),
        app_name=app_name,
        window_title=window_title or "N/A",
        url=url or "N/A",
    )


def parse_guess(text: str) -> Optional[ClassifierGuess]:
    """Parse ``{"project": ..., "confidence": ...}`` out of model output.

    The model sometimes wraps the object in prose, so the span between
    the first ``{`` and the last ``}`` is decoded.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        logger.debug("No JSON object in Ollama response: %r", text)
        return None
    try:
        data = json.loads(text[start:end + 1])
        project = data["project"]
        confidence = float(data["confidence"])
    except (ValueError, KeyError, TypeError) as exc:
        logger.debug("Malformed Ollama response %r: %s", text, exc)
        return None
    if not isinstance(project, str) or not project.strip():
        return None
    return ClassifierGuess(project=project.strip(), confidence=confidence)
