import base64
import binascii
import json
import re
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from .config import MODEL_NAME, TEMPERATURE, get_api_key
from .errors import RemoteCallError, ResponseShapeError
from .logging_config import inc_metric, log

_client: Optional[genai.Client] = None


def get_client() -> genai.Client:
    """
    Lazily build the shared Gemini client.

    Raises ConfigurationError (from get_api_key) before anything touches the network.
    """
    global _client
    if _client is None:
        _client = genai.Client(api_key=get_api_key())
        log.info("[Gemini] Client initialized.")
    return _client


def reset_client() -> None:
    global _client
    _client = None


# --- Helpers ---

def _extract_json(text: str) -> Dict[str, Any]:
    """
    Parse the model text as JSON; fall back to the outermost {...} block.
    Returns {} if parsing fails.
    """
    if not text:
        return {}
    try:
        data = json.loads(text)
        return data if isinstance(data, dict) else {}
    except ValueError:
        pass
    match = re.search(r"(\{[\s\S]*\})", text)
    if not match:
        return {}
    try:
        data = json.loads(match.group(1))
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


# --- Image + prompt Gemini call ---

def generate_json_from_image(
    prompt: str,
    image_b64: str,
    response_schema: types.Schema,
    mime_type: str = "image/jpeg",
) -> Dict[str, Any]:
    """
    Send the image and prompt to Gemini, constrained to `response_schema`.

    Always returns a dict. Transport failures raise RemoteCallError,
    anything that is not a JSON object raises ResponseShapeError.
    """
    client = get_client()

    try:
        image_bytes = base64.b64decode(image_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Image payload is not valid base64: {e}")

    contents = [
        types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
        prompt,
    ]
    config = types.GenerateContentConfig(
        response_mime_type="application/json",
        response_schema=response_schema,
        temperature=TEMPERATURE,
    )

    inc_metric("gemini_requests")
    try:
        resp = client.models.generate_content(
            model=MODEL_NAME,
            contents=contents,
            config=config,
        )
    except Exception as e:
        inc_metric("gemini_failures")
        raise RemoteCallError(f"Gemini request failed: {e}") from e

    parsed = getattr(resp, "parsed", None)
    if isinstance(parsed, dict) and parsed:
        return parsed

    text = getattr(resp, "text", None)
    if not text:
        raise ResponseShapeError("No response from AI")

    data = _extract_json(text)
    if not data:
        log.warning("Gemini returned unstructured text: %s", text[:200])
        raise ResponseShapeError("Gemini returned unstructured text")
    return data
