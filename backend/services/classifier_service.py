import json
import logging
import httpx
from typing import Any, Optional

from config.settings import settings
from core.errors import ClassificationError, ClassificationTimeoutError
from core.retry import send_with_retry
from models.image_edit import EditAction, Intent

logger = logging.getLogger(__name__)

# Labels used by earlier prompt revisions, mapped onto the current actions
LEGACY_ACTIONS = {
    "remove_bg": EditAction.REMOVE_BACKGROUND,
    "generate": EditAction.GENERATE_OR_TRANSFORM,
    "transform": EditAction.GENERATE_OR_TRANSFORM,
}

CLASSIFY_PROMPT = """Analyze this image editing request: "{command}".
Determine the best approach and return only a JSON object with exactly these keys:
{{
  "action": "filter|remove_background|generate_or_transform",
  "parameters": {{...}},
  "description": "what will be done"
}}
Use "filter" for simple colour or tone adjustments and put the filter name in parameters.filter
(one of: blur, brightness, darken, contrast, grayscale, sepia, saturate).
Use "remove_background" to cut the subject out of its background.
Use "generate_or_transform" for anything that needs new image content."""


def parse_intent(content: Any) -> Intent:
    """
    Strictly parse the model's reply into an Intent.

    Args:
        content: Raw message content returned by the model

    Returns:
        A validated Intent whose action is an EditAction value

    Raises:
        ClassificationError: If the content is not the expected JSON shape
    """
    if not isinstance(content, str) or not content.strip():
        raise ClassificationError("Model returned an empty analysis")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ClassificationError(f"Model analysis is not valid JSON: {str(e)}")

    if not isinstance(data, dict):
        raise ClassificationError("Model analysis must be a JSON object")

    action = data.get("action")
    parameters = data.get("parameters")
    description = data.get("description")

    if not isinstance(action, str) or not action:
        raise ClassificationError("Model analysis is missing 'action'")
    if not isinstance(parameters, dict):
        raise ClassificationError("Model analysis 'parameters' must be an object")
    if not isinstance(description, str):
        raise ClassificationError("Model analysis 'description' must be a string")

    if action in LEGACY_ACTIONS:
        resolved = LEGACY_ACTIONS[action]
    else:
        try:
            resolved = EditAction(action)
        except ValueError:
            raise ClassificationError(f"Model returned unknown action '{action}'")

    return Intent(action=resolved.value, parameters=parameters, description=description)


class ClassifierService:
    """Turns an image plus a free-text command into an Intent using a multimodal chat model"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip('/')
        self.model = model or settings.CLASSIFIER_MODEL
        self.timeout = timeout if timeout is not None else settings.CLASSIFIER_TIMEOUT_SECONDS
        self.max_attempts = max_attempts if max_attempts is not None else settings.UPSTREAM_MAX_ATTEMPTS
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.UPSTREAM_BACKOFF_SECONDS
        self.transport = transport

    def build_payload(self, image: str, command: str) -> dict:
        return {
            "model": self.model,
            "response_format": {"type": "json_object"},
            "max_tokens": settings.CLASSIFIER_MAX_TOKENS,
            "messages": [{
                "role": "user",
                "content": [
                    {
                        "type": "text",
                        "text": CLASSIFY_PROMPT.format(command=command)
                    },
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": image
                        }
                    }
                ]
            }]
        }

    async def classify(self, image: str, command: str) -> Intent:
        """Classify an edit command; raises ClassificationError on any failure"""
        if not self.api_key:
            raise ClassificationError("Classification API key not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = self.build_payload(image, command)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await send_with_retry(
                    lambda: client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers),
                    attempts=self.max_attempts,
                    backoff_seconds=self.backoff_seconds,
                    label="classifier"
                )
        except httpx.TimeoutException:
            logger.error(f"Classification timed out after {self.timeout}s")
            raise ClassificationTimeoutError(f"Classification timed out after {self.timeout} seconds")
        except httpx.HTTPError as e:
            logger.error(f"Classification request failed: {str(e)}")
            raise ClassificationError(f"Failed to analyze command: {str(e)}")

        if response.status_code != 200:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            error = error_data.get('error') if isinstance(error_data, dict) else None
            error_message = error.get('message') if isinstance(error, dict) else None
            raise ClassificationError(error_message or f"Classification request failed: {response.status_code}")

        try:
            data = response.json()
            content = data['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError):
            raise ClassificationError("Classification response did not contain a message")

        intent = parse_intent(content)
        logger.info(f"Command classified as {intent.action}: {intent.description}")
        return intent
