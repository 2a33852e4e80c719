import asyncio
import logging
import time
import httpx
from typing import Any, Dict, Optional

from config.settings import settings
from core.errors import ExternalServiceError, ExternalServiceTimeoutError
from core.image_data import encode_data_url, is_image_data_url
from core.retry import REJECTED_STATUS_CODES, UNSENT_ERRORS, send_with_retry

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"succeeded", "failed", "canceled"}


class ReplicateService:
    """Background removal and generative editing through Replicate predictions"""

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_token = api_token if api_token is not None else settings.REPLICATE_API_TOKEN
        self.base_url = (base_url or settings.REPLICATE_BASE_URL).rstrip('/')
        self.timeout = timeout if timeout is not None else settings.IMAGE_PROCESSING_TIMEOUT
        self.poll_interval = poll_interval if poll_interval is not None else settings.PREDICTION_POLL_INTERVAL
        self.max_attempts = max_attempts if max_attempts is not None else settings.UPSTREAM_MAX_ATTEMPTS
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.UPSTREAM_BACKOFF_SECONDS
        self.transport = transport

    async def remove_background(self, image: str) -> str:
        """Cut the subject out of its background; returns a data URL"""
        output = await self.run(settings.BACKGROUND_REMOVAL_VERSION, {"image": image}, "remove background")
        return await self._first_image(output, "remove background")

    async def generative_edit(self, image: str, prompt: str, strength: Optional[float] = None) -> str:
        """Regenerate the image guided by a text prompt; returns the first output as a data URL"""
        model_input = {
            "image": image,
            "prompt": prompt,
            "strength": strength if strength is not None else settings.GENERATIVE_STRENGTH
        }
        output = await self.run(settings.GENERATIVE_EDIT_VERSION, model_input, "apply generative edit")
        return await self._first_image(output, "apply generative edit")

    async def run(self, version: str, model_input: Dict[str, Any], label: str) -> Any:
        """
        Create a prediction and wait for it to finish.

        Args:
            version: Pinned model version hash
            model_input: Model input payload
            label: Human-readable operation name for errors and logs

        Returns:
            The prediction's output field

        Raises:
            ExternalServiceTimeoutError: If the prediction does not finish in time
            ExternalServiceError: If the API rejects the request or the prediction fails
        """
        if not self.api_token:
            raise ExternalServiceError("Replicate API token not configured")

        try:
            return await asyncio.wait_for(self._run(version, model_input, label), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.error(f"{label} timed out after {self.timeout}s")
            raise ExternalServiceTimeoutError(f"Failed to {label}: timed out after {self.timeout} seconds")
        except httpx.HTTPError as e:
            logger.error(f"{label} request failed: {str(e)}")
            raise ExternalServiceError(f"Failed to {label}: {str(e)}")

    async def _run(self, version: str, model_input: Dict[str, Any], label: str) -> Any:
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
            "Prefer": "wait"
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            start_time = time.time()
            # Creation is retried only when the request was never accepted
            response = await send_with_retry(
                lambda: client.post(
                    f"{self.base_url}/predictions",
                    json={"version": version, "input": model_input},
                    headers=headers
                ),
                attempts=self.max_attempts,
                backoff_seconds=self.backoff_seconds,
                label=label,
                retry_statuses=REJECTED_STATUS_CODES,
                retry_errors=UNSENT_ERRORS
            )

            if response.status_code not in (200, 201, 202):
                raise ExternalServiceError(f"Failed to {label}: API request failed: {response.status_code} - {response.text[:200]}")

            prediction = response.json()

            while prediction.get("status") not in TERMINAL_STATUSES:
                poll_url = (prediction.get("urls") or {}).get("get")
                if not poll_url:
                    raise ExternalServiceError(f"Failed to {label}: prediction has no status URL")

                await asyncio.sleep(self.poll_interval)
                poll_response = await send_with_retry(
                    lambda: client.get(poll_url, headers=headers),
                    attempts=self.max_attempts,
                    backoff_seconds=self.backoff_seconds,
                    label=label
                )
                if poll_response.status_code != 200:
                    raise ExternalServiceError(f"Failed to {label}: status check failed: {poll_response.status_code}")
                prediction = poll_response.json()

            if prediction.get("status") != "succeeded":
                raise ExternalServiceError(f"Failed to {label}: {prediction.get('error') or prediction.get('status')}")

            logger.info(f"{label} prediction {prediction.get('id')} finished in {time.time() - start_time:.2f}s")
            return prediction.get("output")

    async def _first_image(self, output: Any, label: str) -> str:
        if isinstance(output, list):
            output = output[0] if output else None

        if not isinstance(output, str) or not output:
            raise ExternalServiceError(f"Failed to {label}: no image received from API")

        if is_image_data_url(output):
            return output

        return await self.download_as_data_url(output, label)

    async def download_as_data_url(self, url: str, label: str = "download image") -> str:
        """Fetch an output URL and return its content as a data URL"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            raise ExternalServiceTimeoutError(f"Failed to {label}: download timed out")
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Failed to {label}: download failed: {str(e)}")

        if response.status_code != 200 or not response.content:
            raise ExternalServiceError(f"Failed to {label}: download failed: {response.status_code}")

        content_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        if not content_type.startswith("image/"):
            content_type = "image/png"
        return encode_data_url(response.content, content_type)
