import asyncio
import logging
from typing import Optional

from core.errors import ClassificationError
from models.image_edit import FilterInstruction
from services.classifier_service import ClassifierService
from services.dispatcher_service import DispatcherService
from services.filter_service import apply_effect, apply_named_filter

logger = logging.getLogger(__name__)


class EditPipeline:
    """
    Runs one edit command against an image and returns the new image.

    Without a classifier every command goes through the keyword filters.
    With a classifier and dispatcher the command is classified and routed
    first; if classification fails the keyword filters are used instead.
    Dispatch failures are not masked.
    """

    def __init__(
        self,
        classifier: Optional[ClassifierService] = None,
        dispatcher: Optional[DispatcherService] = None
    ):
        if (classifier is None) != (dispatcher is None):
            raise ValueError("classifier and dispatcher must be provided together")
        self.classifier = classifier
        self.dispatcher = dispatcher

    async def run(self, image: str, command: str) -> str:
        if self.classifier is None:
            return await self._fallback(image, command)

        try:
            intent = await self.classifier.classify(image, command)
        except ClassificationError as e:
            logger.warning(f"Classification unavailable, using keyword filters: {e.message}")
            return await self._fallback(image, command)

        result = await self.dispatcher.dispatch(image, command, intent)

        if isinstance(result, FilterInstruction):
            return await asyncio.to_thread(apply_named_filter, result.image, result.filter)
        return result.image

    async def _fallback(self, image: str, command: str) -> str:
        return await asyncio.to_thread(apply_effect, image, command)
