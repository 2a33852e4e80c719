"""
Routes a classified Intent to the component that produces the edit.

Filter intents never leave the process: the dispatcher answers with a filter
instruction and the untouched source image, and rendering stays with the
caller. Background removal and generative edits go to the external image
services.
"""
import logging
from typing import Optional, Protocol

from config.settings import settings
from core.errors import UnsupportedActionError
from models.image_edit import EditAction, EditResult, FilterInstruction, Intent, ProcessedImage
from services.filter_service import match_preset

logger = logging.getLogger(__name__)


class BackgroundRemovalService(Protocol):
    async def remove_background(self, image: str) -> str: ...


class GenerativeEditService(Protocol):
    async def generative_edit(self, image: str, prompt: str, strength: Optional[float] = None) -> str: ...


class DispatcherService:
    def __init__(
        self,
        background_service: BackgroundRemovalService,
        generative_service: GenerativeEditService,
        strength: Optional[float] = None
    ):
        self.background_service = background_service
        self.generative_service = generative_service
        self.strength = strength if strength is not None else settings.GENERATIVE_STRENGTH
        self._routes = {
            EditAction.REMOVE_BACKGROUND: self._remove_background,
            EditAction.GENERATE_OR_TRANSFORM: self._generative_edit,
            EditAction.FILTER: self._filter,
        }

    async def dispatch(self, image: str, command: str, intent: Intent) -> EditResult:
        """
        Produce the edit result for a classified command.

        Raises:
            UnsupportedActionError: If intent.action is not a known EditAction.
                No external service is called in that case.
        """
        try:
            action = EditAction(intent.action)
        except ValueError:
            raise UnsupportedActionError(f"Unsupported edit action: {intent.action}")

        logger.info(f"Dispatching {action.value} edit")
        return await self._routes[action](image, command, intent)

    async def _remove_background(self, image: str, command: str, intent: Intent) -> EditResult:
        result = await self.background_service.remove_background(image)
        return ProcessedImage(image=result)

    async def _generative_edit(self, image: str, command: str, intent: Intent) -> EditResult:
        result = await self.generative_service.generative_edit(image, command, self.strength)
        return ProcessedImage(image=result)

    async def _filter(self, image: str, command: str, intent: Intent) -> EditResult:
        return FilterInstruction(filter=resolve_filter_name(command, intent), image=image)


def resolve_filter_name(command: str, intent: Intent) -> Optional[str]:
    """Filter named by the classifier, else the keyword-matched preset, else None"""
    name = intent.parameters.get("filter")
    if isinstance(name, str) and name.strip():
        return name.strip()

    preset = match_preset(command)
    return preset.name if preset else None
