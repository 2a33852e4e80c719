"""
Edit session state machine.

A session holds one uploaded image, the latest edited version of it and the
commands that produced it:

    empty -> loaded -> processing -> edited -> processing -> ...

reset() returns to empty from any state. A failed edit goes back to the state
it started from and leaves the images and history untouched. An edit still
running when reset() is called is discarded when it finishes.
"""
import logging
from typing import List, Optional, Tuple

from core.errors import SessionStateError
from core.image_data import is_image_data_url
from models.image_edit import HistoryEntry, SessionState
from services.edit_pipeline import EditPipeline

logger = logging.getLogger(__name__)

INVALID_IMAGE_MESSAGE = "Please upload a valid image file"
MISSING_INPUT_MESSAGE = "Please upload an image and enter a command"
EDIT_FAILED_MESSAGE = "Failed to process image. Please try again."
EDIT_DISCARDED_MESSAGE = "Edit discarded because the session was reset"


class EditSession:
    def __init__(self, pipeline: Optional[EditPipeline] = None):
        self.pipeline = pipeline or EditPipeline()
        # Bumped on every reset so an in-flight edit can tell it is stale
        self.generation = 0
        self.reset()

    def reset(self) -> None:
        self.generation += 1
        self.state = SessionState.EMPTY
        self.image: Optional[str] = None
        self.edited_image: Optional[str] = None
        self.history: List[HistoryEntry] = []
        self.error: Optional[str] = None

    @property
    def current_image(self) -> Optional[str]:
        """The image the next edit applies to"""
        return self.edited_image or self.image

    def load(self, image: str) -> None:
        """Start over with a newly uploaded image"""
        if self.state == SessionState.PROCESSING:
            raise SessionStateError("Cannot load an image while an edit is in progress")

        if not is_image_data_url(image):
            self.error = INVALID_IMAGE_MESSAGE
            raise SessionStateError(INVALID_IMAGE_MESSAGE)

        self.image = image
        self.edited_image = None
        self.history = []
        self.error = None
        self.state = SessionState.LOADED

    async def edit(self, command: str) -> Tuple[bool, Optional[str], Optional[str]]:
        """
        Apply a command to the current image.

        Returns:
            Tuple of (success, edited_image, error_message)

        Raises:
            SessionStateError: If another edit is already in flight
        """
        if self.state == SessionState.PROCESSING:
            raise SessionStateError("An edit is already in progress")

        if self.state == SessionState.EMPTY or not command or not command.strip():
            self.error = MISSING_INPUT_MESSAGE
            return False, None, MISSING_INPUT_MESSAGE

        previous_state = self.state
        generation = self.generation
        self.state = SessionState.PROCESSING
        self.error = None

        try:
            result = await self.pipeline.run(self.current_image, command)
        except Exception as e:
            logger.error(f"Edit failed for command '{command}': {str(e)}")
            if generation != self.generation:
                return False, None, EDIT_DISCARDED_MESSAGE
            self.state = previous_state
            self.error = EDIT_FAILED_MESSAGE
            return False, None, EDIT_FAILED_MESSAGE

        if generation != self.generation:
            logger.info(f"Discarding result of '{command}': session was reset during the edit")
            return False, None, EDIT_DISCARDED_MESSAGE

        self.edited_image = result
        self.history.append(HistoryEntry(command=command))
        self.state = SessionState.EDITED
        return True, result, None

    def recent_history(self, limit: int = 3) -> List[HistoryEntry]:
        """Most recent history entries, newest first"""
        if limit <= 0:
            return []
        return list(reversed(self.history[-limit:]))
