"""
Unit tests for intent routing
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from core.errors import ExternalServiceError, UnsupportedActionError
from models.image_edit import FilterInstruction, Intent, ProcessedImage
from services.dispatcher_service import DispatcherService

PROCESSED = "data:image/png;base64,cHJvY2Vzc2Vk"


@pytest.fixture
def image_service():
    """Provide a mock implementing both external image services"""
    service = MagicMock()
    service.remove_background = AsyncMock(return_value=PROCESSED)
    service.generative_edit = AsyncMock(return_value=PROCESSED)
    return service


@pytest.fixture
def dispatcher(image_service):
    return DispatcherService(image_service, image_service)


@pytest.mark.unit
@pytest.mark.asyncio
class TestDispatcherRouting:
    """Routing table coverage"""

    async def test_remove_background(self, dispatcher, image_service, sample_image):
        result = await dispatcher.dispatch(sample_image, "remove the background", Intent(action="remove_background"))

        assert isinstance(result, ProcessedImage)
        assert result.image == PROCESSED
        image_service.remove_background.assert_awaited_once_with(sample_image)
        image_service.generative_edit.assert_not_called()

    async def test_generate_or_transform_uses_command_and_strength(self, dispatcher, image_service, sample_image):
        result = await dispatcher.dispatch(
            sample_image, "turn it into a watercolor", Intent(action="generate_or_transform")
        )

        assert isinstance(result, ProcessedImage)
        image_service.generative_edit.assert_awaited_once_with(sample_image, "turn it into a watercolor", 0.7)

    async def test_filter_makes_no_external_call(self, dispatcher, image_service, sample_image):
        result = await dispatcher.dispatch(
            sample_image, "make it moody", Intent(action="filter", parameters={"filter": "sepia"})
        )

        assert isinstance(result, FilterInstruction)
        assert result.filter == "sepia"
        assert result.image == sample_image
        image_service.remove_background.assert_not_called()
        image_service.generative_edit.assert_not_called()

    async def test_filter_name_falls_back_to_keywords(self, dispatcher, sample_image):
        result = await dispatcher.dispatch(sample_image, "Make it brighter", Intent(action="filter"))

        assert result.filter == "brightness"

    async def test_filter_without_any_name(self, dispatcher, sample_image):
        result = await dispatcher.dispatch(
            sample_image, "make it pop", Intent(action="filter", parameters={"filter": " "})
        )

        assert result.filter is None
        assert result.image == sample_image

    async def test_unknown_action_fails_without_external_call(self, dispatcher, image_service, sample_image):
        with pytest.raises(UnsupportedActionError, match="bogus"):
            await dispatcher.dispatch(sample_image, "do something", Intent(action="bogus"))

        image_service.remove_background.assert_not_called()
        image_service.generative_edit.assert_not_called()

    async def test_legacy_label_is_not_routed(self, dispatcher, sample_image):
        with pytest.raises(UnsupportedActionError):
            await dispatcher.dispatch(sample_image, "remove bg", Intent(action="remove_bg"))

    async def test_service_errors_propagate(self, dispatcher, image_service, sample_image):
        image_service.remove_background.side_effect = ExternalServiceError("Failed to remove background: boom")

        with pytest.raises(ExternalServiceError, match="boom"):
            await dispatcher.dispatch(sample_image, "remove the background", Intent(action="remove_background"))

    async def test_result_serializes_as_tagged_union(self, dispatcher, sample_image):
        result = await dispatcher.dispatch(sample_image, "blur", Intent(action="filter"))

        assert result.model_dump() == {"type": "filter", "filter": "blur", "image": sample_image}
