from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from datetime import datetime, timezone
import json
import logging

from config.settings import settings
from core.errors import SnapEditError, RateLimitError, ValidationError
from core.rate_limiter import RateLimiter, get_client_id, get_rate_limiter
from models.image_edit import EditRequest, EditResponse, ErrorResponse, HealthResponse
from services.classifier_service import ClassifierService
from services.dispatcher_service import DispatcherService
from services.replicate_service import ReplicateService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/edit-image", tags=["edit-image"])

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
MISSING_FIELDS_MESSAGE = "Image and command are required"
COMMAND_TOO_LONG_MESSAGE = "Command too long"
INVALID_BODY_MESSAGE = "Request body must be a JSON object with string image and command fields"
PROCESSING_FAILED_MESSAGE = "Failed to process image"

def get_classifier_service() -> ClassifierService:
    return ClassifierService()

def get_dispatcher_service() -> DispatcherService:
    replicate_service = ReplicateService()
    return DispatcherService(replicate_service, replicate_service)

async def parse_edit_request(request: Request) -> EditRequest:
    """Parse the JSON body; anything that is not an object of optional strings is a 400"""
    try:
        body = await request.json()
        return EditRequest.model_validate(body)
    except (json.JSONDecodeError, UnicodeDecodeError, PydanticValidationError) as e:
        logger.info(f"Rejected malformed edit request: {str(e)}")
        raise ValidationError(INVALID_BODY_MESSAGE)

def validate_edit_request(edit_request: EditRequest) -> None:
    """Raise ValidationError with the public message for a bad request"""
    if not edit_request.image or not edit_request.command:
        raise ValidationError(MISSING_FIELDS_MESSAGE)

    if len(edit_request.command) > settings.MAX_COMMAND_LENGTH:
        raise ValidationError(COMMAND_TOO_LONG_MESSAGE)

def error_response(error: SnapEditError) -> JSONResponse:
    if error.status_code == 500:
        body = ErrorResponse(error=PROCESSING_FAILED_MESSAGE, details=error.message, code=error.code)
    else:
        body = ErrorResponse(error=error.message)
    return JSONResponse(status_code=error.status_code, content=body.model_dump(exclude_none=True))

def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

@router.post(
    "",
    response_model=EditResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse}
    },
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": EditRequest.model_json_schema()}}
        }
    }
)
async def edit_image(
    request: Request,
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    classifier: ClassifierService = Depends(get_classifier_service),
    dispatcher: DispatcherService = Depends(get_dispatcher_service)
):
    """Classify an edit command and route it to the matching image effect"""
    try:
        client_id = get_client_id(request)
        if not await rate_limiter.allow(client_id):
            raise RateLimitError(RATE_LIMIT_MESSAGE)

        edit_request = await parse_edit_request(request)
        validate_edit_request(edit_request)

        # Step 1: Analyze the command
        logger.info(f"Analyzing command: {edit_request.command}")
        intent = await classifier.classify(edit_request.image, edit_request.command)
        logger.info(f"Analysis result: {intent.action} - {intent.description}")

        # Step 2: Route to the matching effect
        result = await dispatcher.dispatch(edit_request.image, edit_request.command, intent)

        return EditResponse(
            success=True,
            result=result,
            analysis=intent.description,
            timestamp=utc_timestamp()
        )

    except SnapEditError as e:
        if e.status_code == 500:
            logger.error(f"Edit failed ({e.code}): {e.message}")
        return error_response(e)
    except Exception as e:
        logger.exception("Unexpected error while processing edit")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error=PROCESSING_FAILED_MESSAGE, details=str(e), code="internal_error").model_dump()
        )

@router.get("", response_model=HealthResponse)
async def edit_image_health():
    """Health probe for the edit endpoint"""
    return HealthResponse(
        status="healthy",
        version=settings.VERSION,
        endpoints={
            "edit": f"POST {settings.API_V1_STR}/edit-image"
        }
    )
