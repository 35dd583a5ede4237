"""
Content Routes: Template Generation, Titles and Suggestions

Thin HTTP layer over ContentService. Domain errors are translated to HTTP
responses by the handlers in api.exceptions.
"""

from fastapi import APIRouter, Depends, Request

from api.schemas import ErrorResponse, SuggestionRequest, TitleRequest, TitleResponse
from container import container
from core.models import GenerationOutcome, GenerationRequest, SuggestionResult
from infrastructure.monitoring import get_logger
from services.content_service import ContentService

router = APIRouter(prefix="/content", tags=["Content"])

logger = get_logger(__name__)

_ERROR_RESPONSES = {
    422: {"model": ErrorResponse, "description": "Invalid template or request"},
    429: {"model": ErrorResponse, "description": "Model endpoint rate limited"},
    502: {"model": ErrorResponse, "description": "Model endpoint failure"},
    504: {"model": ErrorResponse, "description": "Model endpoint timeout"},
}


# Simple dependency function for FastAPI
def get_content_service_dependency() -> ContentService:
    """Get ContentService instance for FastAPI dependency injection."""
    return container.content_service()


@router.post(
    "/generate",
    response_model=GenerationOutcome,
    responses=_ERROR_RESPONSES,
    summary="Populate a content template",
)
async def generate_content(
    body: GenerationRequest,
    request: Request,
    service: ContentService = Depends(get_content_service_dependency),
) -> GenerationOutcome:
    """
    Generate every output field of a template for a brand.

    Fields the model could not fill after every repair stage come back empty
    and are listed in `emptyFieldIds`; they are not an error.
    """
    logger.info(
        "generate_requested",
        template_id=body.template.id,
        output_fields=len(body.template.output_fields),
        request_id=getattr(request.state, "request_id", None),
    )
    outcome = await service.generate_from_template(body)
    logger.info(
        "generate_completed",
        template_id=body.template.id,
        mode=outcome.mode.value,
        model_calls=outcome.model_calls,
        empty_fields=len(outcome.empty_field_ids),
    )
    return outcome


@router.post(
    "/title",
    response_model=TitleResponse,
    responses=_ERROR_RESPONSES,
    summary="Generate a localized title",
)
async def generate_title(
    body: TitleRequest,
    service: ContentService = Depends(get_content_service_dependency),
) -> TitleResponse:
    title = await service.generate_title(
        body.content_body, body.brand, topic=body.topic, keywords=body.keywords
    )
    return TitleResponse(title=title)


@router.post(
    "/suggest",
    response_model=SuggestionResult,
    responses=_ERROR_RESPONSES,
    summary="Suggest text for one form field",
)
async def suggest(
    body: SuggestionRequest,
    service: ContentService = Depends(get_content_service_dependency),
) -> SuggestionResult:
    return await service.generate_suggestion(
        body.prompt,
        brand=body.brand,
        form_values=body.form_values,
        field_type=body.field_type,
        max_length=body.max_length,
        max_rows=body.max_rows,
    )
