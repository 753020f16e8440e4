from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from . import deps, schemas
from .errors import BusinessRuleError, FieldValidationError, NotFoundError
from .service import PathwayApplicationService

router = APIRouter(prefix="/pathways", tags=["pathways"])


def _field_error_response(status_code: int, exc: FieldValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": str(exc),
            "field_errors": [error.as_dict() for error in exc.field_errors],
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Translate domain errors into JSON responses."""

    @app.exception_handler(NotFoundError)
    async def not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc), "entity": exc.entity, "id": exc.entity_id},
        )

    @app.exception_handler(BusinessRuleError)
    async def business_rule(_: Request, exc: BusinessRuleError) -> JSONResponse:
        return _field_error_response(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(FieldValidationError)
    async def field_validation(_: Request, exc: FieldValidationError) -> JSONResponse:
        return _field_error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)


@router.post("", response_model=schemas.Pathway, status_code=201)
async def create_pathway(
    data: schemas.CreatePathwayPayload,
    service: PathwayApplicationService = Depends(deps.get_pathway_service),
) -> schemas.Pathway:
    return await service.create_pathway(data)


@router.get("/{pathway_id}", response_model=schemas.PathwayWithOptions)
async def get_pathway(
    pathway_id: int,
    service: PathwayApplicationService = Depends(deps.get_pathway_service),
) -> schemas.PathwayWithOptions:
    return await service.find_pathway(pathway_id)


@router.patch("/{pathway_id}", response_model=schemas.Pathway)
async def update_pathway(
    pathway_id: int,
    data: schemas.UpdatePathwayPayload,
    service: PathwayApplicationService = Depends(deps.get_pathway_service),
) -> schemas.Pathway:
    return await service.update_pathway(pathway_id, data)


@router.get("/{pathway_id}/options", response_model=list[schemas.PathwayOption])
async def list_options(
    pathway_id: int,
    service: PathwayApplicationService = Depends(deps.get_pathway_service),
) -> list[schemas.PathwayOption]:
    return await service.list_pathway_options(pathway_id)


@router.post(
    "/{pathway_id}/options", response_model=schemas.PathwayWithOptions, status_code=201
)
async def add_option(
    pathway_id: int,
    data: schemas.AddPathwayOptionPayload,
    service: PathwayApplicationService = Depends(deps.get_pathway_service),
) -> schemas.PathwayWithOptions:
    return await service.add_option_to_pathway(pathway_id, data)


@router.put("/{pathway_id}/options", response_model=schemas.PathwayWithOptions)
async def bulk_sync_options(
    pathway_id: int,
    data: schemas.BulkSyncOptionsPayload,
    service: PathwayApplicationService = Depends(deps.get_pathway_service),
) -> schemas.PathwayWithOptions:
    return await service.bulk_sync_options(pathway_id, data)


@router.patch(
    "/{pathway_id}/options/{option_id}", response_model=schemas.PathwayWithOptions
)
async def update_option(
    pathway_id: int,
    option_id: int,
    data: schemas.UpdatePathwayOptionPayload,
    service: PathwayApplicationService = Depends(deps.get_pathway_service),
) -> schemas.PathwayWithOptions:
    return await service.update_pathway_option(pathway_id, option_id, data)


@router.delete(
    "/{pathway_id}/options/{option_id}", response_model=schemas.PathwayWithOptions
)
async def remove_option(
    pathway_id: int,
    option_id: int,
    service: PathwayApplicationService = Depends(deps.get_pathway_service),
) -> schemas.PathwayWithOptions:
    return await service.remove_option_from_pathway(pathway_id, option_id)


@router.put(
    "/{pathway_id}/options/{option_id}/default",
    response_model=schemas.PathwayWithOptions,
)
async def set_default_option(
    pathway_id: int,
    option_id: int,
    service: PathwayApplicationService = Depends(deps.get_pathway_service),
) -> schemas.PathwayWithOptions:
    return await service.set_default_option(pathway_id, option_id)


@router.get(
    "/{pathway_id}/options/{option_id}/tolls",
    response_model=list[schemas.PathwayOptionToll],
)
async def get_option_tolls(
    pathway_id: int,
    option_id: int,
    service: PathwayApplicationService = Depends(deps.get_pathway_service),
) -> list[schemas.PathwayOptionToll]:
    return await service.get_option_tolls(pathway_id, option_id)


@router.put(
    "/{pathway_id}/options/{option_id}/tolls",
    response_model=list[schemas.PathwayOptionToll],
)
async def sync_option_tolls(
    pathway_id: int,
    option_id: int,
    data: schemas.SyncTollsPayload,
    service: PathwayApplicationService = Depends(deps.get_pathway_service),
) -> list[schemas.PathwayOptionToll]:
    return await service.sync_option_tolls(pathway_id, option_id, data.tolls)
