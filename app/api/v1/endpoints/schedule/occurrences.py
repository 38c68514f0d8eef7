from app.api.v1.endpoints.schedule.common import *

router = APIRouter()


@router.get("/occurrences/{occurrence_id}", response_model=ClassOccurrence)
async def read_occurrence(
    occurrence_id: int = Path(..., description="ID of the class occurrence"),
    db: Session = Depends(get_db)
) -> Any:
    """
    Get a Class Occurrence

    Raises:
        404: Occurrence not found.
    """
    return class_schedule_service.get_occurrence(db, occurrence_id)


@router.get("/occurrences/{occurrence_id}/availability", response_model=OccurrenceAvailability)
async def read_availability(
    background_tasks: BackgroundTasks,
    occurrence_id: int = Path(..., description="ID of the class occurrence"),
    db: Session = Depends(get_db),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Get Seat Availability for an Occurrence

    Returns capacity, confirmed bookings, seats held by outstanding waitlist
    offers, free seats and the number of members waiting.

    Raises:
        404: Occurrence not found.
    """
    return await class_schedule_service.get_availability(
        db, occurrence_id, redis_client=redis_client, background_tasks=background_tasks
    )


@router.post(
    "/occurrences/{occurrence_id}/cancel",
    response_model=OccurrenceCancellationResult,
    dependencies=[Depends(verify_admin_api_key)]
)
async def cancel_occurrence(
    background_tasks: BackgroundTasks,
    occurrence_id: int = Path(..., description="ID of the class occurrence"),
    payload: Optional[OccurrenceCancelRequest] = Body(None),
    db: Session = Depends(get_db),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Cancel a Class Occurrence

    Marks the occurrence as cancelled, closes every open waitlist entry and
    notifies all members holding an active booking (with the optional reason).
    In-app notices are stored before responding; emails and pushes are sent
    as background tasks after the response.

    Permissions:
        - Requires a valid admin API key (X-API-Key).

    Returns:
        OccurrenceCancellationResult: Members notified and waitlist entries closed.

    Raises:
        404: Occurrence not found.
    """
    return await class_schedule_service.cancel_occurrence(
        db, occurrence_id, reason=payload.reason if payload else None, redis_client=redis_client,
        background_tasks=background_tasks
    )
