from app.api.v1.endpoints.schedule.common import *

router = APIRouter()


@router.post(
    "/schedules",
    response_model=ClassSchedule,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_admin_api_key)]
)
async def create_schedule(
    schedule_in: ClassScheduleCreate,
    db: Session = Depends(get_db)
) -> Any:
    """
    Create a Weekly Class Schedule

    Defines a recurring weekly slot (class, day of week, start/end time,
    maximum capacity). Occurrences for concrete dates are created from it.

    Args:
        schedule_in (ClassScheduleCreate): Schedule definition.
        db (Session, optional): Database session dependency.

    Permissions:
        - Requires a valid admin API key (X-API-Key).

    Returns:
        ClassSchedule: The created schedule.
    """
    return class_schedule_service.create_schedule(db, schedule_in)


@router.get("/schedules", response_model=List[ClassSchedule])
async def list_schedules(
    day_of_week: Optional[int] = Query(None, ge=0, le=6, description="0=Monday ... 6=Sunday"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
    db: Session = Depends(get_db)
) -> Any:
    """
    List Active Class Schedules

    Args:
        day_of_week (int, optional): Only schedules for this weekday.
        skip (int): Pagination offset.
        limit (int): Page size.

    Returns:
        List[ClassSchedule]: Active schedules ordered by weekday and start time.
    """
    return class_schedule_service.list_schedules(db, day_of_week=day_of_week, skip=skip, limit=limit)


@router.post("/schedules/{schedule_id}/occurrences", response_model=ClassOccurrence)
async def resolve_occurrence(
    schedule_id: int = Path(..., description="ID of the schedule"),
    payload: ClassOccurrenceResolve = Body(...),
    db: Session = Depends(get_db),
    member_id: int = Depends(get_current_member_id)
) -> Any:
    """
    Resolve the Occurrence of a Schedule on a Date

    Returns the class occurrence for (schedule, date), creating it on first
    use. Its ID is what booking and waitlist endpoints work with.

    Args:
        schedule_id (int): The schedule ID.
        payload (ClassOccurrenceResolve): The calendar date of the class.

    Returns:
        ClassOccurrence: The existing or newly created occurrence.

    Raises:
        404: Schedule not found or inactive.
        400: The date does not fall on the schedule's weekday.
    """
    return class_schedule_service.resolve_occurrence(db, schedule_id, payload.class_date)
