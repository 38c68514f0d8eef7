from app.api.v1.endpoints.schedule.common import *

router = APIRouter()


@router.post(
    "/occurrences/{occurrence_id}/waitlist",
    response_model=WaitlistJoinResponse,
    status_code=status.HTTP_201_CREATED
)
async def join_waitlist(
    background_tasks: BackgroundTasks,
    occurrence_id: int = Path(..., description="ID of the class occurrence"),
    db: Session = Depends(get_db),
    member_id: int = Depends(get_current_member_id),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Join the Waitlist of a Full Class

    Appends the current member to the end of the queue and notifies them of
    their position.

    Returns:
        WaitlistJoinResponse: The new entry and its displayed rank.

    Raises:
        409 already_booked: The member already has an active booking.
        409 already_waitlisted: The member is already waiting or holds an offer.
        400 class_not_full: Seats are available; book directly instead.
        400 class_cancelled: The occurrence was cancelled.
        404: Occurrence not found.
    """
    entry, rank = await waitlist_service.join_waitlist(
        db, occurrence_id, member_id, redis_client=redis_client, background_tasks=background_tasks
    )
    return WaitlistJoinResponse(**WaitlistEntry.model_validate(entry).model_dump(), rank=rank)


@router.delete("/waitlist/{entry_id}", response_model=WaitlistEntry)
async def leave_waitlist(
    background_tasks: BackgroundTasks,
    entry_id: int = Path(..., description="ID of the waitlist entry"),
    db: Session = Depends(get_db),
    member_id: int = Depends(get_current_member_id),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Leave the Waitlist (or Decline an Offer)

    Idempotent: leaving an entry that is already closed returns it unchanged.
    Declining an open offer passes the seat to the next member in line.

    Raises:
        404: Entry not found or not owned by the member.
    """
    return await waitlist_service.leave_waitlist(
        db, entry_id, member_id, redis_client=redis_client, background_tasks=background_tasks
    )


@router.get("/occurrences/{occurrence_id}/waitlist/me", response_model=Optional[WaitlistStatusResponse])
async def read_my_waitlist_status(
    background_tasks: BackgroundTasks,
    occurrence_id: int = Path(..., description="ID of the class occurrence"),
    db: Session = Depends(get_db),
    member_id: int = Depends(get_current_member_id),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Get the Current Member's Waitlist Status

    Returns:
        WaitlistStatusResponse | null: State, displayed rank (while waiting)
        and offer deadline (while notified); null when not on the waitlist.
    """
    return await waitlist_service.get_status(
        db, occurrence_id, member_id, redis_client=redis_client, background_tasks=background_tasks
    )


@router.get("/occurrences/{occurrence_id}/waitlist/count", response_model=WaitlistCountResponse)
async def read_waiting_count(
    occurrence_id: int = Path(..., description="ID of the class occurrence"),
    db: Session = Depends(get_db),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Count Members Waiting for an Occurrence

    Only entries still waiting are counted; members holding an offer are not.
    """
    count = await waitlist_service.get_waiting_count(db, occurrence_id, redis_client=redis_client)
    return WaitlistCountResponse(occurrence_id=occurrence_id, waiting_count=count)


@router.get(
    "/occurrences/{occurrence_id}/waitlist",
    response_model=List[WaitlistEntry],
    dependencies=[Depends(verify_admin_api_key)]
)
async def read_waitlist(
    occurrence_id: int = Path(..., description="ID of the class occurrence"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db)
) -> Any:
    """
    List Every Waitlist Entry of an Occurrence

    All statuses, ordered by queue position.

    Permissions:
        - Requires a valid admin API key (X-API-Key).
    """
    return waitlist_service.list_entries(db, occurrence_id, skip=skip, limit=limit)
