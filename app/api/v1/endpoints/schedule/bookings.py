from app.api.v1.endpoints.schedule.common import *

router = APIRouter()


@router.post(
    "/occurrences/{occurrence_id}/bookings",
    response_model=Booking,
    status_code=status.HTTP_201_CREATED
)
async def book_class(
    background_tasks: BackgroundTasks,
    occurrence_id: int = Path(..., description="ID of the class occurrence"),
    db: Session = Depends(get_db),
    member_id: int = Depends(get_current_member_id),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Book a Class Occurrence

    Creates a confirmed booking for the current member. A member holding an
    open waitlist offer uses the seat reserved for them; the offer is consumed.

    Args:
        occurrence_id (int): The occurrence to book.
        member_id (int): Current member, from the X-Member-ID header.

    Returns:
        Booking: The confirmed booking.

    Raises:
        409 class_full: No seat available.
        409 already_booked: The member already has an active booking.
        409 offer_expired: The member's waitlist offer deadline has passed.
        409 time_conflict: Overlaps another confirmed booking of the member.
        400 class_cancelled / class_already_started.
        404: Occurrence not found.
    """
    return await booking_service.book_class(
        db, occurrence_id, member_id, redis_client=redis_client, background_tasks=background_tasks
    )


@router.post("/bookings/{booking_id}/cancel", response_model=Booking)
async def cancel_booking(
    background_tasks: BackgroundTasks,
    booking_id: int = Path(..., description="ID of the booking"),
    payload: Optional[BookingCancelRequest] = Body(None),
    db: Session = Depends(get_db),
    member_id: int = Depends(get_current_member_id),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Cancel One of the Current Member's Bookings

    Cancelling a confirmed booking frees the seat and offers it to the head
    of the waitlist. Cancelling an already cancelled booking is a no-op.

    Raises:
        404: Booking not found or not owned by the member.
    """
    return await booking_service.cancel_booking(
        db, booking_id, member_id, reason=payload.reason if payload else None, redis_client=redis_client,
        background_tasks=background_tasks
    )


@router.get("/bookings/me", response_model=List[BookingWithOccurrence])
async def read_my_bookings(
    upcoming_only: bool = Query(True, description="Only bookings from today onwards"),
    include_cancelled: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
    db: Session = Depends(get_db),
    member_id: int = Depends(get_current_member_id)
) -> Any:
    """
    List the Current Member's Bookings

    Returns:
        List[BookingWithOccurrence]: Bookings ordered by class date and time.
    """
    return booking_service.get_member_bookings(
        db,
        member_id,
        upcoming_only=upcoming_only,
        include_cancelled=include_cancelled,
        skip=skip,
        limit=limit,
    )
