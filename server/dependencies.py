"""FastAPI Dependencies

Access to the process-wide calendar service stored on app state.
"""

from fastapi import Request

from server.services.calendar import CalendarService


def get_calendar_service(request: Request) -> CalendarService:
    """Dependency to get the shared CalendarService from app state

    Usage in routes:
        @router.get("/endpoint")
        async def endpoint(service: CalendarService = Depends(get_calendar_service)):
            return await service.get_events()

    Tests override this with app.dependency_overrides.
    """
    return request.app.state.calendar_service
