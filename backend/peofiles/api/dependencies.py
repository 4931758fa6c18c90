from fastapi import Request
from peofiles.services.file_service import FileService


def get_file_service(request: Request) -> FileService:
    """
    Dependency for getting the file service.

    The service is built once in the app lifespan and shared by every
    request, so auto-delete timers outlive the request that started them.
    """
    return request.app.state.file_service
