from typing import List
from fastapi import APIRouter, Depends
from peofiles.api.dependencies import get_file_service
from peofiles.core.offices import Office, list_offices
from peofiles.services.file_service import FileService, OfficeSummary

router = APIRouter(tags=["offices"])


@router.get("/offices", response_model=List[Office])
def get_offices():
    """The fixed list of PEO offices with their display names"""
    return list_offices()


@router.get("/summary", response_model=List[OfficeSummary])
def get_summary(service: FileService = Depends(get_file_service)):
    """File count per office, in dashboard order"""
    return service.office_summary()
