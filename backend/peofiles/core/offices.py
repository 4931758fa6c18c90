from typing import Optional
from pydantic import BaseModel
from peofiles.core.errors import ValidationFault


class Office(BaseModel):
    code: str
    displayName: str


# Fixed set of field offices - order is the dashboard order
OFFICES: list[Office] = [
    Office(code="butuan", displayName="PEO BUTUAN"),
    Office(code="sanfrancisco", displayName="PEO SAN FRANCISCO"),
    Office(code="surigao", displayName="PEO SURIGAO"),
    Office(code="tandag", displayName="PEO TANDAG"),
    Office(code="valencia", displayName="PEO VALENCIA"),
]

_OFFICES_BY_CODE = {office.code: office for office in OFFICES}


def list_offices() -> list[Office]:
    return list(OFFICES)


def get_office(code: Optional[str]) -> Optional[Office]:
    if not code:
        return None
    return _OFFICES_BY_CODE.get(code)


def require_office(code: Optional[str]) -> Office:
    """Return the office for code or raise ValidationFault if it is not a known office"""
    office = get_office(code)
    if office is None:
        raise ValidationFault(f"Unknown PEO office: {code!r}")
    return office
