"""
Bank connectivity profile endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from bankconn.api.deps import CallerContext, get_caller, get_db
from bankconn.models.schemas.base import ResponseBase
from bankconn.models.schemas.profiles import ProfileList, ProfileRead, ProfileUpsert
from bankconn.services.profile_store import get_profile, list_profiles, upsert_profile
from bankconn.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "",
    response_model=ResponseBase,
    status_code=status.HTTP_201_CREATED,
    summary="Create or replace a bank connectivity profile"
)
async def upsert_profile_endpoint(
    body: ProfileUpsert,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ResponseBase:
    """Validate the config against its channel kind and store it.

    Missing required fields are reported together with a 422; nothing is
    written in that case.
    """
    logger.info(
        "Profile upsert requested",
        company_id=caller.company_id,
        bank_code=body.bank_code,
        kind=body.kind.value,
        request_id=caller.request_id
    )
    profile = upsert_profile(
        db,
        caller.company_id,
        body.bank_code,
        body.kind,
        body.config,
        body.active,
        caller.actor,
    )
    return ResponseBase(
        message=f"Profile {profile.bank_code} saved",
        data=ProfileRead.model_validate(profile).model_dump(mode="json"),
    )

@router.get(
    "",
    response_model=ProfileList,
    summary="List bank connectivity profiles"
)
async def list_profiles_endpoint(
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ProfileList:
    profiles = list_profiles(db, caller.company_id)
    return ProfileList(profiles=[ProfileRead.model_validate(p) for p in profiles])

@router.get(
    "/{bank_code}",
    response_model=ProfileRead,
    summary="Get one bank connectivity profile"
)
async def get_profile_endpoint(
    bank_code: str,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ProfileRead:
    profile = get_profile(db, caller.company_id, bank_code)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Bank profile not found: {bank_code}")
    return ProfileRead.model_validate(profile)
