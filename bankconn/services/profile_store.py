"""Per-company bank connectivity profiles.

A profile names the channel kind (SFTP or API) and the parameters needed to
reach the bank. Configs are validated against their kind before anything is
written; credentials are stored as references, never inline.
"""
from __future__ import annotations

from typing import Any, Mapping

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from bankconn.exceptions import ConfigValidation, ProfileUnavailable
from bankconn.models.db import ConnectivityProfile, ChannelKind
from bankconn.models.schemas.profiles import ProfileConfig, REQUIRED_CONFIG_FIELDS
from bankconn.utils import get_logger, log_business_event
from bankconn.utils.time import utc_now

logger = get_logger(__name__)

_config_adapter: TypeAdapter = TypeAdapter(ProfileConfig)


def validate_config(kind: ChannelKind | str, config: Mapping[str, Any]) -> dict[str, Any]:
    """Return the normalised config for ``kind`` or raise ConfigValidation.

    Every missing required field is named in a single error. Field type
    problems (a non-numeric port) are reported afterwards with the same
    error type.
    """
    kind = ChannelKind(kind)
    present = {k for k, v in config.items() if v is not None and v != ""}
    missing = REQUIRED_CONFIG_FIELDS[kind] - present
    if missing:
        raise ConfigValidation(kind.value, missing)
    try:
        model = _config_adapter.validate_python({**config, "kind": kind.value})
    except ValidationError as exc:
        bad = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
        raise ConfigValidation(kind.value, bad, message=f"{kind.value} config has invalid fields: {', '.join(bad)}") from exc
    normalised = model.model_dump(exclude_none=True)
    normalised.pop("kind", None)
    return normalised


def upsert_profile(
    session: Session,
    company_id: str,
    bank_code: str,
    kind: ChannelKind | str,
    config: Mapping[str, Any],
    active: bool,
    actor: str,
) -> ConnectivityProfile:
    kind = ChannelKind(kind)
    normalised = validate_config(kind, config)

    profile = session.get(ConnectivityProfile, (company_id, bank_code))
    created = profile is None
    if profile is None:
        profile = ConnectivityProfile(company_id=company_id, bank_code=bank_code)
        session.add(profile)
    profile.kind = kind
    profile.config = normalised
    profile.active = active
    profile.updated_by = actor
    profile.updated_at = utc_now()
    session.commit()
    session.refresh(profile)

    logger.info(
        "Connectivity profile saved",
        company_id=company_id,
        bank_code=bank_code,
        kind=kind.value,
        active=active,
        created=created,
    )
    log_business_event(
        "bank_profile_upserted",
        {"bank_code": bank_code, "kind": kind.value, "active": active, "created": created, "actor": actor},
        company_id=company_id,
    )
    return profile


def get_profile(session: Session, company_id: str, bank_code: str) -> ConnectivityProfile | None:
    return session.get(ConnectivityProfile, (company_id, bank_code))


def list_profiles(session: Session, company_id: str) -> list[ConnectivityProfile]:
    stmt = (
        select(ConnectivityProfile)
        .where(ConnectivityProfile.company_id == company_id)
        .order_by(ConnectivityProfile.bank_code)
    )
    return list(session.scalars(stmt))


def require_active_profile(session: Session, company_id: str, bank_code: str) -> ConnectivityProfile:
    profile = get_profile(session, company_id, bank_code)
    if profile is None:
        raise ProfileUnavailable(bank_code, reason="not found")
    if not profile.active:
        raise ProfileUnavailable(bank_code, reason="inactive")
    return profile


__all__ = ["validate_config", "upsert_profile", "get_profile", "list_profiles", "require_active_profile"]
