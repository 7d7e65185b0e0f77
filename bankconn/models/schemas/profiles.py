"""
Pydantic schemas for bank connectivity profiles.

Profile config is a discriminated union on ``kind``. Required-field presence
is checked by the profile store first so a single error can name every
missing field; these models then validate field types.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from bankconn.models.db.enums import ChannelKind

class SftpConfig(BaseModel):
    kind: Literal["SFTP"] = "SFTP"
    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    username: str = Field(min_length=1)
    key_ref: str = Field(min_length=1, description="Reference to the private key in the secret store, never the key itself")
    in_dir: str = Field(min_length=1, description="Remote directory the bank writes status files to")
    out_dir: str = Field(min_length=1, description="Remote directory payment files are uploaded to")
    host_key_fingerprint: Optional[str] = Field(None, description="SHA256:... fingerprint of the bank's host key")

    model_config = ConfigDict(extra="allow")

class ApiConfig(BaseModel):
    kind: Literal["API"] = "API"
    api_base: str = Field(min_length=1)
    auth_ref: str = Field(min_length=1, description="Reference to the bearer credential in the secret store")

    model_config = ConfigDict(extra="allow")

ProfileConfig = Annotated[Union[SftpConfig, ApiConfig], Field(discriminator="kind")]

REQUIRED_CONFIG_FIELDS: Dict[ChannelKind, frozenset[str]] = {
    ChannelKind.SFTP: frozenset({"host", "port", "username", "key_ref", "in_dir", "out_dir"}),
    ChannelKind.API: frozenset({"api_base", "auth_ref"}),
}

class ProfileUpsert(BaseModel):
    bank_code: str = Field(min_length=1, max_length=64)
    kind: ChannelKind
    # Left as a plain mapping so missing keys surface as a ConfigValidation error
    config: Dict[str, Any]
    active: bool = True

class ProfileRead(BaseModel):
    company_id: str
    bank_code: str
    kind: ChannelKind
    config: Dict[str, Any]
    active: bool
    updated_by: str
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class ProfileList(BaseModel):
    profiles: List[ProfileRead]
