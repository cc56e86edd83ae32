"""Google Drive API types used for sharing.

Only the permission resource is modelled; livesheet never touches file
content through Drive.
"""

from __future__ import annotations

import sys

if sys.version_info >= (3, 11):
    from enum import StrEnum
else:
    from enum import Enum

    class StrEnum(str, Enum):
        """Backport of StrEnum for Python 3.10."""

        pass


from pydantic import BaseModel, ConfigDict, Field

PERMISSION_FIELDS = (
    "permissions(id,type,emailAddress,domain,role,displayName,photoLink,deleted)"
)


class PermissionRole(StrEnum):
    """Roles that can be granted on a file."""

    OWNER = "owner"
    ORGANIZER = "organizer"
    FILE_ORGANIZER = "fileOrganizer"
    WRITER = "writer"
    COMMENTER = "commenter"
    READER = "reader"


class PermissionType(StrEnum):
    """Who a permission is granted to."""

    USER = "user"
    GROUP = "group"
    DOMAIN = "domain"
    ANYONE = "anyone"


class Permission(BaseModel):
    """A permission for a file."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str | None = Field(None)
    type: PermissionType | None = Field(None)
    role: PermissionRole | None = Field(None)
    email_address: str | None = Field(None, alias="emailAddress")
    domain: str | None = Field(None)
    display_name: str | None = Field(None, alias="displayName")
    photo_link: str | None = Field(None, alias="photoLink")
    deleted: bool | None = Field(None)
