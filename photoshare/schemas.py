from datetime import datetime
from typing import List, Optional

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .utils import count_pages


class Schema(BaseModel):
    """Populated from ORM objects by attribute name, dumped with camelCase keys."""
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )

    def to_json(self):
        return self.model_dump(mode="json", by_alias=True)


# --- Response Models ---

class PhotoOut(Schema):
    id: int
    owner_id: int
    created_at: datetime
    title: str
    file_ref: str = Field(serialization_alias="photo")
    up_votes: int
    down_votes: int


class PermissionsOut(Schema):
    edit: bool = False
    delete: bool = False
    vote: bool = False


class PhotoDetailOut(PhotoOut):
    owner_name: str
    tags: List[str] = []
    permissions: PermissionsOut = Field(serialization_alias="perms")


class PhotoList(Schema):
    items: List[PhotoOut]
    total: int
    current_page: int
    num_pages: int

    @classmethod
    def build(cls, photos, total: int, page: int):
        return cls(
            items=[PhotoOut.model_validate(p) for p in photos],
            total=total,
            current_page=page,
            num_pages=count_pages(total),
        )


class TagCount(Schema):
    name: str
    file_ref: str = Field(serialization_alias="photo")
    num_photos: int


class UserOut(Schema):
    id: int
    name: str
    email: str
    created_at: datetime
    is_admin: bool
    is_active: bool
    is_authenticated: bool = True


# --- Request Models ---

class EditTitleRequest(BaseModel):
    title: str = ""


class UpdateTagsRequest(BaseModel):
    tags: List[str] = []


class LoginRequest(BaseModel):
    identifier: str
    password: str


class SignupRequest(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""


class RecoverPasswordRequest(BaseModel):
    email: str


class ChangePasswordRequest(BaseModel):
    password: str = ""
    code: Optional[str] = None
