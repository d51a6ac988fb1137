import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from .database import Photo, User
from .errors import Forbidden, NotFound, Unauthorized
from .permissions import can_edit
from .repositories import PhotoRepository, UserRepository
from .schemas import (
    ChangePasswordRequest,
    EditTitleRequest,
    LoginRequest,
    RecoverPasswordRequest,
    SignupRequest,
    UpdateTagsRequest,
    UserOut,
)
from .storage import FileStorage, is_allowed_content_type
from .utils import parse_id
from .validators import validate_password, validate_photo, validate_user
from .votes import VoteCoordinator, VoteDirection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# --- Dependencies ---
# Repositories are built once by create_app() and kept on app.state.

def get_photos(request: Request) -> PhotoRepository:
    return request.app.state.photos


def get_users(request: Request) -> UserRepository:
    return request.app.state.users


def get_votes(request: Request) -> VoteCoordinator:
    return request.app.state.votes


def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage


def get_current_user(request: Request, users: UserRepository = Depends(get_users)) -> Optional[User]:
    return users.get_active(request.session.get("user_id"))


def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if user is None:
        raise Unauthorized()
    return user


def get_photo_to_edit(photo_id: str, user: User = Depends(require_user),
                      photos: PhotoRepository = Depends(get_photos)) -> Photo:
    photo = photos.get(parse_id(photo_id))
    if photo is None:
        raise NotFound("Photo not found")
    if not can_edit(photo, user):
        raise Forbidden()
    return photo


def invalid(result):
    return JSONResponse(result.to_dict(), status_code=400)


# --- Photo Endpoints ---

@router.get("/photos/")
def list_photos(page: int = Query(1), order_by: str = Query("", alias="orderBy"),
                photos: PhotoRepository = Depends(get_photos)):
    return photos.all(page, order_by).to_json()


@router.get("/photos/search")
def search_photos(q: str = Query(""), page: int = Query(1), photos: PhotoRepository = Depends(get_photos)):
    result = photos.search(page, q)
    # An empty query is not a search, so there is no listing to return.
    return result.to_json() if result is not None else None


@router.get("/photos/owner/{owner_id}")
def photos_by_owner(owner_id: str, page: int = Query(1), photos: PhotoRepository = Depends(get_photos)):
    result = photos.by_owner(page, parse_id(owner_id))
    if result is None:
        raise NotFound()
    return result.to_json()


@router.get("/photos/{photo_id}")
def photo_detail(photo_id: str, user: Optional[User] = Depends(get_current_user),
                 photos: PhotoRepository = Depends(get_photos)):
    detail = photos.get_detail(parse_id(photo_id), user)
    if detail is None:
        raise NotFound("Photo not found")
    return detail.to_json()


@router.post("/photos/")
def upload(
    title: str = Form(""),
    taglist: str = Form(""),
    photo: Optional[UploadFile] = File(None),
    user: User = Depends(require_user),
    photos: PhotoRepository = Depends(get_photos),
    storage: FileStorage = Depends(get_storage),
):
    if photo is None or not is_allowed_content_type(photo.content_type):
        return JSONResponse("No image was posted", status_code=400)

    result = validate_photo(title)
    if not result.ok:
        return invalid(result)

    try:
        filename = storage.store_uploaded_file(photo.file, photo.content_type)
    finally:
        photo.file.close()

    new_photo = Photo(title=title.strip(), owner_id=user.id, file_ref=filename)
    try:
        photos.insert(new_photo, taglist.split(" "))
    except Exception:
        storage.remove(filename)
        raise
    return photos.get_detail(new_photo.id, user).to_json()


@router.patch("/photos/{photo_id}/title")
def edit_photo_title(request: EditTitleRequest, photo: Photo = Depends(get_photo_to_edit),
                     photos: PhotoRepository = Depends(get_photos)):
    result = validate_photo(request.title)
    if not result.ok:
        return invalid(result)
    photo.title = request.title.strip()
    photos.update(photo)
    return {"message": "Photo updated"}


@router.patch("/photos/{photo_id}/tags")
def edit_photo_tags(request: UpdateTagsRequest, photo: Photo = Depends(get_photo_to_edit),
                    photos: PhotoRepository = Depends(get_photos)):
    tags = photos.update_tags(photo.id, request.tags)
    return {"message": "Tags updated", "tags": tags}


@router.delete("/photos/{photo_id}")
def delete_photo(photo: Photo = Depends(get_photo_to_edit), photos: PhotoRepository = Depends(get_photos)):
    photos.delete(photo)
    return {"message": f"Photo {photo.id} deleted"}


def _vote(photo_id: str, user: User, photos: PhotoRepository, votes: VoteCoordinator, direction):
    photo = photos.get(parse_id(photo_id))
    if photo is None:
        raise NotFound("Photo not found")
    photo = votes.register_vote(photo, user, direction)
    return {"upVotes": photo.up_votes, "downVotes": photo.down_votes}


@router.patch("/photos/{photo_id}/upvote")
def vote_up(photo_id: str, user: User = Depends(require_user), photos: PhotoRepository = Depends(get_photos),
            votes: VoteCoordinator = Depends(get_votes)):
    return _vote(photo_id, user, photos, votes, VoteDirection.UP)


@router.patch("/photos/{photo_id}/downvote")
def vote_down(photo_id: str, user: User = Depends(require_user), photos: PhotoRepository = Depends(get_photos),
              votes: VoteCoordinator = Depends(get_votes)):
    return _vote(photo_id, user, photos, votes, VoteDirection.DOWN)


@router.get("/tags/")
def tag_counts(photos: PhotoRepository = Depends(get_photos)):
    return [tag.to_json() for tag in photos.get_tag_counts()]


# --- Auth and User Endpoints ---

@router.get("/auth/")
def current_user(user: Optional[User] = Depends(get_current_user)):
    if user is None:
        return {"isAuthenticated": False}
    return UserOut.model_validate(user).to_json()


@router.post("/auth/")
def login(request: Request, body: LoginRequest, users: UserRepository = Depends(get_users)):
    user = users.authenticate(body.identifier, body.password)
    request.session["user_id"] = user.id
    return UserOut.model_validate(user).to_json()


@router.delete("/auth/")
def logout(request: Request):
    request.session.clear()
    return {"isAuthenticated": False}


@router.post("/user/")
def signup(request: Request, body: SignupRequest, users: UserRepository = Depends(get_users)):
    result = validate_user(users, body.name, body.email, body.password)
    if not result.ok:
        return invalid(result)
    user = users.insert(User(name=body.name.strip(), email=body.email.strip()), body.password)
    request.session["user_id"] = user.id
    return JSONResponse(UserOut.model_validate(user).to_json(), status_code=201)


@router.put("/auth/recoverpass")
def recover_password(body: RecoverPasswordRequest, users: UserRepository = Depends(get_users)):
    user = users.get_by_email(body.email)
    if user is None:
        raise NotFound("No user found for this email address")
    users.create_recovery_code(user)
    # Delivery of the code (email) belongs to the mailer, outside this service.
    logger.info("Recovery code issued for user %s", user.id)
    return {"message": "Recovery code issued"}


@router.put("/auth/changepass")
def change_password(request: Request, body: ChangePasswordRequest,
                    user: Optional[User] = Depends(get_current_user),
                    users: UserRepository = Depends(get_users)):
    if body.code:
        user = users.get_by_recovery_code(body.code)
        if user is None:
            raise NotFound("Invalid recovery code")
    elif user is None:
        raise Unauthorized()

    result = validate_password(body.password)
    if not result.ok:
        return invalid(result)
    users.change_password(user, body.password)
    request.session["user_id"] = user.id
    return {"message": "Password changed"}
