import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from sqlalchemy import delete, desc, exists, func, insert, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from .config import PAGE_SIZE
from .database import Photo, Tag, User, Vote, photo_tags, session_scope
from .errors import AuthenticationFailed, Conflict, NotFound
from .permissions import get_permissions
from .schemas import PermissionsOut, PhotoDetailOut, PhotoList, PhotoOut, TagCount
from .search import compile_search, parse_query, ranked
from .security import DUMMY_HASH, hash_password, verify_password
from .utils import generate_recovery_code, get_offset, normalize_tags

logger = logging.getLogger(__name__)


def _insert_ignore(db, table, rows):
    """INSERT that silently skips rows violating a unique constraint."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(table).values(rows).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite_insert(table).values(rows).on_conflict_do_nothing()
    else:
        stmt = insert(table).values(rows).prefix_with("IGNORE")
    db.execute(stmt)


def sync_tags(db, photo_id: int, names: Set[str]):
    """
    Makes the photo's tag associations exactly `names` (already normalized).
    Runs inside the caller's transaction; the photo row is locked first so two
    syncs of the same photo cannot interleave. Raises NotFound when the photo
    is gone.
    """
    locked = db.execute(select(Photo.id).where(Photo.id == photo_id).with_for_update()).first()
    if locked is None:
        raise NotFound("Photo not found")

    if not names:
        db.execute(delete(photo_tags).where(photo_tags.c.photo_id == photo_id))
        return

    _insert_ignore(db, Tag.__table__, [{"name": name} for name in sorted(names)])
    tag_ids = db.scalars(select(Tag.id).where(Tag.name.in_(sorted(names)))).all()

    _insert_ignore(db, photo_tags, [{"photo_id": photo_id, "tag_id": tag_id} for tag_id in tag_ids])
    db.execute(
        delete(photo_tags).where(
            photo_tags.c.photo_id == photo_id,
            photo_tags.c.tag_id.not_in(tag_ids),
        )
    )


def get_tag_names(db, photo_id: int) -> List[str]:
    return sorted(db.scalars(
        select(Tag.name)
        .join(photo_tags, photo_tags.c.tag_id == Tag.id)
        .where(photo_tags.c.photo_id == photo_id)
    ).all())


class PhotoRepository:
    """Photo CRUD, listings and search. All list operations are paginated by PAGE_SIZE."""

    def __init__(self, session_factory, cleaner=None):
        self.session_factory = session_factory
        self.cleaner = cleaner

    def insert(self, photo: Photo, tags: Iterable[str] = ()) -> Photo:
        """Inserts the photo and its tags in one transaction."""
        names = normalize_tags(tags)
        with session_scope(self.session_factory) as db:
            db.add(photo)
            db.flush()
            sync_tags(db, photo.id, names)
        logger.debug("Inserted photo %s with tags %s", photo.id, sorted(names))
        return photo

    def update(self, photo: Photo):
        # Only editable columns; vote counters are owned by the VoteCoordinator.
        with session_scope(self.session_factory) as db:
            db.execute(update(Photo).where(Photo.id == photo.id).values(title=photo.title))

    def update_tags(self, photo_id: int, tags: Iterable[str]) -> List[str]:
        names = normalize_tags(tags)
        with session_scope(self.session_factory) as db:
            sync_tags(db, photo_id, names)
        return sorted(names)

    def delete(self, photo: Photo):
        with session_scope(self.session_factory) as db:
            db.execute(delete(photo_tags).where(photo_tags.c.photo_id == photo.id))
            db.execute(delete(Vote).where(Vote.photo_id == photo.id))
            db.execute(delete(Photo).where(Photo.id == photo.id))
        if self.cleaner is not None:
            self.cleaner.clean(photo.file_ref)

    def get(self, photo_id) -> Optional[Photo]:
        if not photo_id:
            return None
        with session_scope(self.session_factory) as db:
            return db.get(Photo, photo_id)

    def get_detail(self, photo_id, viewer: Optional[User] = None) -> Optional[PhotoDetailOut]:
        if not photo_id:
            return None
        with session_scope(self.session_factory) as db:
            row = db.execute(
                select(Photo, User.name)
                .join(User, User.id == Photo.owner_id)
                .where(Photo.id == photo_id)
            ).first()
            if row is None:
                return None
            photo, owner_name = row
            has_voted = viewer is not None and user_has_voted(db, viewer.id, photo.id)
            perms = get_permissions(photo, viewer, has_voted)
            return PhotoDetailOut(
                **PhotoOut.model_validate(photo).model_dump(),
                owner_name=owner_name,
                tags=get_tag_names(db, photo.id),
                permissions=PermissionsOut(**perms.to_dict()),
            )

    def _page(self, db, page: int, count_stmt, page_stmt) -> PhotoList:
        total = db.scalar(count_stmt)
        photos = db.scalars(page_stmt.limit(PAGE_SIZE).offset(get_offset(page))).all()
        return PhotoList.build(photos, total, page)

    def all(self, page: int = 1, order_by: str = "") -> PhotoList:
        """Lists every photo, by score when order_by is "votes", otherwise newest first."""
        if order_by == "votes":
            page_stmt = ranked(select(Photo))
        else:
            page_stmt = select(Photo).order_by(desc(Photo.created_at), desc(Photo.id))
        with session_scope(self.session_factory) as db:
            return self._page(db, page, select(func.count(Photo.id)), page_stmt)

    def by_owner(self, page: int, owner_id) -> Optional[PhotoList]:
        if not owner_id:
            return None
        with session_scope(self.session_factory) as db:
            return self._page(
                db, page,
                select(func.count(Photo.id)).where(Photo.owner_id == owner_id),
                ranked(select(Photo).where(Photo.owner_id == owner_id)),
            )

    def search(self, page: int, q: str) -> Optional[PhotoList]:
        """Returns None when there is nothing to search for."""
        predicates = parse_query(q)
        if not predicates:
            return None
        count_stmt, page_stmt = compile_search(predicates)
        with session_scope(self.session_factory) as db:
            return self._page(db, page, count_stmt, page_stmt)

    def get_tag_counts(self) -> List[TagCount]:
        """Per tag in use: its name, the newest photo carrying it, and how many photos do."""
        counts = (
            select(
                photo_tags.c.tag_id,
                func.count(photo_tags.c.photo_id).label("num_photos"),
                func.max(photo_tags.c.photo_id).label("photo_id"),
            )
            .group_by(photo_tags.c.tag_id)
            .subquery()
        )
        stmt = (
            select(Tag.name, Photo.file_ref, counts.c.num_photos)
            .select_from(Tag)
            .join(counts, counts.c.tag_id == Tag.id)
            .join(Photo, Photo.id == counts.c.photo_id)
            .order_by(Tag.name)
        )
        with session_scope(self.session_factory) as db:
            return [
                TagCount(name=name, file_ref=file_ref, num_photos=num_photos)
                for name, file_ref, num_photos in db.execute(stmt)
            ]


def user_has_voted(db, user_id: int, photo_id: int) -> bool:
    return db.scalar(
        select(exists().where(Vote.user_id == user_id, Vote.photo_id == photo_id))
    )


class UserRepository:

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def insert(self, user: User, password: str) -> User:
        user.password_hash = hash_password(password)
        user.is_active = True
        user.created_at = datetime.now(timezone.utc)
        with session_scope(self.session_factory) as db:
            db.add(user)
            try:
                db.flush()
            except IntegrityError as e:
                raise Conflict("Name or email already taken") from e
        return user

    def update(self, user: User) -> User:
        with session_scope(self.session_factory) as db:
            merged = db.merge(user)
            try:
                db.flush()
            except IntegrityError as e:
                raise Conflict("Name or email already taken") from e
        return merged

    def change_password(self, user: User, password: str) -> User:
        user.password_hash = hash_password(password)
        user.recovery_code = None
        return self.update(user)

    def create_recovery_code(self, user: User) -> str:
        user.recovery_code = generate_recovery_code()
        self.update(user)
        return user.recovery_code

    def _is_available(self, column, value, user_id) -> bool:
        stmt = select(func.count(User.id)).where(column == value)
        if user_id:
            stmt = stmt.where(User.id != user_id)
        with session_scope(self.session_factory) as db:
            return db.scalar(stmt) == 0

    def is_name_available(self, name: str, user_id=None) -> bool:
        return self._is_available(User.name, name, user_id)

    def is_email_available(self, email: str, user_id=None) -> bool:
        return self._is_available(User.email, email, user_id)

    def _get_active(self, *criteria) -> Optional[User]:
        with session_scope(self.session_factory) as db:
            return db.scalars(select(User).where(User.is_active.is_(True), *criteria)).first()

    def get_active(self, user_id) -> Optional[User]:
        if not user_id:
            return None
        return self._get_active(User.id == user_id)

    def get_by_recovery_code(self, code: str) -> Optional[User]:
        if not code:
            return None
        return self._get_active(User.recovery_code == code)

    def get_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        return self._get_active(User.email == email)

    def authenticate(self, identifier: str, password: str) -> User:
        """
        Finds the active user whose name or email is `identifier` and checks the
        password. Every failure raises the same AuthenticationFailed.
        """
        user = None
        if identifier:
            user = self._get_active(or_(User.email == identifier, User.name == identifier))
        if user is None:
            verify_password(DUMMY_HASH, password or "")
            raise AuthenticationFailed()
        if not verify_password(user.password_hash, password or ""):
            raise AuthenticationFailed()
        return user

    def has_voted(self, user_id: int, photo_id: int) -> bool:
        with session_scope(self.session_factory) as db:
            return user_has_voted(db, user_id, photo_id)

    def get_vote_set(self, user_id: int) -> Set[int]:
        with session_scope(self.session_factory) as db:
            return set(db.scalars(select(Vote.photo_id).where(Vote.user_id == user_id)))
