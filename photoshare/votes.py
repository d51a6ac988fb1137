import enum
import logging

from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError

from .database import Photo, Vote, session_scope
from .errors import AlreadyVoted, Forbidden, NotFound, Unauthorized
from .repositories import user_has_voted

logger = logging.getLogger(__name__)


class VoteDirection(str, enum.Enum):
    UP = "up"
    DOWN = "down"


class VoteCoordinator:
    """
    Registers votes so that each (user, photo) pair counts at most once.

    The vote pairing row is inserted before the counter is touched, in the same
    transaction. The pairing's primary key makes the store reject a second
    concurrent attempt, which is rolled back and reported as AlreadyVoted.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def register_vote(self, photo, user, direction) -> Photo:
        direction = VoteDirection(direction)
        if user is None:
            raise Unauthorized()

        with session_scope(self.session_factory) as db:
            current = db.get(Photo, photo.id)
            if current is None:
                raise NotFound("Photo not found")
            if current.owner_id == user.id:
                raise Forbidden("You cannot vote on your own photo")
            if user_has_voted(db, user.id, current.id):
                raise AlreadyVoted()

            try:
                db.execute(insert(Vote).values(user_id=user.id, photo_id=current.id))
            except IntegrityError as e:
                raise AlreadyVoted() from e

            counter = Photo.up_votes if direction is VoteDirection.UP else Photo.down_votes
            db.execute(
                update(Photo)
                .where(Photo.id == current.id)
                .values({counter: counter + 1})
                .execution_options(synchronize_session=False)
            )
            db.refresh(current)

        logger.debug("User %s voted %s on photo %s", user.id, direction.value, current.id)
        return current

    def vote_up(self, photo, user) -> Photo:
        return self.register_vote(photo, user, VoteDirection.UP)

    def vote_down(self, photo, user) -> Photo:
        return self.register_vote(photo, user, VoteDirection.DOWN)
