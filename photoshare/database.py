from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    create_engine,
    event,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from .errors import ServerError

Base = declarative_base()

# SQLite only autoincrements a plain INTEGER primary key.
ID = BigInteger().with_variant(Integer, "sqlite")


def utcnow():
    return datetime.now(timezone.utc)


photo_tags = Table(
    'photo_tags', Base.metadata,
    Column('photo_id', ID, ForeignKey('photos.id', ondelete='CASCADE'), primary_key=True),
    Column('tag_id', ID, ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True, index=True),
)

# --- SQLAlchemy ORM Models ---

class User(Base):
    __tablename__ = 'users'
    id = Column(ID, primary_key=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    name = Column(String(60), unique=True, nullable=False)
    email = Column(String(254), unique=True, nullable=False)
    password_hash = Column(String(200), nullable=False)
    is_admin = Column('admin', Boolean, default=False, nullable=False)
    is_active = Column('active', Boolean, default=True, nullable=False)
    recovery_code = Column(String(30), nullable=True, unique=True)

    photos = relationship("Photo", back_populates="owner")

    def __repr__(self):
        return f'<User {self.id} {self.name}>'


class Photo(Base):
    __tablename__ = 'photos'
    id = Column(ID, primary_key=True)
    owner_id = Column(ID, ForeignKey('users.id'), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    title = Column(String(200), nullable=False)
    file_ref = Column('photo', String, nullable=False)
    up_votes = Column(Integer, default=0, nullable=False)
    down_votes = Column(Integer, default=0, nullable=False)

    owner = relationship("User", back_populates="photos")
    tags = relationship("Tag", secondary=photo_tags, back_populates="photos")

    @property
    def score(self):
        return self.up_votes - self.down_votes

    def __repr__(self):
        return f'<Photo {self.id} by User {self.owner_id}>'


class Tag(Base):
    __tablename__ = 'tags'
    id = Column(ID, primary_key=True)
    # Names are stored normalized (trimmed, lowercase), see utils.normalize_tags.
    name = Column(String(100), unique=True, nullable=False)
    photos = relationship("Photo", secondary=photo_tags, back_populates="tags")


class Vote(Base):
    """A user's vote on a photo. The composite key allows one vote per pair."""
    __tablename__ = 'votes'
    user_id = Column(ID, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    photo_id = Column(ID, ForeignKey('photos.id', ondelete='CASCADE'), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


# --- Engine and Session Configuration ---

def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores declared foreign keys unless this is set per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(database_url, timeout=None, echo=False):
    """
    Creates the engine for `database_url`. `timeout` (seconds) bounds how long a
    single store operation may block: SQLite waits that long on a locked
    database, PostgreSQL cancels statements running longer.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if timeout:
            connect_args["timeout"] = timeout
    elif database_url.startswith("postgresql") and timeout:
        connect_args["options"] = f"-c statement_timeout={int(timeout * 1000)}"
    engine = create_engine(database_url, connect_args=connect_args, echo=echo, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def make_session_factory(engine):
    # Objects stay readable after commit so repositories can hand them back detached.
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(engine):
    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(session_factory):
    """
    A unit of work: commits on success, rolls back on any error. Store failures
    are re-raised as ServerError, anything else propagates unchanged.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ServerError(f"Database operation failed: {e}") from e
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
