import threading

import pytest
from sqlalchemy import func, select

from photoshare.database import Photo, Tag, photo_tags, session_scope
from photoshare.errors import NotFound
from photoshare.repositories import get_tag_names


def tag_names(session_factory, photo_id):
    with session_scope(session_factory) as db:
        return get_tag_names(db, photo_id)


def test_insert_applies_normalized_tags(photos, make_user, make_photo, session_factory):
    bob = make_user("bob")
    photo = make_photo(bob, tags=[" Cats", "cats", "CUTE", ""])

    assert tag_names(session_factory, photo.id) == ["cats", "cute"]


def test_update_tags_replaces_tag_set(photos, make_user, make_photo, session_factory):
    bob = make_user("bob")
    photo = make_photo(bob, tags=["cats", "cute", "fluffy"])

    photos.update_tags(photo.id, ["cute", "Sleepy"])

    assert tag_names(session_factory, photo.id) == ["cute", "sleepy"]


def test_update_tags_with_empty_set_removes_all(photos, make_user, make_photo, session_factory):
    bob = make_user("bob")
    photo = make_photo(bob, tags=["cats", "cute"])

    photos.update_tags(photo.id, ["", "  "])

    assert tag_names(session_factory, photo.id) == []


def test_update_tags_is_repeatable(photos, make_user, make_photo, session_factory):
    bob = make_user("bob")
    photo = make_photo(bob)

    photos.update_tags(photo.id, ["a", "b"])
    photos.update_tags(photo.id, ["a", "b"])

    assert tag_names(session_factory, photo.id) == ["a", "b"]


def test_tags_shared_between_photos_are_single_rows(photos, make_user, make_photo, session_factory):
    bob = make_user("bob")
    make_photo(bob, tags=["cats"])
    make_photo(bob, tags=["Cats", "dogs"])

    with session_scope(session_factory) as db:
        assert db.scalar(select(func.count(Tag.id)).where(Tag.name == "cats")) == 1


def test_orphaned_tags_are_kept(photos, make_user, make_photo, session_factory):
    bob = make_user("bob")
    photo = make_photo(bob, tags=["rare"])

    photos.update_tags(photo.id, [])

    with session_scope(session_factory) as db:
        assert db.scalar(select(func.count(Tag.id)).where(Tag.name == "rare")) == 1
        assert db.scalar(select(func.count()).select_from(photo_tags)) == 0


def test_sync_only_touches_its_own_photo(photos, make_user, make_photo, session_factory):
    bob = make_user("bob")
    first = make_photo(bob, tags=["cats", "cute"])
    second = make_photo(bob, tags=["cats"])

    photos.update_tags(first.id, [])

    assert tag_names(session_factory, second.id) == ["cats"]


def test_update_tags_on_missing_photo_raises_not_found(photos, session_factory):
    with pytest.raises(NotFound):
        photos.update_tags(999, ["ghost"])

    with session_scope(session_factory) as db:
        assert db.scalar(select(func.count()).select_from(photo_tags).where(photo_tags.c.photo_id == 999)) == 0
        assert db.scalar(select(func.count(Tag.id)).where(Tag.name == "ghost")) == 0


def test_update_tags_after_delete_leaves_tag_counts_intact(photos, make_user, make_photo):
    bob = make_user("bob")
    kept = make_photo(bob, tags=["cats"])
    gone = make_photo(bob, tags=["cats"])
    photos.delete(gone)

    with pytest.raises(NotFound):
        photos.update_tags(gone.id, ["cats", "late"])

    counts = {tag.name: tag for tag in photos.get_tag_counts()}
    assert set(counts) == {"cats"}
    assert counts["cats"].num_photos == 1
    assert counts["cats"].file_ref == kept.file_ref


def test_insert_rolls_back_photo_when_tags_fail(photos, make_user, session_factory, monkeypatch):
    import photoshare.repositories as repositories
    bob = make_user("bob")

    def broken_sync(db, photo_id, names):
        raise RuntimeError("tag store unavailable")

    monkeypatch.setattr(repositories, "sync_tags", broken_sync)
    photo = Photo(owner_id=bob.id, title="Lost", file_ref="lost.jpg")

    with pytest.raises(RuntimeError):
        photos.insert(photo, ["cats"])

    with session_scope(session_factory) as db:
        assert db.scalar(select(func.count(Photo.id))) == 0


def test_concurrent_inserts_create_each_tag_once(photos, make_user, session_factory):
    bob = make_user("bob")
    barrier = threading.Barrier(4)
    errors = []

    def upload(n):
        barrier.wait()
        try:
            photos.insert(Photo(owner_id=bob.id, title=f"photo {n}", file_ref=f"p{n}.jpg"), ["shared", f"own{n}"])
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=upload, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with session_scope(session_factory) as db:
        assert db.scalar(select(func.count(Tag.id)).where(Tag.name == "shared")) == 1
        assert db.scalar(select(func.count()).select_from(photo_tags)) == 8


def test_concurrent_updates_of_one_photo_apply_one_whole_set(photos, make_user, make_photo, session_factory):
    bob = make_user("bob")
    photo = make_photo(bob, tags=["start"])
    tag_sets = [[f"set{n}", "shared", f"extra{n}"] for n in range(4)]
    barrier = threading.Barrier(len(tag_sets))
    errors = []

    def retag(tags):
        barrier.wait()
        try:
            photos.update_tags(photo.id, tags)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=retag, args=(tags,)) for tags in tag_sets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert tag_names(session_factory, photo.id) in [sorted(tags) for tags in tag_sets]
