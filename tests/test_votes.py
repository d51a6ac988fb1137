import threading

import pytest

from photoshare.errors import AlreadyVoted, Conflict, Forbidden, NotFound, Unauthorized
from photoshare.votes import VoteDirection


def test_vote_up_increments_and_records(photos, users, votes, make_user, make_photo):
    alice = make_user("alice")
    bob = make_user("bob")
    photo = make_photo(alice)

    updated = votes.vote_up(photo, bob)

    assert (updated.up_votes, updated.down_votes) == (1, 0)
    assert users.get_vote_set(bob.id) == {photo.id}
    assert users.has_voted(bob.id, photo.id)


def test_vote_down_increments_down_votes(photos, votes, make_user, make_photo):
    photo = make_photo(make_user("alice"))

    votes.register_vote(photo, make_user("bob"), "down")

    stored = photos.get(photo.id)
    assert (stored.up_votes, stored.down_votes) == (0, 1)


def test_second_vote_is_conflict_and_counters_unchanged(photos, users, votes, make_user, make_photo):
    photo = make_photo(make_user("alice"))
    bob = make_user("bob")
    votes.vote_up(photo, bob)

    with pytest.raises(Conflict):
        votes.vote_up(photo, bob)
    with pytest.raises(AlreadyVoted):
        votes.vote_down(photo, bob)

    stored = photos.get(photo.id)
    assert (stored.up_votes, stored.down_votes) == (1, 0)
    assert users.get_vote_set(bob.id) == {photo.id}


def test_owner_cannot_vote(photos, users, votes, make_user, make_photo):
    alice = make_user("alice")
    photo = make_photo(alice)

    with pytest.raises(Forbidden):
        votes.vote_up(photo, alice)

    assert photos.get(photo.id).up_votes == 0
    assert users.get_vote_set(alice.id) == set()


def test_anonymous_cannot_vote(votes, make_user, make_photo):
    photo = make_photo(make_user("alice"))

    with pytest.raises(Unauthorized):
        votes.register_vote(photo, None, VoteDirection.UP)


def test_vote_on_deleted_photo_is_not_found(photos, votes, make_user, make_photo):
    photo = make_photo(make_user("alice"))
    photos.delete(photo)

    with pytest.raises(NotFound):
        votes.vote_up(photo, make_user("bob"))


def test_invalid_direction(votes, make_user, make_photo):
    photo = make_photo(make_user("alice"))

    with pytest.raises(ValueError):
        votes.register_vote(photo, make_user("bob"), "sideways")


def test_votes_by_different_users_accumulate(photos, votes, make_user, make_photo):
    photo = make_photo(make_user("alice"))

    for name in ("bob", "carol", "dave"):
        votes.vote_up(photo, make_user(name))
    votes.vote_down(photo, make_user("erin"))

    stored = photos.get(photo.id)
    assert (stored.up_votes, stored.down_votes) == (3, 1)


def test_concurrent_votes_by_same_user_count_once(photos, users, votes, make_user, make_photo):
    photo = make_photo(make_user("alice"))
    bob = make_user("bob")
    attempts = 4
    barrier = threading.Barrier(attempts)
    successes, conflicts, errors = [], [], []

    def vote():
        barrier.wait()
        try:
            successes.append(votes.vote_up(photo, bob))
        except Conflict as e:
            conflicts.append(e)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=vote) for _ in range(attempts)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(successes) == 1
    assert len(conflicts) == attempts - 1
    assert photos.get(photo.id).up_votes == 1
    assert users.get_vote_set(bob.id) == {photo.id}
