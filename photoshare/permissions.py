from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Permissions:
    edit: bool
    delete: bool
    vote: bool

    def to_dict(self):
        return asdict(self)


def can_edit(photo, viewer) -> bool:
    if viewer is None:
        return False
    return bool(viewer.is_admin) or photo.owner_id == viewer.id


def can_vote(photo, viewer, has_voted: bool) -> bool:
    if viewer is None:
        return False
    return photo.owner_id != viewer.id and not has_voted


def get_permissions(photo, viewer, has_voted: bool = False) -> Permissions:
    """
    Computes what `viewer` (None for anonymous) may do with `photo`.
    `has_voted` is whether the photo is in the viewer's vote set.
    """
    edit = can_edit(photo, viewer)
    return Permissions(edit=edit, delete=edit, vote=can_vote(photo, viewer, has_voted))
