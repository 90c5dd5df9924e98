"""Host objects and a controllable clock shared by the test modules."""

from datetime import datetime, timedelta, timezone

from model_snapshot.subject import SnapshotSubject


class FixedClock:
    def __init__(self, start=None):
        self.current = start or datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)
        return self.current


class Address(SnapshotSubject):
    __snapshot_type__ = "Address"

    def __init__(self, id, city):
        self.id = id
        self.city = city

    def persist_snapshot_state(self):
        return True


class Profile(SnapshotSubject):
    __snapshot_type__ = "Profile"
    __snapshot_relationships__ = ("address",)

    def __init__(self, id, bio, address=None):
        self.id = id
        self.bio = bio
        self.address = address

    def persist_snapshot_state(self):
        return True


class Order(SnapshotSubject):
    __snapshot_type__ = "Order"

    def __init__(self, id, total, status="pending"):
        self.id = id
        self.total = total
        self.status = status

    def persist_snapshot_state(self):
        return True


class User(SnapshotSubject):
    __snapshot_type__ = "User"
    __snapshot_hidden__ = ("password",)
    __snapshot_relationships__ = ("orders", "profile")

    def __init__(
        self,
        id,
        name,
        age=30,
        email=None,
        password="secret",
        created_at=None,
        updated_at=None,
        orders=None,
        profile=None,
    ):
        self.id = id
        self.name = name
        self.age = age
        self.email = email
        self.password = password
        self.created_at = created_at
        self.updated_at = updated_at
        self.orders = orders if orders is not None else []
        self.profile = profile
        self._persist_result = True
        self._persist_calls = 0

    def persist_snapshot_state(self):
        self._persist_calls += 1
        return self._persist_result


class Node(SnapshotSubject):
    """Self-referencing subject used for relationship depth checks."""

    __snapshot_relationships__ = ("child",)

    def __init__(self, id, child=None):
        self.id = id
        self.child = child

    def persist_snapshot_state(self):
        return True


class Broken(SnapshotSubject):
    """Subject holding a value that has no structural representation."""

    __snapshot_type__ = "Broken"

    def __init__(self, id):
        self.id = id
        self.handle = object()

    def persist_snapshot_state(self):
        return True


class LazyAccount(SnapshotSubject):
    """Subject whose field access fails, like an unloadable lazy relation."""

    __snapshot_type__ = "Account"

    def __init__(self, id, key_error=False):
        self.id = id
        self.key_error = key_error

    def snapshot_key(self):
        if self.key_error:
            raise LookupError("account id not loaded")
        return self.id

    def snapshot_fields(self):
        raise RuntimeError("lazy relation failed to load")

    def persist_snapshot_state(self):
        return True
