import pytest
from sqlalchemy.exc import IntegrityError

from pyrhouse.database import (
    ForeignKeyViolationError,
    NotFoundError,
    connect,
    create_schema,
    metadata,
)
from pyrhouse.users import NewUser, UserChanges, UserRepository


@pytest.fixture
def engine():
    engine = connect("sqlite://")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repo(engine):
    return UserRepository(engine)


def _add(repo, username="alice", **kwargs):
    password_hash = "placeholder"
    return repo.persist_user(NewUser(username=username, fullname="Alice Example", **kwargs), password_hash)


def test_persist_and_get_user(repo):
    user_id = _add(repo, role="admin", points=3)
    user = repo.get_user(user_id)
    assert user.username == "alice"
    assert user.fullname == "Alice Example"
    assert user.role == "admin"
    assert user.points == 3
    assert user.active is True
    assert user.password_hash == "placeholder"


def test_persist_accepts_bytes_hash(repo):
    password_hash = b"secret"
    user_id = repo.persist_user(NewUser(username="bob"), password_hash)
    assert repo.get_user(user_id).password_hash == password_hash.decode()


def test_get_users_hides_hash(repo):
    first = _add(repo, "alice")
    second = _add(repo, "bob")
    users = repo.get_users()
    assert [user.id for user in users] == [first, second]
    assert all(user.password_hash is None for user in users)
    assert "password_hash" not in users[0].to_dict()


def test_get_missing_user(repo):
    with pytest.raises(NotFoundError):
        repo.get_user(42)


def test_username_uniqueness(repo):
    assert repo.is_username_unique("alice") is True
    _add(repo, "alice")
    assert repo.is_username_unique("alice") is False


def test_duplicate_username_rejected(repo):
    _add(repo, "alice")
    with pytest.raises(IntegrityError):
        _add(repo, "alice")


def test_add_points(repo):
    user_id = _add(repo, points=10)
    before = repo.get_user(user_id).points
    repo.add_user_points(user_id, 5)
    assert repo.get_user(user_id).points == before + 5


def test_update_user(repo):
    user_id = _add(repo)
    repo.update_user(user_id, UserChanges(role="moderator", fullname="Alice Changed"))
    user = repo.get_user(user_id)
    assert user.role == "moderator"
    assert user.fullname == "Alice Changed"
    assert user.username == "alice"


def test_update_without_changes(repo):
    user_id = _add(repo)
    with pytest.raises(ValueError):
        repo.update_user(user_id, UserChanges())


def test_set_user_active(repo):
    user_id = _add(repo)
    repo.set_user_active(user_id, False)
    assert repo.get_user(user_id).active is False


def test_delete_user(repo):
    user_id = _add(repo)
    repo.delete_user(user_id)
    with pytest.raises(NotFoundError):
        repo.get_user(user_id)


def test_delete_missing_user(repo):
    with pytest.raises(NotFoundError, match="nie znaleziono"):
        repo.delete_user(77)


def test_delete_user_with_transfers(repo, engine):
    user_id = _add(repo)
    with engine.begin() as conn:
        transfer_id = conn.execute(
            metadata.tables["transfers"].insert().values(status="in_transit")
        ).inserted_primary_key[0]
        conn.execute(
            metadata.tables["transfer_users"].insert().values(
                transfer_id=transfer_id, user_id=user_id
            )
        )
    with pytest.raises(ForeignKeyViolationError):
        repo.delete_user(user_id)
    assert repo.get_user(user_id).username == "alice"


def test_users_exist(repo):
    first = _add(repo, "alice")
    second = _add(repo, "bob")
    assert repo.users_exist([first, second]) is True
    assert repo.users_exist([first, second + 100]) is False
    assert repo.users_exist([]) is True