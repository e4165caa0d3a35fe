import pytest

from pyrhouse.database import (
    ForeignKeyViolationError,
    NotFoundError,
    connect,
    create_schema,
    metadata,
)
from pyrhouse.locations import (
    Location,
    LocationEquipment,
    LocationRepository,
    UpdateLocationRequest,
)


@pytest.fixture
def engine():
    engine = connect("sqlite://")
    create_schema(engine)
    return engine


@pytest.fixture
def repo(engine):
    return LocationRepository(engine)


@pytest.fixture
def stocked(engine, repo):
    main = repo.persist_location(Location(name="Main", pavilion="A"))
    other = repo.persist_location(Location(name="Other"))
    with engine.begin() as conn:
        conn.execute(
            metadata.tables["item_category"].insert(),
            [
                {"id": 1, "item_category": "cable", "label": "Power Cable", "pyr_id": "C1"},
                {"id": 2, "item_category": "switch", "label": "Network Switch", "pyr_id": "S1"},
            ],
        )
        conn.execute(
            metadata.tables["items"].insert(),
            [
                {"id": 1, "item_serial": "SN-ABC", "status": "located", "pyr_code": "PYR-1",
                 "item_category_id": 1, "location_id": main.id},
                {"id": 2, "item_serial": "XYZ", "status": "located", "pyr_code": "PYR-2",
                 "item_category_id": 2, "location_id": main.id},
                {"id": 3, "item_serial": "abc-other", "status": "located", "pyr_code": "PYR-3",
                 "item_category_id": 1, "location_id": other.id},
            ],
        )
        conn.execute(
            metadata.tables["non_serialized_items"].insert().values(
                id=1, quantity=5, origin="own", item_category_id=1, location_id=main.id
            )
        )
    return main, other


def test_persist_and_list_in_id_order(repo):
    first = repo.persist_location(Location(name="Hall", details="north"))
    second = repo.persist_location(Location(name="Yard"))
    assert first.id < second.id
    assert repo.get_locations() == [first, second]


def test_location_details_round_trip(repo):
    stored = repo.persist_location(Location(name="Hall", details="north", pavilion="B"))
    assert repo.get_location_details(stored.id) == stored
    assert repo.get_location_details(str(stored.id)) == stored


def test_missing_location_details(repo):
    with pytest.raises(NotFoundError):
        repo.get_location_details(99)


def test_update_changes_only_given_fields(repo):
    stored = repo.persist_location(Location(name="Hall", details="north", pavilion="B"))
    updated = repo.update_location(stored.id, UpdateLocationRequest(name="Big hall"))
    assert updated == Location(id=stored.id, name="Big hall", details="north", pavilion="B")
    assert repo.get_location_details(stored.id) == updated


def test_update_without_fields_is_rejected(repo):
    stored = repo.persist_location(Location(name="Hall"))
    with pytest.raises(ValueError, match="no fields to update"):
        repo.update_location(stored.id, UpdateLocationRequest())


def test_update_missing_location(repo):
    with pytest.raises(NotFoundError):
        repo.update_location(99, UpdateLocationRequest(name="x"))


def test_remove_location(repo):
    stored = repo.persist_location(Location(name="Hall"))
    repo.remove_location(stored.id)
    assert repo.get_locations() == []
    with pytest.raises(NotFoundError, match="no location found with id: 99"):
        repo.remove_location(99)


def test_remove_location_with_equipment_fails(repo, stocked):
    main, _ = stocked
    with pytest.raises(ForeignKeyViolationError):
        repo.remove_location(main.id)
    assert repo.get_location_details(main.id) == main


def test_equipment_lists_only_that_location(repo, stocked):
    main, other = stocked
    equipment = repo.get_location_equipment(main.id)
    assert [asset.id for asset in equipment.assets] == [1, 2]
    assert equipment.assets[0].category.name == "cable"
    assert equipment.assets[1].category.label == "Network Switch"
    assert [(item.id, item.quantity) for item in equipment.stock_items] == [(1, 5)]
    other_equipment = repo.get_location_equipment(other.id)
    assert [asset.serial for asset in other_equipment.assets] == ["abc-other"]
    assert other_equipment.stock_items == []


def test_empty_location_has_no_equipment(repo):
    stored = repo.persist_location(Location(name="Empty"))
    assert repo.get_location_equipment(stored.id) == LocationEquipment()


@pytest.mark.parametrize(
    "query, expected",
    [("abc", [1]), ("switch", [2]), ("pyr-1", [1]), ("POWER", [1]), ("PYR", [1, 2]), ("none", [])],
)
def test_search_location_items(repo, stocked, query, expected):
    main, _ = stocked
    assert [asset.id for asset in repo.search_location_items(main.id, query)] == expected


def test_equipment_to_dict(repo, stocked):
    main, _ = stocked
    data = repo.get_location_equipment(main.id).to_dict()
    assert data["assets"][0]["serial"] == "SN-ABC"
    assert data["assets"][0]["category"] == {"id": 1, "name": "cable", "label": "Power Cable"}
    assert data["stock_items"][0]["quantity"] == 5


def test_location_to_dict_and_from_dict():
    location = Location.from_dict({"name": "Hall", "pavilion": "B"})
    assert location.to_dict() == {"id": None, "name": "Hall", "details": None, "pavilion": "B"}
    with pytest.raises(ValueError):
        Location.from_dict({"name": 3})


def test_update_request_is_empty():
    assert UpdateLocationRequest().is_empty() is True
    assert UpdateLocationRequest(details="").is_empty() is False
    assert UpdateLocationRequest.from_dict({"pavilion": "C"}) == UpdateLocationRequest(pavilion="C")
    with pytest.raises(ValueError):
        UpdateLocationRequest.from_dict({"name": 1})
    with pytest.raises(ValueError):
        UpdateLocationRequest.from_dict(["name"])