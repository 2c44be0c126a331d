# Overview: Threaded races against conditional decrements on a file-backed database.

"""
Concurrency tests.

Workers run in their own threads and app contexts (so their own sessions)
against a temporary SQLite file. Whatever the interleaving, stock is never
over-consumed and the losers see ConflictError.
"""

import threading
from decimal import Decimal

import pytest

from canopy import create_app
from canopy.config import TestConfig
from canopy.extensions import db
from canopy.models import AuditLog, InventoryItem, Location, Plant
from canopy.services import (
    conversion_service,
    cultivation_service,
    inventory_service,
    inventory_type_service,
    room_service,
)
from canopy.validation import ConflictError, ValidationError

WORKERS = 6


@pytest.fixture
def race_app(tmp_path):
    db_path = tmp_path / "concurrency.db"

    class RaceConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_path}"

    app = create_app(RaceConfig)
    with app.app_context():
        db.create_all()
        inventory_type_service.seed_standard_types()
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def race_setup(race_app):
    with race_app.app_context():
        location = Location(name="Race Farm", ubi="600000099", license_type="Cultivator", is_active=True)
        db.session.add(location)
        db.session.commit()

        room = room_service.create_room(location.id, "Clone Room", "vegetative")
        clones = inventory_service.create_inventory_item(
            location.id, inventory_type_service.require_type_by_name("Clones").id, 3, room_id=room.id
        )
        wet = inventory_service.create_inventory_item(
            location.id, inventory_type_service.require_type_by_name("Wet Flower").id, 100, room_id=room.id
        )
        ids = {"location": location.id, "room": room.id, "clones": clones.id, "wet": wet.id}
        db.session.remove()
    return ids


def _race(app, work):
    successes = []
    conflicts = []
    errors = []
    lock = threading.Lock()

    def worker():
        with app.app_context():
            try:
                result = work()
                with lock:
                    successes.append(result)
            except (ConflictError, ValidationError) as exc:
                with lock:
                    conflicts.append(exc)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(WORKERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    return successes, conflicts, errors


def test_plants_never_overconsume_clones(race_app, race_setup):
    def work():
        plant = cultivation_service.create_plant(
            race_setup["location"], "Blue Dream", race_setup["room"],
            source_inventory_id=race_setup["clones"],
        )
        return plant.id

    successes, conflicts, errors = _race(race_app, work)

    assert not errors
    assert len(successes) == 3
    assert len(conflicts) == WORKERS - 3

    with race_app.app_context():
        item = db.session.get(InventoryItem, race_setup["clones"])
        assert item.quantity == Decimal("0.00")
        assert item.status == "consumed"
        assert db.session.query(Plant).count() == 3
        assert db.session.query(AuditLog).filter_by(action_type="create_plant").count() == 3


def test_conversions_never_overdraw_source(race_app, race_setup):
    def work():
        result = conversion_service.convert_wet_to_dry(
            race_setup["location"],
            race_setup["wet"],
            input_weight="40",
            output_weight="30",
            output_inventory_type_id=inventory_type_service.require_type_by_name("Bucked Flower").id,
            room_id=race_setup["room"],
        )
        return result.conversion.id

    successes, conflicts, errors = _race(race_app, work)

    assert not errors
    assert len(successes) == 2
    assert len(conflicts) == WORKERS - 2

    with race_app.app_context():
        source = db.session.get(InventoryItem, race_setup["wet"])
        assert source.quantity == Decimal("20.00")
        assert db.session.query(AuditLog).filter_by(action_type="CONVERSION").count() == 2
