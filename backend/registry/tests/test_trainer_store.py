from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from registry.errors import (
    ConnectivityError, DeleteFailedError, SaveFailedError, SchemaMissingError,
    UpdateFailedError, ValidationError
)
from registry.models import EmailLog, Trainer
from registry.services import trainer_store


def _payload(**overrides):
    data = {
        "full_name": "Layla Haddad",
        "email": "layla@example.com",
        "specialties": ["Arbitration", "Contract Drafting"],
        "issue_date": "2024-02-01",
        "expiry_date": "2026-02-01",
        "renewal_due_date": "",
    }
    data.update(overrides)
    return data


def test_create_issues_identifiers_and_defaults(db_session):
    trainer = trainer_store.create_trainer(db_session, _payload(), year=2024)

    assert trainer.certification_id == "ILA-CLT-2024-0001"
    assert len(trainer.id) == 36
    assert trainer.created_at is not None
    assert trainer.status == "Active"
    assert trainer.specialties_list == ["Arbitration", "Contract Drafting"]
    assert trainer.files_list == []


def test_create_stores_empty_dates_as_null(db_session):
    trainer = trainer_store.create_trainer(db_session, _payload(), year=2024)
    stored = db_session.query(Trainer).filter(Trainer.id == trainer.id).one()

    assert stored.issue_date == date(2024, 2, 1)
    assert stored.renewal_due_date is None


def test_create_ignores_client_supplied_identifiers(db_session):
    trainer = trainer_store.create_trainer(
        db_session,
        _payload(id="client-id", certification_id="FAKE-0000-0000", created_at="1999-01-01"),
        year=2024,
    )
    assert trainer.id != "client-id"
    assert trainer.certification_id == "ILA-CLT-2024-0001"


def test_sequence_follows_record_count(db_session):
    first = trainer_store.create_trainer(db_session, _payload(), year=2024)
    second = trainer_store.create_trainer(db_session, _payload(full_name="Omar Khalil"), year=2024)
    assert (first.certification_id, second.certification_id) == ("ILA-CLT-2024-0001", "ILA-CLT-2024-0002")


def test_collision_after_delete_advances_to_next_free_number(db_session):
    a = trainer_store.create_trainer(db_session, _payload(full_name="A"), year=2024)
    trainer_store.create_trainer(db_session, _payload(full_name="B"), year=2024)
    trainer_store.delete_trainer(db_session, a.id)

    # count is 1 again, so 0002 is derived first and already taken
    c = trainer_store.create_trainer(db_session, _payload(full_name="C"), year=2024)
    assert c.certification_id == "ILA-CLT-2024-0003"
    numbers = [t.certification_id for t in db_session.query(Trainer).all()]
    assert len(numbers) == len(set(numbers))


def test_issuance_gives_up_after_bounded_attempts(db_session, monkeypatch):
    monkeypatch.setattr(trainer_store, "CERT_ID_MAX_ATTEMPTS", 2)
    monkeypatch.setattr(trainer_store, "format_certification_id", lambda count, year: "ILA-CLT-2024-0001")
    trainer_store.create_trainer(db_session, _payload(full_name="A"), year=2024)

    with pytest.raises(SaveFailedError) as exc_info:
        trainer_store.create_trainer(db_session, _payload(full_name="B"), year=2024)
    assert exc_info.value.status_code == 409
    assert exc_info.value.message.startswith("Cloud Save Failed:")
    assert db_session.query(Trainer).count() == 1


@pytest.mark.parametrize("missing", ["full_name", "email"])
def test_create_requires_name_and_email(db_session, missing):
    with pytest.raises(ValidationError) as exc_info:
        trainer_store.create_trainer(db_session, _payload(**{missing: "  "}))
    assert "mandatory" in exc_info.value.message
    assert db_session.query(Trainer).count() == 0


def test_create_rejects_unknown_status(db_session):
    with pytest.raises(ValidationError):
        trainer_store.create_trainer(db_session, _payload(status="Retired"))


def test_create_rejects_malformed_date(db_session):
    with pytest.raises(ValidationError):
        trainer_store.create_trainer(db_session, _payload(expiry_date="next spring"))


def test_list_is_newest_first(db_session):
    ids = [trainer_store.create_trainer(db_session, _payload(full_name=n), year=2024).id
           for n in ("A", "B", "C")]
    listed = [t.id for t in trainer_store.list_trainers(db_session)]
    assert listed == list(reversed(ids))


def test_list_without_tables_asks_for_setup(bare_session):
    with pytest.raises(SchemaMissingError) as exc_info:
        trainer_store.list_trainers(bare_session)
    assert exc_info.value.setup_required is True


def test_list_when_database_unreachable(db_session, monkeypatch):
    def boom(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("could not connect to server"))

    monkeypatch.setattr(db_session, "query", boom)
    with pytest.raises(ConnectivityError) as exc_info:
        trainer_store.list_trainers(db_session)
    assert exc_info.value.message == trainer_store.CONNECTIVITY_MESSAGE
    assert not isinstance(exc_info.value, SchemaMissingError)


def test_update_strips_immutable_fields(db_session):
    trainer = trainer_store.create_trainer(
        db_session, _payload(files=[{"name": "cert.pdf", "url": "/files/x.pdf", "type": "PDF"}]),
        year=2024)
    original = (trainer.id, trainer.certification_id, trainer.created_at, trainer.files)

    updated = trainer_store.update_trainer(db_session, trainer.id, {
        "id": "other",
        "certification_id": "HACK-2024-9999",
        "certificationId": "HACK-2024-9999",
        "created_at": "2000-01-01",
        "files": [],
        "bio": "Senior arbitrator.",
        "status": "Suspended",
    })

    assert (updated.id, updated.certification_id, updated.created_at, updated.files) == original
    assert updated.bio == "Senior arbitrator."
    assert updated.status == "Suspended"


def test_update_clears_date_with_empty_string(db_session):
    trainer = trainer_store.create_trainer(db_session, _payload(), year=2024)
    updated = trainer_store.update_trainer(db_session, trainer.id, {"expiry_date": ""})
    assert updated.expiry_date is None


def test_partial_update_keeps_other_fields(db_session):
    trainer = trainer_store.create_trainer(db_session, _payload(), year=2024)
    updated = trainer_store.update_trainer(db_session, trainer.id, {"bio": "x"})
    assert updated.full_name == "Layla Haddad"
    assert updated.email == "layla@example.com"


def test_update_rejects_blank_name(db_session):
    trainer = trainer_store.create_trainer(db_session, _payload(), year=2024)
    with pytest.raises(ValidationError):
        trainer_store.update_trainer(db_session, trainer.id, {"full_name": ""})


@pytest.mark.parametrize("status", [None, "Retired"])
def test_update_rejects_missing_or_unknown_status(db_session, status):
    trainer = trainer_store.create_trainer(db_session, _payload(), year=2024)
    with pytest.raises(ValidationError):
        trainer_store.update_trainer(db_session, trainer.id, {"status": status})
    assert db_session.get(Trainer, trainer.id).status == "Active"


def test_update_unknown_trainer(db_session):
    with pytest.raises(UpdateFailedError) as exc_info:
        trainer_store.update_trainer(db_session, "missing", {"bio": "x"})
    assert exc_info.value.status_code == 404
    assert exc_info.value.message.startswith("Institutional Update Failed:")


def test_delete_keeps_email_history(db_session):
    trainer = trainer_store.create_trainer(db_session, _payload(), year=2024)
    db_session.add(EmailLog(id="log-1", trainer_id=trainer.id, trainer_name=trainer.full_name,
                            type="Welcome Email", subject="Welcome", status="DELIVERED"))
    db_session.commit()

    trainer_store.delete_trainer(db_session, trainer.id)

    assert db_session.query(Trainer).count() == 0
    assert db_session.query(EmailLog).filter(EmailLog.trainer_id == trainer.id).count() == 1


def test_delete_unknown_trainer(db_session):
    with pytest.raises(DeleteFailedError) as exc_info:
        trainer_store.delete_trainer(db_session, "missing")
    assert exc_info.value.status_code == 404
    assert exc_info.value.message.startswith("Cloud Deletion Failed:")


def test_public_serialization_hides_contact_and_files(db_session):
    trainer = trainer_store.create_trainer(db_session, _payload(), year=2024)
    public = trainer_store.serialize_trainer(trainer, public=True)
    full = trainer_store.serialize_trainer(trainer)

    assert "email" not in public and "files" not in public
    assert full["email"] == "layla@example.com"
    assert full["renewal_due_date"] is None
    assert full["issue_date"] == "2024-02-01"
