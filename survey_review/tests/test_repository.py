import json
from decimal import Decimal

import pytest
from sqlalchemy import text

from survey_review.budget import summarize_budget
from survey_review.domain import BLOCK_ORDER, BlockName, BlockStatus, Decision
from survey_review.errors import NotFound, ValidationError
from survey_review.models import AuditLog, Company, Survey
from survey_review.repository import SqlSurveyRepository


@pytest.fixture
def repo(actor):
    return SqlSurveyRepository(actor=actor)


def _audit(action):
    return AuditLog.query.filter_by(action=action).order_by(AuditLog.id).all()


def test_fetch_seeded_survey(repo, survey_id):
    survey = repo.fetch_survey(survey_id)

    assert survey.survey_number == "LEV-0001"
    assert survey.work.company_name == "Canales Contactos"
    assert [r.status for r in survey.reviews] == [BlockStatus.PENDING] * 4
    assert len(survey.budget_items) == 2
    assert len(survey.investment_items) == 1
    assert survey.investment_items[0].coordinates == "4.7110, -74.0721"
    assert [i.material.code for i in survey.material_items] == ["MAT-100", "MAT-300"]
    assert [t.label for t in survey.travel_expenses][:2] == ["Peajes", "Parqueaderos"]

    summary = summarize_budget(survey)
    assert summary.subtotal == Decimal("130000.00")
    assert summary.adjusted_total == Decimal("136500.00")


def test_fetch_unknown_survey_raises_not_found(repo, app):
    with pytest.raises(NotFound):
        repo.fetch_survey(9999)


def test_approve_block_persists_and_audits(repo, survey_id, db):
    survey = repo.review_block(survey_id, BlockName.BUDGET, Decision.APPROVED)

    assert survey.status_of(BlockName.BUDGET) is BlockStatus.APPROVED
    entries = _audit("REVIEW_BLOCK")
    assert len(entries) == 1
    assert entries[0].username_snapshot == "tester"
    assert entries[0].entity_type == "Survey"
    after = json.loads(entries[0].after_data)
    assert after["budget_status"] == "approved"
    assert after["decision"] == "approved"
    assert db.session.get(Survey, survey_id).reviewed_at is not None


def test_reject_requires_comments(repo, survey_id):
    with pytest.raises(ValidationError):
        repo.review_block(survey_id, BlockName.MATERIALS, Decision.REJECTED, "  ")
    assert _audit("REVIEW_BLOCK") == []


def test_block_must_be_pending(repo, survey_id):
    repo.review_block(survey_id, BlockName.BUDGET, Decision.APPROVED)
    with pytest.raises(ValidationError):
        repo.review_block(survey_id, BlockName.BUDGET, Decision.REJECTED, "Tarde")


def test_wire_names_are_accepted(repo, survey_id):
    survey = repo.review_block(survey_id, "travelExpenses", "rejected", "Sin soporte")
    assert survey.status_of(BlockName.TRAVEL_EXPENSES) is BlockStatus.REJECTED
    assert survey.comments_of(BlockName.TRAVEL_EXPENSES) == "Sin soporte"

    with pytest.raises(ValidationError):
        repo.review_block(survey_id, "photos", "approved")
    with pytest.raises(ValidationError):
        repo.review_block(survey_id, "budget", "maybe")


def test_approve_all_skips_rejected_blocks(repo, survey_id):
    repo.review_block(survey_id, BlockName.MATERIALS, Decision.REJECTED, "Faltan cantidades")

    survey = repo.approve_all_blocks(survey_id)

    assert survey.status_of(BlockName.MATERIALS) is BlockStatus.REJECTED
    assert survey.comments_of(BlockName.MATERIALS) == "Faltan cantidades"
    for block in (BlockName.BUDGET, BlockName.INVESTMENT, BlockName.TRAVEL_EXPENSES):
        assert survey.status_of(block) is BlockStatus.APPROVED
    assert len(_audit("APPROVE_ALL")) == 1


def test_approve_all_without_pending_blocks_writes_nothing(repo, survey_id):
    repo.approve_all_blocks(survey_id)
    repo.approve_all_blocks(survey_id)
    assert len(_audit("APPROVE_ALL")) == 1


def test_reopen_resets_statuses_and_keeps_comments(repo, survey_id):
    repo.review_block(survey_id, BlockName.BUDGET, Decision.APPROVED)
    repo.review_block(survey_id, BlockName.MATERIALS, Decision.REJECTED, "Faltan cantidades")

    survey = repo.reopen_for_editing(survey_id, "Ajustar materiales")

    assert [r.status for r in survey.reviews] == [BlockStatus.PENDING] * 4
    assert survey.comments_of(BlockName.MATERIALS) == "Faltan cantidades"
    entry = _audit("REOPEN")[0]
    assert json.loads(entry.after_data)["reason"] == "Ajustar materiales"
    assert json.loads(entry.before_data)["materials_status"] == "rejected"


def test_approving_clears_previous_rejection_comment(repo, survey_id):
    repo.review_block(survey_id, BlockName.MATERIALS, Decision.REJECTED, "Faltan cantidades")
    repo.reopen_for_editing(survey_id)

    survey = repo.review_block(survey_id, BlockName.MATERIALS, Decision.APPROVED)

    assert survey.comments_of(BlockName.MATERIALS) is None


def test_unknown_stored_status_is_read_as_pending(repo, survey_id, db):
    row = db.session.get(Survey, survey_id)
    row.investment_status = "archived"
    db.session.commit()

    survey = repo.fetch_survey(survey_id)
    assert survey.status_of(BlockName.INVESTMENT) is BlockStatus.PENDING


def test_list_for_review_filters(repo, survey_id):
    assert [s.survey_id for s in repo.list_for_review()] == [survey_id]
    assert [s.survey_id for s in repo.list_for_review(state="pending")] == [survey_id]
    assert repo.list_for_review(state="approved") == []
    assert repo.list_for_review(state="rejected") == []

    repo.approve_all_blocks(survey_id)

    assert [s.survey_id for s in repo.list_for_review(state="approved")] == [survey_id]
    assert repo.list_for_review(state="pending") == []


def test_list_for_review_search(repo, survey_id):
    assert [s.survey_number for s in repo.list_for_review(search="lev-0001")] == ["LEV-0001"]
    assert [s.survey_number for s in repo.list_for_review(search="Barrio Centro")] == ["LEV-0001"]
    assert repo.list_for_review(search="no existe") == []


def test_list_for_review_by_company(repo, survey_id):
    company_id = Company.query.one().id

    surveys = repo.list_for_review(company_id=company_id)
    assert [s.survey_id for s in surveys] == [survey_id]
    assert surveys[0].work.company_id == company_id
    assert repo.list_for_review(company_id=company_id + 1) == []


def test_list_for_review_by_block_status(repo, survey_id):
    repo.review_block(survey_id, BlockName.MATERIALS, Decision.REJECTED, "Faltan cantidades")

    by_block = repo.list_for_review(block_statuses={BlockName.MATERIALS: "rejected"})
    assert [s.survey_id for s in by_block] == [survey_id]
    by_wire_name = repo.list_for_review(block_statuses={"materials": "rejected", "budget": "pending"})
    assert [s.survey_id for s in by_wire_name] == [survey_id]
    assert repo.list_for_review(block_statuses={"budget": "approved"}) == []
    assert repo.list_for_review(block_statuses={"travelExpenses": BlockStatus.REJECTED}) == []


def test_list_for_review_refuses_unknown_block_or_status(repo, survey_id):
    with pytest.raises(ValidationError):
        repo.list_for_review(block_statuses={"budget": "archived"})
    with pytest.raises(ValidationError):
        repo.list_for_review(block_statuses={"photos": "pending"})


def test_unknown_stored_status_matches_pending_filters(repo, survey_id, db):
    repo.approve_all_blocks(survey_id)
    row = db.session.get(Survey, survey_id)
    row.investment_status = "archived"
    db.session.commit()

    assert [s.survey_id for s in repo.list_for_review(block_statuses={"investment": "pending"})] == [survey_id]
    assert [s.survey_id for s in repo.list_for_review(state="pending")] == [survey_id]
    assert repo.list_for_review(state="approved") == []


def test_concurrent_change_is_refused(repo, survey_id, db):
    row = db.session.get(Survey, survey_id)
    assert row.version_id == 1
    # another writer approves the budget block after this session read the row
    db.session.execute(
        text("UPDATE surveys SET version_id = version_id + 1, budget_status = 'approved' WHERE id = :id"),
        {"id": survey_id},
    )

    with pytest.raises(ValidationError, match="modificado por otro usuario"):
        repo.review_block(survey_id, BlockName.BUDGET, Decision.REJECTED, "Sin soporte")

    assert _audit("REVIEW_BLOCK") == []


def test_each_write_bumps_the_version(repo, survey_id, db):
    repo.review_block(survey_id, BlockName.BUDGET, Decision.APPROVED)
    repo.review_block(survey_id, BlockName.INVESTMENT, Decision.APPROVED)

    assert db.session.get(Survey, survey_id).version_id == 3


def test_every_block_has_status_and_comment_columns():
    columns = {c.name for c in Survey.__table__.columns}
    for block in BLOCK_ORDER:
        assert block.status_field in columns
        assert block.comments_field in columns
