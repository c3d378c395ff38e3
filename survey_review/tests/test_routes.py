from survey_review.domain import BlockName, BlockStatus
from survey_review.errors import ServiceError
from survey_review.models import Company, User
from survey_review.repository import SqlSurveyRepository
from survey_review.seed import create_user


def _stored(db, survey_id):
    db.session.expire_all()
    return SqlSurveyRepository().fetch_survey(survey_id)


# ---------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------
def test_index_redirects_anonymous_users_to_login(client):
    response = client.get("/")
    assert response.status_code == 302
    assert "/auth/login" in response.headers["Location"]


def test_login_rejects_bad_password(app, client):
    create_user("ana", "right-pass", permissions=())
    response = client.post("/auth/login", data={"username": "ana", "password": "wrong"})
    assert response.status_code == 401


def test_inactive_user_cannot_log_in(client, db):
    user = create_user("old", "pass-1234", permissions=())
    user.is_active = False
    db.session.commit()
    response = client.post("/auth/login", data={"username": "old", "password": "pass-1234"})
    assert response.status_code == 403


def test_login_ignores_external_next_url(app, client):
    create_user("ana", "right-pass", permissions=())
    response = client.post(
        "/auth/login?next=https://evil.example/",
        data={"username": "ana", "password": "right-pass"},
    )
    assert response.status_code == 302
    assert "evil.example" not in response.headers["Location"]


def test_seed_admin_only_while_no_users_exist(app, client):
    assert client.get("/auth/seed-admin").status_code == 200

    response = client.post("/auth/seed-admin", data={"username": "root", "password": "pass-1234"})
    assert response.status_code == 302
    admin = User.query.filter_by(username="root").one()
    assert admin.is_admin

    response = client.get("/auth/seed-admin")
    assert response.status_code == 302


def test_logout(approver_client):
    assert approver_client.post("/auth/logout").status_code == 302
    response = approver_client.get("/surveys/")
    assert response.status_code == 302
    assert "/auth/login" in response.headers["Location"]


# ---------------------------------------------------------------------
# HTML pages
# ---------------------------------------------------------------------
def test_list_requires_login(client, survey_id):
    response = client.get("/surveys/")
    assert response.status_code == 302


def test_viewer_sees_list_but_not_review_page(viewer_client, survey_id):
    response = viewer_client.get("/surveys/")
    assert response.status_code == 200
    assert "LEV-0001" in response.get_data(as_text=True)

    assert viewer_client.get(f"/surveys/{survey_id}/review").status_code == 403


def test_pending_list_defaults_to_pending_filter(reviewer_client, survey_id):
    response = reviewer_client.get("/surveys/pending")
    assert response.status_code == 200
    assert "LEV-0001" in response.get_data(as_text=True)


def test_reviewer_sees_review_page_without_actions(reviewer_client, survey_id):
    response = reviewer_client.get(f"/surveys/{survey_id}/review")
    html = response.get_data(as_text=True)

    assert response.status_code == 200
    assert "I. PRESUPUESTO" in html
    assert "IV. COSTOS DE VIAJE" in html
    assert "$ 136.500" in html
    assert "Aprobar todo" not in html
    assert "Motivo del rechazo" not in html


def test_review_page_for_missing_survey_is_404(approver_client, app):
    assert approver_client.get("/surveys/999/review").status_code == 404


def test_readonly_guard_blocks_reviewer_commands(reviewer_client, survey_id, db):
    response = reviewer_client.post(f"/surveys/{survey_id}/blocks/budget/approve")
    assert response.status_code == 403
    assert _stored(db, survey_id).status_of(BlockName.BUDGET) is BlockStatus.PENDING


def test_approver_approves_block(approver_client, survey_id, db):
    page = approver_client.get(f"/surveys/{survey_id}/review").get_data(as_text=True)
    assert "Aprobar todo" in page

    response = approver_client.post(f"/surveys/{survey_id}/blocks/budget/approve", follow_redirects=True)

    assert response.status_code == 200
    assert "Bloque I. PRESUPUESTO aprobado." in response.get_data(as_text=True)
    assert _stored(db, survey_id).status_of(BlockName.BUDGET) is BlockStatus.APPROVED


def test_reject_without_comment_is_refused(approver_client, survey_id, db):
    response = approver_client.post(
        f"/surveys/{survey_id}/blocks/materials/reject",
        data={"comments": "   "},
        follow_redirects=True,
    )

    assert "Ingrese el motivo del rechazo." in response.get_data(as_text=True)
    assert _stored(db, survey_id).status_of(BlockName.MATERIALS) is BlockStatus.PENDING


def test_reject_shows_rejection_summary(approver_client, survey_id):
    response = approver_client.post(
        f"/surveys/{survey_id}/blocks/materials/reject",
        data={"comments": "Faltan cantidades"},
        follow_redirects=True,
    )
    html = response.get_data(as_text=True)

    assert "Bloques rechazados" in html
    assert "Faltan cantidades" in html


def test_unknown_block_is_404(approver_client, survey_id):
    assert approver_client.post(f"/surveys/{survey_id}/blocks/photos/approve").status_code == 404


def test_approve_all_then_reopen(approver_client, survey_id, db):
    response = approver_client.post(f"/surveys/{survey_id}/approve-all", follow_redirects=True)
    html = response.get_data(as_text=True)
    assert "Todos los bloques están aprobados." in html
    assert "Reabrir para edición" in html
    assert _stored(db, survey_id).all_blocks_approved

    approver_client.post(f"/surveys/{survey_id}/reopen", data={"reason": "Ajustes"}, follow_redirects=True)
    assert not _stored(db, survey_id).has_reviewed_blocks


def test_reopen_without_reviewed_blocks_is_refused(approver_client, survey_id):
    response = approver_client.post(f"/surveys/{survey_id}/reopen", follow_redirects=True)
    assert "no tiene bloques revisados" in response.get_data(as_text=True)


# ---------------------------------------------------------------------
# JSON API
# ---------------------------------------------------------------------
def test_api_requires_login(client, survey_id):
    response = client.get(f"/api/surveys/{survey_id}")
    assert response.status_code == 401
    assert response.get_json() == {"message": "Autenticación requerida."}


def test_api_get_survey(approver_client, survey_id):
    data = approver_client.get(f"/api/surveys/{survey_id}").get_json()

    assert data["surveyNumber"] == "LEV-0001"
    assert data["budgetStatus"] == "pending"
    assert data["travelExpensesStatus"] == "pending"
    assert data["anyBlockPending"] is True
    assert data["allBlocksApproved"] is False
    assert data["budget"]["subtotal"] == 130000.0
    assert data["budget"]["adjustedTotal"] == 136500.0
    assert data["travelExpenses"][0]["label"] == "Peajes"


def test_api_get_missing_survey(approver_client, app):
    response = approver_client.get("/api/surveys/999")
    assert response.status_code == 404
    assert "message" in response.get_json()


def test_api_list_for_review(reviewer_client, survey_id):
    data = reviewer_client.get("/api/surveys/for-review?state=pending").get_json()
    assert data["total"] == 1
    assert data["data"][0]["statuses"]["materials"] == "pending"

    data = reviewer_client.get("/api/surveys/for-review?state=approved").get_json()
    assert data["total"] == 0


def test_api_reject_requires_comments(approver_client, survey_id):
    response = approver_client.patch(
        f"/api/surveys/{survey_id}/review-block",
        json={"block": "materials", "status": "rejected", "comments": ""},
    )
    assert response.status_code == 400
    assert response.get_json() == {"message": "Ingrese el motivo del rechazo."}


def test_api_reject_block(approver_client, survey_id):
    response = approver_client.patch(
        f"/api/surveys/{survey_id}/review-block",
        json={"block": "materials", "status": "rejected", "comments": "Faltan cantidades"},
    )
    data = response.get_json()

    assert response.status_code == 200
    assert data["materialsStatus"] == "rejected"
    assert data["materialsComments"] == "Faltan cantidades"
    assert data["rejectedBlocks"] == [{"title": "III. MATERIALES", "comments": "Faltan cantidades"}]
    assert data["hasReviewedBlocks"] is True


def test_api_rejects_unknown_block_or_status(approver_client, survey_id):
    url = f"/api/surveys/{survey_id}/review-block"
    assert approver_client.patch(url, json={"block": "photos", "status": "approved"}).status_code == 400
    assert approver_client.patch(url, json={"block": "budget", "status": "pending"}).status_code == 400


def test_api_approve_all_and_reopen(approver_client, survey_id):
    data = approver_client.patch(f"/api/surveys/{survey_id}/approve-all").get_json()
    assert data["allBlocksApproved"] is True

    response = approver_client.patch(f"/api/surveys/{survey_id}/reopen", json={"reason": "Ajustes"})
    assert response.status_code == 200
    assert response.get_json()["anyBlockPending"] is True


def test_api_reopen_without_reviewed_blocks(approver_client, survey_id):
    response = approver_client.patch(f"/api/surveys/{survey_id}/reopen", json={})
    assert response.status_code == 400


def test_api_commands_forbidden_without_approve_permission(reviewer_client, survey_id):
    response = reviewer_client.patch(
        f"/api/surveys/{survey_id}/review-block",
        json={"block": "budget", "status": "approved"},
    )
    assert response.status_code == 403
    assert "message" in response.get_json()


def test_api_reject_comments_must_be_text(approver_client, survey_id, db):
    response = approver_client.patch(
        f"/api/surveys/{survey_id}/review-block",
        json={"block": "materials", "status": "rejected", "comments": 123},
    )
    assert response.status_code == 400
    assert response.get_json() == {"message": "El campo 'comments' debe ser texto."}
    assert _stored(db, survey_id).status_of(BlockName.MATERIALS) is BlockStatus.PENDING


def test_api_reopen_reason_must_be_text(approver_client, survey_id, db):
    approver_client.patch(f"/api/surveys/{survey_id}/review-block", json={"block": "budget", "status": "approved"})

    response = approver_client.patch(f"/api/surveys/{survey_id}/reopen", json={"reason": 5})

    assert response.status_code == 400
    assert response.get_json() == {"message": "El campo 'reason' debe ser texto."}
    assert _stored(db, survey_id).status_of(BlockName.BUDGET) is BlockStatus.APPROVED


def test_api_list_by_company_and_block_status(reviewer_client, survey_id):
    company_id = Company.query.one().id
    SqlSurveyRepository().review_block(survey_id, BlockName.MATERIALS, "rejected", "Faltan cantidades")

    data = reviewer_client.get(f"/api/surveys/for-review?companyId={company_id}&materialsStatus=rejected").get_json()
    assert data["total"] == 1
    assert data["data"][0]["companyId"] == company_id

    assert reviewer_client.get("/api/surveys/for-review?budgetStatus=approved").get_json()["total"] == 0
    assert reviewer_client.get(f"/api/surveys/for-review?companyId={company_id + 1}").get_json()["total"] == 0


def test_api_list_refuses_bad_filters(reviewer_client, survey_id):
    response = reviewer_client.get("/api/surveys/for-review?companyId=abc")
    assert response.status_code == 400
    assert response.get_json() == {"message": "Empresa inválida: abc"}

    assert reviewer_client.get("/api/surveys/for-review?budgetStatus=bogus").status_code == 400


def test_list_page_filters_by_block_status_and_company(reviewer_client, survey_id):
    html = reviewer_client.get("/surveys/?budgetStatus=approved").get_data(as_text=True)
    assert "No hay levantamientos." in html
    assert "LEV-0001" not in html

    company_id = Company.query.one().id
    html = reviewer_client.get(f"/surveys/?companyId={company_id}&budgetStatus=pending").get_data(as_text=True)
    assert "LEV-0001" in html
    assert f'<option value="{company_id}" selected>' in html


def test_list_page_flashes_bad_filter(reviewer_client, survey_id):
    response = reviewer_client.get("/surveys/?companyId=abc")
    assert response.status_code == 200
    assert "Empresa inválida: abc" in response.get_data(as_text=True)


def test_command_reports_load_failure_instead_of_crashing(approver_client, survey_id, db, monkeypatch):
    def broken_load(self, survey_id):
        raise ServiceError("Error al cargar el levantamiento.")

    monkeypatch.setattr(SqlSurveyRepository, "_load_row", broken_load)

    response = approver_client.post(f"/surveys/{survey_id}/blocks/budget/approve")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/surveys/")

    monkeypatch.undo()
    page = approver_client.get("/surveys/").get_data(as_text=True)
    assert "Error al cargar el levantamiento." in page
    assert _stored(db, survey_id).status_of(BlockName.BUDGET) is BlockStatus.PENDING


def test_review_page_reports_load_failure(approver_client, survey_id, monkeypatch):
    def broken_load(self, survey_id):
        raise ServiceError("Error al cargar el levantamiento.")

    monkeypatch.setattr(SqlSurveyRepository, "_load_row", broken_load)

    response = approver_client.get(f"/surveys/{survey_id}/review")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/surveys/")
