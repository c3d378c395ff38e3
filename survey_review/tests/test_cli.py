from survey_review.models import Survey, User
from survey_review.security import PERM_APPROVE, PERM_VIEW


def test_seed_demo_is_idempotent(app):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["seed-demo"])
    second = runner.invoke(args=["seed-demo"])

    assert first.exit_code == 0
    assert "LEV-0001" in first.output
    assert second.exit_code == 0
    assert Survey.query.count() == 1


def test_create_user_with_permissions(app):
    runner = app.test_cli_runner()

    result = runner.invoke(
        args=["create-user", "marta", "--password", "pass-1234", "--permission", PERM_VIEW],
    )

    assert result.exit_code == 0, result.output
    user = User.query.filter_by(username="marta").one()
    assert user.permission_codes() == [PERM_VIEW]
    assert user.has_permission(PERM_VIEW)
    assert not user.has_permission(PERM_APPROVE)
    assert not user.is_admin
    assert user.check_password("pass-1234")
