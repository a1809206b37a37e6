"""
Tests for the attempt engine and attempt endpoints.
"""
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from mockprep.core import attempts as attempts_module
from mockprep.core.attempts import (
    ProgressUpdate,
    create_attempt,
    get_attempt_detail,
    list_user_attempts,
    start_attempt,
    submit_attempt,
    update_attempt,
)
from mockprep.core.datetime_utils import utc_now
from mockprep.core.exceptions import (
    DomainValidationError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from mockprep.models import Attempt
from tests.factories import create_mock_test, grant_purchase, question_keys


class TestCreateAttempt:
    """Tests for create_attempt."""

    def test_requires_successful_purchase(self, db_session, test_user, paid_test):
        with pytest.raises(ForbiddenError):
            create_attempt(db_session, test_user, paid_test.id)

    def test_unknown_test_not_found(self, db_session, test_user):
        with pytest.raises(NotFoundError):
            create_attempt(db_session, test_user, 9999)

    def test_inactive_test_not_found(self, db_session, test_user):
        test = create_mock_test(db_session, title="Retired Mock", is_active=False)
        grant_purchase(db_session, test_user, test)

        with pytest.raises(NotFoundError):
            create_attempt(db_session, test_user, test.id)

    def test_creates_empty_open_attempt(self, db_session, test_user, purchased_test):
        attempt, created = create_attempt(db_session, test_user, purchased_test.id)

        assert created is True
        assert attempt.answers == {}
        assert attempt.marked_questions == []
        assert attempt.visited_questions == []
        assert attempt.current_question_index == 0
        assert attempt.started_at is None
        assert attempt.submitted_at is None
        assert attempt.score is None

    def test_second_create_returns_same_open_attempt(
        self, db_session, test_user, purchased_test
    ):
        """Test that creating twice while open yields the same attempt."""
        first, _ = create_attempt(db_session, test_user, purchased_test.id)
        second, created = create_attempt(db_session, test_user, purchased_test.id)

        assert second.id == first.id
        assert created is False
        assert db_session.query(Attempt).count() == 1

    def test_new_attempt_allowed_after_submission(
        self, db_session, test_user, purchased_test
    ):
        first, _ = create_attempt(db_session, test_user, purchased_test.id)
        submit_attempt(db_session, test_user, first.id)

        second, created = create_attempt(db_session, test_user, purchased_test.id)

        assert created is True
        assert second.id != first.id

    def test_concurrent_insert_returns_winning_attempt(
        self, db_session, test_user, purchased_test
    ):
        """Test that a unique-index violation falls back to the open attempt."""
        winner = Attempt(
            user_id=test_user.id,
            test_id=purchased_test.id,
            answers={},
            marked_questions=[],
            visited_questions=[],
        )
        db_session.add(winner)
        db_session.commit()
        winner_id = winner.id

        real_find = attempts_module._find_open_attempt
        calls = []

        def find_after_first_call(db, user_id, test_id):
            # The first lookup misses, as if the competing insert were not
            # yet committed
            calls.append(test_id)
            if len(calls) == 1:
                return None
            return real_find(db, user_id, test_id)

        with patch.object(
            attempts_module, "_find_open_attempt", side_effect=find_after_first_call
        ):
            attempt, created = create_attempt(db_session, test_user, purchased_test.id)

        assert created is False
        assert attempt.id == winner_id
        assert db_session.query(Attempt).count() == 1


class TestStartAttempt:
    """Tests for start_attempt."""

    def test_sets_started_at_once(self, db_session, test_user, purchased_test):
        attempt, _ = create_attempt(db_session, test_user, purchased_test.id)

        first = start_attempt(db_session, test_user, attempt.id).started_at
        second = start_attempt(db_session, test_user, attempt.id).started_at

        assert first is not None
        assert second == first

    def test_start_submitted_attempt_rejected(
        self, db_session, test_user, purchased_test
    ):
        attempt, _ = create_attempt(db_session, test_user, purchased_test.id)
        submit_attempt(db_session, test_user, attempt.id)

        with pytest.raises(InvalidStateError):
            start_attempt(db_session, test_user, attempt.id)


class TestUpdateAttempt:
    """Tests for update_attempt."""

    @pytest.fixture
    def open_attempt(self, db_session, test_user, purchased_test):
        attempt, _ = create_attempt(db_session, test_user, purchased_test.id)
        return attempt

    def test_answers_replace_stored_mapping(
        self, db_session, test_user, purchased_test, open_attempt
    ):
        keys = question_keys(purchased_test)
        update_attempt(
            db_session, test_user, open_attempt.id,
            ProgressUpdate(answers={keys[0]: 1, keys[1]: 2}),
        )

        attempt = update_attempt(
            db_session, test_user, open_attempt.id, ProgressUpdate(answers={keys[2]: 3})
        )

        assert attempt.answers == {keys[2]: 3}

    def test_unknown_question_key_rejected(
        self, db_session, test_user, open_attempt
    ):
        with pytest.raises(DomainValidationError):
            update_attempt(
                db_session, test_user, open_attempt.id,
                ProgressUpdate(answers={"999999": 0}),
            )

    def test_out_of_range_option_rejected(
        self, db_session, test_user, purchased_test, open_attempt
    ):
        keys = question_keys(purchased_test)

        with pytest.raises(DomainValidationError):
            update_attempt(
                db_session, test_user, open_attempt.id,
                ProgressUpdate(answers={keys[0]: 4}),
            )

    def test_rejected_update_leaves_answers_unchanged(
        self, db_session, test_user, purchased_test, open_attempt
    ):
        keys = question_keys(purchased_test)
        update_attempt(
            db_session, test_user, open_attempt.id, ProgressUpdate(answers={keys[0]: 1})
        )

        with pytest.raises(DomainValidationError):
            update_attempt(
                db_session, test_user, open_attempt.id,
                ProgressUpdate(answers={keys[0]: -1}),
            )

        db_session.expire_all()
        assert db_session.get(Attempt, open_attempt.id).answers == {keys[0]: 1}

    def test_index_clamped_and_marked_visited(
        self, db_session, test_user, purchased_test, open_attempt
    ):
        keys = question_keys(purchased_test)

        attempt = update_attempt(
            db_session, test_user, open_attempt.id,
            ProgressUpdate(current_question_index=100),
        )
        assert attempt.current_question_index == len(keys) - 1
        assert attempt.visited_questions == [keys[-1]]

        attempt = update_attempt(
            db_session, test_user, open_attempt.id,
            ProgressUpdate(current_question_index=-3),
        )
        assert attempt.current_question_index == 0
        assert attempt.visited_questions == [keys[-1], keys[0]]

    def test_visited_questions_only_grow(
        self, db_session, test_user, purchased_test, open_attempt
    ):
        keys = question_keys(purchased_test)
        update_attempt(
            db_session, test_user, open_attempt.id,
            ProgressUpdate(visited_questions=[keys[0], keys[1]]),
        )

        attempt = update_attempt(
            db_session, test_user, open_attempt.id,
            ProgressUpdate(visited_questions=[keys[1], keys[2]]),
        )

        assert attempt.visited_questions == [keys[0], keys[1], keys[2]]

    def test_marked_questions_replaced(
        self, db_session, test_user, purchased_test, open_attempt
    ):
        keys = question_keys(purchased_test)
        update_attempt(
            db_session, test_user, open_attempt.id,
            ProgressUpdate(marked_questions=[keys[0], keys[1]]),
        )

        attempt = update_attempt(
            db_session, test_user, open_attempt.id,
            ProgressUpdate(marked_questions=[keys[3], keys[3]]),
        )

        assert attempt.marked_questions == [keys[3]]

    def test_update_after_submit_rejected_even_without_fields(
        self, db_session, test_user, open_attempt
    ):
        submit_attempt(db_session, test_user, open_attempt.id)

        with pytest.raises(InvalidStateError) as exc_info:
            update_attempt(db_session, test_user, open_attempt.id, ProgressUpdate())

        assert exc_info.value.message == "Cannot update a submitted attempt."

    def test_other_users_attempt_not_found(
        self, db_session, other_user, open_attempt
    ):
        with pytest.raises(NotFoundError):
            update_attempt(db_session, other_user, open_attempt.id, ProgressUpdate())


class TestSubmitAttempt:
    """Tests for submit_attempt."""

    def test_scores_documented_example(self, db_session, test_user, purchased_test):
        """Key [0,1,1,1,2] with answers to q0,q1,q2,q4 scores 3 and 60%."""
        keys = question_keys(purchased_test)
        attempt, _ = create_attempt(db_session, test_user, purchased_test.id)
        update_attempt(
            db_session, test_user, attempt.id,
            ProgressUpdate(answers={keys[0]: 0, keys[1]: 1, keys[2]: 0, keys[4]: 2}),
        )

        submitted = submit_attempt(db_session, test_user, attempt.id)

        assert submitted.score == 3
        assert submitted.percentage == 60
        assert submitted.submitted_at is not None

    def test_empty_test_scores_zero(self, db_session, test_user):
        test = create_mock_test(db_session, title="Empty Mock", answer_key=[])
        grant_purchase(db_session, test_user, test)
        attempt, _ = create_attempt(db_session, test_user, test.id)

        submitted = submit_attempt(db_session, test_user, attempt.id)

        assert submitted.score == 0
        assert submitted.percentage == 0

    def test_second_submit_rejected(self, db_session, test_user, purchased_test):
        attempt, _ = create_attempt(db_session, test_user, purchased_test.id)
        submit_attempt(db_session, test_user, attempt.id)

        with pytest.raises(InvalidStateError):
            submit_attempt(db_session, test_user, attempt.id)

    def test_concurrent_submit_loses_conditional_update(
        self, db_session, test_user, purchased_test
    ):
        """Test that a submit racing a committed submit updates nothing."""
        attempt, _ = create_attempt(db_session, test_user, purchased_test.id)
        first_submitted_at = utc_now()

        # Another request finalizes the attempt after this session loaded it
        other = Session(bind=db_session.get_bind())
        try:
            other.query(Attempt).filter(Attempt.id == attempt.id).update(
                {
                    Attempt.submitted_at: first_submitted_at,
                    Attempt.score: 5,
                    Attempt.percentage: 100,
                },
                synchronize_session=False,
            )
            other.commit()
        finally:
            other.close()

        with pytest.raises(InvalidStateError):
            submit_attempt(db_session, test_user, attempt.id)

        db_session.expire_all()
        stored = db_session.get(Attempt, attempt.id)
        assert stored.score == 5
        assert stored.percentage == 100


class TestAttemptDetail:
    """Tests for get_attempt_detail and list_user_attempts."""

    def test_detail_has_selections_but_no_answer_key(
        self, db_session, test_user, purchased_test
    ):
        keys = question_keys(purchased_test)
        attempt, _ = create_attempt(db_session, test_user, purchased_test.id)
        update_attempt(
            db_session, test_user, attempt.id, ProgressUpdate(answers={keys[1]: 3})
        )
        submit_attempt(db_session, test_user, attempt.id)

        detail = get_attempt_detail(db_session, test_user, attempt.id)

        assert [q.key for q in detail.questions] == keys
        assert detail.questions[1].selected_answer == 3
        assert detail.questions[0].selected_answer is None
        for question in detail.questions:
            assert not hasattr(question, "correct_answer")

    def test_list_orders_submitted_first(self, db_session, test_user, purchased_test):
        other_test = create_mock_test(db_session, title="Geography Mock")
        grant_purchase(db_session, test_user, other_test)
        submitted, _ = create_attempt(db_session, test_user, purchased_test.id)
        submit_attempt(db_session, test_user, submitted.id)
        open_attempt, _ = create_attempt(db_session, test_user, other_test.id)

        items = list_user_attempts(db_session, test_user)

        assert [item["attempt_id"] for item in items] == [submitted.id, open_attempt.id]
        assert items[0]["total_questions"] == 5
        assert items[0]["test_title"] == purchased_test.title


class TestAttemptEndpoints:
    """API tests for /v1/attempts."""

    def test_create_requires_purchase(self, client, auth_headers, paid_test):
        response = client.post(
            "/v1/attempts", json={"test_id": paid_test.id}, headers=auth_headers
        )

        assert response.status_code == 403
        assert response.json()["detail"] == (
            "Please purchase this test before attempting it."
        )

    def test_create_is_idempotent_while_open(
        self, client, auth_headers, purchased_test
    ):
        first = client.post(
            "/v1/attempts", json={"test_id": purchased_test.id}, headers=auth_headers
        )
        second = client.post(
            "/v1/attempts", json={"test_id": purchased_test.id}, headers=auth_headers
        )

        assert first.status_code == 201
        assert first.json()["created"] is True
        assert second.status_code == 200
        assert second.json()["created"] is False
        assert second.json()["attempt"]["id"] == first.json()["attempt"]["id"]

    def test_requires_authentication(self, client, purchased_test):
        response = client.post("/v1/attempts", json={"test_id": purchased_test.id})

        assert response.status_code in (401, 403)

    def test_full_lifecycle(self, client, auth_headers, purchased_test):
        keys = question_keys(purchased_test)
        attempt_id = client.post(
            "/v1/attempts", json={"test_id": purchased_test.id}, headers=auth_headers
        ).json()["attempt"]["id"]

        started = client.post(f"/v1/attempts/{attempt_id}/start", headers=auth_headers)
        assert started.status_code == 200
        assert started.json()["started_at"] is not None

        saved = client.put(
            f"/v1/attempts/{attempt_id}",
            json={
                "answers": {keys[0]: 0, keys[1]: 1, keys[2]: 0, keys[4]: 2},
                "current_question_index": 2,
                "marked_questions": [keys[2]],
            },
            headers=auth_headers,
        )
        assert saved.status_code == 200
        assert saved.json()["current_question_index"] == 2
        assert saved.json()["visited_questions"] == [keys[2]]

        submitted = client.post(
            f"/v1/attempts/{attempt_id}/submit", headers=auth_headers
        )
        assert submitted.status_code == 200
        body = submitted.json()
        assert body["attempt"]["score"] == 3
        assert body["attempt"]["percentage"] == 60
        assert body["total_questions"] == 5

        again = client.post(f"/v1/attempts/{attempt_id}/submit", headers=auth_headers)
        assert again.status_code == 409

        late_update = client.put(
            f"/v1/attempts/{attempt_id}",
            json={"answers": {keys[0]: 1}},
            headers=auth_headers,
        )
        assert late_update.status_code == 409
        assert late_update.json()["detail"] == "Cannot update a submitted attempt."

    def test_invalid_answer_is_bad_request(self, client, auth_headers, purchased_test):
        attempt_id = client.post(
            "/v1/attempts", json={"test_id": purchased_test.id}, headers=auth_headers
        ).json()["attempt"]["id"]

        response = client.put(
            f"/v1/attempts/{attempt_id}",
            json={"answers": {"not-a-question": 0}},
            headers=auth_headers,
        )

        assert response.status_code == 400

    @pytest.mark.parametrize("selected", [True, "1", 1.5])
    def test_non_integer_answer_rejected(
        self, client, auth_headers, purchased_test, selected
    ):
        """Booleans and numeric strings are not coerced to option indexes."""
        keys = question_keys(purchased_test)
        attempt_id = client.post(
            "/v1/attempts", json={"test_id": purchased_test.id}, headers=auth_headers
        ).json()["attempt"]["id"]

        response = client.put(
            f"/v1/attempts/{attempt_id}",
            json={"answers": {keys[0]: selected}},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"] == ["body", "answers", keys[0]]
        assert client.get(
            f"/v1/attempts/{attempt_id}", headers=auth_headers
        ).json()["attempt"]["answers"] == {}

    def test_detail_never_includes_correct_answers(
        self, client, auth_headers, purchased_test
    ):
        attempt_id = client.post(
            "/v1/attempts", json={"test_id": purchased_test.id}, headers=auth_headers
        ).json()["attempt"]["id"]
        client.post(f"/v1/attempts/{attempt_id}/submit", headers=auth_headers)

        response = client.get(f"/v1/attempts/{attempt_id}", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["test"]["total_questions"] == 5
        assert len(data["questions"]) == 5
        assert isinstance(data["instructions"], list)
        assert "correct_answer" not in response.text

    def test_other_users_attempt_is_not_found(
        self, client, auth_headers, other_auth_headers, purchased_test
    ):
        attempt_id = client.post(
            "/v1/attempts", json={"test_id": purchased_test.id}, headers=auth_headers
        ).json()["attempt"]["id"]

        response = client.get(f"/v1/attempts/{attempt_id}", headers=other_auth_headers)

        assert response.status_code == 404

    def test_list_attempts(self, client, auth_headers, purchased_test):
        client.post(
            "/v1/attempts", json={"test_id": purchased_test.id}, headers=auth_headers
        )

        response = client.get("/v1/attempts", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["attempts"][0]["test_id"] == purchased_test.id
