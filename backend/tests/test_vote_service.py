"""
Tests for cast-vote orchestration.

1. One vote per contributor per submission; recasting replaces
2. Invalid choices and unknown identifiers write nothing
3. The creator's verified counter fires once per submission
4. Ten verified submissions promote the creator; promotion never reverts
5. The first final outcome judges every vote exactly once
6. Concurrent writers are detected and the vote is replayed
7. Contributor counters are updated in SQL, never from a stale read
"""
from datetime import datetime, timedelta
import logging
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from village_map.database import Base
from village_map.models.db_models import (
    UserDB, SubmissionDB, VoteDB, SubmissionKind, SubmissionStatus, VoteChoice, ContributorRole,
    VOTE_UNIQUE_CONSTRAINT,
)
from village_map.services.verification import (
    VoteService, InvalidChoice, SubmissionNotFound, ContributorNotFound,
    ConcurrencyConflict, PersistenceFailure, ContributorProfileStore,
)
from village_map.services.verification.vote_service import is_duplicate_vote

NOW = datetime(2025, 3, 1, 12, 0, 0)


@pytest.fixture
def service(db):
    return VoteService(db)


@pytest.fixture
def creator(make_user):
    return make_user()


@pytest.fixture
def landmark(make_submission, creator):
    return make_submission(creator)


def vote_rows(db, submission_id):
    return db.query(VoteDB).filter(VoteDB.submission_id == submission_id).all()


# =============================================================================
# VOTE RECORDING
# =============================================================================

class TestVoteRecording:
    """Upsert semantics of a cast vote."""

    def test_first_vote_is_recorded(self, db, service, make_user, landmark):
        voter = make_user()
        result = service.cast_vote(landmark.id, voter.id, "yes", now=NOW)

        assert result.replaced_existing is False
        assert result.applied_weight == 1.0
        assert result.tally.vote_count == 1
        rows = vote_rows(db, landmark.id)
        assert len(rows) == 1
        assert rows[0].choice == VoteChoice.YES
        assert rows[0].weight == 1.0

    def test_recasting_replaces_instead_of_adding(self, db, service, make_user, landmark):
        voter = make_user()
        service.cast_vote(landmark.id, voter.id, "yes", now=NOW)
        result = service.cast_vote(landmark.id, voter.id, "no", now=NOW + timedelta(hours=1))

        assert result.replaced_existing is True
        rows = vote_rows(db, landmark.id)
        assert len(rows) == 1
        assert rows[0].choice == VoteChoice.NO
        assert rows[0].cast_at == NOW + timedelta(hours=1)

    def test_same_vote_twice_is_idempotent(self, db, service, make_user, landmark):
        voter = make_user()
        first = service.cast_vote(landmark.id, voter.id, "yes", now=NOW)
        second = service.cast_vote(landmark.id, voter.id, "yes", now=NOW)

        assert len(vote_rows(db, landmark.id)) == 1
        assert second.tally.total_weight == pytest.approx(first.tally.total_weight)
        assert second.tally.status == first.tally.status

    def test_choice_is_case_insensitive(self, service, make_user, landmark):
        voter = make_user()
        result = service.cast_vote(landmark.id, voter.id, " YES ", now=NOW)
        assert result.tally.yes_weight == pytest.approx(1.0)

    def test_weight_is_fixed_at_cast_time(self, db, service, make_user, landmark):
        voter = make_user(reputation_score=75)
        service.cast_vote(landmark.id, voter.id, "yes", now=NOW)

        voter.reputation_score = 10
        db.commit()

        assert vote_rows(db, landmark.id)[0].weight == 2.0

    def test_snapshot_is_persisted(self, db, service, make_user, landmark):
        supers = [make_user(is_super=True) for _ in range(2)]
        for s in supers:
            service.cast_vote(landmark.id, s.id, "yes", now=NOW)

        db.expire_all()
        stored = db.query(SubmissionDB).filter(SubmissionDB.id == landmark.id).one()
        assert stored.status == SubmissionStatus.VERIFIED
        assert stored.verified is True
        assert stored.total_weight == pytest.approx(8.0)
        assert stored.last_vote_at == NOW
        assert stored.vote_revision == 2

    def test_route_votes_use_the_same_engine(self, service, make_user, make_submission, creator):
        route = make_submission(creator, kind=SubmissionKind.ROUTE)
        supers = [make_user(is_super=True) for _ in range(2)]
        for s in supers:
            result = service.cast_vote(route.id, s.id, "yes", kind=SubmissionKind.ROUTE, now=NOW)
        assert result.tally.status == SubmissionStatus.VERIFIED


# =============================================================================
# FAILURES
# =============================================================================

class TestVoteFailures:
    """Failed votes leave no trace."""

    @pytest.mark.parametrize("choice", ["maybe", "", None, 1])
    def test_invalid_choice_writes_nothing(self, db, service, make_user, landmark, choice):
        voter = make_user()
        with pytest.raises(InvalidChoice):
            service.cast_vote(landmark.id, voter.id, choice, now=NOW)

        assert vote_rows(db, landmark.id) == []
        db.expire_all()
        assert db.query(SubmissionDB).filter(SubmissionDB.id == landmark.id).one().vote_revision == 0

    def test_unknown_submission(self, db, service, make_user):
        voter = make_user()
        with pytest.raises(SubmissionNotFound):
            service.cast_vote("missing", voter.id, "yes", now=NOW)
        assert db.query(VoteDB).count() == 0

    def test_unknown_contributor(self, db, service, landmark):
        with pytest.raises(ContributorNotFound):
            service.cast_vote(landmark.id, "ghost", "yes", now=NOW)
        assert vote_rows(db, landmark.id) == []

    def test_wrong_kind_is_not_found(self, service, make_user, landmark):
        voter = make_user()
        with pytest.raises(SubmissionNotFound):
            service.cast_vote(landmark.id, voter.id, "yes", kind=SubmissionKind.ROUTE, now=NOW)

    def test_store_error_rolls_back(self, db, service, make_user, landmark):
        voter = make_user()
        error = OperationalError("UPDATE submissions", {}, Exception("disk I/O error"))
        with patch.object(service.submissions, "save_submission", side_effect=error):
            with pytest.raises(PersistenceFailure):
                service.cast_vote(landmark.id, voter.id, "yes", now=NOW)

        assert vote_rows(db, landmark.id) == []


# =============================================================================
# FIRST VERIFICATION
# =============================================================================

class TestFirstVerification:
    """Creator credit fires once per submission."""

    def test_counter_fires_once_across_status_flapping(self, db, service, make_user, landmark, creator):
        super_voter = make_user(is_super=True)
        trusted = make_user(reputation_score=70)
        base = make_user()

        statuses = []
        statuses.append(service.cast_vote(landmark.id, super_voter.id, "yes", now=NOW).tally.status)
        statuses.append(service.cast_vote(landmark.id, trusted.id, "yes", now=NOW).tally.status)
        statuses.append(service.cast_vote(landmark.id, base.id, "no", now=NOW).tally.status)
        statuses.append(service.cast_vote(landmark.id, trusted.id, "no", now=NOW).tally.status)
        statuses.append(service.cast_vote(landmark.id, trusted.id, "yes", now=NOW).tally.status)

        assert statuses == [
            SubmissionStatus.PENDING,
            SubmissionStatus.VERIFIED,
            SubmissionStatus.VERIFIED,
            SubmissionStatus.DISPUTED,
            SubmissionStatus.VERIFIED,
        ]

        db.refresh(creator)
        assert creator.verified_landmarks_added == 1
        assert creator.verified_routes_added == 0
        assert creator.contributions_verified == 1
        assert creator.reputation_score == 5

        db.expire_all()
        stored = db.query(SubmissionDB).filter(SubmissionDB.id == landmark.id).one()
        assert stored.first_verified_at == NOW

    def test_status_transition_is_logged(self, service, make_user, landmark, caplog):
        supers = [make_user(is_super=True) for _ in range(2)]
        with caplog.at_level(logging.INFO, logger="village_map.services.verification.vote_service"):
            service.cast_vote(landmark.id, supers[0].id, "yes", now=NOW)
            assert "->" not in caplog.text
            service.cast_vote(landmark.id, supers[1].id, "yes", now=NOW)

        assert f"Submission {landmark.id}: pending -> verified" in caplog.text

    def test_route_verification_counts_as_route(self, db, service, make_user, make_submission, creator):
        route = make_submission(creator, kind=SubmissionKind.ROUTE)
        for s in [make_user(is_super=True) for _ in range(2)]:
            service.cast_vote(route.id, s.id, "yes", now=NOW)

        db.refresh(creator)
        assert creator.verified_routes_added == 1
        assert creator.verified_landmarks_added == 0


# =============================================================================
# PROMOTION
# =============================================================================

class TestPromotion:
    """Ten verified submissions make a super contributor."""

    def verify(self, service, make_user, submission):
        supers = [make_user(is_super=True) for _ in range(2)]
        results = [service.cast_vote(submission.id, s.id, "yes", now=NOW) for s in supers]
        return results[-1]

    def test_tenth_verified_submission_promotes(self, db, service, make_user, make_submission):
        creator = make_user(verified_landmarks_added=5, verified_routes_added=4)
        result = self.verify(service, make_user, make_submission(creator))

        assert result.creator_promoted is True
        db.refresh(creator)
        assert creator.is_super is True
        assert creator.role == ContributorRole.SUPER.value

    def test_ninth_does_not_promote(self, db, service, make_user, make_submission):
        creator = make_user(verified_landmarks_added=4, verified_routes_added=4)
        result = self.verify(service, make_user, make_submission(creator))

        assert result.creator_promoted is False
        db.refresh(creator)
        assert creator.is_super is False

    def test_admin_keeps_admin_role(self, db, service, make_user, make_submission):
        creator = make_user(role=ContributorRole.ADMIN.value, verified_landmarks_added=9)
        self.verify(service, make_user, make_submission(creator))

        db.refresh(creator)
        assert creator.is_super is True
        assert creator.role == ContributorRole.ADMIN.value

    def test_promotion_survives_rejection(self, db, service, make_user, make_submission):
        creator = make_user(verified_landmarks_added=9)
        landmark = make_submission(creator)
        self.verify(service, make_user, landmark)

        for s in [make_user(is_super=True) for _ in range(4)]:
            service.cast_vote(landmark.id, s.id, "no", now=NOW)

        db.refresh(creator)
        assert creator.is_super is True

    def test_promoted_creator_votes_with_super_weight(self, db, service, make_user, make_submission):
        creator = make_user(verified_landmarks_added=9)
        self.verify(service, make_user, make_submission(creator))

        other = make_submission(make_user())
        result = service.cast_vote(other.id, creator.id, "yes", now=NOW)
        assert result.applied_weight == 4.0


# =============================================================================
# OUTCOME SETTLEMENT
# =============================================================================

class TestOutcomeSettlement:
    """Votes are judged once, against the first final outcome."""

    def test_verified_outcome_judges_votes(self, db, service, make_user, landmark):
        dissenter = make_user()
        supers = [make_user(is_super=True) for _ in range(2)]

        service.cast_vote(landmark.id, dissenter.id, "no", now=NOW)
        for s in supers:
            result = service.cast_vote(landmark.id, s.id, "yes", now=NOW)
        assert result.tally.status == SubmissionStatus.VERIFIED

        for s in supers:
            db.refresh(s)
            assert s.votes_judged == 1
            assert s.correct_votes == 1
            assert s.reputation_score == 1

        db.refresh(dissenter)
        assert dissenter.votes_judged == 1
        assert dissenter.correct_votes == 0
        assert dissenter.reputation_score == 0

    def test_rejected_outcome_rewards_no_votes(self, db, service, make_user, landmark):
        critic = make_user(reputation_score=99, is_super=True)
        result = service.cast_vote(landmark.id, critic.id, "no", now=NOW)
        assert result.tally.status == SubmissionStatus.REJECTED

        db.refresh(critic)
        assert critic.correct_votes == 1
        assert critic.reputation_score == 100

        service.cast_vote(landmark.id, critic.id, "no", now=NOW)
        db.refresh(critic)
        assert critic.votes_judged == 1
        assert critic.reputation_score == 100

    def test_settlement_happens_once(self, db, service, make_user, landmark):
        supers = [make_user(is_super=True) for _ in range(2)]
        for s in supers:
            service.cast_vote(landmark.id, s.id, "yes", now=NOW)

        late = make_user()
        service.cast_vote(landmark.id, late.id, "yes", now=NOW)

        db.refresh(late)
        assert late.votes_judged == 0
        for s in supers:
            db.refresh(s)
            assert s.votes_judged == 1

    def test_accuracy_feeds_back_into_weight(self, db, service, make_user, make_submission, creator):
        voter = make_user(votes_judged=4, correct_votes=3)
        first = make_submission(creator)
        service.cast_vote(first.id, voter.id, "yes", now=NOW)
        for s in [make_user(is_super=True) for _ in range(2)]:
            service.cast_vote(first.id, s.id, "yes", now=NOW)
        # 4 / 5 correct now, which reaches the accuracy threshold

        db.refresh(voter)
        assert voter.votes_judged == 5
        second = make_submission(creator)
        result = service.cast_vote(second.id, voter.id, "yes", now=NOW)
        assert result.applied_weight == 2.0


# =============================================================================
# CONCURRENCY
# =============================================================================

class TestConcurrency:
    """Optimistic version checks and bounded retries."""

    def test_stale_write_is_retried(self, db, service, make_user, landmark):
        voter = make_user()
        original = service.submissions.save_submission
        calls = {"count": 0}

        def flaky_save(submission, now):
            calls["count"] += 1
            if calls["count"] == 1:
                raise StaleDataError("submission row changed underneath")
            return original(submission, now)

        with patch.object(service.submissions, "save_submission", side_effect=flaky_save):
            result = service.cast_vote(landmark.id, voter.id, "yes", now=NOW)

        assert calls["count"] == 2
        assert result.tally.vote_count == 1
        assert len(vote_rows(db, landmark.id)) == 1

    def test_retries_exhausted_raises_conflict(self, db, make_user, landmark):
        service = VoteService(db, max_retries=2)
        voter = make_user()
        with patch.object(
            service.submissions, "save_submission", side_effect=StaleDataError("always stale")
        ) as save:
            with pytest.raises(ConcurrencyConflict):
                service.cast_vote(landmark.id, voter.id, "yes", now=NOW)

        assert save.call_count == 2
        assert vote_rows(db, landmark.id) == []

    def test_interleaved_writer_is_detected_and_replayed(self, tmp_path):
        """Two sessions race on one submission; neither vote is lost."""
        engine = create_engine(f"sqlite:///{tmp_path / 'votes.db'}")
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = Session()
        creator = UserDB(id="creator", email="c@example.com", username="creator", password_hash="x")
        alice = UserDB(id="alice", email="a@example.com", username="alice", password_hash="x")
        bob = UserDB(id="bob", email="b@example.com", username="bob", password_hash="x")
        landmark = SubmissionDB(
            id="well", kind=SubmissionKind.LANDMARK, name="Well",
            created_by="creator", points=[{"lat": 31.0, "lon": 34.0}],
        )
        setup.add_all([creator, alice, bob, landmark])
        setup.commit()
        setup.close()

        session_a = Session()
        session_b = Session()
        service_a = VoteService(session_a)
        original_upsert = service_a.submissions.upsert_vote
        calls = {"count": 0}

        def upsert_after_rival(*args, **kwargs):
            calls["count"] += 1
            if calls["count"] == 1:
                VoteService(session_b).cast_vote("well", "bob", "yes", now=NOW)
            return original_upsert(*args, **kwargs)

        try:
            with patch.object(service_a.submissions, "upsert_vote", side_effect=upsert_after_rival):
                result = service_a.cast_vote("well", "alice", "yes", now=NOW)

            assert calls["count"] == 2
            assert result.tally.vote_count == 2
            assert result.tally.yes_weight == pytest.approx(2.0)

            check = Session()
            stored = check.query(SubmissionDB).filter(SubmissionDB.id == "well").one()
            assert stored.vote_revision == 2
            assert {v.user_id for v in stored.votes} == {"alice", "bob"}
            check.close()
        finally:
            session_a.close()
            session_b.close()
            engine.dispose()

    def test_duplicate_vote_insert_is_retried(self, db, service, make_user, landmark):
        voter = make_user()
        original = service.submissions.save_submission
        calls = {"count": 0}

        def racing_save(submission, now):
            calls["count"] += 1
            if calls["count"] == 1:
                raise IntegrityError(
                    "INSERT INTO votes", {},
                    Exception("UNIQUE constraint failed: votes.submission_id, votes.user_id"),
                )
            return original(submission, now)

        with patch.object(service.submissions, "save_submission", side_effect=racing_save):
            result = service.cast_vote(landmark.id, voter.id, "yes", now=NOW)

        assert calls["count"] == 2
        assert result.tally.vote_count == 1
        assert len(vote_rows(db, landmark.id)) == 1

    def test_other_integrity_error_is_not_retried(self, db, service, make_user, landmark):
        voter = make_user()
        error = IntegrityError("INSERT INTO votes", {}, Exception("FOREIGN KEY constraint failed"))
        with patch.object(service.submissions, "save_submission", side_effect=error) as save:
            with pytest.raises(PersistenceFailure):
                service.cast_vote(landmark.id, voter.id, "yes", now=NOW)

        assert save.call_count == 1
        assert vote_rows(db, landmark.id) == []


class TestDuplicateVoteDetection:

    def test_sqlite_unique_message(self):
        error = IntegrityError(
            "INSERT", {}, Exception("UNIQUE constraint failed: votes.submission_id, votes.user_id")
        )
        assert is_duplicate_vote(error) is True

    def test_named_constraint_in_message(self):
        error = IntegrityError("INSERT", {}, Exception(f'violates unique constraint "{VOTE_UNIQUE_CONSTRAINT}"'))
        assert is_duplicate_vote(error) is True

    def test_driver_reported_constraint_name(self):
        orig = Exception("duplicate key value")
        orig.diag = SimpleNamespace(constraint_name="uq_users_email")
        assert is_duplicate_vote(IntegrityError("INSERT", {}, orig)) is False

        orig.diag = SimpleNamespace(constraint_name=VOTE_UNIQUE_CONSTRAINT)
        assert is_duplicate_vote(IntegrityError("INSERT", {}, orig)) is True

    def test_unrelated_violation(self):
        error = IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed: votes.choice"))
        assert is_duplicate_vote(error) is False


# =============================================================================
# CONTRIBUTOR COUNTERS
# =============================================================================

class TestProfileStore:
    """Counter updates are applied in SQL against the committed row."""

    def test_counter_increment_survives_stale_identity_map(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'profiles.db'}")
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = Session()
        setup.add(UserDB(id="creator", email="c@example.com", username="creator", password_hash="x"))
        setup.commit()
        setup.close()

        session_a = Session()
        session_b = Session()
        try:
            store_a = ContributorProfileStore(session_a)
            assert store_a.get_profile("creator").verified_landmarks_added == 0

            ContributorProfileStore(session_b).increment_verified_count("creator", SubmissionKind.LANDMARK)
            session_b.commit()

            user = store_a.increment_verified_count("creator", SubmissionKind.LANDMARK)
            session_a.commit()

            assert user.verified_landmarks_added == 2
            check = Session()
            stored = check.query(UserDB).filter(UserDB.id == "creator").one()
            assert stored.verified_landmarks_added == 2
            assert stored.contributions_verified == 2
            check.close()
        finally:
            session_a.close()
            session_b.close()
            engine.dispose()

    def test_reputation_is_clamped(self, db, creator):
        store = ContributorProfileStore(db)
        assert store.adjust_reputation(creator.id, 500) == 100
        assert store.adjust_reputation(creator.id, -500) == 0
        assert store.adjust_reputation(creator.id, 7) == 7

    def test_promotion_is_idempotent(self, db, creator):
        store = ContributorProfileStore(db)
        assert store.promote_to_super(creator.id) is True
        assert store.promote_to_super(creator.id) is False

        db.refresh(creator)
        assert creator.is_super is True
        assert creator.role == ContributorRole.SUPER.value

    def test_unknown_contributor(self, db):
        store = ContributorProfileStore(db)
        with pytest.raises(ContributorNotFound):
            store.increment_verified_count("nobody", SubmissionKind.ROUTE)
        with pytest.raises(ContributorNotFound):
            store.promote_to_super("nobody")


# =============================================================================
# READ PATH
# =============================================================================

class TestRecomputeTally:

    def test_recompute_does_not_write(self, db, service, make_user, landmark):
        for s in [make_user(is_super=True) for _ in range(2)]:
            service.cast_vote(landmark.id, s.id, "yes", now=NOW)

        later = service.recompute_tally(landmark.id, now=NOW + timedelta(hours=300))
        assert later["status"] == SubmissionStatus.PENDING.value
        assert later["total_weight"] < 8.0

        db.expire_all()
        stored = db.query(SubmissionDB).filter(SubmissionDB.id == landmark.id).one()
        assert stored.status == SubmissionStatus.VERIFIED
        assert stored.total_weight == pytest.approx(8.0)
