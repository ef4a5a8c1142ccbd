"""
Unit tests for toeic_exam.services.exam_session (the session state machine).

Time is driven by ManualClock; only the pause/resume cadence test runs a real ThreadingClock.
"""

import time

import pytest

from toeic_exam.models.question_model import ExamConfiguration
from toeic_exam.models.result_model import PartScore, TerminationReason
from toeic_exam.models.session_state import UNLIMITED, SessionStatus
from toeic_exam.services.clock import ManualClock, ThreadingClock
from toeic_exam.services.errors import (
    AlreadySubmitted,
    InvalidTransition,
    LoadFailed,
    NavigationLocked,
    OutOfRange,
)
from toeic_exam.services.exam_session import ExamSession, open_session
from toeic_exam.services.question_supply import InMemoryQuestionSupply


class LateExpiryClock(ManualClock):
    """Reaches zero but holds the expiry signal until release_expiry()."""

    def _emit_expire(self):
        self.expiry_pending = True

    def release_expiry(self):
        ManualClock._emit_expire(self)


class TestLifecycle:
    def test_start_when_called_twice_then_invalid_transition(
        self, one_minute_config, reading_questions, clock
    ):
        session = ExamSession(one_minute_config, reading_questions, clock)
        session.start()

        with pytest.raises(InvalidTransition):
            session.start()

        assert session.status == SessionStatus.RUNNING
        assert clock.arm_count == 1

    def test_new_session_when_created_then_not_started_with_limit_held(
        self, one_minute_config, reading_questions, clock
    ):
        session = ExamSession(one_minute_config, reading_questions, clock)

        assert session.status == SessionStatus.NOT_STARTED
        assert session.seconds_remaining == 60
        assert not clock.is_armed

    def test_init_when_no_questions_then_load_failed(self, one_minute_config, clock):
        with pytest.raises(LoadFailed):
            ExamSession(one_minute_config, [], clock)

    def test_init_when_duplicate_ids_then_load_failed(
        self, one_minute_config, question_factory, clock
    ):
        questions = [question_factory("dup", 5), question_factory("dup", 7)]
        with pytest.raises(LoadFailed):
            ExamSession(one_minute_config, questions, clock)

    def test_submit_when_not_started_then_invalid_transition(
        self, one_minute_config, reading_questions, clock
    ):
        session = ExamSession(one_minute_config, reading_questions, clock)
        with pytest.raises(InvalidTransition):
            session.submit()
        assert session.result is None


class TestExpiry:
    def test_expiry_when_time_runs_out_then_scored_as_expired(self, running_session, clock):
        running_session.select_answer("q1", "A")
        running_session.select_answer("q2", "B")

        clock.advance(60)

        result = running_session.result
        assert running_session.status == SessionStatus.EXPIRED
        assert running_session.termination_reason == TerminationReason.TIME_EXPIRED
        assert result.correct_count == 1
        assert result.score_percent == 33
        assert result.per_part_breakdown[5] == PartScore(total=2, correct=1, accuracy=50.0)
        assert result.per_part_breakdown[7] == PartScore(total=1, correct=0, accuracy=0.0)
        assert result.time_spent_seconds == 60
        assert running_session.seconds_remaining == 0

    def test_expiry_when_signal_repeated_then_scored_once(self, running_session, clock):
        clock.advance(60)
        first = running_session.result

        clock.fire_expiry()
        clock.fire_expiry()

        assert running_session.result is first
        assert running_session.status == SessionStatus.EXPIRED

    def test_submit_when_already_expired_then_already_submitted(self, running_session, clock):
        clock.advance(60)
        first = running_session.result

        with pytest.raises(AlreadySubmitted):
            running_session.submit()
        assert running_session.result is first

    def test_pause_when_clock_hit_zero_before_signal_then_expires(
        self, one_minute_config, reading_questions
    ):
        clock = LateExpiryClock()
        session = ExamSession(one_minute_config, reading_questions, clock)
        session.start()
        clock.advance(60)
        assert session.status == SessionStatus.RUNNING

        with pytest.raises(AlreadySubmitted):
            session.pause()
        clock.release_expiry()

        assert session.status == SessionStatus.EXPIRED
        assert session.result.time_spent_seconds == 60

    def test_select_answer_when_clock_hit_zero_before_signal_then_rejected_and_expired(
        self, one_minute_config, reading_questions
    ):
        clock = LateExpiryClock()
        session = ExamSession(one_minute_config, reading_questions, clock)
        session.start()
        clock.advance(60)

        with pytest.raises(AlreadySubmitted):
            session.select_answer("q1", "A")

        assert session.status == SessionStatus.EXPIRED
        assert session.answer_for("q1") is None
        assert session.termination_reason == TerminationReason.TIME_EXPIRED

    def test_next_when_clock_hit_zero_before_signal_then_index_unchanged(
        self, one_minute_config, reading_questions
    ):
        clock = LateExpiryClock()
        session = ExamSession(one_minute_config, reading_questions, clock)
        session.start()
        clock.advance(60)

        with pytest.raises(AlreadySubmitted):
            session.next()

        assert session.current_index == 0
        assert session.status == SessionStatus.EXPIRED

    def test_submit_when_clock_hit_zero_before_signal_then_finalized_as_expired(
        self, one_minute_config, reading_questions
    ):
        clock = LateExpiryClock()
        session = ExamSession(one_minute_config, reading_questions, clock)
        session.start()
        session.select_answer("q1", "A")
        clock.advance(60)

        with pytest.raises(AlreadySubmitted):
            session.submit()
        clock.release_expiry()

        assert session.status == SessionStatus.EXPIRED
        assert session.submission.termination_reason == TerminationReason.TIME_EXPIRED
        assert session.result.correct_count == 1
        assert session.result.time_spent_seconds == 60


class TestSubmit:
    def test_submit_when_called_twice_then_already_submitted(self, running_session):
        first = running_session.submit()

        with pytest.raises(AlreadySubmitted):
            running_session.submit()
        assert running_session.result is first
        assert running_session.status == SessionStatus.SUBMITTED

    def test_submit_when_running_then_record_describes_submission(
        self, running_session, one_minute_config, clock
    ):
        running_session.select_answer("q1", "A")
        clock.advance(12)
        running_session.submit()

        record = running_session.submission
        assert record.exam_config_id == one_minute_config.config_id
        assert record.termination_reason == TerminationReason.USER_SUBMITTED
        assert record.correct_question_ids == ["q1"]
        assert [a.question_id for a in record.answers] == ["q1"]
        assert record.score_result.time_spent_seconds == 12
        assert not clock.is_armed

    def test_submit_when_paused_then_uses_held_time(self, running_session, clock):
        clock.advance(10)
        running_session.pause()
        clock.advance(500)

        result = running_session.submit()

        assert result.time_spent_seconds == 10
        assert running_session.seconds_remaining == 50


class TestPauseResume:
    def test_pause_resume_when_toggled_faster_than_a_tick_then_countdown_advances(
        self, one_minute_config, reading_questions
    ):
        session = ExamSession(one_minute_config, reading_questions, ThreadingClock(interval=0.05))
        session.start()
        try:
            for _ in range(20):
                time.sleep(0.04)
                session.pause()
                session.resume()
            session.pause()

            assert session.status == SessionStatus.PAUSED
            assert session.seconds_remaining <= 52
        finally:
            session.dispose()

    def test_pause_when_wall_time_passes_then_remaining_unchanged(self, running_session, clock):
        clock.advance(7)
        running_session.pause()
        before = running_session.seconds_remaining

        clock.advance(1000)

        assert running_session.seconds_remaining == before == 53
        assert running_session.status == SessionStatus.PAUSED

    def test_resume_when_paused_then_rearms_from_same_value(self, running_session, clock):
        clock.advance(7)
        running_session.pause()
        clock.advance(30)

        running_session.resume()
        clock.advance(3)

        assert running_session.seconds_remaining == 50
        assert clock.arm_count == 2

    def test_time_accounting_when_paused_repeatedly_then_spent_plus_remaining_is_limit(
        self, running_session, clock
    ):
        for _ in range(3):
            clock.advance(5)
            running_session.pause()
            clock.advance(40)
            running_session.resume()
        clock.advance(4)

        result = running_session.submit()

        assert result.time_spent_seconds == 19
        assert result.time_spent_seconds + running_session.seconds_remaining == 60

    def test_resume_when_running_then_invalid_transition(self, running_session):
        with pytest.raises(InvalidTransition):
            running_session.resume()

    def test_pause_when_submitted_then_already_submitted(self, running_session):
        running_session.submit()
        with pytest.raises(AlreadySubmitted):
            running_session.pause()

    def test_pause_when_unlimited_then_noop(self, unlimited_config, reading_questions, clock):
        session = ExamSession(unlimited_config, reading_questions, clock)
        session.start()
        assert session.seconds_remaining == UNLIMITED

        session.pause()
        clock.advance(10)
        session.resume()

        assert session.status == SessionStatus.RUNNING
        assert session.seconds_remaining == UNLIMITED
        assert clock.arm_count == 0

    def test_submit_when_unlimited_then_time_is_wall_duration(
        self, unlimited_config, reading_questions, clock
    ):
        session = ExamSession(unlimited_config, reading_questions, clock)
        clock.advance(100)
        session.start()
        clock.advance(42)

        assert session.submit().time_spent_seconds == 42


class TestAnswers:
    def test_select_answer_when_current_question_then_elapsed_since_shown(
        self, running_session, clock
    ):
        clock.advance(5)
        running_session.select_answer("q1", "A")
        clock.advance(2)
        running_session.select_answer("q1", "B")

        answer = running_session.answer_for("q1")
        assert answer.selected_choice == "B"
        assert answer.per_question_elapsed_ms == 7000
        assert running_session.current_index == 0

    def test_select_answer_when_after_navigation_then_clock_restarts(self, running_session, clock):
        clock.advance(4)
        running_session.next()
        clock.advance(3)
        running_session.select_answer("q2", "A")

        assert running_session.answer_for("q2").per_question_elapsed_ms == 3000

    def test_select_answer_when_pause_in_between_then_pause_not_counted(
        self, running_session, clock
    ):
        clock.advance(4)
        running_session.pause()
        clock.advance(100)
        running_session.resume()
        clock.advance(1)
        running_session.select_answer("q1", "C")

        assert running_session.answer_for("q1").per_question_elapsed_ms == 5000

    def test_select_answer_when_other_question_then_no_elapsed_time(self, running_session, clock):
        clock.advance(9)
        running_session.select_answer("q3", "C")
        assert running_session.answer_for("q3").per_question_elapsed_ms == 0

    def test_select_answer_when_choice_not_offered_then_out_of_range(self, running_session):
        with pytest.raises(OutOfRange):
            running_session.select_answer("q1", "E")
        assert running_session.answer_for("q1") is None

    def test_select_answer_when_unknown_question_then_out_of_range(self, running_session):
        with pytest.raises(OutOfRange):
            running_session.select_answer("missing", "A")

    def test_select_answer_when_paused_then_invalid_transition(self, running_session):
        running_session.pause()
        with pytest.raises(InvalidTransition):
            running_session.select_answer("q1", "A")
        assert running_session.answered_count == 0

    def test_select_answer_when_cleared_then_unanswered(self, running_session):
        running_session.select_answer("q1", "A")
        running_session.select_answer("q1", "")

        assert running_session.answered_count == 0
        assert running_session.submit().correct_count == 0

    def test_unanswered_question_when_submitted_then_incorrect_with_no_answer(
        self, running_session
    ):
        running_session.select_answer("q1", "A")
        running_session.submit()

        state = running_session.final_state()
        assert "q3" not in state.answers
        assert [q.id for q in running_session.incorrect_questions()] == ["q2", "q3"]


class TestNavigation:
    @pytest.fixture
    def session(self, listening_config, listening_questions, clock):
        session = ExamSession(listening_config, listening_questions, clock)
        session.start()
        yield session
        session.dispose()

    def test_previous_when_in_listening_part_then_locked(self, session):
        session.next()
        session.next()

        with pytest.raises(NavigationLocked):
            session.previous()
        with pytest.raises(NavigationLocked):
            session.go_to(0)
        assert session.current_index == 2

    def test_previous_when_first_listening_question_then_locked_not_out_of_range(self, session):
        with pytest.raises(NavigationLocked):
            session.previous()

    def test_go_to_when_forward_in_listening_part_then_allowed(self, session):
        session.go_to(3)
        assert session.current_index == 3

    def test_previous_when_in_reading_part_then_allowed(self, session):
        session.go_to(5)
        session.previous()
        assert session.current_index == 4

    def test_go_to_when_reading_part_then_lock_follows_current_question(self, session):
        session.go_to(4)
        session.go_to(1)
        assert session.current_index == 1
        assert session.is_navigation_locked

    def test_go_to_when_past_end_then_out_of_range(self, session):
        with pytest.raises(OutOfRange):
            session.go_to(6)
        assert session.current_index == 0

    def test_previous_when_first_reading_question_then_out_of_range(
        self, running_session
    ):
        with pytest.raises(OutOfRange):
            running_session.previous()

    def test_next_when_not_started_then_invalid_transition(
        self, listening_config, listening_questions, clock
    ):
        session = ExamSession(listening_config, listening_questions, clock)
        with pytest.raises(InvalidTransition):
            session.next()


class TestFlags:
    def test_toggle_flag_when_called_twice_then_cleared(self, running_session):
        assert running_session.toggle_flag("q2") is True
        assert running_session.snapshot().is_flagged("q2")

        assert running_session.toggle_flag("q2") is False
        assert not running_session.is_flagged("q2")

    def test_toggle_flag_when_paused_then_allowed(self, running_session):
        running_session.pause()
        assert running_session.toggle_flag("q1") is True

    def test_toggle_flag_when_submitted_then_already_submitted(self, running_session):
        running_session.submit()
        with pytest.raises(AlreadySubmitted):
            running_session.toggle_flag("q1")

    def test_toggle_flag_when_flagged_then_score_unaffected(self, running_session):
        running_session.select_answer("q1", "A")
        running_session.toggle_flag("q1")
        assert running_session.submit().correct_count == 1


class TestSnapshot:
    def test_snapshot_when_running_then_display_fields(self, running_session, clock):
        clock.advance(15)
        running_session.select_answer("q1", "A")

        snap = running_session.snapshot()

        assert snap.status == SessionStatus.RUNNING
        assert snap.total_questions == 3
        assert snap.seconds_remaining == 45
        assert snap.time_display == "00:45"
        assert snap.is_time_warning
        assert snap.answered_count == 1
        assert snap.unanswered_count == 2
        assert snap.progress_percent == 33.3
        assert snap.current_question.id == "q1"

    def test_snapshot_when_unlimited_then_marker_and_label(
        self, unlimited_config, reading_questions, clock
    ):
        session = ExamSession(unlimited_config, reading_questions, clock)
        snap = session.snapshot()

        assert snap.seconds_remaining == UNLIMITED
        assert snap.time_display == "무제한"
        assert not snap.is_time_warning

    def test_final_state_when_running_then_invalid_transition(self, running_session):
        with pytest.raises(InvalidTransition):
            running_session.final_state()

    def test_final_state_when_copy_is_mutated_then_session_unchanged(self, running_session):
        running_session.select_answer("q1", "A")
        running_session.submit()

        state = running_session.final_state()
        state.answers.clear()

        assert running_session.final_state().answers["q1"].selected_choice == "A"


class TestSubscription:
    def test_subscribe_when_same_listener_twice_then_called_once(self, running_session):
        seen = []
        running_session.subscribe(seen.append)
        running_session.subscribe(seen.append)

        running_session.next()

        assert len(seen) == 1
        assert seen[0].current_index == 1

    def test_unsubscribe_when_called_twice_then_safe(self, running_session):
        seen = []
        unsubscribe = running_session.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        running_session.next()
        assert seen == []

    def test_notify_when_listener_raises_then_operation_completes(self, running_session):
        def broken(snapshot):
            raise RuntimeError("view crashed")

        running_session.subscribe(broken)
        running_session.next()

        assert running_session.current_index == 1

    def test_tick_when_running_then_listeners_see_countdown(self, running_session, clock):
        remaining = []
        running_session.subscribe(lambda s: remaining.append(s.seconds_remaining))

        clock.advance(3)

        assert remaining == [59, 58, 57]

    def test_expiry_when_subscribed_then_terminal_snapshot_delivered(self, running_session, clock):
        statuses = []
        running_session.subscribe(lambda s: statuses.append(s.status))

        clock.advance(60)

        assert statuses[-1] == SessionStatus.EXPIRED
        assert statuses.count(SessionStatus.EXPIRED) == 1


class TestDispose:
    def test_dispose_when_running_then_clock_stops(self, running_session, clock):
        running_session.dispose()
        clock.advance(120)

        assert not clock.is_armed
        assert running_session.status == SessionStatus.RUNNING
        assert running_session.result is None

    def test_dispose_when_called_twice_then_safe(self, running_session):
        running_session.dispose()
        running_session.dispose()

        with pytest.raises(InvalidTransition):
            running_session.next()

    def test_context_manager_when_exited_then_disposed(
        self, one_minute_config, reading_questions, clock
    ):
        seen = []
        with ExamSession(one_minute_config, reading_questions, clock) as session:
            session.subscribe(seen.append)
            session.start()
        clock.advance(5)

        assert len(seen) == 1
        assert not clock.is_armed


class TestCheckpoint:
    def test_restore_when_standard_then_paused_with_saved_progress(
        self, running_session, one_minute_config, reading_questions, clock
    ):
        running_session.select_answer("q1", "A")
        running_session.next()
        running_session.toggle_flag("q2")
        clock.advance(10)
        checkpoint = running_session.checkpoint()

        new_clock = ManualClock()
        restored = ExamSession.restore(one_minute_config, reading_questions, checkpoint, new_clock)

        assert restored.status == SessionStatus.PAUSED
        assert restored.seconds_remaining == 50
        assert restored.current_index == 1
        assert restored.answer_for("q1").selected_choice == "A"
        assert restored.is_flagged("q2")
        assert not new_clock.is_armed

        restored.resume()
        new_clock.advance(5)
        assert restored.submit().time_spent_seconds == 15

    def test_restore_when_unlimited_then_running_and_elapsed_carried(
        self, unlimited_config, reading_questions, clock
    ):
        session = ExamSession(unlimited_config, reading_questions, clock)
        session.start()
        clock.advance(20)
        checkpoint = session.checkpoint()
        session.dispose()

        new_clock = ManualClock(start=1000)
        restored = ExamSession.restore(unlimited_config, reading_questions, checkpoint, new_clock)
        new_clock.advance(5)

        assert restored.status == SessionStatus.RUNNING
        assert restored.submit().time_spent_seconds == 25

    def test_restore_when_questions_differ_then_load_failed(
        self, running_session, one_minute_config, reading_questions
    ):
        checkpoint = running_session.checkpoint()
        with pytest.raises(LoadFailed):
            ExamSession.restore(one_minute_config, reading_questions[:2], checkpoint, ManualClock())

    def test_restore_when_other_config_then_load_failed(
        self, running_session, reading_questions
    ):
        checkpoint = running_session.checkpoint()
        other = ExamConfiguration(question_count=3, time_limit_minutes=1)
        with pytest.raises(LoadFailed):
            ExamSession.restore(other, reading_questions, checkpoint, ManualClock())

    def test_checkpoint_when_not_started_then_invalid_transition(
        self, one_minute_config, reading_questions, clock
    ):
        session = ExamSession(one_minute_config, reading_questions, clock)
        with pytest.raises(InvalidTransition):
            session.checkpoint()


class TestOpenSession:
    def test_open_session_when_supply_fails_then_load_failed_with_cause(self, one_minute_config):
        class BrokenSupply:
            def fetch_questions(self, config):
                raise ConnectionError("db down")

        with pytest.raises(LoadFailed) as exc_info:
            open_session(one_minute_config, BrokenSupply(), ManualClock())
        assert isinstance(exc_info.value.cause, ConnectionError)

    def test_open_session_when_no_question_in_selected_parts_then_load_failed(
        self, listening_questions
    ):
        config = ExamConfiguration(
            selected_parts=frozenset({6}), question_count=5, time_limit_minutes=10
        )
        with pytest.raises(LoadFailed):
            open_session(config, InMemoryQuestionSupply(listening_questions), ManualClock())

    def test_open_session_when_scaling_then_limit_follows_served_count(
        self, reading_questions
    ):
        config = ExamConfiguration(
            selected_parts=frozenset({5, 7}), question_count=6, time_limit_minutes=60
        )
        session = open_session(
            config, InMemoryQuestionSupply(reading_questions), ManualClock(), scale_time_limit=True
        )

        assert session.total_questions == 3
        assert session.config.time_limit_minutes == 30
        assert session.config.config_id == config.config_id
        assert session.status == SessionStatus.NOT_STARTED
