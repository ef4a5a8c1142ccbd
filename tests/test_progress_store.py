"""
Unit tests for toeic_exam.services.progress_store (auto-save and resume).
"""

from toeic_exam.models.session_state import SessionStatus
from toeic_exam.services.clock import ManualClock
from toeic_exam.services.exam_session import ExamSession
from toeic_exam.services.progress_store import AutoSaver, InMemoryProgressStore


class TestInMemoryProgressStore:
    def test_delete_when_missing_then_no_error(self):
        store = InMemoryProgressStore()
        store.delete("nothing")
        assert store.load("nothing") is None

    def test_save_when_key_reused_then_latest_wins(self, running_session):
        store = InMemoryProgressStore()
        store.save("k", running_session.checkpoint())
        running_session.select_answer("q1", "A")
        store.save("k", running_session.checkpoint())

        assert len(store.load("k").answers) == 1


class TestAutoSaver:
    def test_autosave_when_interval_elapses_then_checkpoint_written(self, running_session, clock):
        store = InMemoryProgressStore()
        saver = AutoSaver(running_session, store, "key", interval=30).attach()

        clock.advance(29)
        assert saver.save_count == 0

        clock.advance(1)
        assert saver.save_count == 1
        assert store.load("key").seconds_remaining == 30

    def test_autosave_when_paused_then_saved_immediately(self, running_session, clock):
        store = InMemoryProgressStore()
        saver = AutoSaver(running_session, store, "key", interval=30).attach()
        clock.advance(3)

        running_session.pause()

        assert saver.save_count == 1
        assert store.load("key").seconds_remaining == 57

    def test_autosave_when_submitted_then_checkpoint_removed_and_detached(
        self, running_session, clock
    ):
        store = InMemoryProgressStore()
        saver = AutoSaver(running_session, store, "key", interval=30).attach()
        running_session.pause()
        assert store.load("key") is not None

        running_session.submit()

        assert store.load("key") is None
        saver.detach()

    def test_autosave_when_detached_then_nothing_saved(self, running_session, clock):
        store = InMemoryProgressStore()
        saver = AutoSaver(running_session, store, "key", interval=1).attach()
        saver.detach()
        saver.detach()

        clock.advance(5)

        assert store.load("key") is None

    def test_autosave_when_unlimited_then_saves_on_next_change(
        self, unlimited_config, reading_questions, clock
    ):
        session = ExamSession(unlimited_config, reading_questions, clock)
        store = InMemoryProgressStore()
        saver = AutoSaver(session, store, "key", interval=30).attach()
        session.start()
        clock.advance(31)
        assert saver.save_count == 0

        session.select_answer("q1", "B")

        assert saver.save_count == 1
        assert store.load("key").elapsed_seconds == 31

    def test_saved_checkpoint_when_restored_then_session_continues(
        self, running_session, one_minute_config, reading_questions, clock
    ):
        store = InMemoryProgressStore()
        AutoSaver(running_session, store, one_minute_config.config_id).attach()
        running_session.select_answer("q1", "A")
        clock.advance(8)
        running_session.pause()
        running_session.dispose()

        checkpoint = store.load(one_minute_config.config_id)
        restored = ExamSession.restore(one_minute_config, reading_questions, checkpoint, ManualClock())

        assert restored.status == SessionStatus.PAUSED
        assert restored.seconds_remaining == 52
        assert restored.answered_count == 1
