"""Tests for the upload attempt lifecycle state machine.

Covers:
  - Legal transitions along the success, retry and reinit paths
  - Illegal transitions raise TransitionNotAllowed
  - Final states
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from presigned_upload.upload.fsm import UploadAttemptSM


# ======================================================================
# Legal transitions
# ======================================================================


class TestLegalTransitions:
    """Paths the orchestrator is allowed to take."""

    def test_starts_in_need_init(self):
        """A fresh machine sits in need_init."""
        sm = UploadAttemptSM()
        assert sm.current_state.value == "need_init"
        assert sm.history == ["need_init"]

    def test_happy_path(self):
        """init then succeed reaches the final succeeded state."""
        sm = UploadAttemptSM()
        sm.fire("initialized")
        sm.fire("succeed")
        assert sm.history == ["need_init", "uploading", "succeeded"]
        assert sm.current_state.final

    def test_retry_with_cached_descriptor(self):
        """A retry goes back to uploading without re-initializing."""
        sm = UploadAttemptSM()
        for event in ("initialized", "fail_attempt", "retry", "succeed"):
            sm.fire(event)
        assert sm.history == ["need_init", "uploading", "retrying", "uploading", "succeeded"]

    def test_reinit_after_expiry(self):
        """reinit returns to need_init before the next upload."""
        sm = UploadAttemptSM()
        for event in ("initialized", "fail_attempt", "reinit", "initialized", "succeed"):
            sm.fire(event)
        assert sm.history == [
            "need_init",
            "uploading",
            "retrying",
            "need_init",
            "uploading",
            "succeeded",
        ]

    def test_init_failure_then_give_up(self):
        """An init failure can end in the final failed state."""
        sm = UploadAttemptSM()
        sm.fire("fail_attempt")
        assert sm.fire("give_up") == "failed"
        assert sm.current_state.final

    @pytest.mark.parametrize(
        "events",
        [
            ["give_up"],
            ["initialized", "give_up"],
            ["initialized", "fail_attempt", "give_up"],
        ],
    )
    def test_give_up_from_any_live_state(self, events):
        """give_up is legal from every non-final state."""
        sm = UploadAttemptSM()
        for event in events:
            sm.fire(event)
        assert sm.current_state.value == "failed"


# ======================================================================
# Illegal transitions
# ======================================================================


class TestIllegalTransitions:
    """Events the machine rejects."""

    def test_cannot_succeed_without_descriptor(self):
        """succeed is illegal before a descriptor exists."""
        sm = UploadAttemptSM()
        with pytest.raises(TransitionNotAllowed):
            sm.fire("succeed")

    def test_cannot_retry_from_uploading(self):
        """retry needs a failed attempt first."""
        sm = UploadAttemptSM()
        sm.fire("initialized")
        with pytest.raises(TransitionNotAllowed):
            sm.fire("retry")

    def test_final_states_are_terminal(self):
        """No event leaves succeeded."""
        sm = UploadAttemptSM()
        sm.fire("initialized")
        sm.fire("succeed")
        for event in ("initialized", "fail_attempt", "give_up", "retry"):
            with pytest.raises(TransitionNotAllowed):
                sm.fire(event)
        assert sm.history[-1] == "succeeded"
