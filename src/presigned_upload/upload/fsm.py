"""Attempt lifecycle state machine for one orchestrated upload.

Each orchestrated call gets its own FSM instance. Like the rest of the
package it is a validation tool: the orchestrator decides what happens and
fires the matching event, and an illegal event raises
``statemachine.exceptions.TransitionNotAllowed``.
"""

from __future__ import annotations

from statemachine import State, StateMachine


class UploadAttemptSM(StateMachine):
    """Five-state lifecycle of an orchestrated upload.

    States:
        need_init -- No usable descriptor; the initializer runs next.
        uploading -- A descriptor is cached; the transport runs next.
        retrying  -- The last attempt failed and another one is allowed.
        succeeded -- The transport returned a result.
        failed    -- A terminal error was surfaced to the caller.
    """

    need_init = State("need_init", initial=True, value="need_init")
    uploading = State("uploading", value="uploading")
    retrying = State("retrying", value="retrying")
    succeeded = State("succeeded", final=True, value="succeeded")
    failed = State("failed", final=True, value="failed")

    initialized = need_init.to(uploading)
    succeed = uploading.to(succeeded)
    fail_attempt = need_init.to(retrying) | uploading.to(retrying)
    reinit = retrying.to(need_init)
    retry = retrying.to(uploading)
    give_up = need_init.to(failed) | uploading.to(failed) | retrying.to(failed)

    def __init__(self) -> None:
        self.history: list[str] = []
        super().__init__()
        self.history.append(self.current_state.value)

    def fire(self, event: str) -> str:
        """Send *event* and record the resulting state value."""
        self.send(event)
        value = self.current_state.value
        self.history.append(value)
        return value
