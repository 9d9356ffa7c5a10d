"""Protocol mechanics - proposal state machine and checked arithmetic."""

from daohub.engine.state_machine import ProposalStateMachine, TransitionError

__all__ = ["ProposalStateMachine", "TransitionError"]
