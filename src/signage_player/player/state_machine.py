"""
Pairing State Machine for the signage player.
Tracks whether the device is registered with the backend and linked to an account.
"""

import threading
from enum import Enum
from typing import Callable, Dict, List, Optional

from signage_player.common.logger import setup_logger

logger = setup_logger(__name__)


class PairingState(Enum):
    """Registration state of this device."""
    UNREGISTERED = "unregistered"                # No screen record found yet
    REGISTERED_UNLINKED = "registered_unlinked"  # Screen exists, waiting for console link
    LINKED = "linked"                            # Screen linked to an account


class StateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


class PairingStateMachine:
    """
    State machine for device pairing.

    Valid transitions:
    - UNREGISTERED -> REGISTERED_UNLINKED (registration succeeded)
    - UNREGISTERED -> LINKED (lookup reports the screen already linked)
    - REGISTERED_UNLINKED -> LINKED (linked from the console)
    - LINKED -> REGISTERED_UNLINKED (unlinked from the console)

    A device never returns to UNREGISTERED.
    """

    VALID_TRANSITIONS: Dict[PairingState, List[PairingState]] = {
        PairingState.UNREGISTERED: [PairingState.REGISTERED_UNLINKED, PairingState.LINKED],
        PairingState.REGISTERED_UNLINKED: [PairingState.LINKED],
        PairingState.LINKED: [PairingState.REGISTERED_UNLINKED],
    }

    def __init__(
        self,
        initial_state: PairingState = PairingState.UNREGISTERED,
        on_state_changed: Optional[
            Callable[['PairingStateMachine', PairingState, PairingState], None]
        ] = None
    ):
        """
        Initialize the pairing state machine.

        Args:
            initial_state: Starting state (default: UNREGISTERED)
            on_state_changed: Callback when state changes (self, old_state, new_state)
        """
        self._state = initial_state
        self._previous_state: Optional[PairingState] = None
        self._on_state_changed = on_state_changed
        self._lock = threading.Lock()

        logger.info("PairingStateMachine initialized in %s state", self._state.name)

    @property
    def state(self) -> PairingState:
        with self._lock:
            return self._state

    @property
    def previous_state(self) -> Optional[PairingState]:
        with self._lock:
            return self._previous_state

    def can_transition_to(self, target: PairingState) -> bool:
        with self._lock:
            if self._state == target:
                return True
            return target in self.VALID_TRANSITIONS.get(self._state, [])

    def transition_to(self, target: PairingState) -> bool:
        """
        Attempt to transition to a new state.

        Args:
            target: State to transition to

        Returns:
            True if the state changed, False if already in target state

        Raises:
            StateTransitionError: If transition is not valid
        """
        with self._lock:
            old_state = self._state

            if old_state == target:
                logger.debug("Already in %s state", target.name)
                return False

            if target not in self.VALID_TRANSITIONS.get(old_state, []):
                raise StateTransitionError(
                    f"Invalid transition: {old_state.name} -> {target.name}"
                )

            self._previous_state = old_state
            self._state = target

            logger.info("Pairing transition: %s -> %s", old_state.name, target.name)

        # Callback runs outside the lock
        if self._on_state_changed:
            try:
                self._on_state_changed(self, old_state, target)
            except Exception as e:
                logger.error("Error in pairing state callback: %s", e)

        return True

    def to_registered(self) -> bool:
        return self.transition_to(PairingState.REGISTERED_UNLINKED)

    def to_linked(self) -> bool:
        return self.transition_to(PairingState.LINKED)

    @property
    def is_linked(self) -> bool:
        return self.state == PairingState.LINKED

    @property
    def is_registered(self) -> bool:
        return self.state != PairingState.UNREGISTERED

    def get_state_info(self) -> Dict[str, Optional[str]]:
        """
        Get information about current state.

        Returns:
            Dictionary with state and previous_state info
        """
        with self._lock:
            return {
                "state": self._state.value,
                "state_name": self._state.name,
                "previous_state": self._previous_state.value if self._previous_state else None,
            }

    def __repr__(self) -> str:
        return f"PairingStateMachine(state={self.state.name})"
