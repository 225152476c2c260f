"""
giftstrack/flow/states.py

Purpose: Defines the paginated list states

- Enum for each phase of a list (IDLE, LOADING, LOADED, LOADING_MORE, ...)
- Single source of truth for list phases
- State transition validation
- Metadata for each state
"""

from enum import Enum
from typing import Dict, List
from dataclasses import dataclass


class ListState(str, Enum):
    """
    Phases of a paginated list.
    """

    IDLE = "IDLE"
    LOADING = "LOADING"
    LOADED = "LOADED"
    LOADING_MORE = "LOADING_MORE"
    REFRESHING = "REFRESHING"
    ERROR = "ERROR"


@dataclass
class StateMetadata:
    """
    Metadata associated with each list state.
    """
    name: ListState
    display_name: str
    is_busy: bool = False  # A page request is in flight
    shows_items: bool = True  # Previously rendered items stay visible
    description: str = ""


STATE_METADATA: Dict[ListState, StateMetadata] = {
    ListState.IDLE: StateMetadata(
        name=ListState.IDLE,
        display_name="Idle",
        shows_items=False,
        description="Nothing requested yet"
    ),
    ListState.LOADING: StateMetadata(
        name=ListState.LOADING,
        display_name="Loading",
        is_busy=True,
        description="First page requested"
    ),
    ListState.LOADED: StateMetadata(
        name=ListState.LOADED,
        display_name="Loaded",
        description="At least one page received"
    ),
    ListState.LOADING_MORE: StateMetadata(
        name=ListState.LOADING_MORE,
        display_name="Loading more",
        is_busy=True,
        description="Next page requested, existing items kept"
    ),
    ListState.REFRESHING: StateMetadata(
        name=ListState.REFRESHING,
        display_name="Refreshing",
        is_busy=True,
        description="Page 1 re-requested; items kept until replaced"
    ),
    ListState.ERROR: StateMetadata(
        name=ListState.ERROR,
        display_name="Error",
        description="Last request failed; retry available"
    ),
}


# Valid transitions between list phases
STATE_TRANSITIONS: Dict[ListState, List[ListState]] = {
    ListState.IDLE: [
        ListState.LOADING,
        ListState.REFRESHING,
        ListState.LOADED,  # Data supplied directly
        ListState.ERROR,
    ],
    ListState.LOADING: [
        ListState.LOADED,
        ListState.ERROR,
        ListState.REFRESHING,
        ListState.IDLE,  # Reset
    ],
    ListState.LOADED: [
        ListState.LOADING_MORE,
        ListState.REFRESHING,
        ListState.LOADING,  # Reload, e.g. new search term
        ListState.LOADED,
        ListState.ERROR,
        ListState.IDLE,
    ],
    ListState.LOADING_MORE: [
        ListState.LOADED,
        ListState.REFRESHING,  # Refresh supersedes the pending page
        ListState.ERROR,
        ListState.IDLE,
    ],
    ListState.REFRESHING: [
        ListState.LOADED,
        ListState.ERROR,
        ListState.IDLE,
    ],
    ListState.ERROR: [
        ListState.LOADING,
        ListState.LOADING_MORE,
        ListState.REFRESHING,
        ListState.LOADED,
        ListState.ERROR,
        ListState.IDLE,
    ],
}


def is_valid_transition(from_state: ListState, to_state: ListState) -> bool:
    """
    Checks if a state transition is valid.

    Args:
        from_state: Current state
        to_state: Target state

    Returns:
        True if transition is allowed, False otherwise
    """
    if from_state == to_state:
        return True
    allowed_transitions = STATE_TRANSITIONS.get(from_state, [])
    return to_state in allowed_transitions


def get_state_metadata(state: ListState) -> StateMetadata:
    return STATE_METADATA.get(state, StateMetadata(
        name=state,
        display_name=state.value,
        description="Unknown state"
    ))
