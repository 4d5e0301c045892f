"""
Moai - Buddy matching machine.

idle -> settingPreferences -> searching -> browsing -> confirming
-> sendingRequest -> requestSent -> completed (final, after 3s).
Search and request failures land in `error`; RETRY searches again when
preferences are set, RESET starts over.
"""

import logging
from dataclasses import dataclass
from typing import Any

from moai.config import MoaiSettings
from moai.db.buddies import BuddyStore
from moai.machines.base import Delayed, Event, Interpreter, Invoke, Machine, MachineState, StateNode, Transition
from moai.machines.scheduler import Scheduler
from moai.models.buddy import BuddyMatch, BuddyPreferences, BuddyRequest

logger = logging.getLogger(__name__)

REQUEST_SENT_TIMEOUT_MS = 3_000
DEFAULT_REQUEST_MESSAGE = "Hi! I would love to be workout buddies!"


@dataclass(frozen=True)
class BuddyMatchContext:
    preferences: BuddyPreferences | None = None
    potential_matches: tuple[BuddyMatch, ...] = ()
    selected_buddy: BuddyMatch | None = None
    buddy_request: BuddyRequest | None = None
    error: str | None = None
    is_loading: bool = False


# =============================================================================
# Selectors
# =============================================================================


def has_preferences(context: BuddyMatchContext) -> bool:
    return context.preferences is not None


def has_matches(context: BuddyMatchContext) -> bool:
    return len(context.potential_matches) > 0


def top_match(context: BuddyMatchContext) -> BuddyMatch | None:
    if not context.potential_matches:
        return None
    return max(context.potential_matches, key=lambda m: m.compatibility_score)


def match_count(context: BuddyMatchContext) -> int:
    return len(context.potential_matches)


# =============================================================================
# Actions
# =============================================================================


def _set_preferences(ctx: BuddyMatchContext, event: Event) -> dict:
    preferences = event.get("preferences")
    if isinstance(preferences, dict):
        preferences = BuddyPreferences.model_validate(preferences)
    return {"preferences": preferences}


def _select_buddy(ctx: BuddyMatchContext, event: Event) -> dict:
    buddy = event.get("buddy")
    if isinstance(buddy, dict):
        buddy = BuddyMatch.model_validate(buddy)
    return {"selected_buddy": buddy}


def _start_loading(ctx: BuddyMatchContext, event: Event) -> dict:
    return {"is_loading": True, "error": None}


def _store_matches(ctx: BuddyMatchContext, event: Event) -> dict:
    return {"potential_matches": tuple(event.get("output") or ()), "is_loading": False}


def _store_request(ctx: BuddyMatchContext, event: Event) -> dict:
    return {"buddy_request": event.get("output"), "is_loading": False}


def _failure(default: str):
    def record(ctx: BuddyMatchContext, event: Event) -> dict:
        return {"error": event.get("error") or default, "is_loading": False}

    return record


def _clear(ctx: BuddyMatchContext, event: Event) -> dict:
    return {
        "preferences": None,
        "potential_matches": (),
        "selected_buddy": None,
        "buddy_request": None,
        "error": None,
        "is_loading": False,
    }


def _preferences_set(ctx: BuddyMatchContext, event: Event) -> bool:
    return has_preferences(ctx)


# =============================================================================
# Machine
# =============================================================================


def create_buddy_machine(request_sent_timeout_ms: int = REQUEST_SENT_TIMEOUT_MS) -> Machine:
    reset = Transition(target="idle", actions=(_clear,))

    return Machine(
        id="buddyMatching",
        initial="idle",
        context=BuddyMatchContext(),
        states={
            "idle": StateNode(
                on={
                    "SET_PREFERENCES": Transition(target="settingPreferences", actions=(_set_preferences,)),
                },
            ),
            "settingPreferences": StateNode(
                on={
                    "SEARCH_BUDDIES": "searching",
                    "SET_PREFERENCES": Transition(actions=(_set_preferences,)),
                },
            ),
            "searching": StateNode(
                entry=(_start_loading,),
                invoke=Invoke(
                    src="searchBuddies",
                    on_done=Transition(target="browsing", actions=(_store_matches,)),
                    on_error=Transition(target="error", actions=(_failure("Failed to find buddies"),)),
                ),
            ),
            "browsing": StateNode(
                on={
                    "SELECT_BUDDY": Transition(target="confirming", actions=(_select_buddy,)),
                    "SEARCH_BUDDIES": "searching",
                    "SET_PREFERENCES": Transition(target="settingPreferences", actions=(_set_preferences,)),
                },
            ),
            "confirming": StateNode(
                on={
                    "SEND_REQUEST": "sendingRequest",
                    "SELECT_BUDDY": Transition(actions=(_select_buddy,)),
                    "CANCEL_REQUEST": "browsing",
                },
            ),
            "sendingRequest": StateNode(
                entry=(_start_loading,),
                invoke=Invoke(
                    src="sendBuddyRequest",
                    on_done=Transition(target="requestSent", actions=(_store_request,)),
                    on_error=Transition(target="error", actions=(_failure("Failed to send buddy request"),)),
                ),
            ),
            "requestSent": StateNode(
                after=Delayed(request_sent_timeout_ms, "completed"),
                on={
                    "RESET": reset,
                },
            ),
            "completed": StateNode(final=True),
            "error": StateNode(
                on={
                    "RETRY": Transition(target="searching", guard=_preferences_set),
                    "RESET": reset,
                },
            ),
        },
    )


def make_buddy_services(buddies: BuddyStore, user_id: str, message: str = DEFAULT_REQUEST_MESSAGE) -> dict:
    """searchBuddies and sendBuddyRequest bound to a store and the searching user."""

    async def search_buddies(context: BuddyMatchContext, event: Event) -> list[BuddyMatch]:
        if context.preferences is None:
            raise ValueError("No preferences set")
        return await buddies.find_potential_matches(user_id, context.preferences)

    async def send_buddy_request(context: BuddyMatchContext, event: Event) -> BuddyRequest:
        if context.selected_buddy is None:
            raise ValueError("No buddy selected")
        return await buddies.send_buddy_request(user_id, context.selected_buddy.user_id, message)

    return {"searchBuddies": search_buddies, "sendBuddyRequest": send_buddy_request}


# =============================================================================
# Session
# =============================================================================


class BuddyMatchingSession:
    """Hosts one buddy matching machine. Start it inside a running event loop."""

    def __init__(
        self,
        buddies: BuddyStore,
        user_id: str,
        scheduler: Scheduler | None = None,
        settings: MoaiSettings | None = None,
    ):
        self.user_id = user_id
        timeout = settings.buddy_request_sent_timeout_ms if settings else REQUEST_SENT_TIMEOUT_MS
        self.interpreter = Interpreter(
            create_buddy_machine(request_sent_timeout_ms=timeout),
            scheduler=scheduler,
            services=make_buddy_services(buddies, user_id),
        )

    def start(self) -> "BuddyMatchingSession":
        self.interpreter.start()
        return self

    def stop(self) -> None:
        self.interpreter.stop()

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.stop()

    @property
    def state(self) -> MachineState:
        return self.interpreter.state

    @property
    def context(self) -> BuddyMatchContext:
        return self.state.context

    def send(self, event: Event | str, **data: Any) -> MachineState:
        return self.interpreter.send(event, **data)

    @property
    def is_idle(self) -> bool:
        return self.state.matches("idle")

    @property
    def is_setting_preferences(self) -> bool:
        return self.state.matches("settingPreferences")

    @property
    def is_searching(self) -> bool:
        return self.state.matches("searching")

    @property
    def is_browsing(self) -> bool:
        return self.state.matches("browsing")

    @property
    def is_confirming(self) -> bool:
        return self.state.matches("confirming")

    @property
    def is_sending_request(self) -> bool:
        return self.state.matches("sendingRequest")

    @property
    def is_request_sent(self) -> bool:
        return self.state.matches("requestSent")

    @property
    def is_completed(self) -> bool:
        return self.state.matches("completed")

    @property
    def has_error(self) -> bool:
        return self.state.matches("error")

    @property
    def top_match(self) -> BuddyMatch | None:
        return top_match(self.context)

    def set_preferences(self, preferences: BuddyPreferences | dict) -> MachineState:
        return self.send("SET_PREFERENCES", preferences=preferences)

    def search(self) -> MachineState:
        return self.send("SEARCH_BUDDIES")

    def select_buddy(self, buddy: BuddyMatch | dict) -> MachineState:
        return self.send("SELECT_BUDDY", buddy=buddy)

    def send_request(self) -> MachineState:
        return self.send("SEND_REQUEST")

    def cancel_request(self) -> MachineState:
        return self.send("CANCEL_REQUEST")

    def retry(self) -> MachineState:
        return self.send("RETRY")

    def reset(self) -> MachineState:
        return self.send("RESET")
