"""
Generic progression state machine.

A Machine is a declarative tree of StateNodes plus an initial context.
Machine.transition(state, event) is pure: it returns the next MachineState
and a list of effects (arm/cancel a timer, start/cancel a service) without
performing any of them. The Interpreter is the single owner of one running
machine; it feeds events in one at a time and carries out the effects.

State values are dotted paths of the active leaf ("active.paused").
Transition targets are absolute paths from the root.

Transition rules:
- Handlers are looked up from the active leaf up through its ancestors.
  In each handler list the first transition whose guard passes wins.
- No enabled transition: the state is returned unchanged (changed=False).
- target=None is an internal transition: actions run, nothing is exited
  or entered.
- After every macrostep, eventless `always` transitions are followed until
  none is enabled.
- A state with `after` arms one timer on entry and cancels it on exit.
  When it fires the interpreter sends "after.<path>".
- A state with `invoke` starts one async service on entry and cancels it on
  exit. Results come back as "done.invoke.<path>" (data["output"]) or
  "error.invoke.<path>" (data["error"]).

Actions are reducers: (context, event) -> dict of context field updates
(or None). Context objects are frozen dataclasses.
"""

import asyncio
import dataclasses
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

from moai.machines.scheduler import AsyncioScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

AFTER_PREFIX = "after."
DONE_INVOKE_PREFIX = "done.invoke."
ERROR_INVOKE_PREFIX = "error.invoke."


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class Event:
    """A discrete input to a machine."""

    type: str
    data: dict = field(default_factory=dict)

    @classmethod
    def of(cls, type: str, **data: Any) -> "Event":
        return cls(type=type, data=data)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


INIT_EVENT = Event("init")

Guard = Callable[[Any, Event], bool]
Action = Callable[[Any, Event], Union[dict, None]]
Service = Callable[[Any, Event], Awaitable[Any]]


# =============================================================================
# Declarations
# =============================================================================


@dataclass(frozen=True)
class Transition:
    target: str | None = None
    guard: Guard | None = None
    actions: tuple[Action, ...] = ()

    def enabled(self, context: Any, event: Event) -> bool:
        return self.guard is None or bool(self.guard(context, event))


@dataclass(frozen=True)
class Delayed:
    """Auto-transition to `target` after `delay_ms` in the state."""

    delay_ms: int
    target: str
    actions: tuple[Action, ...] = ()


@dataclass(frozen=True)
class Invoke:
    """Async service run while the state is active."""

    src: str
    on_done: Transition
    on_error: Transition


Handler = Union[str, Transition, list]


def _as_transitions(handler: Handler) -> list[Transition]:
    if isinstance(handler, str):
        return [Transition(target=handler)]
    if isinstance(handler, Transition):
        return [handler]
    return [Transition(target=h) if isinstance(h, str) else h for h in handler]


@dataclass
class StateNode:
    on: dict[str, Handler] = field(default_factory=dict)
    always: list[Transition] = field(default_factory=list)
    after: Delayed | None = None
    entry: tuple[Action, ...] = ()
    exit: tuple[Action, ...] = ()
    invoke: Invoke | None = None
    initial: str | None = None
    states: dict[str, "StateNode"] = field(default_factory=dict)
    final: bool = False
    description: str = ""

    def __post_init__(self):
        self.on = {event_type: _as_transitions(h) for event_type, h in self.on.items()}
        if self.states and self.initial not in self.states:
            raise ValueError(f"Compound state needs a valid initial child, got {self.initial!r}")


# =============================================================================
# State and effects
# =============================================================================


@dataclass(frozen=True)
class MachineState:
    value: str
    context: Any
    done: bool = False
    changed: bool = True

    def matches(self, path: str) -> bool:
        """True if `path` is the active leaf or one of its ancestors."""
        return self.value == path or self.value.startswith(path + ".")


@dataclass(frozen=True)
class StartTimer:
    key: str
    delay_ms: int


@dataclass(frozen=True)
class CancelTimer:
    key: str


@dataclass(frozen=True)
class StartService:
    key: str
    src: str


@dataclass(frozen=True)
class CancelService:
    key: str


Effect = Union[StartTimer, CancelTimer, StartService, CancelService]


def _apply_actions(context: Any, actions: tuple[Action, ...], event: Event) -> Any:
    for action in actions:
        updates = action(context, event)
        if updates:
            context = dataclasses.replace(context, **updates)
    return context


def _common_prefix(a: list[str], b: list[str]) -> int:
    n = 0
    for x, y in zip(a, b):
        if x != y:
            break
        n += 1
    return n


# =============================================================================
# Machine
# =============================================================================


class Machine:
    """Declarative state machine definition."""

    MAX_MICROSTEPS = 100

    def __init__(self, id: str, initial: str, context: Any, states: dict[str, StateNode], on: dict | None = None):
        if not dataclasses.is_dataclass(context):
            raise TypeError("Machine context must be a dataclass instance")
        self.id = id
        self.initial_context = context
        self.root = StateNode(initial=initial, states=states, on=on or {})

    def node(self, path: str) -> StateNode:
        node = self.root
        if not path:
            return node
        for part in path.split("."):
            try:
                node = node.states[part]
            except KeyError:
                raise ValueError(f"Unknown state '{path}' in machine '{self.id}'") from None
        return node

    def _resolve_leaf(self, path: str) -> str:
        node = self.node(path)
        while node.states:
            path = f"{path}.{node.initial}" if path else node.initial
            node = node.states[node.initial]
        return path

    def _is_done(self, value: str) -> bool:
        return "." not in value and self.node(value).final

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def initial_state(self) -> tuple[MachineState, list[Effect]]:
        effects: list[Effect] = []
        leaf = self._resolve_leaf("")
        context = self._enter(self.initial_context, [], leaf.split("."), INIT_EVENT, effects)
        value, context = self._settle(leaf, context, INIT_EVENT, effects)
        return MachineState(value=value, context=context, done=self._is_done(value)), effects

    def transition(self, state: MachineState, event: Event) -> tuple[MachineState, list[Effect]]:
        """Pure transition function."""
        if state.done:
            return dataclasses.replace(state, changed=False), []

        selected = self._select(state, event)
        if selected is None:
            return dataclasses.replace(state, changed=False), []

        source, transition = selected
        effects: list[Effect] = []
        value, context = self._take(state.value, state.context, event, source, transition, effects)
        value, context = self._settle(value, context, event, effects)
        return MachineState(value=value, context=context, done=self._is_done(value)), effects

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ancestors(self, value: str) -> list[str]:
        """Active path and its ancestors, deepest first."""
        parts = value.split(".")
        return [".".join(parts[:i]) for i in range(len(parts), 0, -1)]

    def _select(self, state: MachineState, event: Event) -> tuple[str, Transition] | None:
        for prefix, kind in ((AFTER_PREFIX, "after"), (DONE_INVOKE_PREFIX, "done"), (ERROR_INVOKE_PREFIX, "error")):
            if event.type.startswith(prefix):
                path = event.type[len(prefix):]
                if not state.matches(path):
                    return None
                node = self.node(path)
                if kind == "after":
                    if node.after is None:
                        return None
                    return path, Transition(target=node.after.target, actions=node.after.actions)
                if node.invoke is None:
                    return None
                transition = node.invoke.on_done if kind == "done" else node.invoke.on_error
                return (path, transition) if transition.enabled(state.context, event) else None

        for path in self._ancestors(state.value):
            for transition in self.node(path).on.get(event.type, []):
                if transition.enabled(state.context, event):
                    return path, transition

        # Root-level handlers apply in every state
        for transition in self.root.on.get(event.type, []):
            if transition.enabled(state.context, event):
                return "", transition
        return None

    def _take(
        self,
        value: str,
        context: Any,
        event: Event,
        source: str,
        transition: Transition,
        effects: list[Effect],
    ) -> tuple[str, Any]:
        if transition.target is None:
            return value, _apply_actions(context, transition.actions, event)

        leaf = self._resolve_leaf(transition.target)
        source_parts = source.split(".") if source else []
        target_parts = transition.target.split(".")
        domain = _common_prefix(source_parts, target_parts)
        if domain == len(target_parts):
            # Target is the source or one of its ancestors: exit and re-enter it
            domain -= 1

        active_parts = value.split(".")
        for depth in range(len(active_parts), domain, -1):
            path = ".".join(active_parts[:depth])
            node = self.node(path)
            if node.after is not None:
                effects.append(CancelTimer(path))
            if node.invoke is not None:
                effects.append(CancelService(path))
            context = _apply_actions(context, node.exit, event)

        context = _apply_actions(context, transition.actions, event)
        context = self._enter(context, active_parts[:domain], leaf.split("."), event, effects)
        return leaf, context

    def _enter(self, context: Any, kept: list[str], leaf_parts: list[str], event: Event, effects: list[Effect]) -> Any:
        for depth in range(len(kept) + 1, len(leaf_parts) + 1):
            path = ".".join(leaf_parts[:depth])
            node = self.node(path)
            context = _apply_actions(context, node.entry, event)
            if node.after is not None:
                effects.append(StartTimer(path, node.after.delay_ms))
            if node.invoke is not None:
                effects.append(StartService(path, node.invoke.src))
        return context

    def _settle(self, value: str, context: Any, event: Event, effects: list[Effect]) -> tuple[str, Any]:
        """Follow eventless transitions until none is enabled."""
        for _ in range(self.MAX_MICROSTEPS):
            selected = None
            for path in self._ancestors(value):
                for transition in self.node(path).always:
                    if transition.enabled(context, event):
                        selected = (path, transition)
                        break
                if selected:
                    break
            if selected is None:
                return value, context
            value, context = self._take(value, context, event, selected[0], selected[1], effects)
        raise RuntimeError(f"Eventless transitions in '{self.id}' did not settle after {self.MAX_MICROSTEPS} steps")


# =============================================================================
# Interpreter
# =============================================================================


class Interpreter:
    """
    Runs one machine instance.

    Events are processed to completion one at a time; a send() issued from a
    listener or service callback while an event is being processed is
    queued. After stop() (or reaching a final state) timers and services are
    cancelled and further events, including late service results, are
    ignored.
    """

    def __init__(
        self,
        machine: Machine,
        scheduler: Scheduler | None = None,
        services: dict[str, Service] | None = None,
    ):
        self.machine = machine
        self._scheduler = scheduler or AsyncioScheduler()
        self._services = services or {}
        self._timers: dict[str, TimerHandle] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._queue: deque[Event] = deque()
        self._processing = False
        self._listeners: list[Callable[[MachineState], None]] = []
        self._state: MachineState | None = None
        self.status = "not_started"

    @property
    def state(self) -> MachineState:
        if self._state is None:
            raise RuntimeError(f"Interpreter for '{self.machine.id}' has not been started")
        return self._state

    @property
    def running(self) -> bool:
        return self.status == "running"

    def subscribe(self, listener: Callable[[MachineState], None]) -> Callable[[], None]:
        """Call listener after every state change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self) -> "Interpreter":
        if self.status != "not_started":
            return self
        state, effects = self.machine.initial_state()
        self._state = state
        self.status = "running"
        self._execute(effects, INIT_EVENT)
        self._notify()
        if state.done:
            self._finish("done")
        return self

    def send(self, event: Event | str, **data: Any) -> MachineState:
        if isinstance(event, str):
            event = Event(type=event, data=data)

        if self.status == "not_started":
            raise RuntimeError(f"Interpreter for '{self.machine.id}' has not been started")
        if not self.running:
            logger.debug(f"{self.machine.id}: ignoring {event.type} ({self.status})")
            return self._state

        self._queue.append(event)
        if self._processing:
            return self._state

        self._processing = True
        try:
            while self._queue and self.running:
                self._process(self._queue.popleft())
        finally:
            self._processing = False
        return self._state

    def stop(self) -> None:
        if self.status in ("stopped", "not_started"):
            self.status = "stopped"
            return
        self._finish("stopped")

    def _process(self, event: Event) -> None:
        state, effects = self.machine.transition(self._state, event)
        if not state.changed:
            logger.debug(f"{self.machine.id}: no transition for {event.type} in {self._state.value}")
            return
        if state.value != self._state.value:
            logger.debug(f"{self.machine.id}: {self._state.value} -> {state.value} on {event.type}")
        self._state = state
        self._execute(effects, event)
        self._notify()
        if state.done:
            self._finish("done")

    def _finish(self, status: str) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()
        self._queue.clear()
        self.status = status

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._state)

    # -------------------------------------------------------------------------
    # Effects
    # -------------------------------------------------------------------------

    def _execute(self, effects: list[Effect], event: Event) -> None:
        for effect in effects:
            if isinstance(effect, StartTimer):
                self._cancel_timer(effect.key)
                self._timers[effect.key] = self._scheduler.call_later(
                    effect.delay_ms, lambda key=effect.key: self._on_timer(key)
                )
            elif isinstance(effect, CancelTimer):
                self._cancel_timer(effect.key)
            elif isinstance(effect, StartService):
                self._start_service(effect.key, effect.src, event)
            elif isinstance(effect, CancelService):
                task = self._tasks.pop(effect.key, None)
                if task is not None:
                    task.cancel()

    def _cancel_timer(self, key: str) -> None:
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _on_timer(self, key: str) -> None:
        if self._timers.pop(key, None) is None:
            return
        self.send(Event(AFTER_PREFIX + key))

    def _start_service(self, key: str, src: str, event: Event) -> None:
        try:
            service = self._services[src]
        except KeyError:
            raise KeyError(f"No service registered for '{src}' in machine '{self.machine.id}'") from None

        task = asyncio.get_running_loop().create_task(service(self._state.context, event))
        self._tasks[key] = task
        task.add_done_callback(lambda t, key=key: self._on_service_done(key, t))

    def _on_service_done(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is not task:
            # Cancelled by a state exit or stop(); result is abandoned
            return
        del self._tasks[key]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"{self.machine.id}: service for '{key}' failed: {exc}")
            self.send(Event(ERROR_INVOKE_PREFIX + key, {"error": str(exc) or type(exc).__name__}))
        else:
            self.send(Event(DONE_INVOKE_PREFIX + key, {"output": task.result()}))
