"""
Moai - Workout logging machine.

selectingType -> planning -> active{exercising <-> paused} -> reviewing
-> saving -> completed, with cancelled (final) and error (RETRY -> saving).
Saving writes one activity_logs row.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field

from moai.db.activities import ActivityStore
from moai.machines.base import Event, Interpreter, Invoke, Machine, MachineState, StateNode, Transition
from moai.machines.scheduler import Scheduler

logger = logging.getLogger(__name__)

WorkoutType = Literal["strength", "cardio", "mixed"]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Context
# =============================================================================


class ExerciseSet(BaseModel):
    reps: int = 0
    weight: float | None = None
    distance: float | None = None
    duration: int | None = None


class WorkoutExercise(BaseModel):
    id: str
    name: str
    sets: list[ExerciseSet] = Field(default_factory=list)


@dataclass(frozen=True)
class WorkoutContext:
    workout_type: WorkoutType | None = None
    exercises: tuple[WorkoutExercise, ...] = ()
    current_exercise_index: int = 0
    notes: str = ""
    moai_id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    error: str | None = None


# =============================================================================
# Selectors
# =============================================================================


def can_start_workout(context: WorkoutContext) -> bool:
    return len(context.exercises) > 0


def is_last_exercise(context: WorkoutContext) -> bool:
    return context.current_exercise_index == len(context.exercises) - 1


def is_first_exercise(context: WorkoutContext) -> bool:
    return context.current_exercise_index == 0


def current_exercise(context: WorkoutContext) -> WorkoutExercise | None:
    if 0 <= context.current_exercise_index < len(context.exercises):
        return context.exercises[context.current_exercise_index]
    return None


def workout_duration(context: WorkoutContext, now: datetime | None = None) -> int:
    """Whole minutes from start to end (or to now while still active)."""
    if context.start_time is None:
        return 0
    end = context.end_time or now or _utcnow()
    return int((end - context.start_time).total_seconds() // 60)


# =============================================================================
# Actions
# =============================================================================


def _select_type(ctx: WorkoutContext, event: Event) -> dict:
    return {"workout_type": event.get("workout_type")}


def _add_exercise(ctx: WorkoutContext, event: Event) -> dict:
    exercise = WorkoutExercise.model_validate(event.get("exercise"))
    return {"exercises": ctx.exercises + (exercise,)}


def _remove_exercise(ctx: WorkoutContext, event: Event) -> dict:
    exercise_id = event.get("exercise_id")
    remaining = tuple(ex for ex in ctx.exercises if ex.id != exercise_id)
    return {
        "exercises": remaining,
        "current_exercise_index": min(ctx.current_exercise_index, max(len(remaining) - 1, 0)),
    }


def _update_exercise(ctx: WorkoutContext, event: Event) -> dict:
    exercise_id = event.get("exercise_id")
    data = event.get("data") or {}
    if "sets" in data:
        data = {**data, "sets": [ExerciseSet.model_validate(s) for s in data["sets"]]}
    return {
        "exercises": tuple(
            ex.model_copy(update=data) if ex.id == exercise_id else ex
            for ex in ctx.exercises
        )
    }


def _next_exercise(ctx: WorkoutContext, event: Event) -> dict:
    return {"current_exercise_index": max(min(ctx.current_exercise_index + 1, len(ctx.exercises) - 1), 0)}


def _prev_exercise(ctx: WorkoutContext, event: Event) -> dict:
    return {"current_exercise_index": max(ctx.current_exercise_index - 1, 0)}


def _set_notes(ctx: WorkoutContext, event: Event) -> dict:
    return {"notes": event.get("notes") or ""}


def _has_exercises(ctx: WorkoutContext, event: Event) -> bool:
    return can_start_workout(ctx)


# =============================================================================
# Machine
# =============================================================================


def create_workout_machine(
    clock: Clock = _utcnow,
    moai_id: str | None = None,
) -> Machine:
    """Build the workout logging machine. `clock` stamps start/end times."""

    def stamp_start(ctx, event):
        return {"start_time": clock(), "end_time": None}

    def stamp_end(ctx, event):
        return {"end_time": clock()}

    finish = Transition(target="reviewing", actions=(stamp_end,))
    update = Transition(actions=(_update_exercise,))

    return Machine(
        id="workoutLogging",
        initial="selectingType",
        context=WorkoutContext(moai_id=moai_id),
        states={
            "selectingType": StateNode(
                on={
                    "SELECT_TYPE": Transition(target="planning", actions=(_select_type,)),
                    "CANCEL": "cancelled",
                },
            ),
            "planning": StateNode(
                on={
                    "ADD_EXERCISE": Transition(actions=(_add_exercise,)),
                    "REMOVE_EXERCISE": Transition(actions=(_remove_exercise,)),
                    "SET_NOTES": Transition(actions=(_set_notes,)),
                    "START_WORKOUT": Transition(target="active", guard=_has_exercises, actions=(stamp_start,)),
                    "CANCEL": "cancelled",
                },
            ),
            "active": StateNode(
                initial="exercising",
                states={
                    "exercising": StateNode(
                        on={
                            "UPDATE_EXERCISE": update,
                            "NEXT_EXERCISE": Transition(actions=(_next_exercise,)),
                            "PREV_EXERCISE": Transition(actions=(_prev_exercise,)),
                            "PAUSE_WORKOUT": "active.paused",
                            "FINISH_WORKOUT": finish,
                        },
                    ),
                    "paused": StateNode(
                        on={
                            "RESUME_WORKOUT": "active.exercising",
                            "FINISH_WORKOUT": finish,
                            "CANCEL": "cancelled",
                        },
                    ),
                },
            ),
            "reviewing": StateNode(
                on={
                    "UPDATE_EXERCISE": update,
                    "SET_NOTES": Transition(actions=(_set_notes,)),
                    "SAVE": "saving",
                    "CANCEL": "cancelled",
                },
            ),
            "saving": StateNode(
                invoke=Invoke(
                    src="saveWorkout",
                    on_done=Transition(target="completed", actions=(lambda ctx, e: {"error": None},)),
                    on_error=Transition(target="error", actions=(lambda ctx, e: {"error": "Failed to save workout"},)),
                ),
            ),
            "completed": StateNode(final=True),
            "cancelled": StateNode(final=True),
            "error": StateNode(
                on={
                    "RETRY": "saving",
                    "CANCEL": "cancelled",
                },
            ),
        },
    )


def build_activity_notes(context: WorkoutContext) -> str:
    """Exercise detail and user notes, serialized into the activity row."""
    return json.dumps({
        "exercises": [ex.model_dump(exclude_none=True) for ex in context.exercises],
        "userNotes": context.notes,
    })


def make_save_workout(activities: ActivityStore, user_id: str):
    """saveWorkout service: write the finished workout as an activity."""

    async def save_workout(context: WorkoutContext, event: Event) -> dict:
        return await activities.create_activity(
            user_id=user_id,
            activity_type=context.workout_type or "mixed",
            duration_minutes=workout_duration(context),
            notes=build_activity_notes(context),
            moai_id=context.moai_id,
        )

    return save_workout


# =============================================================================
# Session
# =============================================================================


class WorkoutLoggingSession:
    """
    Hosts one workout logging machine for a user.

    Must be started inside a running event loop when the save service or
    the default AsyncioScheduler is used.
    """

    def __init__(
        self,
        activities: ActivityStore,
        user_id: str,
        scheduler: Scheduler | None = None,
        clock: Clock = _utcnow,
        moai_id: str | None = None,
    ):
        self.user_id = user_id
        self._clock = clock
        self.interpreter = Interpreter(
            create_workout_machine(clock=clock, moai_id=moai_id),
            scheduler=scheduler,
            services={"saveWorkout": make_save_workout(activities, user_id)},
        )

    def start(self) -> "WorkoutLoggingSession":
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
    def context(self) -> WorkoutContext:
        return self.state.context

    def send(self, event: Event | str, **data: Any) -> MachineState:
        return self.interpreter.send(event, **data)

    # State predicates

    @property
    def is_selecting_type(self) -> bool:
        return self.state.matches("selectingType")

    @property
    def is_planning(self) -> bool:
        return self.state.matches("planning")

    @property
    def is_active(self) -> bool:
        return self.state.matches("active")

    @property
    def is_paused(self) -> bool:
        return self.state.matches("active.paused")

    @property
    def is_exercising(self) -> bool:
        return self.state.matches("active.exercising")

    @property
    def is_reviewing(self) -> bool:
        return self.state.matches("reviewing")

    @property
    def is_saving(self) -> bool:
        return self.state.matches("saving")

    @property
    def is_completed(self) -> bool:
        return self.state.matches("completed")

    @property
    def has_error(self) -> bool:
        return self.state.matches("error")

    # Selectors

    @property
    def can_start_workout(self) -> bool:
        return can_start_workout(self.context)

    @property
    def current_exercise(self) -> WorkoutExercise | None:
        return current_exercise(self.context)

    @property
    def workout_duration(self) -> int:
        return workout_duration(self.context, now=self._clock())

    # Actions

    def select_workout_type(self, workout_type: WorkoutType) -> MachineState:
        return self.send("SELECT_TYPE", workout_type=workout_type)

    def add_exercise(self, exercise: WorkoutExercise | dict) -> MachineState:
        if isinstance(exercise, WorkoutExercise):
            exercise = exercise.model_dump()
        return self.send("ADD_EXERCISE", exercise=exercise)

    def remove_exercise(self, exercise_id: str) -> MachineState:
        return self.send("REMOVE_EXERCISE", exercise_id=exercise_id)

    def update_exercise(self, exercise_id: str, data: dict) -> MachineState:
        return self.send("UPDATE_EXERCISE", exercise_id=exercise_id, data=data)

    def set_notes(self, notes: str) -> MachineState:
        return self.send("SET_NOTES", notes=notes)

    def start_workout(self) -> MachineState:
        if not self.can_start_workout:
            logger.info("Cannot start workout without exercises")
        return self.send("START_WORKOUT")

    def pause_workout(self) -> MachineState:
        return self.send("PAUSE_WORKOUT")

    def resume_workout(self) -> MachineState:
        return self.send("RESUME_WORKOUT")

    def finish_workout(self) -> MachineState:
        return self.send("FINISH_WORKOUT")

    def save_workout(self) -> MachineState:
        return self.send("SAVE")

    def cancel_workout(self) -> MachineState:
        return self.send("CANCEL")

    def retry(self) -> MachineState:
        return self.send("RETRY")

    def next_exercise(self) -> MachineState:
        return self.send("NEXT_EXERCISE")

    def prev_exercise(self) -> MachineState:
        return self.send("PREV_EXERCISE")
