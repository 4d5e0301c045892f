"""
Moai - Progression state machines.

Generic runtime (Machine, Interpreter, schedulers) and the workout logging,
tier progression and buddy matching machines built on it.
"""

from moai.machines.base import (
    Delayed,
    Event,
    Interpreter,
    Invoke,
    Machine,
    MachineState,
    StateNode,
    Transition,
)
from moai.machines.buddy import BuddyMatchingSession, create_buddy_machine
from moai.machines.scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from moai.machines.tier import TierProgressionTracker, create_tier_machine
from moai.machines.workout import WorkoutLoggingSession, create_workout_machine

__all__ = [
    "Delayed",
    "Event",
    "Interpreter",
    "Invoke",
    "Machine",
    "MachineState",
    "StateNode",
    "Transition",
    "AsyncioScheduler",
    "ManualScheduler",
    "Scheduler",
    "BuddyMatchingSession",
    "create_buddy_machine",
    "TierProgressionTracker",
    "create_tier_machine",
    "WorkoutLoggingSession",
    "create_workout_machine",
]
