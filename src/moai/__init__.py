"""
Moai Core - onboarding checkpoints and progression state machines.

Packages:
- moai.db: Supabase data access (profiles, activity logs, buddy requests)
- moai.machines: Generic state machine runtime + workout/tier/buddy machines
- onboarding: Checkpoint gating and progress for the onboarding wizard
"""

__version__ = "1.0.0"
