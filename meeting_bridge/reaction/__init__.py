"""Reaction pipeline: candidate snapshots and the single-flight scheduler."""
from .candidate import CandidateThresholds, ReactionCandidate, ReactionMeta, build_candidate
from .scheduler import ReactionScheduler, render_reaction_prompt

__all__ = [
    "CandidateThresholds",
    "ReactionCandidate",
    "ReactionMeta",
    "build_candidate",
    "ReactionScheduler",
    "render_reaction_prompt",
]
