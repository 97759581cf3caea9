"""Transcript handling: per-bot assembly, control commands, timestamps, meeting canvas."""
from .assembler import AssemblerAction, TranscriptAssembler, TranscriptSegment
from .canvas import MeetingCanvas, MeetingCanvasBase, create_meeting_canvas
from .commands import CommandInterpreter, CommandType, ControlCommand, has_high_value_cue
from .timestamps import LatencyEstimator, decode_timestamp

__all__ = [
    "AssemblerAction",
    "TranscriptAssembler",
    "TranscriptSegment",
    "MeetingCanvas",
    "MeetingCanvasBase",
    "create_meeting_canvas",
    "CommandInterpreter",
    "CommandType",
    "ControlCommand",
    "has_high_value_cue",
    "LatencyEstimator",
    "decode_timestamp",
]
