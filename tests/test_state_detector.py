from __future__ import annotations

import pytest

from agentdeck_mcp.detection import (
    BaseStateDetector,
    ClaudeStateDetector,
    CodexStateDetector,
    CursorStateDetector,
    GeminiStateDetector,
    MAX_DETECTION_LINES,
    SessionState,
    detector_for,
    recent_lines,
)


def test_empty_output_is_idle() -> None:
    detector = BaseStateDetector()
    assert detector.detect([]) is SessionState.IDLE
    assert detector.detect(None) is SessionState.IDLE
    assert detector.detect(["", "   "]) is SessionState.IDLE


def test_unmatched_output_is_idle_regardless_of_previous_state() -> None:
    detector = ClaudeStateDetector()
    lines = ["> ", "some ordinary output"]
    assert detector.detect(lines, SessionState.BUSY) is SessionState.IDLE
    assert detector.detect(lines, SessionState.WAITING_INPUT) is SessionState.IDLE


def test_waiting_beats_busy() -> None:
    detector = BaseStateDetector()
    lines = ["Thinking... (esc to interrupt)", "Do you want to proceed? [y/n]"]
    assert detector.detect(lines) is SessionState.WAITING_INPUT


def test_busy_marker_detected_case_insensitively() -> None:
    detector = ClaudeStateDetector()
    assert detector.detect(["✻ Working… (Esc to interrupt)"]) is SessionState.BUSY


def test_only_recent_lines_are_considered() -> None:
    detector = BaseStateDetector()
    lines = ["Continue? (y/n)"] + [f"line {index}" for index in range(MAX_DETECTION_LINES)]
    assert detector.detect(lines) is SessionState.IDLE


def test_trailing_blank_lines_do_not_push_prompt_out_of_window() -> None:
    lines = ["Continue? (y/n)"] + [""] * 100
    assert recent_lines(lines) == ["Continue? (y/n)"]
    assert BaseStateDetector().detect(lines) is SessionState.WAITING_INPUT


@pytest.mark.parametrize(
    ("detector", "lines", "expected"),
    [
        (ClaudeStateDetector(), ["Edit file?", "Esc to cancel"], SessionState.WAITING_INPUT),
        (CodexStateDetector(), ["Allow command?"], SessionState.WAITING_INPUT),
        (CodexStateDetector(), ["Working (12s • Esc to interrupt)"], SessionState.BUSY),
        (GeminiStateDetector(), ["Waiting for user confirmation..."], SessionState.WAITING_INPUT),
        (GeminiStateDetector(), ["⠋ Reading files (esc to cancel, 3s)"], SessionState.BUSY),
        (CursorStateDetector(), ["Run this command? Run (y) (enter)"], SessionState.WAITING_INPUT),
        (CursorStateDetector(), ["Generating  ctrl+c to stop"], SessionState.BUSY),
    ],
)
def test_agent_specific_prompts(detector, lines, expected) -> None:
    assert detector.detect(lines) is expected


def test_detector_for_maps_agent_types() -> None:
    assert isinstance(detector_for("claude"), ClaudeStateDetector)
    assert isinstance(detector_for("claude-code"), ClaudeStateDetector)
    assert isinstance(detector_for(" Codex "), CodexStateDetector)
    generic = detector_for("terminal")
    assert type(generic) is BaseStateDetector
    assert type(detector_for(None)) is BaseStateDetector


def test_session_state_serializes_to_value() -> None:
    assert str(SessionState.WAITING_INPUT) == "waiting_input"
    assert SessionState("busy") is SessionState.BUSY
