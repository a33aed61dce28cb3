"""
Learning flow state machine.

The learner moves through a unit as:

    MAP -> BRIEFING -> CONTENT <-> TEST -> COMPLETE
     ^__________________________________________|  (return_to_map)

Guards make illegal states unrepresentable: content and test states always
have a selected, non-locked unit, and only a quiz node opens the test.
"""

from __future__ import annotations

from enum import Enum

from loguru import logger

from lumen.core.errors import IllegalTransitionError
from lumen.core.models import LearningUnit, NodeKind, UnitNode


class FlowState(str, Enum):
    MAP = "map"
    BRIEFING = "briefing"
    CONTENT = "content"
    TEST = "test"
    COMPLETE = "complete"


class LearningFlow:
    """Tracks one learner's position in the unit map."""

    def __init__(self) -> None:
        self.state = FlowState.MAP
        self.unit: LearningUnit | None = None
        self.node: UnitNode | None = None
        self.test_passed = False

    def _require(self, *states: FlowState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise IllegalTransitionError(f"Expected state in ({allowed}), currently {self.state.value}")

    def _require_open_unit(self) -> LearningUnit:
        if self.unit is None:
            raise IllegalTransitionError("No unit selected")
        if self.unit.is_locked:
            raise IllegalTransitionError(f"Unit {self.unit.id} is locked")
        return self.unit

    def _move(self, target: FlowState) -> None:
        logger.debug(f"Learning flow {self.state.value} -> {target.value}")
        self.state = target

    # ========================================
    # Transitions
    # ========================================

    def select_unit(self, unit: LearningUnit) -> None:
        """MAP -> BRIEFING."""
        self._require(FlowState.MAP)
        if unit.is_locked:
            raise IllegalTransitionError(f"Unit {unit.id} is locked")
        self.unit = unit
        self.node = None
        self.test_passed = False
        self._move(FlowState.BRIEFING)

    def open_node(self, node: UnitNode) -> None:
        """BRIEFING/CONTENT -> CONTENT, or -> TEST for quiz nodes."""
        self._require(FlowState.BRIEFING, FlowState.CONTENT)
        unit = self._require_open_unit()
        if unit.nodes and node.id not in {n.id for n in unit.nodes}:
            raise IllegalTransitionError(f"Node {node.id} does not belong to unit {unit.id}")
        self.node = node
        self._move(FlowState.TEST if node.kind == NodeKind.QUIZ else FlowState.CONTENT)

    def start_test(self) -> None:
        """BRIEFING/CONTENT -> TEST."""
        self._require(FlowState.BRIEFING, FlowState.CONTENT)
        self._require_open_unit()
        self.test_passed = False
        self._move(FlowState.TEST)

    def pass_test(self) -> LearningUnit:
        """TEST -> COMPLETE; returns the unit that was mastered."""
        self._require(FlowState.TEST)
        unit = self._require_open_unit()
        self.test_passed = True
        self._move(FlowState.COMPLETE)
        return unit

    def return_to_map(self) -> None:
        """Any state -> MAP."""
        self.unit = None
        self.node = None
        self.test_passed = False
        self._move(FlowState.MAP)
