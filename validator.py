#!/usr/bin/env python3
"""
Database Model Validation
Checks the invariants a pin out table relies on before it is built
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

from database import AF_COUNT, GpioMode, MapKind, PartInfo

# ============================================================================
# VALIDATION RESULT CLASSES
# ============================================================================

class ValidationLevel(Enum):
    """Validation message severity levels"""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

@dataclass
class ValidationMessage:
    """Single validation message"""
    level: ValidationLevel
    message: str
    location: str = ""

    def __str__(self) -> str:
        location_str = f"{self.location}: " if self.location else ""
        return f"{location_str}{self.message}"

@dataclass
class ValidationResult:
    """Complete validation result"""
    is_valid: bool = True
    messages: List[ValidationMessage] = field(default_factory=list)

    @property
    def errors(self) -> List[ValidationMessage]:
        return [msg for msg in self.messages if msg.level == ValidationLevel.ERROR]

    @property
    def warnings(self) -> List[ValidationMessage]:
        return [msg for msg in self.messages if msg.level == ValidationLevel.WARNING]

    @property
    def info_messages(self) -> List[ValidationMessage]:
        return [msg for msg in self.messages if msg.level == ValidationLevel.INFO]

    def add(self, level: ValidationLevel, message: str, location: str = ""):
        self.messages.append(ValidationMessage(level, message, location))
        if level == ValidationLevel.ERROR:
            self.is_valid = False

    def add_error(self, message: str, location: str = ""):
        self.add(ValidationLevel.ERROR, message, location)

    def add_warning(self, message: str, location: str = ""):
        self.add(ValidationLevel.WARNING, message, location)

    def add_info(self, message: str, location: str = ""):
        self.add(ValidationLevel.INFO, message, location)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

# ============================================================================
# DATABASE VALIDATOR
# ============================================================================

class DatabaseValidator:
    """Validate a loaded part against the pin table invariants"""

    def validate(self, part: PartInfo) -> ValidationResult:
        result = ValidationResult()

        self._check_unique_pins(part, result)
        self._check_af_slots(part, result)
        self._check_mode_consistency(part, result)

        signal_count = sum(len(pin.signals) for pin in part.pins)
        result.add_info(f"{len(part.pins)} pins, {signal_count} pin signals", location=part.part)
        return result

    def _check_unique_pins(self, part: PartInfo, result: ValidationResult):
        """Each pin must appear once to get exactly one row"""
        seen = set()
        for pin in part.pins:
            if pin.name in seen:
                result.add_error(f"Pin {pin.name} listed more than once", location=part.part)
            seen.add(pin.name)

    def _check_af_slots(self, part: PartInfo, result: ValidationResult):
        """AF indices must be in range, signals sharing a slot end up in one cell"""
        for pin in part.pins:
            slots: Dict[int, str] = {}
            for signal in pin.signals:
                if signal.map.kind is not MapKind.AF:
                    continue
                af = signal.map.af
                if af is None or not 0 <= af < AF_COUNT:
                    result.add_error(f"AF{af} of {signal.name} out of range", location=pin.name)
                    continue
                existing = slots.get(af)
                if existing is not None and existing != signal.name:
                    result.add_warning(
                        f"AF{af} shared by {existing} and {signal.name}",
                        location=pin.name
                    )
                    continue
                slots[af] = signal.name

    def _check_mode_consistency(self, part: PartInfo, result: ValidationResult):
        """Mappings of the other mode are ignored by the table builder"""
        unexpected = MapKind.REMAP if part.gpio_mode is GpioMode.AF else MapKind.AF
        ignored: List[Tuple[str, str]] = [
            (pin.name, signal.name)
            for pin in part.pins
            for signal in pin.signals
            if signal.map.kind is unexpected
        ]
        for pin_name, signal_name in ignored:
            result.add_warning(
                f"{signal_name} has a {unexpected.value} mapping on a {part.gpio_mode.value} part",
                location=pin_name
            )
