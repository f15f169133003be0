#!/usr/bin/env python3
"""
Pin Out Table Builder and Writer
Projects a loaded part into a table with one row per pin, then writes it
as delimited text that any spreadsheet can open.
"""

import csv
import io
import logging
import os
import re
import stat
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from rich.table import Table as RichTable

from database import AF_COUNT, GpioMode, MapKind, PartInfo, PinmapError

logger = logging.getLogger(__name__)

DELIMITERS = {"csv": ",", "tsv": "\t"}

# Shorten peripheral names: the first group is kept, then the character
# following the peripheral name.
DEFAULT_SUBSTITUTIONS = [
    r"((?:HR|LP)?T)IM",
    r"((?:LP)?U)S?ART",
    r"(D)FSDM",
    r"(F)S?MC",
    r"(Q)UADSPI(?:_BK)?",
    r"(S)PI",
    r"(SW)PMI",
    r"I2(S)",
    r"(SD)MMC",
    r"(SP)DIFRX",
    r"FD(C)AN",
    r"USB_OTG_([FH]S)",
    r"(T\d_B)KIN",
]

# Merge similar signals on their first group, with the given separator.
DEFAULT_FACTORIZATIONS = [
    (r"T\d_B\d?_COMP(\d+)", ""),
    (r"ADC(\d)_IN[NP]?\d+", ""),
    (r"ADC\d+_IN([NP]?\d+)", ""),
    (r"[SUT]\d_(.+)", "/"),
]

class OutputError(PinmapError):
    """Table could not be written"""
    pass

# ============================================================================
# SIGNAL FILTER
# ============================================================================

def factorize(signals: Iterable[str], regex: re.Pattern, sep: str) -> List[str]:
    """
    Match each signal with the regex, signals sharing everything but the
    first group are merged into one, e.g. ADC1_IN5 and ADC2_IN5 become
    ADC12_IN5. Merged signals come first, in order of first appearance.
    """
    others = []
    facts: Dict[Tuple[str, str], List[str]] = {}
    for signal in signals:
        match = regex.search(signal)
        if match:
            outside = (signal[:match.start(1)], signal[match.end(1):])
            facts.setdefault(outside, []).append(match.group(1))
        else:
            others.append(signal)
    merged = [f"{before}{sep.join(terms)}{after}" for (before, after), terms in facts.items()]
    return merged + others

class SignalFilter:
    """Filter signals to reduce pin out table size"""

    def __init__(self,
                 excludes: Sequence[str] = (),
                 substitutions: Sequence[str] = (),
                 factorizations: Sequence[Tuple[str, str]] = ()):
        try:
            self.excludes = [re.compile(rf"^(?:{exclude})[0-9_]") for exclude in excludes]
            self.subs = [re.compile(rf"^{sub}([0-9_])") for sub in substitutions]
            self.facts_sep = [(re.compile(fact), sep) for fact, sep in factorizations]
        except re.error as e:
            raise PinmapError(f"Invalid signal filter rule: {e}")

        # Both kinds of rules keep or merge on their first group
        for sub, regex in zip(substitutions, self.subs):
            if regex.groups < 2:
                raise PinmapError(f"Invalid signal filter rule: substitution '{sub}' has no group")
        for (fact, _), (regex, _) in zip(factorizations, self.facts_sep):
            if regex.groups < 1:
                raise PinmapError(f"Invalid signal filter rule: factorization '{fact}' has no group")

    @classmethod
    def default(cls, excludes: Sequence[str] = (),
                extra_substitutions: Sequence[str] = (),
                extra_factorizations: Sequence[Tuple[str, str]] = ()) -> 'SignalFilter':
        """Filter with the built-in shortening rules"""
        return cls(
            excludes,
            list(DEFAULT_SUBSTITUTIONS) + list(extra_substitutions),
            list(DEFAULT_FACTORIZATIONS) + list(extra_factorizations)
        )

    def is_excluded(self, signal: str) -> bool:
        return any(regex.match(signal) for regex in self.excludes)

    def shorten(self, signal: str) -> str:
        for regex in self.subs:
            signal = regex.sub(r"\1\2", signal)
        return signal

    def apply(self, signals: Iterable[str]) -> List[str]:
        """Filter one cell worth of signals"""
        # Excludes are checked on both the vendor and the shortened names.
        signals = [self.shorten(s) for s in signals if not self.is_excluded(s)]
        for regex, sep in self.facts_sep:
            signals = factorize(signals, regex, sep)
        return [s for s in signals if not self.is_excluded(s)]

# ============================================================================
# TABLE BUILDER
# ============================================================================

@dataclass
class Table:
    """Pin out table, one row per pin: name, position, then one cell per column"""
    header: List[str]
    rows: List[List[str]] = field(default_factory=list)
    mode: GpioMode = GpioMode.AF

    @property
    def columns(self) -> List[str]:
        return self.header[2:]

def af_header() -> List[str]:
    return ["Pin", "Position"] + [f"AF{i}" for i in range(AF_COUNT)] + ["Additional"]

def build_af_table(part: PartInfo, signal_filter: SignalFilter) -> Table:
    """Produce a pin out table for AF based parts"""
    table = Table(header=af_header(), mode=GpioMode.AF)
    for pin in part.pins:
        cells: List[List[str]] = [[] for _ in range(AF_COUNT + 1)]
        for signal in pin.signals:
            if signal.map.kind is MapKind.AF:
                cells[signal.map.af].append(signal.name)
            else:
                cells[AF_COUNT].append(signal.name)
        row = [pin.name, pin.position]
        row.extend(" ".join(signal_filter.apply(cell)) for cell in cells)
        table.rows.append(row)
    return table

def remap_label(name: str, remaps: Sequence[int]) -> str:
    """USART1_TX available on remaps 1 and 0 -> USART1_TX(0,1)"""
    if not remaps:
        return name
    return f"{name}({','.join(str(r) for r in sorted(remaps))})"

def build_remap_table(part: PartInfo, signal_filter: SignalFilter) -> Table:
    """Produce a pin out table for remap based parts, one column per peripheral"""
    lines = []
    categories = set()
    for pin in part.pins:
        labels = [
            remap_label(signal.name, signal.map.remaps if signal.map.kind is MapKind.REMAP else ())
            for signal in pin.signals
        ]
        by_category: Dict[str, List[str]] = {}
        for label in signal_filter.apply(labels):
            category = label.split('_', 1)[0]
            categories.add(category)
            by_category.setdefault(category, []).append(label)
        lines.append((pin, by_category))

    columns = sorted(categories)
    table = Table(header=["Pin", "Position"] + columns, mode=GpioMode.REMAP)
    for pin, by_category in lines:
        row = [pin.name, pin.position]
        row.extend(" ".join(by_category.get(column, [])) for column in columns)
        table.rows.append(row)
    return table

def build_table(part: PartInfo, signal_filter: SignalFilter) -> Table:
    """Produce a pin out table in the shape matching the part GPIO mode"""
    if part.gpio_mode is GpioMode.REMAP:
        table = build_remap_table(part, signal_filter)
    else:
        table = build_af_table(part, signal_filter)
    logger.info("Built %s table: %d rows, %d columns",
                table.mode.value, len(table.rows), len(table.columns))
    return table

# ============================================================================
# TABLE WRITER
# ============================================================================

def render_table(table: Table, delimiter: str = ",", header: bool = True) -> str:
    """Format a table as delimited text"""
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    if header:
        writer.writerow(table.header)
    writer.writerows(table.rows)
    return buffer.getvalue()

def _output_mode(path: Path) -> int:
    """Permissions of the file being replaced, else what open() would give"""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask

def write_table(table: Table, destination: Optional[Union[str, Path]] = None,
                delimiter: str = ",", header: bool = True) -> None:
    """
    Write a table to a file, or to standard output when destination is
    None or "-". The file is replaced in one step, so a failed write never
    leaves a partial table behind.
    """
    text = render_table(table, delimiter, header)

    if destination is None or str(destination) == "-":
        try:
            sys.stdout.write(text)
            sys.stdout.flush()
        except OSError as e:
            raise OutputError(f"Cannot write table to standard output: {e}")
        return

    path = Path(destination)
    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile('w', encoding='utf-8', newline='',
                                         dir=path.parent, prefix=f".{path.name}.",
                                         suffix=".tmp", delete=False) as tmp:
            tmp_name = tmp.name
            tmp.write(text)
        os.chmod(tmp_name, _output_mode(path))
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise OutputError(f"Cannot write table to {path}: {e}")

    logger.info("Table written to %s", path)

def to_rich_table(table: Table, title: str = "") -> RichTable:
    """Terminal rendering of a pin out table"""
    rich_table = RichTable(title=title or None, show_lines=False)
    rich_table.add_column(table.header[0], style="cyan", no_wrap=True)
    rich_table.add_column(table.header[1], style="magenta", no_wrap=True)
    for column in table.columns:
        rich_table.add_column(column, style="yellow")
    for row in table.rows:
        rich_table.add_row(*row)
    return rich_table
