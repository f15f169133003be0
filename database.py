#!/usr/bin/env python3
"""
Pin Database Models and CubeMX Loader
Reads the gzip compressed XML database extracted from CubeMX and builds
the part, pin and signal model used to produce pin out tables.

Database layout:
    <database>/mcu/<PART>.xml.gz                         # one file per part
    <database>/mcu/IP/GPIO-<version>_Modes.xml.gz        # GPIO mapping modes
"""

import gzip
import logging
import re
import zlib
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

EXT = ".xml.gz"

# Number of alternate function slots on AF based parts
AF_COUNT = 16

# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class PinmapError(Exception):
    """Base exception for all pinmap failures"""
    pass

class NotFound(PinmapError):
    """Part or database file does not exist"""
    pass

class DatabaseReadError(PinmapError):
    """Database file exists but cannot be read"""
    pass

class DecompressionError(PinmapError):
    """Database file is not a valid gzip stream"""
    pass

class MalformedDatabase(PinmapError):
    """Database document is missing required elements or attributes"""
    pass

# ============================================================================
# DATABASE MODEL CLASSES
# ============================================================================

class GpioMode(Enum):
    """How signals are routed to pins on a part"""
    AF = "af"        # numbered alternate functions per pin
    REMAP = "remap"  # older parts, named remap configurations

class MapKind(Enum):
    """Kind of mapping between one signal and one pin"""
    AF = "af"
    ADDF = "addf"    # additional function, no AF setup to do
    REMAP = "remap"

@dataclass(frozen=True)
class SignalMap:
    """Information on how to map a signal to a pin"""
    kind: MapKind
    af: Optional[int] = None
    remaps: Tuple[int, ...] = ()

    @classmethod
    def alternate(cls, af: int) -> 'SignalMap':
        return cls(MapKind.AF, af=af)

    @classmethod
    def additional(cls) -> 'SignalMap':
        return cls(MapKind.ADDF)

    @classmethod
    def remap(cls, remaps: List[int]) -> 'SignalMap':
        return cls(MapKind.REMAP, remaps=tuple(remaps))

@dataclass(frozen=True)
class SignalInfo:
    """One signal available on a pin"""
    name: str
    map: SignalMap

@dataclass(frozen=True)
class PinInfo:
    """One package pin"""
    name: str
    position: str  # number ("42") or ball ("B7")
    signals: Tuple[SignalInfo, ...] = ()

@dataclass(frozen=True)
class PartInfo:
    """Everything known about one part"""
    part: str
    line: str
    package: str
    gpio_mode: GpioMode
    pins: Tuple[PinInfo, ...] = field(default_factory=tuple)

    def summary(self) -> str:
        """Produce a one-line part summary"""
        return f"{self.part}: {self.line} {self.package}"

    def signal_names(self) -> List[str]:
        """All declared signal names, in document order, without duplicates"""
        names = []
        for pin in self.pins:
            for signal in pin.signals:
                if signal.name not in names:
                    names.append(signal.name)
        return names

# Pin name -> signal name -> mapping, from the GPIO modes document
GpiosInfo = Dict[str, Dict[str, SignalMap]]

# ============================================================================
# XML HELPERS
# ============================================================================

def _local_name(tag) -> str:
    """Tag name without the CubeMX namespace"""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit('}', 1)[-1]

def _children(node: ET.Element, tag: str) -> List[ET.Element]:
    return [child for child in node if _local_name(child.tag) == tag]

def _first_descendant(node: ET.Element, tag: str) -> Optional[ET.Element]:
    for element in node.iter():
        if element is not node and _local_name(element.tag) == tag:
            return element
    return None

def attribute_or_error(node: ET.Element, name: str) -> str:
    """Get an attribute, raise MalformedDatabase if not found"""
    value = node.get(name)
    if value is None:
        raise MalformedDatabase(f"{_local_name(node.tag)} missing a {name} attribute")
    return value

def parse_document(data: bytes, source: str = "document") -> ET.Element:
    """Parse XML bytes and return the root element"""
    try:
        return ET.fromstring(data)
    except ET.ParseError as e:
        raise MalformedDatabase(f"XML parsing error in {source}: {e}")

# ============================================================================
# XML MODEL PARSER
# ============================================================================

_AF_VALUE_RE = re.compile(r'^GPIO_AF(\d+)_')
_REMAP_NAME_RE = re.compile(r'REMAP(\d+)$')

def parse_af(signal: ET.Element) -> SignalMap:
    """Decode the AF number of a PinSignal, e.g. GPIO_AF7_USART1 -> 7"""
    value = _first_descendant(signal, 'PossibleValue')
    if value is None or not (value.text or '').strip():
        raise MalformedDatabase(f"no AF found for signal {signal.get('Name')}")
    text = value.text.strip()
    match = _AF_VALUE_RE.match(text)
    if not match:
        raise MalformedDatabase(f"not an AF: {text}")
    return SignalMap.alternate(int(match.group(1)))

def parse_remaps(signal: ET.Element) -> SignalMap:
    """Decode the remap numbers of a PinSignal from its RemapBlock names"""
    remaps = []
    for block in _children(signal, 'RemapBlock'):
        name = attribute_or_error(block, 'Name')
        match = _REMAP_NAME_RE.search(name)
        if not match:
            raise MalformedDatabase(f"missing REMAP in remap block {name}")
        remaps.append(int(match.group(1)))
    return SignalMap.remap(remaps)

def parse_gpio_modes(root: ET.Element) -> Tuple[GpioMode, GpiosInfo]:
    """
    Decode a GPIO modes document.

    The first PinSignal decides the mode for the whole document: a signal
    with a RemapBlock means a remap based part. Without any signal, the part
    is considered AF based.
    """
    mode: Optional[GpioMode] = None
    gpios: GpiosInfo = {}

    for pin in _children(root, 'GPIO_Pin'):
        pin_name = attribute_or_error(pin, 'Name')
        signals_map = gpios.setdefault(pin_name, {})
        for signal in _children(pin, 'PinSignal'):
            if mode is None:
                mode = GpioMode.REMAP if _children(signal, 'RemapBlock') else GpioMode.AF
            signal_name = attribute_or_error(signal, 'Name')
            if mode is GpioMode.AF:
                signals_map[signal_name] = parse_af(signal)
            else:
                signals_map[signal_name] = parse_remaps(signal)

    return mode or GpioMode.AF, gpios

def parse_part(root: ET.Element, part: str, gpio_mode: GpioMode, gpios: GpiosInfo) -> PartInfo:
    """Decode a part document, using GPIO modes to map its signals"""
    line = attribute_or_error(root, 'Line')
    package = attribute_or_error(root, 'Package')

    pins = []
    for pin in _children(root, 'Pin'):
        name = attribute_or_error(pin, 'Name')
        position = attribute_or_error(pin, 'Position')
        signals_map = gpios.get(name)
        signals = []
        for signal in _children(pin, 'Signal'):
            signal_name = attribute_or_error(signal, 'Name')
            if signal_name == 'GPIO':
                continue
            if signals_map is None:
                signal_map = SignalMap.additional()
            else:
                signal_map = signals_map.get(signal_name, SignalMap.additional())
            signals.append(SignalInfo(signal_name, signal_map))
        pins.append(PinInfo(name, position, tuple(signals)))

    return PartInfo(
        part=part,
        line=line,
        package=package,
        gpio_mode=gpio_mode,
        pins=tuple(pins)
    )

def gpio_version(root: ET.Element) -> str:
    """Version of the GPIO IP used by a part document"""
    for ip in _children(root, 'IP'):
        if ip.get('Name') == 'GPIO':
            return attribute_or_error(ip, 'Version')
    raise MalformedDatabase("missing GPIO")

# ============================================================================
# DATABASE LOADER
# ============================================================================

class CubeMXDatabase:
    """Access to a database directory extracted from CubeMX"""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    @property
    def mcu_dir(self) -> Path:
        return self.root / "mcu"

    def part_path(self, part: str) -> Path:
        return self.mcu_dir / f"{part}{EXT}"

    def gpio_modes_path(self, version: str) -> Path:
        return self.mcu_dir / "IP" / f"GPIO-{version}_Modes{EXT}"

    def read_gzipped(self, path: Path) -> bytes:
        """Read and decompress one database file"""
        logger.debug("Reading %s", path)
        try:
            with gzip.open(path, 'rb') as file:
                return file.read()
        except FileNotFoundError:
            raise NotFound(f"Database file not found: {path}")
        except (gzip.BadGzipFile, EOFError, zlib.error) as e:
            raise DecompressionError(f"Cannot decompress {path}: {e}")
        except OSError as e:
            raise DatabaseReadError(f"Cannot read {path}: {e}")

    def list_parts(self, pattern: str) -> List[str]:
        """List all parts in database matching a regex"""
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise PinmapError(f"Invalid part pattern '{pattern}': {e}")

        if not self.mcu_dir.is_dir():
            raise NotFound(f"Database directory not found: {self.mcu_dir}")

        parts = []
        for entry in self.mcu_dir.iterdir():
            if entry.is_file() and entry.name.endswith(EXT):
                part = entry.name[:-len(EXT)]
                if regex.search(part):
                    parts.append(part)
        return sorted(parts)

    def load_gpio_modes(self, version: str) -> Tuple[GpioMode, GpiosInfo]:
        """Load GPIO mapping information for one GPIO IP version"""
        path = self.gpio_modes_path(version)
        root = parse_document(self.read_gzipped(path), path.name)
        return parse_gpio_modes(root)

    def load_part(self, part: str) -> PartInfo:
        """Extract information about a part from the database"""
        path = self.part_path(part)
        try:
            data = self.read_gzipped(path)
        except NotFound:
            raise NotFound(f"Part {part} not found in database {self.root}")

        root = parse_document(data, path.name)
        version = gpio_version(root)
        gpio_mode, gpios = self.load_gpio_modes(version)
        part_info = parse_part(root, part, gpio_mode, gpios)

        logger.info("Loaded %s: %d pins, GPIO-%s (%s mode)",
                    part, len(part_info.pins), version, gpio_mode.value)
        return part_info
