#!/usr/bin/env python3
"""
Settings File Loader
Optional YAML file giving defaults for the command line and extra signal
filter rules. The file is checked against a JSON schema before use.

Example pinmap.yaml:
    database: ~/cubemx/db
    exclude: [ETH, FMC]
    format: tsv
    header: true
    substitutions:
      - "(L)PTIM"
    factorizations:
      - {pattern: "ADC\\d+_IN([NP]?\\d+)", separator: ""}
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import jsonschema
import yaml

from database import PinmapError

DEFAULT_SETTINGS_FILE = "pinmap.yaml"

SETTINGS_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "database": {"type": "string", "minLength": 1},
        "exclude": {
            "type": "array",
            "items": {"type": "string", "pattern": "^[A-Za-z0-9_|()?*+\\\\]+$"}
        },
        "format": {"enum": ["csv", "tsv"]},
        "header": {"type": "boolean"},
        "substitutions": {"type": "array", "items": {"type": "string", "minLength": 1}},
        "factorizations": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["pattern"],
                "properties": {
                    "pattern": {"type": "string", "minLength": 1},
                    "separator": {"type": "string"}
                }
            }
        }
    }
}

class ConfigurationError(PinmapError):
    """Settings file cannot be used"""
    pass

@dataclass
class Settings:
    """Command line defaults"""
    database: str = "db"
    exclude: List[str] = field(default_factory=list)
    format: str = "csv"
    header: bool = True
    substitutions: List[str] = field(default_factory=list)
    factorizations: List[Tuple[str, str]] = field(default_factory=list)
    source: Optional[str] = None

def validate_settings(data: Dict[str, Any]) -> None:
    """Check raw settings against the schema"""
    try:
        jsonschema.validate(data, SETTINGS_SCHEMA)
    except jsonschema.ValidationError as e:
        error_path = " -> ".join(str(p) for p in e.absolute_path) if e.absolute_path else "root"
        raise ConfigurationError(f"Invalid settings at '{error_path}': {e.message}")

def parse_settings(data: Optional[Dict[str, Any]], source: Optional[str] = None) -> Settings:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings must be a mapping, got {type(data).__name__}")
    validate_settings(data)

    return Settings(
        database=data.get('database', 'db'),
        exclude=list(data.get('exclude', [])),
        format=data.get('format', 'csv'),
        header=data.get('header', True),
        substitutions=list(data.get('substitutions', [])),
        factorizations=[
            (fact['pattern'], fact.get('separator', ''))
            for fact in data.get('factorizations', [])
        ],
        source=source
    )

def load_settings(settings_file: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from the given file. Without a file, use pinmap.yaml from
    the current directory if there is one, else built-in defaults.
    """
    if settings_file is None:
        default = Path(DEFAULT_SETTINGS_FILE)
        if not default.is_file():
            return Settings()
        settings_file = default

    try:
        with open(settings_file, 'r', encoding='utf-8') as file:
            data = yaml.safe_load(file)
    except FileNotFoundError:
        raise ConfigurationError(f"Settings file not found: {settings_file}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"YAML parsing error: {e}")
    except OSError as e:
        raise ConfigurationError(f"Error loading settings: {e}")

    settings = parse_settings(data, str(settings_file))
    if settings.database.startswith('~'):
        settings.database = str(Path(settings.database).expanduser())
    return settings
