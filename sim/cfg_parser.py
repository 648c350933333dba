"""
Reads the input files referenced by a ``.sumocfg`` scenario.

Only ``<input>`` children are of interest; relative ``value`` attributes
are resolved against the directory holding the config file, the way SUMO
itself resolves them.
"""

from __future__ import annotations

import os
import xml.etree.ElementTree as ET
from typing import Dict, List


class CfgParseError(ValueError):
    """The config file is unreadable or does not name a network file."""


def parse_inputs(cfg_path: str) -> Dict[str, List[str]]:
    """Map every ``<input>`` child tag to its absolute file path(s).

    A ``value`` may list several files separated by commas or spaces
    (common for ``route-files``).
    """
    try:
        root = ET.parse(cfg_path).getroot()
    except (ET.ParseError, OSError) as exc:
        raise CfgParseError(f"Cannot read {cfg_path}: {exc}") from exc

    input_elem = root.find("input")
    if input_elem is None:
        raise CfgParseError("The sumocfg file is missing the <input> configuration.")

    base = os.path.dirname(os.path.abspath(cfg_path))
    inputs: Dict[str, List[str]] = {}
    for child in input_elem:
        value = child.get("value")
        if not value:
            continue
        names = [n for n in value.replace(",", " ").split() if n]
        inputs.setdefault(child.tag, []).extend(
            os.path.abspath(os.path.join(base, name)) for name in names
        )
    return inputs


def parse_net_file_path(cfg_path: str) -> str:
    """Absolute path of the network file named by ``<input><net-file value=…>``."""
    net_files = parse_inputs(cfg_path).get("net-file")
    if not net_files:
        raise CfgParseError("No network file (.net.xml) is configured in the sumocfg file.")
    return net_files[0]
