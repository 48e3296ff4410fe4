"""Control record generation and parsing."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from debpack.errors import ValidationError

logger = logging.getLogger(__name__)

CONTROL_FILE = "control"
PACKAGE_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9+.\-]*$")

FIELD_ORDER = [
    "Package",
    "Version",
    "License",
    "Vendor",
    "Architecture",
    "Maintainer",
    "Depends",
    "Section",
    "Priority",
    "Homepage",
    "Description",
]


def format_depends(text: str) -> List[str]:
    """Turn a newline-delimited dependency list into entries, dropping blank lines."""
    return [line.strip() for line in text.splitlines() if line.strip()]


@dataclass
class ControlMetadata:
    name: str
    version: str
    vendor: str = "unknown"
    depends: List[str] = field(default_factory=list)
    maintainer: str = "<root@localhost>"
    architecture: str = "all"
    license: str = "unknown"
    section: str = "default"
    priority: str = "extra"
    homepage: str = "http://localhost"
    description: str = "no description given"

    def validate(self):
        if not self.name:
            raise ValidationError("Package name is required")
        if not PACKAGE_NAME_RE.match(self.name):
            raise ValidationError(
                f"Invalid package name {self.name!r}: use lowercase letters, digits, '+', '-' and '.'"
            )
        if not self.version:
            raise ValidationError("Package version is required")

    def depends_field(self) -> str:
        return ", ".join(self.depends)

    def fields(self) -> Dict[str, str]:
        values = {
            "Package": self.name,
            "Version": self.version,
            "License": self.license,
            "Vendor": self.vendor or "unknown",
            "Architecture": self.architecture or "all",
            "Maintainer": self.maintainer,
            "Depends": self.depends_field(),
            "Section": self.section,
            "Priority": self.priority,
            "Homepage": self.homepage,
            "Description": self.description,
        }
        # dpkg rejects empty relationship fields
        if not values["Depends"]:
            del values["Depends"]
        return values

    def render(self) -> str:
        return render_fields(self.fields())


def _format_field(key: str, value: str) -> str:
    if "\n" not in value:
        return f"{key}: {value}"
    first, *rest = value.splitlines()
    return "\n".join([f"{key}: {first}"] + [f" {line}" if line.strip() else " ." for line in rest])


def render_fields(values: Dict[str, str]) -> str:
    ordered = [k for k in FIELD_ORDER if k in values]
    ordered += [k for k in values if k not in ordered]
    return "\n".join(_format_field(k, values[k]) for k in ordered) + "\n"


def parse_control(text: str) -> Dict[str, str]:
    """
    Parse a single control paragraph into a dict.

    Continuation lines (leading space or tab) are joined to the previous field
    with newlines; a lone ``.`` continuation stands for a blank line. Comment
    lines starting with ``#`` are ignored.
    """
    values: Dict[str, str] = {}
    current = None
    for raw in text.splitlines():
        if raw.startswith("#"):
            continue
        if not raw.strip():
            if values:
                break
            continue
        if raw[0] in " \t":
            if current is None:
                raise ValidationError(f"Continuation line without a field: {raw!r}")
            line = raw[1:]
            values[current] += "\n" + ("" if line.strip() == "." else line)
            continue
        if ":" not in raw:
            raise ValidationError(f"Invalid control field line: {raw!r}")
        key, value = raw.split(":", 1)
        current = key.strip()
        values[current] = value.strip()
    return values


def resolve_control(control_dir: Path, metadata: ControlMetadata) -> Path:
    """Write the generated control record unless ``control_dir`` already has one."""
    control_path = control_dir / CONTROL_FILE
    if control_path.is_file():
        logger.info(f"Using supplied control record {control_path}")
        return control_path
    metadata.validate()
    control_path.write_text(metadata.render(), encoding="utf-8", newline="\n")
    logger.debug(f"Generated control record for {metadata.name} {metadata.version}")
    return control_path
