"""
Eye measurement domain model.

Defines the EyeMeasurement dataclass holding one eye's refraction values.
"""

import typing
from dataclasses import dataclass

# Field name → prefix used in the short summary shown on record listings
_SUMMARY_PREFIXES = (
    ("sphere", "S"),
    ("cylinder", "C"),
    ("axis", "A"),
    ("add", "Add"),
)


def as_text(value: typing.Any) -> str:
    """
    Text form of a stored scalar. Older saved collections may hold raw
    spreadsheet numbers or null where text is expected:
    - None → ""
    - integral floats → integer text (9999999999.0 → "9999999999")
    - other numbers → str()
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    raise ValueError(f"Expected text, got {type(value).__name__}")


@dataclass(frozen=True)
class EyeMeasurement:
    """
    Refraction values for a single eye.

    Values are kept as free text exactly as entered (e.g. '-2.50', '+1.00', '90');
    no numeric validation is applied.

    Attributes:
        sphere: Spherical power.
        cylinder: Cylindrical power.
        axis: Cylinder axis in degrees.
        add: Additive (near) power.
    """

    sphere: str = ""
    cylinder: str = ""
    axis: str = ""
    add: str = ""

    def __post_init__(self):
        for attr in ("sphere", "cylinder", "axis", "add"):
            val = getattr(self, attr)
            if not isinstance(val, str):
                raise ValueError(f"{attr} must be a string, got {type(val).__name__}")

    def is_empty(self) -> bool:
        return not any((self.sphere, self.cylinder, self.axis, self.add))

    def summary(self) -> str:
        """
        Compact one-line form, e.g. 'S-2.50 C-0.50 A90 Add+1.00'.
        Returns '-' when nothing was recorded.
        """
        parts = [
            f"{prefix}{getattr(self, attr)}"
            for attr, prefix in _SUMMARY_PREFIXES
            if getattr(self, attr)
        ]
        return " ".join(parts) if parts else "-"

    def to_dict(self) -> dict[str, str]:
        return {
            "sphere": self.sphere,
            "cylinder": self.cylinder,
            "axis": self.axis,
            "add": self.add,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EyeMeasurement":
        if not isinstance(data, dict):
            raise ValueError(f"Eye measurement must be a mapping, got {type(data).__name__}")
        return cls(
            sphere=as_text(data.get("sphere")),
            cylinder=as_text(data.get("cylinder")),
            axis=as_text(data.get("axis")),
            add=as_text(data.get("add")),
        )
