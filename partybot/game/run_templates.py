"""
Run templates: the role compositions a party can be formed from.

Role labels may repeat; a party's slots are identified by position, never by
label.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RunTemplate:
    """Ordered role composition for one kind of speed-clear run."""

    kind: str
    roles: tuple[str, ...]

    @property
    def size(self) -> int:
        return len(self.roles)


def _template(kind: str, *roles: str) -> RunTemplate:
    return RunTemplate(kind=kind, roles=tuple(roles))


RUN_TEMPLATES: dict[str, RunTemplate] = {
    template.kind: template
    for template in (
        _template("BogSC", "Tank", "AotL MM", "Paragon", "VoS", "VoS", "VoS", "VoS", "VoS"),
        _template("DeepSC", "Tank", "EoE", "UA", *(["DPS"] * 9)),
        _template("DoASC", "MT", "TT", "Caller", "TK", "IAU", "MLK", "UA", "Emo"),
        _template("FoWSC", "T1", "T2", "T3", "T4", "MT", "VoS", "VoS", "VoS"),
        _template("SoOSC", "MT", "Gater", "VoS", "TaO", *(["Glass Arrows"] * 4)),
        _template(
            "UrgozSC",
            "Tank",
            "VoS",
            "SoS/EoE",
            "Deep Freeze",
            *(["Spiker"] * 5),
            "Seeder",
            "Seeder",
            "Bonder",
        ),
        _template("UWSC", "T1", "T2", "T3", "T4", "LT", "SoS", "Spiker", "Emo"),
    )
}


def get_template(kind: str) -> RunTemplate | None:
    """Return the template for a run kind, or None if it is not known."""
    return RUN_TEMPLATES.get(kind)


def template_kinds() -> list[str]:
    """Run kinds in the order they are offered to users."""
    return list(RUN_TEMPLATES)
