"""
============================================================
EGO-CENTRIC SURVEY — DECLARED SCHEMA
============================================================
Explicit description of the wide survey layout: which columns
hold ego attributes, which attributes repeat once per alter
slot, and how alter-alter closeness columns are named.

Every field carries a declared value kind (numeric or
categorical) so the reshaping stage never has to guess a
column's type while unpivoting.
============================================================
"""

import re
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

FIELD_NAME_RE = re.compile(r"^[A-Za-z]+$")

ValueKind = Literal["numeric", "categorical"]


class SchemaError(ValueError):
    """Raised when a schema is invalid or the survey does not match it."""


class FieldSpec(BaseModel):
    name: str = Field(description="Column stem, letters only (alter columns append a slot digit).")
    kind: ValueKind = Field(description="Declared value kind of every column built from this field.")
    ego_codes: Optional[Dict[str, Union[int, float, str]]] = Field(
        default=None,
        description="Ego-table value -> alter-table code, for fields encoded differently on the two sides.",
    )


class SurveySchema(BaseModel):
    ego_fields: List[FieldSpec]
    alter_fields: List[FieldSpec]
    tracked_fields: List[str] = Field(
        description="An alter slot is real if at least one of these is non-missing."
    )
    excluded_fields: List[str] = Field(default_factory=list)
    tie_prefix: str = "close"
    nomination_field: str = "numgiven"
    max_alters: int = Field(default=5, ge=1, le=9)
    ego_id_field: str = "ego_id"
    alter_id_field: str = "alter_id"
    ego_label: str = "ego"

    @model_validator(mode="after")
    def _check_fields(self):
        for group in (self.ego_fields, self.alter_fields):
            names = [f.name for f in group]
            if len(names) != len(set(names)):
                raise ValueError(f"duplicate field names: {names}")
        for spec in self.alter_fields:
            if not FIELD_NAME_RE.match(spec.name):
                raise ValueError(f"alter field {spec.name!r} must be letters only")
        if not FIELD_NAME_RE.match(self.tie_prefix):
            raise ValueError(f"tie prefix {self.tie_prefix!r} must be letters only")

        alter_names = {f.name for f in self.alter_fields}
        unknown = [n for n in self.tracked_fields + self.excluded_fields if n not in alter_names]
        if unknown:
            raise ValueError(f"tracked/excluded fields are not alter fields: {unknown}")
        if self.nomination_field not in {f.name for f in self.ego_fields}:
            raise ValueError(f"nomination field {self.nomination_field!r} is not an ego field")
        if self.ego_id_field == self.alter_id_field:
            raise ValueError("ego and alter id fields must differ")
        return self

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def slots(self) -> List[int]:
        return list(range(1, self.max_alters + 1))

    @property
    def ego_field_names(self) -> List[str]:
        return [f.name for f in self.ego_fields]

    @property
    def retained_alter_fields(self) -> List[FieldSpec]:
        """Alter fields that survive the explicit exclusion list."""
        return [f for f in self.alter_fields if f.name not in self.excluded_fields]

    def alter_field(self, name: str) -> FieldSpec:
        for spec in self.alter_fields:
            if spec.name == name:
                return spec
        raise KeyError(name)

    def ego_field(self, name: str) -> FieldSpec:
        for spec in self.ego_fields:
            if spec.name == name:
                return spec
        raise KeyError(name)

    def alter_columns(self, name: str) -> Dict[int, str]:
        return {slot: f"{name}{slot}" for slot in self.slots}

    def tie_columns(self) -> Dict[Tuple[int, int], str]:
        """Expected closeness columns, one per unordered slot pair."""
        return {
            (i, j): f"{self.tie_prefix}{i}{j}"
            for i in self.slots
            for j in self.slots
            if i < j
        }

    @property
    def id_fields(self) -> Dict[str, str]:
        return {
            "ego": self.ego_id_field,
            "alter": self.alter_id_field,
            "source": "source",
            "target": "target",
        }


# ---------------------------------------------------------------------------
# GSS 2004 network module
# ---------------------------------------------------------------------------

DEFAULT_SCHEMA = SurveySchema(
    ego_fields=[
        FieldSpec(name="sex", kind="categorical"),
        # RACE is 1 white, 2 black, 3 other; RACE1-5 are 1 asian, 2 black, 3 hispanic, 4 white, 5 other
        FieldSpec(name="race", kind="categorical", ego_codes={"1": 4, "2": 2, "3": 5}),
        FieldSpec(name="age", kind="numeric"),
        FieldSpec(name="partyid", kind="categorical"),
        FieldSpec(name="relig", kind="categorical"),
        FieldSpec(name="numgiven", kind="numeric"),
    ],
    alter_fields=[
        FieldSpec(name="sex", kind="categorical"),
        FieldSpec(name="race", kind="categorical"),
        FieldSpec(name="age", kind="numeric"),
        FieldSpec(name="relig", kind="categorical"),
        FieldSpec(name="educ", kind="categorical"),
    ],
    tracked_fields=["sex", "race", "age", "relig"],
    # educ1 is numeric while educ2..educ5 carry labels in the source file
    excluded_fields=["educ"],
)


def load_schema(path: Optional[str] = None) -> SurveySchema:
    """Return the default schema, or one read from a JSON document."""
    if path is None:
        return DEFAULT_SCHEMA.model_copy(deep=True)
    try:
        return SurveySchema.model_validate_json(Path(path).read_text())
    except ValidationError as exc:
        raise SchemaError(f"{path} is not a valid survey schema:\n{exc}") from exc
