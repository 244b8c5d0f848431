import os
import re
import sys
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from survey_schema import DEFAULT_SCHEMA, SchemaError, SurveySchema

# Readers by file suffix; anything else is treated as comma separated.
READERS = {
    ".csv": lambda src: pd.read_csv(src),
    ".tsv": lambda src: pd.read_csv(src, sep="\t"),
    ".dta": lambda src: pd.read_stata(src, convert_categoricals=False),
}


class DataQualityReport(BaseModel):
    """Everything the pipeline filtered or could not find, by policy rather than error."""

    excluded_fields: Dict[str, str] = Field(default_factory=dict)
    missing_columns: List[str] = Field(default_factory=list)
    unmatched_columns: List[str] = Field(default_factory=list)
    dropped_respondents: int = 0
    empty_alter_slots: int = 0
    dangling_ties: int = 0
    excluded_ties: Dict[str, str] = Field(default_factory=dict)
    encoding_mismatches: Dict[str, str] = Field(default_factory=dict)


class ColumnGroups:
    """Wide columns partitioned by role.

    ``alter`` maps field name -> {slot: column}; ``ties`` maps
    (source slot, target slot) -> column.
    """

    def __init__(self):
        self.ego: List[str] = []
        self.alter: Dict[str, Dict[int, str]] = {}
        self.ties: Dict[Tuple[int, int], str] = {}
        self.unmatched: List[str] = []

    def alter_column_list(self, fields=None) -> List[str]:
        names = self.alter if fields is None else [f for f in fields if f in self.alter]
        return [col for name in names for _, col in sorted(self.alter[name].items())]

    def __repr__(self):
        return (
            f"ColumnGroups(ego={len(self.ego)}, alter={len(self.alter_column_list())}, "
            f"ties={len(self.ties)}, unmatched={len(self.unmatched)})"
        )


def alter_column_re(schema: SurveySchema):
    return re.compile(rf"^(?P<attribute>[A-Za-z]+)(?P<slot>[1-{schema.max_alters}])$")


def tie_column_re(schema: SurveySchema):
    return re.compile(
        rf"^{re.escape(schema.tie_prefix)}(?P<source>[1-{schema.max_alters}])(?P<target>[1-{schema.max_alters}])$"
    )


def load_survey(source) -> pd.DataFrame:
    """Read the wide survey table from a local file or a URL."""
    source = str(source)
    suffix = os.path.splitext(source.split("?", 1)[0])[1].lower()
    reader = READERS.get(suffix, READERS[".csv"])
    return reader(source)


def classify_columns(columns, schema: SurveySchema = DEFAULT_SCHEMA) -> ColumnGroups:
    """
    Partition wide column names by naming pattern alone.

    Ego columns match a declared ego field exactly; alter columns are a
    declared alter field followed by one slot digit; tie columns are the
    tie prefix followed by two slot digits. Anything else lands in
    ``unmatched`` and is ignored downstream.
    """
    alter_re = alter_column_re(schema)
    tie_re = tie_column_re(schema)
    ego_names = set(schema.ego_field_names)
    alter_names = {f.name for f in schema.alter_fields}

    groups = ColumnGroups()
    for col in columns:
        name = str(col)
        matched = False
        if name in ego_names:
            groups.ego.append(name)
            matched = True
        m = alter_re.match(name)
        if m and m.group("attribute") in alter_names:
            groups.alter.setdefault(m.group("attribute"), {})[int(m.group("slot"))] = name
            matched = True
        m = tie_re.match(name)
        if m:
            groups.ties[(int(m.group("source")), int(m.group("target")))] = name
            matched = True
        if not matched:
            groups.unmatched.append(name)

    # Keep declared order, not file order
    groups.ego = [n for n in schema.ego_field_names if n in groups.ego]
    groups.alter = {f.name: groups.alter[f.name] for f in schema.alter_fields if f.name in groups.alter}
    return groups


def infer_kind(series: pd.Series) -> Optional[str]:
    """Observed value kind of a column, or None when it holds no values."""
    values = series.dropna()
    if values.empty:
        return None
    if pd.api.types.is_bool_dtype(values):
        return "categorical"
    if pd.api.types.is_numeric_dtype(values):
        return "numeric"
    if pd.to_numeric(values, errors="coerce").notna().all():
        return "numeric"
    return "categorical"


def check_alter_types(wide: pd.DataFrame, groups: ColumnGroups, schema: SurveySchema) -> Dict[str, str]:
    """
    Return {field: reason} for alter fields that must leave the alter
    pipeline. A field is dropped whole, never coerced, when its slot
    columns disagree on value kind or when a numeric field holds labels.
    """
    excluded = {name: "excluded by schema" for name in schema.excluded_fields}
    for name, columns in groups.alter.items():
        if name in excluded:
            continue
        kinds = {col: infer_kind(wide[col]) for col in columns.values()}
        observed = {k for k in kinds.values() if k is not None}
        if len(observed) > 1:
            detail = ", ".join(f"{col}={kind}" for col, kind in kinds.items() if kind)
            excluded[name] = f"inconsistent value kinds across slots ({detail})"
        elif observed == {"categorical"} and schema.alter_field(name).kind == "numeric":
            excluded[name] = "declared numeric but holds categorical values"
    return excluded


def check_tie_types(wide: pd.DataFrame, groups: ColumnGroups) -> Dict[str, str]:
    """
    Return {column: reason} for tie columns holding labels. Closeness is
    compared against zero, so a labelled column cannot be read as ties.
    """
    return {
        col: "holds categorical values, closeness must be numeric"
        for col in groups.ties.values()
        if infer_kind(wide[col]) == "categorical"
    }


def check_ego_encoding(wide: pd.DataFrame, groups: ColumnGroups, schema: SurveySchema, excluded=()) -> Dict[str, str]:
    """
    Return {field: reason} for fields observed on both sides whose ego
    column and alter columns hold different value kinds while the schema
    declares no ego_codes for them.
    """
    mismatches = {}
    for spec in schema.ego_fields:
        if spec.ego_codes or spec.name in excluded or spec.name not in groups.alter:
            continue
        ego_kind = infer_kind(wide[spec.name])
        alter_kinds = {infer_kind(wide[col]) for col in groups.alter[spec.name].values()} - {None}
        if ego_kind is not None and len(alter_kinds) == 1 and ego_kind not in alter_kinds:
            mismatches[spec.name] = f"is {ego_kind} but its alter columns are {alter_kinds.pop()}"
    return mismatches


def blank_to_missing(wide: pd.DataFrame) -> pd.DataFrame:
    """Copy of ``wide`` with empty or whitespace-only strings set to missing."""
    typed = wide.copy()
    for col in typed.columns[typed.dtypes == object]:
        blank = typed[col].map(lambda v: isinstance(v, str) and not v.strip())
        if blank.any():
            typed[col] = typed[col].mask(blank)
    return typed


def validate_survey(wide: pd.DataFrame, schema: SurveySchema = DEFAULT_SCHEMA, verbose: bool = False):
    """
    Check the wide table against the schema once, at input time.

    Returns (typed_wide, groups, report). Numeric alter columns come back
    numeric and categorical alter columns as ``object``; declared columns
    that are absent are added as all-missing and listed in the report.
    """
    groups = classify_columns(wide.columns, schema)
    report = DataQualityReport(unmatched_columns=groups.unmatched)

    missing_ego = [n for n in schema.ego_field_names if n not in groups.ego]
    if missing_ego:
        raise SchemaError(f"survey is missing ego columns: {missing_ego}")
    if schema.ego_id_field in wide.columns:
        raise SchemaError(f"survey already has a {schema.ego_id_field!r} column")

    typed = blank_to_missing(wide)
    for spec in schema.alter_fields:
        for slot, col in schema.alter_columns(spec.name).items():
            if col not in typed.columns:
                report.missing_columns.append(col)
                typed[col] = np.nan
                groups.alter.setdefault(spec.name, {})[slot] = col
    for pair, col in schema.tie_columns().items():
        if pair not in groups.ties and (pair[1], pair[0]) not in groups.ties:
            report.missing_columns.append(col)
    groups.alter = {f.name: dict(sorted(groups.alter[f.name].items())) for f in schema.alter_fields}

    report.excluded_fields = check_alter_types(typed, groups, schema)
    for spec in schema.alter_fields:
        if spec.name in report.excluded_fields:
            continue
        for col in groups.alter[spec.name].values():
            if spec.kind == "numeric":
                typed[col] = pd.to_numeric(typed[col], errors="coerce")
            else:
                typed[col] = typed[col].astype(object)

    report.excluded_ties = check_tie_types(typed, groups)
    for pair, col in list(groups.ties.items()):
        if col in report.excluded_ties:
            del groups.ties[pair]
        else:
            typed[col] = pd.to_numeric(typed[col], errors="coerce")
    report.encoding_mismatches = check_ego_encoding(typed, groups, schema, report.excluded_fields)

    if verbose:
        for name, reason in report.excluded_fields.items():
            print(f"⚠️  Alter field '{name}' left out: {reason}")
        for col, reason in report.excluded_ties.items():
            print(f"⚠️  Tie column '{col}' left out: {reason}")
        for name, reason in report.encoding_mismatches.items():
            print(f"⚠️  Ego field '{name}' {reason}; declare ego_codes to compare it with alters")
        if report.missing_columns:
            print(f"⚠️  {len(report.missing_columns)} declared columns absent, treated as missing: "
                  f"{', '.join(report.missing_columns[:10])}{' …' if len(report.missing_columns) > 10 else ''}")
    return typed, groups, report


if __name__ == "__main__":
    INPUT = sys.argv[1] if len(sys.argv) > 1 else "gss2004_network.csv"

    if os.path.exists(INPUT) or "://" in INPUT:
        survey = load_survey(INPUT)
        _, column_groups, quality = validate_survey(survey, verbose=True)
        print(f"\n✅ {len(survey):,} respondents, {column_groups!r}")
        print(quality.model_dump_json(indent=2))
    else:
        print(f"❌ Error: {INPUT} not found.")
