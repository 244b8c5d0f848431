#!/usr/bin/env python
# coding: utf-8
"""
============================================================
EGO-CENTRIC SURVEY — WIDE TO LONG NETWORK TABLES
============================================================
Purpose: Turn one wide survey table (one row per respondent,
         repeated alter groups, pairwise closeness columns)
         into the three long tables every ego-network tool
         expects:

  egos    — one row per respondent who named anyone
  alters  — one row per (ego, alter slot) actually used
  aaties  — one row per (ego, alter, alter) with a positive
            closeness value

All stages are pure pandas transforms; the builder class
only sequences them, reports progress and writes outputs.
============================================================
"""

import json
import os
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from assemble import ego_network_tables
from egonet_metrics import diversity_table, structure_table
from parse import (
    ColumnGroups,
    DataQualityReport,
    alter_column_re,
    load_survey,
    validate_survey,
)
from survey_schema import DEFAULT_SCHEMA, SurveySchema, load_schema


# ---------------------------------------------------------------------------
# Table bundle
# ---------------------------------------------------------------------------

class EgoNetTables:
    """The egos / alters / aaties triple plus the id columns that link them."""

    def __init__(self, egos: pd.DataFrame, alters: pd.DataFrame, aaties: pd.DataFrame,
                 schema: SurveySchema = DEFAULT_SCHEMA):
        self.egos = egos
        self.alters = alters
        self.aaties = aaties
        self.schema = schema

    @property
    def ego_ids(self):
        return self.egos[self.schema.ego_id_field].tolist()

    @property
    def id_fields(self) -> Dict[str, str]:
        return self.schema.id_fields

    def alters_of(self, ego_id) -> pd.DataFrame:
        ego = self.schema.ego_id_field
        return self.alters[self.alters[ego] == ego_id].drop(columns=ego)

    def aaties_of(self, ego_id) -> pd.DataFrame:
        ego = self.schema.ego_id_field
        return self.aaties[self.aaties[ego] == ego_id].drop(columns=ego)

    def as_kwargs(self) -> dict:
        """Keyword form accepted by ego-network data-management libraries."""
        return {
            "egos": self.egos,
            "alters": self.alters,
            "aaties": self.aaties,
            "ID.vars": dict(self.id_fields),
        }

    def __repr__(self):
        return f"EgoNetTables(egos={len(self.egos)}, alters={len(self.alters)}, aaties={len(self.aaties)})"


# ---------------------------------------------------------------------------
# Stage functions
# ---------------------------------------------------------------------------

def select_egos(wide: pd.DataFrame, schema: SurveySchema = DEFAULT_SCHEMA) -> pd.DataFrame:
    """
    Keep respondents who named at least one alter and number them 1..n in
    row order. Returns the full wide rows with the id column in front.
    """
    named = pd.to_numeric(wide[schema.nomination_field], errors="coerce")
    selected = wide.loc[named > 0].reset_index(drop=True)
    selected.insert(0, schema.ego_id_field, np.arange(1, len(selected) + 1))
    return selected


def _unpivot_alters(selected: pd.DataFrame, columns, schema: SurveySchema) -> pd.DataFrame:
    """melt -> split 'attr+slot' -> pivot, for columns of one value kind."""
    ego, alter = schema.ego_id_field, schema.alter_id_field

    long = selected[[ego] + list(columns)].melt(id_vars=ego, var_name="key", value_name="value")
    parts = long["key"].str.extract(alter_column_re(schema).pattern)
    long["attribute"] = parts["attribute"]
    long[alter] = parts["slot"].astype(int)

    fields = list(dict.fromkeys(long["attribute"]))
    return (
        long.pivot(index=[ego, alter], columns="attribute", values="value")
        .reindex(columns=fields)
        .reset_index()
        .rename_axis(columns=None)
    )


def reshape_alters(selected: pd.DataFrame, groups: ColumnGroups, schema: SurveySchema = DEFAULT_SCHEMA,
                   excluded: Iterable[str] = (), drop_empty: bool = True) -> pd.DataFrame:
    """
    Wide alter groups -> one row per (ego, alter slot).

    Numeric and categorical fields are unpivoted separately so the value
    column of each melt stays homogeneous, then outer-merged on
    (ego id, slot). Before the empty-slot filter the result holds exactly
    n_egos * max_alters rows.
    """
    ego, alter = schema.ego_id_field, schema.alter_id_field
    excluded = set(excluded) | set(schema.excluded_fields)
    fields = [f for f in schema.alter_fields if f.name not in excluded and f.name in groups.alter]

    partitions = []
    for kind in ("numeric", "categorical"):
        columns = groups.alter_column_list([f.name for f in fields if f.kind == kind])
        if columns:
            partitions.append(_unpivot_alters(selected, columns, schema))

    if partitions:
        merged = partitions[0]
        for part in partitions[1:]:
            merged = pd.merge(merged, part, on=[ego, alter], how="outer")
        merged = merged.set_index([ego, alter])
    else:
        merged = pd.DataFrame(index=pd.MultiIndex.from_arrays([[], []], names=[ego, alter]))

    grid = pd.MultiIndex.from_product([selected[ego], schema.slots], names=[ego, alter])
    alters = (
        merged.reindex(grid)
        .reindex(columns=[f.name for f in fields])
        .reset_index()
    )
    for spec in fields:
        if spec.kind == "numeric":
            alters[spec.name] = pd.to_numeric(alters[spec.name], errors="coerce")
        else:
            alters[spec.name] = alters[spec.name].astype(object)

    if drop_empty:
        tracked = [name for name in schema.tracked_fields if name in alters.columns]
        if tracked:
            alters = alters.dropna(subset=tracked, how="all").reset_index(drop=True)
    return alters


def extract_aaties(selected: pd.DataFrame, groups: ColumnGroups,
                   schema: SurveySchema = DEFAULT_SCHEMA) -> pd.DataFrame:
    """
    Closeness columns -> one row per tie with a positive value.

    The two slot numbers are the last two characters of the column name;
    the prefix is discarded.
    """
    ego = schema.ego_id_field
    columns = [col for _, col in sorted(groups.ties.items())]
    if not columns:
        return pd.DataFrame({
            ego: pd.Series(dtype="int64"),
            "source": pd.Series(dtype="int64"),
            "target": pd.Series(dtype="int64"),
            "weight": pd.Series(dtype="float64"),
        })

    long = selected[[ego] + columns].melt(id_vars=ego, var_name="key", value_name="weight")
    long["source"] = long["key"].str[-2].astype(int)
    long["target"] = long["key"].str[-1].astype(int)
    long["weight"] = pd.to_numeric(long["weight"], errors="coerce")

    ties = long.loc[long["weight"] > 0, [ego, "source", "target", "weight"]]
    return ties.sort_values([ego, "source", "target"]).reset_index(drop=True)


def alters_to_wide(alters: pd.DataFrame, schema: SurveySchema = DEFAULT_SCHEMA) -> pd.DataFrame:
    """Inverse of reshape_alters: one row per ego, columns named {field}{slot}."""
    ego, alter = schema.ego_id_field, schema.alter_id_field
    long = alters.melt(id_vars=[ego, alter], var_name="attribute", value_name="value")
    long["column"] = long["attribute"] + long[alter].astype(str)
    return long.pivot(index=ego, columns="column", values="value").rename_axis(columns=None)


def dangling_aaties(tables: EgoNetTables) -> pd.DataFrame:
    """Ties whose source or target slot has no alter row for that ego."""
    ego, alter = tables.schema.ego_id_field, tables.schema.alter_id_field
    known = pd.MultiIndex.from_frame(tables.alters[[ego, alter]])
    ties = tables.aaties
    has_source = pd.MultiIndex.from_arrays([ties[ego], ties["source"]]).isin(known)
    has_target = pd.MultiIndex.from_arrays([ties[ego], ties["target"]]).isin(known)
    return ties.loc[~(has_source & has_target)]


def build_tables(wide: pd.DataFrame, schema: Optional[SurveySchema] = None,
                 verbose: bool = False) -> Tuple[EgoNetTables, DataQualityReport]:
    """Full wide -> long transformation without any file IO."""
    schema = schema or DEFAULT_SCHEMA
    typed, groups, report = validate_survey(wide, schema, verbose=verbose)

    selected = select_egos(typed, schema)
    egos = selected[[schema.ego_id_field] + schema.ego_field_names].copy()
    alters = reshape_alters(selected, groups, schema, excluded=report.excluded_fields)
    aaties = extract_aaties(selected, groups, schema)
    tables = EgoNetTables(egos, alters, aaties, schema)

    report.dropped_respondents = len(wide) - len(selected)
    report.empty_alter_slots = len(selected) * schema.max_alters - len(alters)
    report.dangling_ties = len(dangling_aaties(tables))
    return tables, report


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class EgoNetTableBuilder:
    """
    End-to-end pipeline:
      1. load             — read the wide survey (file, URL or DataFrame)
      2. validate         — classify columns, gate inconsistent alter fields
      3. build_egos       — respondents with nominations, dense ids
      4. reshape_alters   — wide alter groups to long rows
      5. extract_aaties   — closeness columns to tie rows
      6. reconcile        — count empty slots and dangling ties
      7. compute_metrics  — per-ego composition and structure
      8. export_results   — write tables, metrics and reports
    """

    def __init__(self, source, output_dir: Optional[str] = None,
                 schema: Optional[SurveySchema] = None, verbose: bool = True,
                 export_graphs: bool = True):
        self.source = source
        self.output_dir = output_dir
        self.schema = schema or load_schema()
        self.verbose = verbose
        self.export_graphs = export_graphs
        if self.output_dir:
            os.makedirs(self.output_dir, exist_ok=True)

        # ── Stage outputs ─────────────────────────────────────────────────
        self.raw = None
        self.typed = None
        self.groups = None
        self.selected = None
        self.report = DataQualityReport()
        self.egos = None
        self.alters = None
        self.aaties = None
        self.metrics = None

    def _say(self, message: str):
        if self.verbose:
            print(message)

    @property
    def tables(self) -> EgoNetTables:
        return EgoNetTables(self.egos, self.alters, self.aaties, self.schema)

    # ------------------------------------------------------------------
    # Stages 1-2: input
    # ------------------------------------------------------------------

    def load(self):
        if isinstance(self.source, pd.DataFrame):
            self.raw = self.source.copy()
        else:
            self._say(f"⚙️  Reading {self.source} …")
            self.raw = load_survey(self.source)
        self._say(f"   {len(self.raw):,} respondents, {len(self.raw.columns):,} columns")

    def validate(self):
        self._say("🔎 Checking columns against the schema …")
        self.typed, self.groups, self.report = validate_survey(self.raw, self.schema, verbose=self.verbose)
        self._say(f"   {self.groups!r}")

    # ------------------------------------------------------------------
    # Stages 3-5: reshaping
    # ------------------------------------------------------------------

    def build_egos(self):
        self._say("👤 Selecting egos …")
        self.selected = select_egos(self.typed, self.schema)
        self.egos = self.selected[[self.schema.ego_id_field] + self.schema.ego_field_names].copy()
        self.report.dropped_respondents = len(self.raw) - len(self.selected)
        self._say(f"   {len(self.egos):,} egos ({self.report.dropped_respondents:,} respondents named nobody)")

    def reshape_alters(self):
        self._say("🔁 Reshaping alters …")
        self.alters = reshape_alters(self.selected, self.groups, self.schema,
                                     excluded=self.report.excluded_fields)
        self._say(f"   {len(self.alters):,} alters")

    def extract_aaties(self):
        self._say("🔗 Extracting alter-alter ties …")
        self.aaties = extract_aaties(self.selected, self.groups, self.schema)
        self._say(f"   {len(self.aaties):,} ties")

    # ------------------------------------------------------------------
    # Stage 6: reconciliation
    # ------------------------------------------------------------------

    def reconcile(self):
        self.report.empty_alter_slots = len(self.egos) * self.schema.max_alters - len(self.alters)
        self.report.dangling_ties = len(dangling_aaties(self.tables))
        if self.report.dangling_ties:
            self._say(f"⚠️  {self.report.dangling_ties:,} ties point at alter slots with no data; "
                      "kept in aaties, left out of ego graphs")

    # ------------------------------------------------------------------
    # Stage 7: metrics
    # ------------------------------------------------------------------

    def compute_metrics(self):
        self._say("📐 Ego-network metrics …")
        attributes = [f.name for f in self.schema.retained_alter_fields
                      if f.kind == "categorical" and f.name in self.alters.columns]
        diversity = diversity_table(self.tables, attributes, self.schema)
        structure = structure_table(self.tables, self.schema, progress=self.verbose)
        self.metrics = structure.join(diversity)

    # ------------------------------------------------------------------
    # Stage 8: export
    # ------------------------------------------------------------------

    def export_results(self):
        """Write tables, metrics, graphs and the data-quality report."""
        if not self.output_dir:
            return
        self._say("💾 Exporting …")
        out = self.output_dir
        sep = (",", ":")

        self.egos.to_csv(f"{out}/egos.csv", index=False)
        self.alters.to_csv(f"{out}/alters.csv", index=False)
        self.aaties.to_csv(f"{out}/aaties.csv", index=False)
        if self.metrics is not None:
            self.metrics.to_csv(f"{out}/ego_metrics.csv")

        if self.export_graphs:
            graphs = []
            for ego_id in self.tables.ego_ids:
                nodes, edges = ego_network_tables(self.tables, ego_id, self.schema)
                graphs.append({
                    "ego_id": int(ego_id),
                    "nodes": json.loads(nodes.to_json(orient="records")),
                    "edges": json.loads(edges.to_json(orient="records")),
                })
            with open(f"{out}/ego_graphs.json", "w") as f:
                json.dump(graphs, f, separators=sep)

        with open(f"{out}/quality_report.json", "w") as f:
            f.write(self.report.model_dump_json(indent=2))

        stats = {
            "respondents": len(self.raw),
            "egos": len(self.egos),
            "alters": len(self.alters),
            "aaties": len(self.aaties),
            "mean_network_size": round(len(self.alters) / max(len(self.egos), 1), 3),
            "excluded_fields": sorted(self.report.excluded_fields),
            "dangling_ties": self.report.dangling_ties,
        }
        with open(f"{out}/stats.json", "w") as f:
            json.dump(stats, f, indent=2)

        self._say(f"\n✅  Done! Files in: {out}/")
        if self.verbose:
            _col_w = max(len(k) for k in stats) + 2
            for k, v in stats.items():
                print(f"   {k:<{_col_w}} {v}")
            print("\n📁  Output files:")
            for fname in sorted(os.listdir(out)):
                size = os.path.getsize(f"{out}/{fname}")
                print(f"   {fname:<35} {size/1024:>8.1f} KB")

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def run(self, with_metrics: bool = True) -> EgoNetTables:
        """Execute the full pipeline."""
        self.load()
        self.validate()
        self.build_egos()
        self.reshape_alters()
        self.extract_aaties()
        self.reconcile()
        if with_metrics:
            self.compute_metrics()
        self.export_results()
        return self.tables


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    INPUT_FILE = "gss2004_network.csv"
    OUTPUT_FOLDER = "egonet_output"

    if os.path.exists(INPUT_FILE):
        builder = EgoNetTableBuilder(INPUT_FILE, OUTPUT_FOLDER)
        builder.run()
    else:
        print(f"❌ Error: {INPUT_FILE} not found.")
