"""
Per-ego graph assembly.

An ego graph holds the ego's alters (labelled by slot number), the
alter-alter ties reported for them, and one synthetic node for the
respondent, tied to every alter.
"""

from typing import Iterator, Optional, Tuple

import networkx as nx
import numpy as np
import pandas as pd
from tqdm.auto import tqdm

from survey_schema import SurveySchema


class EgoNotFoundError(KeyError):
    """The requested ego id is not in the egos table."""


def _code_key(value) -> str:
    # 1.0 and 1 both look up "1"
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


def _is_missing(value) -> bool:
    return value is None or (np.isscalar(value) and pd.isna(value))


def recode_ego_attributes(egos: pd.DataFrame, schema: SurveySchema) -> pd.DataFrame:
    """Map ego values onto the alter-table encoding for fields that declare ego_codes."""
    recoded = egos.copy()
    for spec in schema.ego_fields:
        if not spec.ego_codes or spec.name not in recoded.columns:
            continue
        codes = spec.ego_codes
        recoded[spec.name] = recoded[spec.name].map(
            lambda v: codes.get(_code_key(v), v) if pd.notna(v) else v
        )
    return recoded


def _ego_label(alter_labels, preferred: str) -> str:
    label = preferred
    taken = set(alter_labels)
    while label in taken:
        label = f"_{label}"
    return label


def ego_network_tables(tables, ego_id, schema: Optional[SurveySchema] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Node and edge tables for one ego network.

    nodes: ``name`` (alter slot as text, or the ego label), ``is_ego`` and
    every alter / ego attribute. edges: ``source``, ``target``, ``weight``
    (closeness; NaN on ego edges) and ``kind`` ("alter" or "ego").

    Ties that reference a slot with no alter row are left out; their count
    is stored in ``edges.attrs["dangling_ties"]``.
    """
    schema = schema or tables.schema
    ego_col, alter_col = schema.ego_id_field, schema.alter_id_field

    ego_rows = tables.egos[tables.egos[ego_col] == ego_id]
    if ego_rows.empty:
        raise EgoNotFoundError(ego_id)
    ego_row = recode_ego_attributes(ego_rows, schema).drop(columns=ego_col).iloc[[0]]

    alters = tables.alters[tables.alters[ego_col] == ego_id].drop(columns=ego_col)
    nodes = alters.rename(columns={alter_col: "name"})
    nodes["name"] = nodes["name"].astype(int).astype(str)
    nodes["is_ego"] = False

    ties = tables.aaties[tables.aaties[ego_col] == ego_id].drop(columns=ego_col)
    ties = ties.assign(source=ties["source"].astype(str), target=ties["target"].astype(str))
    present = ties["source"].isin(nodes["name"]) & ties["target"].isin(nodes["name"])
    alter_edges = ties.loc[present, ["source", "target", "weight"]].assign(kind="alter")

    label = _ego_label(nodes["name"], schema.ego_label)
    ego_node = ego_row.assign(name=label, is_ego=True)
    ego_edges = pd.DataFrame({
        "source": label,
        "target": nodes["name"].tolist(),
        "weight": np.nan,
        "kind": "ego",
    }, columns=["source", "target", "weight", "kind"])

    columns = ["name", "is_ego"] + [c for c in nodes.columns if c not in ("name", "is_ego")]
    columns += [c for c in ego_node.columns if c not in columns]
    nodes = pd.concat([nodes, ego_node], ignore_index=True).reindex(columns=columns)
    edges = pd.concat([alter_edges, ego_edges], ignore_index=True)
    edges.attrs["dangling_ties"] = int((~present).sum())
    return nodes, edges


def build_ego_graph(tables, ego_id, schema: Optional[SurveySchema] = None) -> nx.Graph:
    """Undirected graph of one ego network; missing attribute values are left off the nodes."""
    schema = schema or tables.schema
    nodes, edges = ego_network_tables(tables, ego_id, schema)

    G = nx.from_pandas_edgelist(edges, source="source", target="target",
                                edge_attr=["weight", "kind"], create_using=nx.Graph())
    for record in nodes.to_dict("records"):
        name = record.pop("name")
        G.add_node(name, **{k: v for k, v in record.items() if not _is_missing(v)})

    G.graph["ego"] = nodes.loc[nodes["is_ego"], "name"].iloc[0]
    G.graph["ego_id"] = ego_id
    G.graph["dangling_ties"] = edges.attrs["dangling_ties"]
    return G


def iter_ego_graphs(tables, schema: Optional[SurveySchema] = None, progress: bool = False) -> Iterator[nx.Graph]:
    """Ego graphs in ascending ego-id order."""
    ego_ids = sorted(tables.ego_ids)
    for ego_id in tqdm(ego_ids, desc="  Ego graphs", disable=not progress):
        yield build_ego_graph(tables, ego_id, schema)
