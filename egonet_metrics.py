"""
Ego-network composition and structure measures.

Composition (per ego, over one categorical alter attribute):
  blau_index            1 - sum(p_i^2)
  iqv                   blau / (1 - 1/k), k = categories seen across ALL alters
  ei_index              (E - I) / (E + I), E/I = alters unlike/like the ego
  homophily_proportion  I / (E + I)

Structure (per ego graph, via networkx / python-louvain):
  size, alter ties, density, components, isolates, effective size,
  constraint, alter communities
"""

from typing import Dict, Iterable, Optional

import community as community_louvain
import networkx as nx
import numpy as np
import pandas as pd

from assemble import iter_ego_graphs, recode_ego_attributes
from survey_schema import SurveySchema


def _per_ego(tables, values: pd.Series, name: str) -> pd.Series:
    ego_col = tables.schema.ego_id_field
    out = values.reindex(tables.egos[ego_col])
    out.index.name = ego_col
    out.name = name
    return out


def blau_index(tables, attribute: str) -> pd.Series:
    ego_col = tables.schema.ego_id_field
    valid = tables.alters.dropna(subset=[attribute])
    props = valid.groupby(ego_col)[attribute].value_counts(normalize=True)
    blau = 1 - (props ** 2).groupby(level=0).sum()
    return _per_ego(tables, blau, f"{attribute}_blau")


def iqv(tables, attribute: str) -> pd.Series:
    k = tables.alters[attribute].dropna().nunique()
    blau = blau_index(tables, attribute)
    if k <= 1:
        result = pd.Series(np.nan, index=blau.index)
    else:
        result = blau / (1 - 1 / k)
    result.name = f"{attribute}_iqv"
    return result


def _ego_alter_matches(tables, attribute: str, schema: Optional[SurveySchema]) -> pd.DataFrame:
    """Alter rows joined to their ego's (recoded) value; only comparable pairs kept."""
    schema = schema or tables.schema
    ego_col = schema.ego_id_field
    egos = recode_ego_attributes(tables.egos[[ego_col, attribute]], schema)
    pairs = tables.alters[[ego_col, attribute]].merge(
        egos, on=ego_col, how="inner", suffixes=("", "_ego")
    )
    pairs = pairs.dropna(subset=[attribute, f"{attribute}_ego"])
    return pairs.assign(same=pairs[attribute] == pairs[f"{attribute}_ego"])


def ei_index(tables, attribute: str, schema: Optional[SurveySchema] = None) -> pd.Series:
    pairs = _ego_alter_matches(tables, attribute, schema)
    grouped = pairs.groupby(tables.schema.ego_id_field)["same"]
    internal = grouped.sum()
    total = grouped.count()
    external = total - internal
    return _per_ego(tables, (external - internal) / total, f"{attribute}_ei")


def homophily_proportion(tables, attribute: str, schema: Optional[SurveySchema] = None) -> pd.Series:
    pairs = _ego_alter_matches(tables, attribute, schema)
    same = pairs.groupby(tables.schema.ego_id_field)["same"].mean()
    return _per_ego(tables, same, f"{attribute}_homophily")


def composition(tables, attribute: str) -> pd.DataFrame:
    """Share of each category among an ego's alters, one column per category."""
    ego_col = tables.schema.ego_id_field
    valid = tables.alters.dropna(subset=[attribute])
    shares = (
        valid.groupby(ego_col)[attribute]
        .value_counts(normalize=True)
        .unstack(fill_value=0.0)
    )
    shares = shares.reindex(tables.egos[ego_col])
    shares.columns = [f"{attribute}_{c}" for c in shares.columns]
    return shares


def ego_structure(G: nx.Graph) -> Dict[str, float]:
    ego = G.graph["ego"]
    alters = G.subgraph(n for n in G if n != ego).copy()
    size = alters.number_of_nodes()
    ties = alters.number_of_edges()

    if ties:
        partition = community_louvain.best_partition(alters, weight="weight", random_state=42)
        n_communities = len(set(partition.values()))
    else:
        n_communities = size

    return {
        "size": size,
        "alter_ties": ties,
        "density": nx.density(alters) if size > 1 else np.nan,
        "components": nx.number_connected_components(alters) if size else 0,
        "isolates": nx.number_of_isolates(alters),
        "effective_size": nx.effective_size(G, nodes=[ego])[ego],
        "constraint": nx.constraint(G, nodes=[ego])[ego],
        "communities": n_communities,
        "dangling_ties": G.graph.get("dangling_ties", 0),
    }


def structure_table(tables, schema: Optional[SurveySchema] = None, progress: bool = False) -> pd.DataFrame:
    rows = {}
    for G in iter_ego_graphs(tables, schema, progress=progress):
        rows[G.graph["ego_id"]] = ego_structure(G)
    frame = pd.DataFrame.from_dict(rows, orient="index")
    frame.index.name = tables.schema.ego_id_field
    return frame


def diversity_table(tables, attributes: Iterable[str], schema: Optional[SurveySchema] = None) -> pd.DataFrame:
    columns = []
    for attribute in attributes:
        columns.append(blau_index(tables, attribute))
        columns.append(iqv(tables, attribute))
        if attribute in tables.egos.columns:
            columns.append(ei_index(tables, attribute, schema))
            columns.append(homophily_proportion(tables, attribute, schema))
    if not columns:
        return pd.DataFrame(index=pd.Index(tables.ego_ids, name=tables.schema.ego_id_field))
    return pd.concat(columns, axis=1)
