# ============================================================
# EGO-CENTRIC SURVEY — COMMAND LINE
# ============================================================
# Builds the egos / alters / aaties tables from a wide survey
# file (local path or URL), computes per-ego metrics and writes
# everything to an output folder.
#
#   python main.py --input gss2004_network.csv
#   python main.py --input data.csv --schema my_schema.json --ego 12
#
# Defaults can also come from EGONET_INPUT / EGONET_OUTPUT_DIR.
# ============================================================

import argparse
import os
import sys

import pandas as pd

from assemble import EgoNotFoundError, ego_network_tables
from process import EgoNetTableBuilder
from survey_schema import SchemaError, load_schema

# ── Config ────────────────────────────────────────────────────
INPUT_FILE = os.environ.get("EGONET_INPUT", "gss2004_network.csv")
OUTPUT_DIR = os.environ.get("EGONET_OUTPUT_DIR", "egonet_output")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reshape a wide ego-centric survey into ego, alter and alter-alter tables."
    )
    parser.add_argument("--input", type=str, default=INPUT_FILE,
                        help="survey file or URL (.csv, .tsv, .dta)")
    parser.add_argument("--output-dir", type=str, default=OUTPUT_DIR,
                        help="folder for tables, metrics and reports")
    parser.add_argument("--schema", type=str, default=None,
                        help="JSON survey schema (defaults to the GSS 2004 layout)")
    parser.add_argument("--ego", type=int, default=None,
                        help="print the node and edge tables of one ego")
    parser.add_argument("--no-graphs", action="store_true",
                        help="skip the per-ego graph JSON export")
    parser.add_argument("--no-metrics", action="store_true",
                        help="skip per-ego metrics")
    parser.add_argument("--quiet", action="store_true",
                        help="only print errors")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if "://" not in args.input and not os.path.exists(args.input):
        print(f"❌ Error: {args.input} not found.")
        return 1

    try:
        schema = load_schema(args.schema)
    except (SchemaError, OSError) as exc:
        print(f"❌ Error: {exc}")
        return 1

    builder = EgoNetTableBuilder(
        args.input,
        output_dir=args.output_dir,
        schema=schema,
        verbose=not args.quiet,
        export_graphs=not args.no_graphs,
    )
    try:
        tables = builder.run(with_metrics=not args.no_metrics)
    except SchemaError as exc:
        print(f"❌ Error: {exc}")
        return 1

    if args.ego is not None:
        try:
            nodes, edges = ego_network_tables(tables, args.ego, schema)
        except EgoNotFoundError:
            print(f"❌ Error: ego {args.ego} is not in the egos table.")
            return 1
        with pd.option_context("display.width", 120, "display.max_columns", None):
            print(f"\n👤 Ego {args.ego}: {len(nodes)} nodes, {len(edges)} edges")
            print(nodes.to_string(index=False))
            print()
            print(edges.to_string(index=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
