"""
CLI entry point for `python -m corticosteroid_nma.network_analysis`.
"""

from __future__ import annotations

import argparse
import sys

from . import SCHEMAS, list_variants, run


def main() -> None:
    parser = argparse.ArgumentParser(description="Treatment Network CLI")
    parser.add_argument("--variant", "-v", type=str, default="exchangeable", help="Schema variant key.")
    parser.add_argument("--input", "-i", type=str, default=None, help="Wide trial CSV (defaults to data/<variant file>).")
    parser.add_argument("--output-dir", "-o", type=str, default=None, help="Directory for PNG/PDF figures.")
    parser.add_argument("--no-save", action="store_true", help="Do not write figures to disk.")
    parser.add_argument("--show", action="store_true", help="Display the figure window.")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress console tables.")
    parser.add_argument("--list", action="store_true", help="List available variants and exit.")

    args = parser.parse_args()

    if args.list:
        list_variants()
        sys.exit(0)

    if args.variant not in SCHEMAS:
        raise SystemExit(f"Unknown variant '{args.variant}'. Use --list to inspect options.")

    run(
        variant=args.variant,
        input_path=args.input,
        output_dir=args.output_dir,
        save=not args.no_save,
        show=args.show,
        verbose=not args.quiet,
    )


if __name__ == "__main__":
    main()
