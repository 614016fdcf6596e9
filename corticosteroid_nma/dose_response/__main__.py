"""
CLI entry point for `python -m corticosteroid_nma.dose_response`.
"""

from __future__ import annotations

import argparse
import sys

from . import MODEL_SPECS, PredictionConfig, SamplerConfig, list_models, run


def main() -> None:
    parser = argparse.ArgumentParser(description="Dose-Response NMA CLI")
    parser.add_argument("--model", "-m", nargs="+", default=["all"], help="Model keys, or 'all'.")
    parser.add_argument("--input", "-i", type=str, default=None, help="Arm-level CSV (defaults to data/drc file).")
    parser.add_argument("--output-dir", "-o", type=str, default=None, help="Directory for PNG/PDF figures.")
    parser.add_argument("--predict-with", type=str, default="spline", help="Model used for the prediction plot.")
    parser.add_argument("--draws", type=int, default=2000)
    parser.add_argument("--tune", type=int, default=1000)
    parser.add_argument("--chains", type=int, default=4)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--e0", type=float, default=0.394, help="Placebo response probability.")
    parser.add_argument("--n-doses", type=int, default=15, help="Prediction grid size per agent.")
    parser.add_argument("--no-split", action="store_true", help="Skip the split NMA overlay.")
    parser.add_argument("--no-save", action="store_true", help="Do not write figures to disk.")
    parser.add_argument("--show", action="store_true", help="Display the figure window.")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress console output.")
    parser.add_argument("--list", action="store_true", help="List available models and exit.")

    args = parser.parse_args()

    if args.list:
        list_models()
        sys.exit(0)

    models = None if "all" in args.model else args.model
    unknown = [m for m in (models or []) if m not in MODEL_SPECS]
    if unknown:
        raise SystemExit(f"Unknown model(s) {unknown}. Use --list to inspect options.")

    try:
        prediction = PredictionConfig(e0=args.e0, n_doses=args.n_doses)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    run(
        models=models,
        input_path=args.input,
        sampler=SamplerConfig(draws=args.draws, tune=args.tune, chains=args.chains, random_seed=args.seed),
        prediction=prediction,
        predict_with=args.predict_with,
        overlay_split=not args.no_split,
        output_dir=args.output_dir,
        save=not args.no_save,
        show=args.show,
        verbose=not args.quiet,
    )


if __name__ == "__main__":
    main()
