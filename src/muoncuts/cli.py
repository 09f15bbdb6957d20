"""Command-line interface for applying single-muon cuts to track inputs."""

from __future__ import annotations

import argparse
import logging

from .cuts import MuonTrackCuts
from .exceptions import MuonCutsError
from .io import load_tracks_json, write_selection_table
from .models import parse_filter_mask

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Define and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="muon-track-cuts",
        description="Flag good muon tracks with run- and pass-dependent calibration parameters.",
    )
    parser.add_argument(
        "--database",
        required=True,
        help="Parameter database (.json or .toml); the _MC sibling is used with --mc.",
    )
    parser.add_argument("--tracks", required=True, help="Input JSON with key 'tracks'.")
    parser.add_argument("--run", required=True, type=int, help="Run number of the input tracks.")
    parser.add_argument(
        "--pass",
        dest="pass_number",
        type=int,
        default=None,
        help="Reprocessing pass; guessed from --source when omitted.",
    )
    parser.add_argument(
        "--source",
        default=None,
        help="Dataset path used to guess the pass number (e.g. .../pass2/AliESDs.root).",
    )
    parser.add_argument(
        "--allow-default",
        action="store_true",
        help="Fall back on default or other-pass parameters when the run is not found.",
    )
    parser.add_argument("--mc", action="store_true", help="Use Monte-Carlo parameters.")
    parser.add_argument(
        "--sharp-pt-cut",
        action="store_true",
        help="Apply the tracker pt threshold of each trigger-match level.",
    )
    parser.add_argument(
        "--filter-mask",
        default="default",
        help="Comma-separated cuts to require (eta,theta_abs,pdca,apt,lpt,hpt,chi2 or default).",
    )
    parser.add_argument(
        "--out",
        default=None,
        help="Output table file for per-track masks (.parquet, .csv, .pkl).",
    )
    parser.add_argument(
        "--describe",
        action="store_true",
        help="Print the filter mask and resolved parameters.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: resolve parameters, classify tracks, write table."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    cuts = MuonTrackCuts("muonTrackCuts", database_path=args.database)
    try:
        cuts.set_filter_mask(parse_filter_mask(args.filter_mask.split(",")))
        cuts.set_is_mc(args.mc)
        cuts.set_allow_default_params(args.allow_default)
        cuts.set_sharp_pt_cut(args.sharp_pt_cut)
        cuts.set_pass_number(args.pass_number)
        cuts.resolve_for_run(args.run, source=args.source)
    except MuonCutsError as exc:
        logger.error("%s", exc)
        return 1

    if args.describe:
        print(cuts.describe("all"))

    tracks = load_tracks_json(args.tracks)
    masks = [cuts.classify(track) for track in tracks]
    n_accepted = sum(1 for m in masks if (m & cuts.filter_mask) == cuts.filter_mask)
    logger.info("Selected %i/%i tracks (filter mask 0x%x)", n_accepted, len(tracks), int(cuts.filter_mask))

    if args.out:
        write_selection_table(args.out, tracks, masks, cuts.filter_mask)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
