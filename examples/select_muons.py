"""Select good muons of one run with the Python API.

Run from repository root without installation:
    PYTHONPATH=src python examples/select_muons.py
"""

from __future__ import annotations
__author__ = "Renato Quagliani <rquaglia@cern.ch>"


import logging

from muoncuts import MuonTrackCuts, SelectionMask, mask_names
from muoncuts.io import load_tracks_json


def main() -> int:
    """Resolve the pass2 parameters of run 169099 and print per-track masks."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    cuts = MuonTrackCuts("muonTrackCuts", database_path="examples/MuonTrackCuts.json")
    cuts.set_filter_mask(cuts.filter_mask | SelectionMask.TRACK_CHI_SQUARE)
    cuts.set_sharp_pt_cut(True)
    cuts.resolve_for_run(169099, source="/alice/data/2011/LHC11h/000169099/ESDs/pass2/AliESDs.root")
    print(cuts.describe())

    for track in load_tracks_json("examples/tracks.json"):
        mask = cuts.classify(track)
        verdict = "good" if cuts.accept(track) else "rejected"
        print(f"{track.track_id}: 0x{int(mask):02x} {verdict} ({', '.join(mask_names(mask))})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
