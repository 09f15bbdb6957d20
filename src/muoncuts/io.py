"""Input/output helpers for JSON track inputs and tabular selection export."""

from __future__ import annotations
__author__ = "Renato Quagliani <rquaglia@cern.ch>"


import json
from pathlib import Path
from typing import Any, Sequence

from .models import MuonTrack, SelectionMask, Vector3


def load_tracks_json(path: str | Path) -> list[MuonTrack]:
    """Load track container JSON into `MuonTrack` objects.

    A top-level `vertex` (`[x, y, z]`) is used for tracks without their own.
    """
    data = _load_json(path)
    tracks_data = data.get("tracks")
    if not isinstance(tracks_data, list):
        raise ValueError("Input JSON must contain a list under key 'tracks'.")
    default_vertex = (0.0, 0.0, 0.0)
    if "vertex" in data:
        default_vertex = _parse_xyz(data["vertex"], key="vertex")
    return [
        _parse_track_item(item=item, idx=idx, context=f"{path}", default_vertex=default_vertex)
        for idx, item in enumerate(tracks_data)
    ]


def write_selection_table(
    path: str | Path,
    tracks: Sequence[MuonTrack],
    masks: Sequence[int],
    filter_mask: int,
) -> None:
    """Write per-track selection masks into Parquet/CSV/Pickle table."""
    pd = _require_pandas()
    df = pd.DataFrame(_selection_rows(tracks, masks, filter_mask))
    out = Path(path)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        df.to_parquet(out, index=False)
    elif suffix in (".pkl", ".pickle"):
        df.to_pickle(out)
    elif suffix == ".csv":
        df.to_csv(out, index=False)
    else:
        raise ValueError(
            f"Unsupported output format '{suffix}'. Use .parquet, .csv, or .pkl"
        )


def _selection_rows(
    tracks: Sequence[MuonTrack], masks: Sequence[int], filter_mask: int
) -> list[dict[str, Any]]:
    """Flatten tracks and their masks into DataFrame-ready row dictionaries."""
    if len(tracks) != len(masks):
        raise ValueError("Need exactly one selection mask per track.")
    rows: list[dict[str, Any]] = []
    for track, mask in zip(tracks, masks):
        row: dict[str, Any] = {
            "track_id": track.track_id,
            "p": track.p,
            "pt": track.pt,
            "eta": track.eta,
            "theta_abs_deg": track.theta_abs_deg,
            "match_trigger": track.match_trigger,
            "chi2_norm_tracker": track.chi2_norm_tracker,
            "charge": track.charge,
            "selection_mask": int(mask),
            "accepted": (int(mask) & int(filter_mask)) == int(filter_mask),
        }
        for bit in SelectionMask:
            if bit and bit.name:
                row[f"pass_{bit.name.lower()}"] = bool(mask & bit)
        rows.append(row)
    return rows


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to write output tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _parse_track_item(item: Any, idx: int, context: str, default_vertex: Vector3) -> MuonTrack:
    """Parse one track dictionary into a `MuonTrack`."""
    if not isinstance(item, dict):
        raise ValueError(f"Track entry at index {idx} in {context} must be an object.")
    if "theta_abs_deg" in item:
        theta_abs = item["theta_abs_deg"]
    elif "theta_abs" in item:
        theta_abs = item["theta_abs"]
    else:
        raise ValueError(f"Track at index {idx} in {context} must define theta_abs_deg.")
    dca = item.get("dca")
    chi2 = item.get("chi2_norm_tracker")
    p_uncorrected = item.get("p_uncorrected")
    return MuonTrack(
        track_id=str(item.get("track_id", f"trk{idx}")),
        px=float(item["px"]),
        py=float(item["py"]),
        pz=float(item["pz"]),
        theta_abs_deg=float(theta_abs),
        match_trigger=int(item.get("match_trigger", 0)),
        chi2_norm_tracker=None if chi2 is None else float(chi2),
        dca_xyz=None if dca is None else _parse_xyz(dca, key="dca"),
        vertex_xyz=_parse_xyz(item["vertex"], key="vertex") if "vertex" in item else default_vertex,
        is_early_stage=bool(item.get("is_early_stage", False)),
        p_uncorrected=None if p_uncorrected is None else float(p_uncorrected),
        is_muon=bool(item.get("is_muon", True)),
        charge=int(item.get("charge", 0)),
    )


def _parse_xyz(value: Any, key: str) -> Vector3:
    """Validate and convert a 3-element list into a position tuple."""
    if not isinstance(value, list) or len(value) != 3:
        raise ValueError(f"Track field '{key}' must be a list of 3 numbers.")
    return (float(value[0]), float(value[1]), float(value[2]))


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
