"""Single-muon selection: per-cut bitmask evaluation and acceptance test."""

from __future__ import annotations
__author__ = "Renato Quagliani <rquaglia@cern.ch>"


import logging
import math
from dataclasses import dataclass

from .models import (
    MATCH_LEVELS,
    ParameterRecord,
    SelectionMask,
    TrackObservables,
    Vector3,
)

logger = logging.getLogger(__name__)

ETA_RANGE = (-4.0, -2.5)
THETA_ABS_RANGE_DEG = (2.0, 10.0)
THETA_ABS_REGIME_BOUNDARY_DEG = 3.0
# Lever arm (cm) turning slope resolution times momentum into a p x DCA spread.
SLOPE_RESOLUTION_DISTANCE = 535.0


def is_theta_abs_23(track: TrackObservables) -> bool:
    """Return whether the track left the absorber below 3 degrees."""
    return track.theta_abs_deg < THETA_ABS_REGIME_BOUNDARY_DEG


def _regime(track: TrackObservables) -> int:
    """Index into the two-valued parameters: 0 below 3 degrees, 1 above."""
    return 0 if is_theta_abs_23(track) else 1


def corrected_dca(track: TrackObservables, record: ParameterRecord) -> Vector3 | None:
    """DCA position relative to the vertex, shifted by the mean DCA offset."""
    if track.dca_xyz is None:
        return None
    return (
        track.dca_xyz[0] - track.vertex_xyz[0] - record.mean_dca[0],
        track.dca_xyz[1] - track.vertex_xyz[1] - record.mean_dca[1],
        track.dca_xyz[2] - track.vertex_xyz[2] - record.mean_dca[2],
    )


def average_momentum(track: TrackObservables, record: ParameterRecord) -> float | None:
    """Average of the momentum before and after the absorber.

    Early-stage tracks use the uncorrected momentum directly, which is more
    stable than the corrected one.
    """
    if track.is_early_stage:
        return track.p_uncorrected
    return track.p - record.mean_p_corr[_regime(track)]


def pdca_threshold(track: TrackObservables, record: ParameterRecord) -> float:
    """Maximum p x DCA accepted for this track.

    The measured momentum overestimates the true one by
    `N*ds*p / (1 + N*ds*p)` (sagitta resolution `ds`, cut at `N` sigmas), so
    the measured sigma is widened accordingly, then summed in quadrature with
    the DCA spread from the slope resolution.
    """
    p_tot = track.p
    nrp = record.n_sigma_pdca * record.rel_p_resolution * p_tot
    sigma_pdca = record.sigma_pdca[_regime(track)]
    p_resolution_effect = sigma_pdca / (1.0 - nrp / (1.0 + nrp))
    slope_resolution_effect = SLOPE_RESOLUTION_DISTANCE * record.slope_resolution * p_tot
    sigma_with_res = math.sqrt(
        p_resolution_effect * p_resolution_effect
        + slope_resolution_effect * slope_resolution_effect
    )
    return record.n_sigma_pdca * sigma_with_res


def passes_pdca(track: TrackObservables, record: ParameterRecord) -> bool:
    """Apply the resolution-corrected p x DCA cut; missing inputs fail it."""
    dca = corrected_dca(track, record)
    p_mean = average_momentum(track, record)
    if dca is None or p_mean is None:
        return False
    if record.n_sigma_pdca * record.rel_p_resolution * track.p <= -1.0:
        return False
    p_dca = p_mean * math.sqrt(dca[0] * dca[0] + dca[1] * dca[1] + dca[2] * dca[2])
    return p_dca < pdca_threshold(track, record)


def match_trigger_mask(
    track: TrackObservables, record: ParameterRecord, sharp_pt_cut: bool = False
) -> SelectionMask:
    """Walk the Apt -> Lpt -> Hpt ladder, stopping at the first failed level."""
    mask = SelectionMask.NONE
    for ilevel, bit in enumerate(MATCH_LEVELS):
        if track.match_trigger < ilevel + 1:
            break
        if sharp_pt_cut and track.pt < record.sharp_pt_cut[ilevel]:
            break
        mask |= bit
    return mask


@dataclass(frozen=True)
class SelectionEngine:
    """Stateless evaluator of the single-muon cuts against one parameter set."""

    def classify(
        self, track: TrackObservables, record: ParameterRecord, sharp_pt_cut: bool = False
    ) -> SelectionMask:
        """Return the mask of every cut the track satisfies."""
        mask = SelectionMask.NONE
        if not track.is_muon:
            return mask

        eta = track.eta
        if ETA_RANGE[0] < eta < ETA_RANGE[1]:
            mask |= SelectionMask.ETA

        theta_abs = track.theta_abs_deg
        if THETA_ABS_RANGE_DEG[0] < theta_abs < THETA_ABS_RANGE_DEG[1]:
            mask |= SelectionMask.THETA_ABS

        mask |= match_trigger_mask(track, record, sharp_pt_cut)

        chi2 = track.chi2_norm_tracker
        if chi2 is not None and chi2 < record.chi2_norm_cut:
            mask |= SelectionMask.TRACK_CHI_SQUARE

        if passes_pdca(track, record):
            mask |= SelectionMask.PDCA

        logger.debug("Selection mask 0x%x", int(mask))
        return mask

    def accept(
        self,
        track: TrackObservables,
        record: ParameterRecord,
        filter_mask: int,
        sharp_pt_cut: bool = False,
    ) -> bool:
        """Return whether every bit requested in `filter_mask` is satisfied."""
        selection_mask = self.classify(track, record, sharp_pt_cut)
        selected = (selection_mask & filter_mask) == filter_mask
        logger.debug(
            "IsMuon %i  selected %i  mask 0x%x", track.is_muon, selected, int(selection_mask)
        )
        return selected

    def pt_cut_matches_trigger_class(
        self,
        track: TrackObservables,
        record: ParameterRecord,
        level: int,
        sharp_pt_cut: bool = False,
    ) -> bool:
        """Check the track against the trigger pt level (1-3) of a trigger class.

        With the sharp pt cut enabled the tracker pt must also reach the
        threshold of that level.
        """
        if level < 1 or level > len(MATCH_LEVELS):
            raise ValueError(f"Trigger pt level must be between 1 and 3, got {level}.")
        match_tracker_pt = True
        if sharp_pt_cut:
            match_tracker_pt = track.pt >= record.sharp_pt_cut[level - 1]
        return track.match_trigger >= level and match_tracker_pt
