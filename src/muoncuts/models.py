"""Core data models used by the muon track-cut framework.

This module defines:
- the per-cut selection bitmask (`SelectionMask`)
- calibration parameter sets (`ParameterRecord`) and database candidates
  (`CandidateRecord`)
- resolution outcomes (`ResolvedState`) and the resolver state tags
  (`AutoParams`, `CustomOverride`)
- user-facing filter settings (`FilterConfiguration`)
- the track observables consumed by the selection (`TrackObservables`,
  `MuonTrack`).
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, fields
from typing import Iterable, Protocol, Union

from .exceptions import ConfigurationError

Vector3 = tuple[float, float, float]


class SelectionMask(enum.IntFlag):
    """Independent single-muon cut bits."""

    NONE = 0
    ETA = 1 << 0
    THETA_ABS = 1 << 1
    PDCA = 1 << 2
    MATCH_APT = 1 << 3
    MATCH_LPT = 1 << 4
    MATCH_HPT = 1 << 5
    TRACK_CHI_SQUARE = 1 << 6


# Trigger-match ladder, lowest level first.
MATCH_LEVELS: tuple[SelectionMask, ...] = (
    SelectionMask.MATCH_APT,
    SelectionMask.MATCH_LPT,
    SelectionMask.MATCH_HPT,
)
MATCH_LEVEL_NAMES: tuple[str, ...] = ("Apt", "Lpt", "Hpt")

DEFAULT_FILTER_MASK = (
    SelectionMask.ETA | SelectionMask.THETA_ABS | SelectionMask.PDCA | SelectionMask.MATCH_APT
)

_MASK_ALIASES: dict[str, SelectionMask] = {
    "eta": SelectionMask.ETA,
    "theta_abs": SelectionMask.THETA_ABS,
    "thetaabs": SelectionMask.THETA_ABS,
    "pdca": SelectionMask.PDCA,
    "match_apt": SelectionMask.MATCH_APT,
    "apt": SelectionMask.MATCH_APT,
    "match_lpt": SelectionMask.MATCH_LPT,
    "lpt": SelectionMask.MATCH_LPT,
    "match_hpt": SelectionMask.MATCH_HPT,
    "hpt": SelectionMask.MATCH_HPT,
    "track_chi_square": SelectionMask.TRACK_CHI_SQUARE,
    "chi2": SelectionMask.TRACK_CHI_SQUARE,
}


def parse_filter_mask(names: Iterable[str]) -> SelectionMask:
    """Combine cut names (e.g. `eta`, `pdca`, `lpt`) into one mask."""
    mask = SelectionMask.NONE
    for name in names:
        key = name.strip().lower()
        if not key:
            continue
        if key == "default":
            mask |= DEFAULT_FILTER_MASK
            continue
        try:
            mask |= _MASK_ALIASES[key]
        except KeyError as exc:
            supported = ", ".join(sorted(_MASK_ALIASES))
            raise ConfigurationError(
                f"Unknown selection bit '{name}'. Supported names: default, {supported}"
            ) from exc
    return mask


def mask_names(mask: int) -> list[str]:
    """Return the names of the bits set in `mask`, lowest bit first."""
    return [bit.name.lower() for bit in SelectionMask if bit and bit.name and mask & bit]


@dataclass(frozen=True)
class ParameterRecord:
    """One calibration parameter set for the single-muon cuts.

    Two-valued fields are ordered `(theta_abs < 3 deg, theta_abs >= 3 deg)`;
    `sharp_pt_cut` holds one threshold per trigger-match level (Apt, Lpt, Hpt).
    """

    label: str
    mean_dca: Vector3 = (0.0, 0.0, 0.0)
    sigma_pdca: tuple[float, float] = (0.0, 0.0)
    mean_p_corr: tuple[float, float] = (0.0, 0.0)
    n_sigma_pdca: float = 0.0
    rel_p_resolution: float = 0.0
    slope_resolution: float = 0.0
    chi2_norm_cut: float = 0.0
    sharp_pt_cut: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check that every value is finite and sharp pt cuts are ordered."""
        for f in fields(self):
            if f.name == "label":
                continue
            value = getattr(self, f.name)
            values = tuple(value) if isinstance(value, (tuple, list)) else (value,)
            if not all(math.isfinite(v) for v in values):
                raise ConfigurationError(
                    f"Parameter '{f.name}' of '{self.label}' must be finite, got {value!r}"
                )
        if len(self.mean_dca) != 3 or len(self.sharp_pt_cut) != 3:
            raise ConfigurationError(
                f"Parameter set '{self.label}' needs 3 mean DCA values and 3 sharp pt cuts."
            )
        if len(self.sigma_pdca) != 2 or len(self.mean_p_corr) != 2:
            raise ConfigurationError(
                f"Parameter set '{self.label}' needs 2 sigma pDCA and 2 mean p corrections."
            )
        cuts = self.sharp_pt_cut
        if any(lo > hi for lo, hi in zip(cuts, cuts[1:])):
            raise ConfigurationError(
                f"Sharp pt cuts of '{self.label}' must be non-decreasing, got {cuts!r}"
            )

    def describe(self) -> str:
        """Human-readable parameter summary."""
        lines = [
            " *** Muon track parameter summary ***",
            f"  Param. set: {self.label}",
            "  Mean vertex DCA: ({:g}, {:g}, {:g})".format(*self.mean_dca),
            "  Mean p correction (GeV/c): theta2-3 = {:g}  theta3-10 = {:g}".format(*self.mean_p_corr),
            "  Sigma p x DCA (cm x GeV/c): theta2-3 = {:g}  theta3-10 = {:g}".format(*self.sigma_pdca),
            f"  Cut in sigmas: {self.n_sigma_pdca:g}",
            f"  Momentum resolution: {self.rel_p_resolution:g}",
            f"  Slope resolution: {self.slope_resolution:g}",
            "  Sharp pt cut: {:g} (Apt)  {:g} (Lpt)  {:g} (Hpt)".format(*self.sharp_pt_cut),
            f"  Normalised chi2 cut on track: {self.chi2_norm_cut:g}",
            " ********************************",
        ]
        return "\n".join(lines)


@dataclass(frozen=True)
class CandidateRecord:
    """Parameter set as published in the database for one pass.

    Default records cover every run; run-specific records cover the inclusive
    range `[first_run, last_run]`.
    """

    label: str
    declared_pass: int
    is_default_for_run: bool
    record: ParameterRecord
    first_run: int | None = None
    last_run: int | None = None

    def covers_run(self, run_number: int) -> bool:
        """Return whether this candidate applies to `run_number`."""
        if self.is_default_for_run:
            return True
        if self.first_run is not None and run_number < self.first_run:
            return False
        if self.last_run is not None and run_number > self.last_run:
            return False
        return True


@dataclass(frozen=True)
class ResolvedState:
    """Outcome of one successful parameter resolution."""

    active_record: ParameterRecord
    resolved_pass: int
    run_number: int
    requested_pass: int | None = None
    using_custom_override: bool = False


@dataclass(frozen=True)
class AutoParams:
    """Parameters are looked up again for every new run."""

    resolved: ResolvedState | None = None


@dataclass(frozen=True)
class CustomOverride:
    """Parameters were latched once and are only changed by explicit edits."""

    resolved: ResolvedState


ResolverState = Union[AutoParams, CustomOverride]


@dataclass(frozen=True)
class FilterConfiguration:
    """User settings controlling parameter lookup and track acceptance."""

    filter_mask: SelectionMask = DEFAULT_FILTER_MASK
    sharp_pt_cut: bool = False
    is_mc: bool = False
    requested_pass: int | None = None
    allow_default: bool = False


class TrackObservables(Protocol):
    """Read-only per-track quantities consumed by the selection."""

    is_muon: bool
    eta: float
    theta_abs_deg: float
    match_trigger: int
    pt: float
    p: float
    chi2_norm_tracker: float | None
    dca_xyz: Vector3 | None
    vertex_xyz: Vector3
    is_early_stage: bool
    p_uncorrected: float | None


@dataclass(frozen=True)
class MuonTrack:
    """Single muon-spectrometer track at the vertex.

    Momentum components are the vertex-corrected ones; `p_uncorrected` is the
    momentum before absorber corrections and is only stored for tracks from the
    early reconstruction stage (`is_early_stage`).
    """

    track_id: str
    px: float
    py: float
    pz: float
    theta_abs_deg: float
    match_trigger: int = 0
    chi2_norm_tracker: float | None = None
    dca_xyz: Vector3 | None = None
    vertex_xyz: Vector3 = (0.0, 0.0, 0.0)
    is_early_stage: bool = False
    p_uncorrected: float | None = None
    is_muon: bool = True
    charge: int = 0

    @property
    def p(self) -> float:
        """Total momentum magnitude."""
        return (self.px * self.px + self.py * self.py + self.pz * self.pz) ** 0.5

    @property
    def pt(self) -> float:
        """Transverse momentum."""
        return (self.px * self.px + self.py * self.py) ** 0.5

    @property
    def eta(self) -> float:
        """Pseudorapidity computed from the momentum components."""
        p = self.p
        if p - abs(self.pz) <= 0.0:
            return 1e9 if self.pz >= 0 else -1e9
        return 0.5 * math.log((p + self.pz) / (p - self.pz))
