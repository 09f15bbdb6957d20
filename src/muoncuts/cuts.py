"""High-level single-muon cuts: filter settings, parameter lookup and selection."""

from __future__ import annotations
__author__ = "Renato Quagliani <rquaglia@cern.ch>"


import dataclasses
import logging
from pathlib import Path
from typing import Any

from .database import ParameterDatabase, mc_variant_path
from .exceptions import ResolutionError, StorageNotFoundError
from .models import (
    DEFAULT_FILTER_MASK,
    MATCH_LEVEL_NAMES,
    MATCH_LEVELS,
    FilterConfiguration,
    ParameterRecord,
    ResolvedState,
    SelectionMask,
    TrackObservables,
)
from .provenance import infer_pass_number
from .resolver import ParameterResolver
from .selection import SelectionEngine

logger = logging.getLogger(__name__)


class MuonTrackCuts:
    """Select good muon tracks with run-dependent calibration parameters.

    Typical use:
        cuts = MuonTrackCuts("muonCuts", database_path="MuonTrackCuts.json")
        cuts.set_pass_number(2)
        cuts.resolve_for_run(169099)
        good = [t for t in tracks if cuts.accept(t)]

    The database is read lazily; with `set_is_mc(True)` the `_MC` sibling file
    (or the `mc_database` given at construction) is used instead.
    """

    def __init__(
        self,
        name: str = "muonTrackCuts",
        database_path: str | Path | None = None,
        database: ParameterDatabase | None = None,
        mc_database: ParameterDatabase | None = None,
    ) -> None:
        self.name = name
        self.database_path = None if database_path is None else Path(database_path)
        self._databases: dict[bool, ParameterDatabase] = {}
        if database is not None:
            self._databases[False] = database
        if mc_database is not None:
            self._databases[True] = mc_database
        self._config = FilterConfiguration()
        self._resolver = ParameterResolver()
        self._engine = SelectionEngine()

    @property
    def config(self) -> FilterConfiguration:
        return self._config

    @property
    def resolver(self) -> ParameterResolver:
        return self._resolver

    @property
    def filter_mask(self) -> SelectionMask:
        return self._config.filter_mask

    def set_filter_mask(self, mask: int) -> None:
        self._update_config(filter_mask=SelectionMask(mask))

    def set_default_filter_mask(self) -> None:
        """Standard single-muon cuts: eta, theta_abs, pDCA and Apt matching."""
        self._update_config(filter_mask=DEFAULT_FILTER_MASK)

    def set_sharp_pt_cut(self, enabled: bool = True) -> None:
        self._update_config(sharp_pt_cut=enabled)

    def is_apply_sharp_pt_cut_in_matching(self) -> bool:
        return self._config.sharp_pt_cut

    def set_is_mc(self, is_mc: bool = True) -> None:
        self._update_config(is_mc=is_mc)

    def set_allow_default_params(self, allow: bool = True) -> None:
        self._update_config(allow_default=allow)

    def set_pass_number(self, pass_number: int | None) -> None:
        """Request a specific pass (`None` restores inference from provenance)."""
        if pass_number is not None and pass_number < 0:
            pass_number = None
        self._update_config(requested_pass=pass_number)

    @property
    def resolved(self) -> ResolvedState | None:
        return self._resolver.resolved

    @property
    def parameters(self) -> ParameterRecord:
        """Active parameter set (read-only)."""
        record = self._resolver.active_record
        if record is None:
            raise ResolutionError(
                "Muon track cut parameters not resolved: call resolve_for_run first."
            )
        return record

    def resolve_for_run(self, run_number: int, source: str | Path | None = None) -> bool:
        """Load the parameters for `run_number`.

        Without a requested pass (and without default fallback) the pass is
        guessed from `source`, typically the path of the input file.
        Under a custom override this does nothing.
        """
        if self._resolver.using_custom_override:
            return True
        pass_number = self._config.requested_pass
        strict_pass = pass_number is not None
        if pass_number is None and not self._config.allow_default:
            pass_number = infer_pass_number(source)
            if pass_number is not None:
                logger.info("Guessing pass number from path: pass%i", pass_number)
        self._resolver.resolve(
            self._database().candidates(),
            run_number=run_number,
            requested_pass=pass_number,
            allow_default=self._config.allow_default,
            strict_pass=strict_pass,
        )
        return True

    def set_custom_param_from_run(self, run_number: int, pass_number: int | None) -> ParameterRecord:
        """Take the parameters of `run_number`/`pass_number` and allow editing them.

        From now on `resolve_for_run` does nothing.
        """
        self.set_pass_number(pass_number)
        resolved = self._resolver.set_custom_param_from_run(
            self._database().candidates(),
            run_number=run_number,
            pass_number=self._config.requested_pass,
            allow_default=self._config.allow_default,
        )
        return resolved.active_record

    def custom_param(self) -> ParameterRecord:
        return self._resolver.custom_param()

    def edit_custom_param(self, **changes: Any) -> ParameterRecord:
        return self._resolver.edit_custom_param(**changes)

    def classify(self, track: TrackObservables) -> SelectionMask:
        """Mask of all the cuts passed by `track`."""
        return self._engine.classify(track, self.parameters, self._config.sharp_pt_cut)

    def accept(self, track: TrackObservables) -> bool:
        """Whether `track` passes every cut of the filter mask."""
        return self._engine.accept(
            track, self.parameters, self._config.filter_mask, self._config.sharp_pt_cut
        )

    def track_pt_cut_match_trig_class(self, track: TrackObservables, level: int) -> bool:
        """Check the track against the trigger pt level used in a trigger class."""
        return self._engine.pt_cut_matches_trigger_class(
            track, self.parameters, level, self._config.sharp_pt_cut
        )

    def describe(self, option: str = "") -> str:
        """Describe the filter mask (`mask`), the parameters (`param`) or both."""
        sopt = option.lower()
        if not sopt or "*" in sopt or "all" in sopt:
            sopt = "mask param"
        lines: list[str] = []
        filter_mask = self._config.filter_mask
        if "mask" in sopt:
            lines.append(" *** Muon track filter mask: *** ")
            lines.append(f"  0x{int(filter_mask):x}")
            if filter_mask & SelectionMask.ETA:
                lines.append("  -4 < eta < -2.5")
            if filter_mask & SelectionMask.THETA_ABS:
                lines.append("  2 < theta_abs < 10 deg")
            if filter_mask & SelectionMask.PDCA:
                lines.append("  pxDCA cut")
            for bit, level_name in zip(MATCH_LEVELS, MATCH_LEVEL_NAMES):
                if filter_mask & bit:
                    line = f"  match {level_name}"
                    if self._config.sharp_pt_cut:
                        line += " && sharp pt from tracker"
                    lines.append(line)
            if filter_mask & SelectionMask.TRACK_CHI_SQUARE:
                lines.append("  Chi2 cut on track")
            lines.append(" ******************** ")
        if "param" in sopt:
            record = self._resolver.active_record
            if record is None:
                lines.append("  Parameters not resolved yet")
            else:
                lines.append(record.describe())
        return "\n".join(lines)

    def _update_config(self, **changes: Any) -> None:
        self._config = dataclasses.replace(self._config, **changes)

    def _database(self) -> ParameterDatabase:
        """Database for the current data type, opened on first use."""
        is_mc = self._config.is_mc
        db = self._databases.get(is_mc)
        if db is not None:
            return db
        if self.database_path is None:
            raise StorageNotFoundError("<unset>", "no database path configured")
        path = mc_variant_path(self.database_path) if is_mc else self.database_path
        db = ParameterDatabase.open(path)
        self._databases[is_mc] = db
        return db
