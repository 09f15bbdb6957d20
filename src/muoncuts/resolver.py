"""Lookup of the calibration parameter set matching a run and reprocessing pass."""

from __future__ import annotations
__author__ = "Renato Quagliani <rquaglia@cern.ch>"


import dataclasses
import logging
from typing import Any, Iterable

from .exceptions import CustomParamError, ResolutionError
from .models import (
    AutoParams,
    CandidateRecord,
    CustomOverride,
    ParameterRecord,
    ResolvedState,
    ResolverState,
)

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class _Match:
    """Winning candidate of one database scan."""

    candidate: CandidateRecord
    is_fallback: bool


def select_candidate(
    candidates: Iterable[CandidateRecord],
    run_number: int,
    requested_pass: int | None,
    allow_default: bool = False,
    strict_pass: bool = True,
) -> _Match:
    """Scan `candidates` and pick the parameter set for `run_number`.

    Workflow:
    1. Skip candidates of other passes when `strict_pass` is set.
    2. Stop at the first run-specific candidate of `requested_pass` covering
       the run.
    3. Otherwise remember the highest-pass run-specific candidate and the
       highest-pass default (first seen wins among equal passes).
    4. Without an exact match, fall back (if allowed) on whichever remembered
       candidate has the higher pass, run-specific on a tie.
    """
    if requested_pass is None and not allow_default:
        raise ResolutionError("Pass number not specified!")

    n_admissible = 0
    best_non_default: CandidateRecord | None = None
    best_default: CandidateRecord | None = None
    for cand in candidates:
        if strict_pass and requested_pass is not None and cand.declared_pass != requested_pass:
            continue
        n_admissible += 1
        if cand.is_default_for_run:
            if best_default is None or cand.declared_pass > best_default.declared_pass:
                best_default = cand
            continue
        if not cand.covers_run(run_number):
            continue
        if cand.declared_pass == requested_pass:
            return _Match(candidate=cand, is_fallback=False)
        if best_non_default is None or cand.declared_pass > best_non_default.declared_pass:
            best_non_default = cand

    if n_admissible == 0:
        raise ResolutionError(f"Requested pass{_pass_label(requested_pass)} not found!")
    if not allow_default:
        raise ResolutionError(
            f"Requested run {run_number} not found in pass{_pass_label(requested_pass)}!"
        )
    if best_non_default is None and best_default is None:
        raise ResolutionError("No parameter found")
    if best_default is None or (
        best_non_default is not None
        and best_non_default.declared_pass >= best_default.declared_pass
    ):
        assert best_non_default is not None
        return _Match(candidate=best_non_default, is_fallback=True)
    return _Match(candidate=best_default, is_fallback=True)


def _pass_label(pass_number: int | None) -> str:
    return "?" if pass_number is None else str(pass_number)


class ParameterResolver:
    """Own the active parameter set and replace it for each new run.

    After `set_custom_param_from_run` the resolver is latched: `resolve`
    no longer touches the parameters, which can only be changed with
    `edit_custom_param`.
    """

    def __init__(self) -> None:
        self._state: ResolverState = AutoParams()

    @property
    def state(self) -> ResolverState:
        return self._state

    @property
    def resolved(self) -> ResolvedState | None:
        """Current resolution outcome, if any."""
        return self._state.resolved

    @property
    def active_record(self) -> ParameterRecord | None:
        resolved = self._state.resolved
        return None if resolved is None else resolved.active_record

    @property
    def using_custom_override(self) -> bool:
        return isinstance(self._state, CustomOverride)

    def resolve(
        self,
        candidates: Iterable[CandidateRecord],
        run_number: int,
        requested_pass: int | None,
        allow_default: bool = False,
        strict_pass: bool = True,
    ) -> ResolvedState:
        """Look up the parameters for `run_number` and make them active.

        Raises `ResolutionError` when nothing matches under the current
        policy. Under a custom override this is a no-op returning the latched
        state.
        """
        if isinstance(self._state, CustomOverride):
            return self._state.resolved
        resolved = self._resolve(candidates, run_number, requested_pass, allow_default, strict_pass)
        self._state = AutoParams(resolved=resolved)
        return resolved

    def set_custom_param_from_run(
        self,
        candidates: Iterable[CandidateRecord],
        run_number: int,
        pass_number: int | None,
        allow_default: bool = False,
    ) -> ResolvedState:
        """Resolve once, then latch the parameters for manual editing."""
        if isinstance(self._state, CustomOverride):
            raise CustomParamError("Custom parameters are already set.")
        resolved = self._resolve(
            candidates, run_number, pass_number, allow_default, strict_pass=pass_number is not None
        )
        resolved = dataclasses.replace(resolved, using_custom_override=True)
        self._state = CustomOverride(resolved=resolved)
        logger.warning("From now on resolution for a new run does NOTHING!")
        return resolved

    def custom_param(self) -> ParameterRecord:
        """Return the latched parameter set.

        Only valid after `set_custom_param_from_run`; read the active
        parameters through `active_record` otherwise.
        """
        if not isinstance(self._state, CustomOverride):
            raise CustomParamError(
                "Custom parameters can only be accessed after set_custom_param_from_run. "
                "Use active_record to read the parameters."
            )
        return self._state.resolved.active_record

    def edit_custom_param(self, **changes: Any) -> ParameterRecord:
        """Replace fields of the latched parameter set (e.g. `chi2_norm_cut=3.5`)."""
        record = self.custom_param()
        assert isinstance(self._state, CustomOverride)
        try:
            edited = dataclasses.replace(record, **changes)
        except TypeError as exc:
            raise CustomParamError(f"Cannot edit custom parameters: {exc}") from exc
        self._state = CustomOverride(
            resolved=dataclasses.replace(self._state.resolved, active_record=edited)
        )
        return edited

    def _resolve(
        self,
        candidates: Iterable[CandidateRecord],
        run_number: int,
        requested_pass: int | None,
        allow_default: bool,
        strict_pass: bool,
    ) -> ResolvedState:
        match = select_candidate(
            candidates,
            run_number=run_number,
            requested_pass=requested_pass,
            allow_default=allow_default,
            strict_pass=strict_pass,
        )
        cand = match.candidate
        if match.is_fallback:
            logger.warning(
                "Requested run %i not found in pass%s: using %s (pass%i)",
                run_number,
                _pass_label(requested_pass),
                cand.label,
                cand.declared_pass,
            )
        # Frozen record: the state keeps a snapshot, not a link into the database.
        record = dataclasses.replace(cand.record)
        logger.info(
            "Requested run %i pass%s. Param. set: %s (pass%i)",
            run_number,
            _pass_label(requested_pass),
            record.label,
            cand.declared_pass,
        )
        return ResolvedState(
            active_record=record,
            resolved_pass=cand.declared_pass,
            run_number=run_number,
            requested_pass=requested_pass,
        )
