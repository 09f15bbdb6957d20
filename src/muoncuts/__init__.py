"""Public package exports for the single-muon track-cut framework."""
__author__ = "Renato Quagliani <rquaglia@cern.ch>"


from .cuts import MuonTrackCuts
from .database import ParameterDatabase, mc_variant_path
from .exceptions import (
    ConfigurationError,
    CustomParamError,
    MuonCutsError,
    ResolutionError,
    StorageNotFoundError,
)
from .models import (
    DEFAULT_FILTER_MASK,
    AutoParams,
    CandidateRecord,
    CustomOverride,
    FilterConfiguration,
    MuonTrack,
    ParameterRecord,
    ResolvedState,
    SelectionMask,
    TrackObservables,
    mask_names,
    parse_filter_mask,
)
from .provenance import infer_pass_number
from .resolver import ParameterResolver, select_candidate
from .selection import SLOPE_RESOLUTION_DISTANCE, SelectionEngine

__all__ = [
    "MuonTrackCuts",
    "ParameterResolver",
    "SelectionEngine",
    "ParameterDatabase",
    "ParameterRecord",
    "CandidateRecord",
    "ResolvedState",
    "AutoParams",
    "CustomOverride",
    "FilterConfiguration",
    "SelectionMask",
    "DEFAULT_FILTER_MASK",
    "MuonTrack",
    "TrackObservables",
    "MuonCutsError",
    "ConfigurationError",
    "ResolutionError",
    "StorageNotFoundError",
    "CustomParamError",
    "SLOPE_RESOLUTION_DISTANCE",
    "infer_pass_number",
    "mask_names",
    "mc_variant_path",
    "parse_filter_mask",
    "select_candidate",
]
