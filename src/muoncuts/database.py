"""File-backed parameter database (JSON or TOML) with one container per pass.

Expected shape (JSON shown, TOML uses `[[containers]]` tables):
{
  "containers": [
    {
      "name": "MuonTrackCutsParam_pass2",
      "pass": 2,
      "default": {"label": "default_pass2", "sigma_pdca": [80.0, 54.0], ...},
      "runs": [
        {"first_run": 166000, "last_run": 170600, "label": "LHC11h_pass2", ...},
        ...
      ]
    },
    ...
  ]
}
"""

from __future__ import annotations
__author__ = "Renato Quagliani <rquaglia@cern.ch>"


import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

import tomli

from .exceptions import ConfigurationError, StorageNotFoundError
from .models import CandidateRecord, ParameterRecord
from .provenance import infer_pass_number

logger = logging.getLogger(__name__)

MC_SUFFIX = "_MC"


def mc_variant_path(path: str | Path) -> Path:
    """Return the Monte-Carlo sibling of a database file (`X.json` -> `X_MC.json`)."""
    p = Path(path)
    return p.with_name(f"{p.stem}{MC_SUFFIX}{p.suffix}")


@dataclass(frozen=True)
class ParameterDatabase:
    """Ordered collection of parameter candidates loaded from one document."""

    source: str
    entries: tuple[CandidateRecord, ...]

    @classmethod
    def open(cls, path: str | Path) -> "ParameterDatabase":
        """Read a `.json` or `.toml` database file."""
        p = Path(path)
        if not p.is_file():
            raise StorageNotFoundError(str(p))
        suffix = p.suffix.lower()
        if suffix == ".json":
            try:
                data = json.loads(p.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Error parsing JSON file {p}: {exc}") from exc
        elif suffix == ".toml":
            try:
                with open(p, "rb") as f:
                    data = tomli.load(f)
            except tomli.TOMLDecodeError as exc:
                raise ConfigurationError(f"Error parsing TOML file {p}: {exc}") from exc
        else:
            raise ConfigurationError(f"Unsupported database format '{suffix}'. Use .json or .toml")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Parameter database at {p} must be an object.")
        db = cls.from_mapping(data, source=str(p))
        logger.debug("Loaded %i parameter sets from %s", len(db.entries), p)
        return db

    @classmethod
    def from_mapping(cls, data: dict[str, Any], source: str = "<memory>") -> "ParameterDatabase":
        """Build a database from an already-parsed document."""
        containers = data.get("containers")
        if containers is None or containers == []:
            raise StorageNotFoundError(source, "no parameter containers")
        if not isinstance(containers, list):
            raise ConfigurationError("Parameter database key 'containers' must be a list.")
        entries: list[CandidateRecord] = []
        for idx, container in enumerate(containers):
            entries.extend(_parse_container(container, idx=idx, context=source))
        return cls(source=source, entries=tuple(entries))

    def candidates(self) -> Iterator[CandidateRecord]:
        """Enumerate candidates in document order."""
        return iter(self.entries)

    def passes(self) -> list[int]:
        """Sorted list of the passes published in this database."""
        return sorted({c.declared_pass for c in self.entries})


def _parse_container(container: Any, idx: int, context: str) -> list[CandidateRecord]:
    """Parse one pass container into its default and run-range candidates."""
    if not isinstance(container, dict):
        raise ConfigurationError(f"Container at index {idx} in {context} must be an object.")
    name = str(container.get("name", f"container{idx}"))
    if "pass" in container:
        pass_number = _parse_int(container["pass"], key="pass", context=f"Container '{name}' in {context}")
    else:
        inferred = infer_pass_number(name)
        if inferred is None:
            raise ConfigurationError(
                f"Container '{name}' in {context} must define 'pass' or carry passN in its name."
            )
        pass_number = inferred

    out: list[CandidateRecord] = []
    default = container.get("default")
    if default is not None:
        record = parse_parameter_record(
            default,
            fallback_label=f"default_pass{pass_number}",
            context=f"Default block of container '{name}' in {context}",
        )
        out.append(
            CandidateRecord(
                label=record.label,
                declared_pass=pass_number,
                is_default_for_run=True,
                record=record,
            )
        )
    runs = container.get("runs", [])
    if not isinstance(runs, list):
        raise ConfigurationError(f"Container '{name}' key 'runs' must be a list.")
    for ridx, item in enumerate(runs):
        if not isinstance(item, dict):
            raise ConfigurationError(f"Run entry {ridx} of container '{name}' must be an object.")
        if "first_run" not in item or "last_run" not in item:
            raise ConfigurationError(
                f"Run entry {ridx} of container '{name}' must define 'first_run' and 'last_run'."
            )
        entry = f"Run entry {ridx} of container '{name}'"
        first_run = _parse_int(item["first_run"], key="first_run", context=entry)
        last_run = _parse_int(item["last_run"], key="last_run", context=entry)
        if last_run < first_run:
            raise ConfigurationError(
                f"Run entry {ridx} of container '{name}' has last_run < first_run."
            )
        record = parse_parameter_record(
            item,
            fallback_label=f"{name}_{first_run}_{last_run}",
            context=f"Run entry {ridx} of container '{name}' in {context}",
        )
        out.append(
            CandidateRecord(
                label=record.label,
                declared_pass=pass_number,
                is_default_for_run=False,
                record=record,
                first_run=first_run,
                last_run=last_run,
            )
        )
    return out


_VECTOR_FIELDS = {"mean_dca": 3, "sigma_pdca": 2, "mean_p_corr": 2, "sharp_pt_cut": 3}
_SCALAR_FIELDS = ("n_sigma_pdca", "rel_p_resolution", "slope_resolution", "chi2_norm_cut")


def parse_parameter_record(
    item: dict[str, Any], fallback_label: str = "custom", context: str = "parameter block"
) -> ParameterRecord:
    """Parse one parameter block; every calibration value must be present."""
    if not isinstance(item, dict):
        raise ConfigurationError(f"{context} must be an object.")
    label = str(item.get("label", fallback_label))
    missing = [key for key in (*_VECTOR_FIELDS, *_SCALAR_FIELDS) if key not in item]
    if missing:
        raise ConfigurationError(
            f"{context} ('{label}') is missing calibration values: {', '.join(missing)}"
        )
    kwargs: dict[str, Any] = {"label": label}
    try:
        for key, size in _VECTOR_FIELDS.items():
            kwargs[key] = _parse_floats(item[key], size=size, key=key)
        for key in _SCALAR_FIELDS:
            kwargs[key] = float(item[key])
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{context} ('{label}') has a non-numeric value: {exc}") from exc
    return ParameterRecord(**kwargs)


def _parse_int(value: Any, key: str, context: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{context} has a non-integer '{key}': {value!r}") from exc


def _parse_floats(value: Any, size: int, key: str) -> tuple[float, ...]:
    """Validate and convert a list of `size` numbers."""
    if not isinstance(value, list) or len(value) != size:
        raise ConfigurationError(f"Parameter '{key}' must be a list of {size} numbers.")
    return tuple(float(v) for v in value)
