"""Unit tests for the high-level muon track-cut workflow and parameter databases."""

from __future__ import annotations

import json
import logging
import math
import tempfile
import unittest
from pathlib import Path

from muoncuts import (
    DEFAULT_FILTER_MASK,
    ConfigurationError,
    CustomParamError,
    MuonTrack,
    MuonTrackCuts,
    ParameterDatabase,
    ResolutionError,
    SelectionMask,
    StorageNotFoundError,
    mc_variant_path,
)

_PARAMS = {
    "mean_dca": [0.0, 0.0, 0.0],
    "sigma_pdca": [80.0, 54.0],
    "mean_p_corr": [2.0, 1.0],
    "n_sigma_pdca": 6.0,
    "rel_p_resolution": 0.0004,
    "slope_resolution": 0.0005,
    "chi2_norm_cut": 4.0,
    "sharp_pt_cut": [0.5, 1.0, 1.5],
}

_DATABASE = {
    "containers": [
        {
            "name": "MuonTrackCutsParam_pass1",
            "default": {"label": "default_pass1", **_PARAMS},
            "runs": [
                {"first_run": 100, "last_run": 200, "label": "LHC_pass1", **_PARAMS},
            ],
        },
        {
            "name": "MuonTrackCutsParam_pass2",
            "pass": 2,
            "default": {"label": "default_pass2", **_PARAMS},
            "runs": [
                {"first_run": 100, "last_run": 200, "label": "LHC_pass2", **_PARAMS, "chi2_norm_cut": 3.0},
            ],
        },
    ]
}

_DATABASE_TOML = """
[[containers]]
name = "MuonTrackCutsParam_pass3"

[containers.default]
label = "default_pass3"
mean_dca = [0.0, 0.0, 0.0]
sigma_pdca = [80.0, 54.0]
mean_p_corr = [2.0, 1.0]
n_sigma_pdca = 6.0
rel_p_resolution = 0.0004
slope_resolution = 0.0005
chi2_norm_cut = 4.0
sharp_pt_cut = [1.0, 2.0, 4.0]

[[containers.runs]]
first_run = 300
last_run = 400
label = "LHC_pass3"
mean_dca = [0.1, -0.2, 0.0]
sigma_pdca = [70.0, 50.0]
mean_p_corr = [2.0, 1.0]
n_sigma_pdca = 6.0
rel_p_resolution = 0.0004
slope_resolution = 0.0005
chi2_norm_cut = 5.0
sharp_pt_cut = [1.0, 2.0, 4.0]
"""


def _good_track() -> MuonTrack:
    """Track passing every cut of the baseline parameters."""
    return MuonTrack(
        track_id="mu0",
        px=2.0,
        py=0.0,
        pz=2.0 * math.sinh(-3.0),
        theta_abs_deg=5.0,
        match_trigger=3,
        chi2_norm_tracker=3.5,
        dca_xyz=(1.0, 0.5, 0.0),
    )


class TestParameterDatabase(unittest.TestCase):
    """Validate JSON/TOML parsing and storage failures."""

    def test_from_mapping_enumerates_candidates_in_order(self) -> None:
        """Defaults and run ranges are published per pass in document order."""
        db = ParameterDatabase.from_mapping(_DATABASE)
        labels = [(c.label, c.declared_pass, c.is_default_for_run) for c in db.candidates()]
        self.assertEqual(
            labels,
            [
                ("default_pass1", 1, True),
                ("LHC_pass1", 1, False),
                ("default_pass2", 2, True),
                ("LHC_pass2", 2, False),
            ],
        )
        self.assertEqual(db.passes(), [1, 2])

    def test_open_toml_database(self) -> None:
        """TOML documents use the same layout as JSON ones."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "MuonTrackCuts.toml"
            path.write_text(_DATABASE_TOML, encoding="utf-8")
            db = ParameterDatabase.open(path)
        [default, run] = list(db.candidates())
        self.assertEqual(default.declared_pass, 3)
        self.assertTrue(default.covers_run(1))
        self.assertEqual(run.record.sigma_pdca, (70.0, 50.0))
        self.assertTrue(run.covers_run(300))
        self.assertFalse(run.covers_run(401))

    def test_missing_file_is_fatal(self) -> None:
        """A missing database aborts like an unresolvable run."""
        with self.assertRaises(ResolutionError):
            ParameterDatabase.open("/nonexistent/MuonTrackCuts.json")

    def test_empty_database_is_fatal(self) -> None:
        """A document without containers is treated as missing storage."""
        with self.assertRaises(StorageNotFoundError):
            ParameterDatabase.from_mapping({"containers": []})

    def test_invalid_parameters_are_rejected(self) -> None:
        """Decreasing sharp pt cuts violate the parameter invariant."""
        bad = {"containers": [{"pass": 1, "default": {**_PARAMS, "sharp_pt_cut": [2.0, 1.0, 3.0]}}]}
        with self.assertRaises(ConfigurationError):
            ParameterDatabase.from_mapping(bad)

    def test_missing_calibration_value_is_rejected(self) -> None:
        """Blocks lacking a calibration value name the block and the missing key."""
        partial = {
            "containers": [
                {
                    "name": "MuonTrackCutsParam_pass2",
                    "runs": [{"first_run": 1, "last_run": 10, "label": "partial", "chi2_norm_cut": 4.0}],
                }
            ]
        }
        with self.assertRaises(ConfigurationError) as ctx:
            ParameterDatabase.from_mapping(partial)
        message = str(ctx.exception)
        self.assertIn("Run entry 0 of container 'MuonTrackCutsParam_pass2'", message)
        self.assertIn("'partial'", message)
        self.assertIn("sigma_pdca", message)
        self.assertIn("sharp_pt_cut", message)
        self.assertNotIn("chi2_norm_cut", message)
        incomplete_default = {k: v for k, v in _PARAMS.items() if k != "mean_p_corr"}
        with self.assertRaisesRegex(ConfigurationError, "Default block.*mean_p_corr"):
            ParameterDatabase.from_mapping({"containers": [{"pass": 1, "default": incomplete_default}]})

    def test_malformed_documents_raise_configuration_error(self) -> None:
        """Undecodable JSON and non-integer run bounds are configuration errors."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "MuonTrackCuts.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaisesRegex(ConfigurationError, "Error parsing JSON file"):
                ParameterDatabase.open(path)
        bad_run = {"containers": [{"pass": 1, "runs": [{"first_run": "abc", "last_run": 5, **_PARAMS}]}]}
        with self.assertRaisesRegex(ConfigurationError, "first_run"):
            ParameterDatabase.from_mapping(bad_run)
        with self.assertRaises(ConfigurationError):
            ParameterDatabase.from_mapping({"containers": [{"pass": "two", "default": _PARAMS}]})

    def test_mc_variant_path(self) -> None:
        """Monte-Carlo parameters live in the `_MC` sibling file."""
        self.assertEqual(mc_variant_path("/oadb/MuonTrackCuts.json"), Path("/oadb/MuonTrackCuts_MC.json"))


class TestMuonTrackCuts(unittest.TestCase):
    """Validate configuration, lookup and selection through the facade."""

    def setUp(self) -> None:
        self.db = ParameterDatabase.from_mapping(_DATABASE)
        self.cuts = MuonTrackCuts("muonCuts", database=self.db)

    def test_default_filter_mask(self) -> None:
        """Standard single-muon cuts are requested by default."""
        self.assertEqual(self.cuts.filter_mask, DEFAULT_FILTER_MASK)
        self.cuts.set_filter_mask(SelectionMask.ETA)
        self.cuts.set_default_filter_mask()
        self.assertEqual(
            self.cuts.filter_mask,
            SelectionMask.ETA | SelectionMask.THETA_ABS | SelectionMask.PDCA | SelectionMask.MATCH_APT,
        )

    def test_classify_requires_resolved_parameters(self) -> None:
        """Selecting before any lookup is a configuration error."""
        with self.assertRaises(ResolutionError):
            self.cuts.accept(_good_track())

    def test_explicit_pass_selects_run_parameters(self) -> None:
        """An explicit pass picks the run-specific set of that pass."""
        self.cuts.set_pass_number(2)
        self.assertTrue(self.cuts.resolve_for_run(150))
        self.assertEqual(self.cuts.parameters.label, "LHC_pass2")
        self.assertEqual(self.cuts.resolved.resolved_pass, 2)
        self.cuts.set_filter_mask(DEFAULT_FILTER_MASK | SelectionMask.TRACK_CHI_SQUARE)
        # chi2 3.5 passes the pass1 cut (4.0) but not the pass2 one (3.0)
        self.assertFalse(self.cuts.accept(_good_track()))
        self.assertTrue(self.cuts.classify(_good_track()) & SelectionMask.PDCA)

    def test_pass_is_guessed_from_source(self) -> None:
        """Without a requested pass, the pass comes from the dataset path."""
        with self.assertLogs("muoncuts.cuts", level=logging.INFO) as logs:
            self.cuts.resolve_for_run(150, source="/alice/data/2011/LHC11h/000150/ESDs/pass1/AliESDs.root")
        self.assertIn("Guessing pass number from path: pass1", logs.output[0])
        self.assertEqual(self.cuts.parameters.label, "LHC_pass1")
        self.assertTrue(self.cuts.accept(_good_track()))

    def test_unknown_pass_without_fallback_is_fatal(self) -> None:
        """No requested pass, no provenance and no fallback aborts."""
        with self.assertRaisesRegex(ResolutionError, "Pass number not specified"):
            self.cuts.resolve_for_run(150)

    def test_allow_default_uses_highest_pass(self) -> None:
        """Default fallback without a pass takes the most recent pass."""
        self.cuts.set_allow_default_params(True)
        self.cuts.resolve_for_run(999)
        self.assertEqual(self.cuts.parameters.label, "default_pass2")
        self.cuts.resolve_for_run(150)
        self.assertEqual(self.cuts.parameters.label, "LHC_pass2")

    def test_mc_uses_mc_database(self) -> None:
        """Monte-Carlo mode switches to the MC parameter database."""
        mc_db = ParameterDatabase.from_mapping(
            {"containers": [{"pass": 2, "default": {"label": "mc_default", **_PARAMS}}]}
        )
        cuts = MuonTrackCuts("muonCuts", database=self.db, mc_database=mc_db)
        cuts.set_is_mc(True)
        cuts.set_allow_default_params(True)
        cuts.set_pass_number(2)
        cuts.resolve_for_run(150)
        self.assertEqual(cuts.parameters.label, "mc_default")

    def test_database_files_are_opened_lazily(self) -> None:
        """Data and MC databases are read from the configured path."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "MuonTrackCuts.json"
            path.write_text(json.dumps(_DATABASE), encoding="utf-8")
            cuts = MuonTrackCuts("muonCuts", database_path=path)
            cuts.set_pass_number(1)
            cuts.resolve_for_run(150)
            self.assertEqual(cuts.parameters.label, "LHC_pass1")
            cuts.set_is_mc(True)
            with self.assertRaises(StorageNotFoundError):
                cuts.resolve_for_run(150)

    def test_custom_params_disable_lookup(self) -> None:
        """After a custom override, new runs keep the edited parameters."""
        with self.assertRaises(CustomParamError):
            self.cuts.custom_param()
        self.cuts.set_custom_param_from_run(150, 1)
        self.cuts.edit_custom_param(chi2_norm_cut=1.0)
        self.assertTrue(self.cuts.resolve_for_run(150))
        self.cuts.set_pass_number(2)
        self.cuts.resolve_for_run(160)
        self.assertEqual(self.cuts.parameters.label, "LHC_pass1")
        self.assertEqual(self.cuts.parameters.chi2_norm_cut, 1.0)

    def test_track_pt_cut_match_trig_class(self) -> None:
        """Trigger-class check follows the sharp pt setting."""
        self.cuts.set_pass_number(2)
        self.cuts.resolve_for_run(150)
        slow = MuonTrack("mu1", px=0.8, py=0.0, pz=-10.0, theta_abs_deg=5.0, match_trigger=2)
        self.assertTrue(self.cuts.track_pt_cut_match_trig_class(slow, 2))
        self.cuts.set_sharp_pt_cut(True)
        self.assertTrue(self.cuts.is_apply_sharp_pt_cut_in_matching())
        self.assertFalse(self.cuts.track_pt_cut_match_trig_class(slow, 2))

    def test_describe(self) -> None:
        """Descriptions list the requested cuts and the parameter values."""
        self.cuts.set_sharp_pt_cut(True)
        mask_text = self.cuts.describe("mask")
        self.assertIn("0xf", mask_text)
        self.assertIn("-4 < eta < -2.5", mask_text)
        self.assertIn("match Apt && sharp pt from tracker", mask_text)
        self.assertNotIn("Chi2 cut on track", mask_text)
        self.assertIn("Parameters not resolved yet", self.cuts.describe("param"))
        self.cuts.set_pass_number(2)
        self.cuts.resolve_for_run(150)
        full = self.cuts.describe()
        self.assertIn("Param. set: LHC_pass2", full)
        self.assertIn("Sharp pt cut: 0.5 (Apt)  1 (Lpt)  1.5 (Hpt)", full)
        self.assertIn("pxDCA cut", full)


if __name__ == "__main__":
    unittest.main()
