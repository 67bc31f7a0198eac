"""
Unit tests for split YAML config loading, precedence and option validation.
"""

from __future__ import annotations

import io
import sys
import unittest
from contextlib import redirect_stderr, redirect_stdout

from helpers_cli import workspace_temp_dir

from rename_split.cli import (
    _build_parser,
    _build_split_effective_config,
    _command_argv_for_manifest,
    main,
)
from rename_split.config import (
    DEFAULT_SPLIT,
    SplitOptions,
    deep_merge,
    extract_split_section,
    load_yaml,
    require_bool,
)
from rename_split.utils import UserError


class SplitConfigTests(unittest.TestCase):
    def test_deep_merge_nested_overlay_wins(self) -> None:
        merged = deep_merge(
            {"a": 1, "nested": {"x": 1, "y": 2}},
            {"nested": {"y": 20, "z": 30}},
        )
        self.assertEqual(merged["a"], 1)
        self.assertEqual(merged["nested"], {"x": 1, "y": 20, "z": 30})

    def test_wrapper_form_ignores_root_siblings(self) -> None:
        section = extract_split_section(
            {"naming": "identity", "split": {"naming": "sequence", "quality": 90}}
        )
        self.assertEqual(section, {"naming": "sequence", "quality": 90})

    def test_root_form_rejects_unknown_keys(self) -> None:
        with self.assertRaises(UserError):
            extract_split_section({"naming": "sequence", "split_ratio": 2.0})

    def test_unknown_nested_key_fails(self) -> None:
        with workspace_temp_dir("cfg") as tmpdir:
            path = tmpdir / "bad.yaml"
            path.write_text(
                "split:\n"
                "  naming: identity\n"
                "  bad_key: 1\n",
                encoding="utf-8",
            )
            args = _build_parser().parse_args(
                ["split", "--in_dir", "in", "--out_dir", "out", "--config", str(path)]
            )
            with self.assertRaises(UserError):
                _build_split_effective_config(args)

    def test_broken_or_non_mapping_yaml_is_user_error(self) -> None:
        with workspace_temp_dir("cfg") as tmpdir:
            broken = tmpdir / "broken.yaml"
            broken.write_text("split: [unclosed\n", encoding="utf-8")
            listing = tmpdir / "list.yaml"
            listing.write_text("- a\n- b\n", encoding="utf-8")
            empty = tmpdir / "empty.yaml"
            empty.write_text("", encoding="utf-8")
            with self.assertRaises(UserError):
                load_yaml(broken)
            with self.assertRaises(UserError):
                load_yaml(listing)
            with self.assertRaises(UserError):
                load_yaml(tmpdir / "missing.yaml")
            self.assertEqual(load_yaml(empty), {})

    def test_precedence_defaults_then_yaml_then_explicit_cli(self) -> None:
        with workspace_temp_dir("cfg") as tmpdir:
            path = tmpdir / "cfg.yaml"
            path.write_text(
                "split:\n"
                "  naming: sequence\n"
                "  quality: 80\n"
                "  glob: '*.png'\n",
                encoding="utf-8",
            )
            args = _build_parser().parse_args(
                [
                    "split",
                    "--in_dir",
                    "in",
                    "--out_dir",
                    "out",
                    "--config",
                    str(path),
                    "--naming",
                    "identity",
                ]
            )
            effective, config_path = _build_split_effective_config(args)
            self.assertEqual(config_path, path)
            self.assertEqual(effective["naming"], "identity")
            self.assertEqual(effective["quality"], 80)
            self.assertEqual(effective["glob"], "*.png")
            self.assertEqual(effective["dpi"], DEFAULT_SPLIT["dpi"])

    def test_keep_dpi_flag_clears_density(self) -> None:
        args = _build_parser().parse_args(["split", "a.jpg", "--out_dir", "out", "--keep-dpi"])
        effective, _ = _build_split_effective_config(args)
        self.assertIsNone(effective["dpi"])
        self.assertIsNone(SplitOptions.from_config(effective).dpi_pair)

    def test_dump_default_config_without_paths(self) -> None:
        stream = io.StringIO()
        with redirect_stdout(stream):
            rc = main(["split", "--dump-default-config"])
        self.assertEqual(rc, 0)
        dumped = stream.getvalue()
        self.assertIn("split:", dumped)
        self.assertIn("quality: 100", dumped)
        self.assertIn("naming: identity", dumped)

    def test_require_bool_accepts_true_false_only(self) -> None:
        self.assertTrue(require_bool(True, "config.dry_run"))
        self.assertFalse(require_bool(False, "config.dry_run"))
        with self.assertRaises(UserError):
            require_bool("false", "config.dry_run")

    def test_command_argv_for_manifest_uses_passed_argv(self) -> None:
        original = sys.argv
        try:
            sys.argv = ["rename_split_entry"]
            self.assertEqual(
                _command_argv_for_manifest(["split", "--dry-run"]),
                ["rename_split_entry", "split", "--dry-run"],
            )
            self.assertEqual(_command_argv_for_manifest(None), ["rename_split_entry"])
        finally:
            sys.argv = original

    def test_invalid_bool_in_config_fails_cleanly(self) -> None:
        with workspace_temp_dir("cfg") as tmpdir:
            path = tmpdir / "cfg.yaml"
            path.write_text(
                "split:\n"
                "  overwrite_existing: 'false'\n",
                encoding="utf-8",
            )
            err = io.StringIO()
            with redirect_stderr(err):
                rc = main(
                    ["split", "--in_dir", "in", "--out_dir", "out", "--config", str(path)]
                )
            self.assertEqual(rc, 2)
            self.assertIn("config.overwrite_existing must be true or false.", err.getvalue())


class SplitOptionsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        options = SplitOptions()
        self.assertEqual(options.output_format, "source")
        self.assertFalse(options.overwrite_existing)
        self.assertEqual(options.quality, 100)
        self.assertEqual(options.dpi_pair, (300, 300))
        self.assertEqual(options.naming, "identity")
        self.assertIsNone(options.subdir)

    def test_from_default_config_matches_defaults(self) -> None:
        self.assertEqual(SplitOptions.from_config(DEFAULT_SPLIT), SplitOptions())

    def test_invalid_values(self) -> None:
        bad = [
            {"output_format": "xcf"},
            {"quality": 0},
            {"quality": 101},
            {"dpi": 0},
            {"naming": "random"},
            {"subdir": ""},
            {"subdir": "../escape"},
            {"workers": -1},
            {"dry_run": "yes"},
        ]
        for kwargs in bad:
            with self.subTest(**kwargs):
                with self.assertRaises(UserError):
                    SplitOptions(**kwargs)

    def test_format_aliases_are_accepted(self) -> None:
        for value in ("source", "jpg", "JPEG", "tif", "png"):
            with self.subTest(value=value):
                self.assertEqual(SplitOptions(output_format=value).output_format, value)


if __name__ == "__main__":
    unittest.main()
