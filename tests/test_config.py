import contextlib
import io
import json
import unittest
from pathlib import Path
import sys
import os
import tempfile

# Add scripts/ to path to import modules
sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from _fs import write_text_if_changed
from cli.main import main
from routesynth import (
    DEFAULT_INCLUDE,
    EXCLUDE_DIRS,
    SynthConfigError,
    SynthOptions,
    expand_braces,
    is_included,
    list_source_files,
    load_synth_config,
    load_tsconfig_paths,
    match_globs,
    relative_to_root,
    resolve_ts_module,
    scan,
    strip_json_comments,
)


def write(root, rel, text):
    target = root / rel
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")


def run_cli(*argv):
    stdout = io.StringIO()
    stderr = io.StringIO()
    with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
        code = main(list(argv))
    return code, stdout.getvalue(), stderr.getvalue()


class TestDiscovery(unittest.TestCase):
    def test_generated_dirs_are_default_excludes(self):
        self.assertIn("node_modules", EXCLUDE_DIRS)
        self.assertIn(".vite", EXCLUDE_DIRS)
        self.assertIn(".output", EXCLUDE_DIRS)

    def test_expand_braces(self):
        self.assertEqual(expand_braces("src/**/*.{ts,tsx}"), ["src/**/*.ts", "src/**/*.tsx"])
        self.assertEqual(expand_braces("{a,b{c,d}}.ts"), ["a.ts", "bc.ts", "bd.ts"])
        self.assertEqual(expand_braces("plain/{one}.ts"), ["plain/{one}.ts"])

    def test_match_globs(self):
        self.assertTrue(match_globs("src/a.ts", DEFAULT_INCLUDE))
        self.assertTrue(match_globs("src/deep/er/a.tsx", DEFAULT_INCLUDE))
        self.assertFalse(match_globs("lib/a.ts", DEFAULT_INCLUDE))
        self.assertTrue(match_globs("src/x/a.test.ts", ["*.test.ts"]))
        self.assertTrue(match_globs("vendor/lib.js", ["vendor/**"]))

    def test_is_included(self):
        self.assertTrue(is_included("src/a.ts", DEFAULT_INCLUDE, []))
        self.assertFalse(is_included("src/a.d.ts", DEFAULT_INCLUDE, []))
        self.assertFalse(is_included("src/a.test.ts", DEFAULT_INCLUDE, ["**/*.test.ts"]))

    def test_list_source_files(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write(root, "src/b.ts", "")
            write(root, "src/a/index.tsx", "")
            write(root, "src/types.d.ts", "")
            write(root, "src/node_modules/pkg/index.ts", "")
            write(root, "src/readme.md", "")
            write(root, "other/c.ts", "")
            files = list_source_files(root, DEFAULT_INCLUDE, quiet=True)
            self.assertEqual(files, ["src/a/index.tsx", "src/b.ts"])

    def test_list_source_files_rejects_unusable_input(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            with self.assertRaises(SynthConfigError):
                list_source_files(root, [], quiet=True)
            with self.assertRaises(SynthConfigError):
                list_source_files(root / "missing", DEFAULT_INCLUDE, quiet=True)

    def test_relative_to_root(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            self.assertEqual(relative_to_root(root, str(root / "src/a.ts")), "src/a.ts")
            self.assertEqual(relative_to_root(root, "src/a.ts"), "src/a.ts")
            self.assertIsNone(relative_to_root(root / "src", str(root / "a.ts")))

    def test_resolve_ts_module(self):
        files = {"src/b.ts", "src/routes/index.ts", "src/util.tsx"}
        self.assertEqual(resolve_ts_module("./b", "src/c.ts", files), "src/b.ts")
        self.assertEqual(resolve_ts_module("./b.js", "src/c.ts", files), "src/b.ts")
        self.assertEqual(resolve_ts_module("./routes", "src/c.ts", files), "src/routes/index.ts")
        self.assertEqual(resolve_ts_module("../util", "src/routes/index.ts", files), "src/util.tsx")
        self.assertIsNone(resolve_ts_module("react", "src/c.ts", files))
        self.assertIsNone(resolve_ts_module("../../outside", "src/c.ts", files))

    def test_resolve_ts_module_alias(self):
        files = {"src/b.ts"}
        alias_config = {"baseUrl": ".", "paths": {"@/*": ["src/*"]}}
        self.assertEqual(resolve_ts_module("@/b", "src/c.ts", files, alias_config=alias_config), "src/b.ts")


class TestConfig(unittest.TestCase):
    def test_strip_json_comments(self):
        text = '{\n  // line\n  "a": "http://x", /* block */ "b": 1\n}'
        self.assertEqual(json.loads(strip_json_comments(text)), {"a": "http://x", "b": 1})

    def test_defaults_without_config(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            warnings = []
            options, source = load_synth_config(Path(temp_dir), warnings)
            self.assertIsNone(source)
            self.assertEqual(options.include, ["src/**/*.{ts,tsx}"])
            self.assertEqual(options.module_name, "vite-message-router")
            self.assertEqual(options.declaration_file, ".vite/messaging.ts")
            self.assertEqual(options.conflicts, "last")

    def test_load_synth_config(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write(
                root,
                ".routesynth.json",
                "{\n"
                '  // where routes live\n'
                '  "include": "app/**/*.ts",\n'
                '  "moduleName": "virtual:routes",\n'
                '  "passThrough": ["wrap"],\n'
                '  "routers": {"define": "routes", "bogus": "x"},\n'
                '  "conflicts": "sometimes"\n'
                "}\n",
            )
            warnings = []
            options, source = load_synth_config(root, warnings)
            self.assertEqual(source, ".routesynth.json")
            self.assertEqual(options.include, ["app/**/*.ts"])
            self.assertEqual(options.module_name, "virtual:routes")
            self.assertIn("wrap", options.pass_through)
            self.assertEqual(options.routers["define"], "routes")
            self.assertIn("routes", options.helper_names())
            self.assertEqual(options.conflicts, "last")
            self.assertTrue(any("bogus" in w for w in warnings))
            self.assertTrue(any("sometimes" in w for w in warnings))

    def test_empty_include_is_fatal(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write(root, "routesynth.json", '{"include": []}')
            with self.assertRaises(SynthConfigError):
                load_synth_config(root, [])

    def test_broken_config_falls_back_with_warning(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write(root, "routesynth.json", "{ not json")
            warnings = []
            options, _source = load_synth_config(root, warnings)
            self.assertEqual(options, SynthOptions())
            self.assertTrue(any("Failed to parse routesynth.json" in w for w in warnings))

    def test_merged_ignores_unset_overrides(self):
        options = SynthOptions().merged(module_name=None, conflicts="first")
        self.assertEqual(options.module_name, "vite-message-router")
        self.assertEqual(options.conflicts, "first")

    def test_tsconfig_alias_scan(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write(
                root,
                "tsconfig.json",
                '{\n  // comment\n  "compilerOptions": {"baseUrl": ".", "paths": {"@/*": ["src/*"]}}\n}\n',
            )
            write(root, "src/shared/tabs.ts", "export const tabs = { 'tabs.get': (id: number) => id }\n")
            write(root, "src/bg.ts", "import { tabs } from '@/shared/tabs'\ncreateMessageRouter(tabs)\n")
            warnings = []
            self.assertEqual(load_tsconfig_paths(root, warnings)["paths"], {"@/*": ["src/*"]})
            definitions = scan(root, SynthOptions())
            self.assertEqual([route.path for route in definitions[0].routes], ["tabs.get"])
            self.assertEqual(definitions[0].routes[0].return_type, "number")


class TestCli(unittest.TestCase):
    def test_generate_writes_only_when_changed(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write(root, "src/a.ts", "createMessageRouter({ ping: () => 1 })\n")
            code, _out, _err = run_cli("--root", temp_dir, "--quiet", "generate")
            self.assertEqual(code, 0)
            out_path = root / ".vite/messaging.ts"
            text = out_path.read_text(encoding="utf-8")
            self.assertIn("'ping': () => number", text)
            self.assertFalse(write_text_if_changed(out_path, text))

            code, _out, _err = run_cli("--root", temp_dir, "--quiet", "generate", "--check")
            self.assertEqual(code, 0)
            write(root, "src/a.ts", "createMessageRouter({ ping: () => 'changed' })\n")
            code, _out, err = run_cli("--root", temp_dir, "--quiet", "generate", "--check")
            self.assertEqual(code, 1)
            self.assertIn("out of date", err)

    def test_generate_out_sets_type_import_base(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write(root, "src/a.ts", "interface Tab { id: number }\ncreateMessageRouter({ tab: (): Tab => t })\n")
            code, _out, _err = run_cli("--root", temp_dir, "--quiet", "generate", "--out", "types/gen/routes.ts")
            self.assertEqual(code, 0)
            text = (root / "types/gen/routes.ts").read_text(encoding="utf-8")
            self.assertIn("'tab': () => import('../../src/a').Tab", text)

    def test_generate_stdout(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            write(Path(temp_dir), "src/a.ts", "createMessageRouter({ ping: () => 1 })\n")
            code, out, _err = run_cli(
                "--root", temp_dir, "--quiet", "--runtime-module", "my-runtime", "generate", "--stdout"
            )
            self.assertEqual(code, 0)
            self.assertIn("} from 'my-runtime'", out)
            self.assertFalse((Path(temp_dir) / ".vite/messaging.ts").exists())

    def test_routes_json(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write(root, "src/a.ts", "createMessageRouter({ ping: () => 1 }, { group: 'core' })\n")
            code, out, _err = run_cli("--root", temp_dir, "--quiet", "routes", "--format", "json")
            self.assertEqual(code, 0)
            self.assertEqual(
                json.loads(out),
                [{"path": "ping", "file": "src/a.ts", "paramText": "", "returnType": "number"}],
            )
            code, out, _err = run_cli(
                "--root", temp_dir, "--quiet", "routes", "--definitions", "--save", str(root / "routes.json")
            )
            self.assertEqual(code, 0)
            self.assertIn("src/a.ts group=core: 1 routes", out)
            saved = json.loads((root / "routes.json").read_text(encoding="utf-8"))
            self.assertEqual(saved["definitions"][0]["group"], "core")

    def test_config_errors_exit_2(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            write(Path(temp_dir), "routesynth.json", '{"include": []}')
            code, _out, err = run_cli("--root", temp_dir, "generate")
            self.assertEqual(code, 2)
            self.assertIn("Config error", err)
            code, _out, _err = run_cli("--root", os.path.join(temp_dir, "missing"), "routes")
            self.assertEqual(code, 2)

    def test_warnings_go_to_stderr(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            write(Path(temp_dir), "src/a.ts", "createMessageRouter({ [key]: () => 1 })\n")
            code, _out, err = run_cli("--root", temp_dir, "--quiet", "generate", "--stdout")
            self.assertEqual(code, 0)
            self.assertIn("[warn] src/a.ts: skipping computed route key [key]", err)


if __name__ == "__main__":
    unittest.main()
