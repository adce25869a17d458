import asyncio
import unittest
from pathlib import Path
from unittest.mock import patch
import sys
import os
import tempfile

# Add scripts/ to path to import modules
sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from watchfiles import Change

from ir import RouteInfo, RouterDefinition, ScanResult
from routesynth import (
    READY,
    STALE,
    UNINITIALIZED,
    BuilderStateError,
    RouteBuilder,
    RouteTable,
    SynthOptions,
    VirtualModulePlugin,
    parse_text,
    render_source,
    type_param,
)
from routesynth.watch import CHANGE_KINDS, SourceFilter


def write(root, rel, text):
    target = root / rel
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")


def result_for(file, *routes, group=None):
    infos = tuple(RouteInfo(path=path, file=file, param_text=param, return_type=ret) for path, param, ret in routes)
    return ScanResult(file=file, definitions=[RouterDefinition(group=group, routes=infos, file=file)])


class TestRouteTable(unittest.TestCase):
    def test_last_policy_uses_sorted_file_order(self):
        warnings = []
        table = RouteTable("last")
        table.insert(result_for("src/b.ts", ("ping", "", "string")))
        table.insert(result_for("src/a.ts", ("ping", "", "number")))
        table.settle(None, warnings)
        self.assertEqual(table.get("ping").file, "src/b.ts")
        self.assertEqual(len(warnings), 1)
        self.assertIn("src/a.ts", warnings[0])
        self.assertIn("src/b.ts", warnings[0])

    def test_first_policy(self):
        table = RouteTable("first")
        table.insert(result_for("src/b.ts", ("ping", "", "string")))
        table.insert(result_for("src/a.ts", ("ping", "", "number")))
        table.settle()
        self.assertEqual(table.get("ping").file, "src/a.ts")

    def test_identical_signatures_do_not_warn(self):
        warnings = []
        table = RouteTable()
        table.insert(result_for("src/a.ts", ("ping", "x: number", "number")))
        table.insert(result_for("src/b.ts", ("ping", "x: number", "number")))
        table.settle(None, warnings)
        self.assertEqual(warnings, [])

    def test_retract_restores_other_contributor(self):
        table = RouteTable()
        table.insert(result_for("src/a.ts", ("ping", "", "number"), ("a", "", "void")))
        table.insert(result_for("src/b.ts", ("ping", "", "string")))
        table.settle()
        table.replace("src/b.ts", None)
        self.assertEqual(table.get("ping").file, "src/a.ts")
        self.assertEqual(table.paths_for("src/b.ts"), set())
        self.assertEqual(table.paths_for("src/a.ts"), {"ping", "a"})
        table.replace("src/a.ts", None)
        self.assertEqual(len(table), 0)

    def test_groups_collect_paths(self):
        table = RouteTable()
        table.insert(result_for("src/a.ts", ("tabs.open", "", "void"), ("tabs.close", "", "void"), group="tabs"))
        table.insert(result_for("src/b.ts", ("ping", "", "void")))
        table.settle()
        self.assertEqual(table.groups(), {"tabs": ["tabs.close", "tabs.open"]})

    def test_unknown_policy_rejected(self):
        with self.assertRaises(ValueError):
            RouteTable("random")


class TestRender(unittest.TestCase):
    def test_type_param(self):
        self.assertEqual(type_param(""), "")
        self.assertEqual(type_param("x: number"), "x: number")
        self.assertEqual(type_param("{url}"), "{url}: any")
        self.assertEqual(type_param("x = 1"), "x?: any")
        self.assertEqual(type_param("x: number = 1"), "x?: number")
        self.assertEqual(type_param("...args"), "...args: any[]")
        self.assertEqual(type_param("{a}: {a: string} = {a: ''}"), "{a}: {a: string} | undefined")
        self.assertEqual(type_param("cb: (x: number) => void"), "cb: (x: number) => void")

    def test_type_param_keeps_layout_comments_and_strings(self):
        multi_line = "opts: {\n  id: string // the id\n  count: number\n}"
        self.assertEqual(type_param(multi_line), multi_line)
        self.assertEqual(type_param("mode: 'a  b'"), "mode: 'a  b'")
        self.assertEqual(type_param("mode: 'a=b' = 'a=b'"), "mode?: 'a=b'")
        self.assertEqual(type_param("x: number // why\n  = 1"), "x?: number")
        self.assertEqual(type_param("x: string /* = not a default */"), "x: string")

    def test_render_is_sorted_and_stable(self):
        routes = [
            RouteInfo("foo/bar", "src/a.ts", "{value}: {value:number}", "Promise<number>"),
            RouteInfo("foo", "src/a.ts", "", "number"),
            RouteInfo("it's", "src/b.ts", "", "void"),
        ]
        text = render_source(routes, {"misc": ["foo"]}, runtime_module="webext-message-router")
        self.assertEqual(text, render_source(list(reversed(routes)), {"misc": ["foo"]}, runtime_module="webext-message-router"))
        self.assertIn("} from 'webext-message-router'", text)
        self.assertIn("  'foo': () => number\n  'foo/bar': ({value}: {value:number}) => Promise<number>\n", text)
        self.assertIn("  'it\\'s': () => void", text)
        self.assertIn("export type MessagePath = keyof MessageRoutes", text)
        self.assertIn("  'misc': 'foo'", text)
        self.assertIn("export const { sendMessage, sendMessageTo } = _createMessageSender<MessageRoutes>()", text)
        for factory in ("createSender", "createPortMessenger", "createRouter", "createPortRouter", "createGroupSender"):
            self.assertIn(f"export function {factory}", text)

    def test_render_empty_table(self):
        text = render_source([], {}, runtime_module="rt")
        self.assertIn("export type MessageRoutes = {}", text)
        self.assertIn("export type MessageRouteGroups = {}", text)


class TestRouteBuilder(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._temp = tempfile.TemporaryDirectory()
        self.root = Path(self._temp.name)

    def tearDown(self):
        self._temp.cleanup()

    async def make_builder(self, options=None):
        builder = RouteBuilder(self.root, options)
        await builder.init()
        return builder

    def test_update_before_init_raises(self):
        builder = RouteBuilder(self.root)
        self.assertEqual(builder.state, UNINITIALIZED)
        with self.assertRaises(BuilderStateError):
            builder.update()
        with self.assertRaises(BuilderStateError):
            builder.get_virtual_module_content()

    async def test_init_twice_renders_identical_text(self):
        write(self.root, "src/a.ts", "createMessageRouter({ foo: () => 1, 'foo/bar': async (x: number) => x })\n")
        write(self.root, "src/b.ts", "createPortRouter({ port: () => 'p' }, { group: 'ports' })\n")
        first = await self.make_builder()
        second = await self.make_builder()
        self.assertEqual(first.state, READY)
        self.assertEqual(first.update(), second.update())
        self.assertEqual(first.update(), first.get_virtual_module_content())
        self.assertEqual([route.path for route in first.routes()], ["foo", "foo/bar", "port"])
        self.assertIn("'ports': 'port'", first.update())

    async def test_generated_module_parses(self):
        write(
            self.root,
            "src/a.ts",
            "createMessageRouter({\n"
            "  save: (opts: {\n    id: string // the id\n    count: number\n  }) => 1,\n"
            "  mode: (mode: 'a  b' = 'a  b') => mode,\n"
            "})\n",
        )
        builder = await self.make_builder()
        text = builder.get_virtual_module_content()
        self.assertIn("id: string // the id\n    count: number", text)
        self.assertIn("(mode?: 'a  b')", text)
        unit, warnings = parse_text("messaging.ts", text)
        self.assertIsNotNone(unit)
        self.assertEqual(warnings, [])

    async def test_change_only_touches_changed_file(self):
        write(self.root, "src/f1.ts", "createMessageRouter({ one: () => 1, shared: () => 1 })\n")
        write(self.root, "src/f2.ts", "createMessageRouter({ two: () => 'two' })\n")
        builder = await self.make_builder()
        before = {route.path: route for route in builder.routes() if route.file == "src/f2.ts"}

        write(self.root, "src/f1.ts", "createMessageRouter({ one: () => 'changed', extra: () => true })\n")
        changed = await builder.handle_file_event(str(self.root / "src/f1.ts"), "change")

        self.assertTrue(changed)
        self.assertEqual(builder.state, STALE)
        after = {route.path: route for route in builder.routes() if route.file == "src/f2.ts"}
        self.assertEqual(before, after)
        self.assertEqual(builder.table.get("one").return_type, "string")
        self.assertIn("extra", builder.table)
        self.assertNotIn("shared", builder.table)
        self.assertEqual(builder.table.paths_for("src/f1.ts"), {"one", "extra"})

    async def test_incremental_matches_full_scan(self):
        write(self.root, "src/a.ts", "createMessageRouter({ ping: () => 1 })\n")
        write(self.root, "src/b.ts", "createMessageRouter({ ping: () => 'b' })\n")
        builder = await self.make_builder()
        self.assertEqual(builder.table.get("ping").file, "src/b.ts")
        self.assertTrue(any("src/a.ts" in w and "src/b.ts" in w for w in builder.warnings))

        os.remove(self.root / "src/b.ts")
        await builder.handle_file_event("src/b.ts", "unlink")
        self.assertEqual(builder.table.get("ping").file, "src/a.ts")

        write(self.root, "src/b.ts", "createMessageRouter({ ping: () => 'b' })\n")
        await builder.handle_file_event("src/b.ts", "add")
        fresh = await self.make_builder()
        self.assertEqual(builder.update(), fresh.update())

    async def test_invalidation_fires_only_on_real_changes(self):
        write(self.root, "src/a.ts", "createMessageRouter({ ping: () => 1 })\n")
        builder = await self.make_builder()
        calls = []
        unsubscribe = builder.on_invalidate(lambda: calls.append(1))

        # same bytes: no-op
        self.assertFalse(await builder.handle_file_event("src/a.ts", "change"))
        # text changed, routes did not
        write(self.root, "src/a.ts", "// comment\ncreateMessageRouter({ ping: () => 1 })\n")
        self.assertFalse(await builder.handle_file_event("src/a.ts", "change"))
        self.assertEqual(calls, [])

        write(self.root, "src/a.ts", "createMessageRouter({ ping: () => 1, pong: () => 2 })\n")
        self.assertTrue(await builder.handle_file_event("src/a.ts", "change"))
        self.assertEqual(calls, [1])
        self.assertIn("'pong': () => number", builder.get_virtual_module_content())
        self.assertEqual(builder.state, READY)

        unsubscribe()
        write(self.root, "src/a.ts", "createMessageRouter({})\n")
        self.assertTrue(await builder.handle_file_event("src/a.ts", "change"))
        self.assertEqual(calls, [1])

    async def test_events_outside_include_are_ignored(self):
        write(self.root, "src/a.ts", "createMessageRouter({ ping: () => 1 })\n")
        builder = await self.make_builder()
        write(self.root, "other/x.ts", "createMessageRouter({ x: () => 1 })\n")
        self.assertFalse(await builder.handle_file_event("other/x.ts", "add"))
        self.assertFalse(await builder.handle_file_event("/somewhere/else.ts", "add"))
        with self.assertRaises(ValueError):
            await builder.handle_file_event("src/a.ts", "rename")

    async def test_dependents_are_rescanned(self):
        write(self.root, "src/b.ts", "export const tabs = { 'tabs.create': async ({url}:{url:string}) => {} }\n")
        write(self.root, "src/c.ts", "import { tabs } from './b'\ncreateMessageRouter({ ...tabs })\n")
        write(self.root, "src/d.ts", "createMessageRouter({ other: () => 1 })\n")
        builder = await self.make_builder()
        self.assertEqual(builder.dependents_of("src/b.ts"), {"src/c.ts"})
        other = builder.table.get("other")

        write(
            self.root,
            "src/b.ts",
            "export const tabs = { 'tabs.create': async ({url}:{url:string}) => {}, 'tabs.close': () => 1 }\n",
        )
        self.assertTrue(await builder.handle_file_event("src/b.ts", "change"))
        self.assertEqual(builder.table.get("tabs.close").file, "src/c.ts")
        self.assertIs(builder.table.get("other"), other)

    async def test_added_file_satisfies_earlier_import(self):
        write(self.root, "src/c.ts", "import { tabs } from './b'\ncreateMessageRouter({ ...tabs })\n")
        builder = await self.make_builder()
        self.assertEqual(builder.routes(), [])

        write(self.root, "src/b.ts", "export const tabs = { 'tabs.create': () => 1 }\n")
        self.assertTrue(await builder.handle_file_event("src/b.ts", "add"))
        self.assertEqual([route.path for route in builder.routes()], ["tabs.create"])

    async def test_last_scheduled_event_wins(self):
        write(self.root, "src/a.ts", "createMessageRouter({ start: () => 1 })\n")
        builder = await self.make_builder()
        slow = b"createMessageRouter({ old: () => 1 })\n"
        fast = b"createMessageRouter({ new: () => 1 })\n"
        payloads = [slow, fast]

        async def fake_read(root, path, warnings):
            data = payloads.pop(0)
            if data is slow:
                await asyncio.sleep(0.05)
            return data

        with patch("routesynth.builder.aread_source", side_effect=fake_read):
            first, second = await asyncio.gather(
                builder.handle_file_event("src/a.ts", "change"),
                builder.handle_file_event("src/a.ts", "change"),
            )
        self.assertFalse(first)
        self.assertTrue(second)
        self.assertEqual([route.path for route in builder.routes()], ["new"])

    async def test_unparseable_change_drops_file_routes(self):
        write(self.root, "src/a.ts", "createMessageRouter({ ping: () => 1 })\n")
        builder = await self.make_builder()
        write(self.root, "src/a.ts", "createMessageRouter({ ping: () => \n")
        self.assertTrue(await builder.handle_file_event("src/a.ts", "change"))
        self.assertEqual(builder.routes(), [])
        self.assertTrue(any("parse errors" in w for w in builder.warnings))


class TestVirtualModulePlugin(unittest.IsolatedAsyncioTestCase):
    async def test_resolve_load_and_invalidate(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write(root, "src/a.ts", "createMessageRouter({ ping: () => 1 })\n")
            builder = RouteBuilder(root, SynthOptions(module_name="virtual:messages"))
            plugin = VirtualModulePlugin(builder)
            await plugin.build_start()

            self.assertEqual(plugin.resolve_id("virtual:messages"), "\0virtual:messages")
            self.assertIsNone(plugin.resolve_id("react"))
            self.assertIsNone(plugin.load("virtual:messages"))
            self.assertIn("'ping': () => number", plugin.load("\0virtual:messages"))

            invalidated = []
            plugin.configure_server(invalidated.append)
            write(root, "src/a.ts", "createMessageRouter({ ping: () => 'now' })\n")
            self.assertTrue(await plugin.handle_watch_event(str(root / "src/a.ts"), "change"))
            self.assertEqual(invalidated, ["\0virtual:messages"])
            self.assertIn("'ping': () => string", plugin.load("\0virtual:messages"))
            plugin.close()
            self.assertEqual(builder._listeners, [])

    async def test_external_builder_is_left_alone(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            builder = RouteBuilder(Path(temp_dir))
            plugin = VirtualModulePlugin(builder, "vite-message-router", external=True)
            await plugin.build_start()
            self.assertEqual(builder.state, UNINITIALIZED)
            self.assertFalse(await plugin.handle_watch_event("src/a.ts", "add"))


class TestWatchFilter(unittest.TestCase):
    def test_source_filter(self):
        source_filter = SourceFilter()
        self.assertTrue(source_filter(Change.added, "/repo/src/a.ts"))
        self.assertTrue(source_filter(Change.modified, "/repo/src/view.tsx"))
        self.assertFalse(source_filter(Change.added, "/repo/src/types.d.ts"))
        self.assertFalse(source_filter(Change.added, "/repo/node_modules/pkg/index.ts"))
        self.assertFalse(source_filter(Change.added, "/repo/src/styles.css"))

    def test_change_kinds(self):
        self.assertEqual(CHANGE_KINDS[Change.deleted], "remove")
        self.assertEqual(CHANGE_KINDS[Change.added], "add")


if __name__ == "__main__":
    unittest.main()
