from __future__ import annotations

DEFAULT_INCLUDE = ["src/**/*.{ts,tsx}"]
DEFAULT_MODULE_NAME = "vite-message-router"
DEFAULT_RUNTIME_MODULE = "webext-message-router"
DEFAULT_DECLARATION_FILE = ".vite/messaging.ts"

CONFIG_FILES = ("routesynth.json", ".routesynth.json")

DEFINE_ROUTES = "defineMessageRoutes"
MESSAGE_ROUTER = "createMessageRouter"
PORT_ROUTER = "createPortRouter"

DEFAULT_ROUTERS = {
    "define": DEFINE_ROUTES,
    "router": MESSAGE_ROUTER,
    "portRouter": PORT_ROUTER,
}

# Helpers that hand back their first argument unchanged.
DEFAULT_PASS_THROUGH = (DEFINE_ROUTES, "Object.assign", "merge")

CONFLICT_POLICIES = ("last", "first")

EVENT_KINDS = ("add", "change", "remove")
EVENT_ALIASES = {"unlink": "remove", "modify": "change", "create": "add"}

SCAN_EXTS = (".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs")
TSX_EXTS = (".tsx", ".jsx")
RESOLVE_EXTS = (".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs")

EXCLUDE_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".idea",
    ".vscode",
    ".cache",
    ".next",
    ".nuxt",
    ".output",
    ".turbo",
    ".vercel",
    ".vite",
    ".wxt",
    "node_modules",
    "bower_components",
    "coverage",
    "dist",
    "build",
    "out",
    "__pycache__",
}

MAX_SOURCE_BYTES = 2_000_000
