"""esbuild driven through a Node.js process.

The request is serialized to JSON and piped into a small ES module evaluated
with ``node -e`` from the project directory, so ``esbuild`` and the plugin
packages resolve from the project's own ``node_modules``.
"""
from __future__ import annotations

from pathlib import Path
from typing import List
import json
import shutil

from .build import BuildMode, BuildRequest
from .command_runner import CommandResult, CommandRunner


DRIVER_SOURCE = """\
const [mode] = process.argv.slice(1);
let payload = "";
process.stdin.setEncoding("utf8");
for await (const chunk of process.stdin) {
    payload += chunk;
}
const request = JSON.parse(payload);
const esbuild = await import("esbuild");

function redirectPlugin({ paths, roots }) {
    const prefixes = Object.keys(roots).sort((a, b) => b.length - a.length);
    return {
        name: "esbundle-redirects",
        setup(build) {
            build.onResolve({ filter: /.*/ }, async (args) => {
                if (args.pluginData === "esbundle-redirect") {
                    return undefined;
                }
                if (Object.hasOwn(paths, args.path)) {
                    return { path: paths[args.path] };
                }
                for (const prefix of prefixes) {
                    const base = prefix.replace(/\\/+$/, "");
                    if (args.path !== base && !args.path.startsWith(base + "/")) {
                        continue;
                    }
                    const rest = args.path === base ? "." : "./" + args.path.slice(base.length + 1);
                    const found = await build.resolve(rest, {
                        resolveDir: roots[prefix],
                        kind: args.kind,
                        pluginData: "esbundle-redirect",
                    });
                    return found.errors.length ? undefined : { path: found.path };
                }
                return undefined;
            });
        },
    };
}

const plugins = [];
if (Object.keys(request.redirects.roots).length) {
    plugins.push(redirectPlugin(request.redirects));
}
for (const plugin of request.plugins) {
    const mod = await import(plugin.module);
    const factory = mod.default ?? mod;
    plugins.push(factory(plugin.options));
}
const options = { ...request.options, plugins };
if (mode === "watch") {
    const ctx = await esbuild.context(options);
    await ctx.watch();
} else {
    await esbuild.build(options);
}
"""

DRIVER_PLACEHOLDER = "<esbundle-driver>"


class BundlerNotFoundError(RuntimeError):
    """Raised when the Node.js executable cannot be located."""


class NodeBundler:
    def __init__(
        self,
        runner: CommandRunner,
        *,
        node: str = "node",
        cwd: Path | None = None,
        locate: bool = True,
    ) -> None:
        self._runner = runner
        self._node = node
        self._cwd = cwd
        self._locate = locate

    def _executable(self) -> str:
        if not self._locate:
            return self._node
        found = shutil.which(self._node)
        if found is None:
            raise BundlerNotFoundError(f"'{self._node}' was not found on PATH; Node.js is required to run esbuild")
        return found

    def command(self, *, mode: BuildMode) -> List[str]:
        return [self._executable(), "--input-type=module", "-e", DRIVER_SOURCE, mode.value]

    @staticmethod
    def payload(request: BuildRequest) -> str:
        """The request as compact JSON, written to the driver's stdin."""

        return json.dumps(request.to_mapping(), separators=(",", ":"))

    def _run(self, request: BuildRequest, mode: BuildMode) -> CommandResult:
        return self._runner.run(
            self.command(mode=mode),
            cwd=self._cwd,
            input=self.payload(request),
            note=f"esbuild {mode.value}",
        )

    def build(self, request: BuildRequest) -> CommandResult:
        mode = BuildMode.BUILD if request.mode is BuildMode.WATCH else request.mode
        return self._run(request, mode)

    def context(self, request: BuildRequest) -> "BundlerContext":
        return BundlerContext(self, request)


class BundlerContext:
    """Watch handle; ``watch()`` blocks until the driver exits or is interrupted."""

    def __init__(self, bundler: NodeBundler, request: BuildRequest) -> None:
        self._bundler = bundler
        self.request = request

    def watch(self) -> CommandResult:
        return self._bundler._run(self.request, BuildMode.WATCH)


__all__ = [
    "BundlerContext",
    "BundlerNotFoundError",
    "DRIVER_PLACEHOLDER",
    "DRIVER_SOURCE",
    "NodeBundler",
]
