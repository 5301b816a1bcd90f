"""Evaluates TypeScript/JavaScript configuration modules with the host's Node toolchain.

The configuration is executed in a Node subprocess and only a sanitized,
JSON-serializable view of its options is sent back: functions become
``"[Function]"``, the secret becomes a presence flag and the database handle
becomes a short description.
"""

import asyncio
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

from authstudio.exceptions import ConfigLoadError

logger = logging.getLogger(__name__)

RESULT_MARKER = "__AUTH_STUDIO_RESULT__"

BOOTSTRAP = r"""
import { createRequire } from "node:module";
import { pathToFileURL } from "node:url";

const entry = process.env.AUTH_STUDIO_ENTRY;
const mode = process.env.AUTH_STUDIO_MODE;
const aliases = JSON.parse(process.env.AUTH_STUDIO_ALIASES || "{}");
const entryUrl = pathToFileURL(entry).href;
const require = createRequire(entryUrl);

const ancestors = new WeakSet();
function sanitize(value, depth = 0) {
  if (value === null || value === undefined) return null;
  if (typeof value === "function") return "[Function]";
  if (typeof value === "bigint") return Number(value);
  if (typeof value !== "object") return value;
  if (value instanceof Date) return value.toISOString();
  if (value instanceof RegExp) return String(value);
  if (depth > 8 || ancestors.has(value)) return "[Object]";
  ancestors.add(value);
  try {
    if (Array.isArray(value)) return value.map((item) => sanitize(item, depth + 1));
    const out = {};
    for (const [key, item] of Object.entries(value)) out[key] = sanitize(item, depth + 1);
    return out;
  } finally {
    ancestors.delete(value);
  }
}

function describeDatabase(db) {
  if (!db) return null;
  if (typeof db === "function") {
    const options = db.options || {};
    return {
      adapter: options.adapterId || "unknown",
      provider: options.provider ?? null,
      type: options.type ?? null,
    };
  }
  const name = db.constructor && db.constructor.name;
  if (name === "Database") {
    return { adapter: "sqlite", type: "sqlite", provider: "sqlite", name: db.name ?? null };
  }
  if (name === "Pool") return { adapter: "kysely", type: "postgresql", dialect: "postgres" };
  return sanitize(db);
}

let mod;
if (mode === "jiti") {
  const { createJiti } = require("jiti");
  const jiti = createJiti(entryUrl, {
    interopDefault: true,
    moduleCache: false,
    fsCache: false,
    alias: aliases,
  });
  mod = await jiti.import(entry);
} else if (mode === "commonjs") {
  mod = require(entry);
} else {
  mod = await import(entryUrl);
}

const auth = (mod && (mod.auth || mod.default)) || null;
let result = null;
if (auth) {
  const options = auth.options || auth;
  const { secret, database, plugins, ...rest } = options;
  result = {
    ...sanitize(rest),
    secret: Boolean(secret),
    database: describeDatabase(database),
    plugins: (Array.isArray(plugins) ? plugins : []).map((plugin) => ({
      id: plugin && plugin.id,
      name: plugin && plugin.id,
      options: sanitize((plugin && plugin.options) || {}),
    })),
  };
}
process.stdout.write("\n" + process.env.AUTH_STUDIO_MARKER + JSON.stringify({ auth: result && { options: result } }) + "\n");
"""


class NodeRunner:
    """Runs the bootstrap script in a Node subprocess."""

    def __init__(self, binary: str = "node", timeout: float = 30.0):
        self.binary = binary
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    async def evaluate(
        self,
        entry: Path,
        mode: str = "jiti",
        aliases: dict[str, str] | None = None,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Execute ``entry`` and return ``{"auth": {"options": {...}} | None}``.

        Args:
            entry: Configuration file to execute
            mode: ``jiti`` to transpile, ``commonjs`` to require, ``esm`` to import
            aliases: Import specifiers or prefixes mapped to the files or
                directories they resolve to
            cwd: Working directory for the subprocess
            env: Extra environment variables

        Raises:
            ConfigLoadError: If Node is missing, times out, exits with an error
                or prints no result
        """
        if not self.available:
            raise ConfigLoadError(f"Node binary {self.binary!r} not found", str(entry))

        process_env = {
            **os.environ,
            **(env or {}),
            "AUTH_STUDIO_ENTRY": str(entry),
            "AUTH_STUDIO_MODE": mode,
            "AUTH_STUDIO_ALIASES": json.dumps(aliases or {}),
            "AUTH_STUDIO_MARKER": RESULT_MARKER,
        }

        logger.debug(f"Evaluating {entry} with node ({mode})")
        process = await asyncio.create_subprocess_exec(
            self.binary,
            "--input-type=module",
            "-e",
            BOOTSTRAP,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd or entry.parent),
            env=process_env,
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            raise ConfigLoadError(
                f"Node evaluation timed out after {self.timeout}s", str(entry)
            ) from None

        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip().splitlines()
            raise ConfigLoadError(
                f"Node evaluation failed: {message[-1] if message else process.returncode}",
                str(entry),
                {"stderr": stderr.decode(errors="replace")},
            )

        return self._parse_output(stdout.decode(errors="replace"), entry)

    @staticmethod
    def _parse_output(output: str, entry: Path) -> dict[str, Any]:
        for line in reversed(output.splitlines()):
            if line.startswith(RESULT_MARKER):
                try:
                    return json.loads(line[len(RESULT_MARKER):])
                except json.JSONDecodeError as exc:
                    raise ConfigLoadError(f"Unreadable node output: {exc}", str(entry)) from exc

        raise ConfigLoadError("Node evaluation produced no result", str(entry))
