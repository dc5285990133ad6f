"""
Server-rendered builds that need a synthesized Lambda entry (Remix, Vue).

The framework's server build is wrapped in an Express app behind
serverless-express, and its runtime dependencies are installed into the
server directory so the archive is self-contained.
"""
import logging
import shutil
from pathlib import Path
from typing import List

from preview_deploy.exceptions import BuildNormalizationError
from preview_deploy.models import DeploymentDirectoryMetadata
from preview_deploy.normalizers.base import BaseNormalizer, require_directory, write_npmrc

logger = logging.getLogger(__name__)

ENTRY_FILE = "index.mjs"
SERVER_BUILD_FILE = "server.js"

_BOOTSTRAP = """
const expressMajorVersion = parseInt(expressPackageJson.version.split('.')[0] ?? 0);

let server;

const bootstrap = async () => {
  const app = express();
  app.use(compression());
  app.use(morgan('tiny'));
  app.disable('x-powered-by');

  const route = expressMajorVersion < 5 ? '*' : '*all';
%(route_handler)s

  return serverlessExpress({
    app,
  });
};

export const handler = async (event, context, callback) => {
  server = server ?? await bootstrap();

  event.path ??= '/';

  return server(event, context, callback);
};
"""

_COMMON_IMPORTS = """import serverlessExpress from '@codegenie/serverless-express';
import compression from 'compression';
import express from 'express';
import expressPackageJson from 'express/package.json' with { type: 'json' };
import morgan from 'morgan';
"""

REMIX_HANDLER = (
    _COMMON_IMPORTS
    + "import { createRequestHandler } from '@remix-run/express';\n\n"
    + "import * as build from './server.js';\n"
    + _BOOTSTRAP % {"route_handler": "  app.use(route, createRequestHandler({\n    build,\n  }));"}
)

VUE_HANDLER = (
    _COMMON_IMPORTS
    + "\nimport { render } from './server.js';\n"
    + _BOOTSTRAP % {"route_handler": (
        "  app.use(route, (req, res) => {\n"
        "    render(req.url)\n"
        "      .then(({ html }) => {\n"
        "        res.status(200).set({ 'Content-Type': 'text/html' }).end(html);\n"
        "      })\n"
        "      .catch((e) => {\n"
        "        console.error(e);\n"
        "        res.status(500).end(e);\n"
        "      });\n"
        "  });"
    )}
)

SERVER_DEPENDENCIES = ["compression", "express", "morgan", "@codegenie/serverless-express"]


class SynthesizedEntryNormalizer(BaseNormalizer):
    """Writes a Lambda entry into <build>/server and installs its dependencies with npm."""

    handler_source: str = ""
    dependencies: List[str] = []

    def normalize(self, build_dir: Path) -> DeploymentDirectoryMetadata:
        server_dir = require_directory(build_dir / "server", "Server build output directory")
        client_dir = require_directory(build_dir / "client", "Client build output directory")

        self._prepare_server_build(server_dir)
        (server_dir / ENTRY_FILE).write_text(self.handler_source, encoding="utf-8")
        write_npmrc(server_dir)

        self._run(["npm", "add", *self.dependencies], cwd=server_dir)
        logger.info(f"Installed {len(self.dependencies)} runtime dependencies into {server_dir}")

        return self._metadata(client_dir, server_dir)

    def _prepare_server_build(self, server_dir: Path) -> None:
        """Hook for framework-specific changes before the entry file is written."""
        pass


class RemixNormalizer(SynthesizedEntryNormalizer):
    handler_source = REMIX_HANDLER
    dependencies = ["@remix-run/express", *SERVER_DEPENDENCIES]

    def _prepare_server_build(self, server_dir: Path) -> None:
        # Remix's server build ships without a manifest
        if self.package_json_path:
            if not self.package_json_path.is_file():
                raise BuildNormalizationError(f"package.json not found: {self.package_json_path}")
            shutil.copy2(self.package_json_path, server_dir / "package.json")

        remix_entry = server_dir / "index.js"
        server_build = server_dir / SERVER_BUILD_FILE
        if remix_entry.is_file():
            shutil.move(str(remix_entry), str(server_build))
        elif not server_build.is_file():
            raise BuildNormalizationError(f"Remix server build index.js not found in {server_dir}")


class VueNormalizer(SynthesizedEntryNormalizer):
    handler_source = VUE_HANDLER
    dependencies = list(SERVER_DEPENDENCIES)
