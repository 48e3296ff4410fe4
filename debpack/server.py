"""HTTP feed for a directory of built packages.

Point apt at it with ``deb [trusted=yes] http://HOST:PORT/ ./``.
"""

import logging
from pathlib import Path

from flask import Flask, Response, abort, send_from_directory

from debpack.repository import POOL_PREFIX, render_index, render_index_gz

logger = logging.getLogger(__name__)


def create_app(repo_dir: Path) -> Flask:
    repo_dir = Path(repo_dir).resolve()
    app = Flask(__name__)
    app.config["REPO_DIR"] = repo_dir

    @app.route('/Packages', methods=['GET'])
    def packages():
        return Response(render_index(repo_dir), mimetype="text/plain")

    @app.route('/Packages.gz', methods=['GET'])
    def packages_gz():
        return Response(render_index_gz(repo_dir), mimetype="application/gzip")

    @app.route(f'/{POOL_PREFIX}/<path:filename>', methods=['GET'])
    def pool(filename):
        if not filename.endswith(".deb") or "/" in filename:
            abort(404)
        logger.info(f"Serving {filename}")
        return send_from_directory(repo_dir, filename, mimetype="application/vnd.debian.binary-package")

    return app


def serve(repo_dir: Path, host: str = "0.0.0.0", port: int = 8080):
    app = create_app(repo_dir)
    logger.info(f"Serving packages from {repo_dir} on {host}:{port}")
    app.run(host=host, port=port)
