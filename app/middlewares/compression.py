from __future__ import annotations

import gzip
import logging

from flask import Flask, request

log = logging.getLogger(__name__)


def _compressible(response) -> bool:
    if not 200 <= response.status_code < 300:
        return False
    # send_file responses (resume downloads) are streamed as-is.
    if response.direct_passthrough or "Content-Encoding" in response.headers:
        return False
    return response.mimetype == "application/json"


def init_compression(app: Flask, cfg) -> None:
    """
    Gzip JSON API responses of at least ``cfg.COMPRESSION_MIN_SIZE`` bytes for
    clients that accept it. Turned off with ENABLE_COMPRESSION=0.
    """
    if not cfg.ENABLE_COMPRESSION:
        return

    min_size = cfg.COMPRESSION_MIN_SIZE
    level = cfg.COMPRESSION_LEVEL

    @app.after_request
    def _compress(response):
        if "gzip" not in request.headers.get("Accept-Encoding", "").lower() or not _compressible(response):
            return response

        data = response.get_data()
        if len(data) < min_size:
            return response
        compressed = gzip.compress(data, compresslevel=level)
        if len(compressed) >= len(data):
            return response

        response.set_data(compressed)
        response.headers["Content-Encoding"] = "gzip"
        response.headers["Vary"] = "Accept-Encoding"
        log.debug("gzip %s %d -> %d bytes", request.path, len(data), len(compressed))
        return response
