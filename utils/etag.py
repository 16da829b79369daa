"""
Content fingerprints and conditional JSON responses
"""
import hashlib
import json
from typing import Any
from flask import current_app, jsonify, request


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(',', ':'), default=str)


def fingerprint(payload: Any) -> str:
    """SHA-256 hex digest of the payload's canonical JSON form"""
    return hashlib.sha256(canonical_json(payload).encode('utf-8')).hexdigest()


def conditional_json_response(payload: Any):
    """
    Build a JSON response carrying the payload's fingerprint as ETag

    When the request's If-None-Match already holds that fingerprint the
    response is an empty 304. Computed on every call; nothing is cached
    server-side because the payload depends on the wall clock.
    """
    etag = fingerprint(payload)

    if request.if_none_match.contains_weak(etag):
        response = current_app.response_class(status=304)
    else:
        response = jsonify(payload)

    response.set_etag(etag)
    response.cache_control.no_cache = True
    return response
