"""
Media byte streaming
Serves stored media files with single byte-range support so players can seek
inside videos. Files are looked up strictly inside the media root.
"""
import logging
import mimetypes
import os
from typing import Iterator, Optional
from flask import Response
from werkzeug.datastructures import ContentRange
from werkzeug.exceptions import RequestedRangeNotSatisfiable
from werkzeug.http import parse_range_header
from werkzeug.security import safe_join

from utils.errors import ClientInputError, NotFoundError, UpstreamIOError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


def resolve_media_path(media_root: str, filename: str) -> str:
    """
    Map a client-supplied filename to a file inside the media root

    Raises:
        ClientInputError: empty filename
        NotFoundError: path escapes the root or no such file
    """
    if not filename or not filename.strip():
        raise ClientInputError('Filename required')
    if '\x00' in filename:
        logger.warning(f'Rejected media path with NUL byte: {filename!r}')
        raise NotFoundError('File not found')

    joined = safe_join(media_root, filename)
    if joined is None:
        logger.warning(f'Rejected media path outside root: {filename!r}')
        raise NotFoundError('File not found')

    # Symlinks could still point outside, so compare canonical paths
    root = os.path.realpath(media_root)
    real_path = os.path.realpath(joined)
    if os.path.commonpath([root, real_path]) != root:
        logger.warning(f'Rejected media path resolving outside root: {filename!r}')
        raise NotFoundError('File not found')

    if not os.path.isfile(real_path):
        raise NotFoundError('File not found')

    return real_path


def media_name(media_root: str, real_path: str) -> str:
    """Canonical name of a resolved file, relative to the media root with forward slashes"""
    return os.path.relpath(real_path, os.path.realpath(media_root)).replace(os.sep, '/')


def guess_mimetype(path: str) -> str:
    return mimetypes.guess_type(path)[0] or 'application/octet-stream'


def _iter_span(handle, remaining: int, chunk_size: int, path: str) -> Iterator[bytes]:
    try:
        while remaining > 0:
            chunk = handle.read(min(chunk_size, remaining))
            if not chunk:
                logger.error(f'Media file shrank while streaming: {path}')
                raise UpstreamIOError('Unexpected end of media file')
            remaining -= len(chunk)
            yield chunk
    except OSError as e:
        logger.error(f'Error reading media file {path}: {e}')
        raise UpstreamIOError('Error reading media file') from e
    finally:
        handle.close()


def serve_media(media_root: str, filename: str, range_header: Optional[str] = None,
                chunk_size: int = DEFAULT_CHUNK_SIZE) -> Response:
    """
    Stream a media file, honouring a single ``bytes=start-end`` range

    Without a usable Range header the whole file is sent with 200. A
    malformed or multi-range header is ignored. A range starting past the
    end of the file raises 416.
    """
    path = resolve_media_path(media_root, filename)

    try:
        total = os.path.getsize(path)
    except OSError as e:
        logger.error(f'Error reading size of media file {path}: {e}')
        raise UpstreamIOError('Error reading media file') from e

    start, stop = 0, total
    status = 200

    byte_range = parse_range_header(range_header) if range_header else None
    if byte_range is not None and byte_range.units == 'bytes' and len(byte_range.ranges) == 1:
        span = byte_range.range_for_length(total)
        if span is None:
            raise RequestedRangeNotSatisfiable(length=total)
        start, stop = span
        status = 206

    try:
        handle = open(path, 'rb')
    except OSError as e:
        logger.error(f'Error opening media file {path}: {e}')
        raise UpstreamIOError('Error opening media file') from e

    try:
        handle.seek(start)
    except OSError as e:
        handle.close()
        logger.error(f'Error seeking media file {path}: {e}')
        raise UpstreamIOError('Error reading media file') from e

    response = Response(
        _iter_span(handle, stop - start, chunk_size, path),
        status=status,
        mimetype=guess_mimetype(path),
        direct_passthrough=True
    )
    # Covers the case where the body is never iterated (client gone early)
    response.call_on_close(handle.close)

    response.content_length = stop - start
    response.accept_ranges = 'bytes'
    if status == 206:
        response.content_range = ContentRange('bytes', start, stop, total)
    response.cache_control.no_store = True

    return response
