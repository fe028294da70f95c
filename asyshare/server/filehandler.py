import os
import mimetypes
import posixpath
import urllib.parse

import h11

from asyshare import logger
from asyshare import templates
from asyshare.accesslog import log_access, log_message
from asyshare.server.httpserver import HTTPServerHandler, RequestContext, RequestAborted
from asyshare.server.multipart import MAX_MEMORY, MultipartError, get_boundary, parse_multipart, get_file, safe_filename

UPLOAD_FIELD = 'file'


class DirectoryEntry:
    def __init__(self, name:str, uri:str):
        self.name = name
        self.uri = uri

    def __repr__(self):
        return 'DirectoryEntry(%r, %r)' % (self.name, self.uri)


def clean_path(upath:str):
    """
    Normalize a URL path: collapses '.', '..' and duplicate separators.
    The result always starts with a single '/' and never climbs above it.
    """
    cleaned = posixpath.normpath('/' + upath)
    return '/' + cleaned.lstrip('/')


def open_entry(path:str):
    """
    Opens a directory (for enumeration) or a regular file (for reading).

    Returns:
        (handle, is_dir) where handle is an os.scandir iterator or a binary file object
    """
    if os.path.isdir(path):
        return os.scandir(path), True
    return open(path, 'rb'), False


def list_directory(dir_iter, request_path:str):
    """
    Builds the sorted entries of one directory level.

    Names of subdirectories get a trailing '/'. The uri is the percent-encoded
    absolute URL path of the child. Sorting ignores case and keeps the
    enumeration order of equal names.
    """
    entries = []
    for fi in dir_iter:
        name = fi.name
        uri = urllib.parse.quote(posixpath.join(request_path, fi.name))
        if fi.is_dir():
            name += '/'
        entries.append(DirectoryEntry(name, uri))
    entries.sort(key=lambda e: e.name.lower())
    return entries


class FileServerHandler(HTTPServerHandler):
    """
    Serves a directory tree: listings and file downloads on GET, multipart uploads on POST.

    Args:
        webroot (str): absolute path of the served directory
        auth_gate (BasicAuthGate): optional credential check applied before dispatch
    """
    CHUNK_SIZE = 64 * 1024

    def __init__(self, webroot:str, auth_gate = None):
        super().__init__(auth_gate = auth_gate)
        self.webroot = webroot

    def resolve_path(self, upath:str):
        cleaned = clean_path(upath)
        parts = [p for p in cleaned.split('/') if p]
        return os.path.join(self.webroot, *parts)

    async def do_GET(self, context:RequestContext):
        # Ignore default browser call to /favicon.ico
        if context.path == '/favicon.ico':
            return await self.send_response(200)

        target = self.resolve_path(context.path)
        try:
            handle, is_dir = open_entry(target)
        except (FileNotFoundError, NotADirectoryError):
            return await self.handle_404(context)
        except PermissionError:
            return await self.handle_500(context)
        except (OSError, ValueError) as e:
            # ValueError: embedded null byte
            logger.error('Could not open %r: %s' % (target, e))
            raise RequestAborted()

        with handle:
            log_access(context.remote_addr, context.method, context.path, context.protocol, 200)
            if is_dir is True:
                await self.process_dir(context, handle)
            else:
                await self.send_file(handle)

    async def process_dir(self, context:RequestContext, dir_iter):
        try:
            entries = list_directory(dir_iter, context.path)
        except OSError:
            return await self.handle_404(context)

        body = templates.render('listing', {'requestPath' : context.path, 'entries' : entries})
        await self.send_response(200, body)

    async def send_file(self, file):
        size = os.fstat(file.fileno()).st_size
        mime_type, _ = mimetypes.guess_type(file.name)
        headers = self.basic_headers()
        headers.extend([
            ("Content-Type", (mime_type or 'application/octet-stream').encode("ascii")),
            ("Content-Length", str(size).encode("ascii")),
        ])
        await self._wrapper.send(h11.Response(status_code=200, headers=headers))

        # the status line is committed, errors from here on can only be logged
        bytes_sent = 0
        try:
            while True:
                chunk = file.read(self.CHUNK_SIZE)
                if not chunk:
                    break
                await self._wrapper.send(h11.Data(data=chunk))
                bytes_sent += len(chunk)
            await self._wrapper.send(h11.EndOfMessage())
        except Exception as e:
            logger.error('Error sending %s at %s bytes: %s' % (file.name, bytes_sent, e))
            raise RequestAborted()

    async def do_POST(self, context:RequestContext):
        await self.upload(context)

    async def upload(self, context:RequestContext):
        """
        Stores the file posted in the UPLOAD_FIELD form field in the directory of the request path
        (the last path segment is dropped) and redirects the client to that directory's listing.
        An existing file with the same name is overwritten. The first failing step answers
        with the server error page and ends the upload.
        """
        target_dir = clean_path(context.path.rsplit('/', 1)[0]).rstrip('/')

        try:
            boundary = get_boundary(context.get_header('Content-Type'))
            body = await self.read_body()
            parts = parse_multipart(body, boundary, max_memory = MAX_MEMORY)
        except (MultipartError, OSError) as e:
            log_message('ERROR:   Not able to read file from request (%s)' % e)
            return await self.handle_500(context)

        part = get_file(parts, UPLOAD_FIELD)
        filename = safe_filename(part.filename) if part is not None else None
        if filename is None:
            log_message('ERROR:   Error retrieving the file from field "%s"' % UPLOAD_FIELD)
            return await self.handle_500(context)

        savepath = self.resolve_path(target_dir + '/' + filename)

        try:
            outfile = open(savepath, 'wb')
        except (OSError, ValueError) as e:
            log_message('ERROR:   Not able to create file on disk (%s)' % e)
            return await self.handle_500(context)

        with outfile:
            try:
                outfile.write(part.data)
            except OSError as e:
                log_message('ERROR:   Not able to write file to disk (%s)' % e)
                return await self.handle_500(context)

        log_access(context.remote_addr, context.method, context.path, context.protocol, 200)
        location = urllib.parse.quote(target_dir if target_dir else '/')
        await self.send_response(303, extra_headers = [("Location", location.encode("ascii"))])

    async def handle_404(self, context:RequestContext):
        log_access(context.remote_addr, context.method, context.path, context.protocol, 404)
        log_message('404:   File not found')
        await self.send_response(404, templates.render('notFound'))

    async def handle_500(self, context:RequestContext):
        log_access(context.remote_addr, context.method, context.path, context.protocol, 500)
        log_message('500:   No permission to access the file')
        await self.send_response(500, templates.render('serverError'))
