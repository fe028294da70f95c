import re
import posixpath

MAX_MEMORY = 10 << 20


class MultipartError(ValueError):
    pass


class MultipartPart:
    def __init__(self, name, filename, content_type, data):
        self.name = name
        self.filename = filename
        self.content_type = content_type
        self.data = data

    def __repr__(self):
        return 'MultipartPart(name=%r, filename=%r, size=%s)' % (self.name, self.filename, len(self.data))


def get_boundary(content_type):
    """
    Extract the boundary parameter from a multipart/form-data Content-Type header.

    Raises:
        MultipartError: not multipart/form-data or no boundary present
    """
    if not content_type or not content_type.lower().startswith('multipart/form-data'):
        raise MultipartError('Only multipart/form-data uploads are supported')
    boundary_match = re.search(r'boundary=("[^"]+"|[^;\s]+)', content_type, re.IGNORECASE)
    if not boundary_match:
        raise MultipartError('Missing boundary in Content-Type')
    return boundary_match.group(1).strip('"').encode('latin-1')


def _parse_disposition(headers_text):
    name = None
    filename = None
    content_type = None
    for line in headers_text.split('\n'):
        line = line.strip()
        if line.lower().startswith('content-disposition:'):
            name_match = re.search(r'[\s;]name="([^"]*)"', line, re.IGNORECASE)
            if name_match is None:
                name_match = re.search(r'[\s;]name=([^;\s]+)', line, re.IGNORECASE)
            if name_match is not None:
                name = name_match.group(1)
            filename_match = re.search(r'filename="([^"]*)"', line, re.IGNORECASE)
            if filename_match is None:
                filename_match = re.search(r'filename=([^;\s]+)', line, re.IGNORECASE)
            if filename_match is not None:
                filename = filename_match.group(1)
        elif line.lower().startswith('content-type:'):
            content_type = line.split(':', 1)[1].strip()
    return name, filename, content_type


def parse_multipart(body:bytes, boundary:bytes, max_memory:int = MAX_MEMORY):
    """
    Split a complete multipart/form-data body into its parts.

    Args:
        body (bytes): request body
        boundary (bytes): boundary from the Content-Type header (without the leading dashes)
        max_memory (int): size limit for the combined data of all non-file fields

    Returns:
        list: MultipartPart objects in body order
    """
    delimiter = b'--' + boundary
    parts = []
    field_bytes = 0

    pos = body.find(delimiter)
    if pos == -1:
        raise MultipartError('Boundary not found in request body')

    while True:
        pos += len(delimiter)
        if body[pos:pos + 2] == b'--':
            return parts
        if body[pos:pos + 2] == b'\r\n':
            pos += 2
        elif body[pos:pos + 1] == b'\n':
            pos += 1
        else:
            raise MultipartError('Malformed boundary line')

        header_end = body.find(b'\r\n\r\n', pos)
        sep_len = 4
        if header_end == -1:
            header_end = body.find(b'\n\n', pos)
            sep_len = 2
            if header_end == -1:
                raise MultipartError('Multipart headers too long or malformed (missing header terminator)')
        try:
            headers_text = body[pos:header_end].decode('utf-8')
        except UnicodeDecodeError as e:
            raise MultipartError('Invalid header encoding: %s' % e)
        data_start = header_end + sep_len

        next_delim = body.find(b'\r\n' + delimiter, data_start)
        if next_delim == -1:
            raise MultipartError('Unexpected end of multipart body')

        name, filename, content_type = _parse_disposition(headers_text)
        data = body[data_start:next_delim]
        if filename is None:
            field_bytes += len(data)
            if field_bytes > max_memory:
                raise MultipartError('Form fields exceed %s bytes' % max_memory)
        parts.append(MultipartPart(name, filename, content_type, data))
        pos = next_delim + 2


def get_file(parts, field_name:str):
    """Returns the first part of field_name that carries a filename, or None"""
    for part in parts:
        if part.name == field_name and part.filename is not None:
            return part
    return None


def safe_filename(filename:str):
    """Strips any directory components the client sent along with the filename"""
    if not filename:
        return None
    name = posixpath.basename(filename.replace('\\', '/'))
    if name in ('', '.', '..'):
        return None
    return name
