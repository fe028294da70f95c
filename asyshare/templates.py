"""
HTML pages of the file server.

Every call to render() builds its page from scratch, nothing is cached or
shared between requests.
"""

import html
import urllib.parse

_STYLE = '''
    <style>
        body { font-family: 'Segoe UI', system-ui, sans-serif; background: #f8fafc; color: #1e293b; margin: 0; padding: 20px; }
        .container { max-width: 960px; margin: 0 auto; background: #ffffff; border-radius: 8px; box-shadow: 0 4px 6px -1px rgba(0, 0, 0, 0.1); }
        .header { background: #2563eb; color: white; padding: 24px 32px; border-radius: 8px 8px 0 0; }
        .header h1 { margin: 0; font-size: 1.6rem; word-break: break-all; }
        .content { padding: 24px 32px; }
        .upload { background: #f0fdf4; border: 2px dashed #059669; border-radius: 8px; padding: 16px; margin-bottom: 24px; }
        ul.listing { list-style: none; padding: 0; margin: 0; }
        ul.listing li { padding: 8px 4px; border-bottom: 1px solid #e2e8f0; }
        ul.listing a { color: #2563eb; text-decoration: none; font-weight: 500; }
        ul.listing a:hover { color: #1d4ed8; }
        .error { text-align: center; padding: 48px 32px; }
        .error h1 { font-size: 3rem; margin: 0 0 12px 0; }
    </style>'''

_LISTING = '''<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Directory listing for %(title)s</title>%(style)s
</head>
<body>
    <div class="container">
        <div class="header"><h1>Directory listing for %(title)s</h1></div>
        <div class="content">
            <div class="upload">
                <form method="post" enctype="multipart/form-data" action="%(action)s">
                    <input type="file" name="file">
                    <button type="submit">Upload</button>
                </form>
            </div>
            <ul class="listing">
%(items)s
            </ul>
        </div>
    </div>
</body>
</html>
'''

_ERROR = '''<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>%(code)s %(reason)s</title>%(style)s
</head>
<body>
    <div class="container">
        <div class="error">
            <h1>%(code)s</h1>
            <p>%(text)s</p>
            <p><a href="/">Back to the root directory</a></p>
        </div>
    </div>
</body>
</html>
'''

_ERRORS = {
	'notFound' : (404, 'Not Found', 'The requested file or directory does not exist.'),
	'serverError' : (500, 'Internal Server Error', 'No permission to access the requested file or directory.'),
}

TEMPLATE_NAMES = ('listing',) + tuple(_ERRORS.keys())


def _render_listing(data):
	request_path = data['requestPath']
	lines = []
	if request_path.rstrip('/') != '':
		parent = request_path.rstrip('/').rsplit('/', 1)[0] or '/'
		lines.append('                <li><a href="%s">../</a></li>' % html.escape(urllib.parse.quote(parent), quote=True))
	for entry in data['entries']:
		lines.append('                <li><a href="%s">%s</a></li>' % (html.escape(entry.uri, quote=True), html.escape(entry.name)))

	action = urllib.parse.quote(request_path.rstrip('/') + '/upload')
	return _LISTING % {
		'title' : html.escape(request_path),
		'style' : _STYLE,
		'action' : html.escape(action, quote=True),
		'items' : '\n'.join(lines),
	}


def render(name:str, data = None) -> bytes:
	"""
	Renders one of the pages in TEMPLATE_NAMES.

	Args:
		name (str): 'listing', 'notFound' or 'serverError'
		data (dict): for 'listing' a dict with 'requestPath' and 'entries'
			(objects with name and uri attributes), ignored otherwise

	Returns:
		bytes: UTF-8 encoded HTML
	"""
	if name == 'listing':
		return _render_listing(data).encode('utf-8')
	if name in _ERRORS:
		code, reason, text = _ERRORS[name]
		return (_ERROR % {'code' : code, 'reason' : reason, 'text' : text, 'style' : _STYLE}).encode('utf-8')
	raise KeyError('Unknown template %s' % name)
