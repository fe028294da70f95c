import hmac
import base64
import binascii

from asyshare.server.httpserver import RequestContext


class BasicAuthGate:
	"""Checks HTTP Basic credentials against one fixed user and a shared secret. Keeps no state between requests."""
	USERNAME = 'asyshare'

	def __init__(self, secret:str, realm:str = 'Restricted'):
		if not secret:
			raise ValueError('BasicAuthGate needs a non-empty secret')
		self.secret = secret
		self.realm = realm

	@staticmethod
	def parse_header(value:str):
		"""Returns (username, password) from an Authorization header value, or (None, None) if it is not valid Basic auth"""
		if value is None:
			return None, None
		scheme, _, param = value.strip().partition(' ')
		if scheme.lower() != 'basic' or not param:
			return None, None
		try:
			decoded = base64.b64decode(param.strip(), validate=True).decode('utf-8')
		except (binascii.Error, UnicodeDecodeError):
			return None, None
		username, sep, password = decoded.partition(':')
		if not sep:
			return None, None
		return username, password

	def check(self, context:RequestContext):
		username, password = BasicAuthGate.parse_header(context.get_header('Authorization'))
		if username is None:
			return False
		user_ok = hmac.compare_digest(username.encode('utf-8'), self.USERNAME.encode('utf-8'))
		pass_ok = hmac.compare_digest(password.encode('utf-8'), self.secret.encode('utf-8'))
		return user_ok and pass_ok

	def challenge_headers(self):
		return [('WWW-Authenticate', ('Basic realm="%s"' % self.realm).encode('ascii'))]
