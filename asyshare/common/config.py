import os


class ServerConfig:
	"""Startup settings of the file server. Read-only once constructed."""
	def __init__(self, webroot:str, port:int = 8000, host:str = '0.0.0.0', ssl:bool = False, self_signed:bool = False, cert:str = None, key:str = None, basic_auth:str = None):
		self.__dict__['webroot'] = os.path.abspath(webroot)
		self.__dict__['port'] = port
		self.__dict__['host'] = host
		self.__dict__['ssl'] = ssl
		self.__dict__['self_signed'] = self_signed
		self.__dict__['cert'] = cert
		self.__dict__['key'] = key
		self.__dict__['basic_auth'] = basic_auth if basic_auth else None

	def __setattr__(self, name, value):
		raise AttributeError('ServerConfig is read-only (tried to set %s)' % name)

	def __delattr__(self, name):
		raise AttributeError('ServerConfig is read-only (tried to delete %s)' % name)

	def validate(self):
		"""Returns an error message describing the first invalid setting, or None"""
		if not isinstance(self.port, int) or self.port < 0 or self.port > 65535:
			return 'Port must be between 0 and 65535, got %s' % self.port
		if not os.path.exists(self.webroot):
			return 'Directory %s does not exist' % self.webroot
		if not os.path.isdir(self.webroot):
			return '%s is not a directory' % self.webroot
		if self.self_signed is True and self.ssl is False:
			return 'Self-signed mode requires SSL to be enabled'
		return None

	@staticmethod
	def from_args(args):
		return ServerConfig(
			args.dir,
			port = args.port,
			host = args.ip,
			ssl = args.ssl or args.self_signed,
			self_signed = args.self_signed,
			cert = args.server_cert,
			key = args.server_key,
			basic_auth = args.basic_auth,
		)

	def __str__(self):
		t = '==== ServerConfig ====\r\n'
		for k in self.__dict__:
			v = self.__dict__[k]
			if k == 'basic_auth' and v is not None:
				v = '*' * len(v)
			t += '%s: %s\r\n' % (k, v)
		return t
