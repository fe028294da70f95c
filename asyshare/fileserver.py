from asyshare import logger
from asyshare.certprovisioner import CertProvisioner
from asyshare.common.config import ServerConfig
from asyshare.server.auth import BasicAuthGate
from asyshare.server.filehandler import FileServerHandler
from asyshare.server.httpserver import HTTPServer


class TransportError(Exception):
    """The listener could not be set up. Not recoverable."""


class FileServer:
    """
    Owns the listener of one served directory.

    Each instance builds its own handler factory, so several servers with
    different roots can run in the same process.
    """
    def __init__(self, config:ServerConfig):
        self.config = config
        self.ssl_ctx = None
        self.auth_gate = None
        self.server:HTTPServer = None
        self.sock_port = None

    def handler_factory(self):
        return FileServerHandler(self.config.webroot, auth_gate = self.auth_gate)

    def setup_auth(self):
        if self.config.basic_auth is None:
            return
        if self.config.ssl is False:
            logger.warning('WARNING!: You are using basic auth without SSL. Your credentials will be transferred in cleartext. Consider using -s, too.')
        logger.info('Using \'%s:%s\' as basic auth' % (BasicAuthGate.USERNAME, '*' * len(self.config.basic_auth)))
        self.auth_gate = BasicAuthGate(self.config.basic_auth)

    def setup_tls(self):
        """Selects plaintext, self-signed or provided-certificate mode. Raises TransportError."""
        if self.config.ssl is False:
            return None

        if self.config.self_signed is True:
            ssl_ctx, fp256, fp1, err = CertProvisioner.synthesize()
            if err is not None:
                raise TransportError('Unable to start SSL enabled server: %s' % err)
            logger.warning('WARNING! Be sure to check the fingerprint of certificate')
            logger.warning('SHA-256 Fingerprint: %s' % fp256)
            logger.warning('SHA-1   Fingerprint: %s' % fp1)
            return ssl_ctx

        if not self.config.cert or not self.config.key:
            raise TransportError('You need to provide a server key and a server certificate if SSL is enabled without self-signed mode')

        fp256, fp1, err = CertProvisioner.fingerprint_of(self.config.cert)
        if err is not None:
            raise TransportError('Unable to start SSL enabled server: %s' % err)
        ssl_ctx, err = CertProvisioner.load_context(self.config.cert, self.config.key)
        if err is not None:
            raise TransportError('Unable to start SSL enabled server: %s' % err)
        logger.info('INFO! You provided a certificate and might want to check the fingerprint nonetheless')
        logger.info('SHA-256 Fingerprint: %s' % fp256)
        logger.info('SHA-1   Fingerprint: %s' % fp1)
        return ssl_ctx

    async def start(self):
        """Binds the listener and returns the bound port. Raises TransportError."""
        err = self.config.validate()
        if err is not None:
            raise TransportError(err)
        self.setup_auth()
        self.ssl_ctx = self.setup_tls()

        self.server = HTTPServer(self.handler_factory, self.config.host, self.config.port, ssl_ctx = self.ssl_ctx)
        try:
            self.sock_port = await self.server.start()
        except OSError as e:
            raise TransportError('Unable to bind %s:%s: %s' % (self.config.host, self.config.port, e))

        if self.ssl_ctx is None:
            logger.info('Serving HTTP on %s port %s from %s' % (self.config.host, self.sock_port, self.config.webroot))
        elif self.config.self_signed is True:
            logger.info('Serving HTTP on %s port %s from %s with ssl enabled and self-signed certificate' % (self.config.host, self.sock_port, self.config.webroot))
        else:
            logger.info('Serving HTTP on %s port %s from %s with ssl enabled server key: %s, server cert: %s' % (self.config.host, self.sock_port, self.config.webroot, self.config.key, self.config.cert))
        return self.sock_port

    async def serve(self):
        if self.server is None:
            await self.start()
        await self.server.serve()

    async def stop(self):
        if self.server is not None:
            await self.server.terminate()
            self.server = None
        self.sock_port = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()


async def run_file_server(config:ServerConfig):
    server = FileServer(config)
    try:
        await server.serve()
    finally:
        await server.stop()
