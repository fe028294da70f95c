import asyncio
import datetime
import email.utils
import urllib.parse
from itertools import count

import h11

from asyshare import logger
from asyshare._version import __version__


class RequestAborted(Exception):
    """The current request cannot be answered, the connection has to be dropped."""


class RequestContext:
    """Per-request data used for access logging and path resolution."""
    def __init__(self, remote_addr:str, method:str, path:str, protocol:str, headers):
        self.remote_addr = remote_addr
        self.method = method
        self.path = path
        self.protocol = protocol
        self.headers = headers

    def get_header(self, name:str):
        name = name.lower().encode('ascii')
        for hname, hvalue in self.headers:
            if hname == name:
                return hvalue.decode('latin-1')
        return None

    @staticmethod
    def from_request(request:h11.Request, remote_addr:str):
        target = request.target.decode('latin-1')
        path = urllib.parse.unquote(urllib.parse.urlsplit(target).path)
        return RequestContext(
            remote_addr,
            request.method.decode('ascii'),
            path if path else '/',
            'HTTP/%s' % request.http_version.decode('ascii'),
            request.headers,
        )


class HTTPConnectionWrapper:
    _next_id = count()

    def __init__(self, reader:asyncio.StreamReader, writer:asyncio.StreamWriter):
        self.MAX_RECV = 2**16
        self.reader = reader
        self.writer = writer
        self.conn = h11.Connection(h11.SERVER)
        self.ident = " ".join(
            [f"asyshare/{__version__}", h11.PRODUCT_ID]
        ).encode("ascii")
        # A unique id for this connection, to include in debugging output
        self.client_id = next(HTTPConnectionWrapper._next_id)
        peer = writer.get_extra_info('peername')
        self.remote_addr = '%s:%s' % (peer[0], peer[1]) if peer else 'unknown'

    def debug(self, msg, *args):
        logger.debug('[%s] ' % self.client_id + msg, *args)

    async def send(self, event):
        # ConnectionClosed is never sent from here, the writer is closed directly.
        assert type(event) is not h11.ConnectionClosed
        data = self.conn.send(event)
        try:
            self.writer.write(data)
            await self.writer.drain()
        except BaseException:
            # the peer is gone (or we were cancelled), h11 must not wait for the rest of this response
            self.conn.send_failed()
            raise

    async def _read_from_peer(self):
        if self.conn.they_are_waiting_for_100_continue:
            self.debug("Sending 100 Continue")
            go_ahead = h11.InformationalResponse(
                status_code=100, headers=self.basic_headers()
            )
            await self.send(go_ahead)
        try:
            data = await self.reader.read(self.MAX_RECV)
        except Exception as exc:
            self.debug('Error reading from peer: %s', exc)
            # They've stopped listening. Not much we can do about it here.
            data = b""
        self.conn.receive_data(data)

    async def next_event(self):
        while True:
            event = self.conn.next_event()
            if event is h11.NEED_DATA:
                await self._read_from_peer()
                continue
            return event

    async def shutdown_and_clean_up(self):
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except Exception as exc:
            self.debug('Error closing connection: %s', exc)

    def basic_headers(self):
        # HTTP requires these headers in all responses
        return [
            ("Date", format_date_time().encode("ascii")),
            ("Server", self.ident),
        ]


def format_date_time(dt=None):
    """Generate a RFC 7231 / RFC 9110 IMF-fixdate string"""
    if dt is None:
        dt = datetime.datetime.now(datetime.timezone.utc)
    return email.utils.format_datetime(dt, usegmt=True)


class HTTPServerHandler:
    """
    Base class of request handlers. A fresh instance serves each connection.

    Subclasses implement do_<METHOD>(context) coroutines. If an auth_gate is given
    every request has to pass it before reaching any do_<METHOD>.
    """
    def __init__(self, auth_gate = None):
        self._wrapper:HTTPConnectionWrapper = None
        self.auth_gate = auth_gate

    def basic_headers(self):
        return self._wrapper.basic_headers()

    @property
    def response_started(self):
        return self._wrapper.conn.our_state is not h11.SEND_RESPONSE

    async def send_response(self, status_code:int, body:bytes = b'', content_type:str = 'text/html; charset=utf-8', extra_headers = None):
        headers = self.basic_headers()
        if body:
            headers.append(("Content-Type", content_type.encode("ascii")))
        headers.append(("Content-Length", str(len(body)).encode("ascii")))
        if extra_headers is not None:
            headers.extend(extra_headers)
        await self._wrapper.send(h11.Response(status_code=status_code, headers=headers))
        if body:
            await self._wrapper.send(h11.Data(data=body))
        await self._wrapper.send(h11.EndOfMessage())

    async def read_body(self, max_size:int = None):
        """
        Reads the remaining request body into memory.

        Raises:
            OSError: the peer disconnected, the body is malformed or longer than max_size
        """
        body = bytearray()
        while True:
            try:
                event = await self._wrapper.next_event()
            except h11.RemoteProtocolError as e:
                raise OSError('Malformed request body: %s' % e)
            if type(event) is h11.Data:
                body += event.data
                if max_size is not None and len(body) > max_size:
                    raise OSError('Request body exceeds %s bytes' % max_size)
                continue
            if type(event) is h11.EndOfMessage:
                return bytes(body)
            raise OSError('Connection closed while reading the request body')

    async def _process_request(self, wrapper:HTTPConnectionWrapper, request:h11.Request):
        self._wrapper = wrapper
        context = RequestContext.from_request(request, wrapper.remote_addr)
        try:
            if self.auth_gate is not None and self.auth_gate.check(context) is False:
                return await self.send_response(
                    401,
                    b'Not authorized\n',
                    content_type = 'text/plain; charset=utf-8',
                    extra_headers = self.auth_gate.challenge_headers(),
                )

            func = getattr(self, f"do_{context.method}", None)
            if func is None:
                return await self.send_response(405, b'Method Not Allowed\n', content_type = 'text/plain; charset=utf-8')
            await func(context)

        except RequestAborted:
            raise
        except Exception:
            logger.exception('Unexpected error while handling %s %s' % (context.method, context.path))
            if self.response_started is True:
                raise RequestAborted()
            await self.send_response(500, b'Internal Server Error\n', content_type = 'text/plain; charset=utf-8')


class HTTPServer:
    """
    asyncio listener feeding every accepted connection into a new handler object.

    Args:
        client_handler: zero-argument callable returning an HTTPServerHandler
        host (str): address to bind to
        port (int): port to bind to, 0 picks an ephemeral port
        ssl_ctx (ssl.SSLContext): enables TLS when set
    """
    def __init__(self, client_handler, host:str, port:int, ssl_ctx = None):
        self.client_handler = client_handler
        self.host = host
        self.port = port
        self.ssl_ctx = ssl_ctx
        self.sock_port = None
        self.clients = set()
        self.__server = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.terminate()

    async def start(self):
        self.__server = await asyncio.start_server(self.__handle_connection, self.host, self.port, ssl=self.ssl_ctx)
        self.sock_port = self.__server.sockets[0].getsockname()[1]
        return self.sock_port

    async def serve(self):
        if self.__server is None:
            await self.start()
        try:
            await self.__server.serve_forever()
        finally:
            await self.terminate()

    async def terminate(self):
        server, self.__server = self.__server, None
        if server is not None:
            server.close()
        # open keep-alive connections would keep wait_closed from returning
        for task in list(self.clients):
            task.cancel()
        self.clients.clear()
        if server is not None:
            await server.wait_closed()

    async def __handle_connection(self, reader, writer):
        task = asyncio.current_task()
        self.clients.add(task)
        wrapper = HTTPConnectionWrapper(reader, writer)
        try:
            handler = self.client_handler()
            wrapper.debug('New client connected from %s', wrapper.remote_addr)
            while True:
                if wrapper.conn.states == {h11.CLIENT: h11.CLOSED, h11.SERVER: h11.CLOSED}:
                    break

                if wrapper.conn.states[h11.CLIENT] == h11.MUST_CLOSE:
                    break

                if wrapper.conn.states[h11.SERVER] in (h11.MUST_CLOSE, h11.CLOSED, h11.ERROR):
                    break

                if wrapper.conn.states == {h11.CLIENT: h11.DONE, h11.SERVER: h11.DONE}:
                    wrapper.conn.start_next_cycle()
                    continue

                if not (wrapper.conn.states == {h11.CLIENT: h11.IDLE, h11.SERVER: h11.IDLE}):
                    # the handler answered without consuming the whole request body
                    if not (wrapper.conn.states == {h11.CLIENT: h11.SEND_BODY, h11.SERVER: h11.DONE}):
                        wrapper.debug('Connection state not idle: %s', wrapper.conn.states)
                        break

                try:
                    event = await wrapper.next_event()
                except h11.RemoteProtocolError as exc:
                    wrapper.debug('Protocol error: %r', exc)
                    if wrapper.conn.our_state in (h11.IDLE, h11.SEND_RESPONSE):
                        await wrapper.send(h11.Response(status_code=exc.error_status_hint, headers=wrapper.basic_headers() + [("Content-Length", b"0")]))
                        await wrapper.send(h11.EndOfMessage())
                    break

                if type(event) is h11.Request:
                    try:
                        await handler._process_request(wrapper, event)
                    except RequestAborted:
                        wrapper.debug('Request aborted, closing connection')
                        break
                    continue
                if type(event) is h11.ConnectionClosed:
                    break
                # leftover body of a request the handler did not read
                if type(event) in (h11.Data, h11.EndOfMessage):
                    continue
                wrapper.debug('Unknown event type %s', type(event))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception('[%s] Connection handler failed' % wrapper.client_id)
        finally:
            self.clients.discard(task)
            await wrapper.shutdown_and_clean_up()
