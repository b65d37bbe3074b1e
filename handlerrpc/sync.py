# -*- coding: utf-8 -*
#
#   sync.py - Synchronous clients and servers
#   handlerrpc - namespaced XML-RPC/JSON-RPC handler services
#
#   Copyright © 2015 Rickard Lyrenius
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.
#

import sys, io
import errno
import logging
import socketserver
import threading
from collections import namedtuple
import splitstream
from . import protocol
from .protocol import Dispatcher

LOG = logging.getLogger(__name__)

__ALL__ = ["Server", "XmlClient", "XmlServer", "JsonClient", "JsonServer",
           "ServerConfig", "TcpServer", "IDLE", "SERVING", "STOPPED"]

MAX_DOCUMENT_SIZE = 1024*1024*120

IDLE = "idle"
SERVING = "serving"
STOPPED = "stopped"

ServerConfig = namedtuple("ServerConfig", "host port", defaults=("localhost", 5001))


class _SocketReader(object):
    def __init__(self, sock):
        self.__sock = sock

    def read(self, n):
        return self.__sock.recv(n)


class _SocketWriter(object):
    def __init__(self, sock):
        self.__sock = sock

    def write(self, data):
        self.__sock.sendall(data)

    def flush(self):
        pass

    def close(self):
        self.__sock.close()


class _PipeReader(object):
    # Return whatever is available instead of blocking for a full buffer
    def __init__(self, f):
        self.__f = f

    def read(self, n):
        return self.__f.read1(n)

    def close(self):
        self.__f.close()


def _ios(input, output, process, socket):
    if process:
        if input or output or socket:
            raise ValueError("Parameters input, output, socket are mutually exclusive with process")
        return (_wrapinput(process.stdout), _wrapoutput(process.stdin))
    elif socket:
        if input or output:
            raise ValueError("Parameters input, output are mutually exclusive with socket")
        return (_SocketReader(socket), _SocketWriter(socket))
    else:
        return (_wrapinput(input), _wrapoutput(output))


def _wrapoutput(f):
    if isinstance(f, io.TextIOWrapper):
        f = f.buffer
    return f


def _wrapinput(f):
    if isinstance(f, io.TextIOWrapper):
        f = f.buffer
    if hasattr(f, "read1"):
        return _PipeReader(f)
    return f


class Method(object):
    def __init__(self, request, name):
        self.__request = request
        self.__name = name

    def __getattr__(self, name):
        return Method(self.__request, "%s.%s" % (self.__name, name))

    def __call__(self, *args, **kw):
        return self.__request(self.__name, args, kw)


class Client(object):
    def __init__(self, protocol, input=None, output=None, process=None, socket=None):
        self.__input, self.__output = _ios(input, output, process, socket)
        self.__protocol = protocol
        self.__split = splitstream.splitfile(self.__input, format=protocol.splitfmt(),
                                             maxdocsize=MAX_DOCUMENT_SIZE)

    def __request(self, method, args, kwargs):
        r = []

        def on_response(response, err):
            r.append((response, err))

        req = self.__protocol.initiate_request(method, args, kwargs, on_response)
        self.__output.write(req)
        self.__output.flush()

        for s in self.__split:
            self.__protocol.handle_response(s)
            break

        if not r:
            raise EOFError("Did not receive a response")

        response, err = r[0]
        if err is not None:
            raise err
        return response

    def multicall(self, calls):
        """Run ``[(method_name, args), ...]`` in one round trip.

        Returns the list of results. Raises :class:`MulticallFault` for the
        first call that failed.
        """
        calls, payload = protocol.multicall_request(calls)
        results = self.__request(protocol.MULTICALL, (payload,), {})
        return protocol.multicall_results(calls, results)

    def close(self):
        for f in (self.__output, self.__input):
            if hasattr(f, "close"):
                f.close()

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return Method(self.__request, name)


class XmlClient(Client):
    def __init__(self, input=None, output=None, process=None, socket=None, encoding=None, allow_none=True, use_datetime=False):
        Client.__init__(self, protocol.XmlRpc(None, encoding, allow_none, use_datetime), input, output, process, socket)


class JsonClient(Client):
    def __init__(self, input=None, output=None, process=None, socket=None, version=2):
        Client.__init__(self, protocol.JsonRpc(None, version), input, output, process, socket)


class Server(object):
    """Server that can respond to both JSON-RPC and XML-RPC requests and will respond
    with the protocol of the request."""
    def __init__(self, input=sys.stdin, output=sys.stdout, process=None, socket=None, close=True, protocol=None, dispatcher=None):
        self.input, self.output = _ios(input, output, process, socket)
        self.__files = (input or self.input, output or self.output)
        if not self.input:
            raise ValueError("Input was not set")
        if not self.output:
            raise ValueError("Output was not set")
        if protocol is not None:
            dispatcher = protocol.dispatcher
        self.dispatcher = dispatcher if dispatcher is not None else Dispatcher()
        self.__shouldclose = close
        self.__protocol = protocol
        self.__split = None

    def serve_forever(self):
        try:
            while True:
                try:
                    self.process_one()
                except EOFError:
                    break
                except (BrokenPipeError, ConnectionResetError):
                    LOG.debug("Peer went away")
                    break
                except IOError as e:
                    if e.errno == errno.EPIPE:
                        break
                    else:
                        raise
        finally:
            sys.stderr.flush()
            self.close()

    def __close_file(self, f):
        # Never close stdin or stderr, but close stdout to signify EOF if necessary
        if self.__shouldclose and f and (sys is None or not f in (sys.stdin, sys.stderr)) and hasattr(f, 'close'):
            f.close()

    def close(self):
        self.__close_file(self.__files[0])
        self.__close_file(self.__files[1])

    def __detect_protocol(self):
        while True:
            s = self.input.read(1)
            if not s:
                raise EOFError()
            if s == b'<':
                LOG.debug("Speaking XML-RPC")
                return s, protocol.XmlRpc(self.dispatcher)
            if s in (b'{', b'['):
                LOG.debug("Speaking JSON-RPC")
                return s, protocol.JsonRpc(self.dispatcher)
            if not s.isspace():
                raise protocol.InvalidRequest("Unknown protocol, first byte %r" % s)

    def process_one(self):
        s = b""
        if not self.__protocol:
            s, self.__protocol = self.__detect_protocol()

        if not self.__split:
            self.__split = splitstream.splitfile(self.input, format=self.__protocol.splitfmt(),
                                                 maxdocsize=MAX_DOCUMENT_SIZE, preamble=s)

        try:
            for rsps in self.__split:
                response = self.__protocol.dispatch_request(rsps)
                if response is not None:
                    self.output.write(response)
                    self.output.flush()
                return
            raise EOFError()
        except (EOFError, IOError):
            raise
        except Exception: # Internal error
            LOG.exception("Closing stream after internal error")
            self.close()
            raise

    def register(self, namespace, handler):
        self.dispatcher.register(namespace, handler)

    def register_function(self, func, name=None):
        self.dispatcher.register_function(func, name)


class XmlServer(Server):
    """XML-RPC server"""
    def __init__(self, input=sys.stdin, output=sys.stdout, process=None, socket=None, close=True, encoding=None, allow_none=True, use_datetime=False, dispatcher=None):
        Server.__init__(self, input, output, process, socket, close,
            protocol=protocol.XmlRpc(dispatcher, encoding, allow_none, use_datetime))


class JsonServer(Server):
    """JSON-RPC server"""
    def __init__(self, input=sys.stdin, output=sys.stdout, process=None, socket=None, close=True, version=2, dispatcher=None):
        Server.__init__(self, input, output, process, socket, close,
            protocol=protocol.JsonRpc(dispatcher, version))


class ServiceMixin(object):
    """Registration and Idle -> Serving -> Stopped lifecycle for socketserver based servers."""

    state = IDLE

    def register(self, namespace, handler):
        self.dispatcher.register(namespace, handler)

    def register_function(self, func, name=None):
        self.dispatcher.register_function(func, name)

    def serve(self, poll_interval=0.5):
        with self._state_lock:
            if self.state != IDLE:
                raise RuntimeError("Server is %s" % self.state)
            self.state = SERVING
        host, port = self.server_address[:2]
        LOG.info("Serving %s on %s:%d", ", ".join(self.dispatcher.namespaces()) or "(no handlers)", host, port)
        try:
            self.serve_forever(poll_interval)
        finally:
            self.server_close()
            with self._state_lock:
                self.state = STOPPED
            LOG.info("Stopped serving on %s:%d", host, port)

    def shutdown(self):
        with self._state_lock:
            state = self.state
            if state == IDLE:
                self.state = STOPPED
        if state == IDLE:
            self.server_close()
        elif state == SERVING:
            socketserver.BaseServer.shutdown(self)


class _StreamRequestHandler(socketserver.BaseRequestHandler):
    def handle(self):
        LOG.debug("Connection from %s", self.client_address)
        server = Server(input=None, output=None, socket=self.request, close=False,
                        dispatcher=self.server.dispatcher)
        try:
            server.serve_forever()
        except Exception:
            LOG.exception("Connection from %s failed", self.client_address)
        LOG.debug("Connection from %s closed", self.client_address)


class TcpServer(ServiceMixin, socketserver.ThreadingTCPServer):
    """XML-RPC/JSON-RPC over raw TCP, one thread per connection.

    The socket is bound on construction; ``serve()`` blocks until
    ``shutdown()`` is called from another thread.
    """

    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, config=None, dispatcher=None):
        config = config or ServerConfig()
        self.config = config
        self.dispatcher = dispatcher if dispatcher is not None else Dispatcher()
        self._state_lock = threading.Lock()
        socketserver.ThreadingTCPServer.__init__(self, (config.host, config.port), _StreamRequestHandler)
