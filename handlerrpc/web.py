# -*- coding: utf-8 -*
#
#   web.py - XML-RPC over HTTP
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

import http.cookiejar
import logging
import socketserver
import threading
import urllib.request
import xmlrpc.client
from xmlrpc.server import SimpleXMLRPCServer, SimpleXMLRPCRequestHandler

from . import protocol
from .sync import ServerConfig, ServiceMixin

LOG = logging.getLogger(__name__)

__ALL__ = ["HttpServer", "HttpClient", "RequestHandler", "CookieTransport", "SafeCookieTransport"]


class RequestHandler(SimpleXMLRPCRequestHandler):
    rpc_paths = ("/", "/RPC2")

    def log_message(self, format, *args):
        LOG.debug("%s - %s", self.address_string(), format % args)


class HttpServer(ServiceMixin, socketserver.ThreadingMixIn, SimpleXMLRPCServer):
    """XML-RPC over HTTP POST on ``/`` or ``/RPC2``, one thread per connection.

    Registration goes through :attr:`dispatcher`. Of the registration calls
    inherited from ``SimpleXMLRPCServer``, ``register_instance`` maps to the
    root namespace and ``register_multicall_functions`` is a no-op since
    ``system.multicall`` is always served. ``register_introspection_functions``
    is not supported.
    """

    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, config=None, dispatcher=None, encoding=None, allow_none=True, use_datetime=False,
                 request_handler=RequestHandler):
        config = config or ServerConfig()
        self.config = config
        self.dispatcher = dispatcher if dispatcher is not None else protocol.Dispatcher()
        self._state_lock = threading.Lock()
        self.__protocol = protocol.XmlRpc(self.dispatcher, encoding, allow_none, use_datetime)
        SimpleXMLRPCServer.__init__(self, (config.host, config.port), requestHandler=request_handler,
                                    logRequests=False, allow_none=allow_none, encoding=encoding)

    def _marshaled_dispatch(self, data, dispatch_method=None, path=None):
        return self.__protocol.dispatch_request(data)

    def register_instance(self, instance, allow_dotted_names=False):
        if allow_dotted_names:
            raise NotImplementedError("Dotted attribute traversal is not supported")
        self.dispatcher.register("", instance)

    def register_multicall_functions(self):
        LOG.debug("system.multicall is always available")

    def register_introspection_functions(self):
        raise NotImplementedError("Only system.listMethods is available, use the system namespace as is")


class _CookieMixin(object):
    # Keeps server cookies between calls, the way a browser session would
    def __init__(self, cookies=None, **kw):
        super().__init__(**kw)
        self.cookies = cookies if cookies is not None else http.cookiejar.CookieJar()
        self.__url = None

    def send_request(self, host, handler, request_body, debug):
        self.__url = "%s://%s%s" % (self._scheme, host, handler)
        return super().send_request(host, handler, request_body, debug)

    def send_headers(self, connection, headers):
        request = urllib.request.Request(self.__url)
        self.cookies.add_cookie_header(request)
        cookie = request.get_header("Cookie")
        if cookie:
            headers = list(headers) + [("Cookie", cookie)]
        super().send_headers(connection, headers)

    def parse_response(self, response):
        self.cookies.extract_cookies(response, urllib.request.Request(self.__url))
        return super().parse_response(response)


class CookieTransport(_CookieMixin, xmlrpc.client.Transport):
    _scheme = "http"


class SafeCookieTransport(_CookieMixin, xmlrpc.client.SafeTransport):
    _scheme = "https"


class HttpClient(object):
    """XML-RPC client over HTTP.

    Cookies set by the server are sent back on later calls. A non-200
    answer raises ``xmlrpc.client.ProtocolError``.

        rpc = HttpClient("http://localhost:5001/RPC2")
        rpc.service.sum(2, 3)
        rpc.multicall([("service.upcase", ("abc",)), ("service.sum", (2, 3))])
    """

    def __init__(self, url, transport=None, cookies=None, encoding=None, allow_none=True, use_datetime=False):
        if transport is None:
            cls = SafeCookieTransport if url.startswith("https:") else CookieTransport
            transport = cls(cookies=cookies, use_datetime=use_datetime)
        self.transport = transport
        self.__proxy = xmlrpc.client.ServerProxy(url, transport=transport, encoding=encoding,
                                                 allow_none=allow_none)

    @property
    def cookies(self):
        return self.transport.cookies

    def multicall(self, calls):
        calls, payload = protocol.multicall_request(calls)
        results = self.__proxy.system.multicall(payload)
        return protocol.multicall_results(calls, results)

    def close(self):
        self.__proxy("close")()

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self.__proxy, name)
