# -*- coding: utf-8 -*
#
#   __init__.py
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

"""Handler objects registered under namespaces, served over XML-RPC/JSON-RPC
(HTTP, raw TCP sockets, pipes, SSH tunnels, etc)

Example (server):
-----------------

    class Service(handlerrpc.Handler):
        def upcase(self, s):
            return s.upper()

        def error(self):
            raise handlerrpc.Fault(101, "Error occuried.")

    server = handlerrpc.TcpServer(handlerrpc.ServerConfig("localhost", 5001))
    server.register("service", Service())
    server.serve()

Example (client):
-----------------

    sock = socket.create_connection(("localhost", 5001))
    rpc = handlerrpc.XmlClient(socket=sock)
    rpc.service.upcase("abc")

    rpc = handlerrpc.HttpClient("http://localhost:5001/RPC2")
    rpc.service.sum(2, 3)
"""

from .handler import Handler, ObjectHandler, FunctionTable, as_handler
from .protocol import (Dispatcher, Result, Fault, InvocationFault, UnknownNamespace,
                       UnknownMethod, InternalInvocationError, InvalidRequest, MulticallFault)
from .sync import (Server, XmlClient, XmlServer, JsonClient, JsonServer,
                   ServerConfig, TcpServer, IDLE, SERVING, STOPPED)
from .web import HttpServer, HttpClient
