# -*- coding: utf-8 -*
#
#   examples.py - Example handlers and test servers
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

"""Example handlers, served on localhost:5001.

    python -m handlerrpc.examples service
    python -m handlerrpc.examples bugzilla --transport tcp
"""

import argparse
import datetime
import logging
import sys

from .handler import Handler
from .protocol import InvocationFault
from .sync import ServerConfig, TcpServer
from .web import HttpServer

LOG = logging.getLogger(__name__)

ERROR_MESSAGE = "Error occuried."


class Service(Handler):
    def time(self):
        return datetime.datetime.now()

    def upcase(self, s):
        return s.upper()

    def sum(self, x, y):
        return x + y

    def error(self):
        raise InvocationFault(101, ERROR_MESSAGE)


class Bugzilla(Handler):
    def time(self):
        return datetime.datetime.now()

    def login(self, opts):
        return {"id": 120}

    def error(self):
        # string code, unlike Service.error
        raise InvocationFault("101", ERROR_MESSAGE)


HANDLERS = {
    "service": Service,
    "bugzilla": Bugzilla,
}

TRANSPORTS = {
    "http": HttpServer,
    "tcp": TcpServer,
}


def build_server(namespace, config=None, transport="http"):
    server = TRANSPORTS[transport](config or ServerConfig())
    server.register(namespace, HANDLERS[namespace]())
    return server


def parse_args(argv=None):
    defaults = ServerConfig()
    parser = argparse.ArgumentParser(description="Serve an example handler")
    parser.add_argument("namespace", choices=sorted(HANDLERS))
    parser.add_argument("--host", default=defaults.host)
    parser.add_argument("--port", type=int, default=defaults.port)
    parser.add_argument("--transport", choices=sorted(TRANSPORTS), default="http")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(name)s %(levelname)s %(message)s")
    server = build_server(args.namespace, ServerConfig(args.host, args.port), args.transport)
    try:
        server.serve()
    except KeyboardInterrupt:
        LOG.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
